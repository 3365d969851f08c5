"""
Feature toggles → uACPI preprocessor defines.

The same defines go to the compiler and to the binding generator; see
``BuildConfiguration`` for how that is enforced.
"""
from __future__ import annotations

from enum import Enum
from typing import FrozenSet, Iterable, Tuple

from uacpi_build.errors import EnvironmentConfigError

Define = Tuple[str, str]

# Frees carry their size: the kernel allocator does not track it.
SIZED_FREES: Define = ("UACPI_SIZED_FREES", "1")


class Feature(str, Enum):
    """Build-time feature toggles."""
    REDUCED_HARDWARE = "reduced-hardware"
    BAREBONES_MODE = "barebones-mode"


FEATURE_DEFINES: Tuple[Tuple[Feature, Define], ...] = (
    (Feature.REDUCED_HARDWARE, ("UACPI_REDUCED_HARDWARE", "1")),
    (Feature.BAREBONES_MODE, ("UACPI_BAREBONES_MODE", "1")),
)


def feature_defines(features: Iterable[Feature]) -> Tuple[Define, ...]:
    """Baseline define plus one define per enabled toggle, in a fixed order."""
    enabled = frozenset(features)
    defines = [SIZED_FREES]
    for feature, define in FEATURE_DEFINES:
        if feature in enabled:
            defines.append(define)
    return tuple(defines)


def parse_features(values: Iterable[str]) -> FrozenSet[Feature]:
    """Turn feature names (``reduced-hardware`` or ``reduced_hardware``) into toggles."""
    features = set()
    for raw in values:
        name = raw.strip().lower().replace("_", "-")
        if not name:
            continue
        try:
            features.add(Feature(name))
        except ValueError:
            raise EnvironmentConfigError(
                f"Unknown feature: {raw}",
                hint="Known features: " + ", ".join(f.value for f in Feature),
                context={"operation": "parse_features", "feature": raw},
            ) from None
    return frozenset(features)
