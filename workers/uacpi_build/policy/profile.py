"""
Build profile for uacpi_build.

Fixed source set and freestanding flags, plus ``BuildConfiguration``: the
one value both the compiler and the binding generator read.  Include paths
and defines live in exactly one place, so the archive and the bindings
cannot be built under different preprocessor conditions.
"""
from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Tuple

from uacpi_build.policy.arch import arch_flags
from uacpi_build.policy.features import Define, Feature, feature_defines

SOURCES: Tuple[str, ...] = (
    "source/default_handlers.c",
    "source/event.c",
    "source/interpreter.c",
    "source/io.c",
    "source/mutex.c",
    "source/namespace.c",
    "source/notify.c",
    "source/opcodes.c",
    "source/opregion.c",
    "source/osi.c",
    "source/registers.c",
    "source/resources.c",
    "source/shareable.c",
    "source/sleep.c",
    "source/stdlib.c",
    "source/tables.c",
    "source/types.c",
    "source/uacpi.c",
    "source/utilities.c",
)

# Kernel linkers need fixed addressing: no PIC/PIE, no libc, no canaries.
FREESTANDING_FLAGS: Tuple[str, ...] = (
    "-nostdlib",
    "-ffreestanding",
    "-fno-stack-protector",
    "-fno-PIC",
    "-fno-PIE",
)


@dataclass(frozen=True)
class BuildConfiguration:
    """Shared compile/binding configuration for one build."""

    target_arch: str
    include_dirs: Tuple[str, ...]
    defines: Tuple[Define, ...]
    fixed_flags: Tuple[str, ...] = FREESTANDING_FLAGS
    arch_flags: Tuple[str, ...] = ()

    @classmethod
    def for_target(
        cls,
        target_arch: str,
        features: Iterable[Feature],
        include_dir: Path,
    ) -> BuildConfiguration:
        """Merge the fixed, architecture and feature contributions."""
        return cls(
            target_arch=target_arch,
            include_dirs=(str(include_dir),),
            defines=feature_defines(features),
            arch_flags=arch_flags(target_arch),
        )

    # ── Argument views ───────────────────────────────────────────────────

    def _preprocessor_args(self) -> List[str]:
        args = [f"-I{d}" for d in self.include_dirs]
        args += [f"-D{name}={value}" for name, value in self.defines]
        return args

    def compiler_args(self) -> List[str]:
        """Everything the native compiler sees for each translation unit."""
        return self._preprocessor_args() + list(self.fixed_flags) + list(self.arch_flags)

    def binding_args(self) -> List[str]:
        """
        Arguments for the header parse.

        Same includes, defines and fixed flags as ``compiler_args``; the
        architecture flags only steer instruction selection and are left out.
        """
        return self._preprocessor_args() + list(self.fixed_flags)

    def define_names(self) -> List[str]:
        return [name for name, _ in self.defines]

    def fingerprint(self) -> str:
        """sha256 over the part shared with the binding generator."""
        payload = json.dumps(
            {
                "include_dirs": list(self.include_dirs),
                "defines": [list(d) for d in self.defines],
                "fixed_flags": list(self.fixed_flags),
            },
            sort_keys=True,
        )
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()
