"""
Build environment configuration.

Read once at the start of a build and passed to every stage.  Names follow
the invoking build system; the Cargo spellings are accepted as aliases so
the tool can run unchanged from a build script.
"""
from __future__ import annotations

from pathlib import Path
from typing import Any, FrozenSet

from pydantic import AliasChoices, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from uacpi_build.errors import EnvironmentConfigError
from uacpi_build.policy.features import Feature


class BuildEnvironment(BaseSettings):
    """Environment inputs for one build invocation"""

    # Supplied by the invoking build system
    PROJECT_DIR: Path = Field(
        validation_alias=AliasChoices("PROJECT_DIR", "CARGO_MANIFEST_DIR"),
    )
    TARGET_ARCH: str = Field(
        validation_alias=AliasChoices("TARGET_ARCH", "CARGO_CFG_TARGET_ARCH"),
    )
    OUT_DIR: Path = Field(validation_alias=AliasChoices("OUT_DIR"))

    # Feature toggles
    FEATURE_REDUCED_HARDWARE: bool = Field(
        default=False,
        validation_alias=AliasChoices(
            "UACPI_FEATURE_REDUCED_HARDWARE", "CARGO_FEATURE_REDUCED_HARDWARE",
        ),
    )
    FEATURE_BAREBONES_MODE: bool = Field(
        default=False,
        validation_alias=AliasChoices(
            "UACPI_FEATURE_BAREBONES_MODE", "CARGO_FEATURE_BAREBONES_MODE",
        ),
    )

    # Tools
    CC: str = Field(default="clang", validation_alias=AliasChoices("CC"))
    AR: str = Field(default="ar", validation_alias=AliasChoices("AR"))
    GIT: str = Field(default="git", validation_alias=AliasChoices("GIT"))

    # Layout (relative to PROJECT_DIR)
    DEPENDENCY_DIR: str = Field(
        default="uACPI", validation_alias=AliasChoices("UACPI_DEPENDENCY_DIR"),
    )
    UMBRELLA_HEADER: str = Field(
        default="wrapper.h", validation_alias=AliasChoices("UACPI_UMBRELLA_HEADER"),
    )

    model_config = SettingsConfigDict(case_sensitive=True, frozen=True)

    @property
    def dependency_path(self) -> Path:
        """Checkout directory of the uACPI submodule"""
        return self.PROJECT_DIR / self.DEPENDENCY_DIR

    @property
    def include_path(self) -> Path:
        return self.dependency_path / "include"

    @property
    def umbrella_path(self) -> Path:
        return self.PROJECT_DIR / self.UMBRELLA_HEADER

    @property
    def features(self) -> FrozenSet[Feature]:
        enabled = set()
        if self.FEATURE_REDUCED_HARDWARE:
            enabled.add(Feature.REDUCED_HARDWARE)
        if self.FEATURE_BAREBONES_MODE:
            enabled.add(Feature.BAREBONES_MODE)
        return frozenset(enabled)


def load_environment(**overrides: Any) -> BuildEnvironment:
    """
    Read the build environment once.

    Keyword *overrides* (alias names, e.g. ``PROJECT_DIR=...``) take
    precedence over the process environment; ``None`` values are ignored.
    A missing or malformed input is fatal.
    """
    supplied = {k: v for k, v in overrides.items() if v is not None}
    try:
        env = BuildEnvironment(**supplied)
    except ValidationError as e:
        missing = sorted(
            str(err["loc"][0]) for err in e.errors() if err.get("type") == "missing"
        )
        raise EnvironmentConfigError(
            "Build environment is incomplete or invalid.",
            hint="Set PROJECT_DIR, TARGET_ARCH and OUT_DIR (or the Cargo equivalents).",
            context={
                "operation": "load_environment",
                "missing": ", ".join(missing),
                "errors": str(e.error_count()),
            },
        ) from e

    return env.model_copy(update={
        "PROJECT_DIR": env.PROJECT_DIR.resolve(),
        "OUT_DIR": env.OUT_DIR.resolve(),
    })
