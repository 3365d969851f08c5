"""
BuildReceipt schema — uacpi_build_receipt.json

One receipt per build, written next to libuacpi.a and bindings.py.
Records what was fetched, under which configuration it was compiled,
and what the binding generator consumed and produced.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from uacpi_build import BUILDER_NAME, SCHEMA_VERSION, __version__
from uacpi_build.core.command import CommandRunner, run_command


# =============================================================================
# Identity
# =============================================================================

class BuilderInfo(BaseModel):
    """Identifies the builder package."""
    name: str = BUILDER_NAME
    version: str = __version__
    schema_version: str = SCHEMA_VERSION


class ToolchainIdentity(BaseModel):
    """First ``--version`` line of each tool, or "unknown"."""
    cc: str
    cc_version: str = "unknown"
    ar: str
    ar_version: str = "unknown"
    git: str
    git_version: str = "unknown"


# =============================================================================
# Inputs
# =============================================================================

class DependencyInfo(BaseModel):
    """State of the uACPI checkout."""
    path: str
    state_before: str          # absent | present-stale
    state_after: str           # present-fresh
    action: str                # init | update-remote
    command: str
    commit: Optional[str] = None
    duration_ms: int = 0


class ConfigurationInfo(BaseModel):
    """The shared compile/binding configuration."""
    target_arch: str
    features: List[str] = Field(default_factory=list)
    include_dirs: List[str] = Field(default_factory=list)
    defines: List[str] = Field(default_factory=list)
    fixed_flags: List[str] = Field(default_factory=list)
    arch_flags: List[str] = Field(default_factory=list)
    fingerprint: str


# =============================================================================
# Outputs
# =============================================================================

class ObjectInfo(BaseModel):
    """Minimal ELF metadata of one object; no symbol-level detail."""
    source: str
    sha256: str
    is_elf: bool = False
    elf_type: str = ""
    machine: str = ""


class ArchiveInfo(BaseModel):
    path: str
    sha256: str
    size_bytes: int
    command_template: str
    link_args: List[str] = Field(default_factory=list)
    objects: List[ObjectInfo] = Field(default_factory=list)


class BindingsInfo(BaseModel):
    path: str
    sha256: str
    size_bytes: int
    verdict: str               # ACCEPT | WARN
    reasons: List[str] = Field(default_factory=list)
    parser: str = ""
    counts: Dict[str, int] = Field(default_factory=dict)
    headers: List[str] = Field(default_factory=list)


# =============================================================================
# Top-level receipt
# =============================================================================

class BuildReceipt(BaseModel):
    """
    Provenance for one successful build.

    Only written when every stage succeeded; a failed build leaves the
    previous receipt untouched.
    """
    builder: BuilderInfo = BuilderInfo()
    toolchain: ToolchainIdentity
    dependency: DependencyInfo
    configuration: ConfigurationInfo
    archive: ArchiveInfo
    bindings: BindingsInfo
    started_at: str
    finished_at: Optional[str] = None


# =============================================================================
# Helpers
# =============================================================================

def now_iso() -> str:
    """Current UTC time as ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat()


def tool_version(tool: str, runner: CommandRunner = run_command) -> str:
    """First line of ``<tool> --version``; "unknown" if the tool does not answer."""
    result = runner([tool, "--version"], None)
    if not result.ok:
        return "unknown"
    lines = (result.stdout or result.stderr).strip().splitlines()
    return lines[0] if lines else "unknown"


def capture_toolchain(
    cc: str,
    ar: str,
    git: str,
    runner: CommandRunner = run_command,
) -> ToolchainIdentity:
    return ToolchainIdentity(
        cc=cc,
        cc_version=tool_version(cc, runner),
        ar=ar,
        ar_version=tool_version(ar, runner),
        git=git,
        git_version=tool_version(git, runner),
    )
