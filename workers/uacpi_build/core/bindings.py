"""
Binding generator — umbrella header → ``bindings.py``.

Pipeline:
  preprocess (``cc -E -dD`` with the shared binding args)
  → parse (tree-sitter-c) → gate → collect → render → write

The output file is rewritten on every run.
"""
from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from uacpi_build.core.command import CommandRunner, check_command, run_command
from uacpi_build.core.declarations import collect_declarations
from uacpi_build.core.emit import render_bindings
from uacpi_build.core.ts_parser import parse_header_tu
from uacpi_build.errors import BindingError
from uacpi_build.policy.profile import BuildConfiguration
from uacpi_build.policy.verdict import SurfaceScope, Verdict, gate_tu

logger = logging.getLogger(__name__)

BINDINGS_FILE = "bindings.py"
MAX_REPORTED_ERRORS = 5


@dataclass(frozen=True)
class BindingOptions:
    """Generator switches."""
    prepend_enum_name: bool = False
    derive_debug: bool = True


@dataclass
class BindingsResult:
    path: Path
    sha256: str
    size_bytes: int
    verdict: str
    reasons: List[str] = field(default_factory=list)
    counts: Dict[str, int] = field(default_factory=dict)
    headers: List[str] = field(default_factory=list)
    parser_version: str = ""


def preprocess_command(cc: str, configuration: BuildConfiguration, umbrella: Path) -> List[str]:
    return [cc, "-E", "-dD", *configuration.binding_args(), str(umbrella)]


def preprocess_umbrella(
    configuration: BuildConfiguration,
    umbrella: Path,
    cc: str = "clang",
    runner: CommandRunner = run_command,
) -> str:
    """Run the preprocessor over the umbrella header and return its output."""
    if not umbrella.is_file():
        raise BindingError(
            f"Umbrella header not found: {umbrella}",
            hint="Set UACPI_UMBRELLA_HEADER or add wrapper.h to the project directory.",
            context={"operation": "preprocess_umbrella", "path": str(umbrella)},
        )
    result = check_command(
        runner,
        preprocess_command(cc, configuration, umbrella),
        cwd=umbrella.parent,
        error=BindingError,
        message="Failed to preprocess the uACPI headers.",
        hint="The header diagnostics above come from the umbrella header or uACPI includes.",
        operation="preprocess_umbrella",
    )
    return result.stdout


def generate_bindings(
    configuration: BuildConfiguration,
    umbrella: Path,
    out_dir: Path,
    cc: str = "clang",
    runner: CommandRunner = run_command,
    options: Optional[BindingOptions] = None,
) -> BindingsResult:
    """Generate ``bindings.py`` for *umbrella* under *configuration*."""
    options = options or BindingOptions()
    text = preprocess_umbrella(configuration, umbrella, cc=cc, runner=runner)

    parse_result = parse_header_tu(text.encode("utf-8"), tu_path=str(umbrella))
    scope = SurfaceScope.build(configuration.include_dirs, str(umbrella))
    verdict, reasons = gate_tu(parse_result, scope)

    if verdict == Verdict.REJECT:
        first = [e for e in parse_result.parse_errors if scope.contains(e.origin)][:MAX_REPORTED_ERRORS]
        raise BindingError(
            "uACPI headers could not be parsed.",
            context={
                "operation": "generate_bindings",
                "reasons": ", ".join(reasons),
                "errors": "; ".join(f"{e.origin}:{e.line + 1}:{e.column + 1} {e.message}" for e in first),
            },
        )
    if verdict == Verdict.WARN:
        logger.warning(
            "Ignoring %d parse errors outside the uACPI headers (%s)",
            len(parse_result.parse_errors), ", ".join(reasons),
        )

    decls = collect_declarations(parse_result, scope, prepend_enum_name=options.prepend_enum_name)
    source = render_bindings(
        decls,
        fingerprint=configuration.fingerprint(),
        derive_debug=options.derive_debug,
    )

    out_dir.mkdir(parents=True, exist_ok=True)
    path = out_dir / BINDINGS_FILE
    data = source.encode("utf-8")
    path.write_bytes(data)

    counts = decls.counts()
    logger.info(
        "Wrote %s (%d records, %d functions, %d constants)",
        path, counts["records"], counts["functions"], counts["constants"],
    )
    return BindingsResult(
        path=path,
        sha256=hashlib.sha256(data).hexdigest(),
        size_bytes=len(data),
        verdict=verdict.value,
        reasons=reasons,
        counts=counts,
        headers=[f for f in parse_result.origins.distinct_files() if scope.contains(f)],
        parser_version=parse_result.parser_version,
    )
