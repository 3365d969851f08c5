"""
Header-parse gate.

Strictly syntactic: a parse error inside the exposed surface (the uACPI
include tree or the umbrella header) rejects the parse; errors that only
touch compiler built-ins or system headers are tolerated with a warning.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import PurePath
from typing import Iterable, List, Tuple

from uacpi_build.core.ts_parser import ParseResult

logger = logging.getLogger(__name__)


class Verdict(str, Enum):
    ACCEPT = "ACCEPT"
    WARN = "WARN"
    REJECT = "REJECT"


class GateReason(str, Enum):
    SURFACE_PARSE_ERROR = "SURFACE_PARSE_ERROR"
    FOREIGN_PARSE_ERROR = "FOREIGN_PARSE_ERROR"
    EMPTY_TU = "EMPTY_TU"


@dataclass(frozen=True)
class SurfaceScope:
    """Which origins count as the exposed header surface."""
    include_dirs: Tuple[str, ...]
    umbrella: str

    def contains(self, origin: str) -> bool:
        if not origin or origin.startswith("<"):
            return False
        path = PurePath(origin)
        if path == PurePath(self.umbrella):
            return True
        return any(path.is_relative_to(d) for d in self.include_dirs)

    @classmethod
    def build(cls, include_dirs: Iterable[str], umbrella: str) -> SurfaceScope:
        return cls(include_dirs=tuple(include_dirs), umbrella=umbrella)


def gate_tu(parse_result: ParseResult, scope: SurfaceScope) -> Tuple[Verdict, List[str]]:
    """TU-level verdict for the preprocessed header set."""
    reasons: List[str] = []

    if parse_result.root.child_count == 0:
        reasons.append(GateReason.EMPTY_TU.value)
        return Verdict.REJECT, reasons

    if parse_result.parse_status != "ERROR":
        return Verdict.ACCEPT, reasons

    surface = [e for e in parse_result.parse_errors if scope.contains(e.origin)]
    if surface:
        reasons.append(GateReason.SURFACE_PARSE_ERROR.value)
        return Verdict.REJECT, reasons

    reasons.append(GateReason.FOREIGN_PARSE_ERROR.value)
    return Verdict.WARN, reasons
