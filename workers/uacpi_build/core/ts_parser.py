"""
Tree-sitter C parser wrapper for preprocessed headers.

Parses the ``cc -E -dD`` output of the umbrella header, reports parse
errors, and maps every line of the preprocessed text back to the header it
came from using the preprocessor's linemarkers.
"""
from __future__ import annotations

import bisect
import hashlib
import logging
import re
from dataclasses import dataclass, field
from importlib.metadata import PackageNotFoundError, version
from typing import List, Optional, Tuple

import tree_sitter_c as tsc
from tree_sitter import Language, Node, Parser

logger = logging.getLogger(__name__)

# ── Language / parser singletons ─────────────────────────────────────────────

_C_LANGUAGE = Language(tsc.language())
_PARSER: Parser | None = None

# `# 12 "path/to/header.h" 1 3` (gcc/clang) or `#line 12 "path"`
_LINEMARKER_RE = re.compile(r'^#\s*(?:line\s+)?(\d+)\s+"((?:[^"\\]|\\.)*)"')


def _get_parser() -> Parser:
    """Return a cached tree-sitter C parser."""
    global _PARSER
    if _PARSER is None:
        _PARSER = Parser(_C_LANGUAGE)
    return _PARSER


def parser_version_string() -> str:
    """Runtime + grammar version for provenance."""
    try:
        ts_version = version("tree-sitter")
    except PackageNotFoundError:
        ts_version = "unknown"

    try:
        tsc_version = version("tree-sitter-c")
    except PackageNotFoundError:
        tsc_version = "unknown"

    return f"tree-sitter=={ts_version}; tree-sitter-c=={tsc_version}"


# ── Data classes ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ParseError:
    """A single error node found in the parse tree."""
    line: int        # 0-based, in the preprocessed text
    column: int      # 0-based
    message: str
    origin: str      # header the line came from


@dataclass(frozen=True)
class OriginMap:
    """Preprocessed line → originating file."""
    starts: Tuple[int, ...] = ()
    files: Tuple[str, ...] = ()

    @classmethod
    def from_text(cls, text: str) -> OriginMap:
        starts: List[int] = []
        files: List[str] = []
        for lineno, line in enumerate(text.split("\n")):
            if not line.startswith("#"):
                continue
            m = _LINEMARKER_RE.match(line)
            if m is None:
                continue
            starts.append(lineno)
            files.append(m.group(2).replace("\\\\", "\\"))
        return cls(starts=tuple(starts), files=tuple(files))

    def origin_of(self, line: int) -> str:
        """File that produced preprocessed *line* ("" before the first marker)."""
        idx = bisect.bisect_right(self.starts, line) - 1
        if idx < 0:
            return ""
        return self.files[idx]

    def distinct_files(self) -> List[str]:
        return sorted(set(self.files))


@dataclass
class ParseResult:
    """Result of parsing one preprocessed header set."""
    tree: object                         # tree_sitter.Tree
    source_bytes: bytes
    tu_path: str
    tu_hash: str
    parser_version: str
    parse_status: str                    # "OK" | "ERROR"
    origins: OriginMap = field(default_factory=OriginMap)
    parse_errors: List[ParseError] = field(default_factory=list)

    @property
    def root(self) -> Node:
        return self.tree.root_node  # type: ignore[attr-defined]


# ── Error collection ─────────────────────────────────────────────────────────

def _collect_errors(node: Node, origins: OriginMap, errors: List[ParseError]) -> None:
    """Walk the tree and collect ERROR / MISSING nodes."""
    if node.type == "ERROR" or node.is_missing:
        row, col = node.start_point
        msg = f"MISSING({node.type})" if node.is_missing else "ERROR"
        errors.append(ParseError(line=row, column=col, message=msg, origin=origins.origin_of(row)))
        if node.type == "ERROR":
            return
    for child in node.children:
        _collect_errors(child, origins, errors)


# ── Public API ───────────────────────────────────────────────────────────────

def strip_linemarkers(text: str) -> str:
    """Blank every linemarker line, leaving the line count unchanged."""
    return "\n".join(
        "" if line.startswith("#") and _LINEMARKER_RE.match(line) else line
        for line in text.split("\n")
    )


def parse_source(source_bytes: bytes) -> Node:
    """Parse a C snippet and return its root node."""
    return _get_parser().parse(source_bytes).root_node


def parse_header_tu(source_bytes: bytes, tu_path: str = "<preprocessed>") -> ParseResult:
    """
    Parse preprocessed header text.

    Parameters
    ----------
    source_bytes : bytes
        Output of ``cc -E -dD`` on the umbrella header.
    tu_path : str
        Label for diagnostics (usually the umbrella header path).
    """
    tu_hash = hashlib.sha256(source_bytes).hexdigest()
    text = source_bytes.decode("utf-8", errors="replace")
    origins = OriginMap.from_text(text)

    # gcc puts markers inside a declaration when a system-header macro
    # expands there; the grammar only accepts them between declarations.
    source_bytes = strip_linemarkers(text).encode("utf-8")
    tree = _get_parser().parse(source_bytes)

    errors: List[ParseError] = []
    _collect_errors(tree.root_node, origins, errors)

    return ParseResult(
        tree=tree,
        source_bytes=source_bytes,
        tu_path=tu_path,
        tu_hash=tu_hash,
        parser_version=parser_version_string(),
        parse_status="ERROR" if errors else "OK",
        origins=origins,
        parse_errors=errors,
    )


def node_text(node: Optional[Node]) -> str:
    if node is None or node.text is None:
        return ""
    return node.text.decode("utf-8", errors="replace")
