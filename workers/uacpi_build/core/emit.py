"""
Bindings emitter — collected declarations → ctypes module source.

Layout of the generated module:
  1. banner (generator version + configuration fingerprint, no timestamps)
  2. the ``_Inspectable`` mixin
  3. one class statement per record, so later references never dangle
  4. constants, aliases, enumerators and ``_fields_`` in header order
  5. ``FUNCTIONS`` / ``VARIADIC`` tables and ``bind(lib)``
"""
from __future__ import annotations

from typing import List

from uacpi_build import PACKAGE_NAME, __version__
from uacpi_build.core.declarations import (
    AliasDecl,
    ConstantDecl,
    Declarations,
    EnumDecl,
    RecordDecl,
)

_INSPECT_MIXIN = '''\
class _Inspectable:
    """Field-listing repr for generated records."""

    def __repr__(self):
        fields = ", ".join(
            f"{name}={getattr(self, name)!r}" for name, *_ in getattr(type(self), "_fields_", ())
        )
        return f"{type(self).__name__}({fields})"
'''

_BIND_FUNCTION = '''\
def bind(lib):
    """Apply restype/argtypes from FUNCTIONS to a loaded uACPI library."""
    for name, (restype, argtypes) in FUNCTIONS.items():
        func = getattr(lib, name)
        func.restype = restype
        func.argtypes = argtypes
    return lib
'''


def _section(title: str) -> str:
    return f"# ── {title} " + "─" * max(0, 74 - len(title))


def _record_class(rec: RecordDecl, derive_debug: bool) -> List[str]:
    base = "ctypes.Union" if rec.kind == "union" else "ctypes.Structure"
    bases = f"_Inspectable, {base}" if derive_debug else base
    body: List[str] = []
    if rec.packed:
        body.append('    _layout_ = "ms"')
        body.append("    _pack_ = 1")
    if rec.anonymous:
        names = ", ".join(repr(n) for n in rec.anonymous)
        body.append(f"    _anonymous_ = ({names},)")
    if not body:
        body.append("    pass")
    return [f"class {rec.name}({bases}):", *body, "", ""]


def _layout(rec: RecordDecl) -> List[str]:
    if not rec.fields:
        return [f"{rec.name}._fields_ = []"]
    lines = [f"{rec.name}._fields_ = ["]
    for f in rec.fields:
        if f.bits is None:
            lines.append(f"    ({f.name!r}, {f.ctype}),")
        else:
            lines.append(f"    ({f.name!r}, {f.ctype}, {f.bits}),")
    lines.append("]")
    return lines


def _enum(decl: EnumDecl) -> List[str]:
    lines = [f"# enum {decl.name or '<anonymous>'} ({decl.underlying})"]
    lines += [f"{name} = {value}" for name, value in decl.constants]
    return lines


def render_bindings(
    decls: Declarations,
    *,
    fingerprint: str,
    derive_debug: bool = True,
) -> str:
    """Render *decls* as Python source. Output is a pure function of the inputs."""
    out: List[str] = [
        f"# Generated by {PACKAGE_NAME} {__version__} from the uACPI public headers. Do not edit.",
        f"# Configuration fingerprint: {fingerprint}",
        '"""ctypes declarations for the uACPI public interface."""',
        "",
        "import ctypes",
        "",
        "",
    ]
    if derive_debug:
        out += [_INSPECT_MIXIN, ""]

    if decls.records:
        out += [_section("Records"), ""]
        for rec in decls.records.values():
            out += _record_class(rec, derive_debug)

    out += [_section("Declarations"), ""]
    for kind, payload in decls.items:
        if kind == "constant":
            assert isinstance(payload, ConstantDecl)
            out.append(f"{payload.name} = {payload.value}")
        elif kind == "alias":
            assert isinstance(payload, AliasDecl)
            out.append(f"{payload.name} = {payload.target}")
        elif kind == "enum":
            assert isinstance(payload, EnumDecl)
            out += _enum(payload)
        elif kind == "layout":
            assert isinstance(payload, RecordDecl)
            out += _layout(payload)

    out += ["", "", _section("Functions"), ""]
    out.append("FUNCTIONS = {")
    for fn in decls.functions:
        args = ", ".join(fn.argtypes)
        out.append(f"    {fn.name!r}: ({fn.restype}, [{args}]),")
    out.append("}")
    variadic = sorted(fn.name for fn in decls.functions if fn.variadic)
    if variadic:
        out.append("VARIADIC = frozenset({" + ", ".join(repr(n) for n in variadic) + "})")
    else:
        out.append("VARIADIC = frozenset()")
    out += ["", "", _BIND_FUNCTION]

    return "\n".join(out).rstrip("\n") + "\n"
