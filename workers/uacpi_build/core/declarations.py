"""
Declaration index — top-level C declarations → ctypes-ready records.

Walks the root of the preprocessed header CST in source order and extracts:
  - records (struct/union layouts, opaque tags, nested anonymous members)
  - typedef aliases (incl. function-pointer typedefs)
  - enums (enumerator constants + underlying integer type)
  - integer object-like macros (kept by ``cc -dD``)
  - function prototypes

Types are resolved to Python expressions over ``ctypes`` while walking.
Only declarations whose origin lies in the exposed surface are published;
record classes are kept whatever their origin so every layout referenced
from the surface exists.
"""
from __future__ import annotations

import keyword
import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Set, Tuple

from tree_sitter import Node

from uacpi_build.core.ts_parser import ParseResult, node_text, parse_source
from uacpi_build.errors import BindingError
from uacpi_build.policy.verdict import SurfaceScope

logger = logging.getLogger(__name__)


# ── Type model ───────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class CType:
    """A resolved C type as a Python expression."""
    expr: str
    kind: str = "value"              # value | void | function | array
    element: Optional[str] = None    # array element expression


VOID = CType("None", "void")


def _ct(name: str) -> CType:
    return CType(f"ctypes.{name}")


PRIMITIVES: Dict[str, CType] = {
    "void": VOID,
    "char": _ct("c_char"),
    "bool": _ct("c_bool"),
    "_Bool": _ct("c_bool"),
    "int": _ct("c_int"),
    "float": _ct("c_float"),
    "double": _ct("c_double"),
    "size_t": _ct("c_size_t"),
    "ssize_t": _ct("c_ssize_t"),
    "ptrdiff_t": _ct("c_ssize_t"),
    "intptr_t": _ct("c_ssize_t"),
    "uintptr_t": _ct("c_size_t"),
    "int8_t": _ct("c_int8"),
    "int16_t": _ct("c_int16"),
    "int32_t": _ct("c_int32"),
    "int64_t": _ct("c_int64"),
    "uint8_t": _ct("c_uint8"),
    "uint16_t": _ct("c_uint16"),
    "uint32_t": _ct("c_uint32"),
    "uint64_t": _ct("c_uint64"),
    "char16_t": _ct("c_uint16"),
    "char32_t": _ct("c_uint32"),
    "wchar_t": _ct("c_wchar"),
    "va_list": _ct("c_void_p"),
    "__builtin_va_list": _ct("c_void_p"),
    "__gnuc_va_list": _ct("c_void_p"),
    "nullptr_t": _ct("c_void_p"),
}

# Names the generated module defines itself.
RESERVED_NAMES = {"ctypes", "bind", "FUNCTIONS", "VARIADIC", "_Inspectable"}


def py_name(name: str) -> str:
    """C identifier → importable Python identifier."""
    if keyword.iskeyword(name) or name in RESERVED_NAMES:
        return name + "_"
    return name


def sized_type(text: str) -> CType:
    """``unsigned long long``, ``short int``, ``signed char`` … → ctypes."""
    tokens = text.split()
    unsigned = "unsigned" in tokens
    longs = tokens.count("long")
    if "char" in tokens:
        if unsigned:
            return _ct("c_ubyte")
        return _ct("c_byte") if "signed" in tokens else _ct("c_char")
    if "short" in tokens:
        return _ct("c_ushort") if unsigned else _ct("c_short")
    if "double" in tokens:
        return _ct("c_longdouble") if longs else _ct("c_double")
    if longs >= 2:
        return _ct("c_ulonglong") if unsigned else _ct("c_longlong")
    if longs == 1:
        return _ct("c_ulong") if unsigned else _ct("c_long")
    return _ct("c_uint") if unsigned else _ct("c_int")


def pointer_of(ctype: CType) -> CType:
    if ctype.kind == "void":
        return _ct("c_void_p")
    if ctype.kind == "function":
        # CFUNCTYPE instances are already function pointers.
        return CType(ctype.expr)
    return CType(f"ctypes.POINTER({ctype.expr})")


def array_of(ctype: CType, length: int) -> CType:
    return CType(f"{ctype.expr} * {length}", "array", element=ctype.expr)


def decay(ctype: CType) -> CType:
    """Parameter adjustment: arrays and functions become pointers."""
    if ctype.kind == "array":
        return CType(f"ctypes.POINTER({ctype.element})")
    if ctype.kind == "function":
        return CType(ctype.expr)
    return ctype


# ── Declarations ─────────────────────────────────────────────────────────────

@dataclass
class FieldDecl:
    name: str
    ctype: str
    bits: Optional[int] = None


@dataclass
class RecordDecl:
    """One struct/union class; ``fields is None`` means opaque."""
    name: str
    kind: str                        # struct | union
    origin: str = ""
    fields: Optional[List[FieldDecl]] = None
    packed: bool = False
    anonymous: List[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return self.fields is not None


@dataclass(frozen=True)
class AliasDecl:
    name: str
    target: str
    origin: str


@dataclass
class EnumDecl:
    name: Optional[str]
    underlying: str
    constants: List[Tuple[str, int]]
    origin: str


@dataclass(frozen=True)
class ConstantDecl:
    name: str
    value: int
    origin: str


@dataclass
class FunctionDecl:
    name: str
    restype: str
    argtypes: List[str]
    variadic: bool
    origin: str


@dataclass
class Declarations:
    """Everything the emitter needs, in dependency-safe order."""
    records: Dict[str, RecordDecl] = field(default_factory=dict)
    # ("constant" | "enum" | "alias" | "layout", payload) in source order
    items: List[Tuple[str, object]] = field(default_factory=list)
    functions: List[FunctionDecl] = field(default_factory=list)

    def counts(self) -> Dict[str, int]:
        kinds = [k for k, _ in self.items]
        return {
            "records": len(self.records),
            "opaque_records": sum(1 for r in self.records.values() if not r.complete),
            "aliases": kinds.count("alias"),
            "enums": kinds.count("enum"),
            "constants": kinds.count("constant"),
            "functions": len(self.functions),
        }


class _Unresolvable(Exception):
    """A declaration could not be mapped; fatal only inside the surface."""


# ── Constant expressions ─────────────────────────────────────────────────────

# tree-sitter-c >= 0.24 folds a leading sign into the number_literal token.
_INT_RE = re.compile(r"^([-+]?)(0[xX][0-9a-fA-F]+|0[bB][01]+|0[0-7]*|[1-9][0-9]*)([uUlLzZ]*)$")

_CHAR_ESCAPES = {
    "\\n": 10, "\\t": 9, "\\r": 13, "\\0": 0, "\\\\": 92,
    "\\'": 39, '\\"': 34, "\\a": 7, "\\b": 8, "\\f": 12, "\\v": 11,
}

INT_BITS = 32
LONG_BITS = 64                       # LP64

# ctypes expression → (bits, unsigned) for the integer types a cast can name.
INTEGER_TYPES: Dict[str, Tuple[int, bool]] = {
    "ctypes.c_bool": (1, True),
    "ctypes.c_char": (8, False),
    "ctypes.c_byte": (8, False),
    "ctypes.c_ubyte": (8, True),
    "ctypes.c_int8": (8, False),
    "ctypes.c_uint8": (8, True),
    "ctypes.c_short": (16, False),
    "ctypes.c_ushort": (16, True),
    "ctypes.c_int16": (16, False),
    "ctypes.c_uint16": (16, True),
    "ctypes.c_int": (32, False),
    "ctypes.c_uint": (32, True),
    "ctypes.c_int32": (32, False),
    "ctypes.c_uint32": (32, True),
    "ctypes.c_wchar": (32, False),
    "ctypes.c_long": (LONG_BITS, False),
    "ctypes.c_ulong": (LONG_BITS, True),
    "ctypes.c_ssize_t": (LONG_BITS, False),
    "ctypes.c_size_t": (LONG_BITS, True),
    "ctypes.c_longlong": (64, False),
    "ctypes.c_ulonglong": (64, True),
    "ctypes.c_int64": (64, False),
    "ctypes.c_uint64": (64, True),
}


@dataclass(frozen=True)
class CInt:
    """An integer constant together with its C type."""
    value: int
    bits: int = INT_BITS
    unsigned: bool = False

    def convert(self, bits: int, unsigned: bool) -> CInt:
        """Two's-complement conversion; a 1-bit target is ``_Bool``."""
        if bits == 1:
            return CInt(int(self.value != 0), 1, True)
        value = self.value & ((1 << bits) - 1)
        if not unsigned and value >> (bits - 1):
            value -= 1 << bits
        return CInt(value, bits, unsigned)

    def promote(self) -> CInt:
        if self.bits < INT_BITS:
            return CInt(self.value, INT_BITS, False)
        return self


def _common_type(a: CInt, b: CInt) -> Tuple[int, bool]:
    """Usual arithmetic conversions for two integer operands."""
    a, b = a.promote(), b.promote()
    if a.bits == b.bits:
        return a.bits, a.unsigned or b.unsigned
    wider = a if a.bits > b.bits else b
    return wider.bits, wider.unsigned


def int_literal(text: str) -> Optional[CInt]:
    """Integer literal → value typed by its suffix and magnitude."""
    m = _INT_RE.match(text.replace("'", ""))
    if m is None:
        return None
    sign, digits, suffix = m.groups()
    if digits[:2] in ("0x", "0X"):
        value = int(digits[2:], 16)
    elif digits[:2] in ("0b", "0B"):
        value = int(digits[2:], 2)
    elif digits.startswith("0"):
        value = int(digits, 8)
    else:
        value = int(digits)

    suffix = suffix.lower()
    widths = [LONG_BITS] if ("l" in suffix or "z" in suffix) else [INT_BITS, LONG_BITS]
    if "u" in suffix:
        candidates = [(w, True) for w in widths]
    elif not digits.startswith("0"):
        candidates = [(w, False) for w in widths]
    else:
        # Hex, octal and binary literals may also take the unsigned type.
        candidates = [(w, u) for w in widths for u in (False, True)]
    for bits, unsigned in candidates:
        if value < 1 << (bits if unsigned else bits - 1):
            break

    literal = CInt(value, bits, unsigned)
    if sign == "-":
        literal = CInt(-value).convert(bits, unsigned)
    return literal


def parse_int_literal(text: str) -> Optional[int]:
    literal = int_literal(text)
    return literal.value if literal is not None else None


def _c_div(a: int, b: int) -> int:
    q = abs(a) // abs(b)
    return q if (a >= 0) == (b >= 0) else -q


class _Evaluator:
    """
    C integer constant-expression evaluation over tree-sitter nodes.

    Every value carries its C type, so ``~0u`` is 4294967295 and
    ``(uacpi_u8)-1`` is 255. *integer_type* maps a type node, or an
    identifier naming a typedef, to ``(bits, unsigned)``; None means the
    type is not an integer type and the cast cannot be evaluated.
    """

    def __init__(
        self,
        constants: Dict[str, CInt],
        integer_type: Callable[[Node], Optional[Tuple[int, bool]]],
    ):
        self.constants = constants
        self.integer_type = integer_type

    def eval(self, node: Optional[Node]) -> Optional[CInt]:
        if node is None:
            return None
        t = node.type
        if t == "number_literal":
            return int_literal(node_text(node))
        if t == "char_literal":
            return self._char(node_text(node))
        if t == "identifier":
            return self.constants.get(node_text(node))
        if t == "parenthesized_expression":
            inner = _sole_child(node)
            return self.eval(inner) if inner is not None else None
        if t == "cast_expression":
            return self._cast(
                self._descriptor_type(node.child_by_field_name("type")),
                self.eval(node.child_by_field_name("value")),
            )
        if t == "call_expression":
            # (T)(x) with T unknown to the grammar parses as a call.
            args = node.child_by_field_name("arguments")
            arg = _sole_child(args) if args is not None else None
            target = self._parenthesized_type(node.child_by_field_name("function"))
            if target is None or arg is None:
                return None
            return self._cast(target, self.eval(arg))
        if t == "unary_expression":
            op = node_text(node.child_by_field_name("operator"))
            return self._unary(op, self.eval(node.child_by_field_name("argument")))
        if t == "binary_expression":
            return self._binary(node)
        if t == "conditional_expression":
            cond = self.eval(node.child_by_field_name("condition"))
            if cond is None:
                return None
            branch = "consequence" if cond.value else "alternative"
            return self.eval(node.child_by_field_name(branch))
        return None

    def _char(self, text: str) -> Optional[CInt]:
        body = text[1:-1] if len(text) >= 2 and text[0] == "'" and text[-1] == "'" else None
        if body is None:
            return None
        if len(body) == 1:
            return CInt(ord(body))
        code = _CHAR_ESCAPES.get(body)
        return CInt(code) if code is not None else None

    def _descriptor_type(self, descriptor: Optional[Node]) -> Optional[Tuple[int, bool]]:
        if descriptor is None or descriptor.child_by_field_name("declarator") is not None:
            return None
        type_node = descriptor.child_by_field_name("type")
        return self.integer_type(type_node) if type_node is not None else None

    def _parenthesized_type(self, node: Optional[Node]) -> Optional[Tuple[int, bool]]:
        if node is None or node.type != "parenthesized_expression":
            return None
        inner = _sole_child(node)
        if inner is None or inner.type != "identifier" or node_text(inner) in self.constants:
            return None
        return self.integer_type(inner)

    @staticmethod
    def _cast(target: Optional[Tuple[int, bool]], value: Optional[CInt]) -> Optional[CInt]:
        if target is None or value is None:
            return None
        return value.convert(*target)

    @staticmethod
    def _unary(op: str, value: Optional[CInt]) -> Optional[CInt]:
        if value is None:
            return None
        if op == "!":
            return CInt(int(not value.value))
        value = value.promote()
        if op == "-":
            return CInt(-value.value).convert(value.bits, value.unsigned)
        if op == "+":
            return value
        if op == "~":
            return CInt(~value.value).convert(value.bits, value.unsigned)
        return None

    def _binary(self, node: Node) -> Optional[CInt]:
        op = node_text(node.child_by_field_name("operator"))
        left_node = node.child_by_field_name("left")
        right_node = node.child_by_field_name("right")

        if op in ("-", "+"):
            # (T)-x with T unknown to the grammar parses as a subtraction.
            target = self._parenthesized_type(left_node)
            if target is not None:
                return self._cast(target, self._unary(op, self.eval(right_node)))

        left = self.eval(left_node)
        if op in ("&&", "||") and left is not None:
            if op == "&&" and not left.value:
                return CInt(0)
            if op == "||" and left.value:
                return CInt(1)
        right = self.eval(right_node)
        if left is None or right is None:
            return None
        if op in ("&&", "||"):
            return CInt(int(bool(right.value)))
        if op in ("<<", ">>"):
            if right.value < 0:
                return None
            base = left.promote()
            shifted = base.value << right.value if op == "<<" else base.value >> right.value
            return CInt(shifted).convert(base.bits, base.unsigned)

        bits, unsigned = _common_type(left, right)
        a = left.convert(bits, unsigned).value
        b = right.convert(bits, unsigned).value
        comparisons = {
            "==": a == b, "!=": a != b,
            "<": a < b, "<=": a <= b,
            ">": a > b, ">=": a >= b,
        }
        if op in comparisons:
            return CInt(int(comparisons[op]))
        if op in ("/", "%"):
            if b == 0:
                return None
            q = _c_div(a, b)
            result = q if op == "/" else a - b * q
        elif op == "+":
            result = a + b
        elif op == "-":
            result = a - b
        elif op == "*":
            result = a * b
        elif op == "&":
            result = a & b
        elif op == "|":
            result = a | b
        elif op == "^":
            result = a ^ b
        else:
            return None
        return CInt(result).convert(bits, unsigned)


def _sole_child(node: Node) -> Optional[Node]:
    inner = [c for c in node.named_children if c.type != "comment"]
    return inner[0] if len(inner) == 1 else None


# ── Collector ────────────────────────────────────────────────────────────────

_LEAF_DECLARATORS = {"identifier", "field_identifier", "type_identifier", "primitive_type"}


class _Collector:
    def __init__(self, parse_result: ParseResult, scope: SurfaceScope, prepend_enum_name: bool):
        self.pr = parse_result
        self.scope = scope
        self.prepend_enum_name = prepend_enum_name

        self.out = Declarations()
        self.constants: Dict[str, CInt] = {}
        self.typedefs: Dict[str, CType] = {}
        self.alias_targets: Dict[str, str] = {}
        self.enum_tags: Dict[str, CType] = {}
        self.tags: Dict[Tuple[str, str], str] = {}
        self.published: Set[str] = set()
        self.function_names: Set[str] = set()
        self.evaluator = _Evaluator(self.constants, self.integer_type)
        self._anon_count = 0

        self.origin = ""
        self.in_scope = False

    # ── driver ───────────────────────────────────────────────────────────

    def run(self) -> Declarations:
        handlers = {
            "preproc_def": self._macro,
            "type_definition": self._typedef,
            "declaration": self._declaration,
            "struct_specifier": self._specifier,
            "union_specifier": self._specifier,
            "enum_specifier": self._specifier,
        }
        for node in self.pr.root.named_children:
            handler = handlers.get(node.type)
            if handler is None:
                continue
            line = node.start_point[0]
            self.origin = self.pr.origins.origin_of(line)
            self.in_scope = self.scope.contains(self.origin)
            try:
                handler(node)
            except _Unresolvable as e:
                if self.in_scope:
                    raise BindingError(
                        f"Cannot map declaration to ctypes: {e}",
                        hint="Check the header for a construct the binding generator does not support.",
                        context={
                            "operation": "collect_declarations",
                            "origin": self.origin,
                            "line": str(line + 1),
                            "text": node_text(node)[:200],
                        },
                    ) from None
                logger.debug("Skipping foreign declaration at %s: %s", self.origin, e)
        return self.out

    def _publish(self, kind: str, name: str, payload: object) -> bool:
        if name in self.published:
            return False
        self.published.add(name)
        self.out.items.append((kind, payload))
        return True

    # ── macros ───────────────────────────────────────────────────────────

    def _macro(self, node: Node) -> None:
        name = node_text(node.child_by_field_name("name"))
        value_text = node_text(node.child_by_field_name("value")).strip()
        if not name or not value_text:
            return
        value = self.eval_text(value_text)
        if value is None:
            return
        self.constants[name] = value
        if self.in_scope and py_name(name) not in self.published:
            self._publish("constant", py_name(name), ConstantDecl(py_name(name), value.value, self.origin))

    def eval_text(self, text: str) -> Optional[CInt]:
        direct = int_literal(text)
        if direct is not None:
            return direct
        root = parse_source(f"int __uacpi_value = {text};".encode("utf-8"))
        if root.has_error:
            return None
        decl = root.named_children[0] if root.named_children else None
        init = decl.child_by_field_name("declarator") if decl is not None else None
        if init is None or init.type != "init_declarator":
            return None
        return self.evaluator.eval(init.child_by_field_name("value"))

    # ── top-level forms ──────────────────────────────────────────────────

    def _specifier(self, node: Node) -> None:
        self.base_type(node)

    def _typedef(self, node: Node) -> None:
        declarators = node.children_by_field_name("declarator")
        first = declarators[0] if declarators else None
        ctx = node_text(first) if first is not None and first.type == "type_identifier" else None
        base = self.base_type(node.child_by_field_name("type"), ctx_name=ctx)

        for decl in declarators:
            ctype, name = self.apply_declarator(base, decl)
            if not name:
                continue
            if name in PRIMITIVES:
                continue
            alias = py_name(name)
            if self.in_scope and ctype.kind != "void" and ctype.expr != alias:
                if self._publish("alias", alias, AliasDecl(alias, ctype.expr, self.origin)):
                    self.typedefs[name] = CType(alias, ctype.kind, ctype.element)
                    self.alias_targets[alias] = ctype.expr
                    continue
            self.typedefs.setdefault(name, ctype)

    def _declaration(self, node: Node) -> None:
        storage = {node_text(c) for c in node.children if c.type == "storage_class_specifier"}
        base = self.base_type(node.child_by_field_name("type"))
        if "static" in storage:
            return

        for decl in node.children_by_field_name("declarator"):
            parts = self._function_parts(base, decl)
            if parts is None:
                continue
            restype, name, params = parts
            if not self.in_scope or name in self.function_names:
                continue
            argtypes, variadic = self.parameters(params)
            self.function_names.add(name)
            self.out.functions.append(FunctionDecl(
                name=name,
                restype=restype.expr,
                argtypes=argtypes,
                variadic=variadic,
                origin=self.origin,
            ))

    def _function_parts(self, ctype: CType, decl: Node) -> Optional[Tuple[CType, str, Node]]:
        """Return (return type, name, parameter list) if *decl* declares a function."""
        node: Optional[Node] = decl
        while node is not None:
            t = node.type
            if t == "function_declarator":
                inner = node.child_by_field_name("declarator")
                params = node.child_by_field_name("parameters")
                if inner is not None and inner.type == "identifier":
                    return ctype, node_text(inner), params
                ctype = self.function_of(ctype, params)
                node = inner
            elif t == "pointer_declarator":
                ctype = pointer_of(ctype)
                node = node.child_by_field_name("declarator")
            elif t in ("parenthesized_declarator", "attributed_declarator"):
                node = self._inner_declarator(node)
            else:
                return None
        return None

    # ── types ────────────────────────────────────────────────────────────

    def base_type(self, node: Optional[Node], ctx_name: Optional[str] = None) -> CType:
        if node is None:
            raise _Unresolvable("missing type")
        t = node.type
        text = node_text(node)
        if t == "primitive_type":
            if text not in PRIMITIVES:
                raise _Unresolvable(f"unknown primitive type {text}")
            return PRIMITIVES[text]
        if t == "sized_type_specifier":
            return sized_type(text)
        if t == "type_identifier":
            return self.lookup_typedef(text)
        if t in ("struct_specifier", "union_specifier"):
            return CType(self.record(node, ctx_name))
        if t == "enum_specifier":
            return self.enum(node, ctx_name)
        raise _Unresolvable(f"unsupported type specifier {t}")

    def lookup_typedef(self, name: str) -> CType:
        if name in self.typedefs:
            return self.typedefs[name]
        if name in PRIMITIVES:
            return PRIMITIVES[name]
        raise _Unresolvable(f"unknown type name {name}")

    def integer_type(self, node: Node) -> Optional[Tuple[int, bool]]:
        """(bits, unsigned) of an integer type node or typedef name, else None."""
        if node.type in ("struct_specifier", "union_specifier"):
            return None
        try:
            if node.type == "identifier":
                ctype = self.lookup_typedef(node_text(node))
            else:
                ctype = self.base_type(node)
        except _Unresolvable:
            return None
        expr = ctype.expr
        seen: Set[str] = set()
        while expr in self.alias_targets and expr not in seen:
            seen.add(expr)
            expr = self.alias_targets[expr]
        return INTEGER_TYPES.get(expr)

    def apply_declarator(self, base: CType, decl: Optional[Node]) -> Tuple[CType, Optional[str]]:
        """Apply a (possibly abstract) declarator outside-in to *base*."""
        ctype = base
        node = decl
        while node is not None:
            t = node.type
            if t in _LEAF_DECLARATORS:
                return ctype, node_text(node)
            if t in ("pointer_declarator", "abstract_pointer_declarator"):
                ctype = pointer_of(ctype)
                node = node.child_by_field_name("declarator")
            elif t in ("array_declarator", "abstract_array_declarator"):
                size_node = node.child_by_field_name("size")
                if size_node is None:
                    length = 0
                else:
                    size = self.evaluator.eval(size_node)
                    if size is None:
                        raise _Unresolvable(f"array size {node_text(size_node)}")
                    length = size.value
                ctype = array_of(ctype, length)
                node = node.child_by_field_name("declarator")
            elif t in ("function_declarator", "abstract_function_declarator"):
                ctype = self.function_of(ctype, node.child_by_field_name("parameters"))
                node = node.child_by_field_name("declarator")
            elif t in ("parenthesized_declarator", "abstract_parenthesized_declarator",
                       "attributed_declarator"):
                node = self._inner_declarator(node)
            else:
                raise _Unresolvable(f"unsupported declarator {t}")
        return ctype, None

    @staticmethod
    def _inner_declarator(node: Node) -> Optional[Node]:
        for child in node.named_children:
            if child.type.endswith("declarator") or child.type in _LEAF_DECLARATORS:
                return child
        return None

    def function_of(self, restype: CType, params: Optional[Node]) -> CType:
        argtypes, _ = self.parameters(params)
        args = ", ".join([restype.expr, *argtypes])
        return CType(f"ctypes.CFUNCTYPE({args})", "function")

    def parameters(self, params: Optional[Node]) -> Tuple[List[str], bool]:
        argtypes: List[str] = []
        variadic = False
        if params is None:
            return argtypes, variadic
        for child in params.children:
            if child.type in ("variadic_parameter", "..."):
                variadic = True
                continue
            if child.type != "parameter_declaration":
                continue
            base = self.base_type(child.child_by_field_name("type"))
            decl = child.child_by_field_name("declarator")
            ctype, _ = self.apply_declarator(base, decl)
            if ctype.kind == "void":
                continue
            argtypes.append(decay(ctype).expr)
        return argtypes, variadic

    # ── records ──────────────────────────────────────────────────────────

    def _anon_name(self, kind: str) -> str:
        self._anon_count += 1
        return f"_anon_{kind}_{self._anon_count}"

    def _record_class(self, kind: str, tag: Optional[str], ctx_name: Optional[str]) -> str:
        if tag is not None and (kind, tag) in self.tags:
            return self.tags[(kind, tag)]
        name = py_name(tag or ctx_name or self._anon_name(kind))
        while name in self.out.records:
            name = f"{name}_{kind}"
        self.out.records[name] = RecordDecl(name=name, kind=kind, origin=self.origin)
        if tag is not None:
            self.tags[(kind, tag)] = name
        return name

    def record(self, node: Node, ctx_name: Optional[str] = None) -> str:
        kind = "union" if node.type == "union_specifier" else "struct"
        tag_node = node.child_by_field_name("name")
        tag = node_text(tag_node) if tag_node is not None else None
        body = node.child_by_field_name("body")
        name = self._record_class(kind, tag, ctx_name)

        rec = self.out.records[name]
        if body is None or rec.complete:
            return name

        holders = [node]
        if node.parent is not None and node.parent.type in ("declaration", "type_definition"):
            holders.append(node.parent)
        attributes = " ".join(
            node_text(c) for h in holders for c in h.children if c.type == "attribute_specifier"
        )
        rec.packed = "packed" in attributes
        rec.origin = self.origin
        rec.fields = self._fields(name, body, rec)
        self.out.items.append(("layout", rec))
        return name

    def _fields(self, owner: str, body: Node, rec: RecordDecl) -> List[FieldDecl]:
        fields: List[FieldDecl] = []
        anon_index = 0
        for child in body.named_children:
            if child.type != "field_declaration":
                continue
            type_node = child.child_by_field_name("type")
            declarators = child.children_by_field_name("declarator")

            if not declarators:
                if type_node is not None and type_node.type in ("struct_specifier", "union_specifier") \
                        and type_node.child_by_field_name("body") is not None:
                    member = f"_anon_{anon_index}"
                    anon_index += 1
                    nested = self.record(type_node, ctx_name=f"{owner}{member}")
                    fields.append(FieldDecl(member, nested))
                    rec.anonymous.append(member)
                continue

            first_name = self._declarator_name(declarators[0])
            base = self.base_type(type_node, ctx_name=f"{owner}_{first_name}" if first_name else None)
            bits = None
            for clause in child.children:
                if clause.type == "bitfield_clause":
                    expr = clause.named_children[0] if clause.named_children else None
                    width = self.evaluator.eval(expr)
                    if width is None:
                        raise _Unresolvable(f"bit-field width in {owner}")
                    bits = width.value
            for decl in declarators:
                ctype, name = self.apply_declarator(base, decl)
                if not name or ctype.kind in ("void", "function"):
                    continue
                fields.append(FieldDecl(name, ctype.expr, bits))
        return fields

    def _declarator_name(self, decl: Optional[Node]) -> Optional[str]:
        node = decl
        while node is not None:
            if node.type in _LEAF_DECLARATORS:
                return node_text(node)
            inner = node.child_by_field_name("declarator")
            node = inner if inner is not None else self._inner_declarator(node)
        return None

    # ── enums ────────────────────────────────────────────────────────────

    def enum(self, node: Node, ctx_name: Optional[str] = None) -> CType:
        tag_node = node.child_by_field_name("name")
        tag = node_text(tag_node) if tag_node is not None else None
        body = node.child_by_field_name("body")
        if body is None:
            return self.enum_tags.get(tag or "", _ct("c_int"))

        values: List[Tuple[str, int]] = []
        current = -1
        for enumerator in body.named_children:
            if enumerator.type != "enumerator":
                continue
            const = node_text(enumerator.child_by_field_name("name"))
            value_node = enumerator.child_by_field_name("value")
            if value_node is None:
                current += 1
                typed = CInt(current)
            else:
                typed = self.evaluator.eval(value_node)
                if typed is None:
                    raise _Unresolvable(f"enumerator {const} = {node_text(value_node)}")
                current = typed.value
            self.constants[const] = typed
            values.append((const, current))

        underlying = _ct("c_int") if any(v < 0 for _, v in values) else _ct("c_uint")
        if tag is not None:
            self.enum_tags[tag] = underlying

        if self.in_scope:
            enum_name = tag or ctx_name
            published: List[Tuple[str, int]] = []
            for const, value in values:
                name = f"{enum_name}_{const}" if self.prepend_enum_name and enum_name else const
                name = py_name(name)
                if name in self.published:
                    continue
                self.published.add(name)
                published.append((name, value))
            self.out.items.append(("enum", EnumDecl(enum_name, underlying.expr, published, self.origin)))
        return underlying


# ── Public API ───────────────────────────────────────────────────────────────

def collect_declarations(
    parse_result: ParseResult,
    scope: SurfaceScope,
    prepend_enum_name: bool = False,
) -> Declarations:
    """
    Index every top-level declaration of a parsed header set.

    Raises
    ------
    BindingError
        A declaration inside the exposed surface cannot be mapped
        (unknown type name, non-constant array size or enumerator, …).
    """
    return _Collector(parse_result, scope, prepend_enum_name).run()
