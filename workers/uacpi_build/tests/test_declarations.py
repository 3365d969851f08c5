"""Tests for declaration collection and constant evaluation."""
import pytest

from conftest import (
    BAD_ENUM_I,
    SPLIT_DECLARATION_I,
    TYPED_CONSTANTS_I,
    UACPI_HEADERS_I,
    UNKNOWN_TYPE_I,
)
from uacpi_build.core.declarations import (
    AliasDecl,
    CInt,
    ConstantDecl,
    EnumDecl,
    collect_declarations,
    int_literal,
    parse_int_literal,
    py_name,
    sized_type,
)
from uacpi_build.core.ts_parser import parse_header_tu, parse_source
from uacpi_build.errors import BindingError
from uacpi_build.policy.verdict import SurfaceScope


def _collect(project, template=UACPI_HEADERS_I, **kwargs):
    pr = parse_header_tu(project.render(template).encode())
    scope = SurfaceScope.build([str(project.include)], str(project.umbrella))
    return collect_declarations(pr, scope, **kwargs)


def _items(decls, kind):
    return [payload for k, payload in decls.items if k == kind]


class TestRecords:
    def test_named_and_opaque_records(self, project):
        decls = _collect(project)
        assert "acpi_gas" in decls.records
        assert decls.records["acpi_gas"].complete
        opaque = decls.records["uacpi_namespace_node"]
        assert not opaque.complete

    def test_packed(self, project):
        decls = _collect(project)
        assert decls.records["acpi_gas"].packed
        assert not decls.records["uacpi_table"].packed

    def test_anonymous_members(self, project):
        decls = _collect(project)
        data = decls.records["uacpi_object_data"]
        assert data.kind == "union"
        assert data.anonymous == ["_anon_0"]
        nested = decls.records["uacpi_object_data_anon_0"]
        assert [f.name for f in nested.fields] == ["lo", "hi"]

    def test_bitfields(self, project):
        decls = _collect(project)
        fields = decls.records["uacpi_flags"].fields
        assert [(f.name, f.bits) for f in fields] == [("enabled", 1), ("reserved", 31)]

    def test_field_types(self, project):
        decls = _collect(project)
        fields = {f.name: f.ctype for f in decls.records["uacpi_table"].fields}
        assert fields["signature"] == "uacpi_char * 4"
        assert fields["data"] == "uacpi_u8 * 0"
        assert fields["handler"] == "uacpi_handler"
        assert fields["index"] == "uacpi_u64"
        nested = decls.records["uacpi_table_anon_0"]
        assert {f.name: f.ctype for f in nested.fields}["ptr"] == "ctypes.c_void_p"

    def test_foreign_records_kept(self, project):
        """Layouts from system headers still get a class; their typedefs do not."""
        decls = _collect(project)
        assert "__foreign_pair" in decls.records
        assert not any(a.name == "__foreign_pair_t" for a in _items(decls, "alias"))

    def test_layout_precedes_use(self, project):
        decls = _collect(project)
        layouts = [rec.name for rec in _items(decls, "layout")]
        assert layouts.index("uacpi_table_anon_0") < layouts.index("uacpi_table")
        assert layouts.index("uacpi_object_data_anon_0") < layouts.index("uacpi_object_data")


class TestAliases:
    def test_scalar_aliases(self, project):
        aliases = {a.name: a.target for a in _items(_collect(project), "alias")}
        assert aliases["uacpi_u8"] == "ctypes.c_ubyte"
        assert aliases["uacpi_u16"] == "ctypes.c_ushort"
        assert aliases["uacpi_u32"] == "ctypes.c_uint"
        assert aliases["uacpi_u64"] == "ctypes.c_ulonglong"
        assert aliases["uacpi_bool"] == "ctypes.c_bool"
        assert aliases["uacpi_char"] == "ctypes.c_char"
        assert aliases["uacpi_handle"] == "ctypes.c_void_p"

    def test_enum_typedef_uses_underlying(self, project):
        aliases = {a.name: a.target for a in _items(_collect(project), "alias")}
        assert aliases["uacpi_status"] == "ctypes.c_uint"
        assert aliases["uacpi_log_level"] == "ctypes.c_int"

    def test_function_pointer_typedef(self, project):
        aliases = {a.name: a.target for a in _items(_collect(project), "alias")}
        assert aliases["uacpi_handler"] == (
            "ctypes.CFUNCTYPE(uacpi_status, uacpi_handle, ctypes.POINTER(uacpi_namespace_node))"
        )

    def test_linemarkers_inside_declaration(self, project):
        decls = _collect(project, SPLIT_DECLARATION_I)
        aliases = {a.name: a.target for a in _items(decls, "alias")}
        assert aliases["uacpi_bool"] == "ctypes.c_bool"
        assert [f.name for f in decls.functions] == ["uacpi_is_ready"]

    def test_self_named_typedef_skipped(self, project):
        names = [a.name for a in _items(_collect(project), "alias")]
        assert "acpi_gas" not in names
        assert "uacpi_namespace_node" not in names
        assert "size_t" not in names


class TestEnumsAndConstants:
    def test_enumerators(self, project):
        (status,) = [e for e in _items(_collect(project), "enum") if e.name == "uacpi_status"]
        assert status.constants == [
            ("UACPI_STATUS_OK", 0),
            ("UACPI_STATUS_MAPPING_FAILED", 1),
            ("UACPI_STATUS_OUT_OF_MEMORY", 2),
            ("UACPI_STATUS_LAST", 16),
        ]
        assert status.underlying == "ctypes.c_uint"

    def test_negative_enum_is_signed(self, project):
        (level,) = [e for e in _items(_collect(project), "enum") if e.name == "uacpi_log_level"]
        assert level.underlying == "ctypes.c_int"
        assert ("UACPI_LOG_ERROR", -1) in level.constants

    def test_prepend_enum_name(self, project):
        decls = _collect(project, prepend_enum_name=True)
        (status,) = [e for e in _items(decls, "enum") if e.name == "uacpi_status"]
        assert status.constants[0] == ("uacpi_status_UACPI_STATUS_OK", 0)

    def test_macro_constants(self, project):
        constants = {c.name: c.value for c in _items(_collect(project), "constant")}
        assert constants["UACPI_MAX_DEPTH"] == 16
        assert constants["UACPI_MASK"] == -16
        assert constants["UACPI_DERIVED"] == 33

    def test_unevaluable_macros_skipped(self, project):
        constants = {c.name for c in _items(_collect(project), "constant")}
        assert "UACPI_NAME" not in constants
        assert "UACPI_FN_LIKE" not in constants
        assert "UACPI_EMPTY" not in constants

    def test_builtin_and_command_line_macros_not_published(self, project):
        constants = {c.name for c in _items(_collect(project), "constant")}
        assert "__STDC__" not in constants
        assert "UACPI_SIZED_FREES" not in constants
        assert "__FOREIGN_LIMIT" not in constants

    def test_unevaluable_enumerator_is_an_error(self, project):
        with pytest.raises(BindingError) as exc:
            _collect(project, BAD_ENUM_I)
        assert exc.value.code == "E_BINDING"
        assert exc.value.context["origin"].endswith("uacpi/types.h")


class TestFunctions:
    def _functions(self, project):
        return {f.name: f for f in _collect(project).functions}

    def test_prototypes(self, project):
        fns = self._functions(project)
        init = fns["uacpi_initialize"]
        assert init.restype == "uacpi_status"
        assert init.argtypes == ["uacpi_u64"]
        assert not init.variadic

    def test_pointer_return_and_unnamed_param(self, project):
        fn = self._functions(project)["uacpi_status_to_string"]
        assert fn.restype == "ctypes.POINTER(uacpi_char)"
        assert fn.argtypes == ["uacpi_status"]

    def test_void(self, project):
        fns = self._functions(project)
        assert fns["uacpi_is_ready"].argtypes == []
        assert fns["uacpi_kernel_free"].restype == "None"
        assert fns["uacpi_kernel_free"].argtypes == ["ctypes.c_void_p", "ctypes.c_size_t"]

    def test_variadic(self, project):
        fn = self._functions(project)["uacpi_log"]
        assert fn.variadic
        assert fn.argtypes == ["uacpi_log_level", "ctypes.POINTER(uacpi_char)"]

    def test_function_pointer_parameter(self, project):
        fn = self._functions(project)["uacpi_install_handler"]
        assert fn.argtypes == ["ctypes.POINTER(uacpi_namespace_node)", "uacpi_handler"]

    def test_excluded(self, project):
        decls = _collect(project)
        names = [f.name for f in decls.functions]
        assert "uacpi_helper" not in names
        assert "__foreign_function" not in names
        assert names.count("uacpi_initialize") == 1

    def test_unknown_type_is_an_error(self, project):
        with pytest.raises(BindingError) as exc:
            _collect(project, UNKNOWN_TYPE_I)
        assert "mystery_t" in str(exc.value)


class TestHelpers:
    @pytest.mark.parametrize("text, value", [
        ("0", 0),
        ("42", 42),
        ("0x1F", 31),
        ("0X10u", 16),
        ("010", 8),
        ("0b101", 5),
        ("100ULL", 100),
        ("1'000", 1000),
        ("-1", -1),
        ("+5", 5),
        ("-0x10", -16),
    ])
    def test_parse_int_literal(self, text, value):
        assert parse_int_literal(text) == value

    @pytest.mark.parametrize("text", ["1.5", "abc", "0x", "09"])
    def test_parse_int_literal_rejects(self, text):
        assert parse_int_literal(text) is None

    @pytest.mark.parametrize("text, expr", [
        ("unsigned", "ctypes.c_uint"),
        ("long", "ctypes.c_long"),
        ("unsigned long long int", "ctypes.c_ulonglong"),
        ("signed char", "ctypes.c_byte"),
        ("short int", "ctypes.c_short"),
        ("long double", "ctypes.c_longdouble"),
    ])
    def test_sized_type(self, text, expr):
        assert sized_type(text).expr == expr

    def test_py_name(self):
        assert py_name("class") == "class_"
        assert py_name("bind") == "bind_"
        assert py_name("uacpi_u8") == "uacpi_u8"

    def test_counts(self, project):
        counts = _collect(project).counts()
        assert counts["functions"] == 7
        assert counts["enums"] == 2
        assert counts["opaque_records"] == 1
        assert counts["constants"] == 3


class TestIntegerTypes:
    """Constants follow C's integer types, not unbounded arithmetic."""

    def _constants(self, project):
        return {c.name: c.value for c in _items(_collect(project, TYPED_CONSTANTS_I), "constant")}

    def test_unsigned_complement(self, project):
        constants = self._constants(project)
        assert constants["UACPI_ALL_ONES"] == 0xFFFFFFFF
        assert constants["UACPI_ALL_ONES_64"] == 0xFFFFFFFFFFFFFFFF

    def test_casts_to_typedefs(self, project):
        constants = self._constants(project)
        assert constants["UACPI_U8_MAX"] == 255
        assert constants["UACPI_WORD_MAX"] == 0xFFFF
        assert constants["UACPI_U8_WRAP"] == 255

    def test_narrow_operands_promote_to_int(self, project):
        assert self._constants(project)["UACPI_SHIFTED_U8"] == 256

    def test_usual_arithmetic_conversions(self, project):
        constants = self._constants(project)
        assert constants["UACPI_HIGH_BIT"] == 0x80000000
        assert constants["UACPI_MIXED"] == 0xFFFFFFFF

    def test_negative_literals(self, project):
        constants = self._constants(project)
        assert constants["UACPI_NEGATIVE"] == -1
        assert constants["UACPI_NEGATIVE_HEX"] == -16

    def test_hex_literal_takes_unsigned_type(self, project):
        constants = self._constants(project)
        assert constants["UACPI_BIG_HEX"] == 0xFFFFFFFF
        assert constants["UACPI_BIG_HEX_NOT"] == 0

    def test_enumerators(self, project):
        (sign,) = [e for e in _items(_collect(project, TYPED_CONSTANTS_I), "enum")]
        assert sign.constants == [
            ("UACPI_SIGN_NEGATIVE", -1),
            ("UACPI_SIGN_ZERO", 0),
            ("UACPI_SIGN_ALL_ONES", 0xFFFFFFFF),
        ]

    def test_negative_literal_grammar(self):
        """Older grammars give a unary minus, newer ones a signed literal."""
        root = parse_source(b"int x = -1;")
        value = root.named_children[0].child_by_field_name("declarator").child_by_field_name("value")
        assert value.type in ("number_literal", "unary_expression")

    @pytest.mark.parametrize("text, expected", [
        ("0", CInt(0, 32, False)),
        ("2147483647", CInt(2147483647, 32, False)),
        ("2147483648", CInt(2147483648, 64, False)),
        ("0x7FFFFFFF", CInt(0x7FFFFFFF, 32, False)),
        ("0xFFFFFFFF", CInt(0xFFFFFFFF, 32, True)),
        ("0x100000000", CInt(0x100000000, 64, False)),
        ("1u", CInt(1, 32, True)),
        ("1ul", CInt(1, 64, True)),
        ("1LL", CInt(1, 64, False)),
        ("-1", CInt(-1, 32, False)),
        ("-1u", CInt(0xFFFFFFFF, 32, True)),
    ])
    def test_int_literal_types(self, text, expected):
        assert int_literal(text) == expected

    def test_convert(self):
        assert CInt(-1).convert(8, True) == CInt(255, 8, True)
        assert CInt(255).convert(8, False) == CInt(-1, 8, False)
        assert CInt(2).convert(1, True) == CInt(1, 1, True)
        assert CInt(300, 16, True).promote() == CInt(300, 32, False)


class TestPayloadTypes:
    def test_item_payloads(self, project):
        decls = _collect(project)
        for kind, payload in decls.items:
            expected = {
                "constant": ConstantDecl,
                "alias": AliasDecl,
                "enum": EnumDecl,
            }.get(kind)
            if expected is not None:
                assert isinstance(payload, expected)
