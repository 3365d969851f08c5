"""
Test fixtures for uacpi_build.

Provides sample preprocessed headers (mimic ``clang -E -dD`` output with
linemarkers), a fake command runner standing in for git / cc / ar, and a
project layout under tmp_path.
"""
from __future__ import annotations

import textwrap
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

import pytest

from uacpi_build.core.command import CommandResult
from uacpi_build.policy.features import Feature
from uacpi_build.policy.profile import BuildConfiguration


# ── Sample preprocessed headers ─────────────────────────────────────────────
#
# {umbrella} and {include} are filled in with the fixture project's paths so
# the linemarkers point at the exposed surface.

UACPI_HEADERS_I = textwrap.dedent("""\
    # 1 "{umbrella}"
    # 1 "<built-in>" 1
    # 1 "<built-in>" 3
    #define __STDC__ 1
    #define __INT_MAX__ 2147483647
    # 1 "<command-line>" 1
    #define UACPI_SIZED_FREES 1
    # 1 "<built-in>" 2
    # 1 "{umbrella}" 2
    # 1 "{include}/uacpi/types.h" 1
    # 1 "/usr/lib/clang/include/stddef.h" 1 3
    typedef unsigned long size_t;
    typedef struct __foreign_pair {{ int a; int b; }} __foreign_pair_t;
    extern int __foreign_function(int);
    #define __FOREIGN_LIMIT 99
    # 2 "{include}/uacpi/types.h" 2

    #define UACPI_MAX_DEPTH (1 << 4)
    #define UACPI_MASK ~0x0F
    #define UACPI_DERIVED (UACPI_MAX_DEPTH * 2 + 1)
    #define UACPI_NAME "uacpi"
    #define UACPI_FN_LIKE(x) ((x) + 1)
    #define UACPI_EMPTY

    typedef unsigned char uacpi_u8;
    typedef unsigned short uacpi_u16;
    typedef unsigned int uacpi_u32;
    typedef unsigned long long uacpi_u64;
    typedef _Bool uacpi_bool;
    typedef char uacpi_char;
    typedef void *uacpi_handle;

    typedef enum uacpi_status {{
        UACPI_STATUS_OK = 0,
        UACPI_STATUS_MAPPING_FAILED = 1,
        UACPI_STATUS_OUT_OF_MEMORY,
        UACPI_STATUS_LAST = UACPI_MAX_DEPTH,
    }} uacpi_status;

    typedef enum uacpi_log_level {{
        UACPI_LOG_DEBUG = 5,
        UACPI_LOG_ERROR = -1,
    }} uacpi_log_level;

    typedef struct uacpi_namespace_node uacpi_namespace_node;

    struct acpi_gas {{
        uacpi_u8 address_space_id;
        uacpi_u8 register_bit_width;
        uacpi_u8 register_bit_offset;
        uacpi_u8 access_size;
        uacpi_u64 address;
    }} __attribute__((packed));
    typedef struct acpi_gas acpi_gas;

    typedef union uacpi_object_data {{
        uacpi_u64 integer;
        struct {{
            uacpi_u32 lo;
            uacpi_u32 hi;
        }};
        uacpi_u8 bytes[8];
    }} uacpi_object_data;

    struct uacpi_flags {{
        uacpi_u32 enabled : 1;
        uacpi_u32 reserved : 31;
    }};

    typedef uacpi_status (*uacpi_handler)(uacpi_handle ctx, uacpi_namespace_node *node);

    typedef struct uacpi_table {{
        union {{
            void *ptr;
            uacpi_u64 virt_addr;
        }};
        uacpi_u64 index;
        uacpi_char signature[4];
        uacpi_handler handler;
        uacpi_u8 data[];
    }} uacpi_table;
    # 90 "{include}/uacpi/uacpi.h" 1

    uacpi_status uacpi_initialize(uacpi_u64 flags);
    uacpi_status uacpi_table_find_by_signature(const uacpi_char *signature, uacpi_table *out_table);
    const uacpi_char *uacpi_status_to_string(uacpi_status);
    void uacpi_log(uacpi_log_level level, const uacpi_char *fmt, ...);
    void uacpi_kernel_free(void *mem, size_t size_hint);
    uacpi_bool uacpi_is_ready(void);
    uacpi_status uacpi_install_handler(uacpi_namespace_node *node, uacpi_handler handler);
    uacpi_status uacpi_initialize(uacpi_u64 flags);
    static inline uacpi_bool uacpi_helper(void) {{ return 1; }}
    # 2 "{umbrella}" 2
""")

# Broken declaration inside the exposed surface.
SURFACE_ERROR_I = textwrap.dedent("""\
    # 1 "{umbrella}"
    # 1 "{include}/uacpi/types.h" 1
    typedef unsigned int uacpi_u32;
    struct broken {{ uacpi_u32 a uacpi_u32 b; }};
    uacpi_u32 uacpi_ok(void);
    # 2 "{umbrella}" 2
""")

# Broken declaration only inside a system header.
FOREIGN_ERROR_I = textwrap.dedent("""\
    # 1 "{umbrella}"
    # 1 "/usr/include/weird.h" 1 3
    struct weird {{ int a int b; }};
    # 2 "{umbrella}" 2
    # 1 "{include}/uacpi/types.h" 1
    typedef unsigned int uacpi_u32;
    uacpi_u32 uacpi_ok(void);
    # 2 "{umbrella}" 2
""")

# Enumerator whose value is not a constant expression.
BAD_ENUM_I = textwrap.dedent("""\
    # 1 "{umbrella}"
    # 1 "{include}/uacpi/types.h" 1
    enum uacpi_bad {{
        UACPI_BAD_FIRST = sizeof(int),
    }};
    # 2 "{umbrella}" 2
""")

# Type name nobody declared.
UNKNOWN_TYPE_I = textwrap.dedent("""\
    # 1 "{umbrella}"
    # 1 "{include}/uacpi/types.h" 1
    mystery_t uacpi_mystery(void);
    # 2 "{umbrella}" 2
""")

# gcc output where stdbool.h's ``bool`` expands inside a typedef.
SPLIT_DECLARATION_I = textwrap.dedent("""\
    # 1 "{umbrella}"
    # 1 "{include}/uacpi/types.h" 1
    # 1 "/usr/lib/gcc/x86_64-linux-gnu/13/include/stdbool.h" 1 3 4
    # 2 "{include}/uacpi/types.h" 2
    typedef
    # 3 "{include}/uacpi/types.h" 3 4
           _Bool
    # 3 "{include}/uacpi/types.h"
                uacpi_bool;
    uacpi_bool uacpi_is_ready(void);
    # 2 "{umbrella}" 2
""")

# Macros and enumerators whose value depends on C integer types.
TYPED_CONSTANTS_I = textwrap.dedent("""\
    # 1 "{umbrella}"
    # 1 "{include}/uacpi/types.h" 1
    typedef unsigned char uacpi_u8;
    typedef unsigned short uacpi_u16;
    typedef uacpi_u16 uacpi_word;
    #define UACPI_ALL_ONES ~0u
    #define UACPI_ALL_ONES_64 ~0ull
    #define UACPI_U8_MAX ((uacpi_u8)-1)
    #define UACPI_WORD_MAX ((uacpi_word)~0)
    #define UACPI_U8_WRAP ((uacpi_u8)0x1FF)
    #define UACPI_SHIFTED_U8 ((uacpi_u8)1 << 8)
    #define UACPI_HIGH_BIT (1u << 31)
    #define UACPI_MIXED (-1 + 0u)
    #define UACPI_NEGATIVE -1
    #define UACPI_NEGATIVE_HEX -0x10
    #define UACPI_BIG_HEX 0xFFFFFFFF
    #define UACPI_BIG_HEX_NOT ~0xFFFFFFFF
    enum uacpi_sign {{
        UACPI_SIGN_NEGATIVE = -1,
        UACPI_SIGN_ZERO,
        UACPI_SIGN_ALL_ONES = ~0u,
    }};
    # 2 "{umbrella}" 2
""")

FAKE_COMMIT = "0123456789abcdef0123456789abcdef01234567"


# ── Project layout ──────────────────────────────────────────────────────────

class Project:
    """Paths of a fixture project checkout."""

    def __init__(self, root: Path):
        self.root = root
        self.dependency = root / "uACPI"
        self.include = self.dependency / "include"
        self.umbrella = root / "wrapper.h"
        self.out = root / "out"

    def render(self, template: str) -> str:
        return template.format(umbrella=self.umbrella, include=self.include)

    def configuration(self, target_arch: str = "x86_64", features=()) -> BuildConfiguration:
        return BuildConfiguration.for_target(target_arch, features, self.include)

    def checkout(self) -> None:
        """Pretend the submodule has been fetched before."""
        self.include.mkdir(parents=True, exist_ok=True)
        (self.dependency / "README.md").write_text("uACPI\n")


@pytest.fixture
def project(tmp_path: Path) -> Project:
    p = Project(tmp_path / "kernel")
    p.root.mkdir()
    p.umbrella.write_text("#include <uacpi/uacpi.h>\n")
    return p


@pytest.fixture
def configuration(project: Project) -> BuildConfiguration:
    return project.configuration("x86_64", [Feature.REDUCED_HARDWARE])


# ── Fake command runner ─────────────────────────────────────────────────────

Responder = Callable[[Tuple[str, ...], Optional[Path]], Optional[CommandResult]]


def ok(argv: Sequence[str], cwd: Optional[Path] = None, stdout: str = "") -> CommandResult:
    return CommandResult(argv=tuple(argv), cwd=str(cwd) if cwd else None, returncode=0, stdout=stdout)


def fail(
    argv: Sequence[str],
    cwd: Optional[Path] = None,
    returncode: int = 1,
    stdout: str = "",
    stderr: str = "error: boom",
) -> CommandResult:
    return CommandResult(
        argv=tuple(argv),
        cwd=str(cwd) if cwd else None,
        returncode=returncode,
        stdout=stdout,
        stderr=stderr,
    )


class FakeRunner:
    """Records every invocation; *responder* may answer, otherwise exit 0."""

    def __init__(self, responder: Optional[Responder] = None):
        self.responder = responder
        self.calls: List[Tuple[Tuple[str, ...], Optional[Path]]] = []

    def __call__(self, argv: Sequence[str], cwd: Optional[Path] = None) -> CommandResult:
        argv = tuple(argv)
        self.calls.append((argv, cwd))
        if self.responder is not None:
            result = self.responder(argv, cwd)
            if result is not None:
                return result
        return ok(argv, cwd)

    def argvs(self) -> List[Tuple[str, ...]]:
        return [argv for argv, _ in self.calls]

    def find(self, *tokens: str) -> List[Tuple[str, ...]]:
        return [argv for argv in self.argvs() if all(t in argv for t in tokens)]


class FakeToolchain:
    """
    Simulates git, cc and ar well enough for the whole build to run.

    ``fail_on`` names a stage ("git", "compile", "ar", "preprocess") that
    should exit non-zero; ``header`` is the preprocessed text served for
    ``cc -E``.
    """

    def __init__(self, project: Project, header: str = UACPI_HEADERS_I, fail_on: Optional[str] = None):
        self.project = project
        self.header = header
        self.fail_on = fail_on

    def __call__(self, argv: Tuple[str, ...], cwd: Optional[Path]) -> Optional[CommandResult]:
        if "--version" in argv:
            return ok(argv, cwd, stdout=f"{argv[0]} version 1.0\n")

        if "submodule" in argv:
            if self.fail_on == "git":
                return fail(argv, cwd, returncode=128, stderr="fatal: unable to access remote")
            self.project.checkout()
            return ok(argv, cwd)
        if "rev-parse" in argv:
            return ok(argv, cwd, stdout=FAKE_COMMIT + "\n")

        if "-E" in argv:
            if self.fail_on == "preprocess":
                return fail(argv, cwd, stderr="wrapper.h:1:10: fatal error: 'uacpi/uacpi.h' file not found")
            return ok(argv, cwd, stdout=self.project.render(self.header))

        if "-c" in argv:
            src = argv[argv.index("-c") + 1]
            if self.fail_on == "compile" and src.endswith("interpreter.c"):
                return fail(argv, cwd, stderr=f"{src}:10:1: error: expected ';'")
            Path(argv[argv.index("-o") + 1]).write_bytes(b"not an elf object")
            return ok(argv, cwd)

        if "crs" in argv:
            if self.fail_on == "ar":
                return fail(argv, cwd, stderr="ar: cannot write archive")
            Path(argv[argv.index("crs") + 1]).write_bytes(b"!<arch>\n")
            return ok(argv, cwd)

        return None


@pytest.fixture
def fake_toolchain(project: Project):
    """Factory: ``fake_toolchain(fail_on=..., header=...)`` → FakeRunner."""
    def make(**kwargs) -> FakeRunner:
        return FakeRunner(FakeToolchain(project, **kwargs))
    return make


# ── Environment ─────────────────────────────────────────────────────────────

ENV_NAMES = (
    "PROJECT_DIR", "CARGO_MANIFEST_DIR",
    "TARGET_ARCH", "CARGO_CFG_TARGET_ARCH",
    "OUT_DIR",
    "UACPI_FEATURE_REDUCED_HARDWARE", "CARGO_FEATURE_REDUCED_HARDWARE",
    "UACPI_FEATURE_BAREBONES_MODE", "CARGO_FEATURE_BAREBONES_MODE",
    "CC", "AR", "GIT", "UACPI_DEPENDENCY_DIR", "UACPI_UMBRELLA_HEADER",
)


@pytest.fixture
def clean_env(monkeypatch):
    """Process environment with none of the build inputs set."""
    for name in ENV_NAMES:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch
