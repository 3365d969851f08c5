"""
Architecture-specific code-generation flags for kernel-context code.

Matching is by substring on the target architecture string, exactly:
  - ``x86_64`` / ``i686``: no red zone (interrupts clobber it), kernel
    code model.
  - anything but ``riscv64``: general-purpose registers only (FP/vector
    state is not saved across the kernel/interrupt boundary).
"""
from __future__ import annotations

from typing import Tuple

X86_MARKERS = ("x86_64", "i686")
RISCV64_MARKER = "riscv64"

NO_RED_ZONE = "-mno-red-zone"
KERNEL_CODE_MODEL = "-mcmodel=kernel"
GENERAL_REGS_ONLY = "-mgeneral-regs-only"


def is_x86(target_arch: str) -> bool:
    return any(marker in target_arch for marker in X86_MARKERS)


def arch_flags(target_arch: str) -> Tuple[str, ...]:
    """Ordered extra compiler flags for *target_arch*."""
    flags = []
    if is_x86(target_arch):
        flags.extend([NO_RED_ZONE, KERNEL_CODE_MODEL])
    if RISCV64_MARKER not in target_arch:
        flags.append(GENERAL_REGS_ONLY)
    return tuple(flags)
