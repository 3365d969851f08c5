"""
Error taxonomy for uacpi_build.

Every failure is fatal to the build.  Errors carry a stable code, an
optional hint, a flat context mapping and, for external tools, the
captured ``CommandResult`` so diagnostics can be surfaced unmodified.
"""
from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Dict, Mapping, Optional

if TYPE_CHECKING:
    from uacpi_build.core.command import CommandResult


class ErrorCode(str, Enum):
    """Stable error identifiers."""
    ENVIRONMENT = "E_ENVIRONMENT"
    FETCH = "E_FETCH"
    COMPILE = "E_COMPILE"
    BINDING = "E_BINDING"


class UacpiBuildError(Exception):
    """Base error: message + code + hint + context (+ tool result)."""

    code: str
    hint: Optional[str]
    context: Dict[str, str]
    result: Optional["CommandResult"]

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode,
        hint: Optional[str] = None,
        context: Optional[Mapping[str, str]] = None,
        result: Optional["CommandResult"] = None,
    ) -> None:
        super().__init__(message)
        self.code = code.value
        self.hint = hint
        self.context = dict(context or {})
        self.result = result

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.hint:
            parts.append(f"Hint: {self.hint}")
        for key, value in self.context.items():
            if value:
                parts.append(f"  {key}: {value}")
        return "\n".join(parts)


class EnvironmentConfigError(UacpiBuildError):
    def __init__(self, message: str, **kwargs) -> None:
        super().__init__(message, code=ErrorCode.ENVIRONMENT, **kwargs)


class FetchError(UacpiBuildError):
    def __init__(self, message: str, **kwargs) -> None:
        super().__init__(message, code=ErrorCode.FETCH, **kwargs)


class CompileError(UacpiBuildError):
    def __init__(self, message: str, **kwargs) -> None:
        super().__init__(message, code=ErrorCode.COMPILE, **kwargs)


class BindingError(UacpiBuildError):
    def __init__(self, message: str, **kwargs) -> None:
        super().__init__(message, code=ErrorCode.BINDING, **kwargs)


__all__ = [
    "BindingError",
    "CompileError",
    "EnvironmentConfigError",
    "ErrorCode",
    "FetchError",
    "UacpiBuildError",
]
