"""
External command execution.

One abstraction for every tool the build drives (git, the C compiler,
the archiver, the preprocessor): run it, capture exit status and output.
A non-zero exit is never a value the caller inspects; ``check_command``
turns it into the stage's error class.
"""
from __future__ import annotations

import logging
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Sequence, Tuple, Type

from uacpi_build.errors import UacpiBuildError

logger = logging.getLogger(__name__)

MISSING_TOOL_EXIT = 127


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one external command."""
    argv: Tuple[str, ...]
    cwd: Optional[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def command(self) -> str:
        return " ".join(self.argv)


CommandRunner = Callable[[Sequence[str], Optional[Path]], CommandResult]


def run_command(argv: Sequence[str], cwd: Optional[Path] = None) -> CommandResult:
    """
    Run *argv* to completion and capture its output.

    A tool that cannot be started (not on PATH, not executable) is reported
    as exit status 127 with the OS error on stderr, the same way a shell
    would, so callers treat it like any other failing command.
    """
    logger.debug("Running: %s (cwd=%s)", " ".join(argv), cwd)
    t0 = time.monotonic()
    try:
        completed = subprocess.run(
            list(argv),
            cwd=str(cwd) if cwd is not None else None,
            capture_output=True,
            text=True,
            check=False,
        )
        returncode = completed.returncode
        stdout = completed.stdout
        stderr = completed.stderr
    except OSError as e:
        returncode = MISSING_TOOL_EXIT
        stdout = ""
        stderr = f"{argv[0]}: {e}"
    duration = int((time.monotonic() - t0) * 1000)
    logger.debug("%s exited %d after %d ms", argv[0], returncode, duration)

    return CommandResult(
        argv=tuple(argv),
        cwd=str(cwd) if cwd is not None else None,
        returncode=returncode,
        stdout=stdout,
        stderr=stderr,
        duration_ms=duration,
    )


def check_command(
    runner: CommandRunner,
    argv: Sequence[str],
    *,
    cwd: Optional[Path] = None,
    error: Type[UacpiBuildError],
    message: str,
    hint: Optional[str] = None,
    operation: str,
) -> CommandResult:
    """Run *argv* through *runner*; raise *error* on any non-zero exit."""
    result = runner(argv, cwd)
    if not result.ok:
        raise error(
            message,
            hint=hint,
            context={
                "operation": operation,
                "command": result.command,
                "returncode": str(result.returncode),
                "stderr": result.stderr[:2000] if result.stderr else "",
            },
            result=result,
        )
    return result
