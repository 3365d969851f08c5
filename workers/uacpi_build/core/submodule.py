"""
Submodule synchronizer — make sure the uACPI tree is present and current.

The marker file decides the git operation:
  - missing → first checkout (``update --init --recursive``)
  - present → move to the remote tip (``update --remote``)

Any git failure aborts the build; there is no retry and no offline path.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional, Tuple

from uacpi_build.core.command import CommandRunner, check_command, run_command
from uacpi_build.errors import FetchError

logger = logging.getLogger(__name__)

MARKER_FILE = "README.md"


class SubmoduleState(str, Enum):
    ABSENT = "absent"
    STALE = "present-stale"
    FRESH = "present-fresh"


class SyncAction(str, Enum):
    INIT = "init"
    UPDATE_REMOTE = "update-remote"


@dataclass(frozen=True)
class SubmoduleSync:
    """What the synchronizer found and did."""
    path: Path
    state_before: SubmoduleState
    action: SyncAction
    argv: Tuple[str, ...]
    commit: Optional[str]
    state_after: SubmoduleState = SubmoduleState.FRESH
    duration_ms: int = 0


def inspect_submodule(dependency_dir: Path) -> SubmoduleState:
    """Marker present → previously fetched (maybe stale); absent → never fetched."""
    if (dependency_dir / MARKER_FILE).exists():
        return SubmoduleState.STALE
    return SubmoduleState.ABSENT


def plan_sync(
    state: SubmoduleState,
    pathspec: str,
    git: str = "git",
) -> Tuple[SyncAction, List[str]]:
    """Pick the git invocation for *state*."""
    if state == SubmoduleState.ABSENT:
        return SyncAction.INIT, [git, "submodule", "update", "--init", "--recursive", "--", pathspec]
    return SyncAction.UPDATE_REMOTE, [git, "submodule", "update", "--remote", "--", pathspec]


def sync_submodule(
    project_dir: Path,
    dependency_dir: Path,
    runner: CommandRunner = run_command,
    git: str = "git",
) -> SubmoduleSync:
    """Fetch or refresh the dependency checkout; raise FetchError on failure."""
    state = inspect_submodule(dependency_dir)
    try:
        pathspec = dependency_dir.relative_to(project_dir).as_posix()
    except ValueError:
        pathspec = str(dependency_dir)

    action, argv = plan_sync(state, pathspec, git=git)
    logger.info("Submodule %s is %s; running %s", pathspec, state.value, action.value)

    update = check_command(
        runner,
        argv,
        cwd=project_dir,
        error=FetchError,
        message="Failed to retrieve uACPI sources with git.",
        hint="Check network access and that the project is a git checkout with the submodule registered.",
        operation="sync_submodule",
    )

    if not (dependency_dir / MARKER_FILE).exists():
        raise FetchError(
            "uACPI checkout is still missing after git submodule update.",
            hint=f"Expected {MARKER_FILE} inside the dependency directory.",
            context={"operation": "sync_submodule", "path": str(dependency_dir)},
        )

    head = check_command(
        runner,
        [git, "rev-parse", "HEAD"],
        cwd=dependency_dir,
        error=FetchError,
        message="Unable to read the uACPI checkout revision.",
        operation="sync_submodule",
    )
    commit = head.stdout.strip() or None
    logger.info("uACPI checkout at %s", commit)

    return SubmoduleSync(
        path=dependency_dir,
        state_before=state,
        action=action,
        argv=tuple(argv),
        commit=commit,
        duration_ms=update.duration_ms,
    )
