"""Detached process launching."""

from __future__ import annotations

import subprocess
from collections.abc import Sequence
from pathlib import Path

import structlog

from aeco_launcher.core.errors import ProcessLaunchError
from aeco_launcher.core.utils import is_windows

logger = structlog.get_logger()

# Windows process creation flags
_DETACHED_PROCESS = 0x00000008
_CREATE_NEW_PROCESS_GROUP = 0x00000200


def start_detached(args: Sequence[str | Path], cwd: Path | None = None) -> int:
    """Start a process that outlives the current one.

    Args:
        args: Program and arguments
        cwd: Working directory for the new process

    Returns:
        PID of the started process

    Raises:
        ProcessLaunchError: If the process could not be started
    """
    command = [str(arg) for arg in args]
    kwargs: dict[str, object] = {
        "cwd": cwd,
        "stdin": subprocess.DEVNULL,
        "stdout": subprocess.DEVNULL,
        "stderr": subprocess.DEVNULL,
        "close_fds": True,
    }
    if is_windows():
        kwargs["creationflags"] = _DETACHED_PROCESS | _CREATE_NEW_PROCESS_GROUP
    else:
        kwargs["start_new_session"] = True

    try:
        popen = subprocess.Popen(command, **kwargs)  # type: ignore[call-overload]
    except (OSError, ValueError) as e:
        raise ProcessLaunchError(f"Could not start {command[0]}: {e}") from e

    logger.info("process_started", command=command, pid=popen.pid)
    return popen.pid


def game_command(
    install_root: Path,
    game_executable: str,
    launch_args: Sequence[str],
    use_wine: bool,
) -> list[str]:
    """Build the command line that starts the game.

    Args:
        install_root: Installation directory
        game_executable: Game executable relative to the install root
        launch_args: Arguments passed to the game
        use_wine: Run the executable through wine

    Returns:
        Command line
    """
    command = [str(install_root / game_executable), *launch_args]
    if use_wine:
        command.insert(0, "wine")
    return command
