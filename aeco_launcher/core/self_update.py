"""Replacing the running launcher executable.

A running executable cannot be overwritten in place, so replacement happens
in two phases:

1. During a patch pass, a new launcher is written next to the running one as
   ``<name>.<extension>`` and recorded as pending. When the pass succeeds the
   worker starts the staged copy and exits.
2. The staged copy notices its own extension on startup, copies itself over
   the original file name (retrying while the previous process exits),
   starts the restored launcher and exits. A launcher started from its
   normal name removes any staged copy left behind.
"""

from __future__ import annotations

import shutil
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

import structlog

from aeco_launcher.core.config import SelfUpdateConfig
from aeco_launcher.core.errors import FilesystemError
from aeco_launcher.core.session import SyncSession
from aeco_launcher.core.utils import set_executable

logger = structlog.get_logger()


@dataclass(frozen=True)
class Relaunch:
    """Terminal outcome: start ``path`` detached and exit this process."""
    path: Path


class SelfUpdateCoordinator:
    """Detects and drives replacement of the running launcher."""

    def __init__(
        self,
        self_exe: Path,
        config: SelfUpdateConfig | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize coordinator.

        Args:
            self_exe: Path of the running launcher executable
            config: Optional self-update configuration
            sleep: Delay function used between retries
        """
        self.self_exe = self_exe
        self.config = config or SelfUpdateConfig()
        self._sleep = sleep

    @property
    def staged_path(self) -> Path:
        """Where a replacement for the running launcher is written."""
        return self.self_exe.with_name(f"{self.self_exe.name}.{self.config.extension}")

    @property
    def is_staged_copy(self) -> bool:
        """Whether the running launcher is itself a staged replacement."""
        return self.self_exe.suffix == f".{self.config.extension}"

    def is_self(self, path: Path) -> bool:
        """Whether ``path`` is the running launcher executable."""
        return path.resolve() == self.self_exe.resolve()

    def stage(self, data: bytes, session: SyncSession) -> Path:
        """Write a launcher replacement beside the running one and record it pending.

        Args:
            data: New launcher bytes
            session: Session the pending update belongs to

        Returns:
            Path of the staged replacement
        """
        target = self.staged_path
        try:
            target.write_bytes(data)
            set_executable(target)
        except OSError as e:
            raise FilesystemError(f"Could not write launcher update to {target}: {e}") from e

        session.pending_self_update = target
        logger.info("self_update_staged", path=str(target))
        return target

    def pending_relaunch(self, session: SyncSession) -> Relaunch | None:
        """Get the relaunch outcome for a session with a staged replacement."""
        if session.pending_self_update is None:
            return None
        return Relaunch(session.pending_self_update)

    def _retry(self, action: Callable[[], object], description: str) -> None:
        """Run a filesystem action, retrying with a fixed delay.

        Raises:
            FilesystemError: If every attempt failed
        """
        attempts = self.config.retries
        for attempt in range(1, attempts + 1):
            try:
                action()
                return
            except OSError as e:
                if attempt == attempts:
                    raise FilesystemError(
                        f"{description} failed after {attempts} attempts: {e}"
                    ) from e
                logger.debug(
                    "self_update_retry",
                    action=description,
                    attempt=attempt,
                    error=str(e),
                )
                self._sleep(self.config.retry_delay)

    def restore_on_startup(self) -> Relaunch | None:
        """Finish a replacement started by a previous launcher process.

        Run before any network activity. A staged copy restores itself over
        the original name and asks to be relaunched from there. A launcher
        running from its normal name only cleans up leftovers.

        Returns:
            Relaunch outcome when the restored launcher must be started

        Raises:
            FilesystemError: If the staged copy cannot restore itself
        """
        if not self.is_staged_copy:
            self.remove_stale_update()
            return None

        # Only the last extension goes, so "launcher.exe.aecoupdate"
        # becomes "launcher.exe"
        original = self.self_exe.with_suffix("")
        logger.info("self_update_restoring", source=str(self.self_exe), target=str(original))

        self._retry(
            lambda: shutil.copyfile(self.self_exe, original),
            f"Copying {self.self_exe.name} to {original.name}",
        )

        try:
            set_executable(original)
        except OSError as e:
            raise FilesystemError(f"Could not make {original} executable: {e}") from e

        return Relaunch(original)

    def remove_stale_update(self) -> None:
        """Delete a staged replacement left by an interrupted update.

        Failure is logged and otherwise ignored.
        """
        staged = self.staged_path
        if not staged.exists():
            return

        try:
            self._retry(staged.unlink, f"Removing {staged.name}")
        except FilesystemError as e:
            logger.warning("self_update_cleanup_failed", path=str(staged), error=e.message)
        else:
            logger.info("self_update_cleanup", path=str(staged))
