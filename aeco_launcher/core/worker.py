"""Background patch worker.

The worker owns all network, filesystem and archive access. It talks to the
presentation layer through two queues: commands come in, status messages go
out. Commands are only read between steps; a step is never interrupted.

State machine::

    (start) --Retry--> working --ok--> finished --Play--> launching --ok--> terminated
                          |                 ^                 |
                          +-- failure --> failed <-- failure -+
                          |
                          +-- launcher replaced --> terminated (relaunch)

Retry is accepted in both awaiting-input states. Play in ``failed`` is
governed by ``LauncherConfig.allow_play_after_failure``.
"""

from __future__ import annotations

import queue
import threading
import time
from collections.abc import Callable, Sequence
from pathlib import Path

import structlog

from aeco_launcher.core.archive_store import ArchiveOpener, open_paired_archive
from aeco_launcher.core.archive_updater import ArchiveUpdater
from aeco_launcher.core.config import LauncherConfig
from aeco_launcher.core.errors import (
    MaintenanceError,
    PatchError,
    ProcessLaunchError,
    Severity,
    classify,
    reraise_as,
)
from aeco_launcher.core.installer import BaseInstaller, progress_text
from aeco_launcher.core.manifest import (
    ArchiveNode,
    DirectoryNode,
    FileNode,
    parse_manifest,
)
from aeco_launcher.core.messages import (
    DownloadingMessage,
    ErrorMessage,
    InfoMessage,
    PatchMessage,
    StatusMessage,
)
from aeco_launcher.core.process import game_command, start_detached
from aeco_launcher.core.self_update import Relaunch, SelfUpdateCoordinator
from aeco_launcher.core.session import ServerUrls, SyncSession
from aeco_launcher.core.sync import ALL_PLATFORMS, SyncEngine
from aeco_launcher.core.transfer import TransferClient
from aeco_launcher.core.types import Command, PatchStatus, ServerStatus, WorkerState
from aeco_launcher.core.utils import current_executable, get_platform

logger = structlog.get_logger()

Launcher = Callable[..., int]


class WorkerController:
    """Runs the patch routine and the command/status state machine."""

    def __init__(
        self,
        inbound: queue.Queue[Command],
        outbound: queue.Queue[PatchMessage],
        config: LauncherConfig | None = None,
        self_exe: Path | None = None,
        install_root: Path | None = None,
        transfer: TransferClient | None = None,
        archive_opener: ArchiveOpener = open_paired_archive,
        launcher: Launcher = start_detached,
        sleep: Callable[[float], None] = time.sleep,
        platform: str | None = None,
    ):
        """Initialize worker.

        Args:
            inbound: Commands from the presentation layer
            outbound: Status messages to the presentation layer
            config: Optional launcher configuration
            self_exe: Running launcher executable, detected if None
            install_root: Installation directory, the executable's directory if None
            transfer: Optional transfer client
            archive_opener: Opens archive stores
            launcher: Starts detached processes
            sleep: Delay function for settle and retry delays
            platform: Host platform identifier, detected if None
        """
        self.inbound = inbound
        self.outbound = outbound
        self.config = config or LauncherConfig()
        self.self_exe = (self_exe or current_executable()).resolve()
        self.install_root = install_root or self.self_exe.parent
        self.urls = ServerUrls.from_config(self.config.server)
        self.transfer = transfer or TransferClient(self.config.server, temp_dir=self.install_root)
        self.archive_opener = archive_opener
        self.launcher = launcher
        self.platform = platform or get_platform()
        self._sleep = sleep

        self.state = WorkerState.WORKING
        self.outcome: Relaunch | None = None
        self._close_requested = False

    # Outbound messages

    def send(self, message: PatchMessage) -> None:
        """Send a message to the presentation layer."""
        self.outbound.put(message)

    def send_error(self, text: str) -> None:
        """Send an error to the presentation layer."""
        self.send(ErrorMessage(text))

    def send_download(self, text: str, fraction: float) -> None:
        """Send download progress to the presentation layer."""
        self.send(DownloadingMessage(text, fraction))

    def send_info(self, text: str) -> None:
        """Send misc information to the presentation layer."""
        self.send(InfoMessage(text))

    def send_status(self, status: PatchStatus) -> None:
        """Report a step outcome, first dropping commands queued while the step ran."""
        self._drain_inbound()
        self.send(StatusMessage(status))

    def _drain_inbound(self) -> None:
        while True:
            try:
                command = self.inbound.get_nowait()
            except queue.Empty:
                return
            if command is Command.CLOSE:
                self._close_requested = True
            logger.debug("command_discarded", command=command.value, state=self.state.value)

    # Main loop

    def start(self) -> threading.Thread:
        """Run the worker on a daemon thread."""
        thread = threading.Thread(target=self.run, name="patch-worker", daemon=True)
        thread.start()
        return thread

    def run(self) -> None:
        """Process commands until the worker terminates or is closed.

        The first step is an implicit Retry.
        """
        logger.info("worker_started", install_root=str(self.install_root), platform=self.platform)
        command = Command.RETRY
        try:
            while True:
                self.handle(command)
                if self.state is WorkerState.TERMINATED or self._close_requested:
                    break
                command = self.inbound.get()
        finally:
            self.transfer.close()
            self.state = WorkerState.TERMINATED
            logger.info("worker_stopped", relaunch=str(self.outcome.path) if self.outcome else None)

    def handle(self, command: Command) -> None:
        """Handle one command synchronously."""
        logger.debug("command_received", command=command.value, state=self.state.value)
        if command is Command.CLOSE:
            self._close_requested = True
        elif command is Command.RETRY:
            self.retry()
        elif command is Command.PLAY:
            self.play()

    def retry(self) -> None:
        """Run one full patch attempt."""
        self.state = WorkerState.WORKING
        self.send_status(PatchStatus.WORKING)

        try:
            outcome = self.patch_routine()
        except PatchError as e:
            self._fail(e)
            return
        except Exception as e:
            self._fail(classify(e, "Unexpected error while updating"))
            return

        if outcome is not None:
            self._relaunch(outcome)
            return

        self.state = WorkerState.FINISHED
        self.send_status(PatchStatus.FINISHED)

    def play(self) -> None:
        """Start the game and stop the worker once it is running."""
        if not self.state.awaiting_input:
            logger.warning("play_ignored", state=self.state.value)
            return

        if self.state is WorkerState.FAILED and not self.config.allow_play_after_failure:
            self.send_info("The game can't be started until the update succeeds. Retry first.")
            self.send_status(PatchStatus.FAILED)
            return

        self.state = WorkerState.LAUNCHING
        self.send_info("Launching game")
        command = game_command(
            self.install_root,
            self.config.game_executable,
            self.config.launch_args,
            self.config.use_wine,
        )

        try:
            self.launcher(command, cwd=self.install_root)
        except ProcessLaunchError as e:
            logger.error("game_launch_failed", command=command, exc_info=e)
            self.state = WorkerState.FAILED
            self.send_error("Failed to launch the game")
            self.send_status(PatchStatus.FAILED)
            return

        # The game is running and we can exit
        self._sleep(self.config.settle_delay)
        self.state = WorkerState.TERMINATED
        self.send_status(PatchStatus.LAUNCHED)

    def _fail(self, error: PatchError) -> None:
        self.state = WorkerState.FAILED
        if error.severity is Severity.LOW:
            self.send_info(error.message)
            logger.info("patch_aborted", message=error.message, cause=str(error.cause))
        else:
            self.send_error(error.message)
            logger.error("patch_failed", message=error.message, exc_info=error.cause)

        self.send_status(PatchStatus.FAILED)

    def _relaunch(self, outcome: Relaunch) -> None:
        try:
            self.launcher([outcome.path], cwd=outcome.path.parent)
        except ProcessLaunchError as e:
            self._fail(classify(e, "Could not start updated launcher"))
            return

        self.outcome = outcome
        self.state = WorkerState.TERMINATED
        self.send_status(PatchStatus.RELAUNCHING)

    # Patch routine

    def new_session(self) -> SyncSession:
        """Create the state for a new patch attempt."""
        return SyncSession(
            install_root=self.install_root,
            self_exe=self.self_exe,
            urls=self.urls,
        )

    def platforms(self) -> Sequence[str]:
        """Manifest subtrees to apply, in order."""
        return (ALL_PLATFORMS, self.platform)

    def patch_routine(self) -> Relaunch | None:
        """Bring the installation up to date.

        Returns:
            A relaunch outcome when the launcher itself must be replaced

        Raises:
            PatchError: If any step fails
        """
        session = self.new_session()
        coordinator = SelfUpdateCoordinator(session.self_exe, self.config.self_update, sleep=self._sleep)

        with reraise_as("Failed to overwrite launcher"):
            relaunch = coordinator.restore_on_startup()
        if relaunch is not None:
            return relaunch

        self.send_info("Checking server status")
        with reraise_as("Failed to get server status"):
            server_status = self.transfer.fetch_server_status(session.urls.status)

        if server_status is ServerStatus.MAINTENANCE:
            error = MaintenanceError(f"Received server status {server_status.value}")
            raise classify(error, "Server is down for maintenance")
        self.send_info("Server is online")

        BaseInstaller(session, self.transfer, self, self.config.game_executable).ensure_installed()

        manifest = self.fetch_manifest(session)

        engine = SyncEngine(
            session,
            self.transfer,
            coordinator,
            self,
            ArchiveUpdater(self.transfer, self.archive_opener),
        )
        engine.sync(manifest, self.platforms())

        return coordinator.pending_relaunch(session)

    def fetch_manifest(self, session: SyncSession) -> FileNode | DirectoryNode | ArchiveNode:
        """Download and parse the patch manifest."""

        def on_progress(downloaded: int, total: int | None) -> None:
            text, fraction = progress_text("Downloading patch info", downloaded, total)
            self.send_download(text, fraction)

        with reraise_as("Failed to get patch info"):
            data = self.transfer.fetch_to_memory(session.urls.patchlist, on_progress)

        with reraise_as("Failed to parse patch info"):
            return parse_manifest(data)
