"""Console launcher: runs the patch worker and presents its progress."""

from __future__ import annotations

import queue
import sys
from pathlib import Path

import click
import structlog
from pydantic import ValidationError
from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
)

from aeco_launcher.core.config import LauncherConfig, ServerConfig
from aeco_launcher.core.messages import (
    DownloadingMessage,
    ErrorMessage,
    InfoMessage,
    PatchMessage,
    StatusMessage,
)
from aeco_launcher.core.types import Command, PatchStatus
from aeco_launcher.core.utils import is_frozen
from aeco_launcher.core.worker import WorkerController

logger = structlog.get_logger()

WORKER_JOIN_TIMEOUT = 5.0

_CHOICES = {
    "play": Command.PLAY,
    "retry": Command.RETRY,
    "quit": Command.CLOSE,
}


class ConsolePresenter:
    """Renders worker messages on a rich console and answers with commands.

    Runs on the main thread and never touches the network or the disk; all
    it does is read the status queue and write the command queue.
    """

    def __init__(
        self,
        console: Console,
        commands: queue.Queue[Command],
        messages: queue.Queue[PatchMessage],
        auto_play: bool = False,
        interactive: bool = True,
    ):
        self.console = console
        self.commands = commands
        self.messages = messages
        self.auto_play = auto_play
        self.interactive = interactive
        self._progress: Progress | None = None
        self._task_id = None

    def _start_progress(self) -> None:
        if self._progress is not None:
            return
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            console=self.console,
            transient=True,
        )
        self._progress.start()
        self._task_id = self._progress.add_task("Working", total=1.0)

    def _stop_progress(self) -> None:
        if self._progress is not None:
            self._progress.stop()
            self._progress = None
            self._task_id = None

    def choose(self, status: PatchStatus) -> Command:
        """Pick the next command once the worker awaits input."""
        if status is PatchStatus.FINISHED and self.auto_play:
            return Command.PLAY
        if not self.interactive:
            return Command.CLOSE

        default = "play" if status is PatchStatus.FINISHED else "retry"
        choice = click.prompt(
            "What next?",
            type=click.Choice(list(_CHOICES), case_sensitive=False),
            default=default,
        )
        return _CHOICES[choice.lower()]

    def show(self, message: PatchMessage) -> None:
        """Render one non-status message."""
        if isinstance(message, DownloadingMessage):
            if self._progress is not None and self._task_id is not None:
                self._progress.update(
                    self._task_id,
                    description=message.text,
                    completed=message.fraction,
                )
            else:
                self.console.print(message.text)
        elif isinstance(message, InfoMessage):
            self.console.print(f"[yellow]{message.text}[/yellow]")
        elif isinstance(message, ErrorMessage):
            self.console.print(f"[red]Error:[/red] {message.text}")

    def run(self) -> PatchStatus:
        """Present messages until the session ends.

        Returns:
            The last status reported by the worker
        """
        try:
            while True:
                message = self.messages.get()
                if not isinstance(message, StatusMessage):
                    self.show(message)
                    continue

                status = message.status
                logger.debug("worker_status", status=status.value)
                if status is PatchStatus.WORKING:
                    self._start_progress()
                    continue

                self._stop_progress()
                if status is PatchStatus.LAUNCHED:
                    self.console.print("[green]✓[/green] Game launched")
                    return status
                if status is PatchStatus.RELAUNCHING:
                    self.console.print("[green]✓[/green] Launcher updated, restarting")
                    return status
                if status is PatchStatus.FINISHED:
                    self.console.print("[green]✓[/green] Game is up to date")

                command = self.choose(status)
                self.commands.put(command)
                if command is Command.CLOSE:
                    return status
        finally:
            self._stop_progress()


@click.command(name="run")
@click.option(
    "--install-root",
    type=click.Path(file_okay=False, path_type=Path),
    help="Installation directory (default: the launcher's directory, frozen builds only)",
)
@click.option(
    "--self-exe",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Path of the launcher executable (default: detected)",
)
@click.option("--server-url", type=str, help="Patch server root URL")
@click.option("--play", "auto_play", is_flag=True, help="Start the game once the update finishes")
@click.option("--no-input", is_flag=True, help="Never prompt; exit once the update ends")
@click.pass_context
def run(
    ctx: click.Context,
    install_root: Path | None,
    self_exe: Path | None,
    server_url: str | None,
    auto_play: bool,
    no_input: bool,
) -> None:
    """Update the game, then optionally launch it."""
    config: LauncherConfig = ctx.obj["config"]
    console: Console = ctx.obj["console"]

    if server_url:
        try:
            config.server = ServerConfig.model_validate(
                {**config.server.model_dump(), "url": server_url}
            )
        except ValidationError as e:
            raise click.BadParameter(str(e), param_hint="--server-url") from e

    # A script run has no executable whose directory is the installation
    if install_root is None and self_exe is None and not is_frozen():
        raise click.UsageError(
            "--install-root or --self-exe is required unless running as a frozen executable"
        )

    commands: queue.Queue[Command] = queue.Queue()
    messages: queue.Queue[PatchMessage] = queue.Queue()

    worker = WorkerController(
        commands,
        messages,
        config=config,
        self_exe=self_exe,
        install_root=install_root.resolve() if install_root else None,
    )
    thread = worker.start()

    presenter = ConsolePresenter(
        console,
        commands,
        messages,
        auto_play=auto_play,
        interactive=not no_input,
    )

    try:
        status = presenter.run()
    except (KeyboardInterrupt, click.Abort):
        commands.put(Command.CLOSE)
        console.print("[yellow]Cancelled[/yellow]")
        sys.exit(130)

    thread.join(timeout=WORKER_JOIN_TIMEOUT)

    if worker.outcome is not None:
        # The replacement launcher is running; this process must go away now
        logger.info("launcher_exit_for_relaunch", path=str(worker.outcome.path))
        sys.exit(0)

    if status is PatchStatus.FAILED:
        sys.exit(1)
