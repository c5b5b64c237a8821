"""Tests for the run command and console presenter."""

import io
import queue
import re
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner
from rich.console import Console

from aeco_launcher.__main__ import main
from aeco_launcher.commands.launcher import ConsolePresenter
from aeco_launcher.core.messages import (
    DownloadingMessage,
    ErrorMessage,
    InfoMessage,
    StatusMessage,
)
from aeco_launcher.core.self_update import Relaunch
from aeco_launcher.core.types import Command, PatchStatus


def clean(output: str) -> str:
    return re.sub(r'\x1b\[[0-9;]*m', '', output)


@pytest.fixture
def console_output():
    return io.StringIO()


@pytest.fixture
def console(console_output):
    return Console(file=console_output, force_terminal=False, width=120)


def presenter_for(console, *messages, **kwargs):
    commands: queue.Queue = queue.Queue()
    outbound: queue.Queue = queue.Queue()
    for message in messages:
        outbound.put(message)
    return ConsolePresenter(console, commands, outbound, **kwargs), commands


def queued(q: queue.Queue) -> list:
    items = []
    while not q.empty():
        items.append(q.get_nowait())
    return items


class TestConsolePresenter:
    """Tests for ConsolePresenter."""

    def test_finished_non_interactive_closes(self, console, console_output):
        presenter, commands = presenter_for(
            console,
            StatusMessage(PatchStatus.WORKING),
            DownloadingMessage("Checking file 1 / 1 for platform 'all'", 1.0),
            InfoMessage("1 files checked for platform 'all'"),
            StatusMessage(PatchStatus.FINISHED),
            interactive=False,
        )

        status = presenter.run()

        assert status is PatchStatus.FINISHED
        assert queued(commands) == [Command.CLOSE]
        output = clean(console_output.getvalue())
        assert "1 files checked for platform 'all'" in output
        assert "Game is up to date" in output

    def test_finished_auto_play(self, console):
        presenter, commands = presenter_for(
            console,
            StatusMessage(PatchStatus.WORKING),
            StatusMessage(PatchStatus.FINISHED),
            InfoMessage("Launching game"),
            StatusMessage(PatchStatus.LAUNCHED),
            auto_play=True,
            interactive=False,
        )

        assert presenter.run() is PatchStatus.LAUNCHED
        assert queued(commands) == [Command.PLAY]

    def test_failed_never_auto_plays(self, console, console_output):
        presenter, commands = presenter_for(
            console,
            StatusMessage(PatchStatus.WORKING),
            ErrorMessage("Failed to get server status"),
            StatusMessage(PatchStatus.FAILED),
            auto_play=True,
            interactive=False,
        )

        assert presenter.run() is PatchStatus.FAILED
        assert queued(commands) == [Command.CLOSE]
        assert "Error: Failed to get server status" in clean(console_output.getvalue())

    def test_relaunching_ends_without_command(self, console):
        presenter, commands = presenter_for(
            console,
            StatusMessage(PatchStatus.WORKING),
            StatusMessage(PatchStatus.RELAUNCHING),
        )

        assert presenter.run() is PatchStatus.RELAUNCHING
        assert queued(commands) == []

    def test_interactive_retry_then_quit(self, console):
        presenter, commands = presenter_for(
            console,
            StatusMessage(PatchStatus.WORKING),
            StatusMessage(PatchStatus.FAILED),
            StatusMessage(PatchStatus.WORKING),
            StatusMessage(PatchStatus.FAILED),
        )

        with patch("aeco_launcher.commands.launcher.click.prompt", side_effect=["retry", "quit"]) as prompt:
            status = presenter.run()

        assert status is PatchStatus.FAILED
        assert queued(commands) == [Command.RETRY, Command.CLOSE]
        assert prompt.call_args_list[0].kwargs["default"] == "retry"

    def test_choose_defaults_to_play_when_finished(self, console):
        presenter, _ = presenter_for(console)
        with patch("aeco_launcher.commands.launcher.click.prompt", return_value="play") as prompt:
            assert presenter.choose(PatchStatus.FINISHED) is Command.PLAY
        assert prompt.call_args.kwargs["default"] == "play"


class FakeWorker:
    """Stands in for WorkerController, replaying a scripted session."""

    script: list = []
    outcome_path: Path | None = None
    last: "FakeWorker | None" = None

    def __init__(self, inbound, outbound, **kwargs):
        self.inbound = inbound
        self.outbound = outbound
        self.kwargs = kwargs
        self.outcome = Relaunch(self.outcome_path) if self.outcome_path else None
        FakeWorker.last = self

    def start(self):
        for message in self.script:
            self.outbound.put(message)
        return MagicMock()


@pytest.fixture
def fake_worker():
    FakeWorker.script = []
    FakeWorker.outcome_path = None
    FakeWorker.last = None
    with patch("aeco_launcher.commands.launcher.WorkerController", FakeWorker):
        yield FakeWorker


class TestRunCommand:
    """Tests for the run command."""

    def test_finished_exits_zero(self, fake_worker, temp_dir):
        fake_worker.script = [
            StatusMessage(PatchStatus.WORKING),
            StatusMessage(PatchStatus.FINISHED),
        ]

        runner = CliRunner()
        result = runner.invoke(main, ["run", "--no-input", "--install-root", str(temp_dir)])

        assert result.exit_code == 0, result.output
        assert fake_worker.last.kwargs["install_root"] == temp_dir.resolve()
        assert queued(fake_worker.last.inbound) == [Command.CLOSE]

    def test_failed_exits_one(self, fake_worker, temp_dir):
        fake_worker.script = [
            StatusMessage(PatchStatus.WORKING),
            InfoMessage("Server is down for maintenance"),
            StatusMessage(PatchStatus.FAILED),
        ]

        runner = CliRunner()
        result = runner.invoke(main, ["run", "--no-input", "--install-root", str(temp_dir)])

        assert result.exit_code == 1
        assert "Server is down for maintenance" in clean(result.output)

    def test_relaunch_exits_zero(self, fake_worker, temp_dir):
        fake_worker.outcome_path = temp_dir / "launcher"
        fake_worker.script = [
            StatusMessage(PatchStatus.WORKING),
            StatusMessage(PatchStatus.RELAUNCHING),
        ]

        runner = CliRunner()
        result = runner.invoke(main, ["run", "--install-root", str(temp_dir)])

        assert result.exit_code == 0
        assert "restarting" in clean(result.output)

    def test_server_url_override(self, fake_worker, temp_dir):
        fake_worker.script = [StatusMessage(PatchStatus.FINISHED)]

        runner = CliRunner()
        result = runner.invoke(
            main,
            ["run", "--no-input", "--install-root", str(temp_dir), "--server-url", "https://patch.example.com"],
        )

        assert result.exit_code == 0
        assert fake_worker.last.kwargs["config"].server.url == "https://patch.example.com/"

    def test_invalid_server_url(self, fake_worker):
        runner = CliRunner()
        result = runner.invoke(main, ["run", "--server-url", "ftp://nope"])

        assert result.exit_code == 2
        assert "Invalid server URL" in result.output

    def test_script_run_requires_install_root(self, fake_worker):
        """Outside a frozen build the entry script says nothing about the install location."""
        with patch("aeco_launcher.commands.launcher.is_frozen", return_value=False):
            runner = CliRunner()
            result = runner.invoke(main, ["run", "--no-input"])

        assert result.exit_code == 2
        assert "--install-root" in result.output
        assert fake_worker.last is None

    def test_explicit_self_exe_sets_install_root(self, fake_worker, temp_dir):
        fake_worker.script = [StatusMessage(PatchStatus.FINISHED)]
        self_exe = temp_dir / "launcher"

        runner = CliRunner()
        result = runner.invoke(main, ["run", "--no-input", "--self-exe", str(self_exe)])

        assert result.exit_code == 0, result.output
        assert fake_worker.last.kwargs["self_exe"] == self_exe
        assert fake_worker.last.kwargs["install_root"] is None

    def test_frozen_build_defaults_install_root(self, fake_worker):
        fake_worker.script = [StatusMessage(PatchStatus.FINISHED)]

        with patch("aeco_launcher.commands.launcher.is_frozen", return_value=True):
            runner = CliRunner()
            result = runner.invoke(main, ["run", "--no-input"])

        assert result.exit_code == 0, result.output
        assert fake_worker.last.kwargs["install_root"] is None

    def test_interactive_prompt(self, fake_worker, temp_dir):
        fake_worker.script = [StatusMessage(PatchStatus.FINISHED), StatusMessage(PatchStatus.LAUNCHED)]

        runner = CliRunner()
        result = runner.invoke(main, ["run", "--install-root", str(temp_dir)], input="play\n")

        assert result.exit_code == 0
        assert queued(fake_worker.last.inbound) == [Command.PLAY]
