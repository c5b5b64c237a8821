"""Tests for self_update.py module."""

import shutil
from unittest.mock import Mock, patch

import pytest

from aeco_launcher.core.config import SelfUpdateConfig
from aeco_launcher.core.errors import FilesystemError
from aeco_launcher.core.self_update import Relaunch, SelfUpdateCoordinator


@pytest.fixture
def sleep():
    return Mock()


class TestStaging:
    """Test phase one: staging a replacement."""

    def test_staged_path(self, install_root):
        coordinator = SelfUpdateCoordinator(install_root / "launcher.exe")
        assert coordinator.staged_path == install_root / "launcher.exe.aecoupdate"

    def test_is_staged_copy(self, install_root):
        assert not SelfUpdateCoordinator(install_root / "launcher.exe").is_staged_copy
        assert SelfUpdateCoordinator(install_root / "launcher.exe.aecoupdate").is_staged_copy

    def test_custom_extension(self, install_root):
        coordinator = SelfUpdateCoordinator(
            install_root / "launcher.upd", SelfUpdateConfig(extension="upd")
        )
        assert coordinator.is_staged_copy

    def test_stage_records_pending(self, install_root, session):
        coordinator = SelfUpdateCoordinator(session.self_exe)

        path = coordinator.stage(b"new", session)

        assert path.read_bytes() == b"new"
        assert session.pending_self_update == path
        assert coordinator.pending_relaunch(session) == Relaunch(path)

    def test_no_pending_relaunch(self, session):
        assert SelfUpdateCoordinator(session.self_exe).pending_relaunch(session) is None

    def test_is_self(self, install_root):
        coordinator = SelfUpdateCoordinator(install_root / "launcher")
        assert coordinator.is_self(install_root / "sub" / ".." / "launcher")
        assert not coordinator.is_self(install_root / "other")


class TestRestoreOnStartup:
    """Test phase two: restoring the original name."""

    def test_restore_copies_and_relaunches(self, install_root, sleep):
        staged = install_root / "launcher.exe.aecoupdate"
        staged.write_bytes(b"new launcher")
        (install_root / "launcher.exe").write_bytes(b"old launcher")

        outcome = SelfUpdateCoordinator(staged, sleep=sleep).restore_on_startup()

        assert outcome == Relaunch(install_root / "launcher.exe")
        assert (install_root / "launcher.exe").read_bytes() == b"new launcher"
        sleep.assert_not_called()

    def test_restore_retries_then_succeeds(self, install_root, sleep):
        staged = install_root / "launcher.aecoupdate"
        staged.write_bytes(b"new")
        real_copy = shutil.copyfile
        attempts = []

        def flaky_copy(src, dst):
            attempts.append(dst)
            if len(attempts) < 3:
                raise PermissionError("file in use")
            return real_copy(src, dst)

        with patch("aeco_launcher.core.self_update.shutil.copyfile", side_effect=flaky_copy):
            outcome = SelfUpdateCoordinator(staged, sleep=sleep).restore_on_startup()

        assert outcome == Relaunch(install_root / "launcher")
        assert len(attempts) == 3
        assert sleep.call_count == 2

    def test_restore_gives_up_after_five_attempts(self, install_root, sleep):
        """Five failed copies with fixed delays fail the pass and start nothing."""
        staged = install_root / "launcher.aecoupdate"
        staged.write_bytes(b"new")
        copy = Mock(side_effect=PermissionError("file in use"))

        with patch("aeco_launcher.core.self_update.shutil.copyfile", copy):
            with pytest.raises(FilesystemError):
                SelfUpdateCoordinator(staged, sleep=sleep).restore_on_startup()

        assert copy.call_count == 5
        assert sleep.call_count == 4
        assert all(call.args == (0.25,) for call in sleep.call_args_list)
        assert not (install_root / "launcher").exists()

    def test_normal_start_removes_stale_copy(self, install_root, sleep):
        (install_root / "launcher").write_bytes(b"current")
        stale = install_root / "launcher.aecoupdate"
        stale.write_bytes(b"leftover")

        outcome = SelfUpdateCoordinator(install_root / "launcher", sleep=sleep).restore_on_startup()

        assert outcome is None
        assert not stale.exists()

    def test_normal_start_without_stale_copy(self, install_root, sleep):
        outcome = SelfUpdateCoordinator(install_root / "launcher", sleep=sleep).restore_on_startup()

        assert outcome is None
        sleep.assert_not_called()

    def test_cleanup_failure_is_not_fatal(self, install_root, sleep):
        stale = install_root / "launcher.aecoupdate"
        stale.write_bytes(b"leftover")

        with patch("pathlib.Path.unlink", side_effect=PermissionError("locked")):
            outcome = SelfUpdateCoordinator(install_root / "launcher", sleep=sleep).restore_on_startup()

        assert outcome is None
        assert stale.exists()
        assert sleep.call_count == 4
