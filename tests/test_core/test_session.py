"""Tests for session.py module."""

from pathlib import Path

from aeco_launcher.core.config import ServerConfig
from aeco_launcher.core.session import ServerUrls, SyncSession


class TestServerUrls:
    def test_default_layout(self):
        urls = ServerUrls.from_config(ServerConfig(url="https://patch.example.com/eco"))

        assert str(urls.server) == "https://patch.example.com/eco/"
        assert str(urls.game_base) == "https://patch.example.com/eco/base/"
        assert str(urls.game_zip) == "https://patch.example.com/eco/base/base.zip"
        assert str(urls.patchlist) == "https://patch.example.com/eco/meta/patchlist.json"
        assert str(urls.status) == "https://patch.example.com/eco/meta/status.json"
        assert str(urls.patch) == "https://patch.example.com/eco/patch/"


class TestSyncSession:
    def make_session(self) -> SyncSession:
        return SyncSession(
            install_root=Path("/game"),
            self_exe=Path("/game/launcher"),
            urls=ServerUrls.from_config(ServerConfig()),
        )

    def test_progress_empty_platform(self):
        session = self.make_session()
        session.start_platform("all", 0)
        assert session.progress == 1.0

    def test_progress(self):
        session = self.make_session()
        session.start_platform("all", 4)
        session.checked_files = 1
        assert session.progress == 0.25

    def test_progress_capped(self):
        session = self.make_session()
        session.start_platform("all", 1)
        session.checked_files = 3
        assert session.progress == 1.0

    def test_start_platform_resets(self):
        session = self.make_session()
        session.start_platform("all", 2)
        session.checked_files = 2
        session.start_platform("linux-x86_64", 5)

        assert session.platform == "linux-x86_64"
        assert session.checked_files == 0
        assert session.total_files == 5
