"""Pytest configuration and shared fixtures for aeco_launcher tests."""

import queue
import tempfile
from collections.abc import Callable, Generator
from pathlib import Path

import httpx
import pytest

from aeco_launcher.core.config import LauncherConfig, ServerConfig
from aeco_launcher.core.messages import PatchMessage
from aeco_launcher.core.session import ServerUrls, SyncSession
from aeco_launcher.core.transfer import TransferClient

SERVER_URL = "http://patch.test/"


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmp_dir:
        yield Path(tmp_dir)


@pytest.fixture
def server_config() -> ServerConfig:
    """Server configuration pointing at the fake patch server."""
    return ServerConfig(url=SERVER_URL, timeout=5.0)


@pytest.fixture
def launcher_config(server_config: ServerConfig) -> LauncherConfig:
    """Launcher configuration with no delays."""
    return LauncherConfig(server=server_config, settle_delay=0.0, use_wine=False)


class FakeServer:
    """In-memory patch server served through httpx.MockTransport.

    Paths are relative to the server root, e.g. ``meta/status.json``.
    Every request path is recorded in ``requests``.
    """

    def __init__(self) -> None:
        self.files: dict[str, bytes] = {}
        self.requests: list[str] = []
        self.omit_length: set[str] = set()

    def add(self, path: str, data: bytes) -> None:
        self.files[path] = data

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.lstrip("/")
        self.requests.append(path)
        data = self.files.get(path)
        if data is None:
            return httpx.Response(404)
        if path in self.omit_length:
            # A generator body is sent without Content-Length
            return httpx.Response(200, content=iter([data]))
        return httpx.Response(200, content=data)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def fake_server() -> FakeServer:
    """Empty fake patch server."""
    return FakeServer()


@pytest.fixture
def transfer(
    fake_server: FakeServer, server_config: ServerConfig, temp_dir: Path
) -> Generator[TransferClient, None, None]:
    """Transfer client wired to the fake patch server."""
    client = TransferClient(server_config, temp_dir=temp_dir, transport=fake_server.transport())
    yield client
    client.close()


@pytest.fixture
def install_root(temp_dir: Path) -> Path:
    """Empty installation directory."""
    root = temp_dir / "install"
    root.mkdir()
    return root


@pytest.fixture
def session(install_root: Path, server_config: ServerConfig) -> SyncSession:
    """Fresh sync session for the install root."""
    return SyncSession(
        install_root=install_root,
        self_exe=install_root / "launcher",
        urls=ServerUrls.from_config(server_config),
    )


class RecordingReporter:
    """Collects progress messages sent by the sync engine and installer."""

    def __init__(self) -> None:
        self.downloads: list[tuple[str, float]] = []
        self.infos: list[str] = []

    def send_download(self, text: str, fraction: float) -> None:
        self.downloads.append((text, fraction))

    def send_info(self, text: str) -> None:
        self.infos.append(text)


@pytest.fixture
def reporter() -> RecordingReporter:
    """Recording progress reporter."""
    return RecordingReporter()


@pytest.fixture
def drain() -> Callable[[queue.Queue[PatchMessage]], list[PatchMessage]]:
    """Return every message currently in a queue."""

    def _drain(q: queue.Queue[PatchMessage]) -> list[PatchMessage]:
        items = []
        while True:
            try:
                items.append(q.get_nowait())
            except queue.Empty:
                return items

    return _drain


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list) -> None:
    """Mark tests without an explicit marker as unit tests."""
    for item in items:
        if not any(marker.name in ["integration", "slow"] for marker in item.iter_markers()):
            item.add_marker(pytest.mark.unit)
