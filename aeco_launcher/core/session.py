"""Per-attempt patch session state."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import httpx

from aeco_launcher.core.config import ServerConfig


@dataclass(frozen=True)
class ServerUrls:
    """Patch server endpoints derived from the server root."""

    server: httpx.URL
    game_base: httpx.URL
    game_zip: httpx.URL
    patchlist: httpx.URL
    status: httpx.URL
    patch: httpx.URL

    @classmethod
    def from_config(cls, config: ServerConfig) -> ServerUrls:
        """Build the endpoint set for a server configuration."""
        server = httpx.URL(config.url)
        game_base = server.join(config.base_dir)
        meta = server.join(config.meta_dir)
        return cls(
            server=server,
            game_base=game_base,
            game_zip=game_base.join(config.base_archive),
            patchlist=meta.join(config.patchlist),
            status=meta.join(config.status),
            patch=server.join(config.patch_dir),
        )


@dataclass
class SyncSession:
    """State of one Retry attempt.

    Created fresh for every attempt and discarded when it ends.
    """

    install_root: Path
    self_exe: Path
    urls: ServerUrls
    platform: str = ""
    checked_files: int = 0
    total_files: int = 0
    pending_self_update: Path | None = None

    def start_platform(self, platform: str, total_files: int) -> None:
        """Reset the counters for a new platform traversal."""
        self.platform = platform
        self.checked_files = 0
        self.total_files = total_files

    @property
    def progress(self) -> float:
        """Fraction of the current platform's files checked so far."""
        if self.total_files <= 0:
            return 1.0
        return min(self.checked_files / self.total_files, 1.0)
