"""Manifest-driven file synchronization.

Walks a platform subtree of the patch manifest against the install root and
the matching patch URL, fetching every file whose digest differs from the
local copy. Archive nodes are handed to :class:`ArchiveUpdater`; the running
launcher executable is handed to :class:`SelfUpdateCoordinator`.
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path
from typing import Protocol
from urllib.parse import quote

import httpx
import structlog

from aeco_launcher.core.archive_updater import ArchiveUpdater
from aeco_launcher.core.errors import FilesystemError, reraise_as
from aeco_launcher.core.manifest import (
    ArchiveNode,
    DirectoryNode,
    FileNode,
    count_leaf_files,
    find_child_directory,
)
from aeco_launcher.core.self_update import SelfUpdateCoordinator
from aeco_launcher.core.session import SyncSession
from aeco_launcher.core.transfer import TransferClient
from aeco_launcher.core.utils import digests_match, hash_file

logger = structlog.get_logger()

ALL_PLATFORMS = "all"
ARCHIVE_URL_SUFFIX = ".archive/"


class ProgressReporter(Protocol):
    """Receives progress updates from the sync engine."""

    def send_download(self, text: str, fraction: float) -> None: ...

    def send_info(self, text: str) -> None: ...


def join_segment(url: httpx.URL, name: str, directory: bool = False) -> httpx.URL:
    """Join a manifest name onto a URL.

    Directory segments get a trailing slash so later joins nest under them
    instead of replacing them.
    """
    segment = quote(name)
    if directory:
        segment += "/"
    return url.join(segment)


def child_path(disk_dir: Path, name: str) -> Path:
    """Resolve a manifest name inside a directory.

    Raises:
        FilesystemError: If the name would leave the directory
    """
    if not name or name in (".", "..") or "/" in name or "\\" in name:
        raise FilesystemError(f"Refusing unsafe manifest entry name: {name!r}")
    return disk_dir / name


class SyncEngine:
    """Recursive diff-and-fetch over manifest subtrees."""

    def __init__(
        self,
        session: SyncSession,
        transfer: TransferClient,
        self_update: SelfUpdateCoordinator,
        reporter: ProgressReporter,
        archive_updater: ArchiveUpdater | None = None,
    ):
        self.session = session
        self.transfer = transfer
        self.self_update = self_update
        self.reporter = reporter
        self.archive_updater = archive_updater or ArchiveUpdater(transfer)

    def sync(self, manifest: FileNode | DirectoryNode | ArchiveNode, platforms: Iterable[str]) -> None:
        """Synchronize each platform subtree of the manifest in order.

        Platforms missing from the manifest are skipped.

        Raises:
            PatchError: If any file of a platform could not be brought up to date
        """
        for platform in platforms:
            platform_dir = find_child_directory(manifest, platform)
            if platform_dir is None:
                logger.info("platform_not_in_manifest", platform=platform)
                continue

            with reraise_as(f"Failed to check files for platform '{platform}'"):
                self.sync_platform(platform_dir)

    def sync_platform(self, platform_dir: DirectoryNode) -> int:
        """Synchronize one platform subtree.

        Args:
            platform_dir: Top level manifest directory named after the platform

        Returns:
            Number of files checked
        """
        platform = platform_dir.name
        platform_url = join_segment(self.session.urls.patch, platform, directory=True)
        total_files = count_leaf_files(platform_dir)
        self.session.start_platform(platform, total_files)

        logger.info("platform_sync_start", platform=platform, total_files=total_files)
        self._check_dir(platform_dir, self.session.install_root, platform_url)

        checked = self.session.checked_files
        if checked != total_files:
            logger.warning(
                "platform_file_count_mismatch",
                platform=platform,
                checked=checked,
                total=total_files,
            )

        self.reporter.send_info(f"{total_files} files checked for platform '{platform}'")
        return checked

    def _check_dir(self, directory: DirectoryNode, disk_dir: Path, net_path: httpx.URL) -> None:
        for child in directory.children:
            if isinstance(child, FileNode):
                self._check_file(
                    child,
                    child_path(disk_dir, child.name),
                    join_segment(net_path, child.name),
                )
            elif isinstance(child, DirectoryNode):
                self._check_dir(
                    child,
                    child_path(disk_dir, child.name),
                    join_segment(net_path, child.name, directory=True),
                )
            elif isinstance(child, ArchiveNode):
                child_path(disk_dir, child.name)  # rejects unsafe names
                self.archive_updater.update(
                    child,
                    disk_dir,
                    join_segment(net_path, child.name + ARCHIVE_URL_SUFFIX),
                    on_entry_checked=lambda _entry: self._file_checked(),
                )

    def _check_file(self, file: FileNode, disk_path: Path, net_path: httpx.URL) -> None:
        if not disk_path.exists():
            logger.info("file_download_new", url=str(net_path), path=str(disk_path))
            self._write(disk_path, self.transfer.fetch_to_memory(net_path))
        else:
            try:
                local_digest = hash_file(disk_path)
            except OSError as e:
                raise FilesystemError(f"Could not read {disk_path}: {e}") from e

            if not digests_match(file.digest, local_digest):
                logger.info("file_download_update", url=str(net_path), path=str(disk_path))
                data = self.transfer.fetch_to_memory(net_path)
                if self.self_update.is_self(disk_path):
                    self.self_update.stage(data, self.session)
                else:
                    self._write(disk_path, data)

        self._file_checked()

    def _write(self, path: Path, data: bytes) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            raise FilesystemError(f"Could not write {path}: {e}") from e

    def _file_checked(self) -> None:
        session = self.session
        session.checked_files += 1
        self.reporter.send_download(
            f"Checking file {session.checked_files} / {session.total_files} "
            f"for platform '{session.platform}'",
            session.progress,
        )
