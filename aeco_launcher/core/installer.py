"""Base game installation from the packaged ZIP."""

from __future__ import annotations

import shutil
import zipfile
from pathlib import Path, PurePosixPath
from typing import BinaryIO

import structlog

from aeco_launcher.core.errors import FilesystemError, reraise_as
from aeco_launcher.core.session import SyncSession
from aeco_launcher.core.sync import ProgressReporter
from aeco_launcher.core.transfer import TransferClient
from aeco_launcher.core.utils import format_size, is_windows

logger = structlog.get_logger()


def progress_text(label: str, downloaded: int, total: int | None) -> tuple[str, float]:
    """Format a byte-count progress update.

    Without a declared total only the byte count is shown and the fraction
    is reported as 1.0.

    Returns:
        (text, fraction)
    """
    if total is None:
        return f"{label} ({format_size(downloaded)})", 1.0
    downloaded = min(downloaded, total)
    fraction = downloaded / total if total else 1.0
    return f"{label} ({format_size(downloaded)} / {format_size(total)})", fraction


def enclosed_path(root: Path, member: str) -> Path:
    """Resolve a ZIP member name inside ``root``.

    Raises:
        FilesystemError: If the member is absolute or escapes the root
    """
    parts = PurePosixPath(member.replace("\\", "/")).parts
    if not parts or parts[0] == "/" or ".." in parts or ":" in parts[0]:
        raise FilesystemError(f"Invalid file path in base archive: {member!r}")
    return root.joinpath(*parts)


class BaseInstaller:
    """Makes sure the game is installed in the install root."""

    def __init__(
        self,
        session: SyncSession,
        transfer: TransferClient,
        reporter: ProgressReporter,
        game_executable: str,
    ):
        self.session = session
        self.transfer = transfer
        self.reporter = reporter
        self.game_executable = game_executable

    def is_installed(self) -> bool:
        """Whether the game executable is present in the install root."""
        return (self.session.install_root / self.game_executable).is_file()

    def ensure_installed(self) -> None:
        """Download and unpack the base game if it is not installed.

        Raises:
            PatchError: If the download or extraction fails
        """
        self.reporter.send_download("Checking game installation", 1.0)
        if self.is_installed():
            return

        logger.info("base_install_start", root=str(self.session.install_root))
        self.reporter.send_download("Downloading game since it is not installed", 0.0)

        with reraise_as("Failed while downloading base game"):
            base_file = self.transfer.fetch_to_temp_file(
                self.session.urls.game_zip, self._download_progress
            )

        with base_file, reraise_as("Failed while unpacking base game"):
            self.unpack(base_file)

    def _download_progress(self, downloaded: int, total: int | None) -> None:
        text, fraction = progress_text("Downloading base game", downloaded, total)
        self.reporter.send_download(text, fraction)

    def unpack(self, base_file: BinaryIO) -> None:
        """Extract the base archive into the install root, reporting progress."""
        root = self.session.install_root
        try:
            archive = zipfile.ZipFile(base_file)
        except zipfile.BadZipFile as e:
            raise FilesystemError(f"Base game archive is not a valid ZIP: {e}") from e

        with archive:
            members = archive.infolist()
            total_bytes = sum(info.file_size for info in members)
            pretty_total = format_size(total_bytes)
            extracted = 0

            self.reporter.send_download("Extracting base game", 0.0)

            for index, info in enumerate(members, start=1):
                fraction = extracted / total_bytes if total_bytes else 1.0
                self.reporter.send_download(
                    f"Extracting file {index} of {len(members)} "
                    f"({format_size(extracted)} / {pretty_total})",
                    fraction,
                )

                out_path = enclosed_path(root, info.filename)
                try:
                    if info.is_dir():
                        out_path.mkdir(parents=True, exist_ok=True)
                    else:
                        out_path.parent.mkdir(parents=True, exist_ok=True)
                        with archive.open(info) as src, open(out_path, "wb") as dst:
                            shutil.copyfileobj(src, dst)
                    mode = info.external_attr >> 16
                    if mode and not is_windows():
                        out_path.chmod(mode & 0o7777)
                except OSError as e:
                    raise FilesystemError(f"Could not extract {info.filename}: {e}") from e

                extracted += info.file_size

        self.reporter.send_download("Finished installing base game", 1.0)
        logger.info("base_install_complete", files=len(members), size=total_bytes)
