"""Reconcile archive contents against a manifest archive node."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from urllib.parse import quote

import httpx
import structlog

from aeco_launcher.core.archive_store import ArchiveOpener, ArchiveStore, open_paired_archive
from aeco_launcher.core.errors import ArchiveEntryNotPresent, ArchiveError
from aeco_launcher.core.manifest import ArchiveEntry, ArchiveNode
from aeco_launcher.core.transfer import TransferClient
from aeco_launcher.core.utils import compute_digest, digests_match

logger = structlog.get_logger()

DATA_SUFFIX = ".dat"
HEADER_SUFFIX = ".hed"


def archive_paths(disk_dir: Path, name: str) -> tuple[Path, Path]:
    """Get the (data, header) paths of an archive in a directory.

    The suffix replaces any extension already present in ``name``.
    """
    base = disk_dir / name
    return base.with_suffix(DATA_SUFFIX), base.with_suffix(HEADER_SUFFIX)


def entry_matches(store: ArchiveStore, entry: ArchiveEntry) -> bool:
    """Check whether an archive holds an up to date copy of an entry.

    A missing entry does not match.

    Raises:
        ArchiveError: If the store fails for any reason other than absence
    """
    try:
        data = store.read(entry.name)
    except ArchiveEntryNotPresent:
        return False
    return digests_match(entry.digest, compute_digest(data))


class ArchiveUpdater:
    """Bring one archive on disk in line with its manifest entry list."""

    def __init__(
        self,
        transfer: TransferClient,
        opener: ArchiveOpener = open_paired_archive,
    ):
        self.transfer = transfer
        self.opener = opener

    def update(
        self,
        archive: ArchiveNode,
        disk_dir: Path,
        net_path: httpx.URL,
        on_entry_checked: Callable[[ArchiveEntry], None] | None = None,
    ) -> int:
        """Check every declared entry, fetching and writing outdated ones.

        When anything changed the archive is finalized and then defragmented,
        each exactly once.

        Args:
            archive: Manifest archive node
            disk_dir: Directory containing the archive files
            net_path: URL the entries are fetched relative to (trailing slash)
            on_entry_checked: Called after each entry has been handled

        Returns:
            Number of entries written

        Raises:
            ArchiveError: If the archive cannot be opened, read or committed
            NetworkError: If an entry cannot be downloaded
        """
        data_path, header_path = archive_paths(disk_dir, archive.name)
        try:
            store = self.opener(data_path, header_path)
        except ArchiveError as e:
            raise ArchiveError(f"Couldn't open archive {archive.name}") from e

        written = 0
        for entry in archive.files:
            try:
                matches = entry_matches(store, entry)
            except ArchiveError as e:
                raise ArchiveError(f"Failed while reading {archive.name}") from e

            if not matches:
                url = net_path.join(quote(entry.name))
                logger.info("archive_entry_download", url=str(url), archive=str(data_path))
                data = self.transfer.fetch_to_memory(url)
                try:
                    store.write(entry.name, data)
                except ArchiveError as e:
                    raise ArchiveError(f"Couldn't write to archive {archive.name}") from e
                written += 1

            if on_entry_checked is not None:
                on_entry_checked(entry)

        if written:
            try:
                store.finalize()
            except ArchiveError as e:
                raise ArchiveError(f"Couldn't finalize archive {archive.name}") from e
            try:
                store.defrag()
            except ArchiveError as e:
                raise ArchiveError(f"Couldn't defrag archive {archive.name}") from e
            logger.info("archive_updated", archive=archive.name, written=written)

        return written
