"""Paired data/header archive store.

Game assets live in archive containers made of two files:

- ``<name>.dat`` - entry payloads stored back to back
- ``<name>.hed`` - the index describing where each entry lives

Header layout (little-endian):

- 4 bytes: magic ``AHED``
- 2 bytes: version
- 4 bytes: entry count
- per entry: 2 bytes name length, UTF-8 name, 8 bytes offset, 8 bytes size

Writes append the payload to the data file and update the in-memory index,
so they are visible to reads straight away. ``finalize`` commits the index to
the header file. Overwritten entries leave dead space in the data file until
``defrag`` rewrites it with only live entries.
"""

from __future__ import annotations

import os
import struct
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import structlog

from aeco_launcher.core.errors import ArchiveEntryNotPresent, ArchiveError

logger = structlog.get_logger()

HEADER_MAGIC = b"AHED"
HEADER_VERSION = 1
_HEADER_STRUCT = struct.Struct("<4sHI")
_ENTRY_NAME_STRUCT = struct.Struct("<H")
_ENTRY_LOCATION_STRUCT = struct.Struct("<QQ")


class ArchiveStore(Protocol):
    """Operations the archive updater needs from an archive container."""

    def read(self, name: str) -> bytes:
        """Read an entry; raises ArchiveEntryNotPresent or ArchiveError."""
        ...

    def write(self, name: str, data: bytes) -> None:
        """Add or replace an entry."""
        ...

    def finalize(self) -> None:
        """Commit the entry layout."""
        ...

    def defrag(self) -> None:
        """Reclaim space left by overwritten entries."""
        ...


class ArchiveOpener(Protocol):
    """Opens the archive stored at a data/header path pair."""

    def __call__(self, data_path: Path, header_path: Path) -> ArchiveStore: ...


@dataclass
class HeaderEntry:
    """Location of one entry inside the data file."""
    name: str
    offset: int
    size: int

    def to_bytes(self) -> bytes:
        """Serialize entry."""
        name_bytes = self.name.encode("utf-8")
        return (
            _ENTRY_NAME_STRUCT.pack(len(name_bytes))
            + name_bytes
            + _ENTRY_LOCATION_STRUCT.pack(self.offset, self.size)
        )


def parse_header(data: bytes) -> dict[str, HeaderEntry]:
    """Parse a header file.

    Args:
        data: Raw header bytes

    Returns:
        Entries keyed by name

    Raises:
        ArchiveError: If the header is truncated or has a bad magic/version
    """
    if len(data) < _HEADER_STRUCT.size:
        raise ArchiveError(f"Header too small: {len(data)} < {_HEADER_STRUCT.size}")

    magic, version, count = _HEADER_STRUCT.unpack_from(data, 0)
    if magic != HEADER_MAGIC:
        raise ArchiveError(f"Invalid header magic: {magic!r}")
    if version != HEADER_VERSION:
        raise ArchiveError(f"Unsupported header version: {version}")

    entries: dict[str, HeaderEntry] = {}
    pos = _HEADER_STRUCT.size
    try:
        for _ in range(count):
            (name_len,) = _ENTRY_NAME_STRUCT.unpack_from(data, pos)
            pos += _ENTRY_NAME_STRUCT.size
            name = data[pos:pos + name_len].decode("utf-8")
            pos += name_len
            offset, size = _ENTRY_LOCATION_STRUCT.unpack_from(data, pos)
            pos += _ENTRY_LOCATION_STRUCT.size
            entries[name] = HeaderEntry(name=name, offset=offset, size=size)
    except (struct.error, UnicodeDecodeError) as e:
        raise ArchiveError(f"Truncated or corrupt header: {e}") from e

    return entries


def build_header(entries: dict[str, HeaderEntry]) -> bytes:
    """Serialize entries to header bytes."""
    parts = [_HEADER_STRUCT.pack(HEADER_MAGIC, HEADER_VERSION, len(entries))]
    parts.extend(entry.to_bytes() for entry in entries.values())
    return b"".join(parts)


def _temp_path(path: Path) -> Path:
    return path.with_name(path.name + ".tmp")


def _atomic_write(path: Path, data: bytes) -> None:
    tmp_path = _temp_path(path)
    tmp_path.write_bytes(data)
    os.replace(tmp_path, path)


def _discard(*paths: Path) -> None:
    """Remove leftover defrag files; failures are logged."""
    for path in paths:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("archive_cleanup_failed", path=str(path), error=str(e))


class PairedArchive:
    """Archive store backed by a ``.dat``/``.hed`` file pair."""

    def __init__(self, data_path: Path, header_path: Path):
        """Open an archive; missing files open as an empty archive.

        Args:
            data_path: Path to the data file
            header_path: Path to the header file

        Raises:
            ArchiveError: If the header exists but cannot be parsed
        """
        self.data_path = data_path
        self.header_path = header_path
        self.entries: dict[str, HeaderEntry] = {}
        self.dirty = False

        if header_path.exists():
            try:
                raw = header_path.read_bytes()
            except OSError as e:
                raise ArchiveError(f"Cannot read header {header_path}: {e}") from e
            self.entries = parse_header(raw)

        logger.debug(
            "archive_opened",
            data=str(data_path),
            header=str(header_path),
            entries=len(self.entries),
        )

    @classmethod
    def open(cls, data_path: Path, header_path: Path) -> PairedArchive:
        """Open an archive pair."""
        return cls(data_path, header_path)

    def read(self, name: str) -> bytes:
        """Read an entry.

        Raises:
            ArchiveEntryNotPresent: If the entry is not in the index
            ArchiveError: If the data file cannot be read
        """
        entry = self.entries.get(name)
        if entry is None:
            raise ArchiveEntryNotPresent(name)

        try:
            with open(self.data_path, "rb") as f:
                f.seek(entry.offset)
                data = f.read(entry.size)
        except OSError as e:
            raise ArchiveError(f"Cannot read {name} from {self.data_path}: {e}") from e

        if len(data) != entry.size:
            raise ArchiveError(
                f"Short read for {name}: expected {entry.size} bytes, got {len(data)}"
            )
        return data

    def write(self, name: str, data: bytes) -> None:
        """Append an entry to the data file, replacing any previous version."""
        try:
            self.data_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.data_path, "ab") as f:
                offset = f.tell()
                f.write(data)
        except OSError as e:
            raise ArchiveError(f"Cannot write {name} to {self.data_path}: {e}") from e

        self.entries[name] = HeaderEntry(name=name, offset=offset, size=len(data))
        self.dirty = True

    def finalize(self) -> None:
        """Write the index to the header file."""
        try:
            _atomic_write(self.header_path, build_header(self.entries))
        except OSError as e:
            raise ArchiveError(f"Cannot write header {self.header_path}: {e}") from e

        self.dirty = False
        logger.debug("archive_finalized", header=str(self.header_path), entries=len(self.entries))

    def wasted_bytes(self) -> int:
        """Bytes in the data file not referenced by any entry."""
        if not self.data_path.exists():
            return 0
        live = sum(entry.size for entry in self.entries.values())
        return self.data_path.stat().st_size - live

    def defrag(self) -> None:
        """Rewrite the data file with only live entries, then re-commit the index.

        Raises:
            ArchiveError: If the archive has uncommitted writes or I/O fails
        """
        if self.dirty:
            raise ArchiveError("Archive must be finalized before it can be defragmented")

        if not self.data_path.exists():
            return

        before = self.wasted_bytes()
        data_tmp = _temp_path(self.data_path)
        header_tmp = _temp_path(self.header_path)
        backup = self.data_path.with_name(self.data_path.name + ".bak")
        compacted: dict[str, HeaderEntry] = {}

        # Both files are fully written before either is swapped in
        try:
            with open(self.data_path, "rb") as src, open(data_tmp, "wb") as dst:
                for entry in sorted(self.entries.values(), key=lambda e: e.offset):
                    src.seek(entry.offset)
                    compacted[entry.name] = HeaderEntry(
                        name=entry.name, offset=dst.tell(), size=entry.size
                    )
                    dst.write(src.read(entry.size))
            entries = {name: compacted[name] for name in self.entries}
            header_tmp.write_bytes(build_header(entries))
            os.replace(self.data_path, backup)
        except OSError as e:
            _discard(data_tmp, header_tmp)
            raise ArchiveError(f"Cannot defrag {self.data_path}: {e}") from e

        try:
            os.replace(data_tmp, self.data_path)
            os.replace(header_tmp, self.header_path)
        except OSError as e:
            # The old header still describes the old data file
            try:
                os.replace(backup, self.data_path)
            except OSError as restore_error:
                raise ArchiveError(
                    f"Cannot restore {self.data_path} after failed defrag: {restore_error}"
                ) from e
            finally:
                _discard(data_tmp, header_tmp)
            raise ArchiveError(f"Cannot commit defragmented {self.data_path}: {e}") from e

        self.entries = entries
        _discard(backup)
        logger.debug("archive_defragmented", data=str(self.data_path), reclaimed=before)


def open_paired_archive(data_path: Path, header_path: Path) -> ArchiveStore:
    """Default archive opener."""
    return PairedArchive.open(data_path, header_path)
