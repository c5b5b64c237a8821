"""Shared utilities for aeco-launcher."""

from __future__ import annotations

import hashlib
import os
import platform
import stat
import sys
from collections.abc import Iterator
from pathlib import Path
from typing import BinaryIO

_OS_NAMES = {
    "win32": "windows",
    "cygwin": "windows",
    "darwin": "macos",
}

_ARCH_NAMES = {
    "amd64": "x86_64",
    "x64": "x86_64",
    "arm64": "aarch64",
    "armv8": "aarch64",
    "i386": "x86",
    "i686": "x86",
}


def compute_digest(data: bytes) -> str:
    """Compute the content digest used in patch manifests.

    Args:
        data: File content

    Returns:
        Lowercase hex SHA-256 digest

    Example:
        >>> compute_digest(b"hello")[:16]
        '2cf24dba5fb0a30e'
    """
    return hashlib.sha256(data).hexdigest()


def chunked_read(
    stream: BinaryIO,
    chunk_size: int = 65536
) -> Iterator[bytes]:
    """Read stream in chunks.

    Args:
        stream: Binary stream to read from
        chunk_size: Size of each chunk in bytes

    Yields:
        Data chunks as bytes

    Raises:
        ValueError: If chunk_size is not positive
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")

    while True:
        chunk = stream.read(chunk_size)
        if not chunk:
            break
        yield chunk


def hash_file(path: Path) -> str:
    """Compute the content digest of a file on disk without loading it whole.

    Args:
        path: File to hash

    Returns:
        Lowercase hex SHA-256 digest
    """
    hasher = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in chunked_read(f):
            hasher.update(chunk)
    return hasher.hexdigest()


def digests_match(expected: str, actual: str) -> bool:
    """Compare two hex digests, ignoring case."""
    return expected.lower() == actual.lower()


def validate_hash_string(hash_str: str) -> bool:
    """Validate hex hash string.

    Args:
        hash_str: Hash string to validate

    Returns:
        True if valid hex string, False otherwise

    Example:
        >>> validate_hash_string("deadbeef")
        True
        >>> validate_hash_string("invalid")
        False
    """
    if not hash_str or hash_str != hash_str.strip() or ' ' in hash_str or '\t' in hash_str:
        return False
    try:
        bytes.fromhex(hash_str)
        return True
    except ValueError:
        return False


def format_size(size: int) -> str:
    """Format byte size as human-readable string.

    Args:
        size: Size in bytes

    Returns:
        Formatted string with appropriate binary unit (e.g., "1.5 KiB")

    Example:
        >>> format_size(1024)
        '1.0 KiB'
        >>> format_size(1536)
        '1.5 KiB'
    """
    if size < 0:
        return "0 B"

    size_float = float(size)
    for unit in ["B", "KiB", "MiB", "GiB", "TiB"]:
        if size_float < 1024.0:
            if unit == "B":
                return f"{int(size_float)} {unit}"
            return f"{size_float:.1f} {unit}"
        size_float /= 1024.0
    return f"{size_float:.1f} PiB"


def get_platform() -> str:
    """Get the identifier of the host platform.

    The identifier names the manifest subtree holding platform specific
    files, e.g. ``windows-x86_64``, ``linux-x86`` or ``macos-aarch64``.
    """
    os_name = _OS_NAMES.get(sys.platform, sys.platform.rstrip("0123456789"))
    machine = platform.machine().lower()
    arch = _ARCH_NAMES.get(machine, machine)
    return f"{os_name}-{arch}"


def is_windows() -> bool:
    """Check whether the host is Windows."""
    return os.name == "nt"


def set_executable(path: Path) -> None:
    """Mark a file as executable on POSIX hosts; no-op on Windows.

    Args:
        path: File to update
    """
    if is_windows():
        return
    mode = path.stat().st_mode
    path.chmod(mode | stat.S_IXUSR | stat.S_IXGRP)


def is_frozen() -> bool:
    """Check whether the launcher runs as a bundled executable."""
    return bool(getattr(sys, "frozen", False))


def current_executable() -> Path:
    """Get the path of the running launcher.

    A frozen build runs as its own executable; otherwise the entry script
    stands in for it.
    """
    if is_frozen():
        return Path(sys.executable).resolve()
    return Path(sys.argv[0]).resolve()
