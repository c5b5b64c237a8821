"""Core functionality for aeco_launcher.

This module provides the synchronization and self-update engine:
- Configuration management
- Type definitions and worker messages
- Manifest model
- Transfer client, archive updater and sync engine
- Self-update coordination
- The background patch worker
"""

from aeco_launcher.core.errors import (
    ArchiveEntryNotPresent,
    ArchiveError,
    FilesystemError,
    LauncherError,
    MaintenanceError,
    NetworkError,
    ParseError,
    PatchError,
    ProcessLaunchError,
    Severity,
)
from aeco_launcher.core.types import (
    Command,
    PatchStatus,
    ServerStatus,
    WorkerState,
)
from aeco_launcher.core.utils import (
    chunked_read,
    compute_digest,
    format_size,
    get_platform,
    hash_file,
    validate_hash_string,
)

__all__ = [
    # Types
    "Command",
    "PatchStatus",
    "ServerStatus",
    "WorkerState",
    # Errors
    "LauncherError",
    "NetworkError",
    "ParseError",
    "FilesystemError",
    "ArchiveError",
    "ArchiveEntryNotPresent",
    "ProcessLaunchError",
    "MaintenanceError",
    "PatchError",
    "Severity",
    # Utils
    "chunked_read",
    "compute_digest",
    "hash_file",
    "format_size",
    "get_platform",
    "validate_hash_string",
]
