"""aeco-launcher - patcher and launcher for the game client.

This package keeps a local game installation in sync with the files the
patch server declares in its manifest, patches assets stored in packed
archives, and replaces its own executable when a new launcher is published.

Key modules:
- core: Manifest model, transfers, sync engine, self-update and the patch worker
- commands: CLI command implementations
"""

__version__ = "0.1.0"
__author__ = "AECO Team"

from aeco_launcher.core.types import (
    Command,
    PatchStatus,
    ServerStatus,
    WorkerState,
)

__all__ = [
    "__version__",
    "__author__",
    "Command",
    "PatchStatus",
    "ServerStatus",
    "WorkerState",
]
