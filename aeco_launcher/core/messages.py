"""Messages sent from the patch worker to the presentation layer."""

from __future__ import annotations

from dataclasses import dataclass

from aeco_launcher.core.types import PatchStatus


@dataclass(frozen=True)
class ErrorMessage:
    """A failure the user should be alarmed by."""
    text: str


@dataclass(frozen=True)
class DownloadingMessage:
    """Progress of the current step; fraction is in [0, 1]."""
    text: str
    fraction: float


@dataclass(frozen=True)
class InfoMessage:
    """Informational text."""
    text: str


@dataclass(frozen=True)
class StatusMessage:
    """Outcome of a worker step."""
    status: PatchStatus


PatchMessage = ErrorMessage | DownloadingMessage | InfoMessage | StatusMessage
