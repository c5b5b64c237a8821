"""Launcher error taxonomy and classification.

Every failure that reaches the worker is wrapped in a :class:`PatchError`
carrying a severity, the message shown to the user and the underlying
cause. Severity only decides how the message is presented:

- LOW: expected conditions such as server maintenance, shown as information
- HIGH: everything else, shown as an error
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from enum import StrEnum

import structlog

logger = structlog.get_logger()


class LauncherError(Exception):
    """Base class for launcher failures.

    Attributes:
        message: Description of what failed
    """

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NetworkError(LauncherError):
    """Raised on transport failure or a non-success response status."""

    def __init__(self, message: str, *, url: str | None = None, status_code: int | None = None):
        self.url = url
        self.status_code = status_code
        super().__init__(message)


class ParseError(LauncherError):
    """Raised when a manifest or server status document is malformed."""


class FilesystemError(LauncherError):
    """Raised when a local file operation fails."""


class ArchiveError(LauncherError):
    """Raised when an archive store operation fails."""


class ArchiveEntryNotPresent(ArchiveError):
    """Raised by an archive store read when the entry does not exist."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Entry not present in archive: {name}")


class ProcessLaunchError(LauncherError):
    """Raised when a detached process cannot be started."""


class MaintenanceError(LauncherError):
    """Raised when the patch server reports it is under maintenance."""


class Severity(StrEnum):
    """How alarming a failure should look to the user."""
    LOW = "low"
    HIGH = "high"


class PatchError(Exception):
    """A classified failure ready to be shown to the user.

    Attributes:
        severity: Presentation severity
        message: Friendly message displayed by the presentation layer
        cause: The underlying exception
    """

    def __init__(self, message: str, cause: BaseException, severity: Severity = Severity.HIGH):
        self.message = message
        self.cause = cause
        self.severity = severity
        super().__init__(message)

    def __str__(self) -> str:
        return f"{self.message}: {self.cause}"


def classify(error: BaseException, message: str) -> PatchError:
    """Classify an exception into a PatchError.

    Args:
        error: The failure to classify
        message: Friendly message to show the user

    Returns:
        Classified error; already classified errors are returned unchanged
    """
    if isinstance(error, PatchError):
        return error
    if isinstance(error, MaintenanceError):
        return PatchError(message, error, Severity.LOW)
    return PatchError(message, error, Severity.HIGH)


@contextmanager
def reraise_as(message: str) -> Iterator[None]:
    """Classify any exception raised in the block and re-raise it.

    Example:
        >>> with reraise_as("Failed to get patch info"):
        ...     fetch_manifest()
    """
    try:
        yield
    except PatchError:
        raise
    except Exception as e:
        raise classify(e, message) from e
