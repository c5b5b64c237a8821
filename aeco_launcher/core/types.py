"""Core type definitions for aeco_launcher."""

from enum import StrEnum


class ServerStatus(StrEnum):
    """Patch server status as published in meta/status.json."""
    ONLINE = "Online"
    MAINTENANCE = "Maintenance"


class PatchStatus(StrEnum):
    """Result of a worker step, reported to the presentation layer."""
    WORKING = "working"
    FINISHED = "finished"
    FAILED = "failed"
    LAUNCHED = "launched"
    RELAUNCHING = "relaunching"


class WorkerState(StrEnum):
    """States of the worker controller."""
    WORKING = "working"
    FINISHED = "finished"
    FAILED = "failed"
    LAUNCHING = "launching"
    TERMINATED = "terminated"

    @property
    def awaiting_input(self) -> bool:
        """Whether the worker is waiting for a command in this state."""
        return self in (WorkerState.FINISHED, WorkerState.FAILED)


class Command(StrEnum):
    """Commands sent from the presentation layer to the worker."""
    RETRY = "retry"
    PLAY = "play"
    CLOSE = "close"
