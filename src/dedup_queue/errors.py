"""Error taxonomy and CLI exit codes."""

from __future__ import annotations

from enum import IntEnum
from pathlib import Path


class ExitCode(IntEnum):
    """Process exit statuses scripts can branch on."""

    OK = 0
    INVALID_INPUT = 1
    QUEUE_EMPTY = 1
    USAGE = 2
    LOCK_UNAVAILABLE = 3
    DUPLICATE = 4
    MISSING_DEPENDENCY = 5


class DedupQueueError(Exception):
    """Base class for queue errors reported to the caller."""

    exit_code: int = 1


class InvalidInputError(DedupQueueError):
    """Action is neither an executable file nor readable stdin content."""

    exit_code = ExitCode.INVALID_INPUT


class DuplicateActionError(DedupQueueError):
    """A live entry already exists for the computed key."""

    exit_code = ExitCode.DUPLICATE

    def __init__(self, key: str) -> None:
        super().__init__(f"Action already queued: {key}")
        self.key = key


class LockUnavailableError(DedupQueueError):
    """Another processing pass holds the exclusion lock."""

    exit_code = ExitCode.LOCK_UNAVAILABLE

    def __init__(self, lock_path: Path, owner: str | None = None) -> None:
        message = f"Queue is being processed by another pass (lock: {lock_path})"
        if owner:
            message = f"{message} held by {owner}"
        super().__init__(message)
        self.lock_path = lock_path
        self.owner = owner


class MissingDependencyError(DedupQueueError):
    """No usable hash algorithm for stdin-derived keys."""

    exit_code = ExitCode.MISSING_DEPENDENCY


class PassInterruptedError(DedupQueueError):
    """Processing pass was terminated by a signal."""

    def __init__(self, signum: int, signal_name: str) -> None:
        super().__init__(f"Processing interrupted by {signal_name}")
        self.signum = signum
        self.signal_name = signal_name
        self.exit_code = 128 + signum
