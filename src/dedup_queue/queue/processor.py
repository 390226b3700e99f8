"""Processing pass: lock, snapshot, execute, log and archive each entry."""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from pathlib import Path
from typing import BinaryIO

from dedup_queue.common import utc_now
from dedup_queue.queue.entry import ActionEntry, EntryKind
from dedup_queue.queue.lock import ExclusionLock, StopSignals
from dedup_queue.queue.store import ArchiveStore, QueuedEntry, QueueStore

logger = logging.getLogger(__name__)


class PassOutcome(StrEnum):
    DID_WORK = "did_work"
    NO_OP = "no_op"


@dataclass(slots=True)
class PassSummary:
    """Aggregate counters for one processing pass."""

    outcome: PassOutcome = PassOutcome.NO_OP
    processed: int = 0
    launch_failures: int = 0
    archived: list[Path] = field(default_factory=list)


class CommandLogs:
    """Append-only per-key log files with start/end markers."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory

    def path_for(self, key: str) -> Path:
        return self.directory / f"{key}.log"

    def open(self, key: str) -> BinaryIO:
        self.directory.mkdir(parents=True, exist_ok=True)
        return self.path_for(key).open("ab")


def start_marker(key: str, at: datetime) -> bytes:
    return f"===== start {key} {at.isoformat()} =====\n".encode()


def end_marker(key: str, at: datetime) -> bytes:
    return f"===== end {key} {at.isoformat()} =====\n".encode()


class QueueProcessor:
    """Runs queued entries sequentially under the exclusion lock.

    Idle -> Locked -> Iterating -> Completed (no-op or did-work) -> Unlocked.
    A held lock ends the pass with ``LockUnavailableError`` before anything is
    touched. Each entry is claimed out of its slot before it runs and renamed
    into the archive afterwards, so an enqueue of the same key during the run
    lands in the queue for the next pass. Exit statuses of actions are not
    inspected: every entry that was run is archived, whether it succeeded or not.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        queue: QueueStore,
        archive: ArchiveStore,
        lock: ExclusionLock,
        logs: CommandLogs,
        shell: str = "/bin/sh",
        now: Callable[[], datetime] = utc_now,
        poll_interval_seconds: float = 0.1,
    ) -> None:
        self.queue = queue
        self.archive = archive
        self.lock = lock
        self.logs = logs
        self.shell = shell
        self.now = now
        self.poll_interval_seconds = poll_interval_seconds

    def process(self) -> PassSummary:
        """Process a point-in-time snapshot of the queue in key order."""

        summary = PassSummary()
        with StopSignals() as stop, self.lock.hold():
            recovered = self.queue.recover_claimed()
            if recovered:
                logger.warning("Re-queued %d entries left running by a killed pass", recovered)
            snapshot = self.queue.list_entries()
            logger.info("Processing %d queued entries", len(snapshot))
            for queued in snapshot:
                stop.raise_if_requested()
                claimed = self.queue.claim(queued)
                if claimed is None:
                    logger.info("Entry %s disappeared before it ran", queued.key)
                    continue
                try:
                    launched = self._run_entry(claimed, stop)
                except BaseException:
                    self.queue.restore(claimed)
                    raise
                summary.archived.append(self.archive.archive(claimed, completed_at=self.now()))
                summary.processed += 1
                if not launched:
                    summary.launch_failures += 1
            stop.raise_if_requested()
        if summary.processed:
            summary.outcome = PassOutcome.DID_WORK
        return summary

    def _run_entry(self, claimed: QueuedEntry, stop: StopSignals) -> bool:
        logger.info("Starting entry %s", claimed.key)
        with self.logs.open(claimed.key) as log_handle:
            log_handle.write(start_marker(claimed.key, self.now()))
            log_handle.flush()
            launched = self._execute(claimed, log_handle, stop)
            log_handle.write(end_marker(claimed.key, self.now()))
        logger.info("Finished entry %s", claimed.key)
        return launched

    def _execute(self, claimed: QueuedEntry, log_handle: BinaryIO, stop: StopSignals) -> bool:
        try:
            entry = claimed.load()
        except (OSError, ValueError) as error:
            logger.error("Entry %s is unreadable: %s", claimed.key, error)
            log_handle.write(f"unreadable entry: {error}\n".encode())
            return False

        try:
            process = subprocess.Popen(  # noqa: S603
                self._argv(entry),
                env=entry.environment.to_process_env(),
                stdin=subprocess.DEVNULL,
                stdout=log_handle,
                stderr=subprocess.STDOUT,
            )
        except (OSError, ValueError) as error:
            logger.error("Entry %s failed to start: %s", claimed.key, error)
            log_handle.write(f"failed to start: {error}\n".encode())
            return False

        while True:
            try:
                returncode = process.wait(timeout=self.poll_interval_seconds)
                break
            except subprocess.TimeoutExpired:
                if stop.requested:
                    _terminate_process(process)
                    stop.raise_if_requested()
        logger.debug("Entry %s exited with status %s", claimed.key, returncode)
        return True

    def _argv(self, entry: ActionEntry) -> list[str | bytes]:
        if entry.kind is EntryKind.PATH:
            return [str(entry.command)]
        return [self.shell, "-c", entry.script or b""]


def _terminate_process(process: subprocess.Popen[bytes]) -> None:
    try:
        process.terminate()
    except OSError:
        return
    try:
        process.wait(timeout=2)
    except subprocess.TimeoutExpired:
        try:
            process.kill()
        except OSError:
            return
        process.wait(timeout=2)
