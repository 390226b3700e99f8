"""Directory-backed queue and archive stores."""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from pathlib import Path

from dedup_queue.common import compact_stamp
from dedup_queue.config import QueueLayout
from dedup_queue.errors import InvalidInputError
from dedup_queue.queue.entry import ActionEntry

logger = logging.getLogger(__name__)

TEMP_PREFIX = "."
CLAIM_PREFIX = f"{TEMP_PREFIX}running-"
# Leaves room for the ".<stamp>[-n]" archive suffix within NAME_MAX (255).
MAX_KEY_BYTES = 200
_EXECUTABLE_MODE = 0o755


class InsertOutcome(StrEnum):
    INSERTED = "inserted"
    ALREADY_EXISTS = "already_exists"


@dataclass(slots=True, frozen=True)
class QueuedEntry:
    """A published, ready-to-run queue member."""

    key: str
    path: Path

    def load(self) -> ActionEntry:
        return ActionEntry.from_bytes(self.path.read_bytes())


class QueueStore:
    """Live entries, one executable file per key."""

    def __init__(self, layout: QueueLayout) -> None:
        self.layout = layout
        self.directory = layout.queue_dir

    def slot(self, key: str) -> Path:
        validate_key(key)
        return self.directory / key

    def try_insert(self, entry: ActionEntry) -> InsertOutcome:
        """Publish entry at its key unless a live entry already occupies it.

        The entry is written and marked executable under a dot-prefixed
        temporary name, then hard-linked into the slot. ``link`` fails if the
        slot exists, which makes the existence check and the publish one step.
        """

        slot = self.slot(entry.key)
        self.layout.ensure()
        if slot.exists():
            logger.info("Duplicate rejected for key %s", entry.key)
            return InsertOutcome.ALREADY_EXISTS

        fd, temp_name = tempfile.mkstemp(dir=self.directory, prefix=f"{TEMP_PREFIX}insert-")
        temp_path = Path(temp_name)
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(entry.to_bytes())
                handle.flush()
                os.fsync(handle.fileno())
            temp_path.chmod(_EXECUTABLE_MODE)
            try:
                os.link(temp_path, slot)
            except FileExistsError:
                logger.info("Duplicate rejected for key %s", entry.key)
                return InsertOutcome.ALREADY_EXISTS
        finally:
            temp_path.unlink(missing_ok=True)

        logger.info("Inserted entry %s", entry.key)
        return InsertOutcome.INSERTED

    def list_entries(self) -> list[QueuedEntry]:
        """Point-in-time snapshot of ready entries in byte-wise key order."""

        if not self.directory.is_dir():
            return []
        ready: list[QueuedEntry] = []
        with os.scandir(self.directory) as members:
            for member in members:
                if member.name.startswith(TEMP_PREFIX):
                    continue
                if not member.is_file(follow_symlinks=False):
                    continue
                if not os.access(member.path, os.X_OK):
                    continue
                ready.append(QueuedEntry(key=member.name, path=Path(member.path)))
        ready.sort(key=lambda queued: os.fsencode(queued.key))
        return ready

    def remove(self, key: str) -> bool:
        slot = self.slot(key)
        try:
            slot.unlink()
        except FileNotFoundError:
            return False
        return True

    def claim(self, queued: QueuedEntry) -> QueuedEntry | None:
        """Take an entry out of its slot before it runs.

        The entry is renamed to a hidden per-key name, so the slot is free for
        a new enqueue while this one runs and is archived. ``None`` when the
        entry was removed after the snapshot was taken.
        """

        claimed_path = self.directory / f"{CLAIM_PREFIX}{queued.key}"
        try:
            os.rename(queued.path, claimed_path)
        except FileNotFoundError:
            return None
        return QueuedEntry(key=queued.key, path=claimed_path)

    def restore(self, claimed: QueuedEntry) -> bool:
        """Put a claimed entry back in its slot unless a newer entry took it."""

        try:
            os.link(claimed.path, self.slot(claimed.key))
        except FileExistsError:
            logger.info("Slot %s was re-filled, dropping claimed copy", claimed.key)
            claimed.path.unlink(missing_ok=True)
            return False
        claimed.path.unlink()
        logger.info("Restored entry %s to the queue", claimed.key)
        return True

    def recover_claimed(self) -> int:
        """Return entries claimed by a pass that was killed before archiving them."""

        if not self.directory.is_dir():
            return 0
        restored = 0
        for path in sorted(self.directory.glob(f"{CLAIM_PREFIX}*")):
            key = path.name[len(CLAIM_PREFIX) :]
            if self.restore(QueuedEntry(key=key, path=path)):
                restored += 1
        return restored

    def clear(self) -> int:
        """Remove every published entry; in-flight temporary files are left alone."""

        removed = 0
        for queued in self.list_entries():
            if self.remove(queued.key):
                removed += 1
        logger.info("Cleared %d entries", removed)
        return removed


class ArchiveStore:
    """Write-only record of processed entries."""

    def __init__(self, layout: QueueLayout) -> None:
        self.directory = layout.processed_dir

    def archive(self, claimed: QueuedEntry, *, completed_at: datetime) -> Path:
        """Rename a claimed entry to ``<key>.<stamp>`` without clobbering records.

        Only the lock holder writes here, so the free name chosen below stays free
        until the rename.
        """

        self.directory.mkdir(parents=True, exist_ok=True)
        base_name = f"{claimed.key}.{compact_stamp(completed_at)}"
        target = self.directory / base_name
        attempt = 0
        while target.exists():
            attempt += 1
            target = self.directory / f"{base_name}-{attempt}"
        os.rename(claimed.path, target)
        logger.info("Archived %s as %s", claimed.key, target.name)
        return target


def validate_key(key: str) -> None:
    if not key or key.startswith(TEMP_PREFIX) or os.sep in key:
        raise ValueError(f"Invalid queue key: {key!r}")
    if os.altsep and os.altsep in key:
        raise ValueError(f"Invalid queue key: {key!r}")
    if len(os.fsencode(key)) > MAX_KEY_BYTES:
        raise InvalidInputError(f"Action key is too long for a queue slot: {key[:40]}...")
