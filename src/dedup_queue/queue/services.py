"""Enqueue use-cases shared by CLI and library callers."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from dedup_queue.errors import DuplicateActionError
from dedup_queue.queue.entry import ActionEntry
from dedup_queue.queue.environment import EnvironmentSnapshot
from dedup_queue.queue.identifier import (
    Hasher,
    key_for_content,
    key_for_path,
    resolve_executable,
)
from dedup_queue.queue.store import InsertOutcome, QueueStore


@dataclass(slots=True)
class EnqueueResult:
    key: str
    entry_path: Path


class EnqueueService:
    """Identify an action, snapshot the environment and publish the entry."""

    def __init__(self, *, queue: QueueStore, hasher: Hasher | None = None) -> None:
        self.queue = queue
        self.hasher = hasher

    def enqueue_path(
        self,
        path: Path,
        *,
        environ: Mapping[str, str] | None = None,
    ) -> EnqueueResult:
        resolved = resolve_executable(path)
        entry = ActionEntry.for_path(
            key=key_for_path(resolved),
            command=resolved,
            environment=EnvironmentSnapshot.capture(environ),
        )
        return self._publish(entry)

    def enqueue_script(
        self,
        script: bytes,
        *,
        environ: Mapping[str, str] | None = None,
    ) -> EnqueueResult:
        """Enqueue an inline script; its key hashes the script bytes only."""

        if self.hasher is None:
            raise RuntimeError("Inline actions need a hasher.")
        entry = ActionEntry.for_script(
            key=key_for_content(script, self.hasher),
            script=script,
            environment=EnvironmentSnapshot.capture(environ),
        )
        return self._publish(entry)

    def _publish(self, entry: ActionEntry) -> EnqueueResult:
        if self.queue.try_insert(entry) is InsertOutcome.ALREADY_EXISTS:
            raise DuplicateActionError(entry.key)
        return EnqueueResult(key=entry.key, entry_path=self.queue.slot(entry.key))
