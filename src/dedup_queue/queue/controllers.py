"""Controllers for queue CLI commands."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from dedup_queue.config import Settings, configure_logging
from dedup_queue.errors import DedupQueueError, ExitCode, InvalidInputError
from dedup_queue.queue.identifier import select_hasher
from dedup_queue.queue.lock import ExclusionLock
from dedup_queue.queue.processor import CommandLogs, PassOutcome, QueueProcessor
from dedup_queue.queue.services import EnqueueService
from dedup_queue.queue.store import ArchiveStore, QueueStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AddCommand:
    """CLI input for enqueueing a file path or a script read from stdin."""

    root: Path | None
    path: Path | None
    script: bytes | None = None


@dataclass(slots=True)
class ProcessCommand:
    """CLI input for one processing pass."""

    root: Path | None


@dataclass(slots=True)
class ShowCommand:
    """CLI input for queue listing."""

    root: Path | None


@dataclass(slots=True)
class ClearCommand:
    """CLI input for removing every queued entry."""

    root: Path | None


@dataclass(slots=True)
class CommandResult:
    """Lines to print plus the exit status scripts branch on."""

    lines: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    exit_code: int = ExitCode.OK


class QueueCliController:
    """Coordinates enqueue, processing and inspection CLI operations."""

    def add(self, command: AddCommand) -> CommandResult:
        settings = _settings(command.root)
        queue = QueueStore(settings.layout)
        try:
            if command.path is not None:
                result = EnqueueService(queue=queue).enqueue_path(command.path)
            elif command.script is not None and command.script.strip():
                service = EnqueueService(
                    queue=queue,
                    hasher=select_hasher(settings.hash_algorithms),
                )
                result = service.enqueue_script(command.script)
            else:
                raise InvalidInputError(
                    "No action given: pass an executable path or pipe a script.",
                )
        except DedupQueueError as error:
            return _failure(error)
        return CommandResult(lines=[f"Queued: key={result.key}"])

    def process(self, command: ProcessCommand) -> CommandResult:
        settings = _settings(command.root)
        layout = settings.layout
        processor = QueueProcessor(
            queue=QueueStore(layout),
            archive=ArchiveStore(layout),
            lock=ExclusionLock(layout.lock_dir),
            logs=CommandLogs(layout.logs_dir),
            shell=settings.execution.shell,
        )
        try:
            summary = processor.process()
        except DedupQueueError as error:
            return _failure(error)

        lines = [
            "Pass summary: "
            f"processed={summary.processed} launch_failures={summary.launch_failures}",
        ]
        if summary.outcome is PassOutcome.NO_OP:
            return CommandResult(lines=lines, exit_code=ExitCode.QUEUE_EMPTY)
        return CommandResult(lines=lines)

    def show(self, command: ShowCommand) -> CommandResult:
        settings = _settings(command.root)
        layout = settings.layout
        queue = QueueStore(layout)
        lock = ExclusionLock(layout.lock_dir)

        queued = queue.list_entries()
        lines = [f"Queue: {layout.queue_dir} entries={len(queued)}"]
        if lock.is_locked():
            lines.append(f"Lock: held ({lock.read_owner() or 'owner unknown'})")
        else:
            lines.append("Lock: free")
        for item in queued:
            try:
                entry = item.load()
            except (OSError, ValueError) as error:
                lines.append(f"  key={item.key} unreadable={error}")
                continue
            lines.append(
                "  "
                f"key={entry.key} kind={entry.kind.value} "
                f"enqueued_at={entry.enqueued_at.isoformat()} command={entry.summary()}",
            )
        return CommandResult(lines=lines)

    def clear(self, command: ClearCommand) -> CommandResult:
        settings = _settings(command.root)
        removed = QueueStore(settings.layout).clear()
        return CommandResult(lines=[f"Cleared: removed={removed}"])


def _settings(root: Path | None) -> Settings:
    settings = Settings.from_env(root=root)
    settings.validate()
    configure_logging(settings.log_level)
    return settings


def _failure(error: DedupQueueError) -> CommandResult:
    logger.debug("Command failed: %s", error)
    return CommandResult(errors=[str(error)], exit_code=error.exit_code)
