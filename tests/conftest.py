"""Shared test fixtures."""

from __future__ import annotations

import os
from collections.abc import Callable
from pathlib import Path

import pytest

from dedup_queue.config import QueueLayout
from dedup_queue.queue.identifier import HashlibHasher
from dedup_queue.queue.lock import ExclusionLock
from dedup_queue.queue.processor import CommandLogs, QueueProcessor
from dedup_queue.queue.services import EnqueueService
from dedup_queue.queue.store import ArchiveStore, QueueStore

ScriptFactory = Callable[..., Path]


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("DEDUP_QUEUE_ROOT", str(tmp_path / "default-root"))
    for name in ("DEDUP_QUEUE_HASH_ALGORITHMS", "DEDUP_QUEUE_SHELL", "DEDUP_QUEUE_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def layout(tmp_path: Path) -> QueueLayout:
    return QueueLayout(root=tmp_path / "root")


@pytest.fixture()
def queue_store(layout: QueueLayout) -> QueueStore:
    return QueueStore(layout)


@pytest.fixture()
def enqueue(queue_store: QueueStore) -> EnqueueService:
    return EnqueueService(queue=queue_store, hasher=HashlibHasher(name="sha256"))


@pytest.fixture()
def processor(layout: QueueLayout, queue_store: QueueStore) -> QueueProcessor:
    return QueueProcessor(
        queue=queue_store,
        archive=ArchiveStore(layout),
        lock=ExclusionLock(layout.lock_dir),
        logs=CommandLogs(layout.logs_dir),
    )


@pytest.fixture()
def make_script(tmp_path: Path) -> ScriptFactory:
    """Write an executable ``/bin/sh`` script into a scripts directory."""

    scripts_dir = tmp_path / "scripts"
    scripts_dir.mkdir()

    def _make(name: str, body: str, *, executable: bool = True) -> Path:
        path = scripts_dir / name
        path.write_text(f"#!/bin/sh\n{body}\n", encoding="utf-8")
        path.chmod(0o755 if executable else 0o644)
        return path

    return _make


@pytest.fixture()
def child_environ() -> Callable[..., dict[str, str]]:
    """Build a minimal environment for spawned actions."""

    def _build(**extra: str) -> dict[str, str]:
        return {"PATH": os.environ.get("PATH", "/usr/bin:/bin"), **extra}

    return _build
