from __future__ import annotations

import os
import threading
from datetime import UTC, datetime
from pathlib import Path

import allure
import pytest

from dedup_queue.config import QueueLayout
from dedup_queue.errors import InvalidInputError
from dedup_queue.queue.entry import ActionEntry
from dedup_queue.queue.environment import EnvironmentSnapshot
from dedup_queue.queue.store import ArchiveStore, InsertOutcome, QueuedEntry, QueueStore

pytestmark = [
    allure.epic("Dedup Queue"),
    allure.feature("Queue Store"),
]


def _entry(key: str, script: bytes = b"true\n") -> ActionEntry:
    return ActionEntry.for_script(
        key=key,
        script=script,
        environment=EnvironmentSnapshot(variables={"K": key}),
    )


def test_try_insert_publishes_executable_entry(queue_store: QueueStore) -> None:
    outcome = queue_store.try_insert(_entry("alpha"))

    slot = queue_store.slot("alpha")
    assert outcome is InsertOutcome.INSERTED
    assert os.access(slot, os.X_OK)
    assert ActionEntry.from_bytes(slot.read_bytes()).script == b"true\n"
    assert [path.name for path in queue_store.directory.iterdir()] == ["alpha"]


def test_second_insert_for_same_key_leaves_first_entry_untouched(
    queue_store: QueueStore,
) -> None:
    queue_store.try_insert(_entry("alpha", b"echo first\n"))

    outcome = queue_store.try_insert(_entry("alpha", b"echo second\n"))

    assert outcome is InsertOutcome.ALREADY_EXISTS
    assert queue_store.list_entries()[0].load().script == b"echo first\n"
    assert [path.name for path in queue_store.directory.iterdir()] == ["alpha"]


def test_simultaneous_inserts_have_exactly_one_winner(queue_store: QueueStore) -> None:
    workers = 8
    barrier = threading.Barrier(workers)
    outcomes: list[InsertOutcome] = []
    lock = threading.Lock()

    def _insert(index: int) -> None:
        entry = _entry("contended", f"echo {index}\n".encode())
        barrier.wait()
        outcome = queue_store.try_insert(entry)
        with lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=_insert, args=(index,)) for index in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert outcomes.count(InsertOutcome.INSERTED) == 1
    assert outcomes.count(InsertOutcome.ALREADY_EXISTS) == workers - 1
    assert [queued.key for queued in queue_store.list_entries()] == ["contended"]
    assert not [path for path in queue_store.directory.iterdir() if path.name.startswith(".")]


def test_list_skips_temporary_and_not_yet_executable_members(
    queue_store: QueueStore,
    layout: QueueLayout,
) -> None:
    layout.ensure()
    queue_store.try_insert(_entry("ready"))
    (layout.queue_dir / ".insert-partial").write_bytes(b"# dedup-queue entry\n# key")
    not_ready = layout.queue_dir / "half-written"
    not_ready.write_bytes(b"# dedup-queue entry\n")
    not_ready.chmod(0o644)
    (layout.queue_dir / "subdir").mkdir()

    assert [queued.key for queued in queue_store.list_entries()] == ["ready"]


def test_list_orders_keys_bytewise(queue_store: QueueStore) -> None:
    for key in ("z_script", "a_script", "M_script", "m_script"):
        queue_store.try_insert(_entry(key))

    keys = [queued.key for queued in queue_store.list_entries()]

    assert keys == ["M_script", "a_script", "m_script", "z_script"]


def test_list_on_missing_directory_is_empty(queue_store: QueueStore) -> None:
    assert queue_store.list_entries() == []


def test_remove_and_clear(queue_store: QueueStore, layout: QueueLayout) -> None:
    for key in ("a", "b", "c"):
        queue_store.try_insert(_entry(key))
    in_flight = layout.queue_dir / ".insert-other-writer"
    in_flight.write_bytes(b"partial")

    assert queue_store.remove("a") is True
    assert queue_store.remove("a") is False
    assert queue_store.clear() == 2
    assert queue_store.list_entries() == []
    assert in_flight.exists()


def test_insert_after_removal_succeeds(queue_store: QueueStore) -> None:
    queue_store.try_insert(_entry("again"))
    queue_store.remove("again")

    assert queue_store.try_insert(_entry("again")) is InsertOutcome.INSERTED


@pytest.mark.parametrize("key", ["", ".hidden", "a/b", ".."])
def test_slot_rejects_keys_that_are_not_plain_names(queue_store: QueueStore, key: str) -> None:
    with pytest.raises(ValueError, match="Invalid queue key"):
        queue_store.slot(key)


def test_slot_rejects_overlong_keys(queue_store: QueueStore) -> None:
    with pytest.raises(InvalidInputError, match="too long"):
        queue_store.slot("k" * 201)


def _claim_only(queue_store: QueueStore) -> QueuedEntry:
    claimed = queue_store.claim(queue_store.list_entries()[0])
    assert claimed is not None
    return claimed


def test_archive_moves_entry_and_disambiguates_same_stamp(
    queue_store: QueueStore,
    layout: QueueLayout,
) -> None:
    archive = ArchiveStore(layout)
    completed_at = datetime(2026, 10, 18, 12, 0, 0, 5, tzinfo=UTC)

    queue_store.try_insert(_entry("job"))
    first = archive.archive(_claim_only(queue_store), completed_at=completed_at)
    queue_store.try_insert(_entry("job"))
    second = archive.archive(_claim_only(queue_store), completed_at=completed_at)

    assert first.name == "job.20261018T120000000005Z"
    assert second.name == "job.20261018T120000000005Z-1"
    assert queue_store.list_entries() == []
    assert sorted(path.name for path in layout.processed_dir.iterdir()) == [
        first.name,
        second.name,
    ]
    assert isinstance(first, Path)


def test_claim_frees_the_slot_and_hides_the_running_copy(queue_store: QueueStore) -> None:
    queue_store.try_insert(_entry("job", b"echo old\n"))

    claimed = _claim_only(queue_store)

    assert claimed.path.name == ".running-job"
    assert queue_store.list_entries() == []
    assert queue_store.clear() == 0
    assert claimed.path.exists()
    assert queue_store.try_insert(_entry("job", b"echo new\n")) is InsertOutcome.INSERTED
    assert claimed.load().script == b"echo old\n"


def test_claim_of_removed_entry_returns_none(queue_store: QueueStore) -> None:
    queue_store.try_insert(_entry("job"))
    queued = queue_store.list_entries()[0]
    queue_store.remove("job")

    assert queue_store.claim(queued) is None


def test_restore_returns_claimed_entry_unless_slot_was_refilled(
    queue_store: QueueStore,
) -> None:
    queue_store.try_insert(_entry("back"))
    queue_store.try_insert(_entry("taken", b"echo old\n"))
    back = _claim_only(queue_store)
    taken = queue_store.claim(queue_store.list_entries()[0])
    assert taken is not None
    queue_store.try_insert(_entry("taken", b"echo new\n"))

    assert queue_store.restore(back) is True
    assert queue_store.restore(taken) is False

    loaded = {queued.key: queued.load().script for queued in queue_store.list_entries()}
    assert loaded == {"back": b"true\n", "taken": b"echo new\n"}
    assert not [path for path in queue_store.directory.iterdir() if path.name.startswith(".")]


def test_recover_claimed_requeues_entries_of_a_killed_pass(queue_store: QueueStore) -> None:
    queue_store.try_insert(_entry("orphan"))
    _claim_only(queue_store)

    assert queue_store.recover_claimed() == 1
    assert [queued.key for queued in queue_store.list_entries()] == ["orphan"]
