"""Exclusion lock serializing processing passes."""

from __future__ import annotations

import logging
import os
import shutil
import signal
import socket
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from dedup_queue.common import utc_now
from dedup_queue.errors import LockUnavailableError, PassInterruptedError

logger = logging.getLogger(__name__)

OWNER_FILE = "owner"
_RELEASE_SIGNALS = ("SIGINT", "SIGTERM", "SIGHUP")


class ExclusionLock:
    """Lock represented by the existence of one directory.

    ``mkdir`` either creates the directory or fails because it exists, so
    acquisition never races. The lock is not expired automatically: a
    directory left behind by an uncatchable kill has to be removed by hand.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._held = False

    @property
    def is_held(self) -> bool:
        return self._held

    def acquire(self) -> bool:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            self.path.mkdir()
        except FileExistsError:
            logger.info("Lock %s is held by another pass", self.path)
            return False
        self._held = True
        try:
            (self.path / OWNER_FILE).write_text(
                f"pid={os.getpid()} host={socket.gethostname()} "
                f"acquired_at={utc_now().isoformat()}\n",
                encoding="utf-8",
            )
        except OSError as error:
            logger.warning("Could not record lock owner in %s: %s", self.path, error)
        logger.info("Lock %s acquired", self.path)
        return True

    def release(self) -> None:
        """Drop the lock if this instance holds it; otherwise do nothing."""

        if not self._held:
            return
        self._held = False
        shutil.rmtree(self.path, ignore_errors=True)
        logger.info("Lock %s released", self.path)

    def read_owner(self) -> str | None:
        """Holder description written at acquisition, if the lock exists."""

        try:
            return (self.path / OWNER_FILE).read_text(encoding="utf-8").strip() or None
        except OSError:
            return None

    def is_locked(self) -> bool:
        return self.path.is_dir()

    @contextmanager
    def hold(self) -> Iterator[ExclusionLock]:
        """Hold the lock for the block; release on return or error."""

        if not self.acquire():
            raise LockUnavailableError(self.path, owner=self.read_owner())
        try:
            yield self
        finally:
            self.release()


class StopSignals:
    """Turn SIGINT/SIGTERM/SIGHUP into a stop request checked between steps.

    The handler only records the signal, so a step that has started (running
    an entry to completion, archiving it) is never cut in half.
    """

    def __init__(self) -> None:
        self.signum: int | None = None
        self.signal_name: str | None = None
        self._installed: dict[int, object] = {}

    @property
    def requested(self) -> bool:
        return self.signum is not None

    def raise_if_requested(self) -> None:
        if self.signum is not None and self.signal_name is not None:
            raise PassInterruptedError(self.signum, self.signal_name)

    def __enter__(self) -> StopSignals:
        try:
            for name in _RELEASE_SIGNALS:
                signum = getattr(signal, name, None)
                if signum is None:
                    continue
                self._installed[signum] = signal.getsignal(signum)
                signal.signal(signum, self._handler)
        except ValueError:
            # Signal handlers can only be installed in main thread.
            self._installed.clear()
        return self

    def __exit__(self, *_: object) -> None:
        for signum, original in self._installed.items():
            try:
                signal.signal(signum, original)  # type: ignore[arg-type]
            except ValueError:
                pass
        self._installed.clear()

    def _handler(self, signum: int, _: object | None) -> None:
        if self.signum is not None:
            return
        try:
            name = signal.Signals(signum).name
        except ValueError:
            name = str(signum)
        logger.warning("Received %s, stopping processing pass", name)
        self.signum = signum
        self.signal_name = name
