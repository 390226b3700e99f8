"""Runtime configuration for the queue, read once per invocation."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_HASH_ALGORITHMS: tuple[str, ...] = ("sha256", "sha1", "md5")


def default_root() -> Path:
    """Per-user working root used when nothing overrides it."""

    return Path.home() / ".dedup_queue"


@dataclass(slots=True)
class QueueLayout:
    """Paths of the persisted layout under one working root."""

    root: Path

    @property
    def queue_dir(self) -> Path:
        return self.root / "queue"

    @property
    def processed_dir(self) -> Path:
        return self.root / "processed"

    @property
    def logs_dir(self) -> Path:
        return self.root / "command_logs"

    @property
    def lock_dir(self) -> Path:
        return self.root / "lock.dir"

    def ensure(self) -> None:
        """Create the store directories if they do not exist yet."""

        for directory in (self.queue_dir, self.processed_dir, self.logs_dir):
            directory.mkdir(parents=True, exist_ok=True)


@dataclass(slots=True)
class ExecutionSettings:
    """How queued actions are executed."""

    shell: str = "/bin/sh"


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    root: Path = field(default_factory=default_root)
    hash_algorithms: tuple[str, ...] = DEFAULT_HASH_ALGORITHMS
    execution: ExecutionSettings = field(default_factory=ExecutionSettings)
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls, root: Path | None = None) -> Settings:
        """Load settings from environment, with an optional root override."""

        env_root = os.getenv("DEDUP_QUEUE_ROOT", "").strip()
        return cls(
            root=(root or (Path(env_root) if env_root else default_root())).expanduser(),
            hash_algorithms=_parse_algorithms(
                os.getenv("DEDUP_QUEUE_HASH_ALGORITHMS", ",".join(DEFAULT_HASH_ALGORITHMS)),
            ),
            execution=ExecutionSettings(
                shell=os.getenv("DEDUP_QUEUE_SHELL", "/bin/sh").strip(),
            ),
            log_level=os.getenv("DEDUP_QUEUE_LOG_LEVEL", "WARNING").strip().upper(),
        )

    @property
    def layout(self) -> QueueLayout:
        return QueueLayout(root=self.root)

    def validate(self) -> None:
        """Raise configuration error for unusable values."""

        if not self.hash_algorithms:
            raise ValueError("DEDUP_QUEUE_HASH_ALGORITHMS must name at least one algorithm.")
        if not self.execution.shell:
            raise ValueError("DEDUP_QUEUE_SHELL must not be empty.")
        if not isinstance(logging.getLevelName(self.log_level), int):
            raise ValueError(f"Invalid DEDUP_QUEUE_LOG_LEVEL: {self.log_level!r}")


def _parse_algorithms(raw: str) -> tuple[str, ...]:
    names: list[str] = []
    for part in raw.split(","):
        name = part.strip().lower()
        if name and name not in names:
            names.append(name)
    return tuple(names)


def configure_logging(level: str) -> None:
    """Route package logs to stderr at the configured level."""

    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
