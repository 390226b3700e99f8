"""Action entry model and its self-describing on-disk form."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from pathlib import Path

from dedup_queue.common import from_iso, utc_now
from dedup_queue.queue.environment import EnvironmentSnapshot, escape_value, unescape_value

_TEXT_ENCODING = "utf-8"
_TEXT_ERRORS = "surrogateescape"

HEADER_MARK = b"# dedup-queue entry\n"
COMMAND_MARK = b"#--- command ---\n"
END_MARK = b"#--- end ---\n"
ENQUEUED_AT_PREFIX = "# enqueued_at: "


class EntryKind(StrEnum):
    """Where the executable payload lives."""

    PATH = "path"
    INLINE = "inline"


@dataclass(slots=True)
class ActionEntry:
    """One queued action: environment, payload and metadata.

    Path entries reference an executable that is re-read when the entry runs;
    inline entries carry a frozen script that runs through the configured shell.
    """

    key: str
    kind: EntryKind
    environment: EnvironmentSnapshot
    command: Path | None = None
    script: bytes | None = None
    enqueued_at: datetime = field(default_factory=utc_now)

    def __post_init__(self) -> None:
        if self.kind is EntryKind.PATH and self.command is None:
            raise ValueError("Path entry requires a command path.")
        if self.kind is EntryKind.INLINE and self.script is None:
            raise ValueError("Inline entry requires a script payload.")

    @classmethod
    def for_path(
        cls,
        *,
        key: str,
        command: Path,
        environment: EnvironmentSnapshot,
    ) -> ActionEntry:
        return cls(key=key, kind=EntryKind.PATH, environment=environment, command=command)

    @classmethod
    def for_script(
        cls,
        *,
        key: str,
        script: bytes,
        environment: EnvironmentSnapshot,
    ) -> ActionEntry:
        return cls(key=key, kind=EntryKind.INLINE, environment=environment, script=script)

    def payload(self) -> bytes:
        if self.kind is EntryKind.PATH:
            return os.fsencode(str(self.command))
        return self.script or b""

    def summary(self) -> str:
        """Short human-readable description of the payload."""

        if self.kind is EntryKind.PATH:
            return str(self.command)
        text = (self.script or b"").decode(_TEXT_ENCODING, errors="replace").strip()
        first_line = text.splitlines()[0] if text else ""
        return first_line if len(first_line) <= 60 else f"{first_line[:57]}..."

    def to_bytes(self) -> bytes:
        header = (
            f"# key: {escape_value(self.key)}\n"
            f"# kind: {self.kind.value}\n"
            f"{self.environment.render()}"
        ).encode(_TEXT_ENCODING, errors=_TEXT_ERRORS)
        trailer = f"{ENQUEUED_AT_PREFIX}{self.enqueued_at.isoformat()}\n".encode(_TEXT_ENCODING)
        return b"".join(
            (HEADER_MARK, header, COMMAND_MARK, self.payload(), b"\n", END_MARK, trailer),
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> ActionEntry:
        if not data.startswith(HEADER_MARK):
            raise ValueError("Not a dedup-queue entry.")
        header, found, rest = data[len(HEADER_MARK) :].partition(b"\n" + COMMAND_MARK)
        if not found:
            raise ValueError("Entry is missing its command delimiter.")
        payload, found, trailer = rest.rpartition(b"\n" + END_MARK)
        if not found:
            raise ValueError("Entry is missing its end delimiter.")

        lines = header.decode(_TEXT_ENCODING, errors=_TEXT_ERRORS).split("\n")
        if len(lines) < 2:  # noqa: PLR2004
            raise ValueError("Entry header is truncated.")
        key = unescape_value(_meta_value(lines[0], "key"))
        kind = EntryKind(_meta_value(lines[1], "kind"))
        environment = EnvironmentSnapshot.parse(lines[2:])

        trailer_text = trailer.decode(_TEXT_ENCODING).strip()
        if not trailer_text.startswith(ENQUEUED_AT_PREFIX):
            raise ValueError("Entry is missing its enqueue timestamp.")
        enqueued_at = from_iso(trailer_text[len(ENQUEUED_AT_PREFIX) :])

        if kind is EntryKind.PATH:
            return cls(
                key=key,
                kind=kind,
                environment=environment,
                command=Path(os.fsdecode(payload)),
                enqueued_at=enqueued_at,
            )
        return cls(
            key=key,
            kind=kind,
            environment=environment,
            script=payload,
            enqueued_at=enqueued_at,
        )


def _meta_value(line: str, name: str) -> str:
    prefix = f"# {name}: "
    if not line.startswith(prefix):
        raise ValueError(f"Entry header is missing {name!r}.")
    return line[len(prefix) :]
