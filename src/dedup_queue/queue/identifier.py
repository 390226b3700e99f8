"""Derive queue-slot keys for actions."""

from __future__ import annotations

import hashlib
import os
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from dedup_queue.errors import InvalidInputError, MissingDependencyError

PATH_SEPARATOR_PLACEHOLDER = "_"


class Hasher(Protocol):
    """Single hashing capability injected into key derivation."""

    name: str

    def hash(self, payload: bytes) -> str:
        """Return a hex digest of payload."""


@dataclass(slots=True, frozen=True)
class HashlibHasher:
    """Hasher backed by one hashlib algorithm."""

    name: str

    def hash(self, payload: bytes) -> str:
        return hashlib.new(self.name, payload, usedforsecurity=False).hexdigest()


def select_hasher(
    preferences: Iterable[str],
    available: Callable[[], Iterable[str]] = lambda: hashlib.algorithms_available,
) -> Hasher:
    """Pick the first preferred algorithm this interpreter provides."""

    names = {name.lower() for name in available()}
    tried: list[str] = []
    for preference in preferences:
        tried.append(preference)
        if preference.lower() in names:
            return HashlibHasher(name=preference.lower())
    raise MissingDependencyError(
        f"No hash algorithm available for stdin actions (tried: {', '.join(tried) or '-'}).",
    )


def resolve_executable(path: Path) -> Path:
    """Resolve path and require an existing, executable, non-directory file."""

    resolved = path.expanduser().resolve()
    if not resolved.exists():
        raise InvalidInputError(f"Action does not exist: {path}")
    if resolved.is_dir():
        raise InvalidInputError(f"Action is a directory: {path}")
    if not os.access(resolved, os.X_OK):
        raise InvalidInputError(f"Action is not executable: {path}")
    return resolved


def key_for_path(resolved: Path) -> str:
    """Flatten a resolved path into a filesystem-legal slot name."""

    key = str(resolved)
    for separator in (os.sep, os.altsep):
        if separator:
            key = key.replace(separator, PATH_SEPARATOR_PLACEHOLDER)
    return key


def key_for_content(payload: bytes, hasher: Hasher) -> str:
    """Content-derived key for an inlined payload."""

    if not payload.strip():
        raise InvalidInputError("No command given on stdin.")
    return hasher.hash(payload)
