"""Capture and restore the enqueuing process environment."""

from __future__ import annotations

import os
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

_ESCAPES = {"\\": "\\\\", "\n": "\\n", "\r": "\\r"}
_UNESCAPES = {"\\": "\\", "n": "\n", "r": "\r"}


@dataclass(slots=True)
class EnvironmentSnapshot:
    """Ordered name -> value mapping serialized as escaped ``NAME=value`` lines.

    Only backslash, newline and carriage return are escaped; quotes and spaces
    are kept literally because the block is never shell-interpreted.
    """

    variables: dict[str, str] = field(default_factory=dict)

    @classmethod
    def capture(cls, environ: Mapping[str, str] | None = None) -> EnvironmentSnapshot:
        source = os.environ if environ is None else environ
        return cls(
            variables={name: value for name, value in source.items() if _serializable(name)},
        )

    def render(self) -> str:
        lines: list[str] = []
        for name, value in self.variables.items():
            if not _serializable(name):
                raise ValueError(f"Environment variable name cannot be serialized: {name!r}")
            lines.append(f"{name}={escape_value(value)}\n")
        return "".join(lines)

    @classmethod
    def parse(cls, lines: Iterable[str]) -> EnvironmentSnapshot:
        variables: dict[str, str] = {}
        for line in lines:
            line = line.rstrip("\n")  # noqa: PLW2901
            if not line:
                continue
            name, separator, raw_value = line.partition("=")
            if not separator or not name:
                raise ValueError(f"Malformed environment line: {line!r}")
            variables[name] = unescape_value(raw_value)
        return cls(variables=variables)

    def to_process_env(self) -> dict[str, str]:
        """Environment mapping to hand to the child process."""

        return dict(self.variables)


def escape_value(value: str) -> str:
    return "".join(_ESCAPES.get(char, char) for char in value)


def unescape_value(raw: str) -> str:
    chars: list[str] = []
    index = 0
    while index < len(raw):
        char = raw[index]
        if char != "\\":
            chars.append(char)
            index += 1
            continue
        if index + 1 >= len(raw):
            raise ValueError(f"Dangling escape in environment value: {raw!r}")
        escaped = raw[index + 1]
        if escaped not in _UNESCAPES:
            raise ValueError(f"Unknown escape \\{escaped} in environment value: {raw!r}")
        chars.append(_UNESCAPES[escaped])
        index += 2
    return "".join(chars)


def _serializable(name: str) -> bool:
    return bool(name) and not any(char in name for char in "=\n\r")
