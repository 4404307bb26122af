"""Names, optionally empty, that follow the system's naming rules."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass

_NAME_RE = re.compile(r"[a-zA-Z0-9' -]{3,20}")


def _check(value: str) -> None:
    if not _NAME_RE.fullmatch(value):
        raise ValueError(f"invalid name {json.dumps(value)}")


@dataclass(frozen=True)
class Name:
    """A name of 3 to 20 letters, digits, spaces, hyphens or apostrophes."""

    value: str

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class NullName:
    """A name that may be absent."""

    value: str = ""
    valid: bool = False

    def __str__(self) -> str:
        return self.value if self.valid else "NULL"


def parse(value: str) -> Name:
    """Return a Name for value, or raise ValueError if it breaks the rules."""
    _check(value)
    return Name(value)


def parse_null(value: str) -> NullName:
    """Return a NullName; the empty string gives an absent name."""
    if value == "":
        return NullName()
    _check(value)
    return NullName(value, True)