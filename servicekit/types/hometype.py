"""The kinds of home known to the system."""

from __future__ import annotations

import json
from enum import Enum


class HomeType(Enum):
    """A type of home."""

    SINGLE = "SINGLE FAMILY"
    CONDO = "CONDO"

    def __str__(self) -> str:
        return self.value


def parse(value: str) -> HomeType:
    """Return the home type named by value, or raise ValueError."""
    try:
        return HomeType(value)
    except ValueError:
        raise ValueError(f"invalid home type {json.dumps(value)}") from None