"""The roles a user can hold."""

from __future__ import annotations

import json
from collections.abc import Iterable
from enum import Enum


class Role(Enum):
    """A user role."""

    ADMIN = "ADMIN"
    USER = "USER"

    def __str__(self) -> str:
        return self.value


def parse(value: str) -> Role:
    """Return the role named by value, or raise ValueError."""
    try:
        return Role(value)
    except ValueError:
        raise ValueError(f"invalid role {json.dumps(value)}") from None


def parse_to_string(roles: Iterable[Role]) -> list[str]:
    """Return the names of the given roles."""
    return [str(role) for role in roles]


def parse_many(roles: Iterable[str]) -> list[Role]:
    """Parse every name, raising ValueError on the first unknown one."""
    return [parse(value) for value in roles]