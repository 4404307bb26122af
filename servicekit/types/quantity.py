"""Quantities within the limits the system accepts."""

from __future__ import annotations

from dataclasses import dataclass

_MAX = 1_000_000


@dataclass(frozen=True)
class Quantity:
    """A whole, non-negative quantity no larger than one million."""

    value: int

    def __str__(self) -> str:
        return str(self.value)


def parse(value: int) -> Quantity:
    """Return a Quantity for value, or raise ValueError if it is out of range."""
    if value < 0 or value > _MAX:
        raise ValueError(f"invalid quantity {value}")
    return Quantity(int(value))