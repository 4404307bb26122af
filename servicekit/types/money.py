"""Monetary amounts within the limits the system accepts."""

from __future__ import annotations

from dataclasses import dataclass

_MAX = 1_000_000


@dataclass(frozen=True)
class Money:
    """A non-negative amount of money no larger than one million."""

    value: float

    def __str__(self) -> str:
        return f"{self.value:.2f}"


def parse(value: float) -> Money:
    """Return a Money for value, or raise ValueError if it is out of range."""
    if value < 0 or value > _MAX:
        raise ValueError(f"invalid money {value:.2f}")
    return Money(float(value))