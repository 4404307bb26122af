"""Describing how data is to be ordered."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

ASC = "ASC"
DESC = "DESC"

_DIRECTIONS = frozenset({ASC, DESC})


@dataclass(frozen=True)
class By:
    """A field to order by and the direction."""

    field: str
    direction: str = ASC


def new_by(field: str, direction: str) -> By:
    """Build a By; an unknown direction falls back to ascending."""
    if direction not in _DIRECTIONS:
        return By(field, ASC)
    return By(field, direction)


def parse(field_mappings: Mapping[str, str], order_by: str, default_order: By) -> By:
    """Parse "field" or "field,direction", mapping the field through field_mappings.

    An empty order_by gives default_order; anything unknown raises ValueError.
    """
    if order_by == "":
        return default_order

    parts = order_by.split(",")

    given_field = parts[0].strip()
    if given_field not in field_mappings:
        raise ValueError(f"unknown order: {given_field}")
    field = field_mappings[given_field]

    if len(parts) == 1:
        return new_by(field, ASC)

    if len(parts) == 2:
        direction = parts[1].strip()
        if direction not in _DIRECTIONS:
            raise ValueError(f"unknown direction: {direction}")
        return new_by(field, direction)

    raise ValueError(f"unknown order: {order_by}")