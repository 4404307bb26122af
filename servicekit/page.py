"""Paging of query results."""

from __future__ import annotations

import re
from dataclasses import dataclass

_INT_RE = re.compile(r"[+-]?[0-9]+")

_DEFAULT_PAGE = 1
_DEFAULT_ROWS = 10
_MAX_ROWS = 100


@dataclass(frozen=True)
class Page:
    """The requested page number and rows per page."""

    number: int
    rows_per_page: int

    def __str__(self) -> str:
        return f"page: {self.number} rows: {self.rows_per_page}"


def _to_int(text: str, what: str) -> int:
    if not _INT_RE.fullmatch(text):
        raise ValueError(f"{what} conversion: invalid syntax {text!r}")
    return int(text)


def parse(page: str = "", rows_per_page: str = "") -> Page:
    """Parse page and rows strings; empty strings give page 1 with 10 rows."""
    number = _to_int(page, "page") if page != "" else _DEFAULT_PAGE
    rows = _to_int(rows_per_page, "rows") if rows_per_page != "" else _DEFAULT_ROWS

    if number <= 0:
        raise ValueError("page value too small, must be larger than 0")
    if rows <= 0:
        raise ValueError("rows value too small, must be larger than 0")
    if rows > _MAX_ROWS:
        raise ValueError("rows value too large, must be less than 100")

    return Page(number, rows)