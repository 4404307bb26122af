"""Parsing and formatting of the database's text form of arrays."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Optional

from servicekit.dbarray.encode import encode

_OPEN = ord("{")
_CLOSE = ord("}")
_QUOTE = ord('"')
_BACKSLASH = ord("\\")


class ArrayError(ValueError):
    """Raised when array text cannot be parsed or converted."""


def _char(byte: int) -> str:
    return repr(chr(byte))


def _dims_text(dims: list[int]) -> str:
    return "[" + "][".join(str(d) for d in dims) + "]"


def _unexpected(src: bytes, i: int) -> ArrayError:
    return ArrayError(
        f"database: unable to parse array; unexpected {_char(src[i])} at offset {i}"
    )


def parse_array(src: bytes, delimiter: bytes = b",") -> tuple[list[int], list[Optional[bytes]]]:
    """Return the dimensions and elements of an array in text form.

    Only the form the server emits is accepted: whitespace is significant
    and NULL is case-sensitive. An unquoted NULL element becomes None.
    """
    src = bytes(src)
    delim = bytes(delimiter)
    n = len(src)

    if n < 1 or src[0] != _OPEN:
        raise ArrayError(f"database: unable to parse array; expected {_char(_OPEN)} at offset 0")

    depth = 0
    i = 0
    dims: list[int] = []
    elems: list[Optional[bytes]] = []
    empty = False

    while i < n:
        if src[i] == _OPEN:
            depth += 1
            i += 1
        elif src[i] == _CLOSE:
            empty = True
            break
        else:
            break

    if not empty:
        dims = [0] * i
        while True:
            while i < n:
                c = src[i]
                if c == _OPEN:
                    if depth == len(dims):
                        break
                    depth += 1
                    dims[depth - 1] = 0
                    i += 1
                elif c == _QUOTE:
                    elem = bytearray()
                    escape = False
                    found = False
                    i += 1
                    while i < n:
                        ch = src[i]
                        if escape:
                            elem.append(ch)
                            escape = False
                        elif ch == _BACKSLASH:
                            escape = True
                        elif ch == _QUOTE:
                            elems.append(bytes(elem))
                            i += 1
                            found = True
                            break
                        else:
                            elem.append(ch)
                        i += 1
                    if found:
                        break
                else:
                    start = i
                    found = False
                    while i < n:
                        if src.startswith(delim, i) or src[i] == _CLOSE:
                            raw = src[start:i]
                            if not raw:
                                raise _unexpected(src, i)
                            elems.append(None if raw == b"NULL" else raw)
                            found = True
                            break
                        i += 1
                    if found:
                        break

            another = False
            while i < n:
                if src.startswith(delim, i) and depth > 0:
                    dims[depth - 1] += 1
                    i += len(delim)
                    another = True
                    break
                if src[i] == _CLOSE and depth > 0:
                    dims[depth - 1] += 1
                    depth -= 1
                    i += 1
                else:
                    raise _unexpected(src, i)
            if not another:
                break

    while i < n:
        if src[i] == _CLOSE and depth > 0:
            depth -= 1
            i += 1
        else:
            raise _unexpected(src, i)

    if depth > 0:
        raise ArrayError(f"database: unable to parse array; expected {_char(_CLOSE)} at offset {i}")

    for d in dims:
        if d == 0 or len(elems) % d != 0:
            raise ArrayError(
                "database: multidimensional arrays must have elements with matching dimensions"
            )

    return dims, elems


def scan_linear_array(
    src: bytes, delimiter: bytes = b",", type_name: str = "array"
) -> list[Optional[bytes]]:
    """Return the elements of a one-dimensional array in text form."""
    dims, elems = parse_array(src, delimiter)
    if len(dims) > 1:
        raise ArrayError(f"database: cannot convert ARRAY{_dims_text(dims)} to {type_name}")
    return elems


def quote_array_bytes(value: bytes) -> bytes:
    """Double-quote value, escaping quotes and backslashes with a backslash."""
    out = bytearray(b'"')
    for byte in bytes(value):
        if byte in (_QUOTE, _BACKSLASH):
            out.append(_BACKSLASH)
        out.append(byte)
    out.append(_QUOTE)
    return bytes(out)


def _is_valuer(value: Any) -> bool:
    return callable(getattr(value, "value", None))


def _is_array(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray))


def _element_delimiter(value: Any) -> str:
    method = getattr(value, "delimiter", None)
    return method() if callable(method) else ","


def _append_array(out: bytearray, items: Sequence[Any]) -> str:
    out.append(_OPEN)
    delim = _append_element(out, items[0])
    for item in items[1:]:
        out += delim.encode("utf-8")
        delim = _append_element(out, item)
    out.append(_CLOSE)
    return delim


def _append_element(out: bytearray, item: Any) -> str:
    if _is_array(item) and not _is_valuer(item):
        if len(item) > 0:
            return _append_array(out, item)
        return ""

    delim = _element_delimiter(item)
    value = item.value() if _is_valuer(item) else item

    if value is None:
        out += b"NULL"
    elif isinstance(value, (bytes, bytearray, memoryview)):
        out += quote_array_bytes(bytes(value))
    elif isinstance(value, str):
        out += quote_array_bytes(value.encode("utf-8"))
    else:
        out += encode(value)
    return delim


def format_array(value: Any) -> Optional[str]:
    """Return the text form of a sequence of any depth, or None for None.

    Elements with a callable value() are converted through it, and an
    element's delimiter() method, if any, sets the delimiter after it.
    """
    if value is None:
        return None
    if not _is_array(value):
        raise TypeError(f"database: Unable to convert {type(value).__name__} to array")
    if len(value) == 0:
        return "{}"
    out = bytearray()
    _append_array(out, value)
    return bytes(out).decode("utf-8", "surrogateescape")