"""Text encoding of values for the database, including bytea and timestamps."""

from __future__ import annotations

import binascii
import math
import re
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

OID_BYTEA = 17

INFINITY_TS_ENABLED_ALREADY = "database: infinity timestamp enabled already"
INFINITY_TS_NEGATIVE_MUST_BE_SMALLER = (
    "database: infinity timestamp: negative value must be smaller (before) than positive"
)

_HEX_SERVER_VERSION = 90000
_OCTAL_RE = re.compile(rb"[0-7]{3}")


@dataclass
class _InfinityTS:
    enabled: bool = False
    negative: Optional[datetime] = None
    positive: Optional[datetime] = None


_infinity = _InfinityTS()


def enable_infinity_ts(negative: datetime, positive: datetime) -> None:
    """Encode times at or before negative as -infinity and at or after positive as infinity."""
    if _infinity.enabled:
        raise RuntimeError(INFINITY_TS_ENABLED_ALREADY)
    if not negative < positive:
        raise ValueError(INFINITY_TS_NEGATIVE_MUST_BE_SMALLER)
    _infinity.enabled = True
    _infinity.negative = negative
    _infinity.positive = positive


def disable_infinity_ts() -> None:
    """Turn infinity timestamp handling off again."""
    _infinity.enabled = False
    _infinity.negative = None
    _infinity.positive = None


def _format_float(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    text = format(Decimal(repr(value)), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def encode(value: Any, oid: int = 0, server_version: int = 0) -> bytes:
    """Return the text form of value as the database expects it."""
    if isinstance(value, bool):
        return b"true" if value else b"false"
    if isinstance(value, int):
        return str(value).encode("ascii")
    if isinstance(value, float):
        return _format_float(value).encode("ascii")
    if isinstance(value, (bytes, bytearray, memoryview)):
        data = bytes(value)
        return encode_bytea(server_version, data) if oid == OID_BYTEA else data
    if isinstance(value, str):
        data = value.encode("utf-8")
        return encode_bytea(server_version, data) if oid == OID_BYTEA else data
    if isinstance(value, datetime):
        return format_ts(value)
    raise TypeError(f"pq: encode: unknown type for {type(value).__name__}")


def format_ts(t: datetime) -> bytes:
    """Format t, honouring infinity timestamps when they are enabled."""
    if _infinity.enabled:
        if not t > _infinity.negative:
            return b"-infinity"
        if not t < _infinity.positive:
            return b"infinity"
    return format_timestamp(t)


def format_timestamp(t: datetime) -> bytes:
    """Format t in the database's text form for timestamps.

    A naive datetime is written as UTC.
    """
    text = (
        f"{t.year:04d}-{t.month:02d}-{t.day:02d} "
        f"{t.hour:02d}:{t.minute:02d}:{t.second:02d}"
    )
    if t.microsecond:
        text += "." + f"{t.microsecond:06d}".rstrip("0")

    offset = t.utcoffset()
    total = 0 if offset is None else int(offset.total_seconds())
    if total == 0:
        text += "Z"
    else:
        sign = "-" if total < 0 else "+"
        magnitude = abs(total)
        text += f"{sign}{magnitude // 3600:02d}:{magnitude // 60 % 60:02d}"
        if magnitude % 60:
            text += f":{magnitude % 60:02d}"
    return text.encode("ascii")


def parse_bytea(s: bytes) -> bytes:
    """Decode a bytea value in either the hex or the escape format."""
    s = bytes(s)
    if s[:2] == b"\\x":
        try:
            return binascii.unhexlify(s[2:])
        except binascii.Error as exc:
            raise ValueError(f"could not parse bytea value: {exc}") from exc

    result = bytearray()
    pos = 0
    while pos < len(s):
        slash = s.find(b"\\", pos)
        if slash == -1:
            result += s[pos:]
            break
        result += s[pos:slash]
        if s[slash + 1 : slash + 2] == b"\\":
            result.append(0x5C)
            pos = slash + 2
            continue
        digits = s[slash + 1 : slash + 4]
        if len(digits) < 3:
            raise ValueError(f"invalid bytea sequence {s[slash:]!r}")
        if not _OCTAL_RE.fullmatch(digits) or int(digits, 8) > 0xFF:
            raise ValueError(f"could not parse bytea value: {digits!r}")
        result.append(int(digits, 8))
        pos = slash + 4
    return bytes(result)


def encode_bytea(server_version: int, v: bytes) -> bytes:
    """Encode v as bytea: hex for servers that support it, escape otherwise."""
    if server_version >= _HEX_SERVER_VERSION:
        return b"\\x" + binascii.hexlify(v)

    out = bytearray()
    for byte in v:
        if byte == 0x5C:
            out += b"\\\\"
        elif byte < 0x20 or byte > 0x7E:
            out += b"\\%03o" % byte
        else:
            out.append(byte)
    return bytes(out)