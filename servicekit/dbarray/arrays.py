"""One-dimensional database arrays of common element types, and a generic array."""

from __future__ import annotations

import json
import math
import re
import struct
from collections.abc import MutableSequence, Sequence
from decimal import Decimal
from typing import Any, Callable, ClassVar, Optional, TypeVar

from servicekit.dbarray.encode import encode, parse_bytea
from servicekit.dbarray.parse import ArrayError, format_array, parse_array, scan_linear_array

_INT_RE = re.compile(rb"[+-]?[0-9]+")
_FLOAT_BAD_RE = re.compile(rb"[\s_]")

T = TypeVar("T", bound="TypedArray")


def _quoted(raw: Optional[bytes]) -> str:
    text = "" if raw is None else raw.decode("utf-8", "surrogateescape")
    return json.dumps(text, ensure_ascii=False)


def _dims_text(dims: Sequence[int]) -> str:
    return "[" + "][".join(str(d) for d in dims) + "]"


def _source_bytes(src: Any, type_name: str) -> bytes:
    if isinstance(src, str):
        return src.encode("utf-8", "surrogateescape")
    if isinstance(src, (bytes, bytearray, memoryview)):
        return bytes(src)
    raise TypeError(f"database: cannot convert {type(src).__name__} to {type_name}")


def _to_float32(value: float) -> float:
    try:
        return struct.unpack("<f", struct.pack("<f", value))[0]
    except OverflowError:
        return math.copysign(math.inf, value)


def _format_float32(value: float) -> str:
    value = float(value)
    if math.isnan(value):
        return "NaN"
    value = _to_float32(value)
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    text = repr(value)
    for precision in range(1, 18):
        candidate = f"{value:.{precision}g}"
        if _to_float32(float(candidate)) == value:
            text = candidate
            break
    text = format(Decimal(text), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def _parse_float(raw: Optional[bytes]) -> float:
    if raw is None or not raw or _FLOAT_BAD_RE.search(raw):
        raise ValueError(f"invalid float {_quoted(raw)}")
    try:
        return float(raw.decode("ascii"))
    except (UnicodeDecodeError, ValueError):
        raise ValueError(f"invalid float {_quoted(raw)}") from None


def _parse_int(raw: Optional[bytes], bits: int) -> int:
    if raw is None or not _INT_RE.fullmatch(raw):
        raise ValueError(f"invalid integer {_quoted(raw)}")
    value = int(raw)
    limit = 1 << (bits - 1)
    if not -limit <= value < limit:
        raise ValueError(f"integer {_quoted(raw)} out of range")
    return value


class TypedArray(list):
    """A one-dimensional array whose elements share one type.

    scan builds an array from the database's text form; value gives that
    text form back.
    """

    type_name: ClassVar[str] = "array"

    @classmethod
    def _parse_element(cls, index: int, raw: Optional[bytes]) -> Any:
        raise NotImplementedError

    @classmethod
    def _format_element(cls, item: Any) -> str:
        raise NotImplementedError

    @classmethod
    def scan(cls: type[T], src: Any) -> Optional[T]:
        """Return the array held in src, or None when src is None."""
        if src is None:
            return None
        data = _source_bytes(src, cls.type_name)
        elems = scan_linear_array(data, b",", cls.type_name)
        return cls(cls._parse_element(i, raw) for i, raw in enumerate(elems))

    def value(self) -> str:
        """Return the array in the database's text form."""
        return "{" + ",".join(self._format_element(item) for item in self) + "}"


class BoolArray(TypedArray):
    """An array of booleans."""

    type_name = "Bool"

    @classmethod
    def _parse_element(cls, index: int, raw: Optional[bytes]) -> bool:
        if raw == b"t":
            return True
        if raw == b"f":
            return False
        raise ArrayError(
            f"database: could not parse boolean array index {index}: invalid boolean {_quoted(raw)}"
        )

    @classmethod
    def _format_element(cls, item: Any) -> str:
        return "t" if item else "f"


class ByteaArray(TypedArray):
    """An array of byte strings, written in the hex format."""

    type_name = "Bytea"

    @classmethod
    def _parse_element(cls, index: int, raw: Optional[bytes]) -> Optional[bytes]:
        if raw is None:
            return None
        try:
            return parse_bytea(raw)
        except ValueError as exc:
            raise ArrayError(f"could not parse bytea array index {index}: {exc}") from exc

    @classmethod
    def _format_element(cls, item: Any) -> str:
        data = b"" if item is None else bytes(item)
        return '"\\\\x' + data.hex() + '"'


class Float64Array(TypedArray):
    """An array of double precision floats."""

    type_name = "Float64"

    @classmethod
    def _parse_element(cls, index: int, raw: Optional[bytes]) -> float:
        try:
            return _parse_float(raw)
        except ValueError as exc:
            raise ArrayError(f"database: parsing array element index {index}: {exc}") from exc

    @classmethod
    def _format_element(cls, item: Any) -> str:
        return encode(float(item)).decode("ascii")


class Float32Array(TypedArray):
    """An array of single precision floats."""

    type_name = "Float32"

    @classmethod
    def _parse_element(cls, index: int, raw: Optional[bytes]) -> float:
        try:
            value = _parse_float(raw)
            if math.isfinite(value):
                struct.pack("<f", value)
        except (ValueError, OverflowError) as exc:
            raise ArrayError(f"database: parsing array element index {index}: {exc}") from exc
        return _to_float32(value)

    @classmethod
    def _format_element(cls, item: Any) -> str:
        return _format_float32(item)


class Int64Array(TypedArray):
    """An array of 64-bit integers."""

    type_name = "Int64"
    _bits: ClassVar[int] = 64

    @classmethod
    def _parse_element(cls, index: int, raw: Optional[bytes]) -> int:
        try:
            return _parse_int(raw, cls._bits)
        except ValueError as exc:
            raise ArrayError(f"database: parsing array element index {index}: {exc}") from exc

    @classmethod
    def _format_element(cls, item: Any) -> str:
        return str(int(item))


class Int32Array(Int64Array):
    """An array of 32-bit integers."""

    type_name = "Int32"
    _bits = 32


class StringArray(TypedArray):
    """An array of strings."""

    type_name = "String"

    @classmethod
    def _parse_element(cls, index: int, raw: Optional[bytes]) -> str:
        if raw is None:
            raise ArrayError(
                f"database: parsing array element index {index}: cannot convert nil to string"
            )
        return raw.decode("utf-8", "surrogateescape")

    @classmethod
    def _format_element(cls, item: Any) -> str:
        from servicekit.dbarray.parse import quote_array_bytes

        quoted = quote_array_bytes(str(item).encode("utf-8", "surrogateescape"))
        return quoted.decode("utf-8", "surrogateescape")


class GenericArray:
    """An array of any depth held in target.

    value formats target, nested sequences becoming nested arrays. scan
    fills target in place: a list is resized, any other mutable sequence
    must already have the array's length. If target has an element_type
    with a scan method, each element goes through it, and its delimiter(),
    if any, is used; otherwise elements are kept as raw bytes, None for NULL.
    """

    def __init__(self, target: Any) -> None:
        self.target = target

    def _assigner(self) -> tuple[Callable[[Optional[bytes]], Any], str]:
        element_type = getattr(self.target, "element_type", None)
        delimiter = ","
        if element_type is None:
            return (lambda raw: raw), delimiter

        method = getattr(element_type, "delimiter", None)
        if callable(method):
            delimiter = method()

        scan = getattr(element_type, "scan", None)
        if callable(scan):
            return scan, delimiter

        name = getattr(element_type, "__name__", str(element_type))

        def unsupported(raw: Optional[bytes]) -> Any:
            raise TypeError(f"database: scanning to {name} is not implemented; only scanners")

        return unsupported, delimiter

    def scan(self, src: Any) -> None:
        """Fill target with the array held in src."""
        target = self.target
        if target is None:
            raise ArrayError("database: destination is nil")
        if not isinstance(target, MutableSequence) or isinstance(target, bytearray):
            raise ArrayError(
                f"database: destination {type(target).__name__} is not an array or list"
            )
        resizable = isinstance(target, list)
        target_name = type(target).__name__

        if src is None and resizable:
            target.clear()
            return
        if src is None:
            raise TypeError(f"database: cannot convert NoneType to {target_name}")
        data = _source_bytes(src, target_name)

        assign, delimiter = self._assigner()
        dims, elems = parse_array(data, delimiter.encode("utf-8"))

        if len(dims) > 1:
            raise ArrayError(
                f"database: scanning from multidimensional ARRAY{_dims_text(dims)} is not implemented"
            )
        if not dims:
            dims = [0]
        if not resizable and len(target) != dims[0]:
            raise ArrayError(f"database: cannot convert ARRAY{_dims_text(dims)} to {target_name}")

        values = []
        for index, raw in enumerate(elems):
            try:
                values.append(assign(raw))
            except (ValueError, TypeError) as exc:
                raise ArrayError(f"database: parsing array element index {index}: {exc}") from exc

        if resizable:
            target[:] = values
        else:
            for index, item in enumerate(values):
                target[index] = item

    def value(self) -> Optional[str]:
        """Return target in the database's text form, or None for None."""
        return format_array(self.target)


def _all(items: Sequence[Any], check: Callable[[Any], bool]) -> bool:
    return all(check(item) for item in items)


def array(a: Any) -> Any:
    """Return the best-suited array wrapper for a sequence.

    A sequence whose elements are all of one common type gets the matching
    typed array; anything else is wrapped in a GenericArray.
    """
    if isinstance(a, (TypedArray, GenericArray)):
        return a
    if isinstance(a, Sequence) and not isinstance(a, (str, bytes, bytearray)) and len(a) > 0:
        if _all(a, lambda x: isinstance(x, bool)):
            return BoolArray(a)
        if _all(a, lambda x: isinstance(x, int) and not isinstance(x, bool)):
            return Int64Array(a)
        if _all(a, lambda x: isinstance(x, float)):
            return Float64Array(a)
        if _all(a, lambda x: isinstance(x, str)):
            return StringArray(a)
        if _all(a, lambda x: isinstance(x, (bytes, bytearray))):
            return ByteaArray(bytes(x) for x in a)
    return GenericArray(a)