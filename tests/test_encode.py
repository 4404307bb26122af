from datetime import datetime, timedelta, timezone

import pytest

from servicekit.dbarray.encode import (
    OID_BYTEA,
    disable_infinity_ts,
    enable_infinity_ts,
    encode,
    encode_bytea,
    format_timestamp,
    format_ts,
    parse_bytea,
)

ALL_BYTES = bytes(range(256))
UTC = timezone.utc


@pytest.fixture(autouse=True)
def _reset_infinity():
    disable_infinity_ts()
    yield
    disable_infinity_ts()


def test_encode_int_and_bool():
    assert encode(-42) == b"-42"
    assert encode(True) == b"true"
    assert encode(False) == b"false"


def test_encode_float_has_no_exponent():
    assert float(encode(3.25)) == 3.25
    big = encode(1e21)
    assert b"e" not in big.lower()
    assert float(big) == 1e21
    small = encode(1e-7)
    assert b"e" not in small.lower()
    assert float(small) == 1e-7


def test_encode_whole_float_has_no_point():
    result = encode(2.0)
    assert b"." not in result
    assert int(result) == 2


def test_encode_text_and_bytes_pass_through():
    assert encode("abc") == b"abc"
    assert encode(b"xyz") == b"xyz"


def test_encode_bytea_oid_uses_bytea_encoding():
    assert encode(b"xyz", OID_BYTEA, 90000) == encode_bytea(90000, b"xyz")
    assert encode("xyz", OID_BYTEA, 0) == encode_bytea(0, b"xyz")


def test_encode_unknown_type():
    with pytest.raises(TypeError, match="pq: encode: unknown type"):
        encode(object())


def test_encode_datetime_uses_format_ts():
    t = datetime(2020, 1, 2, 3, 4, 5, tzinfo=UTC)
    assert encode(t) == format_timestamp(t)


def test_format_timestamp_utc():
    assert format_timestamp(datetime(2020, 1, 2, 3, 4, 5, tzinfo=UTC)) == b"2020-01-02 03:04:05Z"


def test_format_timestamp_fraction_and_offset():
    tz = timezone(timedelta(hours=5, minutes=30))
    t = datetime(2020, 1, 2, 3, 4, 5, 500000, tzinfo=tz)
    assert format_timestamp(t) == b"2020-01-02 03:04:05.5+05:30"


def test_format_timestamp_offset_seconds():
    date = (2020, 1, 2, 3, 4, 5)
    with_secs = datetime(*date, tzinfo=timezone(-timedelta(hours=1, seconds=30)))
    without_secs = datetime(*date, tzinfo=timezone(-timedelta(hours=1)))
    assert format_timestamp(with_secs) == format_timestamp(without_secs) + b":30"


def test_format_timestamp_naive_is_utc():
    naive = datetime(2021, 6, 7, 8, 9, 10, 123)
    assert format_timestamp(naive) == format_timestamp(naive.replace(tzinfo=UTC))


def test_format_ts_without_infinity():
    t = datetime(2020, 1, 1, tzinfo=UTC)
    assert format_ts(t) == format_timestamp(t)


def test_format_ts_with_infinity():
    negative = datetime(2000, 1, 1, tzinfo=UTC)
    positive = datetime(2100, 1, 1, tzinfo=UTC)
    enable_infinity_ts(negative, positive)
    assert format_ts(negative) == b"-infinity"
    assert format_ts(negative - timedelta(days=1)) == b"-infinity"
    assert format_ts(positive) == b"infinity"
    assert format_ts(positive + timedelta(days=1)) == b"infinity"
    middle = datetime(2050, 1, 1, tzinfo=UTC)
    assert format_ts(middle) == format_timestamp(middle)


def test_enable_infinity_twice():
    enable_infinity_ts(datetime(2000, 1, 1), datetime(2001, 1, 1))
    with pytest.raises(RuntimeError, match="enabled already"):
        enable_infinity_ts(datetime(2000, 1, 1), datetime(2001, 1, 1))


def test_enable_infinity_order():
    t = datetime(2000, 1, 1)
    with pytest.raises(ValueError, match="must be smaller"):
        enable_infinity_ts(t, t)


def test_bytea_hex_round_trip():
    encoded = encode_bytea(90000, ALL_BYTES)
    assert encoded[:2] == b"\\x"
    assert len(encoded) == 2 + 2 * len(ALL_BYTES)
    assert parse_bytea(encoded) == ALL_BYTES


def test_bytea_escape_round_trip():
    encoded = encode_bytea(0, ALL_BYTES)
    assert all(0x20 <= byte <= 0x7E for byte in encoded)
    assert parse_bytea(encoded) == ALL_BYTES


def test_bytea_escape_keeps_printables():
    text = b"hello world"
    assert encode_bytea(0, text) == text
    assert parse_bytea(text) == text


def test_parse_bytea_empty():
    assert parse_bytea(b"") == b""
    assert parse_bytea(b"\\x") == b""


@pytest.mark.parametrize("bad", [b"\\x0", b"\\xzz", b"\\12", b"\\9ab", b"\\777"])
def test_parse_bytea_errors(bad):
    with pytest.raises(ValueError):
        parse_bytea(bad)