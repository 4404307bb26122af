import pytest

from servicekit.types.money import Money, parse


@pytest.mark.parametrize("value", [0, 0.5, 19.99, 1_000_000])
def test_parse_keeps_value(value):
    assert parse(value).value == value


def test_str_has_two_decimals():
    assert str(parse(12.5)) == "12.50"


@pytest.mark.parametrize("value", [0.0, 3.25, 999.99, 1_000_000.0])
def test_string_round_trip(value):
    money = parse(value)
    assert parse(float(str(money))) == money


def test_equality_by_value():
    assert parse(10.0) == Money(10.0)
    assert parse(10.0) != parse(10.01)


@pytest.mark.parametrize("value", [-0.01, -1, 1_000_000.01, 2_000_000])
def test_parse_rejects_out_of_range(value):
    with pytest.raises(ValueError, match="invalid money"):
        parse(value)