"""Tests for money helpers"""
import pytest
from decimal import Decimal

from saqtau.services.money import (
    format_money,
    is_integer_currency,
    parse_decimal,
    round_money,
    to_decimal,
    to_float,
)


def test_to_decimal_from_float_keeps_precision():
    """Test to decimal from float keeps precision."""
    assert to_decimal(0.1) == Decimal("0.1")


def test_to_decimal_invalid_is_zero():
    """Test to decimal invalid is zero."""
    assert to_decimal("abc") == 0
    assert to_decimal(None) == 0


def test_parse_decimal_rejects_garbage():
    """Test parse decimal rejects garbage."""
    for value in ("abc", True, "NaN", "Infinity", None):
        with pytest.raises(ValueError):
            parse_decimal(value)


def test_round_money_half_up():
    """Test round money half up."""
    assert round_money("49.5", to_int=True) == Decimal("50")
    assert round_money("0.125") == Decimal("0.13")


def test_integer_currencies():
    """Test integer currencies."""
    assert is_integer_currency("kzt")
    assert not is_integer_currency("USD")


def test_format_money():
    """Test format money."""
    assert format_money(Decimal("6195"), "KZT") == "6,195 ₸"
    assert format_money(Decimal("12.5"), "USD") == "$12.50"


def test_to_float():
    """Test to float."""
    assert to_float(Decimal("2760")) == 2760.0
