"""Unit tests for the fixed-precision money helpers."""

from __future__ import annotations

from decimal import Decimal

import pytest

from ledger_engine import currency
from ledger_engine.errors import ValidationError


def test_float_addition_does_not_drift():
    """0.1 + 0.2 must compare equal to 0.3 once routed through add."""

    assert currency.add(0.1, 0.2) == Decimal("0.30")
    assert currency.currency_equals(currency.add(0.1, 0.2), "0.3")


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("2.345", Decimal("2.35")),
        ("2.344", Decimal("2.34")),
        ("-2.345", Decimal("-2.35")),
        (10, Decimal("10.00")),
    ],
)
def test_round_currency_rounds_half_up(raw, expected):
    assert currency.round_currency(raw) == expected


def test_subtract_and_zero_floor():
    assert currency.subtract("100", "250.5") == Decimal("-150.50")
    assert currency.zero_floor("-150.5") == Decimal("0.00")
    assert currency.zero_floor("12.345") == Decimal("12.35")


def test_divide_by_zero_yields_zero():
    assert currency.divide("10", 0) == currency.ZERO
    assert currency.divide("10", 3) == Decimal("3.33")


def test_multiply_and_sum_round_once():
    assert currency.multiply("3", "10.675") == Decimal("32.03")
    assert currency.sum_amounts(["0.005", "0.005"]) == Decimal("0.01")
    assert currency.is_zero("0.004")


@pytest.mark.parametrize("raw", ["", "   ", "abc", True, None, "NaN"])
def test_parse_amount_rejects_invalid_input(raw):
    with pytest.raises(ValidationError):
        currency.parse_amount(raw)


def test_parse_amount_accepts_text():
    assert currency.parse_amount(" 1200.5 ") == Decimal("1200.50")
