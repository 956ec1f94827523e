"""Fixed-precision money helpers.

Every monetary accumulation in the engine goes through this module. Values
are carried as :class:`~decimal.Decimal` and quantized to two places with
``ROUND_HALF_UP`` so that comparisons at status boundaries are exact
(``add(0.1, 0.2) == Decimal("0.30")``).
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable, Union

from . import log
from .errors import ValidationError

Money = Union[Decimal, int, float, str]

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_decimal(value: Money) -> Decimal:
    """Convert ``value`` to a :class:`Decimal` without binary float drift.

    Floats are routed through ``str`` first, so ``0.1`` becomes
    ``Decimal("0.1")`` rather than its binary approximation.

    Raises:
        ValidationError: If ``value`` is not a finite number.
    """

    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool):
        raise ValidationError(f"Not a monetary value: {value!r}")
    elif isinstance(value, (int, str)):
        try:
            result = Decimal(value.strip() if isinstance(value, str) else value)
        except InvalidOperation as exc:
            raise ValidationError(f"Not a monetary value: {value!r}") from exc
    elif isinstance(value, float):
        result = Decimal(str(value))
    else:
        raise ValidationError(f"Not a monetary value: {value!r}")

    if not result.is_finite():
        raise ValidationError(f"Not a finite monetary value: {value!r}")
    return result


def round_currency(value: Money) -> Decimal:
    """Round to two decimal places, halves rounding away from zero."""

    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def add(a: Money, b: Money) -> Decimal:
    return round_currency(to_decimal(a) + to_decimal(b))


def subtract(a: Money, b: Money) -> Decimal:
    return round_currency(to_decimal(a) - to_decimal(b))


def multiply(a: Money, b: Money) -> Decimal:
    """Multiply two values (typically quantity by unit cost)."""

    return round_currency(to_decimal(a) * to_decimal(b))


def divide(a: Money, b: Money) -> Decimal:
    """Divide ``a`` by ``b``; a zero divisor yields zero instead of raising."""

    divisor = to_decimal(b)
    if divisor == 0:
        return ZERO
    return round_currency(to_decimal(a) / divisor)


def zero_floor(value: Money) -> Decimal:
    """Return ``value`` rounded, or zero when it is negative."""

    rounded = round_currency(value)
    return ZERO if rounded < 0 else rounded


def sum_amounts(values: Iterable[Money]) -> Decimal:
    """Sum a sequence of values and round once at the end."""

    total = Decimal("0")
    for value in values:
        total += to_decimal(value)
    return round_currency(total)


def currency_equals(a: Money, b: Money) -> bool:
    return round_currency(a) == round_currency(b)


def is_zero(value: Money) -> bool:
    return round_currency(value) == ZERO


def parse_amount(raw: Money) -> Decimal:
    """Parse user-supplied text or numbers into a rounded amount.

    Unlike the forgiving form parsers of the UI layer, invalid input is
    rejected here rather than coerced to zero.

    Raises:
        ValidationError: When ``raw`` is blank or not numeric.
    """

    if isinstance(raw, str) and not raw.strip():
        log.warning("Rejected blank monetary input")
        raise ValidationError("Amount is required")
    try:
        return round_currency(raw)
    except ValidationError:
        log.warning("Rejected monetary input %r", raw)
        raise


__all__ = [
    "Money",
    "ZERO",
    "to_decimal",
    "round_currency",
    "add",
    "subtract",
    "multiply",
    "divide",
    "zero_floor",
    "sum_amounts",
    "currency_equals",
    "is_zero",
    "parse_amount",
]
