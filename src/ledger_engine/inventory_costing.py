"""Inventory valuation helpers: weighted-average, landed and sold cost."""

from __future__ import annotations

from decimal import Decimal

from .currency import Money, ZERO, multiply, round_currency, sum_amounts, to_decimal


def weighted_average_cost(
    old_quantity: Money,
    old_unit_cost: Money,
    added_quantity: Money,
    added_unit_cost: Money,
) -> Decimal:
    """Blend existing stock value with a new purchase into one unit cost.

    ``(old_qty * old_cost + added_qty * added_cost) / (old_qty + added_qty)``,
    rounded to cents. A zero total quantity yields zero.
    """

    old_qty = to_decimal(old_quantity)
    added_qty = to_decimal(added_quantity)
    total_quantity = old_qty + added_qty
    if total_quantity == 0:
        return ZERO
    total_value = old_qty * to_decimal(old_unit_cost) + added_qty * to_decimal(added_unit_cost)
    return round_currency(total_value / total_quantity)


def landed_unit_cost(purchase_amount: Money, shipping: Money, other: Money, quantity: Money) -> Decimal:
    """Spread purchase, shipping and incidental costs over the received quantity."""

    qty = to_decimal(quantity)
    if qty == 0:
        return ZERO
    total = to_decimal(purchase_amount) + to_decimal(shipping) + to_decimal(other)
    return round_currency(total / qty)


def landed_total_cost(purchase_amount: Money, shipping: Money, other: Money) -> Decimal:
    return sum_amounts([purchase_amount, shipping, other])


def cogs(quantity: Money, unit_cost: Money) -> Decimal:
    """Cost of goods sold for ``quantity`` units at ``unit_cost``."""

    return multiply(quantity, unit_cost)


__all__ = [
    "weighted_average_cost",
    "landed_unit_cost",
    "landed_total_cost",
    "cogs",
]
