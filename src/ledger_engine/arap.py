"""Accounts receivable/payable tracking for ledger entries.

Pure functions only: they take an entry snapshot and an amount and return the
totals the caller should write back. Nothing here touches the store.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from . import data_manager, log
from .constants import PaymentStatus
from .currency import Money, ZERO, add, subtract, to_decimal, zero_floor
from .errors import DataIntegrityFault, OverpaymentWarning, ValidationError


@dataclass(frozen=True)
class UpdatedTotals:
    """Running AR/AP totals after a payment is applied or reversed."""

    total_paid: Decimal
    remaining_balance: Decimal
    payment_status: PaymentStatus
    overpaid: bool = False

    def as_changes(self) -> dict:
        """Return the totals keyed by ledger entry attribute name."""

        return {
            "total_paid": self.total_paid,
            "remaining_balance": self.remaining_balance,
            "payment_status": self.payment_status.value,
        }


def calculate_status(total_paid: Money, amount: Money) -> PaymentStatus:
    """Map paid and invoiced amounts onto a settlement status.

    Total for any numeric input: a negative ``total_paid`` counts as nothing
    paid, and a negative ``amount`` reports ``PAID`` because nothing remains.
    """

    remaining = subtract(amount, total_paid)
    if remaining <= 0:
        return PaymentStatus.PAID
    if to_decimal(total_paid) > 0:
        return PaymentStatus.PARTIAL
    return PaymentStatus.UNPAID


def calculate_remaining_balance(amount: Money, total_paid: Money) -> Decimal:
    return subtract(amount, total_paid)


def initial_totals(amount: Money, total_paid: Money) -> UpdatedTotals:
    """Build the totals stamped on a freshly composed AR/AP entry."""

    paid = add(total_paid, ZERO)
    return UpdatedTotals(
        total_paid=paid,
        remaining_balance=calculate_remaining_balance(amount, paid),
        payment_status=calculate_status(paid, amount),
    )


def _require_arap(entry: data_manager.LedgerEntryRow) -> None:
    if not entry.is_arap_entry:
        log.warning("Entry '%s' does not track AR/AP", entry.transaction_id)
        raise ValidationError(f"Entry {entry.transaction_id} does not track receivables/payables")


def apply_payment(
    entry: data_manager.LedgerEntryRow,
    amount: Money,
    *,
    allow_overpayment: bool = False,
) -> UpdatedTotals:
    """Add ``amount`` to the entry's paid total.

    Args:
        entry (data_manager.LedgerEntryRow): Current snapshot of an AR/AP entry.
        amount (Money): Payment being recorded against the entry.
        allow_overpayment (bool): Return the totals instead of raising when
            ``amount`` exceeds the remaining balance.

    Returns:
        UpdatedTotals: New totals; ``overpaid`` is set when the payment went
            past the remaining balance.

    Raises:
        ValidationError: If the entry is not AR/AP tracked or ``amount`` is not
            positive.
        OverpaymentWarning: If ``amount`` exceeds the remaining balance and
            ``allow_overpayment`` is false. The warning carries the totals.
    """

    _require_arap(entry)
    payment = to_decimal(amount)
    if payment <= 0:
        log.warning("Rejected non-positive payment %s for '%s'", payment, entry.transaction_id)
        raise ValidationError("Payment amount must be greater than zero")

    current_paid = entry.total_paid or ZERO
    remaining = entry.remaining_balance if entry.remaining_balance is not None else subtract(entry.amount, current_paid)
    new_total_paid = add(current_paid, payment)
    overpaid = payment > remaining
    totals = UpdatedTotals(
        total_paid=new_total_paid,
        remaining_balance=calculate_remaining_balance(entry.amount, new_total_paid),
        payment_status=calculate_status(new_total_paid, entry.amount),
        overpaid=overpaid,
    )

    if overpaid and not allow_overpayment:
        log.warning(
            "Payment %s exceeds remaining balance %s on '%s'",
            payment,
            remaining,
            entry.transaction_id,
        )
        raise OverpaymentWarning(
            f"Payment {payment} exceeds the remaining balance {remaining} of {entry.transaction_id}",
            totals,
        )

    log.debug("Applied payment %s to '%s': %s", payment, entry.transaction_id, totals)
    return totals


def reverse_payment(entry: data_manager.LedgerEntryRow, amount: Money) -> UpdatedTotals:
    """Remove ``amount`` from the entry's paid total.

    Raises:
        ValidationError: If the entry is not AR/AP tracked.
        DataIntegrityFault: If the reversal exceeds what the entry records as
            paid, meaning the payment and the entry have drifted apart.
    """

    _require_arap(entry)
    current_paid = entry.total_paid or ZERO
    raw_total = subtract(current_paid, amount)
    new_total_paid = zero_floor(raw_total)
    if new_total_paid != raw_total:
        log.error(
            "Reversing %s from '%s' would leave total paid at %s",
            amount,
            entry.transaction_id,
            raw_total,
        )
        raise DataIntegrityFault(
            "Payment reversal exceeds the amount recorded as paid",
            operation="reverse_payment",
            entity_type="ledger_entry",
            entity_id=entry.transaction_id,
            expected=ZERO,
            actual=raw_total,
        )

    totals = UpdatedTotals(
        total_paid=new_total_paid,
        remaining_balance=calculate_remaining_balance(entry.amount, new_total_paid),
        payment_status=calculate_status(new_total_paid, entry.amount),
    )
    log.debug("Reversed payment %s on '%s': %s", amount, entry.transaction_id, totals)
    return totals


__all__ = [
    "UpdatedTotals",
    "calculate_status",
    "calculate_remaining_balance",
    "initial_totals",
    "apply_payment",
    "reverse_payment",
]
