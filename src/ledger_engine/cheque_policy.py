"""Decide which payment records a cheque produces when it is recorded.

The accounting type fully determines the outcome:

* ``cashed``: one payment for the full amount, cheque status ``cleared``.
* ``postponed``: no payment yet, cheque status ``pending``. Clearing the
  cheque later records its payment separately.
* ``endorsed``: a receipt and a disbursement for the full amount, both
  flagged ``no_cash_movement`` so cash-flow totals ignore them; cheque status
  ``endorsed``.

Every generated payment carries the id of its cheque and is only ever
removed together with it.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional, Tuple

from . import data_manager, log
from .constants import (
    AccountingType,
    ChequeDirection,
    ChequeKind,
    ChequeStatus,
    PaymentDirection,
    PaymentMethod,
)
from .errors import ValidationError


@dataclass(frozen=True)
class ChequeOutcome:
    """Status label and payment records implied by a cheque's accounting type."""

    status: ChequeStatus
    cheque_kind: ChequeKind
    payments: Tuple[data_manager.PaymentRow, ...]


def validate_cheque(
    *,
    cheque_number: str,
    amount: Decimal,
    accounting_type: AccountingType,
    counterpart: Optional[str],
) -> None:
    """Reject cheque details that cannot be recorded.

    Raises:
        ValidationError: If the number is blank, the amount is not positive,
            or an endorsed cheque names no counterpart.
    """

    if not (cheque_number or "").strip():
        log.warning("Rejected cheque without a number")
        raise ValidationError("Cheque number is required")
    if amount <= 0:
        log.warning("Rejected cheque %s with amount %s", cheque_number, amount)
        raise ValidationError("Cheque amount must be greater than zero")
    if accounting_type is AccountingType.ENDORSED and not (counterpart or "").strip():
        log.warning("Rejected endorsed cheque %s without an endorsement party", cheque_number)
        raise ValidationError("Endorsed cheques require the name of the endorsement party")


def resolve_cheque(
    *,
    accounting_type: AccountingType,
    amount: Decimal,
    direction: ChequeDirection,
    party: str,
    counterpart: Optional[str],
    cheque_id: str,
    cheque_number: str,
    issue_date: date,
    link: data_manager.TransactionRef,
    created_at: str,
) -> ChequeOutcome:
    """Return the cheque status and the payments to create alongside it.

    Args:
        accounting_type (AccountingType): How the cheque is accounted for.
        amount (Decimal): Face value of the cheque.
        direction (ChequeDirection): Incoming cheques produce receipts,
            outgoing ones disbursements.
        party (str): Associated party of the parent ledger entry.
        counterpart (str | None): For endorsed cheques, the party the cheque
            was passed on to (incoming) or received from (outgoing).
        cheque_id (str): Identifier of the cheque row; every generated
            payment points back to it.
        cheque_number (str): Printed cheque number, used in payment notes.
        issue_date (date): Date stamped on every generated payment.
        link (TransactionRef): Parent ledger entry reference.
        created_at (str): ISO timestamp for the generated records.

    Raises:
        ValidationError: When :func:`validate_cheque` rejects the details.
    """

    validate_cheque(
        cheque_number=cheque_number,
        amount=amount,
        accounting_type=accounting_type,
        counterpart=counterpart,
    )

    if accounting_type is AccountingType.POSTPONED:
        return ChequeOutcome(status=ChequeStatus.PENDING, cheque_kind=ChequeKind.NORMAL, payments=())

    if accounting_type is AccountingType.CASHED:
        payment_direction = (
            PaymentDirection.RECEIPT if direction is ChequeDirection.INCOMING else PaymentDirection.DISBURSEMENT
        )
        payment = data_manager.PaymentRow(
            payment_id=data_manager.new_record_id(),
            party_name=party,
            amount=amount,
            direction=payment_direction.value,
            linked_transaction=link,
            method=PaymentMethod.CHEQUE.value,
            payment_date=issue_date,
            notes=f"{direction.value.capitalize()} cheque {cheque_number}",
            is_endorsement=False,
            no_cash_movement=False,
            created_at=created_at,
            linked_cheque_id=cheque_id,
        )
        return ChequeOutcome(status=ChequeStatus.CLEARED, cheque_kind=ChequeKind.NORMAL, payments=(payment,))

    if direction is ChequeDirection.INCOMING:
        received_from, passed_to = party, counterpart
    else:
        received_from, passed_to = counterpart, party

    legs = []
    for payment_direction, leg_party, note in (
        (PaymentDirection.RECEIPT, received_from, f"Endorsed cheque {cheque_number} received from {received_from}"),
        (PaymentDirection.DISBURSEMENT, passed_to, f"Endorsed cheque {cheque_number} passed to {passed_to}"),
    ):
        legs.append(
            data_manager.PaymentRow(
                payment_id=data_manager.new_record_id(),
                party_name=str(leg_party),
                amount=amount,
                direction=payment_direction.value,
                linked_transaction=link,
                method=PaymentMethod.CHEQUE.value,
                payment_date=issue_date,
                notes=note,
                is_endorsement=True,
                no_cash_movement=True,
                created_at=created_at,
                linked_cheque_id=cheque_id,
            )
        )
    return ChequeOutcome(status=ChequeStatus.ENDORSED, cheque_kind=ChequeKind.ENDORSED, payments=tuple(legs))


__all__ = ["ChequeOutcome", "validate_cheque", "resolve_cheque"]
