"""Unit tests for the cheque accounting-type policy."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from ledger_engine import cheque_policy, data_manager
from ledger_engine.constants import AccountingType, ChequeDirection, ChequeKind, ChequeStatus
from ledger_engine.errors import ValidationError

LINK = data_manager.TransactionRef("TXN-20240517-093015-042")
ISSUED = date(2024, 5, 17)


def _resolve(accounting_type, direction=ChequeDirection.INCOMING, counterpart=None, amount=Decimal("400.00")):
    return cheque_policy.resolve_cheque(
        accounting_type=accounting_type,
        amount=amount,
        direction=direction,
        party="Acme Builders",
        counterpart=counterpart,
        cheque_id="CHQ-1",
        cheque_number="000123",
        issue_date=ISSUED,
        link=LINK,
        created_at="2024-05-17T09:30:15+00:00",
    )


def test_postponed_cheque_creates_no_payment():
    outcome = _resolve(AccountingType.POSTPONED)

    assert outcome.status is ChequeStatus.PENDING
    assert outcome.cheque_kind is ChequeKind.NORMAL
    assert outcome.payments == ()


@pytest.mark.parametrize(
    ("direction", "payment_direction"),
    [(ChequeDirection.INCOMING, "receipt"), (ChequeDirection.OUTGOING, "disbursement")],
)
def test_cashed_cheque_creates_one_payment(direction, payment_direction):
    outcome = _resolve(AccountingType.CASHED, direction=direction)

    assert outcome.status is ChequeStatus.CLEARED
    (payment,) = outcome.payments
    assert payment.direction == payment_direction
    assert payment.amount == Decimal("400.00")
    assert payment.payment_date == ISSUED
    assert payment.method == "cheque"
    assert payment.linked_transaction == LINK
    assert payment.no_cash_movement is False
    assert payment.linked_cheque_id == "CHQ-1"


def test_endorsed_incoming_cheque_creates_two_non_cash_legs():
    outcome = _resolve(AccountingType.ENDORSED, counterpart="Timber Supply Co")

    assert outcome.status is ChequeStatus.ENDORSED
    assert outcome.cheque_kind is ChequeKind.ENDORSED
    receipt, disbursement = outcome.payments
    assert (receipt.direction, receipt.party_name) == ("receipt", "Acme Builders")
    assert (disbursement.direction, disbursement.party_name) == ("disbursement", "Timber Supply Co")
    for leg in outcome.payments:
        assert leg.no_cash_movement is True
        assert leg.is_endorsement is True
        assert leg.amount == Decimal("400.00")
        assert leg.payment_date == ISSUED
        assert leg.linked_cheque_id == "CHQ-1"


def test_endorsed_outgoing_cheque_passes_from_counterpart_to_party():
    outcome = _resolve(AccountingType.ENDORSED, direction=ChequeDirection.OUTGOING, counterpart="Old Customer")

    receipt, disbursement = outcome.payments
    assert receipt.party_name == "Old Customer"
    assert disbursement.party_name == "Acme Builders"


@pytest.mark.parametrize("counterpart", [None, "", "   "])
def test_endorsed_cheque_requires_counterpart(counterpart):
    with pytest.raises(ValidationError):
        _resolve(AccountingType.ENDORSED, counterpart=counterpart)


def test_cheque_requires_number_and_positive_amount():
    with pytest.raises(ValidationError):
        cheque_policy.validate_cheque(
            cheque_number=" ",
            amount=Decimal("10"),
            accounting_type=AccountingType.CASHED,
            counterpart=None,
        )
    with pytest.raises(ValidationError):
        _resolve(AccountingType.CASHED, amount=Decimal("0"))
