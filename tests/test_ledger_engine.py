"""Outstanding balance of customers and vendors, always re-derived from the transaction rows."""

from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import InvalidStateError, NotFoundError, ValidationError
from app.models.party import PartyKind
from app.models.transaction import LedgerTransaction, PaymentMethod, TransactionStatus, TransactionType
from app.services.ledger_engine import LedgerBalanceEngine
from app.services.party_service import create_party
from conftest import OTHER_OWNER, OWNER, from_scratch_outstanding, outstanding_of


def test_partial_payment_books_purchase_and_linked_payment(db, customer):
    engine = LedgerBalanceEngine(db)
    purchase = engine.record_purchase(OWNER, customer.id, 100, paid_amount=40, description="Atta 10kg")

    rows = db.query(LedgerTransaction).filter(LedgerTransaction.party_id == customer.id).all()
    purchases = [r for r in rows if r.type == TransactionType.purchase]
    payments = [r for r in rows if r.type == TransactionType.payment]

    assert len(purchases) == 1 and purchases[0].amount == Decimal("100")
    assert len(payments) == 1 and payments[0].amount == Decimal("40")
    assert payments[0].linked_transaction_id == purchase.id
    assert payments[0].description == "Payment for: Atta 10kg"
    assert payments[0].payment_method == PaymentMethod.cash
    assert outstanding_of(db, customer.id) == Decimal("60")


def test_purchase_status_follows_paid_amount(db, customer):
    engine = LedgerBalanceEngine(db)
    pending = engine.record_purchase(OWNER, customer.id, 100, paid_amount=40, description="Rice")
    settled = engine.record_purchase(OWNER, customer.id, 50, paid_amount=50, description="Milk")

    assert pending.status == TransactionStatus.pending
    assert pending.remaining_amount == Decimal("60")
    assert settled.status == TransactionStatus.completed


def test_overpayment_keeps_negative_balance(db, customer):
    engine = LedgerBalanceEngine(db)
    engine.record_purchase(OWNER, customer.id, 50, description="Sugar")
    engine.record_payment(OWNER, customer.id, 80)

    assert outstanding_of(db, customer.id) == Decimal("-30")
    # redisplay reads the stored value again
    assert outstanding_of(db, customer.id) == Decimal("-30")


def test_end_to_end_scenario_matches_from_scratch_sum(db, customer):
    engine = LedgerBalanceEngine(db)

    first = engine.record_purchase(OWNER, customer.id, 500, paid_amount=200, description="Monthly ration")
    first_id = first.id
    assert outstanding_of(db, customer.id) == Decimal("300")

    engine.record_payment(OWNER, customer.id, 100)
    assert outstanding_of(db, customer.id) == Decimal("200")

    engine.record_purchase(OWNER, customer.id, 50, paid_amount=50, description="Bread")
    assert outstanding_of(db, customer.id) == Decimal("200")

    engine.delete_transaction(OWNER, first_id)

    expected = from_scratch_outstanding(db, customer.id)
    assert expected == Decimal("-100")
    assert outstanding_of(db, customer.id) == expected
    assert db.query(LedgerTransaction).filter(LedgerTransaction.linked_transaction_id == first_id).count() == 0


def test_recompute_is_idempotent(db, customer):
    engine = LedgerBalanceEngine(db)
    engine.record_purchase(OWNER, customer.id, 250, paid_amount=100, description="Oil")

    first = engine.recompute_outstanding(customer.id)
    second = engine.recompute_outstanding(customer.id)
    assert first == second == Decimal("150")


def test_validation_happens_before_any_write(db, customer):
    engine = LedgerBalanceEngine(db)

    with pytest.raises(ValidationError) as exc:
        engine.record_purchase(OWNER, customer.id, 100, paid_amount=150, description="Dal")
    assert exc.value.field == "paid_amount"

    with pytest.raises(ValidationError):
        engine.record_purchase(OWNER, customer.id, 0, description="Dal")

    with pytest.raises(ValidationError):
        engine.record_payment(OWNER, customer.id, -5)

    with pytest.raises(ValidationError):
        engine.record_purchase(OWNER, customer.id, 10, description="   ")

    assert db.query(LedgerTransaction).count() == 0
    assert outstanding_of(db, customer.id) == Decimal("0")


def test_unknown_or_foreign_party_is_not_found(db, customer):
    engine = LedgerBalanceEngine(db)
    with pytest.raises(NotFoundError):
        engine.record_payment(OWNER, "PTY-MISSING", 10)
    with pytest.raises(NotFoundError):
        engine.record_payment(OTHER_OWNER, customer.id, 10)


def test_edit_amount_re_derives_outstanding(db, customer):
    engine = LedgerBalanceEngine(db)
    purchase = engine.record_purchase(OWNER, customer.id, 500, paid_amount=200, description="Ration")

    engine.edit_transaction(OWNER, purchase.id, {"amount": 600})
    assert outstanding_of(db, customer.id) == Decimal("400")

    engine.edit_transaction(OWNER, purchase.id, {"paid_amount": 350})
    linked = db.query(LedgerTransaction).filter(LedgerTransaction.linked_transaction_id == purchase.id).one()
    assert linked.amount == Decimal("350")
    assert outstanding_of(db, customer.id) == Decimal("250")


def test_edit_paid_amount_to_zero_removes_linked_payment(db, customer):
    engine = LedgerBalanceEngine(db)
    purchase = engine.record_purchase(OWNER, customer.id, 500, paid_amount=200, description="Ration")

    engine.edit_transaction(OWNER, purchase.id, {"paid_amount": 0})

    assert db.query(LedgerTransaction).filter(LedgerTransaction.linked_transaction_id == purchase.id).count() == 0
    assert outstanding_of(db, customer.id) == Decimal("500")


def test_edit_paid_amount_creates_missing_linked_payment(db, customer):
    engine = LedgerBalanceEngine(db)
    purchase = engine.record_purchase(OWNER, customer.id, 300, description="Gas cylinder")

    engine.edit_transaction(OWNER, purchase.id, {"paid_amount": 100, "payment_method": "upi"})

    linked = db.query(LedgerTransaction).filter(LedgerTransaction.linked_transaction_id == purchase.id).one()
    assert linked.amount == Decimal("100")
    assert linked.payment_method == PaymentMethod.upi
    assert outstanding_of(db, customer.id) == Decimal("200")


def test_purchase_edit_carries_over_to_its_linked_payment(db, customer):
    engine = LedgerBalanceEngine(db)
    purchase = engine.record_purchase(OWNER, customer.id, 500, paid_amount=200, description="Ration")
    new_date = datetime(2024, 3, 1, 10, 30)

    engine.edit_transaction(
        OWNER, purchase.id,
        {"description": "Ration and oil", "payment_method": "upi", "date": new_date, "paid_amount": 250},
    )

    linked = db.query(LedgerTransaction).filter(LedgerTransaction.linked_transaction_id == purchase.id).one()
    assert linked.amount == Decimal("250")
    assert linked.description == "Payment for: Ration and oil"
    assert linked.payment_method == PaymentMethod.upi
    assert linked.date == new_date


def test_edit_type_purchase_to_payment(db, customer):
    engine = LedgerBalanceEngine(db)
    engine.record_purchase(OWNER, customer.id, 400, description="Ration")
    wrong = engine.record_purchase(OWNER, customer.id, 100, paid_amount=20, description="Entered by mistake")

    engine.edit_transaction(OWNER, wrong.id, {"type": "payment"})

    assert db.query(LedgerTransaction).filter(LedgerTransaction.linked_transaction_id == wrong.id).count() == 0
    assert outstanding_of(db, customer.id) == Decimal("300")
    assert outstanding_of(db, customer.id) == from_scratch_outstanding(db, customer.id)


def test_editing_auto_payment_keeps_purchase_in_sync(db, customer):
    engine = LedgerBalanceEngine(db)
    purchase = engine.record_purchase(OWNER, customer.id, 500, paid_amount=200, description="Ration")
    purchase_id = purchase.id
    auto = engine.store.get_linked_payment(purchase_id)

    engine.edit_transaction(OWNER, auto.id, {"amount": 300})

    assert engine.store.get(OWNER, purchase_id).paid_amount == Decimal("300")
    assert outstanding_of(db, customer.id) == Decimal("200")

    with pytest.raises(ValidationError):
        engine.edit_transaction(OWNER, auto.id, {"amount": 900})
    with pytest.raises(InvalidStateError):
        engine.edit_transaction(OWNER, auto.id, {"type": "purchase"})


def test_deleting_auto_payment_resets_purchase(db, customer):
    engine = LedgerBalanceEngine(db)
    purchase = engine.record_purchase(OWNER, customer.id, 500, paid_amount=200, description="Ration")
    purchase_id = purchase.id
    auto = engine.store.get_linked_payment(purchase_id)

    engine.delete_transaction(OWNER, auto.id)

    assert engine.store.get(OWNER, purchase_id).paid_amount == Decimal("0")
    assert outstanding_of(db, customer.id) == Decimal("500")


def test_unsupported_edit_field_is_rejected(db, customer):
    engine = LedgerBalanceEngine(db)
    payment = engine.record_payment(OWNER, customer.id, 10)
    with pytest.raises(ValidationError):
        engine.edit_transaction(OWNER, payment.id, {"party_id": "PTY-OTHER"})


def test_failed_recompute_is_healed_by_next_mutation(db, customer, monkeypatch):
    engine = LedgerBalanceEngine(db)
    engine.record_purchase(OWNER, customer.id, 500, description="Ration")

    def dropped_connection(party_id):
        raise SQLAlchemyError("connection dropped")

    monkeypatch.setattr(engine, "recompute_outstanding", dropped_connection)
    payment = engine.record_payment(OWNER, customer.id, 100)

    # the payment is committed, the cached balance is stale
    assert engine.store.get(OWNER, payment.id).amount == Decimal("100")
    assert outstanding_of(db, customer.id) == Decimal("500")

    monkeypatch.undo()
    engine.record_payment(OWNER, customer.id, 50)
    assert outstanding_of(db, customer.id) == Decimal("350")


def test_vendor_ledger_uses_the_same_rule(db, vendor):
    engine = LedgerBalanceEngine(db)
    engine.record_purchase(OWNER, vendor.id, 1200, paid_amount=200, description="Stock refill")
    engine.record_payment(OWNER, vendor.id, 500)
    assert outstanding_of(db, vendor.id) == Decimal("500")


def test_party_summary_reports_credit_utilisation(db):
    party = create_party(db, OWNER, PartyKind.customer, name="Meena", phone="9000000010", credit_limit=1000)
    engine = LedgerBalanceEngine(db)
    engine.record_purchase(OWNER, party.id, 1500, paid_amount=200, description="Wedding order")

    summary = engine.get_party_summary(OWNER, party.id)

    assert summary["total_purchases"] == Decimal("1500")
    assert summary["total_payments"] == Decimal("200")
    assert summary["outstanding"] == Decimal("1300")
    assert summary["transaction_count"] == 2
    assert summary["available_credit"] == Decimal("-300")
    assert summary["over_credit_limit"] is True
