"""
Ledger Balance Engine
Keeps party.outstanding equal to the sum over the party's transactions.

    outstanding = Σ purchase.amount − Σ payment.amount

Example Scenario:
- Purchase 500 with 200 paid on the spot → purchase row (500) + linked payment row (200)
- Outstanding: 300
- Payment 100 → Outstanding: 200
- Purchase 50 fully paid → purchase row (50) + linked payment row (50), Outstanding stays 200

Every mutation ends by re-deriving outstanding from the persisted rows instead of
applying a delta to the cached value, so a retried or interleaved request can
never compound an error. Overpayment is kept as a negative balance (party in credit).
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import ConsistencyDriftError, InvalidStateError, NotFoundError, ValidationError
from app.logger_config import logger
from app.models.party import Party
from app.models.transaction import LedgerTransaction, PaymentMethod, TransactionType
from app.services.party_service import get_party
from app.services.transaction_store import TransactionStore
from app.utils.clock import naive_utc, utc_now
from app.utils.identifiers import generate_custom_id
from app.utils.money import ZERO, positive_money, to_money

EDITABLE_FIELDS = {
    "type", "amount", "paid_amount", "description", "items",
    "payment_method", "date", "due_date",
}


# ==================== HELPER FUNCTIONS ====================

def _require_description(description: Optional[str]) -> str:
    if description is None or not str(description).strip():
        raise ValidationError("Description is required", field="description")
    return str(description).strip()


def _payment_method(value: Any) -> Optional[PaymentMethod]:
    if value is None:
        return None
    try:
        return PaymentMethod(value)
    except ValueError:
        raise ValidationError(f"Unsupported payment method: {value}", field="payment_method")


def _transaction_type(value: Any) -> TransactionType:
    try:
        return TransactionType(value)
    except ValueError:
        raise ValidationError(f"Unsupported transaction type: {value}", field="type")


def _normalise_items(items: Optional[List[Any]]) -> Optional[List[Dict[str, Any]]]:
    """Line items are informational; they never feed the balance."""
    if not items:
        return None
    normalised = []
    for idx, item in enumerate(items):
        data = item if isinstance(item, dict) else item.model_dump()
        name = str(data.get("name") or "").strip()
        if not name:
            raise ValidationError(f"Item {idx + 1} needs a name", field="items")
        quantity = data.get("quantity", 1)
        if quantity is None or quantity <= 0:
            raise ValidationError(f"Quantity must be greater than 0 for item {name}", field="items")
        unit_price = to_money(data.get("unit_price", 0), "unit_price")
        if unit_price < 0:
            raise ValidationError(f"Unit price cannot be negative for item {name}", field="items")
        normalised.append({"name": name, "quantity": quantity, "unit_price": str(unit_price)})
    return normalised


def _validate_paid_amount(paid_amount: Decimal, amount: Decimal) -> None:
    if paid_amount < 0:
        raise ValidationError("Paid amount cannot be negative", field="paid_amount")
    if paid_amount > amount:
        raise ValidationError(
            f"Paid amount ({paid_amount}) exceeds purchase amount ({amount})", field="paid_amount"
        )


class LedgerBalanceEngine:
    """Owns party.outstanding and the purchase / partial payment reconciliation rule."""

    def __init__(self, db: Session):
        self.db = db
        self.store = TransactionStore(db)

    # ==================== RECOMPUTE ====================

    def recompute_outstanding(self, party_id: str) -> Decimal:
        """Re-derive and persist outstanding for one party. Safe to repeat."""
        totals = self.store.totals_for_party(party_id)
        outstanding = totals["total_purchases"] - totals["total_payments"]

        party = self.db.query(Party).filter(Party.id == party_id).first()
        if not party:
            raise NotFoundError("Party", party_id)

        previous = party.outstanding
        party.outstanding = outstanding
        self.db.commit()

        if previous is None or Decimal(previous) != outstanding:
            logger.info(f"Party {party_id} outstanding: {previous} → {outstanding}")
        else:
            logger.debug(f"Party {party_id} outstanding unchanged at {outstanding}")
        return outstanding

    def _recompute_after_write(self, party_id: str) -> Optional[Decimal]:
        """
        Second step of every mutation. The detail write is already committed, so a
        failure here leaves a stale cache, not lost data: it is logged as drift and
        healed by the next recompute or by the reconciliation job.
        """
        try:
            return self.recompute_outstanding(party_id)
        except SQLAlchemyError as e:
            self.db.rollback()
            drift = ConsistencyDriftError("Party", party_id, reason=str(e))
            logger.warning(f"{drift.message}; left for the next recompute")
            return None

    # ==================== CREATE ====================

    def _auto_payment(self, purchase: LedgerTransaction, paid_amount: Decimal) -> LedgerTransaction:
        return LedgerTransaction(
            id=generate_custom_id("TXN"),
            owner_id=purchase.owner_id,
            party_id=purchase.party_id,
            type=TransactionType.payment,
            amount=paid_amount,
            paid_amount=ZERO,
            description=f"Payment for: {purchase.description}",
            payment_method=purchase.payment_method or PaymentMethod.cash,
            date=purchase.date,
            linked_transaction_id=purchase.id,
        )

    def record_purchase(
        self,
        owner_id: str,
        party_id: str,
        amount: Any,
        paid_amount: Any = 0,
        description: Optional[str] = None,
        items: Optional[List[Any]] = None,
        payment_method: Optional[Any] = None,
        date: Optional[datetime] = None,
        due_date: Optional[datetime] = None,
    ) -> LedgerTransaction:
        """
        Record a purchase on credit.

        Process:
            1. Validate amounts and the party (nothing is written on failure)
            2. Insert the purchase for the full amount
            3. If paid_amount > 0, insert a linked payment for paid_amount
            4. Recompute outstanding from the party's full transaction set
        """
        amount = positive_money(amount)
        paid = to_money(paid_amount or 0, "paid_amount")
        _validate_paid_amount(paid, amount)
        description = _require_description(description)
        normalised_items = _normalise_items(items)
        method = _payment_method(payment_method)

        party = get_party(self.db, owner_id, party_id)

        logger.info(
            f"Recording purchase - Party: {party.id} ({party.kind.value}), "
            f"Amount: {amount}, Paid: {paid}, Owner: {owner_id}"
        )

        purchase = LedgerTransaction(
            id=generate_custom_id("TXN"),
            owner_id=owner_id,
            party_id=party.id,
            type=TransactionType.purchase,
            amount=amount,
            paid_amount=paid,
            description=description,
            items=normalised_items,
            payment_method=method,
            date=naive_utc(date) or utc_now(),
            due_date=due_date,
        )
        rows = [purchase]
        if paid > 0:
            rows.append(self._auto_payment(purchase, paid))

        try:
            self.store.add_all(rows)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to record purchase for party {party_id}: {str(e)}")
            raise

        self._recompute_after_write(party.id)
        logger.info(f"✅ Purchase recorded: {purchase.id} ({len(rows)} rows)")
        return purchase

    def record_payment(
        self,
        owner_id: str,
        party_id: str,
        amount: Any,
        description: Optional[str] = None,
        payment_method: Optional[Any] = None,
        date: Optional[datetime] = None,
    ) -> LedgerTransaction:
        """Record money received from a customer or paid to a vendor. Overpayment is allowed."""
        amount = positive_money(amount)
        method = _payment_method(payment_method)
        party = get_party(self.db, owner_id, party_id)
        description = description.strip() if description and description.strip() else "Payment"

        logger.info(f"Recording payment - Party: {party.id}, Amount: {amount}, Owner: {owner_id}")

        payment = LedgerTransaction(
            id=generate_custom_id("TXN"),
            owner_id=owner_id,
            party_id=party.id,
            type=TransactionType.payment,
            amount=amount,
            paid_amount=ZERO,
            description=description,
            payment_method=method or PaymentMethod.cash,
            date=naive_utc(date) or utc_now(),
        )

        try:
            self.store.add_all([payment])
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to record payment for party {party_id}: {str(e)}")
            raise

        self._recompute_after_write(party.id)
        logger.info(f"✅ Payment recorded: {payment.id}")
        return payment

    # ==================== EDIT / DELETE ====================

    def edit_transaction(self, owner_id: str, transaction_id: str, patch: Dict[str, Any]) -> LedgerTransaction:
        """
        Apply a partial update. The linked auto-payment of a purchase follows its
        paid_amount, and outstanding is always re-derived, never patched by a delta.
        """
        unknown = set(patch) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Unsupported fields: {', '.join(sorted(unknown))}", field=sorted(unknown)[0])

        transaction = self.store.get(owner_id, transaction_id)
        was_auto_payment = transaction.is_auto_payment

        new_type = _transaction_type(patch["type"]) if patch.get("type") is not None else transaction.type
        new_amount = positive_money(patch["amount"]) if patch.get("amount") is not None else transaction.amount

        parent: Optional[LedgerTransaction] = None
        if was_auto_payment:
            if new_type != TransactionType.payment:
                raise InvalidStateError(
                    "An auto-created payment cannot change type; edit its purchase instead",
                    field="type", entity="Transaction",
                )
            parent = self.db.query(LedgerTransaction).filter(
                LedgerTransaction.id == transaction.linked_transaction_id
            ).first()
            if parent and new_amount > parent.amount:
                raise ValidationError(
                    f"Payment ({new_amount}) exceeds its purchase amount ({parent.amount})", field="amount"
                )

        if new_type == TransactionType.purchase:
            current_paid = transaction.paid_amount if transaction.type == TransactionType.purchase else ZERO
            raw_paid = patch.get("paid_amount")
            new_paid = to_money(raw_paid, "paid_amount") if raw_paid is not None else Decimal(current_paid or 0)
            _validate_paid_amount(new_paid, new_amount)
        else:
            raw_paid = patch.get("paid_amount")
            if raw_paid is not None and to_money(raw_paid, "paid_amount") != 0:
                raise ValidationError("paid_amount only applies to purchases", field="paid_amount")
            new_paid = ZERO

        if "description" in patch:
            transaction.description = _require_description(patch["description"])
        if "items" in patch:
            transaction.items = _normalise_items(patch["items"])
        if "payment_method" in patch:
            transaction.payment_method = _payment_method(patch["payment_method"])
        if patch.get("date") is not None:
            transaction.date = naive_utc(patch["date"])
        if "due_date" in patch:
            transaction.due_date = naive_utc(patch["due_date"])

        logger.info(
            f"Editing transaction {transaction.id}: "
            f"type {transaction.type.value} → {new_type.value}, "
            f"amount {transaction.amount} → {new_amount}, paid {transaction.paid_amount} → {new_paid}"
        )

        transaction.type = new_type
        transaction.amount = new_amount
        transaction.paid_amount = new_paid

        try:
            if parent is not None:
                parent.paid_amount = new_amount
            elif not was_auto_payment:
                linked = self.store.get_linked_payment(transaction.id)
                if new_type == TransactionType.purchase and new_paid > 0:
                    if linked:
                        linked.amount = new_paid
                        linked.description = f"Payment for: {transaction.description}"
                        linked.payment_method = transaction.payment_method or PaymentMethod.cash
                        linked.date = transaction.date
                    else:
                        self.db.add(self._auto_payment(transaction, new_paid))
                elif linked:
                    self.db.delete(linked)
                    self.db.flush()
            self.db.commit()
            self.db.refresh(transaction)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to edit transaction {transaction_id}: {str(e)}")
            raise

        self._recompute_after_write(transaction.party_id)
        return transaction

    def delete_transaction(self, owner_id: str, transaction_id: str) -> None:
        """Delete a transaction (and the auto-payment of a purchase), then recompute."""
        transaction = self.store.get(owner_id, transaction_id)
        party_id = transaction.party_id

        rows = []
        if transaction.type == TransactionType.purchase:
            linked = self.store.get_linked_payment(transaction.id)
            if linked:
                rows.append(linked)
        elif transaction.is_auto_payment:
            parent = self.db.query(LedgerTransaction).filter(
                LedgerTransaction.id == transaction.linked_transaction_id
            ).first()
            if parent:
                parent.paid_amount = ZERO
        rows.append(transaction)

        logger.info(f"Deleting transaction {transaction_id} ({len(rows)} rows) for party {party_id}")
        try:
            self.store.delete(*rows)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to delete transaction {transaction_id}: {str(e)}")
            raise

        self._recompute_after_write(party_id)

    # ==================== SUMMARY ====================

    def get_party_summary(self, owner_id: str, party_id: str) -> Dict[str, Any]:
        """Read-only totals for a party, computed from source."""
        party = get_party(self.db, owner_id, party_id)
        totals = self.store.totals_for_party(party.id)
        outstanding = totals["total_purchases"] - totals["total_payments"]

        credit_limit = party.credit_limit
        available_credit = None
        if credit_limit is not None:
            available_credit = Decimal(credit_limit) - outstanding

        return {
            "party_id": party.id,
            "name": party.name,
            "kind": party.kind,
            "total_purchases": totals["total_purchases"],
            "total_payments": totals["total_payments"],
            "outstanding": outstanding,
            "transaction_count": totals["transaction_count"],
            "credit_limit": credit_limit,
            "available_credit": available_credit,
            "over_credit_limit": available_credit is not None and available_credit < 0,
        }
