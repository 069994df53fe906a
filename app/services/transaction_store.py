"""
Persistence of individual purchase/payment records for a party.

The store only reads and writes detail rows; it never touches party.outstanding.
"""

from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from app.core.exceptions import NotFoundError
from app.logger_config import logger
from app.models.transaction import LedgerTransaction, TransactionType
from app.utils.money import sum_or_zero


class TransactionStore:

    def __init__(self, db: Session):
        self.db = db

    # ==================== QUERIES ====================

    def get(self, owner_id: str, transaction_id: str) -> LedgerTransaction:
        transaction = self.db.query(LedgerTransaction).filter(
            LedgerTransaction.id == transaction_id,
            LedgerTransaction.owner_id == owner_id,
        ).first()
        if not transaction:
            logger.warning(f"Transaction not found: {transaction_id} (owner {owner_id})")
            raise NotFoundError("Transaction", transaction_id)
        return transaction

    def list_for_party(
        self,
        owner_id: str,
        party_id: Optional[str] = None,
        transaction_type: Optional[TransactionType] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> Tuple[List[LedgerTransaction], int]:
        query = self.db.query(LedgerTransaction).filter(LedgerTransaction.owner_id == owner_id)
        if party_id:
            query = query.filter(LedgerTransaction.party_id == party_id)
        if transaction_type:
            query = query.filter(LedgerTransaction.type == transaction_type)

        total = query.count()
        rows = (
            query.order_by(LedgerTransaction.date.desc(), LedgerTransaction.created_at.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )
        return rows, total

    def get_linked_payment(self, purchase_id: str) -> Optional[LedgerTransaction]:
        return self.db.query(LedgerTransaction).filter(
            LedgerTransaction.linked_transaction_id == purchase_id,
            LedgerTransaction.type == TransactionType.payment,
        ).first()

    def totals_for_party(self, party_id: str) -> Dict[str, Decimal]:
        """Purchase and payment sums for one party, straight from the detail rows."""
        row = self.db.query(
            func.sum(case((LedgerTransaction.type == TransactionType.purchase, LedgerTransaction.amount), else_=0)),
            func.sum(case((LedgerTransaction.type == TransactionType.payment, LedgerTransaction.amount), else_=0)),
            func.count(LedgerTransaction.id),
        ).filter(LedgerTransaction.party_id == party_id).first()

        total_purchases = sum_or_zero(row[0] if row else None)
        total_payments = sum_or_zero(row[1] if row else None)
        count = int(row[2]) if row and row[2] else 0

        logger.debug(
            f"Party {party_id} totals: purchases={total_purchases}, payments={total_payments}, count={count}"
        )
        return {
            "total_purchases": total_purchases,
            "total_payments": total_payments,
            "transaction_count": count,
        }

    # ==================== WRITES ====================

    def add_all(self, transactions: Iterable[LedgerTransaction]) -> List[LedgerTransaction]:
        """Insert the given rows in one commit."""
        rows = list(transactions)
        for transaction in rows:
            self.db.add(transaction)
        self.db.commit()
        for transaction in rows:
            self.db.refresh(transaction)
        return rows

    def save(self, *transactions: LedgerTransaction) -> None:
        for transaction in transactions:
            self.db.add(transaction)
        self.db.commit()

    def delete(self, *transactions: LedgerTransaction) -> None:
        """Delete rows in the given order (linked payments before their purchase)."""
        for transaction in transactions:
            self.db.delete(transaction)
            self.db.flush()
        self.db.commit()

    def delete_for_party(self, party_id: str) -> int:
        deleted = self.db.query(LedgerTransaction).filter(
            LedgerTransaction.party_id == party_id
        ).delete(synchronize_session=False)
        logger.debug(f"Deleted {deleted} transactions for party {party_id}")
        return deleted
