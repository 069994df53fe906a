import enum
from sqlalchemy import JSON, Column, DateTime, Enum, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.core.database import Base
from app.utils.identifiers import generate_custom_id


class TransactionType(str, enum.Enum):
    purchase = "purchase"
    payment = "payment"


class PaymentMethod(str, enum.Enum):
    cash = "cash"
    upi = "upi"
    card = "card"
    other = "other"


class TransactionStatus(str, enum.Enum):
    completed = "completed"
    pending = "pending"


class LedgerTransaction(Base):
    """
    One purchase or payment against a party.

    A purchase recorded with paid_amount > 0 gets a sibling payment row whose
    linked_transaction_id points back at the purchase, so purchase totals and
    payment totals each stay plain sums.
    """
    __tablename__ = "ledger_transactions"

    id = Column(String(20), primary_key=True, default=lambda: generate_custom_id("TXN"))
    owner_id = Column(String(64), nullable=False, index=True)
    party_id = Column(String(20), ForeignKey("parties.id", ondelete="CASCADE"), nullable=False, index=True)

    type = Column(Enum(TransactionType), nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)
    paid_amount = Column(Numeric(15, 2), nullable=False, default=0)

    description = Column(Text, nullable=False)
    items = Column(JSON, nullable=True)  # [{"name", "quantity", "unit_price"}]
    payment_method = Column(Enum(PaymentMethod), nullable=True)

    date = Column(DateTime, nullable=False, server_default=func.now())
    due_date = Column(DateTime, nullable=True)

    linked_transaction_id = Column(
        String(20), ForeignKey("ledger_transactions.id", ondelete="CASCADE"), nullable=True, index=True
    )

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    party = relationship("Party", back_populates="transactions")

    __table_args__ = (
        Index("ix_ledger_transactions_owner_party_date", "owner_id", "party_id", "date"),
    )

    @property
    def is_auto_payment(self) -> bool:
        return self.type == TransactionType.payment and self.linked_transaction_id is not None

    @property
    def remaining_amount(self):
        if self.type != TransactionType.purchase:
            return 0
        return self.amount - (self.paid_amount or 0)

    @property
    def status(self) -> TransactionStatus:
        if self.type == TransactionType.purchase and self.remaining_amount > 0:
            return TransactionStatus.pending
        return TransactionStatus.completed

    def __repr__(self):
        return f"<LedgerTransaction(id='{self.id}', type='{self.type}', amount={self.amount})>"
