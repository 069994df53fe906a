from sqlalchemy import Boolean, Column, DateTime, Enum, Numeric, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.core.database import Base
from app.models.expense import Frequency
from app.utils.identifiers import generate_custom_id


class Income(Base):
    """
    An income entry. For a connected income `amount` is the remaining balance,
    derived by BalanceLinkEngine as original_amount minus linked expenses.
    `original_amount` is the recorded deposit and is never decremented.
    """
    __tablename__ = "incomes"

    id = Column(String(20), primary_key=True, default=lambda: generate_custom_id("INC"))
    owner_id = Column(String(64), nullable=False, index=True)

    original_amount = Column(Numeric(15, 2), nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)

    source = Column(String(255), nullable=False)
    category = Column(String(100), nullable=False, default="Other")
    description = Column(Text, nullable=True)
    date = Column(DateTime, nullable=False, server_default=func.now())

    is_connected = Column(Boolean, nullable=False, default=False, index=True)
    is_recurring = Column(Boolean, nullable=False, default=False)
    frequency = Column(Enum(Frequency), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    expenses = relationship("Expense", back_populates="income")

    @property
    def spent(self):
        return self.original_amount - self.amount

    def __repr__(self):
        return f"<Income(id='{self.id}', amount={self.amount}/{self.original_amount})>"
