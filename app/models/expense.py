import enum
from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, Numeric, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.core.database import Base
from app.utils.identifiers import generate_custom_id


class ExpenseType(str, enum.Enum):
    free = "free"
    budget = "budget"


class Frequency(str, enum.Enum):
    weekly = "weekly"
    monthly = "monthly"
    yearly = "yearly"


class Expense(Base):
    """
    A single spend. Tied to a budget when type=budget, and drawn from a connected
    income when affects_balance=True.
    """
    __tablename__ = "expenses"

    id = Column(String(20), primary_key=True, default=lambda: generate_custom_id("EXP"))
    owner_id = Column(String(64), nullable=False, index=True)

    amount = Column(Numeric(15, 2), nullable=False)
    category = Column(String(100), nullable=False)
    reason = Column(Text, nullable=False)
    type = Column(Enum(ExpenseType), nullable=False, default=ExpenseType.free)
    budget_id = Column(String(20), ForeignKey("budgets.id", ondelete="SET NULL"), nullable=True, index=True)

    date = Column(DateTime, nullable=False, server_default=func.now())
    is_recurring = Column(Boolean, nullable=False, default=False)
    frequency = Column(Enum(Frequency), nullable=True)

    affects_balance = Column(Boolean, nullable=False, default=False)
    income_id = Column(String(20), ForeignKey("incomes.id", ondelete="SET NULL"), nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    budget = relationship("Budget", back_populates="expenses")
    income = relationship("Income", back_populates="expenses")

    def __repr__(self):
        return f"<Expense(id='{self.id}', amount={self.amount}, type='{self.type}')>"
