import enum
from sqlalchemy import Column, DateTime, Enum, Numeric, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.core.database import Base
from app.utils.identifiers import generate_custom_id


class BudgetDuration(str, enum.Enum):
    weekly = "weekly"
    monthly = "monthly"
    custom = "custom"


class BudgetStatus(str, enum.Enum):
    running = "running"
    paused = "paused"
    completed = "completed"


class Budget(Base):
    """Spending limit over a date range. `spent` is cached by BudgetLedger and frozen once completed."""
    __tablename__ = "budgets"

    id = Column(String(20), primary_key=True, default=lambda: generate_custom_id("BUD"))
    owner_id = Column(String(64), nullable=False, index=True)

    name = Column(String(255), nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)
    category = Column(String(100), nullable=True)
    duration = Column(Enum(BudgetDuration), nullable=False, default=BudgetDuration.monthly)

    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False, index=True)

    status = Column(Enum(BudgetStatus), nullable=False, default=BudgetStatus.running, index=True)
    spent = Column(Numeric(15, 2), nullable=False, default=0)
    completed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    expenses = relationship("Expense", back_populates="budget")

    def __repr__(self):
        return f"<Budget(id='{self.id}', status='{self.status}', spent={self.spent}/{self.amount})>"
