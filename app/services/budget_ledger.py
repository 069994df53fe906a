"""
Budget Ledger
Keeps budget.spent equal to the sum of the budget's expenses and moves a budget
through its lifecycle:

    running --(pause)--> paused
    paused  --(resume)--> running
    running | paused --(complete, or end date passed via sweep)--> completed
    completed is terminal; spent/remaining are frozen as the savings record.

Status writes are conditional UPDATEs on the status the caller observed, so a
racing sweep or a second tab can never resurrect or re-complete a budget.
"""

import calendar
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import ConsistencyDriftError, InvalidStateError, NotFoundError, ValidationError
from app.logger_config import logger
from app.models.budget import Budget, BudgetDuration, BudgetStatus
from app.models.expense import Expense, ExpenseType
from app.utils.clock import naive_utc, utc_now
from app.utils.identifiers import generate_custom_id
from app.utils.money import ZERO, percentage, positive_money, sum_or_zero

ALLOWED_TRANSITIONS = {
    BudgetStatus.running: {BudgetStatus.paused, BudgetStatus.completed},
    BudgetStatus.paused: {BudgetStatus.running, BudgetStatus.completed},
    BudgetStatus.completed: set(),
}


def add_months(moment: datetime, months: int) -> datetime:
    """Same day N months later, clamped to the last day of a shorter month."""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def default_end_date(duration: BudgetDuration, start_date: datetime) -> datetime:
    if duration == BudgetDuration.weekly:
        return start_date + timedelta(days=7)
    if duration == BudgetDuration.monthly:
        return add_months(start_date, 1)
    raise ValidationError("End date is required for a custom budget", field="end_date")


def _duration(value: Any) -> BudgetDuration:
    try:
        return BudgetDuration(value)
    except ValueError:
        raise ValidationError("Duration must be weekly, monthly, or custom", field="duration")


def _status(value: Any) -> BudgetStatus:
    try:
        return BudgetStatus(value)
    except ValueError:
        raise ValidationError("Status must be running, paused, or completed", field="status")


class BudgetLedger:

    def __init__(self, db: Session):
        self.db = db

    # ==================== QUERIES ====================

    def get_budget(self, owner_id: str, budget_id: str) -> Budget:
        budget = self.db.query(Budget).filter(
            Budget.id == budget_id,
            Budget.owner_id == owner_id,
        ).first()
        if not budget:
            logger.warning(f"Budget not found: {budget_id} (owner {owner_id})")
            raise NotFoundError("Budget", budget_id)
        return budget

    def list_budgets(
        self, owner_id: str, status: Optional[BudgetStatus] = None, skip: int = 0, limit: int = 100
    ) -> Tuple[List[Budget], int]:
        query = self.db.query(Budget).filter(Budget.owner_id == owner_id)
        if status:
            query = query.filter(Budget.status == status)
        total = query.count()
        budgets = query.order_by(Budget.created_at.desc()).offset(skip).limit(limit).all()
        return budgets, total

    def compute_spent(self, budget_id: str) -> Decimal:
        """Σ expense.amount over the budget's budget-type expenses."""
        total = self.db.query(func.sum(Expense.amount)).filter(
            Expense.budget_id == budget_id,
            Expense.type == ExpenseType.budget,
        ).scalar()
        return sum_or_zero(total)

    def snapshot(self, budget: Budget, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Derived view of a budget: remaining may go negative when over budget."""
        now = naive_utc(now) or utc_now()
        amount = Decimal(budget.amount)
        spent = Decimal(budget.spent or 0)
        remaining = amount - spent
        days_left = max(0, (budget.end_date - now).days) if budget.end_date else 0
        return {
            "spent": spent,
            "remaining": remaining,
            "percentage": percentage(spent, amount),
            "days_left": days_left,
            "is_over_budget": spent > amount,
            "savings": max(remaining, ZERO) if budget.status == BudgetStatus.completed else None,
        }

    # ==================== RECOMPUTE ====================

    def recompute(self, budget_id: str) -> Optional[Decimal]:
        """
        Re-derive and persist spent. A completed budget keeps its frozen value;
        the write is guarded on status so it cannot overwrite a freeze that
        landed in between.
        """
        spent = self.compute_spent(budget_id)
        result = self.db.execute(
            update(Budget)
            .where(Budget.id == budget_id, Budget.status != BudgetStatus.completed)
            .values(spent=spent)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        self.db.expire_all()

        if result.rowcount == 0:
            logger.debug(f"Budget {budget_id} is completed or gone; spent left untouched")
            return None
        logger.debug(f"Budget {budget_id} spent recomputed: {spent}")
        return spent

    def recompute_after_write(self, budget_id: Optional[str]) -> Optional[Decimal]:
        """Aggregate step after an expense write; failures are drift, not errors."""
        if not budget_id:
            return None
        try:
            return self.recompute(budget_id)
        except SQLAlchemyError as e:
            self.db.rollback()
            drift = ConsistencyDriftError("Budget", budget_id, reason=str(e))
            logger.warning(f"{drift.message}; left for the next recompute")
            return None

    def assert_accepts_expenses(self, budget: Budget) -> None:
        if budget.status == BudgetStatus.completed:
            raise InvalidStateError(
                f"Budget {budget.id} is completed and no longer accepts expenses",
                field="budget_id", entity="Budget",
            )

    # ==================== CREATE / UPDATE / DELETE ====================

    def create_budget(
        self,
        owner_id: str,
        name: str,
        amount: Any,
        duration: Any = BudgetDuration.monthly,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        category: Optional[str] = None,
        status: Any = BudgetStatus.running,
    ) -> Budget:
        if not name or not name.strip():
            raise ValidationError("Budget name is required", field="name")
        amount = positive_money(amount)
        duration = _duration(duration)
        status = _status(status)
        if status == BudgetStatus.completed:
            raise ValidationError("A budget must start running or paused", field="status")

        start_date = naive_utc(start_date) or utc_now()
        end_date = naive_utc(end_date) or default_end_date(duration, start_date)
        if start_date >= end_date:
            raise ValidationError("End date must be after start date", field="end_date")

        budget = Budget(
            id=generate_custom_id("BUD"),
            owner_id=owner_id,
            name=name.strip(),
            amount=amount,
            category=category,
            duration=duration,
            start_date=start_date,
            end_date=end_date,
            status=status,
            spent=ZERO,
        )
        self.db.add(budget)
        try:
            self.db.commit()
            self.db.refresh(budget)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error creating budget: {str(e)}")
            raise

        logger.info(f"Budget {budget.id} created: {budget.name} ({amount}, {duration.value}, {status.value})")
        return budget

    def update_budget(self, owner_id: str, budget_id: str, patch: Dict[str, Any]) -> Budget:
        """Edit name/category freely; amount and dates only while not completed."""
        budget = self.get_budget(owner_id, budget_id)
        financial = {"amount", "start_date", "end_date", "duration"} & {k for k, v in patch.items() if v is not None}
        if financial and budget.status == BudgetStatus.completed:
            raise InvalidStateError(
                f"Budget {budget_id} is completed; {', '.join(sorted(financial))} can no longer change",
                field=sorted(financial)[0], entity="Budget",
            )

        if patch.get("name") is not None:
            if not patch["name"].strip():
                raise ValidationError("Budget name cannot be empty", field="name")
            budget.name = patch["name"].strip()
        if "category" in patch:
            budget.category = patch["category"]
        if patch.get("amount") is not None:
            budget.amount = positive_money(patch["amount"])
        if patch.get("duration") is not None:
            budget.duration = _duration(patch["duration"])
        if patch.get("start_date") is not None:
            budget.start_date = naive_utc(patch["start_date"])
        if patch.get("end_date") is not None:
            budget.end_date = naive_utc(patch["end_date"])
        if budget.start_date >= budget.end_date:
            self.db.rollback()
            raise ValidationError("End date must be after start date", field="end_date")

        try:
            self.db.commit()
            self.db.refresh(budget)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error updating budget {budget_id}: {str(e)}")
            raise
        return budget

    def delete_budget(self, owner_id: str, budget_id: str) -> int:
        """Delete a budget; its expenses stay on record as free expenses."""
        budget = self.get_budget(owner_id, budget_id)
        try:
            detached = self.db.query(Expense).filter(Expense.budget_id == budget.id).update(
                {Expense.budget_id: None, Expense.type: ExpenseType.free},
                synchronize_session=False,
            )
            self.db.delete(budget)
            self.db.commit()
            self.db.expire_all()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error deleting budget {budget_id}: {str(e)}")
            raise
        logger.info(f"Budget {budget_id} deleted; {detached} expenses moved to free expenses")
        return detached

    # ==================== STATUS ====================

    def set_status(self, owner_id: str, budget_id: str, new_status: Any, now: Optional[datetime] = None) -> Budget:
        """
        Manual transition. Completing freezes spent from a fresh recompute.
        Setting the current status again is a no-op.
        """
        new_status = _status(new_status)
        budget = self.get_budget(owner_id, budget_id)
        current = budget.status

        if new_status == current:
            logger.debug(f"Budget {budget_id} already {current.value}")
            return budget
        if new_status not in ALLOWED_TRANSITIONS[current]:
            raise InvalidStateError(
                f"Budget {budget_id} cannot move from {current.value} to {new_status.value}",
                field="status", entity="Budget",
            )

        values: Dict[str, Any] = {"status": new_status}
        if new_status == BudgetStatus.completed:
            values["spent"] = self.compute_spent(budget.id)
            values["completed_at"] = now or utc_now()

        result = self.db.execute(
            update(Budget)
            .where(Budget.id == budget.id, Budget.status == current)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        self.db.expire_all()

        if result.rowcount == 0:
            latest = self.get_budget(owner_id, budget_id)
            raise InvalidStateError(
                f"Budget {budget_id} changed to {latest.status.value} while updating; retry",
                field="status", entity="Budget",
            )

        logger.info(f"Budget {budget_id} status: {current.value} → {new_status.value}")
        return self.get_budget(owner_id, budget_id)

    def complete_if_due(self, budget_id: str, now: datetime) -> bool:
        """
        Sweep step: complete a running budget whose end date has passed. The
        status and end date are re-checked inside the UPDATE itself.
        """
        spent = self.compute_spent(budget_id)
        result = self.db.execute(
            update(Budget)
            .where(
                Budget.id == budget_id,
                Budget.status == BudgetStatus.running,
                Budget.end_date <= now,
            )
            .values(status=BudgetStatus.completed, spent=spent, completed_at=now)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        self.db.expire_all()
        return result.rowcount == 1
