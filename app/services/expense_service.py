"""
Expense Service
Writes expense records and drives the aggregates they feed.

Every mutation is a short saga of idempotent steps:
    1. validate (nothing written on failure)
    2. check the budget accepts expenses / the income is connected
    3. write the expense
    4. recompute spent of each budget touched (old and new)
    5. recompute the remaining balance of each income touched (old and new)
Steps 4 and 5 re-derive from source, so a failure between them is repaired by
the next mutation or by ReconciliationService.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import InvalidStateError, NotFoundError, ValidationError
from app.logger_config import logger
from app.models.budget import BudgetStatus
from app.models.expense import Expense, ExpenseType, Frequency
from app.models.income import Income
from app.services.balance_link import BalanceLinkEngine
from app.services.budget_ledger import BudgetLedger
from app.utils.clock import naive_utc, utc_now
from app.utils.identifiers import generate_custom_id
from app.utils.money import positive_money, sum_or_zero

EDITABLE_FIELDS = {
    "amount", "category", "reason", "type", "budget_id", "date",
    "is_recurring", "frequency", "affects_balance", "income_id",
}


def _expense_type(value: Any) -> ExpenseType:
    try:
        return ExpenseType(value)
    except ValueError:
        raise ValidationError("Expense type must be free or budget", field="type")


def _frequency(is_recurring: bool, value: Any) -> Optional[Frequency]:
    if not is_recurring:
        return None
    if value is None:
        raise ValidationError("Frequency is required for a recurring expense", field="frequency")
    try:
        return Frequency(value)
    except ValueError:
        raise ValidationError("Frequency must be weekly, monthly, or yearly", field="frequency")


def _required_text(value: Optional[str], field: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field.capitalize()} is required", field=field)
    return str(value).strip()


class ExpenseService:

    def __init__(self, db: Session):
        self.db = db
        self.budgets = BudgetLedger(db)
        self.balance = BalanceLinkEngine(db)

    # ==================== QUERIES ====================

    def get_expense(self, owner_id: str, expense_id: str) -> Expense:
        expense = self.db.query(Expense).filter(
            Expense.id == expense_id,
            Expense.owner_id == owner_id,
        ).first()
        if not expense:
            raise NotFoundError("Expense", expense_id)
        return expense

    def list_expenses(
        self,
        owner_id: str,
        expense_type: Optional[ExpenseType] = None,
        budget_id: Optional[str] = None,
        income_id: Optional[str] = None,
        category: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> Tuple[List[Expense], int, Decimal]:
        """Returns (rows, total_count, total_amount) for the filters."""
        query = self.db.query(Expense).filter(Expense.owner_id == owner_id)
        if expense_type is not None:
            query = query.filter(Expense.type == expense_type)
        if budget_id:
            query = query.filter(Expense.budget_id == budget_id)
        if income_id:
            query = query.filter(Expense.income_id == income_id)
        if category:
            query = query.filter(Expense.category == category)
        if start_date is not None:
            query = query.filter(Expense.date >= start_date)
        if end_date is not None:
            query = query.filter(Expense.date <= end_date)

        total_count = query.count()
        total_amount = sum_or_zero(query.with_entities(func.sum(Expense.amount)).scalar())

        rows = (
            query.order_by(Expense.date.desc(), Expense.created_at.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )
        return rows, total_count, total_amount

    def expenses_by_income(self, owner_id: str, income_id: str) -> Dict[str, Any]:
        """Balance-affecting expenses drawn from one income."""
        income = self.db.query(Income).filter(Income.id == income_id, Income.owner_id == owner_id).first()
        if not income:
            raise NotFoundError("Income", income_id)

        expenses = self.db.query(Expense).filter(
            Expense.owner_id == owner_id,
            Expense.income_id == income_id,
            Expense.affects_balance.is_(True),
        ).order_by(Expense.date.desc()).all()

        total_spent = sum((Decimal(e.amount) for e in expenses), Decimal("0.00"))
        return {"expenses": expenses, "total_spent": total_spent, "count": len(expenses)}

    # ==================== VALIDATION ====================

    def _resolve_links(
        self,
        owner_id: str,
        expense_type: ExpenseType,
        budget_id: Optional[str],
        affects_balance: bool,
        income_id: Optional[str],
    ) -> Tuple[Optional[str], Optional[str]]:
        if expense_type == ExpenseType.budget:
            if not budget_id:
                raise ValidationError("A budget expense needs a budget_id", field="budget_id")
        else:
            budget_id = None

        if affects_balance:
            if not income_id:
                raise ValidationError("A balance-affecting expense needs an income_id", field="income_id")
        else:
            income_id = None
        return budget_id, income_id

    # ==================== CREATE ====================

    def create_expense(
        self,
        owner_id: str,
        amount: Any,
        category: str,
        reason: str,
        type: Any = ExpenseType.free,
        budget_id: Optional[str] = None,
        date: Optional[datetime] = None,
        is_recurring: bool = False,
        frequency: Any = None,
        affects_balance: bool = False,
        income_id: Optional[str] = None,
    ) -> Expense:
        amount = positive_money(amount)
        category = _required_text(category, "category")
        reason = _required_text(reason, "reason")
        expense_type = _expense_type(type)
        frequency = _frequency(is_recurring, frequency)
        budget_id, income_id = self._resolve_links(owner_id, expense_type, budget_id, affects_balance, income_id)

        if budget_id:
            self.budgets.assert_accepts_expenses(self.budgets.get_budget(owner_id, budget_id))
        if income_id:
            self.balance.get_connected_income(owner_id, income_id)

        expense = Expense(
            id=generate_custom_id("EXP"),
            owner_id=owner_id,
            amount=amount,
            category=category,
            reason=reason,
            type=expense_type,
            budget_id=budget_id,
            date=naive_utc(date) or utc_now(),
            is_recurring=bool(is_recurring),
            frequency=frequency,
            affects_balance=bool(income_id),
            income_id=income_id,
        )
        self.db.add(expense)
        try:
            self.db.commit()
            self.db.refresh(expense)
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Error creating expense")
            raise

        logger.info(
            f"Expense {expense.id} created: {amount} ({expense_type.value}"
            f"{', budget ' + budget_id if budget_id else ''}{', income ' + income_id if income_id else ''})"
        )

        self.budgets.recompute_after_write(budget_id)
        if income_id:
            self.balance.link_expense_to_income(expense, income_id)
        self.db.refresh(expense)
        return expense

    # ==================== UPDATE ====================

    def update_expense(self, owner_id: str, expense_id: str, patch: Dict[str, Any]) -> Expense:
        unknown = set(patch) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Unsupported fields: {', '.join(sorted(unknown))}", field=sorted(unknown)[0])

        expense = self.get_expense(owner_id, expense_id)
        old_budget_id = expense.budget_id if expense.type == ExpenseType.budget else None
        old_income_id = expense.income_id if expense.affects_balance else None
        old_amount = Decimal(expense.amount)

        amount = positive_money(patch["amount"]) if patch.get("amount") is not None else old_amount
        category = _required_text(patch["category"], "category") if "category" in patch else expense.category
        reason = _required_text(patch["reason"], "reason") if "reason" in patch else expense.reason
        expense_type = _expense_type(patch["type"]) if patch.get("type") is not None else expense.type
        is_recurring = bool(patch["is_recurring"]) if patch.get("is_recurring") is not None else expense.is_recurring
        frequency = _frequency(is_recurring, patch.get("frequency", expense.frequency))
        affects_balance = (
            bool(patch["affects_balance"]) if patch.get("affects_balance") is not None else expense.affects_balance
        )
        budget_id, income_id = self._resolve_links(
            owner_id,
            expense_type,
            patch.get("budget_id", expense.budget_id),
            affects_balance,
            patch.get("income_id", expense.income_id),
        )

        amount_changed = amount != old_amount
        if old_budget_id:
            old_budget = self.budgets.get_budget(owner_id, old_budget_id)
            if old_budget.status == BudgetStatus.completed and (budget_id != old_budget_id or amount_changed):
                raise InvalidStateError(
                    f"Budget {old_budget_id} is completed; its expenses can no longer move or change amount",
                    field="budget_id", entity="Budget",
                )
        if budget_id and budget_id != old_budget_id:
            self.budgets.assert_accepts_expenses(self.budgets.get_budget(owner_id, budget_id))
        if income_id and income_id != old_income_id:
            self.balance.get_connected_income(owner_id, income_id)

        expense.amount = amount
        expense.category = category
        expense.reason = reason
        expense.type = expense_type
        expense.budget_id = budget_id
        expense.is_recurring = is_recurring
        expense.frequency = frequency
        expense.affects_balance = bool(income_id)
        expense.income_id = income_id
        if patch.get("date") is not None:
            expense.date = naive_utc(patch["date"])

        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception(f"Error updating expense {expense_id}")
            raise

        logger.info(
            f"Expense {expense_id} updated: amount {old_amount} → {amount}, "
            f"budget {old_budget_id} → {budget_id}, income {old_income_id} → {income_id}"
        )

        for touched in {old_budget_id, budget_id} - {None}:
            self.budgets.recompute_after_write(touched)
        self.balance.relink(expense, old_income_id, income_id)

        self.db.refresh(expense)
        return expense

    # ==================== DELETE ====================

    def delete_expense(self, owner_id: str, expense_id: str) -> None:
        """Delete an expense; a completed budget keeps its frozen spent."""
        expense = self.get_expense(owner_id, expense_id)
        budget_id = expense.budget_id if expense.type == ExpenseType.budget else None
        income_id = expense.income_id if expense.affects_balance else None

        try:
            self.db.delete(expense)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception(f"Error deleting expense {expense_id}")
            raise

        logger.info(f"Expense {expense_id} deleted")
        self.budgets.recompute_after_write(budget_id)
        self.balance.unlink_expense_from_income(expense_id, income_id)

    def bulk_delete_expenses(self, owner_id: str, ids: List[str]) -> int:
        """
        Delete several of the owner's expenses in one commit, then recompute each
        budget and income they touched once. Ids that are not the owner's are ignored.
        """
        if not ids:
            raise ValidationError("No expense ids provided", field="ids")

        expenses = self.db.query(Expense).filter(
            Expense.owner_id == owner_id,
            Expense.id.in_(set(ids)),
        ).all()
        budget_ids = {e.budget_id for e in expenses if e.type == ExpenseType.budget and e.budget_id}
        income_ids = {e.income_id for e in expenses if e.affects_balance and e.income_id}

        try:
            for expense in expenses:
                self.db.delete(expense)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception(f"Error bulk deleting {len(expenses)} expenses")
            raise

        logger.info(f"Bulk deleted {len(expenses)} of {len(set(ids))} requested expenses")
        for budget_id in budget_ids:
            self.budgets.recompute_after_write(budget_id)
        for income_id in income_ids:
            self.balance.recompute_after_write(income_id)
        return len(expenses)
