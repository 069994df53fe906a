"""
Balance Link Engine
Applies and reverses the effect of balance-affecting expenses on connected incomes.

The remaining balance of a connected income is always recomputed as

    income.amount = income.original_amount − Σ linked balance-affecting expenses

and written in one statement, never read-then-decremented. Linking, unlinking
and amount edits are therefore all the same idempotent step on each income the
expense touches, and a crash between the expense write and this step is healed
by the next recompute or by reconciliation.
"""

from decimal import Decimal
from typing import Optional

from sqlalchemy import func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import ConsistencyDriftError, InvalidStateError, NotFoundError
from app.logger_config import logger
from app.models.expense import Expense
from app.models.income import Income
from app.utils.money import sum_or_zero


class BalanceLinkEngine:

    def __init__(self, db: Session):
        self.db = db

    def get_connected_income(self, owner_id: str, income_id: str) -> Income:
        """Only connected incomes may fund balance-affecting expenses."""
        income = self.db.query(Income).filter(
            Income.id == income_id,
            Income.owner_id == owner_id,
        ).first()
        if not income:
            raise NotFoundError("Income", income_id)
        if not income.is_connected:
            raise InvalidStateError(
                f"Income {income_id} is not connected; balance-affecting expenses need a connected income",
                field="income_id", entity="Income",
            )
        return income

    def linked_total(self, income_id: str) -> Decimal:
        total = self.db.query(func.sum(Expense.amount)).filter(
            Expense.income_id == income_id,
            Expense.affects_balance.is_(True),
        ).scalar()
        return sum_or_zero(total)

    def recompute_income(self, income_id: str) -> Optional[Decimal]:
        """Re-derive and persist the remaining balance. Safe to repeat."""
        income = self.db.query(Income).filter(Income.id == income_id).first()
        if not income:
            logger.debug(f"Income {income_id} is gone; nothing to recompute")
            return None

        original = Decimal(income.original_amount)
        remaining = original - self.linked_total(income_id)
        self.db.execute(
            update(Income)
            .where(Income.id == income_id)
            .values(amount=remaining)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        self.db.expire_all()

        logger.debug(f"Income {income_id} remaining: {remaining} of {original}")
        return remaining

    def recompute_after_write(self, income_id: Optional[str]) -> Optional[Decimal]:
        if not income_id:
            return None
        try:
            return self.recompute_income(income_id)
        except SQLAlchemyError as e:
            self.db.rollback()
            drift = ConsistencyDriftError("Income", income_id, reason=str(e))
            logger.warning(f"{drift.message}; left for the next recompute")
            return None

    # ==================== LINK OPERATIONS ====================

    def link_expense_to_income(self, expense: Expense, income_id: str) -> Optional[Decimal]:
        """
        Deduct a saved balance-affecting expense from its income. The caller checked
        the income with get_connected_income before writing the expense; the expense
        is committed by now, so only the recompute runs here.
        """
        logger.info(f"Linking expense {expense.id} ({expense.amount}) to income {income_id}")
        return self.recompute_after_write(income_id)

    def unlink_expense_from_income(self, expense_id: str, income_id: Optional[str]) -> Optional[Decimal]:
        """Re-credit the income an expense used to draw from (after delete or unlink)."""
        if not income_id:
            return None
        logger.info(f"Unlinking expense {expense_id} from income {income_id}")
        return self.recompute_after_write(income_id)

    def relink(self, expense: Expense, old_income_id: Optional[str], new_income_id: Optional[str]) -> None:
        """Amount edit or move between incomes: one recompute per affected income."""
        if old_income_id and old_income_id != new_income_id:
            self.unlink_expense_from_income(expense.id, old_income_id)
        if new_income_id:
            self.recompute_after_write(new_income_id)
