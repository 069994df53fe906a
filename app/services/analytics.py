"""
Read-only summaries for the dashboard: category breakdown, monthly trend,
customer/vendor ledger stats and the connected balance overview.
Nothing here writes; cached aggregates are read as they are.
"""

from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.logger_config import logger
from app.models.budget import Budget, BudgetStatus
from app.models.expense import Expense
from app.models.income import Income
from app.models.party import Party, PartyKind
from app.models.transaction import LedgerTransaction, TransactionType
from app.services.budget_ledger import add_months
from app.utils.clock import utc_now
from app.utils.money import ZERO, percentage, sum_or_zero


def _month_start(moment: datetime) -> datetime:
    return moment.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def _month_key(moment: datetime) -> str:
    return moment.strftime("%Y-%m")


class AnalyticsAggregator:

    def __init__(self, db: Session):
        self.db = db

    def category_totals(self, owner_id: str) -> List[Dict[str, Any]]:
        """Expense totals per category, largest first."""
        rows = self.db.query(
            Expense.category,
            func.sum(Expense.amount),
            func.count(Expense.id),
        ).filter(Expense.owner_id == owner_id).group_by(Expense.category).all()

        grand_total = sum((sum_or_zero(total) for _, total, _ in rows), ZERO)
        categories = [
            {
                "category": category,
                "total": sum_or_zero(total),
                "count": count,
                "percentage": percentage(sum_or_zero(total), grand_total),
            }
            for category, total, count in rows
        ]
        categories.sort(key=lambda c: c["total"], reverse=True)
        return categories

    def monthly_trend(self, owner_id: str, months: int = 6, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """Per-month expenses, income, ledger purchases and payments, oldest month first."""
        now = now or utc_now()
        months = max(1, months)
        window_start = add_months(_month_start(now), -(months - 1))

        buckets: Dict[str, Dict[str, Decimal]] = {}
        cursor = window_start
        for _ in range(months):
            buckets[_month_key(cursor)] = defaultdict(lambda: ZERO)
            cursor = add_months(cursor, 1)

        def collect(rows, field):
            for date, amount in rows:
                key = _month_key(date)
                if key in buckets:
                    buckets[key][field] += Decimal(amount)

        collect(
            self.db.query(Expense.date, Expense.amount).filter(
                Expense.owner_id == owner_id, Expense.date >= window_start
            ).all(),
            "expenses",
        )
        collect(
            self.db.query(Income.date, Income.original_amount).filter(
                Income.owner_id == owner_id, Income.date >= window_start
            ).all(),
            "income",
        )
        for tx_type, field in ((TransactionType.purchase, "purchases"), (TransactionType.payment, "payments")):
            collect(
                self.db.query(LedgerTransaction.date, LedgerTransaction.amount).filter(
                    LedgerTransaction.owner_id == owner_id,
                    LedgerTransaction.type == tx_type,
                    LedgerTransaction.date >= window_start,
                ).all(),
                field,
            )

        return [
            {
                "month": key,
                "expenses": values["expenses"],
                "income": values["income"],
                "purchases": values["purchases"],
                "payments": values["payments"],
            }
            for key, values in buckets.items()
        ]

    def ledger_stats(self, owner_id: str, kind: PartyKind, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Customer or vendor dashboard stats, read from the cached outstanding values."""
        now = now or utc_now()
        month_start = _month_start(now)

        party_count, total_outstanding = self.db.query(
            func.count(Party.id), func.sum(Party.outstanding)
        ).filter(Party.owner_id == owner_id, Party.kind == kind).first()

        month_rows = self.db.query(
            LedgerTransaction.type, func.sum(LedgerTransaction.amount)
        ).join(Party, Party.id == LedgerTransaction.party_id).filter(
            LedgerTransaction.owner_id == owner_id,
            Party.kind == kind,
            LedgerTransaction.date >= month_start,
        ).group_by(LedgerTransaction.type).all()
        month_totals = {tx_type: sum_or_zero(total) for tx_type, total in month_rows}

        top = self.db.query(Party).filter(
            Party.owner_id == owner_id,
            Party.kind == kind,
            Party.outstanding > 0,
        ).order_by(Party.outstanding.desc()).limit(5).all()

        return {
            "kind": kind.value,
            "party_count": party_count or 0,
            "total_outstanding": sum_or_zero(total_outstanding),
            "month_purchases": month_totals.get(TransactionType.purchase, ZERO),
            "month_payments": month_totals.get(TransactionType.payment, ZERO),
            "top_outstanding": [
                {"id": p.id, "name": p.name, "phone": p.phone, "outstanding": p.outstanding} for p in top
            ],
        }

    def income_overview(self, owner_id: str) -> Dict[str, Any]:
        rows = self.db.query(
            Income.is_connected,
            func.sum(Income.original_amount),
            func.sum(Income.amount),
            func.count(Income.id),
        ).filter(Income.owner_id == owner_id).group_by(Income.is_connected).all()
        by_connection = {bool(connected): (original, remaining, count) for connected, original, remaining, count in rows}

        connected = by_connection.get(True)
        unconnected = by_connection.get(False)
        balance_affecting = self.db.query(func.sum(Expense.amount)).filter(
            Expense.owner_id == owner_id,
            Expense.affects_balance.is_(True),
        ).scalar()

        connected_total = sum_or_zero(connected[0]) if connected else ZERO
        unconnected_total = sum_or_zero(unconnected[0]) if unconnected else ZERO
        return {
            "total_income": connected_total + unconnected_total,
            "connected_income": connected_total,
            "unconnected_income": unconnected_total,
            "connected_count": connected[2] if connected else 0,
            "balance_affecting_expenses": sum_or_zero(balance_affecting),
            "available_balance": sum_or_zero(connected[1]) if connected else None,
        }

    def budget_overview(self, owner_id: str) -> Dict[str, Any]:
        budgets = self.db.query(Budget).filter(Budget.owner_id == owner_id).all()
        counts = {status.value: 0 for status in BudgetStatus}
        active_amount = active_spent = savings = ZERO
        for budget in budgets:
            counts[budget.status.value] += 1
            if budget.status == BudgetStatus.completed:
                savings += max(Decimal(budget.amount) - Decimal(budget.spent or 0), ZERO)
            else:
                active_amount += Decimal(budget.amount)
                active_spent += Decimal(budget.spent or 0)
        return {
            "counts": counts,
            "active_budgeted": active_amount,
            "active_spent": active_spent,
            "active_remaining": active_amount - active_spent,
            "total_savings": savings,
        }

    def overview(self, owner_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or utc_now()
        total_expenses, expense_count = self.db.query(
            func.sum(Expense.amount), func.count(Expense.id)
        ).filter(Expense.owner_id == owner_id).first()
        month_expenses = self.db.query(func.sum(Expense.amount)).filter(
            Expense.owner_id == owner_id,
            Expense.date >= _month_start(now),
        ).scalar()

        logger.debug(f"Building overview for owner {owner_id}")
        return {
            "total_expenses": sum_or_zero(total_expenses),
            "expense_count": expense_count or 0,
            "month_expenses": sum_or_zero(month_expenses),
            "budgets": self.budget_overview(owner_id),
            "income": self.income_overview(owner_id),
            "customers": self.ledger_stats(owner_id, PartyKind.customer, now),
            "vendors": self.ledger_stats(owner_id, PartyKind.vendor, now),
        }
