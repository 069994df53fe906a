from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel

from app.schemas.party import LedgerStatsResponse


class CategoryTotal(BaseModel):
    category: str
    total: Decimal
    count: int
    percentage: Decimal


class CategoryTotalsResponse(BaseModel):
    categories: List[CategoryTotal]


class MonthlyPoint(BaseModel):
    month: str  # YYYY-MM
    expenses: Decimal
    income: Decimal
    purchases: Decimal
    payments: Decimal


class MonthlyTrendResponse(BaseModel):
    months: List[MonthlyPoint]


class IncomeOverview(BaseModel):
    total_income: Decimal
    connected_income: Decimal
    unconnected_income: Decimal
    connected_count: int
    balance_affecting_expenses: Decimal
    available_balance: Optional[Decimal] = None


class BudgetOverview(BaseModel):
    counts: Dict[str, int]
    active_budgeted: Decimal
    active_spent: Decimal
    active_remaining: Decimal
    total_savings: Decimal


class OverviewResponse(BaseModel):
    total_expenses: Decimal
    expense_count: int
    month_expenses: Decimal
    budgets: BudgetOverview
    income: IncomeOverview
    customers: LedgerStatsResponse
    vendors: LedgerStatsResponse
