from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.core.dependencies import get_current_owner_id, get_db
from app.models.budget import Budget, BudgetStatus
from app.schemas.budget import (
    AutoCompleteResponse,
    BudgetCreate,
    BudgetDeleteResponse,
    BudgetListResponse,
    BudgetResponse,
    BudgetStatusUpdate,
    BudgetUpdate,
)
from app.services.budget_ledger import BudgetLedger
from app.services.budget_scheduler import BudgetScheduler

router = APIRouter()


def _to_response(ledger: BudgetLedger, budget: Budget) -> BudgetResponse:
    snapshot = ledger.snapshot(budget)
    return BudgetResponse(
        id=budget.id,
        name=budget.name,
        amount=budget.amount,
        category=budget.category,
        duration=budget.duration,
        start_date=budget.start_date,
        end_date=budget.end_date,
        status=budget.status,
        completed_at=budget.completed_at,
        created_at=budget.created_at,
        **snapshot,
    )


@router.get("", response_model=BudgetListResponse)
def list_budgets(
    status_filter: Optional[BudgetStatus] = Query(None, alias="status"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=100),
    owner_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    ledger = BudgetLedger(db)
    budgets, total = ledger.list_budgets(owner_id, status=status_filter, skip=skip, limit=limit)
    return BudgetListResponse(total=total, budgets=[_to_response(ledger, b) for b in budgets])


@router.post("", response_model=BudgetResponse, status_code=status.HTTP_201_CREATED)
def create_budget(
    budget_data: BudgetCreate,
    owner_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    ledger = BudgetLedger(db)
    budget = ledger.create_budget(
        owner_id,
        name=budget_data.name,
        amount=budget_data.amount,
        duration=budget_data.duration,
        start_date=budget_data.start_date,
        end_date=budget_data.end_date,
        category=budget_data.category,
        status=budget_data.status,
    )
    return _to_response(ledger, budget)


@router.post("/auto-complete", response_model=AutoCompleteResponse)
def auto_complete_budgets(
    owner_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    """Complete the caller's running budgets whose end date has passed."""
    completed = BudgetScheduler(db).sweep(owner_id=owner_id)
    return AutoCompleteResponse(count=len(completed), completed=completed)


@router.get("/{budget_id}", response_model=BudgetResponse)
def get_budget(
    budget_id: str,
    owner_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    ledger = BudgetLedger(db)
    return _to_response(ledger, ledger.get_budget(owner_id, budget_id))


@router.put("/{budget_id}", response_model=BudgetResponse)
def update_budget(
    budget_id: str,
    budget_data: BudgetUpdate,
    owner_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    ledger = BudgetLedger(db)
    budget = ledger.update_budget(owner_id, budget_id, budget_data.model_dump(exclude_unset=True))
    return _to_response(ledger, budget)


@router.post("/{budget_id}/status", response_model=BudgetResponse)
def set_budget_status(
    budget_id: str,
    status_data: BudgetStatusUpdate,
    owner_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    """Pause, resume or complete a budget. Completed is final."""
    ledger = BudgetLedger(db)
    budget = ledger.set_status(owner_id, budget_id, status_data.status)
    return _to_response(ledger, budget)


@router.delete("/{budget_id}", response_model=BudgetDeleteResponse)
def delete_budget(
    budget_id: str,
    owner_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    detached = BudgetLedger(db).delete_budget(owner_id, budget_id)
    return BudgetDeleteResponse(message=f"Budget {budget_id} deleted", detached_expenses=detached)
