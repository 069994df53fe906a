from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.core.dependencies import get_current_owner_id, get_db
from app.models.expense import ExpenseType
from app.schemas.common import BulkDeleteRequest, BulkDeleteResponse, MessageResponse, naive_utc
from app.schemas.expense import (
    ExpenseCreate,
    ExpenseListResponse,
    ExpenseResponse,
    ExpensesByIncomeResponse,
    ExpenseUpdate,
)
from app.services.expense_service import ExpenseService

router = APIRouter()


@router.get("", response_model=ExpenseListResponse)
def list_expenses(
    type: Optional[ExpenseType] = Query(None),
    budget_id: Optional[str] = Query(None),
    income_id: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    owner_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    expenses, total, total_amount = ExpenseService(db).list_expenses(
        owner_id,
        expense_type=type,
        budget_id=budget_id,
        income_id=income_id,
        category=category,
        start_date=naive_utc(start_date),
        end_date=naive_utc(end_date),
        skip=skip,
        limit=limit,
    )
    return ExpenseListResponse(
        total=total,
        total_amount=total_amount,
        expenses=[ExpenseResponse.model_validate(e) for e in expenses],
    )


@router.post("", response_model=ExpenseResponse, status_code=status.HTTP_201_CREATED)
def create_expense(
    expense_data: ExpenseCreate,
    owner_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    """
    Create an expense. A budget expense adds to the budget's spent; a
    balance-affecting one is deducted from its connected income.
    """
    expense = ExpenseService(db).create_expense(owner_id, **expense_data.model_dump())
    return ExpenseResponse.model_validate(expense)


@router.get("/by-income/{income_id}", response_model=ExpensesByIncomeResponse)
def expenses_by_income(
    income_id: str,
    owner_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    result = ExpenseService(db).expenses_by_income(owner_id, income_id)
    return ExpensesByIncomeResponse(
        income_id=income_id,
        total_spent=result["total_spent"],
        count=result["count"],
        expenses=[ExpenseResponse.model_validate(e) for e in result["expenses"]],
    )


@router.post("/bulk-delete", response_model=BulkDeleteResponse)
def bulk_delete_expenses(
    payload: BulkDeleteRequest,
    owner_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    """Delete several expenses; budgets and incomes they touched are recomputed once each."""
    deleted = ExpenseService(db).bulk_delete_expenses(owner_id, payload.ids)
    return BulkDeleteResponse(message=f"{deleted} expenses deleted", deleted=deleted)


@router.get("/{expense_id}", response_model=ExpenseResponse)
def get_expense(
    expense_id: str,
    owner_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    return ExpenseResponse.model_validate(ExpenseService(db).get_expense(owner_id, expense_id))


@router.put("/{expense_id}", response_model=ExpenseResponse)
def update_expense(
    expense_id: str,
    expense_data: ExpenseUpdate,
    owner_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    expense = ExpenseService(db).update_expense(owner_id, expense_id, expense_data.model_dump(exclude_unset=True))
    return ExpenseResponse.model_validate(expense)


@router.delete("/{expense_id}", response_model=MessageResponse)
def delete_expense(
    expense_id: str,
    owner_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    ExpenseService(db).delete_expense(owner_id, expense_id)
    return MessageResponse(message=f"Expense {expense_id} deleted")
