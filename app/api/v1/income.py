from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.core.dependencies import get_current_owner_id, get_db
from app.schemas.common import BulkDeleteRequest
from app.schemas.income import (
    IncomeBulkDeleteResponse,
    IncomeCreate,
    IncomeDeleteResponse,
    IncomeListResponse,
    IncomeResponse,
    IncomeUpdate,
)
from app.services.income_service import (
    bulk_delete_incomes,
    create_income,
    delete_income,
    get_income,
    list_connected_incomes,
    list_incomes,
    update_income,
)

router = APIRouter()


@router.get("", response_model=IncomeListResponse)
def get_incomes(
    is_connected: Optional[bool] = Query(None),
    category: Optional[str] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=100),
    owner_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    incomes, total = list_incomes(db, owner_id, is_connected=is_connected, category=category, skip=skip, limit=limit)
    return IncomeListResponse(total=total, incomes=[IncomeResponse.model_validate(i) for i in incomes])


@router.get("/connected", response_model=IncomeListResponse)
def get_connected_incomes(
    owner_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    """Incomes a balance-affecting expense can be drawn from."""
    incomes = list_connected_incomes(db, owner_id)
    return IncomeListResponse(total=len(incomes), incomes=[IncomeResponse.model_validate(i) for i in incomes])


@router.post("", response_model=IncomeResponse, status_code=status.HTTP_201_CREATED)
def create_income_route(
    income_data: IncomeCreate,
    owner_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    income = create_income(db, owner_id, **income_data.model_dump())
    return IncomeResponse.model_validate(income)


@router.post("/bulk-delete", response_model=IncomeBulkDeleteResponse)
def bulk_delete_incomes_route(
    payload: BulkDeleteRequest,
    owner_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    deleted, detached = bulk_delete_incomes(db, owner_id, payload.ids)
    return IncomeBulkDeleteResponse(message=f"{deleted} incomes deleted", deleted=deleted, detached_expenses=detached)


@router.get("/{income_id}", response_model=IncomeResponse)
def get_income_route(
    income_id: str,
    owner_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    return IncomeResponse.model_validate(get_income(db, owner_id, income_id))


@router.put("/{income_id}", response_model=IncomeResponse)
def update_income_route(
    income_id: str,
    income_data: IncomeUpdate,
    owner_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    income = update_income(db, owner_id, income_id, income_data.model_dump(exclude_unset=True))
    return IncomeResponse.model_validate(income)


@router.delete("/{income_id}", response_model=IncomeDeleteResponse)
def delete_income_route(
    income_id: str,
    owner_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    """Delete an income. Expenses drawn from it are kept but no longer affect a balance."""
    detached = delete_income(db, owner_id, income_id)
    return IncomeDeleteResponse(message=f"Income {income_id} deleted", detached_expenses=detached)
