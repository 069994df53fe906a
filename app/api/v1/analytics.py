from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.dependencies import get_current_owner_id, get_db
from app.schemas.analytics import CategoryTotalsResponse, MonthlyTrendResponse, OverviewResponse
from app.services.analytics import AnalyticsAggregator

router = APIRouter()


@router.get("/overview", response_model=OverviewResponse)
def get_overview(
    owner_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    return AnalyticsAggregator(db).overview(owner_id)


@router.get("/categories", response_model=CategoryTotalsResponse)
def get_category_totals(
    owner_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    return CategoryTotalsResponse(categories=AnalyticsAggregator(db).category_totals(owner_id))


@router.get("/monthly", response_model=MonthlyTrendResponse)
def get_monthly_trend(
    months: int = Query(6, ge=1, le=24),
    owner_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    return MonthlyTrendResponse(months=AnalyticsAggregator(db).monthly_trend(owner_id, months=months))
