from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.dependencies import get_current_owner_id, get_db
from app.logger_config import logger
from app.schemas.reconciliation import ReconciliationResponse
from app.services.reconciliation import ReconciliationService

router = APIRouter()


@router.post("", response_model=ReconciliationResponse)
def reconcile(
    owner_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    """Re-derive the caller's cached balances and repair any that drifted."""
    reports = ReconciliationService(db).reconcile_all(owner_id)
    repaired = sum(len(r["repaired"]) for r in reports)
    logger.info(f"Reconciliation requested by owner {owner_id}: {repaired} repaired")
    return ReconciliationResponse(repaired_count=repaired, reports=reports)
