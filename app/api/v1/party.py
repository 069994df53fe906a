"""
Customer and vendor routes. Both ledgers share one set of handlers; the
router is built per PartyKind and mounted at /customers and /vendors.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.core.dependencies import get_current_owner_id, get_db
from app.models.party import PartyKind
from app.schemas.common import MessageResponse
from app.schemas.party import (
    LedgerStatsResponse,
    PartyCreate,
    PartyDetailResponse,
    PartyListResponse,
    PartyResponse,
    PartySummaryResponse,
    PartyUpdate,
)
from app.schemas.transaction import TransactionResponse
from app.services.analytics import AnalyticsAggregator
from app.services.ledger_engine import LedgerBalanceEngine
from app.services.party_service import create_party, delete_party, get_all_parties, get_party, update_party
from app.services.transaction_store import TransactionStore


def build_party_router(kind: PartyKind) -> APIRouter:
    router = APIRouter()
    label = kind.value

    @router.get("", response_model=PartyListResponse)
    def list_parties(
        skip: int = Query(0, ge=0),
        limit: int = Query(100, ge=1, le=100),
        search: Optional[str] = Query(None),
        owner_id: str = Depends(get_current_owner_id),
        db: Session = Depends(get_db),
    ):
        """List customers or vendors, optionally searching name and phone."""
        parties, total = get_all_parties(db, owner_id, kind, skip=skip, limit=limit, search=search)
        return PartyListResponse(
            total=total,
            parties=[PartyResponse.model_validate(p) for p in parties],
        )

    @router.get("/stats", response_model=LedgerStatsResponse)
    def ledger_stats(
        owner_id: str = Depends(get_current_owner_id),
        db: Session = Depends(get_db),
    ):
        return AnalyticsAggregator(db).ledger_stats(owner_id, kind)

    @router.post("", response_model=PartyResponse, status_code=status.HTTP_201_CREATED)
    def create_party_route(
        party_data: PartyCreate,
        owner_id: str = Depends(get_current_owner_id),
        db: Session = Depends(get_db),
    ):
        party = create_party(
            db,
            owner_id,
            kind,
            name=party_data.name,
            phone=party_data.phone,
            address=party_data.address,
            credit_limit=party_data.credit_limit,
        )
        return PartyResponse.model_validate(party)

    @router.get("/{party_id}", response_model=PartyDetailResponse)
    def get_party_route(
        party_id: str,
        owner_id: str = Depends(get_current_owner_id),
        db: Session = Depends(get_db),
    ):
        """Party with its transaction history, newest first."""
        party = get_party(db, owner_id, party_id, kind)
        transactions, total = TransactionStore(db).list_for_party(owner_id, party.id)
        data = PartyResponse.model_validate(party).model_dump()
        return PartyDetailResponse(
            **data,
            transactions=[TransactionResponse.model_validate(t) for t in transactions],
            transaction_count=total,
        )

    @router.get("/{party_id}/summary", response_model=PartySummaryResponse)
    def get_party_summary(
        party_id: str,
        owner_id: str = Depends(get_current_owner_id),
        db: Session = Depends(get_db),
    ):
        get_party(db, owner_id, party_id, kind)
        return LedgerBalanceEngine(db).get_party_summary(owner_id, party_id)

    @router.put("/{party_id}", response_model=PartyResponse)
    def update_party_route(
        party_id: str,
        party_data: PartyUpdate,
        owner_id: str = Depends(get_current_owner_id),
        db: Session = Depends(get_db),
    ):
        party = update_party(
            db,
            owner_id,
            party_id,
            kind=kind,
            name=party_data.name,
            phone=party_data.phone,
            address=party_data.address,
            credit_limit=party_data.credit_limit,
        )
        return PartyResponse.model_validate(party)

    @router.delete("/{party_id}", response_model=MessageResponse)
    def delete_party_route(
        party_id: str,
        owner_id: str = Depends(get_current_owner_id),
        db: Session = Depends(get_db),
    ):
        """Delete the party and all of its transactions."""
        delete_party(db, owner_id, party_id, kind)
        return MessageResponse(message=f"{label.capitalize()} {party_id} deleted")

    return router


customer_router = build_party_router(PartyKind.customer)
vendor_router = build_party_router(PartyKind.vendor)
