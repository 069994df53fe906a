from decimal import Decimal
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from app.models.party import PartyKind
from app.schemas.transaction import TransactionResponse


class PartyBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    phone: str = Field(..., min_length=1, max_length=20)
    address: Optional[str] = Field(None, max_length=255)
    credit_limit: Optional[Decimal] = Field(None, ge=0)


class PartyCreate(PartyBase):
    pass


class PartyUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    phone: Optional[str] = Field(None, min_length=1, max_length=20)
    address: Optional[str] = Field(None, max_length=255)
    credit_limit: Optional[Decimal] = Field(None, ge=0)


class PartyResponse(PartyBase):
    id: str
    kind: PartyKind
    outstanding: Decimal
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PartyListResponse(BaseModel):
    total: int
    parties: List[PartyResponse]


class PartyDetailResponse(PartyResponse):
    transactions: List[TransactionResponse]
    transaction_count: int


class PartySummaryResponse(BaseModel):
    party_id: str
    name: str
    kind: PartyKind
    total_purchases: Decimal
    total_payments: Decimal
    outstanding: Decimal
    transaction_count: int
    credit_limit: Optional[Decimal] = None
    available_credit: Optional[Decimal] = None
    over_credit_limit: bool


class TopParty(BaseModel):
    id: str
    name: str
    phone: str
    outstanding: Decimal


class LedgerStatsResponse(BaseModel):
    kind: PartyKind
    party_count: int
    total_outstanding: Decimal
    month_purchases: Decimal
    month_payments: Decimal
    top_outstanding: List[TopParty]
