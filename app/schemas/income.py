from decimal import Decimal
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from app.models.expense import Frequency
from app.schemas.common import naive_utc, two_places


class IncomeCreate(BaseModel):
    amount: Decimal = Field(..., gt=0)
    source: str = Field(..., min_length=1, max_length=255)
    category: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None
    date: Optional[datetime] = None
    is_connected: bool = False
    is_recurring: bool = False
    frequency: Optional[Frequency] = None

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v):
        return two_places(v)

    @field_validator("date")
    @classmethod
    def validate_dates(cls, v):
        return naive_utc(v)


class IncomeUpdate(BaseModel):
    """A new amount replaces the recorded deposit; the remaining balance is re-derived."""
    amount: Optional[Decimal] = Field(None, gt=0)
    source: Optional[str] = Field(None, min_length=1, max_length=255)
    category: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None
    date: Optional[datetime] = None
    is_connected: Optional[bool] = None
    is_recurring: Optional[bool] = None
    frequency: Optional[Frequency] = None

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v):
        return two_places(v)

    @field_validator("date")
    @classmethod
    def validate_dates(cls, v):
        return naive_utc(v)


class IncomeResponse(BaseModel):
    id: str
    original_amount: Decimal
    amount: Decimal
    spent: Decimal
    source: str
    category: str
    description: Optional[str] = None
    date: datetime
    is_connected: bool
    is_recurring: bool
    frequency: Optional[Frequency] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class IncomeListResponse(BaseModel):
    total: int
    incomes: List[IncomeResponse]


class IncomeDeleteResponse(BaseModel):
    message: str
    detached_expenses: int


class IncomeBulkDeleteResponse(IncomeDeleteResponse):
    deleted: int
