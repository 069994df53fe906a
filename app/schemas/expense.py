from decimal import Decimal
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from app.models.expense import ExpenseType, Frequency
from app.schemas.common import naive_utc, two_places


class ExpenseCreate(BaseModel):
    """date defaults to now on the server if not provided."""
    amount: Decimal = Field(..., gt=0)
    category: str = Field(..., min_length=1, max_length=100)
    reason: str = Field(..., min_length=1)
    type: ExpenseType = ExpenseType.free
    budget_id: Optional[str] = None
    date: Optional[datetime] = None
    is_recurring: bool = False
    frequency: Optional[Frequency] = None
    affects_balance: bool = False
    income_id: Optional[str] = None

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v):
        return two_places(v)

    @field_validator("date")
    @classmethod
    def validate_dates(cls, v):
        return naive_utc(v)

    class Config:
        json_schema_extra = {
            "example": {
                "amount": 200.00,
                "category": "Groceries",
                "reason": "Weekly vegetables",
                "type": "budget",
                "budget_id": "BUD-4J8L2P0A",
                "affects_balance": True,
                "income_id": "INC-7H3N6R2C",
            }
        }


class ExpenseUpdate(BaseModel):
    amount: Optional[Decimal] = Field(None, gt=0)
    category: Optional[str] = Field(None, min_length=1, max_length=100)
    reason: Optional[str] = Field(None, min_length=1)
    type: Optional[ExpenseType] = None
    budget_id: Optional[str] = None
    date: Optional[datetime] = None
    is_recurring: Optional[bool] = None
    frequency: Optional[Frequency] = None
    affects_balance: Optional[bool] = None
    income_id: Optional[str] = None

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v):
        return two_places(v)

    @field_validator("date")
    @classmethod
    def validate_dates(cls, v):
        return naive_utc(v)


class ExpenseResponse(BaseModel):
    id: str
    amount: Decimal
    category: str
    reason: str
    type: ExpenseType
    budget_id: Optional[str] = None
    date: datetime
    is_recurring: bool
    frequency: Optional[Frequency] = None
    affects_balance: bool
    income_id: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ExpenseListResponse(BaseModel):
    total: int
    total_amount: Decimal
    expenses: List[ExpenseResponse]


class ExpensesByIncomeResponse(BaseModel):
    income_id: str
    total_spent: Decimal
    count: int
    expenses: List[ExpenseResponse]
