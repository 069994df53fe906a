from decimal import Decimal
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from app.models.budget import BudgetDuration, BudgetStatus
from app.schemas.common import naive_utc, two_places


class BudgetCreate(BaseModel):
    """end_date may be omitted for weekly and monthly budgets."""
    name: str = Field(..., min_length=1, max_length=255)
    amount: Decimal = Field(..., gt=0)
    duration: BudgetDuration = BudgetDuration.monthly
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    category: Optional[str] = Field(None, max_length=100)
    status: BudgetStatus = BudgetStatus.running

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v):
        return two_places(v)

    @field_validator("start_date", "end_date")
    @classmethod
    def validate_dates(cls, v):
        return naive_utc(v)

    @model_validator(mode="after")
    def end_after_start(self):
        if self.start_date and self.end_date and self.start_date >= self.end_date:
            raise ValueError("end_date must be after start_date")
        return self


class BudgetUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    amount: Optional[Decimal] = Field(None, gt=0)
    duration: Optional[BudgetDuration] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    category: Optional[str] = Field(None, max_length=100)

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v):
        return two_places(v)

    @field_validator("start_date", "end_date")
    @classmethod
    def validate_dates(cls, v):
        return naive_utc(v)


class BudgetStatusUpdate(BaseModel):
    status: BudgetStatus


class BudgetResponse(BaseModel):
    id: str
    name: str
    amount: Decimal
    category: Optional[str] = None
    duration: BudgetDuration
    start_date: datetime
    end_date: datetime
    status: BudgetStatus
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    # derived on read
    spent: Decimal
    remaining: Decimal
    percentage: Decimal
    days_left: int
    is_over_budget: bool
    savings: Optional[Decimal] = None


class BudgetListResponse(BaseModel):
    total: int
    budgets: List[BudgetResponse]


class BudgetDeleteResponse(BaseModel):
    message: str
    detached_expenses: int


class CompletedBudget(BaseModel):
    id: str
    name: str
    amount: Decimal
    spent: Decimal
    remaining: Decimal
    savings: Decimal
    end_date: datetime
    category: Optional[str] = None


class AutoCompleteResponse(BaseModel):
    count: int
    completed: List[CompletedBudget]
