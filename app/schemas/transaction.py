from decimal import Decimal
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from app.models.transaction import PaymentMethod, TransactionStatus, TransactionType
from app.schemas.common import naive_utc, two_places


class LineItem(BaseModel):
    """Informational line item on a purchase; never feeds the balance."""
    name: str = Field(..., min_length=1, max_length=255)
    quantity: float = Field(1, gt=0)
    unit_price: Decimal = Field(Decimal("0"), ge=0)


class PurchaseCreate(BaseModel):
    party_id: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0)
    paid_amount: Decimal = Field(Decimal("0"), ge=0)
    description: str = Field(..., min_length=1)
    items: Optional[List[LineItem]] = None
    payment_method: Optional[PaymentMethod] = None
    date: Optional[datetime] = None
    due_date: Optional[datetime] = None

    @field_validator("amount", "paid_amount")
    @classmethod
    def validate_amount(cls, v):
        return two_places(v)

    @field_validator("date", "due_date")
    @classmethod
    def validate_dates(cls, v):
        return naive_utc(v)

    class Config:
        json_schema_extra = {
            "example": {
                "party_id": "PTY-8K2M4Q1Z",
                "amount": 500.00,
                "paid_amount": 200.00,
                "description": "Rice 10kg, sugar 5kg",
                "payment_method": "cash",
            }
        }


class PaymentCreate(BaseModel):
    party_id: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0)
    description: Optional[str] = None
    payment_method: Optional[PaymentMethod] = None
    date: Optional[datetime] = None

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v):
        return two_places(v)

    @field_validator("date")
    @classmethod
    def validate_dates(cls, v):
        return naive_utc(v)


class TransactionUpdate(BaseModel):
    type: Optional[TransactionType] = None
    amount: Optional[Decimal] = Field(None, gt=0)
    paid_amount: Optional[Decimal] = Field(None, ge=0)
    description: Optional[str] = Field(None, min_length=1)
    items: Optional[List[LineItem]] = None
    payment_method: Optional[PaymentMethod] = None
    date: Optional[datetime] = None
    due_date: Optional[datetime] = None

    @field_validator("amount", "paid_amount")
    @classmethod
    def validate_amount(cls, v):
        return two_places(v)

    @field_validator("date", "due_date")
    @classmethod
    def validate_dates(cls, v):
        return naive_utc(v)


class TransactionResponse(BaseModel):
    id: str
    party_id: str
    type: TransactionType
    amount: Decimal
    paid_amount: Decimal
    remaining_amount: Decimal
    status: TransactionStatus
    description: str
    items: Optional[List[LineItem]] = None
    payment_method: Optional[PaymentMethod] = None
    date: datetime
    due_date: Optional[datetime] = None
    linked_transaction_id: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TransactionListResponse(BaseModel):
    total: int
    transactions: List[TransactionResponse]


class TransactionWriteResponse(TransactionResponse):
    """A created/edited transaction together with the party's fresh balance."""
    party_outstanding: Decimal
