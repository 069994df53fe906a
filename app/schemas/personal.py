from decimal import Decimal
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from app.models.personal import LendDirection, PersonalEntryType
from app.schemas.common import naive_utc, two_places

MAX_AMOUNT = Decimal("10000000")


class PersonalContactCreate(BaseModel):
    """amount is the opening lent/borrowed balance."""
    name: str = Field(..., min_length=1, max_length=100)
    direction: LendDirection
    amount: Decimal = Field(..., gt=0, le=MAX_AMOUNT)
    phone: Optional[str] = Field(None, max_length=20)
    email: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = Field(None, max_length=500)
    date: Optional[datetime] = None

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
                "name": "Imran",
                "direction": "lent",
                "amount": 5000.00,
                "phone": "9000000050",
                "notes": "For his bike repair",
            }
        }


class PersonalContactUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    phone: Optional[str] = Field(None, max_length=20)
    email: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = Field(None, max_length=500)


class PersonalContactResponse(BaseModel):
    id: str
    name: str
    direction: LendDirection
    phone: Optional[str] = None
    email: Optional[str] = None
    notes: Optional[str] = None
    total_amount: Decimal
    paid_amount: Decimal
    remaining_amount: Decimal
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PersonalContactListResponse(BaseModel):
    total: int
    contacts: List[PersonalContactResponse]


class PersonalEntryCreate(BaseModel):
    """Defaults to a repayment; lent/borrowed adds to the contact's balance."""
    type: PersonalEntryType = PersonalEntryType.payment
    amount: Decimal = Field(..., gt=0, le=MAX_AMOUNT)
    description: Optional[str] = Field(None, max_length=500)
    date: Optional[datetime] = None

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v):
        return two_places(v)

    @field_validator("date")
    @classmethod
    def validate_dates(cls, v):
        return naive_utc(v)


class PersonalEntryResponse(BaseModel):
    id: str
    contact_id: str
    type: PersonalEntryType
    amount: Decimal
    description: Optional[str] = None
    date: datetime
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PersonalEntryWriteResponse(PersonalEntryResponse):
    """The new entry together with the contact's fresh balance."""
    remaining_amount: Decimal


class PersonalEntryListResponse(BaseModel):
    total: int
    entries: List[PersonalEntryResponse]


class DirectionTotals(BaseModel):
    contacts: int
    total_amount: Decimal
    paid_amount: Decimal
    remaining_amount: Decimal


class PersonalSummaryResponse(BaseModel):
    lent: DirectionTotals
    borrowed: DirectionTotals
    net: Decimal


class PersonalContactDeleteResponse(BaseModel):
    message: str
    removed_entries: int
