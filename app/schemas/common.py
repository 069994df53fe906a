from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from app.utils.clock import naive_utc  # noqa: F401


def two_places(value: Optional[Decimal]) -> Optional[Decimal]:
    if value is not None and value.as_tuple().exponent < -2:
        raise ValueError("Max 2 decimal places")
    return value


class MessageResponse(BaseModel):
    message: str


class BulkDeleteRequest(BaseModel):
    ids: List[str] = Field(..., min_length=1)


class BulkDeleteResponse(BaseModel):
    message: str
    deleted: int
