from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel


class DriftRecord(BaseModel):
    id: str
    cached: Optional[Decimal] = None
    expected: Decimal


class ReconciliationReport(BaseModel):
    entity: str
    checked: int
    repaired: List[DriftRecord]
    skipped: List[str]


class ReconciliationResponse(BaseModel):
    repaired_count: int
    reports: List[ReconciliationReport]
