"""
Domain errors raised by the ledger, budget and balance-link services.

ValidationError, NotFoundError and InvalidStateError are surfaced to the caller.
ConsistencyDriftError is only ever logged: a cached aggregate that disagrees with
its detail records is repaired by the next recompute or by reconciliation.
"""

from decimal import Decimal
from typing import Optional


class LedgerError(Exception):
    """Base class for all domain errors."""

    status_code = 400
    error = "LEDGER_ERROR"

    def __init__(self, message: str, field: Optional[str] = None, entity: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field
        self.entity = entity

    def to_dict(self) -> dict:
        return {
            "success": False,
            "message": self.message,
            "error": self.error,
            "field": self.field,
            "entity": self.entity,
            "status_code": self.status_code,
        }


class ValidationError(LedgerError):
    status_code = 422
    error = "VALIDATION_ERROR"


class NotFoundError(LedgerError):
    status_code = 404
    error = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity} {entity_id} not found", entity=entity)
        self.entity_id = entity_id


class InvalidStateError(LedgerError):
    status_code = 409
    error = "INVALID_STATE"


class ConsistencyDriftError(LedgerError):
    status_code = 500
    error = "CONSISTENCY_DRIFT"

    def __init__(
        self,
        entity: str,
        entity_id: str,
        cached: Optional[Decimal] = None,
        expected: Optional[Decimal] = None,
        reason: Optional[str] = None,
    ):
        message = f"{entity} {entity_id} aggregate drift: cached={cached} expected={expected}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message, entity=entity)
        self.entity_id = entity_id
        self.cached = cached
        self.expected = expected
