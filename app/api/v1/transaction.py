from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.core.dependencies import get_current_owner_id, get_db
from app.models.transaction import LedgerTransaction, TransactionType
from app.schemas.common import MessageResponse
from app.schemas.transaction import (
    PaymentCreate,
    PurchaseCreate,
    TransactionListResponse,
    TransactionResponse,
    TransactionUpdate,
    TransactionWriteResponse,
)
from app.services.ledger_engine import LedgerBalanceEngine
from app.services.party_service import get_party
from app.services.transaction_store import TransactionStore

router = APIRouter()


def _write_response(db: Session, owner_id: str, transaction: LedgerTransaction) -> TransactionWriteResponse:
    party = get_party(db, owner_id, transaction.party_id)
    data = TransactionResponse.model_validate(transaction).model_dump()
    return TransactionWriteResponse(**data, party_outstanding=party.outstanding)


@router.post("/purchase", response_model=TransactionWriteResponse, status_code=status.HTTP_201_CREATED)
def record_purchase(
    purchase_data: PurchaseCreate,
    owner_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    """
    Record a purchase on credit. A non-zero paid_amount also records the
    linked payment, so only the unpaid part adds to the outstanding balance.
    """
    engine = LedgerBalanceEngine(db)
    purchase = engine.record_purchase(
        owner_id,
        purchase_data.party_id,
        amount=purchase_data.amount,
        paid_amount=purchase_data.paid_amount,
        description=purchase_data.description,
        items=purchase_data.items,
        payment_method=purchase_data.payment_method,
        date=purchase_data.date,
        due_date=purchase_data.due_date,
    )
    return _write_response(db, owner_id, purchase)


@router.post("/payment", response_model=TransactionWriteResponse, status_code=status.HTTP_201_CREATED)
def record_payment(
    payment_data: PaymentCreate,
    owner_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    engine = LedgerBalanceEngine(db)
    payment = engine.record_payment(
        owner_id,
        payment_data.party_id,
        amount=payment_data.amount,
        description=payment_data.description,
        payment_method=payment_data.payment_method,
        date=payment_data.date,
    )
    return _write_response(db, owner_id, payment)


@router.get("", response_model=TransactionListResponse)
def list_transactions(
    party_id: Optional[str] = Query(None),
    type: Optional[TransactionType] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=100),
    owner_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    if party_id:
        get_party(db, owner_id, party_id)
    transactions, total = TransactionStore(db).list_for_party(
        owner_id, party_id=party_id, transaction_type=type, skip=skip, limit=limit
    )
    return TransactionListResponse(
        total=total,
        transactions=[TransactionResponse.model_validate(t) for t in transactions],
    )


@router.get("/{transaction_id}", response_model=TransactionResponse)
def get_transaction(
    transaction_id: str,
    owner_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    return TransactionResponse.model_validate(TransactionStore(db).get(owner_id, transaction_id))


@router.put("/{transaction_id}", response_model=TransactionWriteResponse)
def edit_transaction(
    transaction_id: str,
    transaction_data: TransactionUpdate,
    owner_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    patch = transaction_data.model_dump(exclude_unset=True)
    transaction = LedgerBalanceEngine(db).edit_transaction(owner_id, transaction_id, patch)
    return _write_response(db, owner_id, transaction)


@router.delete("/{transaction_id}", response_model=MessageResponse)
def delete_transaction(
    transaction_id: str,
    owner_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    LedgerBalanceEngine(db).delete_transaction(owner_id, transaction_id)
    return MessageResponse(message=f"Transaction {transaction_id} deleted")
