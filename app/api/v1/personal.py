"""Personal lent/borrowed contacts, mounted at /personal/contacts."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.core.dependencies import get_current_owner_id, get_db
from app.models.personal import LendDirection
from app.schemas.common import MessageResponse
from app.schemas.personal import (
    PersonalContactCreate,
    PersonalContactDeleteResponse,
    PersonalContactListResponse,
    PersonalContactResponse,
    PersonalContactUpdate,
    PersonalEntryCreate,
    PersonalEntryListResponse,
    PersonalEntryResponse,
    PersonalEntryWriteResponse,
    PersonalSummaryResponse,
)
from app.services.personal_ledger import PersonalLedger

router = APIRouter()


@router.get("", response_model=PersonalContactListResponse)
def list_contacts(
    direction: Optional[LendDirection] = Query(None),
    search: Optional[str] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=100),
    owner_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    contacts, total = PersonalLedger(db).list_contacts(
        owner_id, direction=direction, search=search, skip=skip, limit=limit
    )
    return PersonalContactListResponse(
        total=total,
        contacts=[PersonalContactResponse.model_validate(c) for c in contacts],
    )


@router.get("/summary", response_model=PersonalSummaryResponse)
def personal_summary(
    owner_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    return PersonalLedger(db).summary(owner_id)


@router.post("", response_model=PersonalContactResponse, status_code=status.HTTP_201_CREATED)
def create_contact(
    contact_data: PersonalContactCreate,
    owner_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    contact = PersonalLedger(db).create_contact(owner_id, **contact_data.model_dump())
    return PersonalContactResponse.model_validate(contact)


@router.get("/{contact_id}", response_model=PersonalContactResponse)
def get_contact(
    contact_id: str,
    owner_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    return PersonalContactResponse.model_validate(PersonalLedger(db).get_contact(owner_id, contact_id))


@router.put("/{contact_id}", response_model=PersonalContactResponse)
def update_contact(
    contact_id: str,
    contact_data: PersonalContactUpdate,
    owner_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    contact = PersonalLedger(db).update_contact(owner_id, contact_id, contact_data.model_dump(exclude_unset=True))
    return PersonalContactResponse.model_validate(contact)


@router.delete("/{contact_id}", response_model=PersonalContactDeleteResponse)
def delete_contact(
    contact_id: str,
    owner_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    removed = PersonalLedger(db).delete_contact(owner_id, contact_id)
    return PersonalContactDeleteResponse(message=f"Contact {contact_id} deleted", removed_entries=removed)


@router.get("/{contact_id}/transactions", response_model=PersonalEntryListResponse)
def list_entries(
    contact_id: str,
    owner_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    entries = PersonalLedger(db).list_entries(owner_id, contact_id)
    return PersonalEntryListResponse(
        total=len(entries),
        entries=[PersonalEntryResponse.model_validate(e) for e in entries],
    )


@router.post(
    "/{contact_id}/transactions",
    response_model=PersonalEntryWriteResponse,
    status_code=status.HTTP_201_CREATED,
)
def record_entry(
    contact_id: str,
    entry_data: PersonalEntryCreate,
    owner_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    """Record a repayment (default) or more money lent/borrowed."""
    ledger = PersonalLedger(db)
    entry = ledger.record_entry(owner_id, contact_id, **entry_data.model_dump())
    contact = ledger.get_contact(owner_id, contact_id)
    data = PersonalEntryResponse.model_validate(entry).model_dump()
    return PersonalEntryWriteResponse(**data, remaining_amount=contact.remaining_amount)


@router.delete("/{contact_id}/transactions/{entry_id}", response_model=MessageResponse)
def delete_entry(
    contact_id: str,
    entry_id: str,
    owner_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    PersonalLedger(db).delete_entry(owner_id, contact_id, entry_id)
    return MessageResponse(message=f"Entry {entry_id} deleted")
