from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.exceptions import NotFoundError, ValidationError
from app.logger_config import logger
from app.models.party import Party, PartyKind
from app.services.transaction_store import TransactionStore
from app.utils.identifiers import generate_custom_id
from app.utils.money import to_money


def _credit_limit(value) -> Optional[Decimal]:
    if value is None:
        return None
    limit = to_money(value, "credit_limit")
    if limit < 0:
        raise ValidationError("Credit limit cannot be negative", field="credit_limit")
    return limit


def _ensure_unique_vendor_phone(
    db: Session, owner_id: str, kind: PartyKind, phone: str, exclude_id: Optional[str] = None
) -> None:
    """Vendors are keyed by phone per owner; customers may share a number."""
    if kind != PartyKind.vendor:
        return
    query = db.query(Party).filter(
        Party.owner_id == owner_id,
        Party.kind == PartyKind.vendor,
        Party.phone == phone,
    )
    if exclude_id:
        query = query.filter(Party.id != exclude_id)
    if query.first():
        raise ValidationError(f"A vendor with phone {phone} already exists", field="phone", entity="Party")


def get_party(db: Session, owner_id: str, party_id: str, kind: Optional[PartyKind] = None) -> Party:
    """Get a party owned by owner_id, optionally of a given kind."""
    query = db.query(Party).filter(Party.id == party_id, Party.owner_id == owner_id)
    if kind is not None:
        query = query.filter(Party.kind == kind)
    party = query.first()
    if not party:
        logger.warning(f"Party not found: {party_id} (owner {owner_id})")
        raise NotFoundError((kind.value.capitalize() if kind else "Party"), party_id)
    return party


def get_all_parties(
    db: Session,
    owner_id: str,
    kind: PartyKind,
    skip: int = 0,
    limit: int = 100,
    search: Optional[str] = None,
) -> Tuple[List[Party], int]:
    """Get all customers or vendors with optional search on name/phone."""
    query = db.query(Party).filter(Party.owner_id == owner_id, Party.kind == kind)

    if search:
        search_term = f"%{search}%"
        query = query.filter(
            or_(
                Party.name.ilike(search_term),
                Party.phone.ilike(search_term),
            )
        )

    total = query.count()
    parties = query.order_by(Party.created_at.desc()).offset(skip).limit(limit).all()
    return parties, total


def create_party(
    db: Session,
    owner_id: str,
    kind: PartyKind,
    name: str,
    phone: str,
    address: Optional[str] = None,
    credit_limit=None,
) -> Party:
    """Create a customer or vendor with a zero balance."""
    if not name or not name.strip():
        raise ValidationError("Name is required", field="name")
    if not phone or not phone.strip():
        raise ValidationError("Phone is required", field="phone")

    phone = phone.strip()
    _ensure_unique_vendor_phone(db, owner_id, kind, phone)

    party = Party(
        id=generate_custom_id("PTY"),
        owner_id=owner_id,
        kind=kind,
        name=name.strip(),
        phone=phone,
        address=address,
        credit_limit=_credit_limit(credit_limit),
        outstanding=Decimal("0.00"),
    )
    db.add(party)

    try:
        db.commit()
        db.refresh(party)
        logger.info(f"{kind.value} {party.id} created for owner {owner_id}")
        return party
    except IntegrityError as e:
        db.rollback()
        logger.error(f"Error creating {kind.value}: {str(e)}")
        raise ValidationError(f"Failed to create {kind.value}.", entity="Party")


def update_party(
    db: Session,
    owner_id: str,
    party_id: str,
    kind: Optional[PartyKind] = None,
    name: Optional[str] = None,
    phone: Optional[str] = None,
    address: Optional[str] = None,
    credit_limit=None,
) -> Party:
    """Update contact details. The outstanding balance is not editable here."""
    party = get_party(db, owner_id, party_id, kind)

    if name is not None:
        if not name.strip():
            raise ValidationError("Name cannot be empty", field="name")
        party.name = name.strip()
    if phone is not None:
        phone = phone.strip()
        if not phone:
            raise ValidationError("Phone cannot be empty", field="phone")
        _ensure_unique_vendor_phone(db, owner_id, party.kind, phone, exclude_id=party.id)
        party.phone = phone
    if address is not None:
        party.address = address
    if credit_limit is not None:
        party.credit_limit = _credit_limit(credit_limit)

    try:
        db.commit()
        db.refresh(party)
        return party
    except IntegrityError as e:
        db.rollback()
        logger.error(f"Error updating party {party_id}: {str(e)}")
        raise ValidationError("Failed to update party.", entity="Party")


def delete_party(db: Session, owner_id: str, party_id: str, kind: Optional[PartyKind] = None) -> None:
    """Delete a party together with its whole transaction history."""
    party = get_party(db, owner_id, party_id, kind)

    try:
        deleted = TransactionStore(db).delete_for_party(party.id)
        db.query(Party).filter(Party.id == party.id).delete(synchronize_session=False)
        db.commit()
        db.expunge(party)
        logger.info(f"Party {party_id} deleted with {deleted} transactions")
    except Exception as e:
        db.rollback()
        logger.error(f"Error deleting party {party_id}: {str(e)}")
        raise
