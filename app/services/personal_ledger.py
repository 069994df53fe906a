"""
Personal lent/borrowed ledger.

Each contact carries total_amount (everything lent or borrowed), paid_amount
(repayments) and remaining_amount. All three are re-derived from the contact's
entries after every write, the same way party outstanding balances are.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import ConsistencyDriftError, InvalidStateError, NotFoundError, ValidationError
from app.logger_config import logger
from app.models.personal import LendDirection, PersonalContact, PersonalEntryType, PersonalTransaction
from app.utils.clock import naive_utc, utc_now
from app.utils.identifiers import generate_custom_id
from app.utils.money import ZERO, positive_money, sum_or_zero

EDITABLE_FIELDS = {"name", "phone", "email", "notes"}


def _direction(value: Any) -> LendDirection:
    try:
        return value if isinstance(value, LendDirection) else LendDirection(value)
    except ValueError:
        raise ValidationError(f"Unsupported direction: {value}", field="direction")


def _entry_type(value: Any) -> PersonalEntryType:
    try:
        return value if isinstance(value, PersonalEntryType) else PersonalEntryType(value)
    except ValueError:
        raise ValidationError(f"Unsupported entry type: {value}", field="type")


def _clean_email(email: Optional[str]) -> Optional[str]:
    if email is None or not email.strip():
        return None
    email = email.strip()
    if "@" not in email or email.startswith("@") or email.endswith("@"):
        raise ValidationError("Invalid email", field="email")
    return email


class PersonalLedger:

    def __init__(self, db: Session):
        self.db = db

    # ==================== READ ====================

    def get_contact(self, owner_id: str, contact_id: str) -> PersonalContact:
        contact = self.db.query(PersonalContact).filter(
            PersonalContact.id == contact_id,
            PersonalContact.owner_id == owner_id,
        ).first()
        if not contact:
            raise NotFoundError("PersonalContact", contact_id)
        return contact

    def list_contacts(
        self,
        owner_id: str,
        direction: Any = None,
        search: Optional[str] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> Tuple[List[PersonalContact], int]:
        query = self.db.query(PersonalContact).filter(PersonalContact.owner_id == owner_id)
        if direction is not None:
            query = query.filter(PersonalContact.direction == _direction(direction))
        if search:
            term = f"%{search.strip()}%"
            query = query.filter(or_(PersonalContact.name.ilike(term), PersonalContact.phone.ilike(term)))
        total = query.count()
        contacts = query.order_by(PersonalContact.created_at.desc()).offset(skip).limit(limit).all()
        return contacts, total

    def list_entries(self, owner_id: str, contact_id: str) -> List[PersonalTransaction]:
        contact = self.get_contact(owner_id, contact_id)
        return (
            self.db.query(PersonalTransaction)
            .filter(PersonalTransaction.contact_id == contact.id)
            .order_by(PersonalTransaction.date.desc())
            .all()
        )

    def compute_totals(self, contact_id: str) -> Dict[str, Decimal]:
        rows = (
            self.db.query(PersonalTransaction.type, func.sum(PersonalTransaction.amount))
            .filter(PersonalTransaction.contact_id == contact_id)
            .group_by(PersonalTransaction.type)
            .all()
        )
        total = ZERO
        paid = ZERO
        for entry_type, amount in rows:
            if entry_type == PersonalEntryType.payment:
                paid += sum_or_zero(amount)
            else:
                total += sum_or_zero(amount)
        return {"total_amount": total, "paid_amount": paid, "remaining_amount": total - paid}

    def summary(self, owner_id: str) -> Dict[str, Any]:
        """Open balances per direction; net > 0 means the user is owed money overall."""
        result = {}
        for direction in LendDirection:
            count, total, paid, remaining = self.db.query(
                func.count(PersonalContact.id),
                func.sum(PersonalContact.total_amount),
                func.sum(PersonalContact.paid_amount),
                func.sum(PersonalContact.remaining_amount),
            ).filter(
                PersonalContact.owner_id == owner_id,
                PersonalContact.direction == direction,
            ).one()
            result[direction.value] = {
                "contacts": count or 0,
                "total_amount": sum_or_zero(total),
                "paid_amount": sum_or_zero(paid),
                "remaining_amount": sum_or_zero(remaining),
            }
        result["net"] = result["lent"]["remaining_amount"] - result["borrowed"]["remaining_amount"]
        return result

    # ==================== RECOMPUTE ====================

    def recompute_contact(self, contact_id: str) -> Optional[Decimal]:
        """Re-derive and persist the three cached amounts. Safe to repeat."""
        contact = self.db.query(PersonalContact).filter(PersonalContact.id == contact_id).first()
        if not contact:
            logger.debug(f"Personal contact {contact_id} is gone; nothing to recompute")
            return None

        totals = self.compute_totals(contact_id)
        previous = contact.remaining_amount
        contact.total_amount = totals["total_amount"]
        contact.paid_amount = totals["paid_amount"]
        contact.remaining_amount = totals["remaining_amount"]
        self.db.commit()

        logger.debug(f"Personal contact {contact_id} remaining: {previous} → {totals['remaining_amount']}")
        return totals["remaining_amount"]

    def _recompute_after_write(self, contact_id: str) -> Optional[Decimal]:
        try:
            return self.recompute_contact(contact_id)
        except SQLAlchemyError as e:
            self.db.rollback()
            drift = ConsistencyDriftError("PersonalContact", contact_id, reason=str(e))
            logger.warning(f"{drift.message}; left for the next recompute")
            return None

    # ==================== CONTACTS ====================

    def create_contact(
        self,
        owner_id: str,
        name: str,
        direction: Any,
        amount: Any,
        phone: Optional[str] = None,
        email: Optional[str] = None,
        notes: Optional[str] = None,
        date: Optional[datetime] = None,
    ) -> PersonalContact:
        """Create a contact together with the opening lent/borrowed entry."""
        if not name or not name.strip():
            raise ValidationError("Name is required", field="name")
        direction = _direction(direction)
        amount = positive_money(amount)
        email = _clean_email(email)

        contact = PersonalContact(
            id=generate_custom_id("PCN"),
            owner_id=owner_id,
            direction=direction,
            name=name.strip(),
            phone=phone.strip() if phone else None,
            email=email,
            notes=notes,
            total_amount=ZERO,
            paid_amount=ZERO,
            remaining_amount=ZERO,
        )
        opening = PersonalTransaction(
            id=generate_custom_id("PTX"),
            owner_id=owner_id,
            contact_id=contact.id,
            type=PersonalEntryType(direction.value),
            amount=amount,
            description="Opening balance",
            date=naive_utc(date) or utc_now(),
        )
        self.db.add(contact)
        self.db.add(opening)
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error creating personal contact: {str(e)}")
            raise

        logger.info(f"Personal contact {contact.id} created: {contact.name} ({direction.value} {amount})")
        self._recompute_after_write(contact.id)
        return self.get_contact(owner_id, contact.id)

    def update_contact(self, owner_id: str, contact_id: str, patch: Dict[str, Any]) -> PersonalContact:
        """Descriptive fields only; amounts always come from the entries."""
        unknown = set(patch) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Unsupported fields: {', '.join(sorted(unknown))}", field=sorted(unknown)[0])

        contact = self.get_contact(owner_id, contact_id)
        if "name" in patch:
            if not patch["name"] or not patch["name"].strip():
                raise ValidationError("Name cannot be empty", field="name")
            contact.name = patch["name"].strip()
        if "phone" in patch:
            contact.phone = patch["phone"].strip() if patch["phone"] else None
        if "email" in patch:
            contact.email = _clean_email(patch["email"])
        if "notes" in patch:
            contact.notes = patch["notes"]

        try:
            self.db.commit()
            self.db.refresh(contact)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error updating personal contact {contact_id}: {str(e)}")
            raise
        return contact

    def delete_contact(self, owner_id: str, contact_id: str) -> int:
        """Delete a contact and its entries; returns the number of entries removed."""
        contact = self.get_contact(owner_id, contact_id)
        try:
            removed = self.db.query(PersonalTransaction).filter(
                PersonalTransaction.contact_id == contact.id
            ).delete(synchronize_session=False)
            self.db.query(PersonalContact).filter(PersonalContact.id == contact.id).delete(synchronize_session=False)
            self.db.commit()
            self.db.expire_all()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error deleting personal contact {contact_id}: {str(e)}")
            raise

        logger.info(f"Personal contact {contact_id} deleted with {removed} entries")
        return removed

    # ==================== ENTRIES ====================

    def record_entry(
        self,
        owner_id: str,
        contact_id: str,
        amount: Any,
        type: Any = PersonalEntryType.payment,
        description: Optional[str] = None,
        date: Optional[datetime] = None,
    ) -> PersonalTransaction:
        """
        A repayment, or more money lent/borrowed in the contact's direction.
        A repayment may not exceed what is still open.
        """
        contact = self.get_contact(owner_id, contact_id)
        amount = positive_money(amount)
        entry_type = _entry_type(type)

        if entry_type != PersonalEntryType.payment and entry_type.value != contact.direction.value:
            raise ValidationError(
                f"Contact {contact_id} is a {contact.direction.value} contact; cannot record {entry_type.value}",
                field="type",
            )
        if entry_type == PersonalEntryType.payment:
            remaining = self.compute_totals(contact.id)["remaining_amount"]
            if amount > remaining:
                raise ValidationError(
                    f"Payment amount ({amount}) exceeds remaining balance ({remaining})", field="amount"
                )

        entry = PersonalTransaction(
            id=generate_custom_id("PTX"),
            owner_id=owner_id,
            contact_id=contact.id,
            type=entry_type,
            amount=amount,
            description=description,
            date=naive_utc(date) or utc_now(),
        )
        self.db.add(entry)
        try:
            self.db.commit()
            self.db.refresh(entry)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error recording entry for contact {contact_id}: {str(e)}")
            raise

        logger.info(f"Personal entry {entry.id}: {entry_type.value} {amount} for contact {contact_id}")
        self._recompute_after_write(contact.id)
        return entry

    def delete_entry(self, owner_id: str, contact_id: str, entry_id: str) -> None:
        """Removing a lent/borrowed entry may not leave more repaid than was given."""
        contact = self.get_contact(owner_id, contact_id)
        entry = self.db.query(PersonalTransaction).filter(
            PersonalTransaction.id == entry_id,
            PersonalTransaction.contact_id == contact.id,
        ).first()
        if not entry:
            raise NotFoundError("PersonalTransaction", entry_id)

        if entry.type != PersonalEntryType.payment:
            totals = self.compute_totals(contact.id)
            if totals["total_amount"] - Decimal(entry.amount) < totals["paid_amount"]:
                raise InvalidStateError(
                    f"Deleting entry {entry_id} would leave repayments above the amount given; delete payments first",
                    field="amount", entity="PersonalTransaction",
                )

        try:
            self.db.delete(entry)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error deleting personal entry {entry_id}: {str(e)}")
            raise

        logger.info(f"Personal entry {entry_id} deleted from contact {contact_id}")
        self._recompute_after_write(contact.id)
