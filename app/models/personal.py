import enum
from sqlalchemy import Column, DateTime, Enum, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.core.database import Base
from app.utils.identifiers import generate_custom_id


class LendDirection(str, enum.Enum):
    lent = "lent"           # the user gave money to the contact
    borrowed = "borrowed"   # the user took money from the contact


class PersonalEntryType(str, enum.Enum):
    lent = "lent"
    borrowed = "borrowed"
    payment = "payment"


class PersonalContact(Base):
    """
    A friend or relative in the personal lent/borrowed ledger.
    total_amount, paid_amount and remaining_amount are cached aggregates of the
    contact's entries, owned by PersonalLedger.
    """
    __tablename__ = "personal_contacts"

    id = Column(String(20), primary_key=True, default=lambda: generate_custom_id("PCN"))
    owner_id = Column(String(64), nullable=False, index=True)
    direction = Column(Enum(LendDirection), nullable=False)

    name = Column(String(100), nullable=False)
    phone = Column(String(20), nullable=True)
    email = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)

    total_amount = Column(Numeric(15, 2), nullable=False, default=0)
    paid_amount = Column(Numeric(15, 2), nullable=False, default=0)
    remaining_amount = Column(Numeric(15, 2), nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    entries = relationship(
        "PersonalTransaction",
        back_populates="contact",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        Index("ix_personal_contacts_owner_direction", "owner_id", "direction"),
    )

    def __repr__(self):
        return f"<PersonalContact(id='{self.id}', direction='{self.direction}', remaining={self.remaining_amount})>"


class PersonalTransaction(Base):
    """An amount lent/borrowed or a repayment against a personal contact."""
    __tablename__ = "personal_transactions"

    id = Column(String(20), primary_key=True, default=lambda: generate_custom_id("PTX"))
    owner_id = Column(String(64), nullable=False, index=True)
    contact_id = Column(String(20), ForeignKey("personal_contacts.id", ondelete="CASCADE"), nullable=False, index=True)

    type = Column(Enum(PersonalEntryType), nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)
    description = Column(Text, nullable=True)
    date = Column(DateTime, nullable=False, server_default=func.now())

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    contact = relationship("PersonalContact", back_populates="entries")

    def __repr__(self):
        return f"<PersonalTransaction(id='{self.id}', type='{self.type}', amount={self.amount})>"
