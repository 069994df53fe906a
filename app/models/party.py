import enum
from sqlalchemy import Column, DateTime, Enum, Index, Numeric, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.core.database import Base
from app.utils.identifiers import generate_custom_id


class PartyKind(str, enum.Enum):
    customer = "customer"   # owes the user
    vendor = "vendor"       # is owed by the user


class Party(Base):
    """
    A customer or vendor the user keeps a running credit ledger ("udhar") with.
    `outstanding` is a cached aggregate owned by LedgerBalanceEngine.
    """
    __tablename__ = "parties"

    id = Column(String(20), primary_key=True, default=lambda: generate_custom_id("PTY"))
    owner_id = Column(String(64), nullable=False, index=True)
    kind = Column(Enum(PartyKind), nullable=False)

    name = Column(String(255), nullable=False)
    phone = Column(String(20), nullable=False)
    address = Column(String(255), nullable=True)
    credit_limit = Column(Numeric(15, 2), nullable=True)

    outstanding = Column(Numeric(15, 2), nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    transactions = relationship(
        "LedgerTransaction",
        back_populates="party",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        Index("ix_parties_owner_kind_phone", "owner_id", "kind", "phone"),
    )

    def __repr__(self):
        return f"<Party(id='{self.id}', kind='{self.kind}', outstanding={self.outstanding})>"
