import os
import time

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

from datetime import timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401
from app.core.database import Base
from app.core.dependencies import get_db
from app.main import app as fastapi_app
from app.models.party import Party, PartyKind
from app.models.transaction import LedgerTransaction, TransactionType
from app.services.budget_ledger import BudgetLedger
from app.services.income_service import create_income
from app.services.party_service import create_party
from app.utils.clock import utc_now

OWNER = "owner-1"
OTHER_OWNER = "owner-2"


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    fastapi_app.dependency_overrides[get_db] = override_get_db
    yield TestClient(fastapi_app, headers={"X-Owner-Id": OWNER})
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def host_east_of_utc(monkeypatch):
    """Run with the process clock at UTC+05:30."""
    if not hasattr(time, "tzset"):
        pytest.skip("time.tzset is not available on this platform")
    monkeypatch.setenv("TZ", "Asia/Kolkata")
    time.tzset()
    yield
    monkeypatch.undo()
    time.tzset()


@pytest.fixture
def customer(db):
    return create_party(db, OWNER, PartyKind.customer, name="Ramesh", phone="9000000001")


@pytest.fixture
def vendor(db):
    return create_party(db, OWNER, PartyKind.vendor, name="Sharma Traders", phone="9000000002")


@pytest.fixture
def connected_income(db):
    return create_income(db, OWNER, amount=1000, source="Salary", is_connected=True)


@pytest.fixture
def budget(db):
    now = utc_now()
    return BudgetLedger(db).create_budget(
        OWNER, name="Groceries", amount=1000, start_date=now - timedelta(days=5), end_date=now + timedelta(days=25)
    )


def outstanding_of(db, party_id) -> Decimal:
    db.expire_all()
    return Decimal(db.query(Party).filter(Party.id == party_id).one().outstanding)


def from_scratch_outstanding(db, party_id) -> Decimal:
    """Σ purchases − Σ payments computed in Python over the current rows."""
    rows = db.query(LedgerTransaction).filter(LedgerTransaction.party_id == party_id).all()
    total = Decimal("0")
    for row in rows:
        amount = Decimal(row.amount)
        total += amount if row.type == TransactionType.purchase else -amount
    return total
