from decimal import Decimal

import pytest

from app.core.exceptions import NotFoundError, ValidationError
from app.models.party import Party, PartyKind
from app.models.transaction import LedgerTransaction
from app.services.ledger_engine import LedgerBalanceEngine
from app.services.party_service import create_party, delete_party, get_all_parties, get_party, update_party
from conftest import OTHER_OWNER, OWNER


def test_new_party_starts_at_zero(db, customer):
    assert customer.kind == PartyKind.customer
    assert customer.outstanding == Decimal("0")
    assert customer.id.startswith("PTY-")


def test_vendor_phone_is_unique_per_owner(db, vendor):
    with pytest.raises(ValidationError) as exc:
        create_party(db, OWNER, PartyKind.vendor, name="Duplicate", phone=vendor.phone)
    assert exc.value.field == "phone"

    # another owner, or a customer, may use the same number
    create_party(db, OTHER_OWNER, PartyKind.vendor, name="Elsewhere", phone=vendor.phone)
    create_party(db, OWNER, PartyKind.customer, name="Same phone", phone=vendor.phone)


def test_get_party_respects_kind_and_owner(db, customer):
    assert get_party(db, OWNER, customer.id).id == customer.id
    with pytest.raises(NotFoundError) as exc:
        get_party(db, OWNER, customer.id, PartyKind.vendor)
    assert exc.value.entity == "Vendor"
    with pytest.raises(NotFoundError):
        get_party(db, OTHER_OWNER, customer.id)


def test_search_by_name_or_phone(db, customer):
    create_party(db, OWNER, PartyKind.customer, name="Suresh", phone="9111111111")

    by_name, total = get_all_parties(db, OWNER, PartyKind.customer, search="Rame")
    assert total == 1 and by_name[0].id == customer.id

    by_phone, total = get_all_parties(db, OWNER, PartyKind.customer, search="91111")
    assert total == 1 and by_phone[0].name == "Suresh"


def test_update_contact_details(db, customer):
    updated = update_party(db, OWNER, customer.id, name="Ramesh Kumar", credit_limit=5000)
    assert updated.name == "Ramesh Kumar"
    assert updated.credit_limit == Decimal("5000")

    with pytest.raises(ValidationError):
        update_party(db, OWNER, customer.id, credit_limit=-1)
    with pytest.raises(ValidationError):
        update_party(db, OWNER, customer.id, name="  ")


def test_delete_party_removes_its_transactions(db, customer, vendor):
    engine = LedgerBalanceEngine(db)
    engine.record_purchase(OWNER, customer.id, 500, paid_amount=200, description="Ration")
    engine.record_purchase(OWNER, vendor.id, 100, description="Stock")
    customer_id = customer.id

    delete_party(db, OWNER, customer_id)

    assert db.query(Party).filter(Party.id == customer_id).count() == 0
    assert db.query(LedgerTransaction).filter(LedgerTransaction.party_id == customer_id).count() == 0
    assert db.query(LedgerTransaction).filter(LedgerTransaction.party_id == vendor.id).count() == 1
