"""HTTP surface: routing, owner scoping and the error envelope."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

from app.utils.clock import utc_now


def _customer(client, name="Ramesh", phone="9000000001"):
    response = client.post("/api/v1/customers", json={"name": name, "phone": phone})
    assert response.status_code == 201, response.text
    return response.json()


def test_missing_owner_header_is_unauthorised(client):
    response = client.get("/api/v1/customers", headers={"X-Owner-Id": ""})

    assert response.status_code == 401
    body = response.json()
    assert body["success"] is False
    assert body["status_code"] == 401


def test_purchase_and_payment_flow(client):
    customer = _customer(client)

    purchase = client.post(
        "/api/v1/transactions/purchase",
        json={
            "party_id": customer["id"],
            "amount": 500,
            "paid_amount": 200,
            "description": "Monthly ration",
            "items": [{"name": "Rice", "quantity": 10, "unit_price": 50}],
        },
    )
    assert purchase.status_code == 201, purchase.text
    assert Decimal(purchase.json()["party_outstanding"]) == Decimal("300")
    assert purchase.json()["status"] == "pending"

    payment = client.post("/api/v1/transactions/payment", json={"party_id": customer["id"], "amount": 400})
    assert Decimal(payment.json()["party_outstanding"]) == Decimal("-100")

    detail = client.get(f"/api/v1/customers/{customer['id']}").json()
    assert Decimal(detail["outstanding"]) == Decimal("-100")
    assert detail["transaction_count"] == 3

    summary = client.get(f"/api/v1/customers/{customer['id']}/summary").json()
    assert Decimal(summary["total_purchases"]) == Decimal("500")
    assert Decimal(summary["total_payments"]) == Decimal("600")

    listed = client.get("/api/v1/transactions", params={"party_id": customer["id"], "type": "payment"}).json()
    assert listed["total"] == 2


def test_edit_and_delete_transaction(client):
    customer = _customer(client)
    purchase = client.post(
        "/api/v1/transactions/purchase",
        json={"party_id": customer["id"], "amount": 500, "paid_amount": 200, "description": "Ration"},
    ).json()

    edited = client.put(f"/api/v1/transactions/{purchase['id']}", json={"amount": 800})
    assert edited.status_code == 200, edited.text
    assert Decimal(edited.json()["party_outstanding"]) == Decimal("600")

    deleted = client.delete(f"/api/v1/transactions/{purchase['id']}")
    assert deleted.status_code == 200
    party = client.get(f"/api/v1/customers/{customer['id']}").json()
    assert Decimal(party["outstanding"]) == Decimal("0")
    assert party["transactions"] == []


def test_schema_validation_uses_error_envelope(client):
    customer = _customer(client)

    response = client.post(
        "/api/v1/transactions/purchase",
        json={"party_id": customer["id"], "amount": 0, "description": "Nothing"},
    )

    assert response.status_code == 422
    body = response.json()
    assert body["error"] == "VALIDATION_ERROR"
    assert body["field"] == "amount"


def test_domain_validation_reports_field(client):
    customer = _customer(client)

    response = client.post(
        "/api/v1/transactions/purchase",
        json={"party_id": customer["id"], "amount": 100, "paid_amount": 150, "description": "Too much"},
    )

    assert response.status_code == 422
    assert response.json()["field"] == "paid_amount"


def test_other_owner_sees_not_found(client):
    customer = _customer(client)

    response = client.get(f"/api/v1/customers/{customer['id']}", headers={"X-Owner-Id": "owner-2"})

    assert response.status_code == 404
    assert response.json()["error"] == "NOT_FOUND"
    assert response.json()["entity"] == "Customer"


def test_customer_is_not_a_vendor(client):
    customer = _customer(client)
    assert client.get(f"/api/v1/vendors/{customer['id']}").status_code == 404


def test_duplicate_vendor_phone(client):
    first = client.post("/api/v1/vendors", json={"name": "Sharma Traders", "phone": "9000000002"})
    assert first.status_code == 201
    second = client.post("/api/v1/vendors", json={"name": "Sharma & Sons", "phone": "9000000002"})
    assert second.status_code == 422
    assert second.json()["field"] == "phone"


def test_budget_lifecycle(client):
    budget = client.post("/api/v1/budgets", json={"name": "Groceries", "amount": 1000}).json()
    assert budget["status"] == "running"
    assert budget["duration"] == "monthly"

    expense = client.post(
        "/api/v1/expenses",
        json={"amount": 250, "category": "Food", "reason": "Vegetables", "type": "budget", "budget_id": budget["id"]},
    )
    assert expense.status_code == 201, expense.text

    current = client.get(f"/api/v1/budgets/{budget['id']}").json()
    assert Decimal(current["spent"]) == Decimal("250")
    assert Decimal(current["remaining"]) == Decimal("750")

    completed = client.post(f"/api/v1/budgets/{budget['id']}/status", json={"status": "completed"})
    assert completed.json()["status"] == "completed"
    assert Decimal(completed.json()["savings"]) == Decimal("750")

    rejected = client.post(
        "/api/v1/expenses",
        json={"amount": 10, "category": "Food", "reason": "Late", "type": "budget", "budget_id": budget["id"]},
    )
    assert rejected.status_code == 409
    assert rejected.json()["error"] == "INVALID_STATE"

    reopened = client.post(f"/api/v1/budgets/{budget['id']}/status", json={"status": "running"})
    assert reopened.status_code == 409


def test_auto_complete_endpoint(client):
    now = utc_now()
    client.post(
        "/api/v1/budgets",
        json={
            "name": "Trip",
            "amount": 500,
            "duration": "custom",
            "start_date": (now - timedelta(days=10)).isoformat(),
            "end_date": (now - timedelta(days=1)).isoformat(),
        },
    )

    first = client.post("/api/v1/budgets/auto-complete").json()
    second = client.post("/api/v1/budgets/auto-complete").json()

    assert first["count"] == 1
    assert Decimal(first["completed"][0]["savings"]) == Decimal("500")
    assert second["count"] == 0


def test_connected_income_flow(client):
    income = client.post(
        "/api/v1/incomes", json={"amount": 1000, "source": "Salary", "is_connected": True}
    ).json()
    expense = client.post(
        "/api/v1/expenses",
        json={"amount": 200, "category": "Bills", "reason": "Power", "affects_balance": True, "income_id": income["id"]},
    ).json()

    after_spend = client.get(f"/api/v1/incomes/{income['id']}").json()
    assert Decimal(after_spend["amount"]) == Decimal("800")
    assert Decimal(after_spend["original_amount"]) == Decimal("1000")

    by_income = client.get(f"/api/v1/expenses/by-income/{income['id']}").json()
    assert by_income["count"] == 1

    blocked = client.put(f"/api/v1/incomes/{income['id']}", json={"is_connected": False})
    assert blocked.status_code == 409

    client.delete(f"/api/v1/expenses/{expense['id']}")
    restored = client.get(f"/api/v1/incomes/{income['id']}").json()
    assert Decimal(restored["amount"]) == Decimal("1000")

    connected = client.get("/api/v1/incomes/connected").json()
    assert [i["id"] for i in connected["incomes"]] == [income["id"]]


def test_analytics_and_reconciliation_endpoints(client):
    _customer(client)
    client.post("/api/v1/expenses", json={"amount": 75, "category": "Food", "reason": "Snacks"})

    overview = client.get("/api/v1/analytics/overview")
    assert overview.status_code == 200, overview.text
    assert Decimal(overview.json()["total_expenses"]) == Decimal("75")

    categories = client.get("/api/v1/analytics/categories").json()
    assert categories["categories"][0]["category"] == "Food"

    monthly = client.get("/api/v1/analytics/monthly", params={"months": 2}).json()
    assert len(monthly["months"]) == 2

    reconciled = client.post("/api/v1/reconciliation")
    assert reconciled.status_code == 200
    assert reconciled.json()["repaired_count"] == 0
    assert {r["entity"] for r in reconciled.json()["reports"]} == {"Party", "Budget", "Income", "PersonalContact"}


def test_aware_end_date_is_not_completed_early(client, host_east_of_utc):
    now = datetime.now(timezone.utc)
    created = client.post(
        "/api/v1/budgets",
        json={
            "name": "Movie night",
            "amount": 200,
            "duration": "custom",
            "start_date": (now - timedelta(days=1)).isoformat(),
            "end_date": (now + timedelta(hours=2)).isoformat(),
        },
    )
    assert created.status_code == 201, created.text

    swept = client.post("/api/v1/budgets/auto-complete").json()

    assert swept["count"] == 0
    assert client.get(f"/api/v1/budgets/{created.json()['id']}").json()["status"] == "running"


def test_personal_contact_flow(client):
    created = client.post(
        "/api/v1/personal/contacts",
        json={"name": "Imran", "direction": "lent", "amount": 5000, "notes": "Bike repair"},
    )
    assert created.status_code == 201, created.text
    contact_id = created.json()["id"]
    assert Decimal(created.json()["remaining_amount"]) == Decimal("5000")

    paid = client.post(f"/api/v1/personal/contacts/{contact_id}/transactions", json={"amount": 1200})
    assert paid.status_code == 201, paid.text
    assert paid.json()["type"] == "payment"
    assert Decimal(paid.json()["remaining_amount"]) == Decimal("3800")

    too_much = client.post(f"/api/v1/personal/contacts/{contact_id}/transactions", json={"amount": "3800.01"})
    assert too_much.status_code == 422
    assert too_much.json()["field"] == "amount"

    history = client.get(f"/api/v1/personal/contacts/{contact_id}/transactions").json()
    assert history["total"] == 2

    summary = client.get("/api/v1/personal/contacts/summary").json()
    assert Decimal(summary["net"]) == Decimal("3800")

    client.delete(f"/api/v1/personal/contacts/{contact_id}/transactions/{paid.json()['id']}")
    assert Decimal(client.get(f"/api/v1/personal/contacts/{contact_id}").json()["remaining_amount"]) == Decimal("5000")

    other = client.get(f"/api/v1/personal/contacts/{contact_id}", headers={"X-Owner-Id": "owner-2"})
    assert other.status_code == 404

    removed = client.delete(f"/api/v1/personal/contacts/{contact_id}").json()
    assert removed["removed_entries"] == 1
    assert client.get("/api/v1/personal/contacts").json()["total"] == 0


def test_bulk_delete_endpoints(client):
    income = client.post(
        "/api/v1/incomes", json={"amount": 1000, "source": "Salary", "is_connected": True}
    ).json()
    ids = [
        client.post(
            "/api/v1/expenses",
            json={"amount": amount, "category": "Bills", "reason": "Power", "affects_balance": True, "income_id": income["id"]},
        ).json()["id"]
        for amount in (100, 150)
    ]
    assert Decimal(client.get(f"/api/v1/incomes/{income['id']}").json()["amount"]) == Decimal("750")

    deleted = client.post("/api/v1/expenses/bulk-delete", json={"ids": ids})
    assert deleted.status_code == 200, deleted.text
    assert deleted.json()["deleted"] == 2
    assert Decimal(client.get(f"/api/v1/incomes/{income['id']}").json()["amount"]) == Decimal("1000")

    empty = client.post("/api/v1/expenses/bulk-delete", json={"ids": []})
    assert empty.status_code == 422

    incomes = client.post("/api/v1/incomes/bulk-delete", json={"ids": [income["id"]]}).json()
    assert incomes["deleted"] == 1 and incomes["detached_expenses"] == 0
    assert client.get(f"/api/v1/incomes/{income['id']}").status_code == 404
