from datetime import timedelta
from decimal import Decimal

import pytest

from app.core.exceptions import InvalidStateError, NotFoundError, ValidationError
from app.models.expense import Expense, ExpenseType, Frequency
from app.services.budget_ledger import BudgetLedger
from app.services.expense_service import ExpenseService
from app.services.income_service import get_income
from app.utils.clock import utc_now
from conftest import OTHER_OWNER, OWNER


@pytest.fixture
def service(db):
    return ExpenseService(db)


def test_free_expense_touches_no_aggregate(service, budget, connected_income):
    expense = service.create_expense(OWNER, amount="49.99", category="Snacks", reason="Chai")

    assert expense.type == ExpenseType.free
    assert expense.amount == Decimal("49.99")
    assert expense.budget_id is None and expense.income_id is None
    assert BudgetLedger(service.db).get_budget(OWNER, budget.id).spent == Decimal("0")
    assert get_income(service.db, OWNER, connected_income.id).amount == Decimal("1000")


@pytest.mark.parametrize(
    "kwargs, field",
    [
        ({"amount": 0}, "amount"),
        ({"category": " "}, "category"),
        ({"reason": ""}, "reason"),
        ({"type": "budget"}, "budget_id"),
        ({"affects_balance": True}, "income_id"),
        ({"is_recurring": True}, "frequency"),
        ({"type": "monthly"}, "type"),
    ],
)
def test_invalid_input_is_rejected_before_writing(service, kwargs, field):
    data = {"amount": 10, "category": "Food", "reason": "Lunch"}
    data.update(kwargs)

    with pytest.raises(ValidationError) as exc:
        service.create_expense(OWNER, **data)

    assert exc.value.field == field
    assert service.db.query(Expense).count() == 0


def test_budget_and_income_are_both_updated(service, budget, connected_income):
    service.create_expense(
        OWNER, amount=200, category="Food", reason="Weekly vegetables",
        type="budget", budget_id=budget.id, affects_balance=True, income_id=connected_income.id,
    )

    assert BudgetLedger(service.db).get_budget(OWNER, budget.id).spent == Decimal("200")
    assert get_income(service.db, OWNER, connected_income.id).amount == Decimal("800")


def test_recurring_expense_keeps_frequency(service):
    expense = service.create_expense(
        OWNER, amount=499, category="Subscriptions", reason="Internet", is_recurring=True, frequency="monthly"
    )
    assert expense.frequency == Frequency.monthly

    updated = service.update_expense(OWNER, expense.id, {"is_recurring": False})
    assert updated.frequency is None


def test_moving_between_budgets_recomputes_both(service, db, budget):
    ledger = BudgetLedger(db)
    now = utc_now()
    other = ledger.create_budget(OWNER, name="Dining", amount=300, start_date=now, end_date=now + timedelta(days=7))
    expense = service.create_expense(
        OWNER, amount=120, category="Food", reason="Pizza", type="budget", budget_id=budget.id
    )

    service.update_expense(OWNER, expense.id, {"budget_id": other.id})

    assert ledger.get_budget(OWNER, budget.id).spent == Decimal("0")
    assert ledger.get_budget(OWNER, other.id).spent == Decimal("120")

    service.update_expense(OWNER, expense.id, {"type": "free"})
    assert ledger.get_budget(OWNER, other.id).spent == Decimal("0")
    assert service.get_expense(OWNER, expense.id).budget_id is None


def test_expense_of_completed_budget_cannot_move_or_change_amount(service, db, budget):
    expense = service.create_expense(
        OWNER, amount=120, category="Food", reason="Pizza", type="budget", budget_id=budget.id
    )
    BudgetLedger(db).set_status(OWNER, budget.id, "completed")

    with pytest.raises(InvalidStateError):
        service.update_expense(OWNER, expense.id, {"amount": 90})
    with pytest.raises(InvalidStateError):
        service.update_expense(OWNER, expense.id, {"type": "free"})

    # descriptive edits are fine
    assert service.update_expense(OWNER, expense.id, {"reason": "Pizza night"}).reason == "Pizza night"


def test_cannot_move_expense_into_completed_budget(service, db, budget):
    BudgetLedger(db).set_status(OWNER, budget.id, "completed")
    expense = service.create_expense(OWNER, amount=60, category="Food", reason="Juice")

    with pytest.raises(InvalidStateError):
        service.update_expense(OWNER, expense.id, {"type": "budget", "budget_id": budget.id})


def test_list_filters_and_totals(service, budget):
    service.create_expense(OWNER, amount=100, category="Food", reason="Groceries", type="budget", budget_id=budget.id)
    service.create_expense(OWNER, amount=40, category="Transport", reason="Auto")
    service.create_expense(
        OWNER, amount=15, category="Food", reason="Old snack", date=utc_now() - timedelta(days=60)
    )
    service.create_expense(OTHER_OWNER, amount=999, category="Food", reason="Not mine")

    rows, total, amount = service.list_expenses(OWNER)
    assert total == 3 and amount == Decimal("155")

    rows, total, amount = service.list_expenses(OWNER, category="Food")
    assert total == 2 and amount == Decimal("115")

    rows, total, _ = service.list_expenses(OWNER, expense_type=ExpenseType.budget)
    assert [r.budget_id for r in rows] == [budget.id]

    rows, total, _ = service.list_expenses(OWNER, start_date=utc_now() - timedelta(days=7))
    assert total == 2


def test_expenses_by_income(service, connected_income):
    service.create_expense(
        OWNER, amount=100, category="Bills", reason="Water", affects_balance=True, income_id=connected_income.id
    )
    service.create_expense(
        OWNER, amount=50, category="Bills", reason="Gas", affects_balance=True, income_id=connected_income.id
    )
    service.create_expense(OWNER, amount=20, category="Bills", reason="Unlinked")

    result = service.expenses_by_income(OWNER, connected_income.id)

    assert result["count"] == 2
    assert result["total_spent"] == Decimal("150")
    with pytest.raises(NotFoundError):
        service.expenses_by_income(OTHER_OWNER, connected_income.id)


def test_unknown_expense_is_not_found(service):
    with pytest.raises(NotFoundError):
        service.delete_expense(OWNER, "EXP-MISSING")


def test_bulk_delete_recomputes_each_budget_and_income(service, budget, connected_income):
    first = service.create_expense(
        OWNER, amount=100, category="Food", reason="Rice",
        type="budget", budget_id=budget.id, affects_balance=True, income_id=connected_income.id,
    )
    second = service.create_expense(
        OWNER, amount=50, category="Food", reason="Dal", type="budget", budget_id=budget.id,
    )
    kept = service.create_expense(
        OWNER, amount=30, category="Bills", reason="Water", affects_balance=True, income_id=connected_income.id
    )
    theirs = service.create_expense(OTHER_OWNER, amount=10, category="Food", reason="Not mine")

    deleted = service.bulk_delete_expenses(OWNER, [first.id, second.id, theirs.id, "EXP-MISSING"])

    assert deleted == 2
    assert BudgetLedger(service.db).get_budget(OWNER, budget.id).spent == Decimal("0")
    assert get_income(service.db, OWNER, connected_income.id).amount == Decimal("970")
    assert service.get_expense(OWNER, kept.id).amount == Decimal("30")
    assert service.get_expense(OTHER_OWNER, theirs.id).amount == Decimal("10")


def test_bulk_delete_needs_ids(service):
    with pytest.raises(ValidationError) as exc:
        service.bulk_delete_expenses(OWNER, [])
    assert exc.value.field == "ids"
