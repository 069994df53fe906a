"""Connected income balance: original_amount minus the linked balance-affecting expenses."""

from decimal import Decimal

import pytest
from sqlalchemy import update

from app.core.exceptions import InvalidStateError, NotFoundError
from app.models.expense import Expense
from app.models.income import Income
from app.services.balance_link import BalanceLinkEngine
from app.services.expense_service import ExpenseService
from app.services.income_service import create_income, get_income
from conftest import OTHER_OWNER, OWNER


def _draw(db, income_id, amount, reason="Electricity bill"):
    return ExpenseService(db).create_expense(
        OWNER, amount=amount, category="Bills", reason=reason, affects_balance=True, income_id=income_id
    )


def _income(db, income_id):
    db.expire_all()
    return get_income(db, OWNER, income_id)


def test_link_then_delete_restores_balance(db, connected_income):
    income_id = connected_income.id
    expense = _draw(db, income_id, 200)

    assert _income(db, income_id).amount == Decimal("800")
    assert _income(db, income_id).original_amount == Decimal("1000")
    assert _income(db, income_id).spent == Decimal("200")

    ExpenseService(db).delete_expense(OWNER, expense.id)

    assert _income(db, income_id).amount == Decimal("1000")
    assert _income(db, income_id).original_amount == Decimal("1000")


def test_amount_edit_applies_difference_in_one_step(db, connected_income):
    income_id = connected_income.id
    expense = _draw(db, income_id, 200)

    ExpenseService(db).update_expense(OWNER, expense.id, {"amount": 350})

    assert _income(db, income_id).amount == Decimal("650")


def test_turning_off_affects_balance_re_credits(db, connected_income):
    income_id = connected_income.id
    expense = _draw(db, income_id, 200)

    updated = ExpenseService(db).update_expense(OWNER, expense.id, {"affects_balance": False})

    assert updated.affects_balance is False
    assert updated.income_id is None
    assert _income(db, income_id).amount == Decimal("1000")


def test_moving_between_incomes(db, connected_income):
    salary_id = connected_income.id
    bonus = create_income(db, OWNER, amount=500, source="Bonus", is_connected=True)
    bonus_id = bonus.id
    expense = _draw(db, salary_id, 300)

    ExpenseService(db).update_expense(OWNER, expense.id, {"income_id": bonus_id})

    assert _income(db, salary_id).amount == Decimal("1000")
    assert _income(db, bonus_id).amount == Decimal("200")


def test_only_connected_incomes_can_fund_expenses(db):
    loose = create_income(db, OWNER, amount=300, source="Gift")

    with pytest.raises(InvalidStateError):
        _draw(db, loose.id, 50)
    with pytest.raises(NotFoundError):
        _draw(db, "INC-MISSING", 50)

    assert db.query(Expense).count() == 0


def test_other_owners_income_is_not_found(db, connected_income):
    with pytest.raises(NotFoundError):
        BalanceLinkEngine(db).get_connected_income(OTHER_OWNER, connected_income.id)


def test_overdraft_is_shown_not_clamped(db, connected_income):
    income_id = connected_income.id
    _draw(db, income_id, 700)
    _draw(db, income_id, 500, reason="Rent top-up")

    assert _income(db, income_id).amount == Decimal("-200")


def test_recompute_heals_a_stale_balance(db, connected_income):
    income_id = connected_income.id
    _draw(db, income_id, 250)
    connected_income.amount = Decimal("1000")
    db.commit()

    engine = BalanceLinkEngine(db)
    assert engine.recompute_income(income_id) == Decimal("750")
    assert engine.recompute_income(income_id) == Decimal("750")
    assert _income(db, income_id).amount == Decimal("750")


def test_income_disconnected_mid_write_still_gets_recomputed(db, connected_income):
    service = ExpenseService(db)
    check = service.balance.get_connected_income

    def disconnect_after_check(owner_id, income_id):
        income = check(owner_id, income_id)
        # another request turns the income off right after our check
        db.execute(update(Income).where(Income.id == income_id).values(is_connected=False))
        db.commit()
        return income

    service.balance.get_connected_income = disconnect_after_check
    expense = service.create_expense(
        OWNER, amount=150, category="Bills", reason="Water", affects_balance=True, income_id=connected_income.id
    )

    assert db.query(Expense).filter(Expense.id == expense.id).count() == 1
    assert _income(db, connected_income.id).amount == Decimal("850")
