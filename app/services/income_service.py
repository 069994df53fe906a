from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import InvalidStateError, NotFoundError, ValidationError
from app.logger_config import logger
from app.models.expense import Expense, Frequency
from app.models.income import Income
from app.services.balance_link import BalanceLinkEngine
from app.utils.clock import naive_utc, utc_now
from app.utils.identifiers import generate_custom_id
from app.utils.money import positive_money

EDITABLE_FIELDS = {
    "amount", "source", "category", "description", "date",
    "is_connected", "is_recurring", "frequency",
}


def _frequency(is_recurring: bool, value: Any) -> Optional[Frequency]:
    if not is_recurring:
        return None
    if value is None:
        raise ValidationError("Frequency is required for a recurring income", field="frequency")
    try:
        return Frequency(value)
    except ValueError:
        raise ValidationError("Frequency must be weekly, monthly, or yearly", field="frequency")


def _linked_expense_count(db: Session, income_id: str) -> int:
    return db.query(Expense).filter(
        Expense.income_id == income_id,
        Expense.affects_balance.is_(True),
    ).count()


def get_income(db: Session, owner_id: str, income_id: str) -> Income:
    income = db.query(Income).filter(Income.id == income_id, Income.owner_id == owner_id).first()
    if not income:
        logger.warning(f"Income not found: {income_id} (owner {owner_id})")
        raise NotFoundError("Income", income_id)
    return income


def list_incomes(
    db: Session,
    owner_id: str,
    is_connected: Optional[bool] = None,
    category: Optional[str] = None,
    skip: int = 0,
    limit: int = 100,
) -> Tuple[List[Income], int]:
    query = db.query(Income).filter(Income.owner_id == owner_id)
    if is_connected is not None:
        query = query.filter(Income.is_connected.is_(is_connected))
    if category:
        query = query.filter(Income.category == category)
    total = query.count()
    incomes = query.order_by(Income.date.desc()).offset(skip).limit(limit).all()
    return incomes, total


def list_connected_incomes(db: Session, owner_id: str) -> List[Income]:
    """Incomes that can fund balance-affecting expenses."""
    incomes, _ = list_incomes(db, owner_id, is_connected=True, limit=1000)
    return incomes


def create_income(
    db: Session,
    owner_id: str,
    amount: Any,
    source: str,
    category: Optional[str] = None,
    description: Optional[str] = None,
    date: Optional[datetime] = None,
    is_connected: bool = False,
    is_recurring: bool = False,
    frequency: Any = None,
) -> Income:
    """Record a deposit. The remaining balance starts at the full amount."""
    amount = positive_money(amount)
    if not source or not source.strip():
        raise ValidationError("Source is required", field="source")

    income = Income(
        id=generate_custom_id("INC"),
        owner_id=owner_id,
        original_amount=amount,
        amount=amount,
        source=source.strip(),
        category=(category or "Other").strip() or "Other",
        description=description,
        date=naive_utc(date) or utc_now(),
        is_connected=bool(is_connected),
        is_recurring=bool(is_recurring),
        frequency=_frequency(is_recurring, frequency),
    )
    db.add(income)
    try:
        db.commit()
        db.refresh(income)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error creating income: {str(e)}")
        raise

    logger.info(f"Income {income.id} created: {amount} from {income.source} (connected={income.is_connected})")
    return income


def update_income(db: Session, owner_id: str, income_id: str, patch: Dict[str, Any]) -> Income:
    """
    Edit an income. A new amount replaces the recorded deposit and the remaining
    balance is re-derived from it, so linked expenses stay deducted.
    """
    unknown = set(patch) - EDITABLE_FIELDS
    if unknown:
        raise ValidationError(f"Unsupported fields: {', '.join(sorted(unknown))}", field=sorted(unknown)[0])

    income = get_income(db, owner_id, income_id)

    if patch.get("is_connected") is False and income.is_connected:
        linked = _linked_expense_count(db, income.id)
        if linked:
            raise InvalidStateError(
                f"Income {income_id} still funds {linked} expenses; unlink them before disconnecting",
                field="is_connected", entity="Income",
            )

    amount_changed = False
    if patch.get("amount") is not None:
        new_amount = positive_money(patch["amount"])
        amount_changed = new_amount != Decimal(income.original_amount)
        income.original_amount = new_amount
    if patch.get("source") is not None:
        if not patch["source"].strip():
            raise ValidationError("Source cannot be empty", field="source")
        income.source = patch["source"].strip()
    if patch.get("category") is not None:
        income.category = patch["category"].strip() or "Other"
    if "description" in patch:
        income.description = patch["description"]
    if patch.get("date") is not None:
        income.date = naive_utc(patch["date"])
    if patch.get("is_connected") is not None:
        income.is_connected = bool(patch["is_connected"])
    if patch.get("is_recurring") is not None:
        income.is_recurring = bool(patch["is_recurring"])
    if "is_recurring" in patch or "frequency" in patch:
        income.frequency = _frequency(income.is_recurring, patch.get("frequency", income.frequency))

    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error updating income {income_id}: {str(e)}")
        raise

    if amount_changed:
        logger.info(f"Income {income_id} deposit changed to {income.original_amount}")
    BalanceLinkEngine(db).recompute_after_write(income.id)
    return get_income(db, owner_id, income_id)


def delete_income(db: Session, owner_id: str, income_id: str) -> int:
    """Delete an income; expenses it funded stay on record but no longer affect a balance."""
    income = get_income(db, owner_id, income_id)
    try:
        detached = db.query(Expense).filter(Expense.income_id == income.id).update(
            {Expense.income_id: None, Expense.affects_balance: False},
            synchronize_session=False,
        )
        db.delete(income)
        db.commit()
        db.expire_all()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error deleting income {income_id}: {str(e)}")
        raise

    logger.info(f"Income {income_id} deleted; {detached} expenses detached")
    return detached


def bulk_delete_incomes(db: Session, owner_id: str, ids: List[str]) -> Tuple[int, int]:
    """Delete several incomes at once; returns (incomes deleted, expenses detached)."""
    if not ids:
        raise ValidationError("No income ids provided", field="ids")

    income_ids = [
        row.id for row in db.query(Income.id).filter(Income.owner_id == owner_id, Income.id.in_(set(ids))).all()
    ]
    if not income_ids:
        return 0, 0
    try:
        detached = db.query(Expense).filter(Expense.income_id.in_(income_ids)).update(
            {Expense.income_id: None, Expense.affects_balance: False},
            synchronize_session=False,
        )
        deleted = db.query(Income).filter(Income.id.in_(income_ids)).delete(synchronize_session=False)
        db.commit()
        db.expire_all()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error bulk deleting incomes: {str(e)}")
        raise

    logger.info(f"Bulk deleted {deleted} incomes; {detached} expenses detached")
    return deleted, detached
