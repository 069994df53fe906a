"""
Reconciliation jobs.

Re-derive every cached aggregate from its detail rows and repair the ones that
drifted (a crash between a detail write and its recompute, a manual DB edit).
Each repair is a compare-and-swap:

    UPDATE ... SET cached = expected WHERE id = :id AND cached = :observed

so a job running next to live traffic never overwrites a value that a
concurrent mutation has just recomputed. A lost CAS is reported as skipped.

Run it by hand with:

    python -m app.services.reconciliation [--owner OWNER_ID]
"""

import argparse
import json
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.core.exceptions import ConsistencyDriftError
from app.logger_config import logger
from app.models.budget import Budget, BudgetStatus
from app.models.income import Income
from app.models.party import Party
from app.models.personal import PersonalContact
from app.services.balance_link import BalanceLinkEngine
from app.services.budget_ledger import BudgetLedger
from app.services.personal_ledger import PersonalLedger
from app.services.transaction_store import TransactionStore


def _empty_report(entity: str) -> Dict[str, Any]:
    return {"entity": entity, "checked": 0, "repaired": [], "skipped": []}


def _matches(column, observed):
    if observed is None:
        return column.is_(None)
    return column == observed


class ReconciliationService:

    def __init__(self, db: Session):
        self.db = db
        self.store = TransactionStore(db)
        self.budgets = BudgetLedger(db)
        self.balance = BalanceLinkEngine(db)
        self.personal = PersonalLedger(db)

    def _swap(self, model, row_id: str, column, observed, expected: Decimal, *extra) -> bool:
        result = self.db.execute(
            update(model)
            .where(model.id == row_id, _matches(column, observed), *extra)
            .values({column.key: expected})
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount == 1

    def _record(self, report: Dict[str, Any], entity: str, row_id: str, cached, expected: Decimal, swapped: bool):
        drift = ConsistencyDriftError(entity, row_id, cached=cached, expected=expected)
        if swapped:
            logger.warning(f"{drift.message}; repaired")
            report["repaired"].append({"id": row_id, "cached": cached, "expected": expected})
        else:
            logger.info(f"{entity} {row_id} changed during reconciliation; skipped")
            report["skipped"].append(row_id)

    # ==================== JOBS ====================

    def reconcile_parties(self, owner_id: Optional[str] = None) -> Dict[str, Any]:
        report = _empty_report("Party")
        query = self.db.query(Party.id, Party.outstanding)
        if owner_id:
            query = query.filter(Party.owner_id == owner_id)

        for party_id, cached in query.all():
            report["checked"] += 1
            totals = self.store.totals_for_party(party_id)
            expected = totals["total_purchases"] - totals["total_payments"]
            if cached is not None and Decimal(cached) == expected:
                continue
            swapped = self._swap(Party, party_id, Party.outstanding, cached, expected)
            self._record(report, "Party", party_id, cached, expected, swapped)
        return report

    def reconcile_budgets(self, owner_id: Optional[str] = None) -> Dict[str, Any]:
        """Completed budgets hold a frozen savings record and are left alone."""
        report = _empty_report("Budget")
        query = self.db.query(Budget.id, Budget.spent).filter(Budget.status != BudgetStatus.completed)
        if owner_id:
            query = query.filter(Budget.owner_id == owner_id)

        for budget_id, cached in query.all():
            report["checked"] += 1
            expected = self.budgets.compute_spent(budget_id)
            if cached is not None and Decimal(cached) == expected:
                continue
            swapped = self._swap(
                Budget, budget_id, Budget.spent, cached, expected, Budget.status != BudgetStatus.completed
            )
            self._record(report, "Budget", budget_id, cached, expected, swapped)
        return report

    def reconcile_incomes(self, owner_id: Optional[str] = None) -> Dict[str, Any]:
        report = _empty_report("Income")
        query = self.db.query(Income.id, Income.amount, Income.original_amount)
        if owner_id:
            query = query.filter(Income.owner_id == owner_id)

        for income_id, cached, original in query.all():
            report["checked"] += 1
            expected = Decimal(original) - self.balance.linked_total(income_id)
            if cached is not None and Decimal(cached) == expected:
                continue
            swapped = self._swap(Income, income_id, Income.amount, cached, expected)
            self._record(report, "Income", income_id, cached, expected, swapped)
        return report

    def reconcile_contacts(self, owner_id: Optional[str] = None) -> Dict[str, Any]:
        """The three cached amounts of a contact are swapped together, guarded on all three."""
        report = _empty_report("PersonalContact")
        query = self.db.query(
            PersonalContact.id,
            PersonalContact.total_amount,
            PersonalContact.paid_amount,
            PersonalContact.remaining_amount,
        )
        if owner_id:
            query = query.filter(PersonalContact.owner_id == owner_id)

        for contact_id, total, paid, cached in query.all():
            report["checked"] += 1
            totals = self.personal.compute_totals(contact_id)
            observed = (total, paid, cached)
            expected = (totals["total_amount"], totals["paid_amount"], totals["remaining_amount"])
            if None not in observed and tuple(Decimal(v) for v in observed) == expected:
                continue
            result = self.db.execute(
                update(PersonalContact)
                .where(
                    PersonalContact.id == contact_id,
                    _matches(PersonalContact.total_amount, total),
                    _matches(PersonalContact.paid_amount, paid),
                    _matches(PersonalContact.remaining_amount, cached),
                )
                .values(total_amount=expected[0], paid_amount=expected[1], remaining_amount=expected[2])
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
            self._record(report, "PersonalContact", contact_id, cached, expected[2], result.rowcount == 1)
        return report

    def reconcile_all(self, owner_id: Optional[str] = None) -> List[Dict[str, Any]]:
        reports = [
            self.reconcile_parties(owner_id),
            self.reconcile_budgets(owner_id),
            self.reconcile_incomes(owner_id),
            self.reconcile_contacts(owner_id),
        ]
        self.db.expire_all()
        repaired = sum(len(r["repaired"]) for r in reports)
        logger.info(f"✅ Reconciliation finished: {repaired} aggregates repaired")
        return reports


def main(owner_id: Optional[str] = None) -> None:
    from app.core.database import SessionLocal, init_db

    init_db()
    db = SessionLocal()
    try:
        reports = ReconciliationService(db).reconcile_all(owner_id)
    finally:
        db.close()
    print(json.dumps(reports, indent=2, default=str))


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Repair drifted ledger, budget, income and personal contact aggregates.")
    parser.add_argument("--owner", default=None, help="Only reconcile this owner's records")
    args = parser.parse_args()
    main(owner_id=args.owner)
