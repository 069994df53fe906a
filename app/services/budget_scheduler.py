"""
Budget auto-completion sweep.

Completes running budgets whose end date has passed. Over-budget alone never
completes a budget. The sweep is idempotent and can run next to manual status
changes: BudgetLedger.complete_if_due re-checks the status at write time.
"""

import asyncio
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from app.logger_config import logger
from app.models.budget import Budget, BudgetStatus
from app.services.budget_ledger import BudgetLedger
from app.utils.clock import naive_utc, utc_now


class BudgetScheduler:

    def __init__(self, db: Session):
        self.db = db
        self.ledger = BudgetLedger(db)

    def due_budgets(self, now: datetime, owner_id: Optional[str] = None) -> List[Budget]:
        query = self.db.query(Budget).filter(
            Budget.status == BudgetStatus.running,
            Budget.end_date <= now,
        )
        if owner_id:
            query = query.filter(Budget.owner_id == owner_id)
        return query.order_by(Budget.end_date.asc()).all()

    def sweep(self, owner_id: Optional[str] = None, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """
        Complete every due budget (for one owner, or all owners when owner_id is None).
        Returns the savings record of each budget completed by this run.
        """
        now = naive_utc(now) or utc_now()
        candidates = [budget.id for budget in self.due_budgets(now, owner_id)]
        logger.debug(f"Budget sweep at {now.isoformat()}: {len(candidates)} candidates")

        completed = []
        for budget_id in candidates:
            if not self.ledger.complete_if_due(budget_id, now):
                logger.info(f"Budget {budget_id} changed before completion; skipped")
                continue

            budget = self.db.query(Budget).filter(Budget.id == budget_id).first()
            snapshot = self.ledger.snapshot(budget, now)
            completed.append({
                "id": budget.id,
                "name": budget.name,
                "amount": budget.amount,
                "spent": snapshot["spent"],
                "remaining": snapshot["remaining"],
                "savings": snapshot["savings"],
                "end_date": budget.end_date,
                "category": budget.category,
            })
            logger.info(f"✅ Budget {budget_id} auto-completed (spent {snapshot['spent']} of {budget.amount})")

        if completed:
            logger.info(f"{len(completed)} budgets auto-completed")
        return completed


async def run_periodic_sweep(session_factory: Callable[[], Session], interval_seconds: int) -> None:
    """Background loop started from the application lifespan."""
    logger.info(f"Budget sweep scheduled every {interval_seconds}s")
    while True:
        try:
            await asyncio.to_thread(_sweep_once, session_factory)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Budget sweep failed; retrying on next tick")
        await asyncio.sleep(interval_seconds)


def _sweep_once(session_factory: Callable[[], Session]) -> List[Dict[str, Any]]:
    db = session_factory()
    try:
        return BudgetScheduler(db).sweep()
    finally:
        db.close()
