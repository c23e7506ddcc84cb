from __future__ import annotations

from datetime import date

from sqlalchemy import func
from sqlalchemy.orm import Session

from ledger import models
from ledger.schemas import BudgetOut, BudgetStatusOut
from ledger.utils.dates import period_bounds


def period_spending(db: Session, budget: models.Budget, start: date, end: date) -> float:
    """Sum of the budget category's expenses dated within ``start``..``end``."""
    total = (
        db.query(func.coalesce(func.sum(models.Transaction.amount), 0))
        .filter(
            models.Transaction.user_id == budget.user_id,
            models.Transaction.category_id == budget.category_id,
            models.Transaction.type == models.TxnType.EXPENSE,
            models.Transaction.occurred_at >= start,
            models.Transaction.occurred_at <= end,
        )
        .scalar()
    )
    return float(total or 0)


def budget_status(db: Session, budget: models.Budget, on: date) -> BudgetStatusOut:
    start, end = period_bounds(budget.period, on)
    spent = period_spending(db, budget, start, end)
    limit = float(budget.amount)
    return BudgetStatusOut(
        **BudgetOut.model_validate(budget).model_dump(),
        period_start=start,
        period_end=end,
        spent=spent,
        remaining=limit - spent,
        over_budget=spent > limit,
    )
