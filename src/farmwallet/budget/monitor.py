from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional
from zoneinfo import ZoneInfo

from ..ledger.balances import compute_expense_sum
from ..ledger.model import BudgetAlert
from ..store.schema import BudgetGoal, LedgerEntry, RecurringExpense

DANGER_PERCENT = 100.0

# Occurrences per month by frequency.
_PER_MONTH = {"monthly": 1.0, "weekly": 4.0, "yearly": 1.0 / 12.0}


def current_month(tz: str = "Asia/Seoul", now: Optional[datetime] = None) -> str:
    """yyyy-mm of `now` (default: the current time) in timezone `tz`."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(ZoneInfo(tz)).strftime("%Y-%m")


def check_budget_threshold(
    goals: List[BudgetGoal],
    ledger: List[LedgerEntry],
    month: Optional[str] = None,
    threshold: float = 80.0,
) -> List[BudgetAlert]:
    """Alerts for goals whose month-to-date spend reached `threshold` percent.

    A goal with an empty category covers all expenses. At 100% or more the
    alert level is `danger`, otherwise `warning`.
    """
    month = month or current_month()
    alerts: List[BudgetAlert] = []
    for goal in goals:
        spent = compute_expense_sum(ledger, month, goal.category or None)
        pct = spent / goal.monthly_limit * 100.0 if goal.monthly_limit > 0 else 0.0
        if pct < threshold:
            continue
        label = goal.category or "전체"
        if pct >= DANGER_PERCENT:
            level, msg = "danger", f"{label} 예산을 초과했습니다 ({pct:.1f}%)"
        else:
            level, msg = "warning", f"{label} 예산의 {pct:.1f}%를 사용했습니다"
        alerts.append(BudgetAlert(
            goal_id=goal.id,
            category=goal.category,
            month=month,
            spent=spent,
            limit=goal.monthly_limit,
            percent=pct,
            level=level,
            message=msg,
        ))
    return alerts


def expected_recurring_expenses(recurring: List[RecurringExpense], month: Optional[str] = None) -> float:
    """Projected recurring spend for a yyyy-mm month."""
    month = month or current_month()
    total = 0.0
    for r in recurring:
        if r.start_date and r.start_date > f"{month}-31":
            continue
        if r.end_date and r.end_date < f"{month}-01":
            continue
        total += r.amount * _PER_MONTH.get(r.frequency, 0.0)
    return total
