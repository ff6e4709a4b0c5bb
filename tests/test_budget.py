from datetime import datetime, timezone

import pytest

from farmwallet.budget.monitor import check_budget_threshold, current_month, expected_recurring_expenses
from farmwallet.store.schema import BudgetGoal, LedgerEntry, RecurringExpense


def _spend(amount, category="식비", day="2024-03-10"):
    return LedgerEntry(id=f"e{amount}", date=day, kind="expense", category=category,
                       from_account_id="A", amount=amount)


def test_warning_and_danger_levels():
    goals = [BudgetGoal(id="g1", category="식비", monthly_limit=100_000)]
    [warn] = check_budget_threshold(goals, [_spend(85_000)], "2024-03")
    assert warn.level == "warning"
    assert warn.percent == pytest.approx(85.0)
    assert warn.message == "식비 예산의 85.0%를 사용했습니다"

    [danger] = check_budget_threshold(goals, [_spend(85_000), _spend(35_000)], "2024-03")
    assert danger.level == "danger"
    assert danger.message == "식비 예산을 초과했습니다 (120.0%)"

    assert check_budget_threshold(goals, [_spend(50_000)], "2024-03") == []
    assert check_budget_threshold(goals, [_spend(90_000, day="2024-02-28")], "2024-03") == []


def test_empty_category_covers_all_expenses():
    goals = [BudgetGoal(id="all", category="", monthly_limit=100_000)]
    ledger = [_spend(50_000), _spend(40_000, category="교통비")]
    [alert] = check_budget_threshold(goals, ledger, "2024-03", threshold=90)
    assert alert.spent == 90_000
    assert alert.message.startswith("전체")


def test_expected_recurring_expenses():
    recurring = [
        RecurringExpense(id="r1", title="월세", amount=10_000, category="주거비", frequency="monthly",
                         start_date="2024-01-01"),
        RecurringExpense(id="r2", title="필라테스", amount=5_000, category="교육비", frequency="weekly",
                         start_date="2024-01-01"),
        RecurringExpense(id="r3", title="도메인", amount=120_000, category="구독비", frequency="yearly",
                         start_date="2024-01-01"),
        RecurringExpense(id="r4", title="끝난 구독", amount=9_900, category="구독비",
                         start_date="2023-01-01", end_date="2024-02-01"),
        RecurringExpense(id="r5", title="새 구독", amount=9_900, category="구독비", start_date="2024-04-01"),
    ]
    assert expected_recurring_expenses(recurring, "2024-03") == pytest.approx(40_000)


def test_current_month_follows_configured_timezone():
    # 2024-03-31 16:00 UTC is already April in Seoul
    now = datetime(2024, 3, 31, 16, 0, tzinfo=timezone.utc)
    assert current_month("Asia/Seoul", now) == "2024-04"
    assert current_month("UTC", now) == "2024-03"
