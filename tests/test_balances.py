import pytest

from farmwallet.ledger.balances import (
    compute_account_balances,
    compute_balance_at_date,
    compute_expense_sum,
    compute_monthly_net_worth,
    compute_total_cash_value,
    compute_total_debt,
    compute_total_net_worth,
    compute_total_savings,
)
from farmwallet.ledger.positions import compute_positions, make_trade
from farmwallet.store.schema import Account, LedgerEntry, StockPrice


def _accounts():
    return [
        Account(id="A", name="월급통장", type="checking", initial_balance=1_000_000),
        Account(id="S", name="증권", type="securities", initial_cash_balance=500_000, usd_balance=100),
        Account(id="C", name="카드", type="card", debt=100_000),
    ]


def _ledger():
    return [
        LedgerEntry(id="e1", date="2024-01-05", kind="income", category="급여", to_account_id="A", amount=3_000_000),
        LedgerEntry(id="e2", date="2024-01-10", kind="expense", category="식비", sub_category="외식/배달",
                    from_account_id="A", amount=50_000),
        LedgerEntry(id="e3", date="2024-01-15", kind="transfer", category="계좌이체",
                    from_account_id="A", to_account_id="S", amount=200_000),
        # card bill payments never move a balance
        LedgerEntry(id="e4", date="2024-01-20", kind="transfer", category="신용카드", sub_category="카드대금",
                    from_account_id="A", to_account_id="C", amount=300_000),
        LedgerEntry(id="e5", date="2024-02-01", kind="transfer", category="환전",
                    from_account_id="A", to_account_id="S", amount=130_000, currency="KRW",
                    to_amount=100, to_currency="USD"),
    ]


def _trades():
    return [
        make_trade("t1", "2024-01-16", "S", "005930", "buy", 10, 70_000),
        make_trade("t2", "2024-01-17", "S", "AAPL", "buy", 1, 150),
    ]


def _by_id(rows):
    return {r.account.id: r for r in rows}


def test_account_balances_from_history():
    rows = _by_id(compute_account_balances(_accounts(), _ledger(), _trades()))
    a = rows["A"]
    assert a.income_sum == 3_000_000
    assert a.expense_sum == 50_000
    assert a.transfer_net == -330_000
    assert a.current_balance == 3_620_000
    s = rows["S"]
    # KRW-quoted trade hits the cash balance; the USD trade settles elsewhere
    assert s.trade_cash_impact == -700_000
    assert s.current_balance == 0
    assert s.usd_transfer_net == 100
    assert s.usd_cash == 200
    assert rows["C"].current_balance == 0


def test_usd_cash_needs_fx_rate():
    s = _by_id(compute_account_balances(_accounts(), _ledger(), _trades()))["S"]
    assert s.cash_krw(None) == 0
    assert s.cash_krw(1300.0) == pytest.approx(260_000)


def test_usd_account_converts_whole_balance():
    acc = [Account(id="U", name="달러통장", currency="USD", initial_balance=1_000)]
    row = compute_account_balances(acc, [], [])[0]
    assert row.current_balance == 1_000
    assert row.cash_krw(1300.0) == pytest.approx(1_300_000)
    assert row.cash_krw(None) == 0


def test_monthly_net_worth_is_cumulative():
    rows = compute_monthly_net_worth(_accounts(), _ledger(), _trades())
    assert [r.month for r in rows] == ["2024-01", "2024-02"]
    assert rows[0].net_worth == 3_750_000
    assert rows[1].net_worth == 3_620_000


def test_monthly_net_worth_converts_usd_accounts():
    accounts = [
        Account(id="K", name="원화통장", type="checking", initial_balance=1_300_000),
        Account(id="U", name="달러통장", type="checking", currency="USD"),
    ]
    ledger = [
        LedgerEntry(id="fx1", date="2024-03-02", kind="transfer", category="환전",
                    from_account_id="K", to_account_id="U", amount=1_300_000, currency="KRW",
                    to_amount=1_000, to_currency="USD"),
    ]
    rows = compute_monthly_net_worth(accounts, ledger, [], fx_rate=1300.0)
    assert rows[0].net_worth == pytest.approx(1_300_000)
    # without a rate the USD balance is left out rather than counted as KRW
    assert compute_monthly_net_worth(accounts, ledger, [])[0].net_worth == 0


def test_expense_sum_by_month_and_category():
    ledger = _ledger()
    assert compute_expense_sum(ledger, "2024-01") == 50_000
    assert compute_expense_sum(ledger, "2024-01", "외식/배달") == 50_000
    assert compute_expense_sum(ledger, "2024-01", "주거비") == 0
    assert compute_expense_sum(ledger, "2024-02") == 0


def test_totals_with_positions():
    accounts, ledger, trades = _accounts(), _ledger(), _trades()
    prices = [
        StockPrice(ticker="005930", price=80_000, currency="KRW"),
        StockPrice(ticker="AAPL", price=200, currency="USD"),
    ]
    bal = compute_account_balances(accounts, ledger, trades)
    pos = compute_positions(trades, prices, accounts, fx_rate=1300.0)
    # A 3,620,000 + S (USD cash 260,000 + stocks 800,000 + 260,000) - card debt 100,000
    assert compute_total_net_worth(bal, pos, 1300.0) == pytest.approx(4_840_000)
    assert compute_total_cash_value(bal, 1300.0) == pytest.approx(3_880_000)
    assert compute_total_debt(accounts) == 100_000


def test_balance_at_date_ignores_later_records():
    accounts, ledger, trades = _accounts(), _ledger(), _trades()
    prices = [StockPrice(ticker="005930", price=70_000, currency="KRW")]
    value = compute_balance_at_date(accounts, ledger, trades, "2024-01-15", {"S"}, prices)
    assert value == 700_000


def test_total_savings_converts_usd_savings_account():
    accounts = [
        Account(id="S1", name="적금", type="savings", initial_balance=2_000_000),
        Account(id="S2", name="달러예금", type="savings", currency="USD", initial_balance=500),
    ]
    bal = compute_account_balances(accounts, [], [])
    assert compute_total_savings(bal, 1300.0) == pytest.approx(2_650_000)
    assert compute_total_savings(bal) == 2_000_000
