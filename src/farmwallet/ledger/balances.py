"""
Balance aggregation over the ledger and trade history.

What it does:
- `compute_account_balances`: per-account cash balance derived from
  income, expense, transfers, trade cash impact and manual adjustments.
- `compute_monthly_net_worth`: cash net worth at the end of each month
  that has activity.
- Dashboard totals (cash, savings, debt, net worth) over those rows.

Balances are never stored; they are recomputed from the full history.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Set

from ..store.schema import Account, LedgerEntry, StockPrice, StockTrade
from ..tickers.classify import is_usd_stock
from .categories import is_card_payment
from .model import AccountBalanceRow, MonthlyNetWorthRow, PositionRow
from .positions import compute_positions


def _transfer_legs(account_id: str, ledger: Iterable[LedgerEntry]) -> Dict[str, float]:
    """Net transfer flow for an account, split by currency."""
    net = {"KRW": 0.0, "USD": 0.0}
    for e in ledger:
        if e.kind != "transfer" or is_card_payment(e):
            continue
        if e.from_account_id == account_id:
            net[e.currency] = net.get(e.currency, 0.0) - e.amount
        if e.to_account_id == account_id:
            cur = e.inflow_currency
            net[cur] = net.get(cur, 0.0) + e.inflow_amount
    return net


def _base_balance(account: Account) -> float:
    if account.type == "securities" and account.initial_cash_balance is not None:
        return account.initial_cash_balance
    return account.initial_balance


def compute_account_balances(
    accounts: List[Account],
    ledger: List[LedgerEntry],
    trades: List[StockTrade],
) -> List[AccountBalanceRow]:
    rows: List[AccountBalanceRow] = []
    for account in accounts:
        income_sum = sum(e.amount for e in ledger if e.kind == "income" and e.to_account_id == account.id)
        expense_sum = sum(e.amount for e in ledger if e.kind == "expense" and e.from_account_id == account.id)
        # Savings-type expenses credit the receiving account.
        savings_in = sum(e.amount for e in ledger if e.kind == "expense" and e.to_account_id == account.id)
        legs = _transfer_legs(account.id, ledger)
        # Balances are kept in the account currency; KRW accounts track USD separately.
        native_net = legs.get(account.currency, 0.0)
        usd_net = legs["USD"] if account.currency == "KRW" else 0.0
        trade_cash = 0.0
        for t in trades:
            if t.account_id != account.id:
                continue
            # USD trades settle against the USD sub-balance
            if account.type == "securities" and is_usd_stock(t.ticker):
                continue
            trade_cash += t.cash_impact
        current = (
            _base_balance(account)
            + income_sum
            - expense_sum
            + savings_in
            + native_net
            + trade_cash
            + account.cash_adjustment
            + account.savings
        )
        rows.append(
            AccountBalanceRow(
                account=account,
                income_sum=income_sum,
                expense_sum=expense_sum,
                savings_expense_in=savings_in,
                transfer_net=native_net,
                usd_transfer_net=usd_net,
                trade_cash_impact=trade_cash,
                current_balance=current,
            )
        )
    return rows


def compute_monthly_net_worth(
    accounts: List[Account],
    ledger: List[LedgerEntry],
    trades: List[StockTrade],
    fx_rate: Optional[float] = None,
) -> List[MonthlyNetWorthRow]:
    """Cash-only net worth in KRW (stock holdings excluded) per active month.

    USD balances count at `fx_rate`; without a rate they are left out.
    """
    months = sorted({e.month for e in ledger} | {t.month for t in trades})
    out: List[MonthlyNetWorthRow] = []
    for month in months:
        led = [e for e in ledger if e.month <= month]
        trs = [t for t in trades if t.month <= month]
        balances = compute_account_balances(accounts, led, trs)
        out.append(MonthlyNetWorthRow(month=month, net_worth=sum(b.cash_krw(fx_rate) for b in balances)))
    return out


def compute_expense_sum(ledger: List[LedgerEntry], month: str, category: Optional[str] = None) -> float:
    """Expense total for a yyyy-mm month; `category` matches main or sub category."""
    total = 0.0
    for e in ledger:
        if e.kind != "expense" or not e.date.startswith(month):
            continue
        if category is not None and category not in (e.category, e.sub_category):
            continue
        total += e.amount
    return total


def _stock_by_account(positions: Iterable[PositionRow], account_ids: Optional[Set[str]] = None) -> Dict[str, float]:
    out: Dict[str, float] = {}
    for p in positions:
        if account_ids is not None and p.account_id not in account_ids:
            continue
        out[p.account_id] = out.get(p.account_id, 0.0) + p.market_value
    return out


def compute_total_net_worth(
    balances: List[AccountBalanceRow],
    positions: List[PositionRow],
    fx_rate: Optional[float] = None,
) -> float:
    """KRW cash + USD cash at `fx_rate` + stock value - debt."""
    stock = _stock_by_account(positions)
    total = 0.0
    for row in balances:
        total += row.cash_krw(fx_rate) + stock.get(row.account.id, 0.0) - row.account.debt
    return total


def compute_total_cash_value(balances: List[AccountBalanceRow], fx_rate: Optional[float] = None) -> float:
    return sum(
        b.cash_krw(fx_rate)
        for b in balances
        if b.account.type in ("checking", "securities", "other")
    )


def compute_total_savings(balances: List[AccountBalanceRow], fx_rate: Optional[float] = None) -> float:
    # account.savings is already inside current_balance
    return sum(b.cash_krw(fx_rate) for b in balances if b.account.type == "savings")


def compute_total_debt(accounts: List[Account]) -> float:
    return sum(a.debt for a in accounts)


def compute_total_stock_value(positions: List[PositionRow]) -> float:
    return sum(p.market_value for p in positions)


def compute_total_stock_pnl(positions: List[PositionRow]) -> float:
    return sum(p.pnl for p in positions)


def compute_balance_at_date(
    accounts: List[Account],
    ledger: List[LedgerEntry],
    trades: List[StockTrade],
    date: str,
    account_ids: Set[str],
    prices: List[StockPrice],
    fx_rate: Optional[float] = None,
) -> float:
    """Cash + USD cash + stock value of `account_ids` as of `date` (inclusive)."""
    led = [e for e in ledger if e.date <= date]
    trs = [t for t in trades if t.date <= date]
    balances = compute_account_balances(accounts, led, trs)
    stock = _stock_by_account(compute_positions(trs, prices, accounts, fx_rate=fx_rate), account_ids)
    return sum(
        b.cash_krw(fx_rate) + stock.get(b.account.id, 0.0)
        for b in balances
        if b.account.id in account_ids
    )


def compute_cost_basis_at_date(
    trades: List[StockTrade],
    date: str,
    account_ids: Set[str],
    prices: List[StockPrice],
    accounts: List[Account],
    fx_rate: Optional[float] = None,
) -> float:
    """Net purchase cost of positions held in `account_ids` as of `date`."""
    trs = [t for t in trades if t.date <= date]
    return sum(
        p.total_buy_amount
        for p in compute_positions(trs, prices, accounts, fx_rate=fx_rate)
        if p.account_id in account_ids
    )
