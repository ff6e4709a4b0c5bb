"""
Position aggregation and realized P&L.

Trades are grouped per (account, canonical ticker). Open positions carry
their net purchase cost, so selling part of a holding lowers the cost by
the sale proceeds rather than by a FIFO lot cost. Realized P&L per sell is
computed separately with FIFO lot matching.
"""

from __future__ import annotations

from collections import OrderedDict
from typing import Callable, Dict, List, Optional, Set, Tuple

from ..store.schema import Account, StockPrice, StockTrade
from ..tickers.classify import canonical_ticker_for_match, is_usd_stock
from .model import PositionRow

GroupKey = Tuple[str, str]


def group_trades(
    trades: List[StockTrade],
    account_filter: Optional[Callable[[str], bool]] = None,
) -> "OrderedDict[GroupKey, List[StockTrade]]":
    groups: "OrderedDict[GroupKey, List[StockTrade]]" = OrderedDict()
    for t in trades:
        if account_filter is not None and not account_filter(t.account_id):
            continue
        norm = canonical_ticker_for_match(t.ticker)
        if not norm:
            continue
        groups.setdefault((t.account_id, norm), []).append(t)
    return groups


def _price_index(prices: List[StockPrice]) -> Dict[str, StockPrice]:
    out: Dict[str, StockPrice] = {}
    for p in prices:
        out.setdefault(canonical_ticker_for_match(p.ticker), p)
    return out


def compute_positions(
    trades: List[StockTrade],
    prices: List[StockPrice],
    accounts: List[Account],
    fx_rate: Optional[float] = None,
) -> List[PositionRow]:
    """Open holdings with market value and unrealized P&L.

    USD holdings (USD account or US ticker) report cost and market value in
    KRW when `fx_rate` is positive; `market_price` stays in the quote currency.
    """
    by_id = {a.id: a for a in accounts}
    price_by_ticker = _price_index(prices)
    rows: List[PositionRow] = []
    for (account_id, norm), group in group_trades(trades).items():
        buys = [t for t in group if t.side == "buy"]
        sells = [t for t in group if t.side == "sell"]
        quantity = sum(t.quantity for t in buys) - sum(t.quantity for t in sells)
        if quantity <= 0:
            continue
        net_buy = sum(t.total_amount for t in buys) - sum(t.total_amount for t in sells)

        account = by_id.get(account_id)
        info = price_by_ticker.get(norm)
        market_price = info.price if info is not None else 0.0
        ticker = info.ticker if info is not None else (group[0].ticker or norm)
        name = (info.name if info is not None and info.name else None) or group[0].name or ticker

        is_usd = (account is not None and account.currency == "USD") or is_usd_stock(ticker)
        currency = "USD" if is_usd else "KRW"
        market_value = market_price * quantity
        if is_usd and fx_rate is not None and fx_rate > 0:
            net_buy *= fx_rate
            market_value *= fx_rate
            currency = "KRW"

        pnl = market_value - net_buy
        rows.append(
            PositionRow(
                account_id=account_id,
                account_name=account.name if account is not None else account_id,
                ticker=ticker,
                name=name,
                quantity=quantity,
                avg_price=net_buy / quantity,
                total_buy_amount=net_buy,
                market_price=market_price,
                market_value=market_value,
                pnl=pnl,
                pnl_rate=pnl / net_buy if net_buy > 0 else 0.0,
                currency=currency,
            )
        )
    return rows


def _fifo_realized_by_sell(
    ordered: List[StockTrade],
    to_krw: Optional[Callable[[float], float]] = None,
) -> Dict[str, float]:
    lots: List[List[float]] = []  # [qty, total cost]
    out: Dict[str, float] = {}
    for t in ordered:
        if t.side == "buy":
            lots.append([t.quantity, t.total_amount])
            continue
        remaining = t.quantity
        cost_basis = 0.0
        while remaining > 0 and lots:
            lot = lots[0]
            use = min(remaining, lot[0])
            cost = lot[1] / lot[0] * use
            cost_basis += cost
            remaining -= use
            lot[0] -= use
            lot[1] -= cost
            if lot[0] <= 1e-12:
                lots.pop(0)
        pnl = t.total_amount - cost_basis
        out[t.id] = to_krw(pnl) if to_krw is not None else pnl
    return out


def realized_pnl_by_trade(trades: List[StockTrade]) -> Dict[str, float]:
    """Realized P&L per sell trade id, in the trade currency."""
    out: Dict[str, float] = {}
    for group in group_trades(trades).values():
        out.update(_fifo_realized_by_sell(sorted(group, key=lambda t: t.date)))
    return out


def realized_gain_in_period(
    trades: List[StockTrade],
    start: str,
    end: str,
    account_ids: Set[str],
    accounts: Optional[List[Account]] = None,
    fx_rate: Optional[float] = None,
) -> float:
    """Sum of FIFO realized P&L for sells dated within [start, end]."""
    by_id = {a.id: a for a in accounts or []}
    total = 0.0
    for (account_id, _), group in group_trades(trades, lambda aid: aid in account_ids).items():
        ordered = sorted(group, key=lambda t: t.date)
        account = by_id.get(account_id)
        to_krw = None
        if account is not None and account.currency == "USD" and fx_rate:
            rate = fx_rate
            to_krw = lambda x: x * rate  # noqa: E731
        pnl_by_sell = _fifo_realized_by_sell(ordered, to_krw)
        for t in ordered:
            if t.side == "sell" and start <= t.date <= end:
                total += pnl_by_sell.get(t.id, 0.0)
    return total


def total_realized_pnl_krw(
    trades: List[StockTrade],
    accounts: List[Account],
    fx_rate: Optional[float] = None,
) -> float:
    by_id = {a.id: a for a in accounts}
    pnl_by_sell = realized_pnl_by_trade(trades)
    total = 0.0
    for t in trades:
        if t.side != "sell":
            continue
        pnl = pnl_by_sell.get(t.id, 0.0)
        account = by_id.get(t.account_id)
        usd = (account is not None and account.currency == "USD") or is_usd_stock(t.ticker)
        total += pnl * fx_rate if usd and fx_rate else pnl
    return total


def make_trade(
    trade_id: str,
    date: str,
    account_id: str,
    ticker: str,
    side: str,
    quantity: float,
    price: float,
    fee: float = 0.0,
    name: str = "",
) -> StockTrade:
    """Build a trade with derived total and cash impact.

    buy:  total = qty * price + fee, cash_impact = -total
    sell: total = qty * price - fee, cash_impact = +total
    """
    gross = quantity * price
    total = gross + fee if side == "buy" else gross - fee
    return StockTrade(
        id=trade_id,
        date=date,
        account_id=account_id,
        ticker=ticker,
        name=name or ticker,
        side=side,
        quantity=quantity,
        price=price,
        fee=fee,
        total_amount=total,
        cash_impact=-total if side == "buy" else total,
    )
