"""Annualized return (XIRR) for irregular cash flows."""

from __future__ import annotations

from datetime import date
from typing import List, Optional, Sequence, Tuple

import numpy as np

from ..store.schema import StockTrade

CashFlow = Tuple[str, float]  # (yyyy-mm-dd, amount); positive = inflow


def xirr(cash_flows: Sequence[CashFlow], guess: float = 0.1, max_iter: int = 50, tol: float = 1e-9) -> Optional[float]:
    """Newton-Raphson solve of NPV(r) = 0. Returns None when it does not converge."""
    if len(cash_flows) < 2:
        return None
    amounts = np.array([float(a) for _, a in cash_flows])
    if not (amounts > 0).any() or not (amounts < 0).any():
        return None
    base = date.fromisoformat(cash_flows[0][0])
    years = np.array([(date.fromisoformat(d) - base).days / 365.25 for d, _ in cash_flows])

    r = guess
    for _ in range(max_iter):
        factor = np.power(1.0 + r, years)
        npv = float(np.sum(amounts / factor))
        dnpv = float(np.sum(-years * amounts / np.power(1.0 + r, years + 1.0)))
        if abs(npv) < tol:
            return r
        if abs(dnpv) < 1e-15:
            break
        r_next = r - npv / dnpv
        if r_next <= -1:
            break
        if abs(r_next - r) < tol:
            return r_next
        r = r_next
    return None


def trade_cash_flows(trades: List[StockTrade], terminal_value: float, as_of: str) -> List[CashFlow]:
    """Investor-view flows: buys out, sells in, current value in at `as_of`."""
    flows: List[CashFlow] = []
    for t in sorted(trades, key=lambda t: t.date):
        flows.append((t.date, -t.total_amount if t.side == "buy" else t.total_amount))
    if terminal_value:
        flows.append((as_of, terminal_value))
    return flows
