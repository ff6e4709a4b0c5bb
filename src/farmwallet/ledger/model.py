from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Any, Dict, Literal, Optional
import uuid

from ..store.schema import Account

Severity = Literal["error", "warning", "info"]


def new_id(prefix: str = "") -> str:
    return f"{prefix}{uuid.uuid4().hex}"


@dataclass
class AccountBalanceRow:
    account: Account
    income_sum: float
    expense_sum: float
    savings_expense_in: float
    transfer_net: float
    usd_transfer_net: float
    trade_cash_impact: float
    current_balance: float

    @property
    def usd_cash(self) -> float:
        """USD sub-balance held by a securities account."""
        if self.account.type != "securities":
            return 0.0
        return self.account.usd_balance + self.usd_transfer_net

    def cash_krw(self, fx_rate: Optional[float] = None) -> float:
        """Cash in KRW: USD-denominated balances convert at `fx_rate` (0 without a rate)."""
        cash = self.current_balance
        if self.account.currency == "USD":
            cash = cash * fx_rate if fx_rate else 0.0
        if fx_rate and self.usd_cash:
            cash += self.usd_cash * fx_rate
        return cash

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["account"] = {"id": self.account.id, "name": self.account.name, "type": self.account.type}
        d["usd_cash"] = self.usd_cash
        return d


@dataclass
class PositionRow:
    account_id: str
    account_name: str
    ticker: str
    name: str
    quantity: float
    avg_price: float
    total_buy_amount: float
    market_price: float
    market_value: float
    pnl: float
    pnl_rate: float
    currency: str = "KRW"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class MonthlyNetWorthRow:
    month: str
    net_worth: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BudgetAlert:
    goal_id: str
    category: str
    month: str
    spent: float
    limit: float
    percent: float
    level: Literal["warning", "danger"]
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class IntegrityIssue:
    kind: str
    severity: Severity
    message: str
    record_type: Optional[str] = None
    record_ids: Optional[list] = None
    details: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
