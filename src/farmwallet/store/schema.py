"""
Persisted entities for farmwallet.

Field names are snake_case; each model also accepts (and can dump) the
camelCase keys used by legacy `app-data.json` documents. Unknown keys are
kept so a legacy document survives an import/export cycle.
"""

from __future__ import annotations

import re
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

AccountType = Literal["checking", "savings", "securities", "card", "other"]
Currency = Literal["KRW", "USD"]
LedgerKind = Literal["income", "expense", "transfer"]
TradeSide = Literal["buy", "sell"]
Recurrence = Literal["monthly", "weekly", "yearly"]

_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class _Entity(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    def to_json_dict(self) -> Dict:
        """camelCase dict for legacy JSON export."""
        return self.model_dump(by_alias=True, exclude_none=True)


def _check_date(v: str) -> str:
    if not isinstance(v, str) or not _DATE.match(v):
        raise ValueError(f"date must be yyyy-mm-dd, got {v!r}")
    return v


class Account(_Entity):
    id: str = Field(min_length=1)
    name: str
    institution: str = ""
    type: AccountType = "checking"
    initial_balance: float = 0.0
    initial_cash_balance: Optional[float] = None
    debt: float = 0.0
    savings: float = 0.0
    cash_adjustment: float = 0.0
    currency: Currency = "KRW"
    usd_balance: float = 0.0
    krw_balance: Optional[float] = None
    note: Optional[str] = None


class LedgerEntry(_Entity):
    id: str = Field(min_length=1)
    date: str
    kind: LedgerKind
    category: str = ""
    sub_category: Optional[str] = None
    description: str = ""
    is_fixed_expense: bool = False
    from_account_id: Optional[str] = None
    to_account_id: Optional[str] = None
    amount: float = Field(ge=0)
    currency: Currency = "KRW"
    # Destination leg of an FX conversion; None means same as source.
    to_amount: Optional[float] = None
    to_currency: Optional[Currency] = None
    note: Optional[str] = None
    tags: List[str] = []

    @field_validator("date")
    @classmethod
    def valid_date(cls, v):
        return _check_date(v)

    @model_validator(mode="after")
    def distinct_accounts(self):
        if self.from_account_id and self.from_account_id == self.to_account_id:
            raise ValueError("from_account_id and to_account_id must differ")
        return self

    @property
    def month(self) -> str:
        return self.date[:7]

    @property
    def inflow_amount(self) -> float:
        return self.amount if self.to_amount is None else self.to_amount

    @property
    def inflow_currency(self) -> str:
        return self.to_currency or self.currency

    @property
    def krw_amount(self) -> Optional[float]:
        """The KRW leg of the entry, or None for a USD-only entry."""
        if self.currency == "KRW":
            return self.amount
        if self.inflow_currency == "KRW":
            return self.inflow_amount
        return None


class StockTrade(_Entity):
    id: str = Field(min_length=1)
    date: str
    account_id: str
    ticker: str
    name: str = ""
    side: TradeSide
    quantity: float = Field(gt=0)
    price: float = Field(ge=0)
    fee: float = Field(default=0.0, ge=0)
    total_amount: float
    cash_impact: float

    @field_validator("date")
    @classmethod
    def valid_date(cls, v):
        return _check_date(v)

    @property
    def month(self) -> str:
        return self.date[:7]


class StockPrice(_Entity):
    ticker: str
    name: Optional[str] = None
    price: float = 0.0
    currency: Optional[str] = None
    change: Optional[float] = None
    change_percent: Optional[float] = None
    updated_at: Optional[str] = None


class TickerInfo(_Entity):
    ticker: str
    name: str
    market: Literal["KR", "US"]
    exchange: Optional[str] = None
    last_updated: Optional[str] = None


class SymbolInfo(_Entity):
    ticker: str
    name: Optional[str] = None


class ExpenseDetailGroup(_Entity):
    main: str
    subs: List[str] = []


class CategoryTypes(_Entity):
    fixed: List[str] = []
    savings: List[str] = []
    transfer: List[str] = []


class CategoryPresets(_Entity):
    income: List[str] = []
    expense: List[str] = []
    expense_details: List[ExpenseDetailGroup] = []
    transfer: List[str] = []
    category_types: Optional[CategoryTypes] = None


class BudgetGoal(_Entity):
    id: str
    category: str
    monthly_limit: float = Field(ge=0)
    note: Optional[str] = None


class RecurringExpense(_Entity):
    id: str
    title: str
    amount: float = Field(ge=0)
    category: str
    frequency: Recurrence = "monthly"
    start_date: str
    end_date: Optional[str] = None
    from_account_id: Optional[str] = None
    to_account_id: Optional[str] = None


class DcaPlan(_Entity):
    id: str = Field(min_length=1)
    account_id: str
    ticker: str
    amount: float = Field(gt=0)
    fee: float = Field(default=0.0, ge=0)
    start_date: str
    last_run_date: Optional[str] = None
    active: bool = True

    @field_validator("start_date")
    @classmethod
    def valid_start(cls, v):
        return _check_date(v)


class AppData(_Entity):
    """The whole document: every entity list the tracker persists."""
    accounts: List[Account] = []
    ledger: List[LedgerEntry] = []
    trades: List[StockTrade] = []
    prices: List[StockPrice] = []
    category_presets: CategoryPresets = CategoryPresets()
    recurring_expenses: List[RecurringExpense] = []
    budget_goals: List[BudgetGoal] = []
    custom_symbols: List[SymbolInfo] = []
    us_tickers: List[str] = []
    ticker_database: List[TickerInfo] = []
    dca_plans: List[DcaPlan] = []

    def account(self, account_id: str) -> Account:
        for a in self.accounts:
            if a.id == account_id:
                return a
        raise KeyError(f"Unknown account: {account_id}")
