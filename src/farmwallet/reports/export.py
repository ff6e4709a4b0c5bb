from __future__ import annotations

import os
from typing import Dict

import pandas as pd

from ..store.schema import AppData

LEDGER_COLUMNS = [
    "id", "date", "kind", "category", "sub_category", "description", "amount", "currency",
    "from_account_id", "to_account_id", "to_amount", "to_currency", "is_fixed_expense", "note",
]
TRADE_COLUMNS = [
    "id", "date", "account_id", "ticker", "name", "side", "quantity", "price", "fee", "total_amount", "cash_impact",
]


def ledger_frame(data: AppData) -> pd.DataFrame:
    rows = [e.model_dump(include=set(LEDGER_COLUMNS)) for e in data.ledger]
    return pd.DataFrame(rows, columns=LEDGER_COLUMNS)


def trades_frame(data: AppData) -> pd.DataFrame:
    rows = [t.model_dump(include=set(TRADE_COLUMNS)) for t in data.trades]
    return pd.DataFrame(rows, columns=TRADE_COLUMNS)


def write_csv(data: AppData, out_dir: str) -> Dict[str, str]:
    """Write ledger.csv and trades.csv (UTF-8 with BOM for spreadsheet apps)."""
    os.makedirs(out_dir, exist_ok=True)
    paths = {"ledger": os.path.join(out_dir, "ledger.csv"), "trades": os.path.join(out_dir, "trades.csv")}
    ledger_frame(data).sort_values("date", kind="stable").to_csv(paths["ledger"], index=False, encoding="utf-8-sig")
    trades_frame(data).sort_values("date", kind="stable").to_csv(paths["trades"], index=False, encoding="utf-8-sig")
    return paths


def monthly_summary(data: AppData) -> pd.DataFrame:
    """Income/expense/transfer KRW totals per month, one column per kind.

    Entries without a KRW leg (USD-only) are left out.
    """
    df = ledger_frame(data)
    df["krw_amount"] = pd.Series([e.krw_amount for e in data.ledger], dtype="float64")
    df = df.dropna(subset=["krw_amount"])
    if df.empty:
        return pd.DataFrame(columns=["month", "income", "expense", "transfer"])
    df["month"] = df["date"].str.slice(0, 7)
    pivot = df.pivot_table(index="month", columns="kind", values="krw_amount", aggfunc="sum", fill_value=0.0)
    for kind in ("income", "expense", "transfer"):
        if kind not in pivot.columns:
            pivot[kind] = 0.0
    return pivot[["income", "expense", "transfer"]].reset_index()
