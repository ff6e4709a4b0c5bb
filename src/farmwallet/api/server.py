"""
FastAPI service for farmwallet.

What it does:
- Serves the stored document, derived balances/positions/net worth,
  integrity and budget reports.
- Accepts ledger entries, trades, FX conversions and DCA plans; every
  write goes through `SQLiteStore.mutate` (one transaction per request).
- Optionally runs the DCA scheduler in a background thread.

Where it is used:
- `farmwallet serve` (uvicorn).
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Query, status
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field

from ..budget.monitor import check_budget_threshold, current_month, expected_recurring_expenses
from ..config.loader import Settings
from ..dca.scheduler import DcaScheduler, create_dca_plan, run_due_plans
from ..fx.conversion import record_fx_conversion
from ..integrity.checks import run_integrity_check
from ..ledger.balances import (
    compute_account_balances,
    compute_monthly_net_worth,
    compute_total_cash_value,
    compute_total_debt,
    compute_total_net_worth,
    compute_total_savings,
    compute_total_stock_pnl,
    compute_total_stock_value,
)
from ..ledger.model import new_id
from ..ledger.positions import compute_positions, make_trade, total_realized_pnl_krw
from ..metrics.app import set_net_worth
from ..quotes.client import QuoteClient
from ..reports.ledger_report import render_ledger_report
from ..store.json_io import app_data_from_dict
from ..store.schema import AppData, LedgerEntry, TradeSide
from ..store.sqlite_store import SQLiteStore
from .error_handlers import register_error_handlers

log = logging.getLogger("farmwallet.api")


class TradeIn(BaseModel):
    date: str
    account_id: str
    ticker: str
    side: TradeSide
    quantity: float = Field(gt=0)
    price: float = Field(ge=0)
    fee: float = Field(default=0.0, ge=0)
    name: str = ""
    id: Optional[str] = None


class FxIn(BaseModel):
    date: str
    from_account_id: str
    to_account_id: str
    from_amount: float
    to_amount: float
    rate: float
    description: Optional[str] = None
    from_currency: Optional[str] = None
    to_currency: Optional[str] = None


class DcaPlanIn(BaseModel):
    account_id: str
    ticker: str
    amount: float = Field(gt=0)
    fee: float = Field(default=0.0, ge=0)


def _dump(data: AppData) -> Dict[str, Any]:
    return data.model_dump(mode="json", by_alias=True, exclude_none=True)


def create_app(
    store: Optional[SQLiteStore] = None,
    settings: Optional[Settings] = None,
    quotes: Optional[QuoteClient] = None,
    run_scheduler: bool = False,
) -> FastAPI:
    settings = settings or Settings()
    store = store or SQLiteStore(settings.storage.db_path, backup_keep=settings.storage.backup_keep)
    scheduler = DcaScheduler(
        store,
        quotes,
        run_at=settings.dca.run_at,
        poll_seconds=settings.dca.poll_seconds,
        tz=settings.timezone,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if run_scheduler:
            scheduler.start()
        yield
        scheduler.stop()

    app = FastAPI(title="farmwallet", lifespan=lifespan)
    register_error_handlers(app)
    app.state.store = store
    app.state.scheduler = scheduler

    def _fx(fx_rate: Optional[float]) -> Optional[float]:
        if fx_rate is not None:
            return fx_rate
        return quotes.fx_rate() if quotes is not None else None

    @app.get("/health")
    def health() -> Dict[str, str]:
        return {"status": "ok"}

    # ---- document ----

    @app.get("/data")
    def get_data() -> Dict[str, Any]:
        return _dump(store.load())

    @app.put("/data")
    def put_data(body: Dict[str, Any]) -> Dict[str, Any]:
        data = app_data_from_dict(body)
        store.snapshot()
        store.replace(data)
        return {"accounts": len(data.accounts), "ledger": len(data.ledger), "trades": len(data.trades)}

    # ---- derived views ----

    @app.get("/balances")
    def balances() -> List[Dict[str, Any]]:
        data = store.load()
        return [r.to_dict() for r in compute_account_balances(data.accounts, data.ledger, data.trades)]

    @app.get("/positions")
    def positions(fx_rate: Optional[float] = Query(default=None, gt=0)) -> List[Dict[str, Any]]:
        data = store.load()
        return [p.to_dict() for p in compute_positions(data.trades, data.prices, data.accounts, fx_rate=_fx(fx_rate))]

    @app.get("/networth/monthly")
    def networth_monthly(fx_rate: Optional[float] = Query(default=None, gt=0)) -> List[Dict[str, Any]]:
        data = store.load()
        return [r.to_dict() for r in compute_monthly_net_worth(data.accounts, data.ledger, data.trades, _fx(fx_rate))]

    @app.get("/networth")
    def networth(fx_rate: Optional[float] = Query(default=None, gt=0)) -> Dict[str, Any]:
        data = store.load()
        rate = _fx(fx_rate)
        bal = compute_account_balances(data.accounts, data.ledger, data.trades)
        pos = compute_positions(data.trades, data.prices, data.accounts, fx_rate=rate)
        total = compute_total_net_worth(bal, pos, rate)
        set_net_worth(total)
        return {
            "fx_rate": rate,
            "net_worth": total,
            "cash": compute_total_cash_value(bal, rate),
            "savings": compute_total_savings(bal, rate),
            "debt": compute_total_debt(data.accounts),
            "stock_value": compute_total_stock_value(pos),
            "stock_pnl": compute_total_stock_pnl(pos),
            "realized_pnl": total_realized_pnl_krw(data.trades, data.accounts, rate),
        }

    @app.get("/integrity")
    def integrity() -> List[Dict[str, Any]]:
        return [i.to_dict() for i in run_integrity_check(store.load())]

    @app.get("/budget/alerts")
    def budget_alerts(month: Optional[str] = None, threshold: float = settings.budget.warning_percent) -> Dict[str, Any]:
        data = store.load()
        month = month or current_month(settings.timezone)
        alerts = check_budget_threshold(data.budget_goals, data.ledger, month, threshold)
        return {
            "month": month,
            "alerts": [a.to_dict() for a in alerts],
            "expected_recurring": expected_recurring_expenses(data.recurring_expenses, month),
        }

    @app.get("/reports/ledger.md", response_class=PlainTextResponse)
    def ledger_report() -> str:
        data = store.load()
        return render_ledger_report(data.ledger, data.accounts)

    # ---- writes ----

    @app.post("/ledger", status_code=status.HTTP_201_CREATED)
    def add_ledger(body: Dict[str, Any]) -> Dict[str, Any]:
        body = dict(body)
        body.setdefault("id", new_id("L"))
        entry = LedgerEntry.model_validate(body)

        def add(data: AppData) -> LedgerEntry:
            for ref in (entry.from_account_id, entry.to_account_id):
                if ref:
                    data.account(ref)
            data.ledger.append(entry)
            return entry

        return store.mutate(add).to_json_dict()

    @app.delete("/ledger/{entry_id}")
    def delete_ledger(entry_id: str) -> Dict[str, str]:
        store.delete("ledger", entry_id)
        return {"deleted": entry_id}

    @app.post("/trades", status_code=status.HTTP_201_CREATED)
    def add_trade(body: TradeIn) -> Dict[str, Any]:
        trade = make_trade(
            body.id or new_id("T"),
            body.date,
            body.account_id,
            body.ticker,
            body.side,
            body.quantity,
            body.price,
            fee=body.fee,
            name=body.name,
        )

        def add(data: AppData):
            data.account(trade.account_id)
            data.trades.append(trade)
            return trade

        return store.mutate(add).to_json_dict()

    @app.delete("/trades/{trade_id}")
    def delete_trade(trade_id: str) -> Dict[str, str]:
        store.delete("trades", trade_id)
        return {"deleted": trade_id}

    @app.post("/fx", status_code=status.HTTP_201_CREATED)
    def add_fx(body: FxIn) -> Dict[str, Any]:
        entry = store.mutate(lambda data: record_fx_conversion(data, **body.model_dump()))
        return entry.to_json_dict()

    @app.get("/dca/plans")
    def list_plans() -> List[Dict[str, Any]]:
        return [p.to_json_dict() for p in store.load().dca_plans]

    @app.post("/dca/plans", status_code=status.HTTP_201_CREATED)
    def add_plan(body: DcaPlanIn) -> Dict[str, Any]:
        plan = store.mutate(lambda data: create_dca_plan(data, body.account_id, body.ticker, body.amount, body.fee))
        return plan.to_json_dict()

    @app.post("/dca/plans/{plan_id}/toggle")
    def toggle_plan(plan_id: str) -> Dict[str, Any]:
        def toggle(data: AppData):
            for p in data.dca_plans:
                if p.id == plan_id:
                    p.active = not p.active
                    return p
            raise KeyError(f"DCA plan not found: {plan_id}")

        return store.mutate(toggle).to_json_dict()

    @app.post("/dca/run")
    def run_dca(fx_rate: Optional[float] = Query(default=None, gt=0)) -> List[Dict[str, Any]]:
        now = datetime.now(timezone.utc)
        if fx_rate is None:
            return [r.to_dict() for r in scheduler.run_once()]
        results = store.mutate(
            lambda data: run_due_plans(data, fx_rate, now, run_at=settings.dca.run_at, tz=settings.timezone)
        )
        return [r.to_dict() for r in results]

    # ---- backups ----

    @app.get("/backups")
    def backups() -> Dict[str, Any]:
        return {"backups": store.list_backups(), "latest_integrity": store.latest_backup_integrity()}

    @app.post("/backups", status_code=status.HTTP_201_CREATED)
    def create_backup() -> Dict[str, Any]:
        return store.snapshot()

    @app.post("/backups/{backup_id}/restore")
    def restore_backup(backup_id: int) -> Dict[str, Any]:
        data = store.restore_backup(backup_id)
        return {"restored": backup_id, "ledger": len(data.ledger), "trades": len(data.trades)}

    return app
