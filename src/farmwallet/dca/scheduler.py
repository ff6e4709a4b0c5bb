"""
DCA plan execution.

What it does:
- `run_due_plans` is a deterministic step over the document: at or after the daily
  run time (Asia/Seoul), every active plan whose start date has arrived and
  which has not run today buys `amount` KRW worth of its ticker.
- Trade ids are `DCA-{plan_id}-{yyyy-mm-dd}`, so re-running a day never
  appends a second trade.
- A plan that cannot run (no price, market closed, unknown account) is
  reported and skipped without affecting the others.
- `DcaScheduler` polls in a daemon thread, refreshes quotes, and applies
  `run_due_plans` inside a single store transaction.

Trades are recorded in the quote currency: USD listings keep their USD
price; the KRW amount is converted at the current rate to size the order.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass, asdict
from datetime import date, datetime, time as dtime, timedelta, timezone
from typing import Callable, Dict, List, Optional
from zoneinfo import ZoneInfo

from ..ledger.model import new_id
from ..ledger.positions import make_trade
from ..metrics.app import inc_dca_run
from ..quotes.client import QuoteClient, apply_quotes
from ..store.schema import AppData, DcaPlan, StockPrice
from ..store.sqlite_store import SQLiteStore
from ..tickers.classify import canonical_ticker_for_match, clean_ticker, is_krw_stock, is_usd_stock

log = logging.getLogger("farmwallet.dca")

KR_TZ = ZoneInfo("Asia/Seoul")
US_TZ = ZoneInfo("America/New_York")


@dataclass
class DcaRunResult:
    plan_id: str
    status: str  # executed | skipped | failed
    reason: str = ""
    trade_id: Optional[str] = None
    quantity: Optional[float] = None
    price: Optional[float] = None

    def to_dict(self) -> Dict:
        return asdict(self)


def _parse_hhmm(value: str) -> dtime:
    h, m = value.split(":")
    return dtime(int(h), int(m))


def is_market_open(ticker: str, currency: Optional[str], now: datetime) -> bool:
    """KR: 09:00-15:30 Asia/Seoul inclusive. US: 09:30-16:00 America/New_York. Weekdays only."""
    korean = is_krw_stock(ticker) or currency == "KRW"
    local = now.astimezone(KR_TZ if korean else US_TZ)
    if local.weekday() >= 5:
        return False
    hm = (local.hour, local.minute)
    if korean:
        return (9, 0) <= hm <= (15, 30)
    return (9, 30) <= hm < (16, 0)


def _find_price(prices: List[StockPrice], ticker: str) -> Optional[StockPrice]:
    norm = canonical_ticker_for_match(ticker)
    for p in prices:
        if canonical_ticker_for_match(p.ticker) == norm:
            return p
    return None


def _run_plan(data: AppData, plan: DcaPlan, prices: List[StockPrice], fx_rate: Optional[float], now: datetime, today: str) -> DcaRunResult:
    trade_id = f"DCA-{plan.id}-{today}"
    if any(t.id == trade_id for t in data.trades):
        plan.last_run_date = today
        return DcaRunResult(plan.id, "skipped", "already-executed", trade_id)
    account = data.account(plan.account_id)

    info = _find_price(prices, plan.ticker)
    if info is None or info.price <= 0:
        return DcaRunResult(plan.id, "skipped", "no-price")
    currency = info.currency or ("USD" if is_usd_stock(plan.ticker) or account.currency == "USD" else "KRW")
    if not is_market_open(plan.ticker, currency, now):
        return DcaRunResult(plan.id, "skipped", "market-closed")

    price_krw = info.price
    if currency == "USD":
        if not fx_rate or fx_rate <= 0:
            return DcaRunResult(plan.id, "skipped", "no-fx-rate")
        price_krw = info.price * fx_rate
    quantity = round(plan.amount / price_krw, 6)
    if quantity <= 0:
        return DcaRunResult(plan.id, "skipped", "amount-too-small")

    trade_price = info.price if currency == "USD" else round(info.price)
    trade = make_trade(
        trade_id,
        today,
        plan.account_id,
        clean_ticker(plan.ticker),
        "buy",
        quantity,
        trade_price,
        fee=plan.fee,
        name=info.name or "",
    )
    data.trades.append(trade)
    plan.last_run_date = today
    return DcaRunResult(plan.id, "executed", "", trade_id, quantity, trade_price)


def due_plans(data: AppData, now: datetime, run_at: str = "10:30", tz: str = "Asia/Seoul") -> List[DcaPlan]:
    local = now.astimezone(ZoneInfo(tz))
    if local.time() < _parse_hhmm(run_at):
        return []
    today = local.date().isoformat()
    return [p for p in data.dca_plans if p.active and p.start_date <= today and p.last_run_date != today]


def run_due_plans(
    data: AppData,
    fx_rate: Optional[float],
    now: datetime,
    run_at: str = "10:30",
    tz: str = "Asia/Seoul",
    prices: Optional[List[StockPrice]] = None,
) -> List[DcaRunResult]:
    """Execute due plans against `data` in place and report one result per due plan."""
    today = now.astimezone(ZoneInfo(tz)).date().isoformat()
    prices = data.prices if prices is None else prices
    results: List[DcaRunResult] = []
    for plan in due_plans(data, now, run_at, tz):
        try:
            res = _run_plan(data, plan, prices, fx_rate, now, today)
        except Exception as e:
            log.exception(f"DCA plan {plan.id} failed")
            res = DcaRunResult(plan.id, "failed", f"{type(e).__name__}: {e}")
        inc_dca_run(res.status)
        log.info(json.dumps({"event": "dca_run", "date": today, **res.to_dict()}, ensure_ascii=False, separators=(",", ":")))
        results.append(res)
    return results


def create_dca_plan(
    data: AppData,
    account_id: str,
    ticker: str,
    amount: float,
    fee: float = 0.0,
    today: Optional[date] = None,
    plan_id: Optional[str] = None,
) -> DcaPlan:
    """Register a plan that starts tomorrow."""
    data.account(account_id)
    symbol = clean_ticker(ticker)
    if not symbol:
        raise ValueError("ticker is required")
    today = today or datetime.now(KR_TZ).date()
    plan = DcaPlan(
        id=plan_id or new_id("dca-"),
        account_id=account_id,
        ticker=symbol,
        amount=amount,
        fee=fee,
        start_date=(today + timedelta(days=1)).isoformat(),
    )
    data.dca_plans.append(plan)
    return plan


class DcaScheduler:
    """Poll loop around `run_due_plans`, persisted through the store."""

    def __init__(
        self,
        store: SQLiteStore,
        quotes: Optional[QuoteClient] = None,
        run_at: str = "10:30",
        poll_seconds: float = 60.0,
        tz: str = "Asia/Seoul",
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.store = store
        self.quotes = quotes
        self.run_at = run_at
        self.poll_seconds = poll_seconds
        self.tz = tz
        self._clock = clock
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def _refresh(self, data: AppData):
        tickers = [p.ticker for p in data.dca_plans if p.active]
        if self.quotes is None or not tickers:
            return None, None
        return self.quotes.fetch(tickers), self.quotes.fx_rate()

    def run_once(self) -> List[DcaRunResult]:
        now = self._clock()
        snapshot = self.store.load()
        if not due_plans(snapshot, now, self.run_at, self.tz):
            return []
        quotes, fx_rate = self._refresh(snapshot)

        def step(data: AppData) -> List[DcaRunResult]:
            if quotes:
                data.prices = apply_quotes(data.prices, quotes)
            return run_due_plans(data, fx_rate, now, run_at=self.run_at, tz=self.tz)

        return self.store.mutate(step)

    def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                self.run_once()
            except Exception:
                log.exception("DCA poll failed")
            self._stop.wait(self.poll_seconds)

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="dca-scheduler", daemon=True)
        self._thread.start()
        log.info(f"DCA scheduler started (run_at={self.run_at}, poll={self.poll_seconds}s)")

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
