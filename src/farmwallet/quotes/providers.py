"""
Quote providers.

- `YFinanceProvider`: batch download of recent daily closes through yfinance;
  the last close is the price and the one before it the previous close.
- `StaticProvider`: serves the prices already stored in the document
  (offline runs and tests).
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

import pandas as pd
import yfinance as yf

from ..store.schema import StockPrice
from ..tickers.classify import canonical_ticker_for_match, yahoo_symbol
from .client import Quote

log = logging.getLogger("farmwallet.quotes")


def _currency_for(symbol: str) -> str:
    s = symbol.upper()
    if s.endswith((".KS", ".KQ")) or s.endswith("KRW=X"):
        return "KRW"
    return "USD"


def _closes(data: pd.DataFrame, symbol: str) -> Optional[pd.Series]:
    if data is None or data.empty:
        return None
    if isinstance(data.columns, pd.MultiIndex):
        if symbol not in data.columns.get_level_values(0):
            return None
        frame = data[symbol]
    else:
        frame = data
    if "Close" not in frame.columns:
        return None
    closes = frame["Close"].dropna()
    return closes if len(closes) > 0 else None


class YFinanceProvider:
    def __init__(self, period: str = "5d"):
        self.period = period

    def fetch(self, symbols: List[str]) -> Dict[str, Quote]:
        if not symbols:
            return {}
        data = yf.download(
            symbols,
            period=self.period,
            group_by="ticker",
            auto_adjust=True,
            progress=False,
            threads=False,
        )
        out: Dict[str, Quote] = {}
        for s in symbols:
            closes = _closes(data, s)
            if closes is None:
                log.info(f"No quote returned for {s}")
                continue
            prev = float(closes.iloc[-2]) if len(closes) > 1 else None
            out[s] = Quote(symbol=s, price=float(closes.iloc[-1]), currency=_currency_for(s), previous_close=prev)
        return out


class StaticProvider:
    def __init__(self, prices: List[StockPrice], fx_rate: Optional[float] = None, fx_symbol: str = "USDKRW=X"):
        self._by_symbol: Dict[str, StockPrice] = {}
        for p in prices:
            self._by_symbol[yahoo_symbol(canonical_ticker_for_match(p.ticker))] = p
        self._fx = (fx_symbol, fx_rate)

    def fetch(self, symbols: List[str]) -> Dict[str, Quote]:
        out: Dict[str, Quote] = {}
        for s in symbols:
            if s == self._fx[0]:
                if self._fx[1]:
                    out[s] = Quote(symbol=s, price=float(self._fx[1]), currency="KRW")
                continue
            p = self._by_symbol.get(s)
            if p is None or p.price <= 0:
                continue
            prev = None
            if p.change is not None:
                prev = p.price - p.change
            out[s] = Quote(
                symbol=s,
                price=p.price,
                currency=p.currency or _currency_for(s),
                previous_close=prev,
                name=p.name,
            )
        return out
