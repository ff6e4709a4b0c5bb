"""
Quote client: deduplicates symbols, serves fresh quotes from the cache and
fetches the rest from a provider in fixed-size chunks.

A failing chunk is logged and skipped; the other chunks still return.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Protocol

from ..metrics.app import inc_quote_cache_hit, inc_quote_fetch
from ..store.schema import StockPrice
from ..tickers.classify import canonical_ticker_for_match, yahoo_symbols
from .cache import QuoteCache

log = logging.getLogger("farmwallet.quotes")

FX_SYMBOL = "USDKRW=X"


@dataclass
class Quote:
    symbol: str
    price: float
    currency: Optional[str] = None
    previous_close: Optional[float] = None
    name: Optional[str] = None
    fetched_at: Optional[str] = None

    @property
    def change(self) -> Optional[float]:
        if not self.previous_close:
            return None
        return self.price - self.previous_close

    @property
    def change_percent(self) -> Optional[float]:
        if not self.previous_close:
            return None
        return (self.price - self.previous_close) / self.previous_close * 100.0


class QuoteProvider(Protocol):
    def fetch(self, symbols: List[str]) -> Dict[str, Quote]:
        """Quotes keyed by the requested provider symbol; unknown symbols omitted."""
        ...


class QuoteClient:
    def __init__(
        self,
        provider: QuoteProvider,
        cache: Optional[QuoteCache] = None,
        chunk_size: int = 30,
        fx_symbol: str = FX_SYMBOL,
    ):
        if chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")
        self.provider = provider
        self.cache = cache if cache is not None else QuoteCache()
        self.chunk_size = chunk_size
        self.fx_symbol = fx_symbol

    def _fetch_symbols(self, symbols: List[str]) -> Dict[str, Quote]:
        out: Dict[str, Quote] = {}
        missing: List[str] = []
        for s in symbols:
            q = self.cache.get(s)
            if q is not None:
                out[s] = q
                inc_quote_cache_hit()
            else:
                missing.append(s)
        for i in range(0, len(missing), self.chunk_size):
            chunk = missing[i:i + self.chunk_size]
            try:
                fetched = self.provider.fetch(chunk)
            except Exception as e:
                inc_quote_fetch("error")
                log.warning(f"Quote fetch failed for {len(chunk)} symbols ({chunk[0]}...): {e}")
                continue
            inc_quote_fetch("ok")
            stamp = datetime.now(timezone.utc).isoformat()
            for sym, q in fetched.items():
                if q.fetched_at is None:
                    q.fetched_at = stamp
                self.cache.put(sym, q)
                out[sym] = q
        return out

    def fetch(self, tickers: Iterable[str]) -> Dict[str, Quote]:
        """Quotes keyed by canonical ticker.

        KR codes not found as `.KS` are retried as `.KQ` (KOSDAQ listings).
        """
        pending: Dict[str, List[str]] = {}
        for t in tickers:
            norm = canonical_ticker_for_match(t)
            if norm:
                pending.setdefault(norm, yahoo_symbols(norm))
        out: Dict[str, Quote] = {}
        attempt = 0
        while pending:
            by_symbol = {cands[attempt]: norm for norm, cands in pending.items()}
            quotes = self._fetch_symbols(list(by_symbol))
            for sym, q in quotes.items():
                if sym in by_symbol:
                    out[by_symbol[sym]] = q
            attempt += 1
            pending = {norm: cands for norm, cands in pending.items() if norm not in out and len(cands) > attempt}
        return out

    def fx_rate(self) -> Optional[float]:
        """USD -> KRW rate, or None when unavailable."""
        q = self._fetch_symbols([self.fx_symbol]).get(self.fx_symbol)
        if q is None or q.price <= 0:
            return None
        return q.price


def apply_quotes(prices: List[StockPrice], quotes: Dict[str, Quote]) -> List[StockPrice]:
    """Merge quotes (keyed by canonical ticker) into stored prices."""
    out: List[StockPrice] = []
    seen = set()
    for p in prices:
        norm = canonical_ticker_for_match(p.ticker)
        q = quotes.get(norm)
        if q is not None:
            p = p.model_copy(update={
                "price": q.price,
                "currency": q.currency or p.currency,
                "name": p.name or q.name,
                "change": q.change,
                "change_percent": q.change_percent,
                "updated_at": q.fetched_at,
            })
        seen.add(norm)
        out.append(p)
    for norm, q in quotes.items():
        if norm in seen:
            continue
        out.append(StockPrice(
            ticker=norm,
            name=q.name,
            price=q.price,
            currency=q.currency,
            change=q.change,
            change_percent=q.change_percent,
            updated_at=q.fetched_at,
        ))
    return out
