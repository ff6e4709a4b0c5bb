"""
Ticker normalization and market classification.

Korean listings are six characters starting with a digit (`005930`,
`0046A0`); US listings are letters with an optional share-class suffix
(`AAPL`, `BRK.B`). Yahoo-style exchange suffixes are stripped before matching.
"""

from __future__ import annotations

import re
from typing import List, Optional

_YAHOO_SUFFIX = re.compile(r"\.(KS|KQ|KO|K|KSQ)$", re.IGNORECASE)
INVALID_CHARS = re.compile("[\u200b\u200c\u200d\ufeff\ufffd\ufffe\uffff]")
_KRW_CODE = re.compile(r"^[0-9][0-9A-Z]{5}$")
_USD_CODE = re.compile(r"^[A-Z]{1,6}([.-][A-Z]{1,2})?$")
_PADDABLE = re.compile(r"^[0-9A-Z]{4,5}$")


def clean_ticker(raw: Optional[str]) -> str:
    if not raw:
        return ""
    t = INVALID_CHARS.sub("", str(raw)).strip().upper()
    return _YAHOO_SUFFIX.sub("", t)


def canonical_ticker_for_match(raw: Optional[str]) -> str:
    """Key used to match trades and prices for the same listing.

    Short numeric KR codes lose their leading zeros in spreadsheets, so
    4-5 character codes containing a digit are left-padded back to six.
    """
    c = clean_ticker(raw)
    if _PADDABLE.match(c) and any(ch.isdigit() for ch in c):
        return c.zfill(6)
    return c


def is_krw_stock(ticker: Optional[str]) -> bool:
    return bool(_KRW_CODE.match(canonical_ticker_for_match(ticker)))


def is_usd_stock(ticker: Optional[str]) -> bool:
    c = clean_ticker(ticker)
    if not c or is_krw_stock(c):
        return False
    return bool(_USD_CODE.match(c))


def market_for_ticker(ticker: Optional[str]) -> Optional[str]:
    if is_krw_stock(ticker):
        return "KR"
    if is_usd_stock(ticker):
        return "US"
    return None


def yahoo_symbol(ticker: str) -> str:
    """Symbol to request from Yahoo Finance (KR listings need `.KS`)."""
    if is_krw_stock(ticker):
        return f"{canonical_ticker_for_match(ticker)}.KS"
    return clean_ticker(ticker)


def yahoo_symbols(ticker: str) -> List[str]:
    """Symbols to try in order: KOSPI `.KS`, then KOSDAQ `.KQ` for KR codes."""
    if is_krw_stock(ticker):
        code = canonical_ticker_for_match(ticker)
        return [f"{code}.KS", f"{code}.KQ"]
    return [clean_ticker(ticker)]


def extract_ticker_from_text(text: Optional[str]) -> Optional[str]:
    """Pull a ticker out of free text such as `삼성전자 (005930)`."""
    if not text or not isinstance(text, str):
        return None
    six = re.search(r"([0-9]{6})", text)
    if six:
        return six.group(1)
    m = re.search(r"([0-9A-Za-z]{1,10})", text)
    return m.group(1).upper() if m else None
