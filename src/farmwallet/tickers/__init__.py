"""Ticker classification helpers."""

from .classify import (
    canonical_ticker_for_match,
    clean_ticker,
    extract_ticker_from_text,
    is_krw_stock,
    is_usd_stock,
    market_for_ticker,
    yahoo_symbol,
    yahoo_symbols,
)

__all__ = [
    "canonical_ticker_for_match",
    "clean_ticker",
    "extract_ticker_from_text",
    "is_krw_stock",
    "is_usd_stock",
    "market_for_ticker",
    "yahoo_symbol",
    "yahoo_symbols",
]
