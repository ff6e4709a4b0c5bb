from __future__ import annotations


def format_krw(value: float) -> str:
    return f"{round(value):,} 원"


def format_usd(value: float) -> str:
    return f"{value:,.2f} USD"


def format_amount(value: float, currency: str) -> str:
    return format_usd(value) if currency == "USD" else format_krw(value)
