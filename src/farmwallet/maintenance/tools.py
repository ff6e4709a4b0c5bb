"""
Data maintenance.

What it does:
- `sync_ticker_names`: overwrite ticker names from a reference document
  shaped `{"KR": [{"ticker", "name"}], "US": [...]}`.
- `rename_sub_category`: rename a sub-category across the ledger and presets.
- `strip_invalid_chars`: remove replacement and zero-width characters from
  text fields and re-clean tickers.

Each function edits the document in place and returns a summary dict.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Union

from ..store.schema import AppData
from ..tickers.classify import INVALID_CHARS, canonical_ticker_for_match, clean_ticker

log = logging.getLogger("farmwallet.maintenance")

_SAMPLE_LIMIT = 30


def load_ticker_reference(path: Union[str, Path]) -> Dict[str, Dict[str, str]]:
    """Read a reference file into {market: {canonical ticker: name}}."""
    with open(path, "r", encoding="utf-8") as f:
        raw = json.load(f)
    if not isinstance(raw, dict):
        raise ValueError(f"{path}: expected an object with KR/US lists")
    out: Dict[str, Dict[str, str]] = {}
    for market in ("KR", "US"):
        items = raw.get(market) or []
        if not isinstance(items, list):
            raise ValueError(f"{path}: {market} must be a list")
        names: Dict[str, str] = {}
        for item in items:
            ticker = str(item.get("ticker") or "").strip()
            name = str(item.get("name") or "").strip()
            if ticker and name:
                names[canonical_ticker_for_match(ticker)] = name
        out[market] = names
    return out


def sync_ticker_names(data: AppData, reference: Dict[str, Dict[str, str]], include_records: bool = True) -> Dict[str, Any]:
    """Overwrite ticker_database names from `reference`; unknown tickers keep their name.

    With `include_records`, trade and price names for the same tickers follow.
    """
    updated: List[str] = []
    missing: List[str] = []
    resolved: Dict[str, str] = {}
    for info in data.ticker_database:
        norm = canonical_ticker_for_match(info.ticker)
        name = reference.get(info.market, {}).get(norm)
        if not name:
            missing.append(f"{info.market}:{info.ticker}")
            continue
        resolved[norm] = name
        if info.name != name:
            updated.append(f'{info.ticker}: "{info.name}" -> "{name}"')
            info.name = name
    records = 0
    if include_records:
        for rec in list(data.trades) + list(data.prices):
            name = resolved.get(canonical_ticker_for_match(rec.ticker))
            if name and rec.name != name:
                rec.name = name
                records += 1
    log.info(f"Ticker names synced: {len(updated)} updated, {len(missing)} missing from reference")
    return {
        "updated": len(updated),
        "missing": len(missing),
        "records_updated": records,
        "samples": updated[:_SAMPLE_LIMIT],
        "missing_tickers": missing[:_SAMPLE_LIMIT],
    }


def rename_sub_category(data: AppData, old: str, new: str) -> Dict[str, Any]:
    """Rename a sub-category in ledger entries and expense presets (exact matches only)."""
    if not old or not new:
        raise ValueError("old and new names are required")
    entries = 0
    for e in data.ledger:
        if e.sub_category == old:
            e.sub_category = new
            entries += 1
    presets = 0
    for group in data.category_presets.expense_details:
        if old in group.subs:
            renamed = []
            for s in group.subs:
                if s == old:
                    presets += 1
                    if new in group.subs:
                        continue
                    s = new
                renamed.append(s)
            group.subs = renamed
    log.info(f"Renamed sub-category {old!r} -> {new!r}: {entries} entries, {presets} presets")
    return {"entries": entries, "presets": presets}


def _clean_text(value: str) -> str:
    return INVALID_CHARS.sub("", value)


def strip_invalid_chars(data: AppData) -> Dict[str, int]:
    """Remove U+FFFD/U+FFFE/U+FFFF and zero-width characters from text fields."""
    changed = 0

    def fix(obj, fields):
        nonlocal changed
        for field in fields:
            value = getattr(obj, field, None)
            if isinstance(value, str):
                cleaned = _clean_text(value)
                if cleaned != value:
                    setattr(obj, field, cleaned)
                    changed += 1

    for e in data.ledger:
        fix(e, ("category", "sub_category", "description", "note"))
    for a in data.accounts:
        fix(a, ("name", "institution", "note"))
    for rec in list(data.trades) + list(data.prices) + list(data.ticker_database):
        fix(rec, ("name",))
        ticker = clean_ticker(rec.ticker)
        if ticker and ticker != rec.ticker:
            rec.ticker = ticker
            changed += 1
    presets = data.category_presets
    for attr in ("income", "expense", "transfer"):
        values = getattr(presets, attr)
        cleaned = [_clean_text(v) for v in values]
        if cleaned != values:
            changed += sum(1 for a, b in zip(values, cleaned) if a != b)
            setattr(presets, attr, cleaned)
    for group in presets.expense_details:
        fix(group, ("main",))
        cleaned = [_clean_text(s) for s in group.subs]
        if cleaned != group.subs:
            changed += sum(1 for a, b in zip(group.subs, cleaned) if a != b)
            group.subs = cleaned
    log.info(f"Stripped invalid characters from {changed} field(s)")
    return {"fields_changed": changed}
