"""
Integrity checks over ledger entries and trades.

Each check returns `IntegrityIssue` rows; `run_integrity_check` runs them
all. Nothing here mutates the document except `remove_records`.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Optional, Tuple, Union

from ..ledger.categories import CARD_PAYMENT, FX_CATEGORY, merge_category_presets, savings_categories
from ..ledger.model import IntegrityIssue
from ..store.schema import AppData, CategoryPresets, LedgerEntry, StockTrade

AMOUNT_TOLERANCE = 1.0


@dataclass
class DuplicateGroup:
    record_type: str  # ledger | trade
    key: str
    entries: List[Union[LedgerEntry, StockTrade]]


def _ledger_key(e: LedgerEntry) -> str:
    return f"{e.date}|{e.amount}|{e.from_account_id or ''}|{e.to_account_id or ''}|{e.category}"


def _trade_key(t: StockTrade) -> str:
    return f"{t.date}|{t.account_id}|{t.ticker}|{t.side}|{t.quantity}|{t.price}"


def detect_duplicates(ledger: List[LedgerEntry], trades: List[StockTrade]) -> List[DuplicateGroup]:
    """Groups of records sharing the same natural key, in first-seen order."""
    groups: List[DuplicateGroup] = []
    for record_type, items, keyfn in (("ledger", ledger, _ledger_key), ("trade", trades, _trade_key)):
        by_key: Dict[str, list] = {}
        for rec in items:
            by_key.setdefault(keyfn(rec), []).append(rec)
        groups.extend(DuplicateGroup(record_type, k, v) for k, v in by_key.items() if len(v) > 1)
    return groups


def check_missing_references(data: AppData) -> List[IntegrityIssue]:
    known = {a.id for a in data.accounts}
    used: Dict[str, List[Tuple[str, str, str]]] = {}
    for e in data.ledger:
        for field in ("from_account_id", "to_account_id"):
            ref = getattr(e, field)
            if ref and ref not in known:
                used.setdefault(ref, []).append(("ledger", e.id, field))
    for t in data.trades:
        if t.account_id not in known:
            used.setdefault(t.account_id, []).append(("trade", t.id, "account_id"))
    for p in data.dca_plans:
        if p.account_id not in known:
            used.setdefault(p.account_id, []).append(("dca_plan", p.id, "account_id"))
    return [
        IntegrityIssue(
            kind="missing_reference",
            severity="error",
            message=f"Account {ref} is referenced by {len(refs)} record(s) but does not exist",
            record_type="account",
            record_ids=[r[1] for r in refs],
            details={"account_id": ref, "used_in": [{"type": r[0], "id": r[1], "field": r[2]} for r in refs]},
        )
        for ref, refs in used.items()
    ]


def validate_date_order(ledger: List[LedgerEntry], trades: List[StockTrade], today: Optional[date] = None) -> List[IntegrityIssue]:
    """Flag records dated in the future."""
    cutoff = (today or date.today()).isoformat()
    issues: List[IntegrityIssue] = []
    for record_type, items in (("ledger", ledger), ("trade", trades)):
        for rec in items:
            if rec.date > cutoff:
                issues.append(IntegrityIssue(
                    kind="date_order",
                    severity="warning",
                    message=f"{record_type} {rec.id} is dated in the future: {rec.date}",
                    record_type=record_type,
                    record_ids=[rec.id],
                ))
    return issues


def expected_trade_total(t: StockTrade) -> float:
    gross = t.quantity * t.price
    return gross + t.fee if t.side == "buy" else gross - t.fee


def validate_amount_consistency(trades: List[StockTrade]) -> List[IntegrityIssue]:
    """Total and cash impact must agree with side/quantity/price/fee."""
    issues: List[IntegrityIssue] = []
    for t in trades:
        expected = expected_trade_total(t)
        diff = abs(expected - t.total_amount)
        if diff >= AMOUNT_TOLERANCE:
            issues.append(IntegrityIssue(
                kind="amount_consistency",
                severity="warning",
                message=f"trade {t.id}: total {t.total_amount:,.2f} differs from computed {expected:,.2f}",
                record_type="trade",
                record_ids=[t.id],
                details={"expected": expected, "actual": t.total_amount, "difference": diff},
            ))
        # Initial holdings are recorded with zero cash impact.
        if t.cash_impact == 0:
            continue
        expected_cash = -t.total_amount if t.side == "buy" else t.total_amount
        if abs(expected_cash - t.cash_impact) >= AMOUNT_TOLERANCE:
            issues.append(IntegrityIssue(
                kind="cash_impact_drift",
                severity="warning",
                message=f"trade {t.id}: cash impact {t.cash_impact:,.2f} should be {expected_cash:,.2f}",
                record_type="trade",
                record_ids=[t.id],
                details={"expected": expected_cash, "actual": t.cash_impact},
            ))
    return issues


def check_category_consistency(ledger: List[LedgerEntry], presets: CategoryPresets) -> List[IntegrityIssue]:
    income = set(presets.income)
    expense = set(presets.expense)
    transfer = set(presets.transfer) | {FX_CATEGORY, CARD_PAYMENT[0]}
    savings = set(savings_categories(presets))
    subs_by_main = {g.main: set(g.subs) for g in presets.expense_details}
    issues: List[IntegrityIssue] = []

    def issue(e: LedgerEntry, msg: str) -> None:
        issues.append(IntegrityIssue(
            kind="category_mismatch",
            severity="warning",
            message=f"ledger {e.id}: {msg}",
            record_type="ledger",
            record_ids=[e.id],
            details={"kind": e.kind, "category": e.category, "sub_category": e.sub_category},
        ))

    for e in ledger:
        main = (e.category or "").strip()
        sub = (e.sub_category or "").strip()
        if not main:
            continue
        if e.kind == "income":
            if main not in income:
                issue(e, f'income category "{main}" is not a preset')
        elif e.kind == "transfer":
            if main not in transfer and main not in savings:
                issue(e, f'transfer category "{main}" is not a transfer or savings preset')
        else:
            if main not in expense and main not in savings:
                issue(e, f'expense category "{main}" is not a preset')
            elif sub and main in subs_by_main and sub not in subs_by_main[main]:
                issue(e, f'expense sub-category "{main} > {sub}" is not a preset')
    return issues


def run_integrity_check(data: AppData, today: Optional[date] = None) -> List[IntegrityIssue]:
    issues: List[IntegrityIssue] = []
    for dup in detect_duplicates(data.ledger, data.trades):
        issues.append(IntegrityIssue(
            kind="duplicate",
            severity="error" if len(dup.entries) > 2 else "warning",
            message=f"{len(dup.entries)} {dup.record_type} records share the key {dup.key}",
            record_type=dup.record_type,
            record_ids=[r.id for r in dup.entries],
        ))
    issues.extend(check_missing_references(data))
    issues.extend(validate_date_order(data.ledger, data.trades, today))
    issues.extend(validate_amount_consistency(data.trades))
    issues.extend(check_category_consistency(data.ledger, merge_category_presets(data.category_presets)))
    return issues


def merge_duplicates(duplicates: List[DuplicateGroup], keep_first: bool = True) -> Dict[str, List[Union[LedgerEntry, StockTrade]]]:
    """Records to remove so that one record per duplicate group survives.

    Records are returned as objects, not ids: a legacy document can hold the
    same id twice, and the survivor must not go with its copy.
    """
    remove: Dict[str, List[Union[LedgerEntry, StockTrade]]] = {"ledger": [], "trade": []}
    for dup in duplicates:
        doomed = dup.entries[1:] if keep_first else dup.entries[:-1]
        remove[dup.record_type].extend(doomed)
    return remove


def remove_records(data: AppData, remove: Dict[str, List[Union[LedgerEntry, StockTrade]]]) -> int:
    """Drop the given ledger/trade records (matched by identity) from `data`; returns how many were removed."""
    doomed = {id(r) for recs in remove.values() for r in recs}
    before = len(data.ledger) + len(data.trades)
    data.ledger = [e for e in data.ledger if id(e) not in doomed]
    data.trades = [t for t in data.trades if id(t) not in doomed]
    return before - len(data.ledger) - len(data.trades)
