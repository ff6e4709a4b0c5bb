"""
Ledger summary report (Markdown, rendered with Jinja2).

Entries are split into income, expense, savings expense and transfer.
Statistics cover ledger totals only; account balances live in
`farmwallet.ledger.balances`.
"""

from __future__ import annotations

import os
from datetime import datetime
from typing import Any, Dict, List, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from ..ledger.categories import is_savings_expense_entry
from ..store.schema import Account, LedgerEntry
from .format import format_amount, format_krw, format_usd

TEMPLATE_DIR = os.path.join(os.path.dirname(__file__), "templates")

KIND_LABELS = {"income": "수입", "expense": "지출", "savings": "저축성 지출", "transfer": "이체"}


def _template_env(template_dir: str = TEMPLATE_DIR) -> Environment:
    env = Environment(
        loader=FileSystemLoader(template_dir),
        autoescape=select_autoescape(["html", "xml"]),
        trim_blocks=True,
        lstrip_blocks=True,
    )
    env.filters["krw"] = format_krw
    env.filters["usd"] = format_usd
    env.filters["amount"] = format_amount
    env.filters["cell"] = lambda v: str(v if v not in (None, "") else "-").replace("|", "\\|").replace("\n", " ")
    return env


def classify_entry(entry: LedgerEntry, accounts: List[Account]) -> str:
    if entry.kind == "income":
        return "income"
    if is_savings_expense_entry(entry, accounts):
        return "savings"
    return entry.kind


def _account_label(entry: LedgerEntry, names: Dict[str, str]) -> str:
    def name(aid: Optional[str]) -> str:
        return names.get(aid, aid) if aid else "-"

    if entry.kind == "income":
        return name(entry.to_account_id)
    if entry.kind == "transfer" and entry.from_account_id and entry.to_account_id:
        return f"{name(entry.from_account_id)} → {name(entry.to_account_id)}"
    return name(entry.from_account_id or entry.to_account_id)


def build_report_context(ledger: List[LedgerEntry], accounts: List[Account]) -> Dict[str, Any]:
    """Totals are in KRW; entries with no KRW leg are summed apart in `usd_totals`."""
    names = {a.id: a.name for a in accounts}
    ordered = sorted(ledger, key=lambda e: e.date)
    groups: Dict[str, List[LedgerEntry]] = {k: [] for k in KIND_LABELS}
    months: Dict[str, Dict[str, float]] = {}
    totals = {k: 0.0 for k in KIND_LABELS}
    usd_totals = {k: 0.0 for k in KIND_LABELS}
    by_category: Dict[str, float] = {}
    for e in ordered:
        kind = classify_entry(e, accounts)
        groups[kind].append(e)
        m = months.setdefault(e.month, {k: 0.0 for k in KIND_LABELS})
        krw = e.krw_amount
        if krw is None:
            usd_totals[kind] += e.amount
            continue
        m[kind] += krw
        totals[kind] += krw
        if kind == "expense":
            key = f"{e.category} > {e.sub_category}" if e.sub_category else e.category
            by_category[key] = by_category.get(key, 0.0) + krw

    adjustments = []
    for a in accounts:
        base = a.initial_balance
        if a.type == "securities" and a.initial_cash_balance is not None:
            base = a.initial_cash_balance
        adjustments.append({"name": a.name, "value": base + a.cash_adjustment + a.savings})

    sections = []
    for kind, label in KIND_LABELS.items():
        rows = [
            {
                "date": e.date,
                "kind": label + (" (고정)" if e.is_fixed_expense else ""),
                "category": e.category,
                "sub_category": e.sub_category,
                "description": e.description,
                "amount": e.amount,
                "currency": e.currency,
                "account": _account_label(e, names),
                "note": e.note,
            }
            for e in groups[kind]
        ]
        sections.append({"label": label, "rows": rows, "total": totals[kind], "usd_total": usd_totals[kind]})

    return {
        "generated_at": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        "count": len(ledger),
        "counts": {k: len(v) for k, v in groups.items()},
        "totals": totals,
        "usd_totals": {k: v for k, v in usd_totals.items() if v},
        "labels": KIND_LABELS,
        "net": totals["income"] - totals["expense"] - totals["savings"],
        "adjustments": adjustments,
        "months": [
            dict(month=m, net=v["income"] - v["expense"] - v["savings"], **v)
            for m, v in sorted(months.items())
        ],
        "categories": sorted(by_category.items(), key=lambda kv: kv[1], reverse=True),
        "sections": sections,
    }


def render_ledger_report(ledger: List[LedgerEntry], accounts: List[Account]) -> str:
    tpl = _template_env().get_template("ledger_report.md.j2")
    return tpl.render(**build_report_context(ledger, accounts))
