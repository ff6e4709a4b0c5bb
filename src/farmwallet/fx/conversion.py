"""
KRW <-> USD conversions recorded as a single transfer entry.

The entry carries both legs: `amount`/`currency` leave the source account,
`to_amount`/`to_currency` arrive in the destination. Securities accounts
hold a USD sub-balance, so they can sit on the USD side of a conversion
even though their base currency is KRW.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..ledger.categories import FX_CATEGORY
from ..ledger.model import new_id
from ..reports.format import format_amount
from ..store.schema import Account, AppData, LedgerEntry

log = logging.getLogger("farmwallet.fx")


def _infer_currencies(src: Account, dst: Account):
    from_cur = src.currency
    to_cur = dst.currency
    if from_cur == to_cur:
        # Cash moving into or out of a brokerage's USD sub-balance.
        if dst.type == "securities" and from_cur == "KRW":
            to_cur = "USD"
        elif src.type == "securities" and to_cur == "KRW":
            from_cur = "USD"
    return from_cur, to_cur


def record_fx_conversion(
    data: AppData,
    date: str,
    from_account_id: str,
    to_account_id: str,
    from_amount: float,
    to_amount: float,
    rate: float,
    description: Optional[str] = None,
    from_currency: Optional[str] = None,
    to_currency: Optional[str] = None,
    entry_id: Optional[str] = None,
) -> LedgerEntry:
    """Append a conversion entry to `data.ledger` and return it.

    Raises KeyError for unknown accounts and ValueError for invalid input.
    """
    if from_account_id == to_account_id:
        raise ValueError("Source and destination accounts must differ")
    if from_amount <= 0 or to_amount <= 0 or rate <= 0:
        raise ValueError("Amounts and rate must be positive")
    src = data.account(from_account_id)
    dst = data.account(to_account_id)
    inferred = _infer_currencies(src, dst)
    from_cur = from_currency or inferred[0]
    to_cur = to_currency or inferred[1]
    if {from_cur, to_cur} != {"KRW", "USD"}:
        raise ValueError(f"Only KRW <-> USD conversions are supported (got {from_cur} -> {to_cur})")

    if not description:
        description = (
            f"환전: {format_amount(from_amount, from_cur)} → {format_amount(to_amount, to_cur)} (환율: {rate:.2f})"
        )
    entry = LedgerEntry(
        id=entry_id or new_id("fx-"),
        date=date,
        kind="transfer",
        category=FX_CATEGORY,
        description=description,
        from_account_id=from_account_id,
        to_account_id=to_account_id,
        amount=from_amount,
        currency=from_cur,
        to_amount=to_amount,
        to_currency=to_cur,
    )
    data.ledger.append(entry)
    log.info(f"FX conversion {entry.id}: {from_amount} {from_cur} -> {to_amount} {to_cur} @ {rate}")
    return entry
