from farmwallet.ledger.categories import (
    SAVINGS_CATEGORY,
    category_type,
    default_category_presets,
    is_card_payment,
    merge_category_presets,
)
from farmwallet.store.schema import Account, CategoryPresets, LedgerEntry


ACCOUNTS = [
    Account(id="A", name="월급통장", type="checking"),
    Account(id="S", name="증권", type="securities"),
]


def _entry(kind, category, sub=None, **kw):
    return LedgerEntry(id="x", date="2024-01-01", kind=kind, category=category, sub_category=sub, amount=1000, **kw)


def test_default_presets_cover_savings_and_fixed():
    presets = default_category_presets()
    assert SAVINGS_CATEGORY in presets.expense
    assert "급여" in presets.income
    assert presets.category_types.fixed == ["주거비", "통신비", "구독비"]
    subs = {g.main: g.subs for g in presets.expense_details}
    assert "외식/배달" in subs["식비"]


def test_merge_keeps_stored_lists():
    merged = merge_category_presets(CategoryPresets(expense=["식비", "기타"]))
    assert merged.expense == ["식비", "기타"]
    assert "급여" in merged.income
    assert merged.category_types is not None
    assert merge_category_presets(None).expense == default_category_presets().expense


def test_category_type():
    presets = default_category_presets()
    assert category_type(_entry("income", "급여"), presets) == "income"
    assert category_type(_entry("expense", SAVINGS_CATEGORY, "예금"), presets) == "savings"
    assert category_type(_entry("expense", "주거비", "월세"), presets) == "fixed"
    assert category_type(_entry("expense", "식비"), presets) == "variable"
    assert category_type(_entry("expense", "식비", is_fixed_expense=True), presets) == "fixed"
    to_brokerage = _entry("transfer", "저축이체", from_account_id="A", to_account_id="S")
    assert category_type(to_brokerage, presets, ACCOUNTS) == "savings"
    plain = _entry("transfer", "계좌이체", from_account_id="A", to_account_id="S")
    assert category_type(plain, presets, ACCOUNTS) == "transfer"


def test_card_payment_detection():
    assert is_card_payment(_entry("transfer", "신용카드", "카드대금"))
    assert not is_card_payment(_entry("transfer", "신용카드"))
