from datetime import date

from farmwallet.integrity.checks import (
    check_category_consistency,
    detect_duplicates,
    merge_duplicates,
    remove_records,
    run_integrity_check,
    validate_amount_consistency,
)
from farmwallet.ledger.categories import default_category_presets
from farmwallet.ledger.positions import make_trade
from farmwallet.store.schema import Account, AppData, DcaPlan, LedgerEntry, StockTrade


def _expense(entry_id, amount=10_000, category="식비", sub=None, day="2024-01-10"):
    return LedgerEntry(id=entry_id, date=day, kind="expense", category=category, sub_category=sub,
                       from_account_id="A", amount=amount)


def test_detect_and_merge_duplicates():
    ledger = [_expense("e1"), _expense("e2"), _expense("e3", amount=5), _expense("e4")]
    trades = [
        make_trade("t1", "2024-01-02", "A", "005930", "buy", 1, 100),
        make_trade("t2", "2024-01-02", "A", "005930", "buy", 1, 100),
    ]
    groups = detect_duplicates(ledger, trades)
    assert [(g.record_type, [r.id for r in g.entries]) for g in groups] == [
        ("ledger", ["e1", "e2", "e4"]),
        ("trade", ["t1", "t2"]),
    ]
    remove = merge_duplicates(groups)
    assert {k: [r.id for r in v] for k, v in remove.items()} == {"ledger": ["e2", "e4"], "trade": ["t2"]}
    assert [r.id for r in merge_duplicates(groups, keep_first=False)["ledger"]] == ["e1", "e2"]

    data = AppData(ledger=ledger, trades=trades)
    assert remove_records(data, remove) == 3
    assert [e.id for e in data.ledger] == ["e1", "e3"]


def test_amount_consistency_and_cash_drift():
    ok = make_trade("ok", "2024-01-02", "A", "005930", "buy", 10, 100, fee=5)
    wrong_total = StockTrade(id="bad", date="2024-01-02", account_id="A", ticker="005930", side="buy",
                             quantity=10, price=100, fee=5, total_amount=999, cash_impact=-999)
    drift = StockTrade(id="drift", date="2024-01-02", account_id="A", ticker="005930", side="sell",
                       quantity=1, price=100, total_amount=100, cash_impact=-100)
    initial = StockTrade(id="init", date="2024-01-01", account_id="A", ticker="005930", side="buy",
                         quantity=1, price=100, total_amount=100, cash_impact=0)
    issues = validate_amount_consistency([ok, wrong_total, drift, initial])
    assert [(i.kind, i.record_ids) for i in issues] == [
        ("amount_consistency", ["bad"]),
        ("cash_impact_drift", ["drift"]),
    ]
    assert issues[0].details["expected"] == 1005


def test_category_consistency():
    presets = default_category_presets()
    ledger = [
        _expense("ok", sub="외식/배달"),
        _expense("bad-main", category="없는분류"),
        _expense("bad-sub", sub="없는세부"),
        LedgerEntry(id="fx", date="2024-01-01", kind="transfer", category="환전", amount=1,
                    from_account_id="A", to_account_id="B"),
        LedgerEntry(id="inc", date="2024-01-01", kind="income", category="로또", amount=1, to_account_id="A"),
    ]
    flagged = [i.record_ids[0] for i in check_category_consistency(ledger, presets)]
    assert flagged == ["bad-main", "bad-sub", "inc"]


def test_run_integrity_check_reports_all_kinds():
    data = AppData(
        accounts=[Account(id="A", name="월급통장")],
        ledger=[_expense("e1"), _expense("e2"), _expense("e3"), _expense("future", amount=1, day="2030-01-01")],
        trades=[make_trade("t1", "2024-01-02", "ghost", "005930", "buy", 1, 100)],
        dca_plans=[DcaPlan(id="p1", account_id="ghost", ticker="005930", amount=1000, start_date="2024-01-01")],
    )
    issues = run_integrity_check(data, today=date(2024, 6, 1))
    by_kind = {}
    for i in issues:
        by_kind.setdefault(i.kind, []).append(i)
    dup = by_kind["duplicate"][0]
    assert dup.severity == "error"
    assert dup.record_ids == ["e1", "e2", "e3"]
    [missing] = by_kind["missing_reference"]
    assert missing.details["account_id"] == "ghost"
    assert sorted(u["type"] for u in missing.details["used_in"]) == ["dca_plan", "trade"]
    assert by_kind["date_order"][0].record_ids == ["future"]
    assert "amount_consistency" not in by_kind
    assert missing.to_dict()["severity"] == "error"


def test_merge_keeps_one_copy_of_a_record_stored_twice(tmp_path):
    from farmwallet.store.sqlite_store import SQLiteStore

    store = SQLiteStore(str(tmp_path / "fw.sqlite"))
    store.replace(AppData(ledger=[_expense("L1"), _expense("L1")]))

    def merge(data):
        return remove_records(data, merge_duplicates(detect_duplicates(data.ledger, data.trades)))

    assert store.mutate(merge) == 1
    assert [e.id for e in store.load().ledger] == ["L1"]
