import sqlite3

import pytest

from farmwallet.ledger.categories import default_category_presets
from farmwallet.ledger.positions import make_trade
from farmwallet.store.schema import Account, AppData, LedgerEntry
from farmwallet.store.sqlite_store import SQLiteStore


def _data():
    return AppData.model_validate({
        "accounts": [{"id": "A", "name": "월급통장", "type": "checking", "initialBalance": 1000}],
        "ledger": [
            {"id": "e1", "date": "2024-01-05", "kind": "income", "category": "급여",
             "toAccountId": "A", "amount": 500},
            {"id": "e2", "date": "2024-01-06", "kind": "expense", "category": "식비",
             "subCategory": "외식/배달", "fromAccountId": "A", "amount": 20},
        ],
        "trades": [make_trade("t1", "2024-01-07", "A", "005930", "buy", 1, 100).to_json_dict()],
        "legacyWidget": {"keep": True},
    })


def test_replace_and_load(tmp_path):
    store = SQLiteStore(str(tmp_path / "db" / "fw.sqlite"))
    store.replace(_data())
    data = store.load()
    assert [a.id for a in data.accounts] == ["A"]
    assert data.accounts[0].initial_balance == 1000
    assert [e.id for e in data.ledger] == ["e1", "e2"]
    assert data.ledger[1].sub_category == "외식/배달"
    assert data.trades[0].cash_impact == -100
    # unknown top-level keys survive
    assert data.model_extra["legacyWidget"] == {"keep": True}
    # empty presets are filled from defaults
    assert data.category_presets.expense == default_category_presets().expense


def test_mutate_rolls_back_on_error(tmp_path):
    store = SQLiteStore(str(tmp_path / "fw.sqlite"))
    store.replace(_data())

    def broken(data):
        data.ledger.clear()
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        store.mutate(broken)
    assert len(store.load().ledger) == 2

    added = store.mutate(lambda d: d.ledger.append(
        LedgerEntry(id="e3", date="2024-01-08", kind="expense", category="식비", from_account_id="A", amount=5)
    ) or len(d.ledger))
    assert added == 3
    assert [e.id for e in store.load().ledger] == ["e1", "e2", "e3"]


def test_record_upsert_get_delete(tmp_path):
    store = SQLiteStore(str(tmp_path / "fw.sqlite"))
    store.replace(_data())
    store.upsert("accounts", Account(id="B", name="비상금", type="savings"))
    store.upsert("accounts", Account(id="A", name="생활비통장"))
    assert store.get("accounts", "A").name == "생활비통장"
    assert [a.id for a in store.list_records("accounts")] == ["A", "B"]

    store.delete("ledger", "e1")
    assert [e.id for e in store.load().ledger] == ["e2"]
    with pytest.raises(KeyError):
        store.delete("ledger", "e1")
    with pytest.raises(KeyError):
        store.get("trades", "missing")
    with pytest.raises(ValueError):
        store.list_records("nope")


def test_backups_are_pruned_and_verified(tmp_path):
    path = str(tmp_path / "fw.sqlite")
    store = SQLiteStore(path, backup_keep=2)
    assert store.latest_backup_integrity() == "none"
    store.replace(_data())
    ids = [store.snapshot()["id"] for _ in range(3)]
    assert [b["id"] for b in store.list_backups()] == [ids[2], ids[1]]
    assert store.latest_backup_integrity() == "valid"
    assert len(store.load_backup(ids[2]).ledger) == 2

    con = sqlite3.connect(path)
    con.execute("UPDATE backups SET json = replace(json, '급여', '상여') WHERE id = ?", (ids[2],))
    con.commit()
    con.close()
    assert store.latest_backup_integrity() == "mismatch"
    with pytest.raises(ValueError):
        store.load_backup(ids[2])
    with pytest.raises(KeyError):
        store.load_backup(ids[0])


def test_restore_backup(tmp_path):
    store = SQLiteStore(str(tmp_path / "fw.sqlite"))
    store.replace(_data())
    backup = store.snapshot()
    store.mutate(lambda d: d.ledger.clear())
    assert store.load().ledger == []
    store.restore_backup(backup["id"])
    assert len(store.load().ledger) == 2


def test_rewrite_backups_rehashes(tmp_path):
    store = SQLiteStore(str(tmp_path / "fw.sqlite"))
    store.replace(_data())
    store.snapshot()

    def rename(data):
        hit = False
        for e in data.ledger:
            if e.sub_category == "외식/배달":
                e.sub_category = "외식"
                hit = True
        return hit

    assert store.rewrite_backups(rename) == 1
    assert store.rewrite_backups(rename) == 0
    assert store.latest_backup_integrity() == "valid"
    latest = store.list_backups()[0]["id"]
    assert store.load_backup(latest).ledger[1].sub_category == "외식"
