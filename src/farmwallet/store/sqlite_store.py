"""
SQLite persistence for the farmwallet document.

What it does:
- Keeps each entity kind in its own table (`id`, indexed `date` and
  `account_id` columns, the record as JSON) plus a `meta` table for the
  category presets and preserved legacy keys.
- Runs every write in one transaction. `mutate(fn)` loads the document,
  applies `fn` and writes it back under `BEGIN IMMEDIATE`, so the API and
  the DCA scheduler never interleave partial updates.
- Stores SHA-256-hashed backup snapshots, keeping the newest `backup_keep`.

Where it is used:
- `farmwallet.main` CLI commands, `farmwallet.api.server`, `farmwallet.dca.scheduler`.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel

from ..ledger.categories import merge_category_presets
from ..metrics.app import inc_backup, inc_store_write
from .schema import (
    Account,
    AppData,
    BudgetGoal,
    CategoryPresets,
    DcaPlan,
    LedgerEntry,
    RecurringExpense,
    StockPrice,
    StockTrade,
    SymbolInfo,
    TickerInfo,
)

log = logging.getLogger("farmwallet.store")

T = TypeVar("T")


def _record_key(kind: str, rec: BaseModel) -> str:
    if kind in ("prices", "custom_symbols"):
        return rec.ticker  # type: ignore[attr-defined]
    if kind == "ticker_database":
        return f"{rec.market}:{rec.ticker}"  # type: ignore[attr-defined]
    return rec.id  # type: ignore[attr-defined]


def _record_date(rec: BaseModel) -> Optional[str]:
    return getattr(rec, "date", None) or getattr(rec, "start_date", None)


def _record_account(rec: BaseModel) -> Optional[str]:
    return getattr(rec, "account_id", None) or getattr(rec, "from_account_id", None)


# AppData attribute -> record model
KINDS: Dict[str, Type[BaseModel]] = {
    "accounts": Account,
    "ledger": LedgerEntry,
    "trades": StockTrade,
    "prices": StockPrice,
    "ticker_database": TickerInfo,
    "custom_symbols": SymbolInfo,
    "budget_goals": BudgetGoal,
    "recurring_expenses": RecurringExpense,
    "dca_plans": DcaPlan,
}

_TABLE_DDL = """
CREATE TABLE IF NOT EXISTS {table} (
  pos INTEGER PRIMARY KEY,
  id TEXT NOT NULL,
  date TEXT,
  account_id TEXT,
  json TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS {table}_id ON {table}(id);
CREATE INDEX IF NOT EXISTS {table}_date ON {table}(date);
CREATE INDEX IF NOT EXISTS {table}_account ON {table}(account_id);
"""

DDL = "".join(_TABLE_DDL.format(table=t) for t in KINDS) + """
CREATE TABLE IF NOT EXISTS meta (
  key TEXT PRIMARY KEY,
  json TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS backups (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  created_at TEXT NOT NULL,
  sha256 TEXT,
  json TEXT NOT NULL
);
"""


def _dumps(obj: Any) -> str:
    return json.dumps(obj, ensure_ascii=False, separators=(",", ":"))


def document_json(data: AppData) -> str:
    """Canonical JSON text of a document (the text backups are hashed over)."""
    return _dumps(data.model_dump(mode="json", by_alias=True, exclude_none=True))


def sha256_hex(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class SQLiteStore:
    def __init__(self, path: str = "data/farmwallet.sqlite", backup_keep: int = 5):
        parent = os.path.dirname(path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        self.path = path
        self.backup_keep = int(backup_keep)
        self._lock = threading.RLock()
        with self._connect() as con:
            con.executescript(DDL)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        con = sqlite3.connect(self.path, timeout=30, isolation_level=None)
        try:
            yield con
        finally:
            con.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock, self._connect() as con:
            con.execute("BEGIN IMMEDIATE")
            try:
                yield con
            except BaseException:
                con.execute("ROLLBACK")
                raise
            con.execute("COMMIT")

    # ---- document load/store ----

    def _load(self, con: sqlite3.Connection) -> AppData:
        raw: Dict[str, Any] = {}
        for row in con.execute("SELECT key, json FROM meta"):
            key, js = row
            if key == "extras":
                raw.update(json.loads(js))
            else:
                raw[key] = json.loads(js)
        for kind in KINDS:
            raw[kind] = [json.loads(js) for (js,) in con.execute(f"SELECT json FROM {kind} ORDER BY pos")]
        data = AppData.model_validate(raw)
        data.category_presets = merge_category_presets(data.category_presets)
        return data

    def _write(self, con: sqlite3.Connection, data: AppData) -> None:
        for kind in KINDS:
            con.execute(f"DELETE FROM {kind}")
            con.executemany(
                f"INSERT INTO {kind}(pos,id,date,account_id,json) VALUES (?,?,?,?,?)",
                [
                    (i, _record_key(kind, rec), _record_date(rec), _record_account(rec), _dumps(rec.to_json_dict()))
                    for i, rec in enumerate(getattr(data, kind))
                ],
            )
        con.execute("DELETE FROM meta")
        meta = {
            "categoryPresets": data.category_presets.to_json_dict(),
            "usTickers": list(data.us_tickers),
            "extras": dict(data.model_extra or {}),
        }
        con.executemany("INSERT INTO meta(key,json) VALUES (?,?)", [(k, _dumps(v)) for k, v in meta.items()])

    def load(self) -> AppData:
        with self._connect() as con:
            return self._load(con)

    def replace(self, data: AppData) -> None:
        """Overwrite the whole document in one transaction."""
        with self._transaction() as con:
            self._write(con, data)
        inc_store_write("replace")
        log.info(f"Stored document: {len(data.ledger)} ledger entries, {len(data.trades)} trades")

    def mutate(self, fn: Callable[[AppData], T]) -> T:
        """Load, apply `fn` (which edits the document in place), and persist atomically.

        If `fn` raises, nothing is written.
        """
        with self._transaction() as con:
            data = self._load(con)
            result = fn(data)
            self._write(con, data)
        inc_store_write("mutate")
        return result

    # ---- single records ----

    def list_records(self, kind: str) -> List[BaseModel]:
        model = self._model(kind)
        with self._connect() as con:
            return [model.model_validate(json.loads(js)) for (js,) in con.execute(f"SELECT json FROM {kind} ORDER BY pos")]

    def get(self, kind: str, record_id: str) -> BaseModel:
        model = self._model(kind)
        with self._connect() as con:
            row = con.execute(f"SELECT json FROM {kind} WHERE id=? ORDER BY pos LIMIT 1", (record_id,)).fetchone()
        if row is None:
            raise KeyError(f"{kind} record not found: {record_id}")
        return model.model_validate(json.loads(row[0]))

    def upsert(self, kind: str, record: BaseModel) -> None:
        self._model(kind)
        key = _record_key(kind, record)
        payload = (_record_date(record), _record_account(record), _dumps(record.to_json_dict()))  # type: ignore[attr-defined]
        with self._transaction() as con:
            cur = con.execute(f"UPDATE {kind} SET date=?, account_id=?, json=? WHERE id=?", payload + (key,))
            if cur.rowcount == 0:
                (nxt,) = con.execute(f"SELECT COALESCE(MAX(pos), -1) + 1 FROM {kind}").fetchone()
                con.execute(
                    f"INSERT INTO {kind}(pos,id,date,account_id,json) VALUES (?,?,?,?,?)",
                    (nxt, key) + payload,
                )
        inc_store_write(kind)

    def delete(self, kind: str, record_id: str) -> None:
        self._model(kind)
        with self._transaction() as con:
            cur = con.execute(f"DELETE FROM {kind} WHERE id=?", (record_id,))
            if cur.rowcount == 0:
                raise KeyError(f"{kind} record not found: {record_id}")
        inc_store_write(kind)

    @staticmethod
    def _model(kind: str) -> Type[BaseModel]:
        if kind not in KINDS:
            raise ValueError(f"Unknown record kind: {kind}")
        return KINDS[kind]

    # ---- backups ----

    def snapshot(self, data: Optional[AppData] = None) -> Dict[str, Any]:
        """Store a hashed snapshot of `data` (default: current document)."""
        doc = data if data is not None else self.load()
        text = document_json(doc)
        digest = sha256_hex(text)
        created = datetime.now(timezone.utc).isoformat()
        with self._transaction() as con:
            cur = con.execute("INSERT INTO backups(created_at, sha256, json) VALUES (?,?,?)", (created, digest, text))
            backup_id = cur.lastrowid
            con.execute(
                "DELETE FROM backups WHERE id NOT IN (SELECT id FROM backups ORDER BY id DESC LIMIT ?)",
                (self.backup_keep,),
            )
        inc_backup()
        log.info(f"Backup {backup_id} written (sha256={digest[:12]})")
        return {"id": backup_id, "created_at": created, "sha256": digest}

    def list_backups(self) -> List[Dict[str, Any]]:
        with self._connect() as con:
            rows = con.execute("SELECT id, created_at, sha256 FROM backups ORDER BY id DESC").fetchall()
        return [{"id": r[0], "created_at": r[1], "sha256": r[2]} for r in rows]

    def _backup_row(self, backup_id: int) -> Tuple[Optional[str], str]:
        with self._connect() as con:
            row = con.execute("SELECT sha256, json FROM backups WHERE id=?", (backup_id,)).fetchone()
        if row is None:
            raise KeyError(f"Backup not found: {backup_id}")
        return row[0], row[1]

    def load_backup(self, backup_id: int, verify: bool = True) -> AppData:
        digest, text = self._backup_row(backup_id)
        if verify and digest and sha256_hex(text) != digest:
            raise ValueError(f"Backup {backup_id} failed hash verification")
        return AppData.model_validate(json.loads(text))

    def restore_backup(self, backup_id: int) -> AppData:
        data = self.load_backup(backup_id)
        self.replace(data)
        log.info(f"Restored backup {backup_id}")
        return data

    def rewrite_backups(self, fn: Callable[[AppData], bool]) -> int:
        """Apply `fn` to every stored snapshot; snapshots it reports as changed
        are re-serialized and re-hashed. Returns the number rewritten."""
        rewritten = 0
        with self._transaction() as con:
            rows = con.execute("SELECT id, json FROM backups").fetchall()
            for backup_id, text in rows:
                data = AppData.model_validate(json.loads(text))
                if not fn(data):
                    continue
                new_text = document_json(data)
                con.execute("UPDATE backups SET json=?, sha256=? WHERE id=?", (new_text, sha256_hex(new_text), backup_id))
                rewritten += 1
        return rewritten

    def latest_backup_integrity(self) -> str:
        """valid | missing-hash | mismatch | none, for the newest snapshot."""
        backups = self.list_backups()
        if not backups:
            return "none"
        digest, text = self._backup_row(backups[0]["id"])
        if not digest:
            return "missing-hash"
        return "valid" if sha256_hex(text) == digest else "mismatch"
