"""
Main entrypoint for farmwallet.

What it does:
- Loads runtime settings from `config/config.yaml` plus `FARMWALLET_*`
  environment overrides.
- Opens the SQLite store and dispatches one subcommand: import/export of
  legacy JSON, balance/position/net-worth reports, integrity checks,
  backups, DCA runs, maintenance, or the REST service.

Where it is used:
- Installed as the `farmwallet` console script; also `python -m farmwallet.main`.
"""
import argparse
import json
import logging
import sys
from typing import Any, List, Optional

from farmwallet.config.loader import load_settings, Settings
from farmwallet.store.sqlite_store import SQLiteStore


def _print_json(obj: Any) -> None:
    print(json.dumps(obj, ensure_ascii=False, indent=2, default=str))


def _quote_client(settings: Settings):
    from farmwallet.quotes.cache import QuoteCache
    from farmwallet.quotes.client import QuoteClient
    from farmwallet.quotes.providers import YFinanceProvider

    return QuoteClient(
        YFinanceProvider(),
        QuoteCache(settings.quotes.cache_ttl_seconds),
        chunk_size=settings.quotes.chunk_size,
        fx_symbol=settings.quotes.fx_symbol,
    )


def cmd_import_json(args, settings: Settings, store: SQLiteStore) -> int:
    from farmwallet.store.json_io import read_app_data

    data = read_app_data(args.path)
    store.snapshot()
    store.replace(data)
    logging.info(f"Imported {args.path}: {len(data.accounts)} accounts, {len(data.ledger)} entries, {len(data.trades)} trades")
    return 0


def cmd_export_json(args, settings: Settings, store: SQLiteStore) -> int:
    from farmwallet.store.json_io import write_app_data

    write_app_data(args.path, store.load())
    logging.info(f"Exported document to {args.path}")
    return 0


def cmd_balances(args, settings: Settings, store: SQLiteStore) -> int:
    from farmwallet.ledger.balances import compute_account_balances

    data = store.load()
    _print_json([r.to_dict() for r in compute_account_balances(data.accounts, data.ledger, data.trades)])
    return 0


def _fx_rate(args, settings: Settings) -> Optional[float]:
    if args.fx_rate:
        return args.fx_rate
    if args.live:
        return _quote_client(settings).fx_rate()
    return None


def cmd_positions(args, settings: Settings, store: SQLiteStore) -> int:
    from farmwallet.ledger.positions import compute_positions
    from farmwallet.quotes.client import apply_quotes

    data = store.load()
    prices = data.prices
    if args.live:
        client = _quote_client(settings)
        prices = apply_quotes(prices, client.fetch({t.ticker for t in data.trades}))
    _print_json([p.to_dict() for p in compute_positions(data.trades, prices, data.accounts, fx_rate=_fx_rate(args, settings))])
    return 0


def cmd_networth(args, settings: Settings, store: SQLiteStore) -> int:
    from farmwallet.ledger.balances import (
        compute_account_balances,
        compute_monthly_net_worth,
        compute_total_net_worth,
    )
    from farmwallet.ledger.positions import compute_positions
    from farmwallet.metrics.app import set_net_worth

    data = store.load()
    rate = _fx_rate(args, settings)
    if args.monthly:
        _print_json([r.to_dict() for r in compute_monthly_net_worth(data.accounts, data.ledger, data.trades, rate)])
        return 0
    bal = compute_account_balances(data.accounts, data.ledger, data.trades)
    pos = compute_positions(data.trades, data.prices, data.accounts, fx_rate=rate)
    total = compute_total_net_worth(bal, pos, rate)
    set_net_worth(total)
    _print_json({"net_worth": total, "fx_rate": rate})
    return 0


def cmd_integrity(args, settings: Settings, store: SQLiteStore) -> int:
    from farmwallet.integrity.checks import detect_duplicates, merge_duplicates, remove_records, run_integrity_check

    if args.merge_duplicates:
        def merge(data):
            return remove_records(data, merge_duplicates(detect_duplicates(data.ledger, data.trades), keep_first=not args.keep_last))

        store.snapshot()
        removed = store.mutate(merge)
        logging.info(f"Removed {removed} duplicate record(s)")
    issues = run_integrity_check(store.load())
    _print_json([i.to_dict() for i in issues])
    return 1 if any(i.severity == "error" for i in issues) else 0


def cmd_report(args, settings: Settings, store: SQLiteStore) -> int:
    from farmwallet.reports.generate import write_report_bundle

    _print_json(write_report_bundle(store.load(), args.out, fx_rate=_fx_rate(args, settings)))
    return 0


def cmd_backup(args, settings: Settings, store: SQLiteStore) -> int:
    if args.restore is not None:
        store.restore_backup(args.restore)
    elif args.list:
        _print_json({"backups": store.list_backups(), "latest_integrity": store.latest_backup_integrity()})
    else:
        _print_json(store.snapshot())
    return 0


def cmd_dca_run(args, settings: Settings, store: SQLiteStore) -> int:
    from farmwallet.dca.scheduler import DcaScheduler

    scheduler = DcaScheduler(
        store,
        _quote_client(settings) if args.live else None,
        run_at=settings.dca.run_at,
        poll_seconds=settings.dca.poll_seconds,
        tz=settings.timezone,
    )
    _print_json([r.to_dict() for r in scheduler.run_once()])
    return 0


def cmd_sync_tickers(args, settings: Settings, store: SQLiteStore) -> int:
    from farmwallet.maintenance.tools import load_ticker_reference, sync_ticker_names

    reference = load_ticker_reference(args.reference)
    store.snapshot()
    _print_json(store.mutate(lambda data: sync_ticker_names(data, reference)))
    return 0


def cmd_rename_subcategory(args, settings: Settings, store: SQLiteStore) -> int:
    from farmwallet.maintenance.tools import rename_sub_category

    summary = store.mutate(lambda data: rename_sub_category(data, args.old, args.new))
    if args.include_backups:
        summary["backups"] = store.rewrite_backups(lambda data: sum(rename_sub_category(data, args.old, args.new).values()) > 0)
    _print_json(summary)
    return 0


def cmd_clean_text(args, settings: Settings, store: SQLiteStore) -> int:
    from farmwallet.maintenance.tools import strip_invalid_chars

    _print_json(store.mutate(strip_invalid_chars))
    return 0


def cmd_serve(args, settings: Settings, store: SQLiteStore) -> int:
    import uvicorn

    from farmwallet.api.server import create_app
    from farmwallet.metrics.app import start_metrics_server

    start_metrics_server(settings.metrics.port)
    quotes = _quote_client(settings) if args.live else None
    app = create_app(store=store, settings=settings, quotes=quotes, run_scheduler=args.dca)
    uvicorn.run(app, host=settings.api.host, port=settings.api.port)
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="farmwallet", description="Personal finance ledger")
    p.add_argument("--config", default="config/config.yaml")
    p.add_argument("--db", default=None, help="SQLite path (overrides config)")
    sub = p.add_subparsers(dest="command", required=True)

    s = sub.add_parser("import-json", help="replace the document with a legacy app-data.json")
    s.add_argument("path")
    s.set_defaults(func=cmd_import_json)

    s = sub.add_parser("export-json", help="write the document as legacy JSON")
    s.add_argument("path")
    s.set_defaults(func=cmd_export_json)

    s = sub.add_parser("balances")
    s.set_defaults(func=cmd_balances)

    for name, func in (("positions", cmd_positions), ("networth", cmd_networth)):
        s = sub.add_parser(name)
        s.add_argument("--fx-rate", type=float, default=None)
        s.add_argument("--live", action="store_true", help="fetch quotes/FX from Yahoo Finance")
        if name == "networth":
            s.add_argument("--monthly", action="store_true")
        s.set_defaults(func=func)

    s = sub.add_parser("integrity")
    s.add_argument("--merge-duplicates", action="store_true")
    s.add_argument("--keep-last", action="store_true")
    s.set_defaults(func=cmd_integrity)

    s = sub.add_parser("report", help="markdown summary, net-worth chart and CSV exports")
    s.add_argument("--out", default="reports")
    s.add_argument("--fx-rate", type=float, default=None)
    s.add_argument("--live", action="store_true", help="convert USD balances at the live USD/KRW rate")
    s.set_defaults(func=cmd_report)

    s = sub.add_parser("backup")
    s.add_argument("--list", action="store_true")
    s.add_argument("--restore", type=int, default=None)
    s.set_defaults(func=cmd_backup)

    s = sub.add_parser("dca-run", help="execute due DCA plans once")
    s.add_argument("--live", action="store_true")
    s.set_defaults(func=cmd_dca_run)

    s = sub.add_parser("sync-tickers")
    s.add_argument("reference", help="ticker.json with KR/US lists")
    s.set_defaults(func=cmd_sync_tickers)

    s = sub.add_parser("rename-subcategory")
    s.add_argument("old")
    s.add_argument("new")
    s.add_argument("--include-backups", action="store_true")
    s.set_defaults(func=cmd_rename_subcategory)

    s = sub.add_parser("clean-text")
    s.set_defaults(func=cmd_clean_text)

    s = sub.add_parser("serve")
    s.add_argument("--live", action="store_true")
    s.add_argument("--dca", action="store_true", help="run the DCA scheduler in-process")
    s.set_defaults(func=cmd_serve)
    return p


def main(argv: Optional[List[str]] = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    args = build_parser().parse_args(argv)
    settings = load_settings(args.config)
    if args.db:
        settings.storage.db_path = args.db
    logging.info(f"Using store {settings.storage.db_path} (tz={settings.timezone})")
    store = SQLiteStore(settings.storage.db_path, backup_keep=settings.storage.backup_keep)
    try:
        return args.func(args, settings, store)
    except (KeyError, ValueError) as e:
        logging.error(f"{args.command} failed: {e}")
        return 2


if __name__ == "__main__":
    sys.exit(main())
