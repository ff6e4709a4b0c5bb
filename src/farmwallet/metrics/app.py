from __future__ import annotations

from typing import Optional
import logging
import os
from prometheus_client import Counter, Gauge, REGISTRY, start_http_server

log = logging.getLogger("farmwallet.metrics")

_store_writes: Optional[Counter] = None
_backups: Optional[Counter] = None
_quote_fetch: Optional[Counter] = None
_quote_cache_hits: Optional[Counter] = None
_dca_runs: Optional[Counter] = None
_net_worth: Optional[Gauge] = None


class _NoOp:
    def labels(self, *args, **kwargs):
        return self
    def inc(self, *args, **kwargs):
        return None
    def set(self, *args, **kwargs):
        return None


def _existing(name: str):
    try:
        coll = getattr(REGISTRY, "_names_to_collectors", {}).get(name)
        if coll is not None:
            return coll
        for coll in list(getattr(REGISTRY, "_collector_to_names", {}).keys()):  # type: ignore[attr-defined]
            if getattr(coll, "_name", None) == name:
                return coll
    except Exception:
        pass
    return _NoOp()


def _safe_counter(name: str, doc: str, labelnames):
    if os.getenv("DISABLE_PROMETHEUS", "0") == "1":
        return _NoOp()
    try:
        return Counter(name, doc, labelnames)
    except ValueError:
        # Already registered (module imported twice, or tests)
        return _existing(name)


def _safe_gauge(name: str, doc: str, labelnames=()):
    if os.getenv("DISABLE_PROMETHEUS", "0") == "1":
        return _NoOp()
    try:
        return Gauge(name, doc, labelnames)
    except ValueError:
        return _existing(name)


def get_store_writes_total():
    global _store_writes
    if _store_writes is None:
        _store_writes = _safe_counter("farmwallet_store_writes_total", "Store write transactions", ["kind"])
    return _store_writes


def get_backups_total():
    global _backups
    if _backups is None:
        _backups = _safe_counter("farmwallet_backups_total", "Backup snapshots written", [])
    return _backups


def get_quote_fetch_total():
    """Counter: quote provider calls, labeled by outcome (ok|error)."""
    global _quote_fetch
    if _quote_fetch is None:
        _quote_fetch = _safe_counter("farmwallet_quote_fetch_total", "Quote provider fetches", ["outcome"])
    return _quote_fetch


def get_quote_cache_hits_total():
    global _quote_cache_hits
    if _quote_cache_hits is None:
        _quote_cache_hits = _safe_counter("farmwallet_quote_cache_hits_total", "Quotes served from cache", [])
    return _quote_cache_hits


def get_dca_runs_total():
    """Counter: DCA plan evaluations, labeled by outcome (executed|skipped|failed)."""
    global _dca_runs
    if _dca_runs is None:
        _dca_runs = _safe_counter("farmwallet_dca_runs_total", "DCA plan evaluations", ["outcome"])
    return _dca_runs


def get_net_worth_gauge():
    global _net_worth
    if _net_worth is None:
        _net_worth = _safe_gauge("farmwallet_net_worth_krw", "Total net worth in KRW")
    return _net_worth


def inc_store_write(kind: str) -> None:
    try:
        get_store_writes_total().labels(kind).inc()
    except Exception:
        pass


def inc_backup() -> None:
    try:
        get_backups_total().inc()
    except Exception:
        pass


def inc_quote_fetch(outcome: str) -> None:
    try:
        get_quote_fetch_total().labels(outcome).inc()
    except Exception:
        pass


def inc_quote_cache_hit() -> None:
    try:
        get_quote_cache_hits_total().inc()
    except Exception:
        pass


def inc_dca_run(outcome: str) -> None:
    try:
        get_dca_runs_total().labels(outcome).inc()
    except Exception:
        pass


def set_net_worth(value: float) -> None:
    try:
        get_net_worth_gauge().set(float(value))
    except Exception:
        pass


def start_metrics_server(port: int, addr: str = "0.0.0.0") -> Optional[int]:
    """Expose /metrics on `port`; returns the port, or None when disabled or
    the port cannot be bound (the CLI keeps serving the API either way)."""
    if os.getenv("DISABLE_PROMETHEUS", "0") == "1":
        log.info("Prometheus disabled; not starting metrics server")
        return None
    try:
        start_http_server(port, addr=addr)
    except OSError as e:
        log.warning(f"Metrics server not started on {addr}:{port}: {e}")
        return None
    log.info(f"Prometheus metrics server started on {addr}:{port}")
    return port
