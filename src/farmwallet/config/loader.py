"""
Configuration loader for farmwallet.

What it does:
- Reads static settings from `config/config.yaml` (missing file => defaults).
- Applies environment overrides: `FARMWALLET_DB_PATH`, `FARMWALLET_TIMEZONE`,
  `FARMWALLET_API_PORT`.
- Validates the result with Pydantic models.

Where it is used:
- `farmwallet.main` builds a `Settings` object for every CLI command.
- `farmwallet.api.server.create_app` uses it when no store is injected.
"""

import os
import yaml
from typing import Any, Dict
from zoneinfo import ZoneInfo
from pydantic import BaseModel, field_validator
import pathlib


class StorageConfig(BaseModel):
    db_path: str = "data/farmwallet.sqlite"
    backup_keep: int = 5

    @field_validator("backup_keep")
    @classmethod
    def positive_keep(cls, v):
        if v < 1:
            raise ValueError("storage.backup_keep must be >= 1")
        return v


class QuoteConfig(BaseModel):
    """Quote cache and batching parameters."""
    cache_ttl_seconds: int = 300
    chunk_size: int = 30
    fx_symbol: str = "USDKRW=X"


class DcaConfig(BaseModel):
    run_at: str = "10:30"
    poll_seconds: int = 60

    @field_validator("run_at")
    @classmethod
    def hhmm(cls, v):
        parts = v.split(":")
        if len(parts) != 2 or not all(p.isdigit() for p in parts):
            raise ValueError(f"dca.run_at must be HH:MM, got {v!r}")
        h, m = int(parts[0]), int(parts[1])
        if not (0 <= h < 24 and 0 <= m < 60):
            raise ValueError(f"dca.run_at out of range: {v!r}")
        return v


class BudgetConfig(BaseModel):
    warning_percent: float = 80.0


class ApiConfig(BaseModel):
    host: str = "127.0.0.1"
    port: int = 8080


class MetricsConfig(BaseModel):
    port: int = 8001


class Settings(BaseModel):
    """Runtime settings assembled from YAML + environment variables."""
    storage: StorageConfig = StorageConfig()
    timezone: str = "Asia/Seoul"
    quotes: QuoteConfig = QuoteConfig()
    dca: DcaConfig = DcaConfig()
    budget: BudgetConfig = BudgetConfig()
    api: ApiConfig = ApiConfig()
    metrics: MetricsConfig = MetricsConfig()

    @field_validator("timezone")
    @classmethod
    def known_timezone(cls, v):
        try:
            ZoneInfo(v)
        except Exception:
            raise ValueError(f"Unknown timezone: {v}")
        return v


def _read_yaml(path: str) -> Dict[str, Any]:
    p = pathlib.Path(path)
    if not p.exists():
        return {}
    with open(p, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def load_settings(path: str = "config/config.yaml") -> Settings:
    """Load YAML config, apply env-var overrides, and return Settings.

    Raises ValueError (pydantic ValidationError) on malformed values.
    """
    config = _read_yaml(path)
    storage = dict(config.get("storage") or {})
    api = dict(config.get("api") or {})
    db_path = os.getenv("FARMWALLET_DB_PATH")
    if db_path:
        storage["db_path"] = db_path
    port = os.getenv("FARMWALLET_API_PORT")
    if port:
        if not port.isdigit():
            raise ValueError(f"FARMWALLET_API_PORT must be an integer, got {port!r}")
        api["port"] = int(port)
    config["storage"] = storage
    config["api"] = api
    tz = os.getenv("FARMWALLET_TIMEZONE")
    if tz:
        config["timezone"] = tz
    return Settings(**config)
