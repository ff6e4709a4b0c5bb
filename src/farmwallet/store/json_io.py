"""Legacy `app-data.json` import/export.

JSON is an interchange format only; the live document lives in SQLite.
Writes go to a temp file in the target directory and are swapped in with
`os.replace`, retrying briefly when the target is locked.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Any, Dict, Union

from ..ledger.categories import merge_category_presets
from .schema import AppData

log = logging.getLogger("farmwallet.store")


def app_data_from_dict(raw: Dict[str, Any]) -> AppData:
    """Validate a legacy document; empty preset lists fall back to defaults.

    Raises ValueError (pydantic ValidationError) on malformed records.
    """
    data = AppData.model_validate(raw or {})
    data.category_presets = merge_category_presets(data.category_presets)
    return data


def read_app_data(path: Union[str, Path]) -> AppData:
    """Read a legacy JSON document. Missing, empty or unparsable => empty document."""
    p = Path(path)
    if not p.exists() or p.stat().st_size == 0:
        return app_data_from_dict({})
    try:
        with open(p, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        log.warning(f"Unreadable app data {p}: {e}; starting from an empty document")
        return app_data_from_dict({})
    if not isinstance(raw, dict):
        log.warning(f"App data {p} is not a JSON object; starting from an empty document")
        return app_data_from_dict({})
    return app_data_from_dict(raw)


def write_app_data(path: Union[str, Path], data: AppData, max_retries: int = 5) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    payload = data.model_dump(mode="json", by_alias=True, exclude_none=True)
    for attempt in range(max_retries):
        fd, tmp = tempfile.mkstemp(suffix=".json", prefix=".app-data_", dir=str(p.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, ensure_ascii=False, indent=2)
            os.replace(tmp, p)
            return
        except PermissionError:
            if os.path.exists(tmp):
                os.unlink(tmp)
            if attempt == max_retries - 1:
                raise
            time.sleep(0.2 * (attempt + 1))
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise
