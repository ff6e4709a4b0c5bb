"""
Generate the report bundle for the current document: Markdown ledger
summary, net-worth chart PNG and CSV exports.

Usage (venv):
  farmwallet report --out reports
"""

from __future__ import annotations

import logging
import os
from typing import Dict, Optional

from ..ledger.balances import compute_monthly_net_worth
from ..store.schema import AppData
from .charts import save_net_worth_png
from .export import write_csv
from .ledger_report import render_ledger_report

log = logging.getLogger("farmwallet.reports")


def write_report_bundle(data: AppData, out_dir: str, fx_rate: Optional[float] = None) -> Dict[str, str]:
    os.makedirs(out_dir, exist_ok=True)
    paths: Dict[str, str] = {}

    md_path = os.path.join(out_dir, "ledger-report.md")
    with open(md_path, "w", encoding="utf-8") as f:
        f.write(render_ledger_report(data.ledger, data.accounts))
    paths["markdown"] = md_path

    rows = compute_monthly_net_worth(data.accounts, data.ledger, data.trades, fx_rate)
    if rows:
        paths["chart"] = save_net_worth_png(rows, os.path.join(out_dir, "images", "net-worth.png"))
    else:
        log.info("No dated activity; skipping net-worth chart")

    paths.update(write_csv(data, out_dir))
    log.info(f"Report written to: {out_dir}")
    return paths
