"""
Chart utilities: monthly net-worth line chart saved as PNG.
"""

from __future__ import annotations

import os
from datetime import datetime
from typing import List

import matplotlib

# Use a non-interactive backend for headless environments
matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402
import matplotlib.dates as mdates  # noqa: E402
from matplotlib.ticker import FuncFormatter  # noqa: E402

from ..ledger.model import MonthlyNetWorthRow  # noqa: E402


def save_net_worth_png(rows: List[MonthlyNetWorthRow], out_path: str, title: str = "Net worth (cash)") -> str:
    """Render the monthly net-worth series and save to `out_path` (PNG).

    Returns the absolute path to the saved file.
    """
    if not rows:
        raise ValueError("No net-worth rows provided for charting")
    parent = os.path.dirname(out_path)
    if parent:
        os.makedirs(parent, exist_ok=True)

    xs = [mdates.date2num(datetime.strptime(r.month, "%Y-%m")) for r in rows]
    ys = [r.net_worth for r in rows]

    fig, ax = plt.subplots(figsize=(10, 4))
    ax.plot(xs, ys, marker="o", linewidth=1.5, color="#2a9d8f")
    ax.fill_between(xs, ys, alpha=0.1, color="#2a9d8f")
    ax.xaxis.set_major_formatter(mdates.DateFormatter("%Y-%m"))
    ax.yaxis.set_major_formatter(FuncFormatter(lambda v, _pos: f"{v:,.0f}"))
    ax.set_title(title)
    ax.grid(True, alpha=0.3)
    fig.autofmt_xdate()
    fig.tight_layout()
    fig.savefig(out_path, dpi=120)
    plt.close(fig)
    return os.path.abspath(out_path)
