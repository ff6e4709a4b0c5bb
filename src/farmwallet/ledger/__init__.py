"""Ledger package.

Public API:
- compute_account_balances / compute_monthly_net_worth: cash balances and trend.
- compute_positions: open holdings with unrealized P&L.
- realized_pnl_by_trade / realized_gain_in_period: FIFO realized P&L.
"""

from .balances import compute_account_balances, compute_monthly_net_worth  # re-export
from .positions import compute_positions, make_trade, realized_gain_in_period, realized_pnl_by_trade  # re-export
