import pytest

from farmwallet.ledger.positions import make_trade
from farmwallet.ledger.returns import trade_cash_flows, xirr


def test_xirr_one_year_ten_percent():
    r = xirr([("2023-01-01", -1000.0), ("2024-01-01", 1100.0)])
    assert r == pytest.approx(0.1, abs=1e-3)


def test_xirr_needs_mixed_signs():
    assert xirr([("2023-01-01", -1000.0)]) is None
    assert xirr([("2023-01-01", -1000.0), ("2024-01-01", -10.0)]) is None


def test_trade_cash_flows_investor_view():
    trades = [
        make_trade("s", "2024-03-01", "S", "005930", "sell", 1, 120),
        make_trade("b", "2024-01-01", "S", "005930", "buy", 2, 100),
    ]
    flows = trade_cash_flows(trades, 150.0, "2024-06-30")
    assert flows == [("2024-01-01", -200.0), ("2024-03-01", 120.0), ("2024-06-30", 150.0)]
