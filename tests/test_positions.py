import pytest

from farmwallet.ledger.positions import (
    compute_positions,
    make_trade,
    realized_gain_in_period,
    realized_pnl_by_trade,
    total_realized_pnl_krw,
)
from farmwallet.store.schema import Account, StockPrice


ACCOUNTS = [Account(id="S", name="증권", type="securities")]


def test_make_trade_derives_total_and_cash_impact():
    buy = make_trade("b", "2024-01-02", "S", "005930", "buy", 10, 100, fee=5)
    assert buy.total_amount == 1005
    assert buy.cash_impact == -1005
    sell = make_trade("s", "2024-01-03", "S", "005930", "sell", 10, 100, fee=5)
    assert sell.total_amount == 995
    assert sell.cash_impact == 995
    assert buy.name == "005930"


def test_partial_sell_reduces_cost_by_proceeds():
    trades = [
        make_trade("b1", "2024-01-02", "S", "005930", "buy", 10, 100),
        make_trade("s1", "2024-02-02", "S", "005930", "sell", 4, 150),
    ]
    prices = [StockPrice(ticker="005930", name="삼성전자", price=120)]
    [row] = compute_positions(trades, prices, ACCOUNTS)
    assert row.quantity == 6
    assert row.total_buy_amount == 400
    assert row.avg_price == pytest.approx(400 / 6)
    assert row.market_value == 720
    assert row.pnl == 320
    assert row.name == "삼성전자"
    assert row.currency == "KRW"


def test_closed_positions_are_dropped_and_codes_match_padded():
    trades = [
        make_trade("b1", "2024-01-02", "S", "5930", "buy", 1, 100),
        make_trade("s1", "2024-01-03", "S", "005930", "sell", 1, 110),
        make_trade("b2", "2024-01-04", "S", "035720", "buy", 2, 50),
    ]
    rows = compute_positions(trades, [], ACCOUNTS)
    assert [r.ticker for r in rows] == ["035720"]
    assert rows[0].market_price == 0


def test_usd_position_converted_when_rate_given():
    trades = [make_trade("b1", "2024-01-02", "S", "AAPL", "buy", 2, 100)]
    prices = [StockPrice(ticker="AAPL", price=150, currency="USD")]
    [native] = compute_positions(trades, prices, ACCOUNTS)
    assert native.currency == "USD"
    assert native.market_value == 300
    [krw] = compute_positions(trades, prices, ACCOUNTS, fx_rate=1300.0)
    assert krw.currency == "KRW"
    assert krw.total_buy_amount == pytest.approx(260_000)
    assert krw.market_value == pytest.approx(390_000)
    assert krw.market_price == 150


def test_fifo_realized_pnl():
    trades = [
        make_trade("b1", "2024-01-02", "S", "005930", "buy", 10, 100),
        make_trade("b2", "2024-01-05", "S", "005930", "buy", 10, 200),
        make_trade("s1", "2024-02-01", "S", "005930", "sell", 15, 250),
    ]
    pnl = realized_pnl_by_trade(trades)
    # lots: 10 @100 + 5 @200 = 2000 cost; proceeds 3750
    assert pnl == {"s1": pytest.approx(1750)}
    assert realized_gain_in_period(trades, "2024-02-01", "2024-02-28", {"S"}) == pytest.approx(1750)
    assert realized_gain_in_period(trades, "2024-03-01", "2024-03-31", {"S"}) == 0
    assert realized_gain_in_period(trades, "2024-02-01", "2024-02-28", {"other"}) == 0


def test_total_realized_pnl_converts_usd():
    trades = [
        make_trade("b1", "2024-01-02", "S", "AAPL", "buy", 1, 100),
        make_trade("s1", "2024-01-03", "S", "AAPL", "sell", 1, 110),
    ]
    assert total_realized_pnl_krw(trades, ACCOUNTS, 1300.0) == pytest.approx(13_000)
    assert total_realized_pnl_krw(trades, ACCOUNTS) == pytest.approx(10)
