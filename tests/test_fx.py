import pytest

from farmwallet.fx.conversion import record_fx_conversion
from farmwallet.ledger.balances import compute_account_balances
from farmwallet.store.schema import Account, AppData


def _data():
    return AppData(accounts=[
        Account(id="A", name="월급통장", type="checking"),
        Account(id="B", name="생활비", type="checking"),
        Account(id="S", name="증권", type="securities"),
        Account(id="U", name="달러통장", type="checking", currency="USD", initial_balance=500),
    ])


def test_krw_to_brokerage_usd():
    data = _data()
    entry = record_fx_conversion(data, "2024-02-01", "A", "S", 130_000, 100, 1300)
    assert entry in data.ledger
    assert entry.kind == "transfer"
    assert entry.category == "환전"
    assert (entry.currency, entry.to_currency, entry.to_amount) == ("KRW", "USD", 100)
    assert entry.description == "환전: 130,000 원 → 100.00 USD (환율: 1300.00)"
    rows = {r.account.id: r for r in compute_account_balances(data.accounts, data.ledger, [])}
    assert rows["A"].current_balance == -130_000
    assert rows["S"].usd_cash == 100
    assert rows["S"].current_balance == 0


def test_usd_account_to_krw():
    data = _data()
    entry = record_fx_conversion(data, "2024-02-01", "U", "A", 100, 130_000, 1300, description="달러 매도")
    assert (entry.currency, entry.to_currency) == ("USD", "KRW")
    assert entry.description == "달러 매도"
    rows = {r.account.id: r for r in compute_account_balances(data.accounts, data.ledger, [])}
    assert rows["U"].current_balance == 400
    assert rows["A"].current_balance == 130_000


def test_invalid_conversions():
    data = _data()
    with pytest.raises(ValueError):
        record_fx_conversion(data, "2024-02-01", "A", "A", 1, 1, 1)
    with pytest.raises(ValueError):
        record_fx_conversion(data, "2024-02-01", "A", "S", 1, 1, 0)
    with pytest.raises(ValueError):
        record_fx_conversion(data, "2024-02-01", "A", "B", 1000, 1, 1300)
    with pytest.raises(KeyError):
        record_fx_conversion(data, "2024-02-01", "A", "nope", 1000, 1, 1300)
    assert data.ledger == []
