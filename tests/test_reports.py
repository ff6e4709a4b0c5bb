import pandas as pd

from farmwallet.reports.export import monthly_summary, write_csv
from farmwallet.reports.format import format_amount, format_krw, format_usd
from farmwallet.reports.generate import write_report_bundle
from farmwallet.reports.ledger_report import build_report_context, render_ledger_report
from farmwallet.ledger.positions import make_trade
from farmwallet.store.schema import Account, AppData, LedgerEntry


def _data():
    return AppData(
        accounts=[
            Account(id="A", name="월급통장", initial_balance=1_000, cash_adjustment=500),
            Account(id="S", name="증권", type="securities", initial_cash_balance=2_000),
        ],
        ledger=[
            LedgerEntry(id="e1", date="2024-01-05", kind="income", category="급여", to_account_id="A",
                        amount=3_000_000),
            LedgerEntry(id="e2", date="2024-01-10", kind="expense", category="식비", sub_category="외식/배달",
                        description="치킨 | 맥주", from_account_id="A", amount=30_000),
            LedgerEntry(id="e3", date="2024-02-01", kind="transfer", category="저축이체",
                        from_account_id="A", to_account_id="S", amount=500_000),
        ],
        trades=[make_trade("t1", "2024-02-02", "S", "005930", "buy", 1, 70_000)],
    )


def test_formatters():
    assert format_krw(1234.6) == "1,235 원"
    assert format_usd(1234.5) == "1,234.50 USD"
    assert format_amount(10, "USD") == "10.00 USD"
    assert format_amount(10, "KRW") == "10 원"


def test_report_context_classifies_savings_transfers():
    data = _data()
    ctx = build_report_context(data.ledger, data.accounts)
    assert ctx["counts"] == {"income": 1, "expense": 1, "savings": 1, "transfer": 0}
    assert ctx["net"] == 3_000_000 - 30_000 - 500_000
    assert ctx["adjustments"] == [{"name": "월급통장", "value": 1_500}, {"name": "증권", "value": 2_000}]
    assert [m["month"] for m in ctx["months"]] == ["2024-01", "2024-02"]


def test_render_markdown():
    data = _data()
    md = render_ledger_report(data.ledger, data.accounts)
    assert md.startswith("# 가계부 정리")
    assert "## 통계" in md
    assert "## 수입 내역" in md
    assert "**1건, 합계 3,000,000 원**" in md
    assert "치킨 \\| 맥주" in md
    assert "월급통장 → 증권" in md
    assert "| 식비 > 외식/배달 | 30,000 원 |" in md


def test_csv_export_and_monthly_summary(tmp_path):
    data = _data()
    paths = write_csv(data, str(tmp_path))
    ledger = pd.read_csv(paths["ledger"], encoding="utf-8-sig")
    assert list(ledger["id"]) == ["e1", "e2", "e3"]
    trades = pd.read_csv(paths["trades"], encoding="utf-8-sig")
    assert trades.loc[0, "cash_impact"] == -70_000
    summary = monthly_summary(data).set_index("month")
    assert summary.loc["2024-01", "income"] == 3_000_000
    assert summary.loc["2024-02", "transfer"] == 500_000
    assert summary.loc["2024-02", "expense"] == 0


def test_report_bundle(tmp_path):
    paths = write_report_bundle(_data(), str(tmp_path / "out"))
    with open(paths["chart"], "rb") as f:
        assert f.read(4) == b"\x89PNG"
    with open(paths["markdown"], encoding="utf-8") as f:
        assert "가계부 정리" in f.read()
    assert set(paths) == {"markdown", "chart", "ledger", "trades"}


def test_report_bundle_without_activity_skips_chart(tmp_path):
    paths = write_report_bundle(AppData(), str(tmp_path))
    assert "chart" not in paths


def _fx_data():
    return AppData(
        accounts=[
            Account(id="K", name="원화통장", initial_balance=2_000_000),
            Account(id="U", name="달러통장", currency="USD"),
        ],
        ledger=[
            LedgerEntry(id="x1", date="2024-03-02", kind="transfer", category="환전",
                        from_account_id="K", to_account_id="U", amount=1_300_000, currency="KRW",
                        to_amount=1_000, to_currency="USD"),
            LedgerEntry(id="x2", date="2024-03-05", kind="expense", category="쇼핑",
                        from_account_id="U", amount=50, currency="USD"),
            LedgerEntry(id="x3", date="2024-03-06", kind="expense", category="식비",
                        from_account_id="K", amount=20_000),
        ],
    )


def test_report_totals_keep_usd_out_of_krw():
    data = _fx_data()
    ctx = build_report_context(data.ledger, data.accounts)
    assert ctx["totals"]["transfer"] == 1_300_000
    assert ctx["totals"]["expense"] == 20_000
    assert ctx["usd_totals"] == {"expense": 50}
    assert ctx["months"][0]["expense"] == 20_000
    assert ctx["categories"] == [("식비", 20_000)]

    md = render_ledger_report(data.ledger, data.accounts)
    assert "| 지출 | 50.00 USD |" in md
    assert "**2건, 합계 20,000 원 + 50.00 USD**" in md

    summary = monthly_summary(data).set_index("month")
    assert summary.loc["2024-03", "expense"] == 20_000
    assert summary.loc["2024-03", "transfer"] == 1_300_000
