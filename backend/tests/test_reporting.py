"""
Reporting tests.

Verifies:
- CSV exports: exact headers, peso amounts, commas stripped from cells
- Dashboard figures (sales, cost of goods, expenses, open work)
- Chart buckets and analytics sections
"""

import csv
import io
from datetime import datetime

import pytest

from balepos.models import Bale, BaleStatus
from balepos.services import accounting_service, reporting_service
from balepos.services.reporting_service import CSV_HEADERS, ReportError

from conftest import checkout_items


def _rows(text):
    return list(csv.reader(io.StringIO(text)))


@pytest.fixture
def comma_bale(db_session):
    bale = Bale(name="Spring, Summer Mix", status=BaleStatus.ON_SALE, cost_cents=1_000_000, item_count=100)
    db_session.add(bale)
    db_session.commit()
    return bale


class TestCsvExport:

    def test_sales_export(self, db_session, comma_bale, live_session):
        checkout_items(comma_bale, str(live_session.id), "pawlover_jen", [15_050, 15_050])

        filename, text = reporting_service.export_csv("Sales", now=datetime(2026, 3, 7, 12, 0))
        assert filename == "balepos_sales_report_2026-03-07.csv"

        header, *rows = _rows(text)
        assert header == CSV_HEADERS["Sales"]
        assert len(rows) == 1
        row = dict(zip(header, rows[0]))
        assert row["Batch"] == "Spring  Summer Mix"
        assert row["Session"] == str(live_session.id)
        assert row["Quantity"] == "2"
        assert row["Price"] == "150.50"
        assert row["Total"] == "301"
        assert row["Payment Status"] == "Unpaid"

    def test_financial_export_includes_sales_income(self, db_session, bale, live_session):
        checkout_items(bale, str(live_session.id), "pawlover_jen", [10_000], payment_method="GCash")
        accounting_service.add_transaction({
            "type": "Expense", "amount_cents": 2_500, "wallet": "Cash",
            "category": "Packaging", "note": "tape, bubble wrap",
        })

        _, text = reporting_service.export_csv("Financial")
        header, *rows = _rows(text)
        assert header == CSV_HEADERS["Financial"]
        assert [r[2] for r in rows] == ["Expense", "Income"]
        assert rows[0][5] == "25"
        assert rows[0][6] == "tape  bubble wrap"
        assert rows[1][4] == "GCash"
        assert rows[1][5] == "100"
        assert rows[1][6] == "Order for pawlover_jen"

    def test_inventory_and_customers(self, db_session, bale, live_session, vip_customer):
        checkout_items(bale, str(live_session.id), vip_customer.username, [50_000])

        _, text = reporting_service.export_csv("Inventory")
        header, *rows = _rows(text)
        assert header == CSV_HEADERS["Inventory"]
        assert rows[0][1] == "Spring Mix"
        assert rows[0][5] == "1"
        assert rows[0][8] == "5.00%"

        _, text = reporting_service.export_csv("Customers")
        header, *rows = _rows(text)
        assert header == CSV_HEADERS["Customers"]
        assert rows == [["dogmom_ph", "Yes", "1", "500", "500.00", "Active"]]

    def test_unknown_kind(self, db_session):
        with pytest.raises(ReportError):
            reporting_service.export_csv("Payroll")


class TestDashboard:

    def test_today_figures(self, db_session, bale, live_session):
        checkout_items(bale, str(live_session.id), "pawlover_jen", [30_000, 25_000])
        accounting_service.add_transaction({
            "type": "Expense", "amount_cents": 5_000, "wallet": "Cash", "category": "Packaging",
        })

        stats = reporting_service.dashboard_stats()
        assert stats["sales_today_cents"] == 55_000
        # 10,000.00 bale / 100 pieces
        assert stats["cogs_today_cents"] == 20_000
        assert stats["expenses_today_cents"] == 5_000
        assert stats["profit_today_cents"] == 30_000
        assert stats["orders_today"] == 2
        assert stats["pending_payments"] == 2
        assert stats["to_ship"] == 2

    def test_hour_labels(self, db_session):
        points = reporting_service.chart_data("Today")
        assert len(points) == 24
        assert [points[i]["name"] for i in (0, 1, 12, 13)] == ["12MN", "1AM", "12NN", "1PM"]

    def test_month_and_year_buckets(self, db_session):
        now = datetime(2026, 2, 10)
        assert len(reporting_service.chart_data("Month", now=now)) == 28
        assert [p["name"] for p in reporting_service.chart_data("Year", now=now)][:3] == ["Jan", "Feb", "Mar"]

    def test_unknown_period(self, db_session):
        with pytest.raises(ReportError):
            reporting_service.chart_data("Decade")


class TestAnalytics:

    def test_sections(self, db_session, bale, live_session):
        checkout_items(bale, str(live_session.id), "pawlover_jen", [30_000, 10_000])
        accounting_service.add_transaction({
            "type": "Expense", "amount_cents": 4_000, "wallet": "Cash", "category": "Rent",
        })

        data = reporting_service.analytics("All")
        assert data["sales"]["total_cents"] == 40_000
        assert data["sales"]["count"] == 2
        assert data["sales"]["aov_cents"] == 20_000
        assert data["sales"]["by_batch"] == [{"name": "Spring Mix", "value_cents": 40_000}]
        assert data["financial"]["profit_cents"] == 36_000
        assert data["financial"]["expense_breakdown"] == [{"name": "Rent", "value_cents": 4_000}]
        assert data["inventory"]["sell_through_pct"] == 2.0
        assert data["customers"]["total"] == 1
        assert data["customers"]["top_spenders"] == [{"name": "pawlover_jen", "spent_cents": 40_000}]

    def test_range_start(self):
        now = datetime(2026, 3, 31, 9, 0)
        assert reporting_service.range_start("All", now) is None
        assert reporting_service.range_start("Week", now) == datetime(2026, 3, 24, 9, 0)
        assert reporting_service.range_start("Month", now) == datetime(2026, 2, 28, 9, 0)
        assert reporting_service.range_start("Year", now) == datetime(2025, 3, 31, 9, 0)
