"""Unit tests for monthly snapshots."""

import unittest
from datetime import date
from unittest.mock import patch

from conftest import BaseTestCase
from ar_aging.aggregation.snapshots import (
    TOP_COMPANIES,
    build_snapshot,
    create_monthly_snapshots,
    last_day_of_month,
    list_snapshots,
    month_over_month_change,
    save_snapshot,
)
from ar_aging.db.invoices import InvoiceRecord
from ar_aging.db.models import MonthlySnapshot

SNAPSHOT_DATE = date(2024, 6, 30)


def records():
    return [
        InvoiceRecord(invoice_id=1, company_name="Acme", branch_name="Phx - North",
                      amount_remaining=100.0, aging_1_30=100.0),
        InvoiceRecord(invoice_id=2, company_name="Acme", branch_name="Corporate",
                      amount_remaining=200.0, aging_61_90=200.0),
        InvoiceRecord(invoice_id=3, company_name="Bolt", branch_name="Las Vegas - Strip",
                      amount_remaining=50.0, aging_121_plus=50.0),
    ]


class TestBuildSnapshot(unittest.TestCase):
    """Test cases for build_snapshot."""

    def test_totals_and_counts(self):
        data = build_snapshot(records(), "all", SNAPSHOT_DATE)
        self.assertEqual(data.snapshot_date, SNAPSHOT_DATE)
        self.assertEqual(data.total_outstanding, 350.0)
        self.assertEqual(data.invoice_count, 3)
        self.assertEqual(data.aging_61_90, 200.0)
        self.assertEqual(data.count_1_30, 1)
        self.assertEqual(data.count_121_plus, 1)
        self.assertEqual(data.company_breakdown[0]["company"], "Acme")
        self.assertEqual(data.company_breakdown[0]["total"], 300.0)
        self.assertEqual(data.company_breakdown[0]["count"], 2)

    def test_region_scoping(self):
        phoenix = build_snapshot(records(), "phoenix", SNAPSHOT_DATE)
        vegas = build_snapshot(records(), "las-vegas", SNAPSHOT_DATE)
        self.assertEqual(phoenix.invoice_count, 2)
        self.assertEqual(vegas.invoice_count, 1)
        self.assertEqual([c["company"] for c in vegas.company_breakdown], ["Bolt"])

    def test_breakdown_is_capped(self):
        many = [
            InvoiceRecord(invoice_id=i, company_name=f"Co {i:02d}", amount_remaining=float(i), aging_1_30=float(i))
            for i in range(1, 31)
        ]
        data = build_snapshot(many, "all", "2024-06-30")
        self.assertEqual(len(data.company_breakdown), TOP_COMPANIES)
        self.assertEqual(data.company_breakdown[0]["company"], "Co 30")

    def test_invalid_date(self):
        with self.assertRaises(ValueError):
            build_snapshot(records(), "all", "not a date")


class TestSnapshotPersistence(BaseTestCase):
    """Test cases for saving and listing snapshots."""

    def test_same_date_and_region_is_overwritten(self):
        save_snapshot(self.db, build_snapshot(records(), "all", SNAPSHOT_DATE), "Dana Whit")
        self.db.commit()
        save_snapshot(self.db, build_snapshot(records()[:1], "all", SNAPSHOT_DATE), "Lee Park")
        self.db.commit()

        rows = self.db.query(MonthlySnapshot).all()
        self.assertEqual(len(rows), 1)
        self.db.refresh(rows[0])
        self.assertEqual(rows[0].invoice_count, 1)
        self.assertEqual(rows[0].total_outstanding, 100.0)
        self.assertEqual(rows[0].created_by, "Lee Park")

    def test_create_monthly_snapshots_covers_every_region(self):
        snapshots = create_monthly_snapshots(self.db, records(), "Dana Whit", SNAPSHOT_DATE)
        self.db.commit()
        self.assertEqual([s.region for s in snapshots], ["all", "phoenix", "las-vegas"])
        self.assertEqual(self.db.query(MonthlySnapshot).count(), 3)
        stored = list_snapshots(self.db, "phoenix")[0]
        self.assertEqual(stored.total_outstanding, 300.0)
        self.assertEqual(stored.company_breakdown[0]["company"], "Acme")

    @patch("ar_aging.aggregation.snapshots.date")
    def test_default_date_is_month_end(self, mock_date):
        mock_date.today.return_value = date(2024, 2, 10)
        snapshots = create_monthly_snapshots(self.db, records(), "Dana Whit")
        self.assertEqual(snapshots[0].snapshot_date, date(2024, 2, 29))

    def test_list_snapshots_newest_first(self):
        for day in (date(2024, 4, 30), date(2024, 6, 30), date(2024, 5, 31)):
            save_snapshot(self.db, build_snapshot(records(), "all", day), "Dana Whit")
        self.db.commit()
        self.assertEqual(
            [s.snapshot_date for s in list_snapshots(self.db, "all")],
            [date(2024, 6, 30), date(2024, 5, 31), date(2024, 4, 30)],
        )


class TestKpiHelpers(unittest.TestCase):
    """Test cases for month-end and month-over-month helpers."""

    def test_last_day_of_month(self):
        self.assertEqual(last_day_of_month(date(2023, 2, 3)), date(2023, 2, 28))
        self.assertEqual(last_day_of_month(date(2024, 12, 31)), date(2024, 12, 31))

    def test_month_over_month_change(self):
        self.assertEqual(month_over_month_change(110.0, 100.0), 10.0)
        self.assertEqual(month_over_month_change(75.0, 100.0), -25.0)
        self.assertIsNone(month_over_month_change(75.0, 0))
        self.assertIsNone(month_over_month_change(75.0, None))


if __name__ == "__main__":
    unittest.main()
