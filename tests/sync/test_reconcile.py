"""Unit tests for invoice reconciliation."""

import unittest
from datetime import date, datetime, timezone

from ar_aging.db.models import SYNCED_COLUMNS
from ar_aging.sync.reconcile import process_invoice, reconcile

AS_OF = datetime(2024, 6, 30, 12, 0, tzinfo=timezone.utc)


def api_invoice(invoice_id, remaining=100.0, due="2024-05-16T00:00:00Z", **overrides):
    raw = {
        "InvoiceID": invoice_id,
        "InvoiceNumber": f"INV-{invoice_id}",
        "CompanyName": "Acme",
        "PropertyName": "Acme Plaza",
        "BranchName": "Phx - North",
        "Amount": remaining,
        "AmountRemaining": remaining,
        "DueDate": due,
        "InvoiceDate": "2024-04-16T00:00:00Z",
        "PrimaryContactName": "Pat Lee",
        "BillingContactName": "Sam Roe",
        "BillingContactEmail": "billing@acme.test",
        "PaymentTermsName": "Net 30",
        "InvoiceOpportunities": [
            {"OpportunityName": "Landscaping", "OpportunityNumber": 501},
            {"OpportunityName": "Irrigation", "OpportunityNumber": 502},
        ],
    }
    raw.update(overrides)
    return raw


class TestProcessInvoice(unittest.TestCase):
    """Test cases for process_invoice."""

    def test_maps_fields_and_derives_aging(self):
        row = process_invoice(api_invoice(7, remaining=120.0), AS_OF)
        self.assertEqual(row["invoice_id"], 7)
        self.assertEqual(row["invoice_number"], "INV-7")
        self.assertEqual(row["due_date"], date(2024, 5, 16))
        self.assertEqual(row["past_due"], 45)
        self.assertEqual(row["aging_category"], "Aging 31-60")
        self.assertEqual(row["aging_31_60"], 120.0)
        self.assertEqual(row["aging_1_30"] + row["aging_61_90"] + row["aging_91_120"] + row["aging_121_plus"], 0)
        self.assertEqual(row["opportunity_name"], "Landscaping; Irrigation")
        self.assertEqual(row["opportunity_number"], "501; 502")
        self.assertEqual(row["primary_contact_email"], "")

    def test_payload_excludes_local_columns(self):
        row = process_invoice(api_invoice(7), AS_OF)
        self.assertEqual(set(row), {"invoice_id", *SYNCED_COLUMNS})

    def test_malformed_values_are_defaulted(self):
        with self.assertLogs("ar_aging.sync.reconcile", level="WARNING"):
            row = process_invoice(api_invoice(8, AmountRemaining="abc", DueDate="garbage"), AS_OF)
        self.assertEqual(row["amount_remaining"], 0.0)
        self.assertIsNone(row["due_date"])
        self.assertEqual(row["past_due"], 0)
        self.assertEqual(row["aging_category"], "Not Past Due")

    def test_missing_invoice_id_is_skipped(self):
        self.assertIsNone(process_invoice(api_invoice(None), AS_OF))

    def test_bucket_partition_holds(self):
        for due in ("2024-06-29", "2024-05-01", "2024-03-15", "2024-02-20", "2023-01-01"):
            with self.subTest(due=due):
                row = process_invoice(api_invoice(1, remaining=99.99, due=due), AS_OF)
                buckets = [row[c] for c in ("aging_1_30", "aging_31_60", "aging_61_90", "aging_91_120", "aging_121_plus")]
                self.assertAlmostEqual(sum(buckets), 99.99)
                self.assertEqual(sum(1 for b in buckets if b), 1)


class TestReconcile(unittest.TestCase):
    """Test cases for reconcile."""

    def test_new_invoices_become_upserts(self):
        result = reconcile({}, [api_invoice(1), api_invoice(2)], as_of=AS_OF)
        self.assertEqual([r["invoice_id"] for r in result.upserts], [1, 2])
        self.assertEqual(result.deletes, [])

    def test_absent_invoices_are_deleted(self):
        store = reconcile({}, [api_invoice(1), api_invoice(2), api_invoice(3)], as_of=AS_OF).apply_to({})
        result = reconcile(store, [api_invoice(2)], as_of=AS_OF)
        self.assertEqual(result.deletes, [1, 3])

    def test_second_run_is_a_noop(self):
        batch = [api_invoice(1), api_invoice(2, remaining=250.0, due="2024-01-01")]
        store = reconcile({}, batch, as_of=AS_OF).apply_to({})
        second = reconcile(store, batch, as_of=AS_OF)
        self.assertTrue(second.is_noop)
        self.assertEqual(second.unchanged, 2)
        self.assertEqual(second.processed, 2)

    def test_changed_amount_is_upserted(self):
        store = reconcile({}, [api_invoice(1)], as_of=AS_OF).apply_to({})
        result = reconcile(store, [api_invoice(1, remaining=40.0)], as_of=AS_OF)
        self.assertEqual(len(result.upserts), 1)
        self.assertEqual(result.upserts[0]["amount_remaining"], 40.0)

    def test_local_fields_survive_reconciliation(self):
        store = reconcile({}, [api_invoice(1)], as_of=AS_OF).apply_to({})
        store[1]["is_ghosting"] = True
        store[1]["comments"] = "called twice"
        result = reconcile(store, [api_invoice(1, remaining=75.0, CompanyName="Acme Corp")], as_of=AS_OF)
        updated = result.apply_to(store)
        self.assertTrue(updated[1]["is_ghosting"])
        self.assertEqual(updated[1]["comments"], "called twice")
        self.assertEqual(updated[1]["company_name"], "Acme Corp")

    def test_bootstrap_suppresses_deletes(self):
        store = reconcile({}, [api_invoice(i) for i in range(1, 6)], as_of=AS_OF).apply_to({})
        for fresh in ([], [api_invoice(1)], [api_invoice(99)]):
            with self.subTest(fresh=len(fresh)):
                self.assertEqual(reconcile(store, fresh, is_bootstrap=True, as_of=AS_OF).deletes, [])

    def test_duplicate_ids_in_batch_collapse_to_last(self):
        result = reconcile({}, [api_invoice(1, remaining=10.0), api_invoice(1, remaining=20.0)], as_of=AS_OF)
        self.assertEqual(len(result.upserts), 1)
        self.assertEqual(result.upserts[0]["amount_remaining"], 20.0)

    def test_new_rows_get_local_defaults(self):
        store = reconcile({}, [api_invoice(1)], as_of=AS_OF).apply_to({})
        self.assertFalse(store[1]["is_ghosting"])
        self.assertEqual(store[1]["payment_status"], "No Follow Up")


if __name__ == "__main__":
    unittest.main()
