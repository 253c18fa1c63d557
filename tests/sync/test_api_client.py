"""Unit tests for the invoicing API client."""

import unittest
from unittest.mock import MagicMock

import requests

from ar_aging.config import Settings
from ar_aging.errors import ConfigurationError, TransientFetchError
from ar_aging.sync.client import InvoiceApiClient


def make_response(status=200, payload=None, json_error=False):
    response = MagicMock()
    response.status_code = status
    response.ok = status < 400
    response.text = "error body"
    if json_error:
        response.json.side_effect = ValueError("no json")
    else:
        response.json.return_value = payload
    return response


class TestInvoiceApiClient(unittest.TestCase):
    """Test cases for InvoiceApiClient."""

    def setUp(self):
        self.session = MagicMock()
        self.client = InvoiceApiClient(
            "https://proxy.test/api", "client-1", "s3cret", timeout=5, session=self.session
        )

    def test_requires_credentials(self):
        with self.assertRaises(ConfigurationError):
            InvoiceApiClient("", "client-1", "s3cret")
        with self.assertRaises(ConfigurationError):
            InvoiceApiClient.from_settings(Settings())

    def test_first_invoice_page_query(self):
        self.session.get.return_value = make_response(payload=[{"InvoiceID": 1}])
        page = self.client.fetch_invoice_page(0, 1000)
        self.assertEqual(page, [{"InvoiceID": 1}])
        params = self.session.get.call_args.kwargs["params"]
        self.assertEqual(params["endpoint"], "/Invoices")
        self.assertEqual(params["filter"], "AmountRemaining gt 0")
        self.assertEqual(params["$orderby"], "InvoiceID asc")
        self.assertEqual(params["$top"], 1000)
        self.assertEqual(params["$expand"], "InvoiceOpportunities")
        self.assertEqual(params["clientId"], "client-1")
        self.assertEqual(self.session.get.call_args.kwargs["timeout"], 5)

    def test_cursor_is_added_to_filter(self):
        self.session.get.return_value = make_response(payload={"value": []})
        self.assertEqual(self.client.fetch_invoice_page(4200, 1000), [])
        params = self.session.get.call_args.kwargs["params"]
        self.assertEqual(params["filter"], "AmountRemaining gt 0 and InvoiceID gt 4200")

    def test_contacts_use_or_filter_and_key_by_id(self):
        self.session.get.return_value = make_response(
            payload={"value": [{"ContactID": 7, "Email": "a@x.test"}, {"ContactID": 9, "Email": "b@x.test"}]}
        )
        contacts = self.client.fetch_contacts([7, 8, 9])
        self.assertEqual(set(contacts), {7, 9})
        params = self.session.get.call_args.kwargs["params"]
        self.assertEqual(params["endpoint"], "/Contacts")
        self.assertEqual(params["filter"], "ContactID eq 7 or ContactID eq 8 or ContactID eq 9")

    def test_no_contact_ids_makes_no_request(self):
        self.assertEqual(self.client.fetch_contacts([]), {})
        self.session.get.assert_not_called()

    def test_http_error_raises_transient_fetch_error(self):
        self.session.get.return_value = make_response(status=502)
        with self.assertRaises(TransientFetchError):
            self.client.fetch_invoice_page(0, 1000)

    def test_connection_error_raises_transient_fetch_error(self):
        self.session.get.side_effect = requests.exceptions.ConnectionError("refused")
        with self.assertRaises(TransientFetchError):
            self.client.fetch_invoice_page(0, 1000)

    def test_invalid_json_raises_transient_fetch_error(self):
        self.session.get.return_value = make_response(json_error=True)
        with self.assertRaises(TransientFetchError):
            self.client.fetch_contacts([1])


if __name__ == "__main__":
    unittest.main()
