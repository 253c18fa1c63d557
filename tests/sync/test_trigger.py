"""Unit tests for the authenticated sync trigger and caller resolution."""

import unittest
from unittest.mock import MagicMock

import requests

from ar_aging.config import Settings
from ar_aging.errors import (
    AuthenticationError,
    ConfigurationError,
    PersistenceWriteError,
    SyncInProgressError,
)
from ar_aging.sync.auth import resolve_caller
from ar_aging.sync.orchestrator import SyncResult
from ar_aging.sync.trigger import trigger_sync

SETTINGS = Settings(identity_url="https://id.test", identity_api_key="anon-key")


class TestTriggerSync(unittest.TestCase):
    """Test cases for trigger_sync."""

    def setUp(self):
        self.resolve = MagicMock(return_value="Dana Whit")
        self.runner = MagicMock(return_value=SyncResult(count=12, upserted=3))

    def trigger(self, header="Bearer token"):
        return trigger_sync(header, settings=SETTINGS, resolve=self.resolve, runner=self.runner)

    def test_success_reports_count(self):
        body, status = self.trigger()
        self.assertEqual(status, 200)
        self.assertTrue(body["success"])
        self.assertEqual(body["count"], 12)
        self.assertEqual(body["message"], "Successfully synced 12 invoices")
        self.runner.assert_called_once_with("Dana Whit", settings=SETTINGS)

    def test_unauthenticated_caller_gets_401_without_sync(self):
        self.resolve.side_effect = AuthenticationError("Unauthorized - Invalid session")
        body, status = self.trigger()
        self.assertEqual(status, 401)
        self.assertIn("Unauthorized", body["error"])
        self.runner.assert_not_called()

    def test_running_sync_gets_409(self):
        self.runner.side_effect = SyncInProgressError("A sync is already running for this store")
        _, status = self.trigger()
        self.assertEqual(status, 409)

    def test_write_failure_gets_500_with_batch(self):
        self.runner.side_effect = PersistenceWriteError("Failed to upsert invoices batch 2: boom", batch=2)
        body, status = self.trigger()
        self.assertEqual(status, 500)
        self.assertEqual(body["batch"], 2)
        self.assertIn("batch 2", body["details"])

    def test_configuration_error_gets_500(self):
        self.resolve.side_effect = ConfigurationError("IDENTITY_URL and IDENTITY_API_KEY must be set")
        _, status = self.trigger()
        self.assertEqual(status, 500)


class TestResolveCaller(unittest.TestCase):
    """Test cases for resolve_caller."""

    def setUp(self):
        self.session = MagicMock()

    def respond(self, status, payload=None):
        response = MagicMock(status_code=status)
        response.json.return_value = payload
        self.session.get.return_value = response

    def test_prefers_full_name(self):
        self.respond(200, {"email": "dana@x.test", "user_metadata": {"full_name": "Dana Whit"}})
        self.assertEqual(resolve_caller("Bearer abc", SETTINGS, self.session), "Dana Whit")
        kwargs = self.session.get.call_args.kwargs
        self.assertEqual(kwargs["headers"]["Authorization"], "Bearer abc")
        self.assertEqual(kwargs["headers"]["apikey"], "anon-key")
        self.assertEqual(self.session.get.call_args.args[0], "https://id.test/auth/v1/user")

    def test_falls_back_to_email(self):
        self.respond(200, {"email": "dana@x.test", "user_metadata": {}})
        self.assertEqual(resolve_caller("Bearer abc", SETTINGS, self.session), "dana@x.test")

    def test_missing_header_is_rejected_without_request(self):
        for header in (None, "", "Basic abc", "Bearer "):
            with self.subTest(header=header):
                with self.assertRaises(AuthenticationError):
                    resolve_caller(header, SETTINGS, self.session)
        self.session.get.assert_not_called()

    def test_rejected_token(self):
        self.respond(401, {"msg": "invalid JWT"})
        with self.assertRaises(AuthenticationError):
            resolve_caller("Bearer expired", SETTINGS, self.session)

    def test_unreachable_provider(self):
        self.session.get.side_effect = requests.exceptions.Timeout()
        with self.assertRaises(AuthenticationError):
            resolve_caller("Bearer abc", SETTINGS, self.session)

    def test_unconfigured_provider(self):
        with self.assertRaises(ConfigurationError):
            resolve_caller("Bearer abc", Settings(), self.session)


if __name__ == "__main__":
    unittest.main()
