"""
HTTP client for the invoicing API proxy.

The proxy takes the client credentials, the upstream endpoint and an OData
filter as query parameters, and returns either a JSON array or an object with
a ``value`` array. Connection pooling and retry with backoff are handled by a
requests Session; any failure that survives the retries is raised as
TransientFetchError for the caller to decide how fatal it is.
"""

from typing import Any, Dict, Iterable, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ar_aging.config import Settings
from ar_aging.errors import ConfigurationError, TransientFetchError
from ar_aging.logging_config import get_logger

logger = get_logger(__name__)

INVOICES_ENDPOINT = "/Invoices"
CONTACTS_ENDPOINT = "/Contacts"


class InvoiceApiClient:
    """Client for the invoice and contact list endpoints.

    Args:
        base_url: Proxy URL.
        client_id: API client ID.
        secret: API secret.
        timeout: Per-request timeout in seconds.
        total_retries: Retries for connection errors and 429/5xx responses.
        backoff_factor: delay = backoff_factor * (2 ** retry_count).
        session: Optional pre-built requests Session (used by tests).
    """

    def __init__(
        self,
        base_url: str,
        client_id: str,
        secret: str,
        timeout: int = 30,
        total_retries: int = 3,
        backoff_factor: float = 1.0,
        session: Optional[requests.Session] = None,
    ):
        if not base_url or not client_id or not secret:
            raise ConfigurationError("Invoicing API URL, client ID and secret are required")
        self.base_url = base_url
        self.client_id = client_id
        self.secret = secret
        self.timeout = timeout
        self.session = session or self._create_session(total_retries, backoff_factor)

    @classmethod
    def from_settings(cls, settings: Settings) -> "InvoiceApiClient":
        return cls(
            base_url=settings.invoice_api_url,
            client_id=settings.invoice_api_client_id,
            secret=settings.invoice_api_secret,
            timeout=settings.http_timeout,
            total_retries=settings.http_retries,
        )

    @staticmethod
    def _create_session(total_retries: int, backoff_factor: float) -> requests.Session:
        session = requests.Session()
        retry_strategy = Retry(
            total=total_retries,
            backoff_factor=backoff_factor,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET"],
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry_strategy, pool_connections=4, pool_maxsize=4)
        session.mount("https://", adapter)
        session.mount("http://", adapter)
        return session

    def _get_list(self, endpoint: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        query = {"clientId": self.client_id, "secret": self.secret, "endpoint": endpoint}
        query.update(params)
        try:
            response = self.session.get(
                self.base_url,
                params=query,
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise TransientFetchError(f"GET {endpoint} failed: {e}") from e

        if not response.ok:
            raise TransientFetchError(
                f"GET {endpoint} failed: {response.status_code} - {response.text[:200]}"
            )
        try:
            payload = response.json()
        except ValueError as e:
            raise TransientFetchError(f"GET {endpoint} returned invalid JSON") from e

        if isinstance(payload, list):
            return payload
        if isinstance(payload, dict):
            return payload.get("value") or []
        raise TransientFetchError(f"GET {endpoint} returned unexpected payload type {type(payload).__name__}")

    def fetch_invoice_page(self, after_id: int, page_size: int) -> List[Dict[str, Any]]:
        """Fetch one page of open invoices with InvoiceID greater than ``after_id``.

        Raises:
            TransientFetchError: If the request fails after retries.
        """
        invoice_filter = "AmountRemaining gt 0"
        if after_id > 0:
            invoice_filter = f"{invoice_filter} and InvoiceID gt {after_id}"
        return self._get_list(
            INVOICES_ENDPOINT,
            {
                "filter": invoice_filter,
                "$orderby": "InvoiceID asc",
                "$top": page_size,
                "$expand": "InvoiceOpportunities",
            },
        )

    def fetch_contacts(self, contact_ids: Iterable[int]) -> Dict[int, Dict[str, Any]]:
        """Resolve a batch of contact IDs to contact objects.

        Returns:
            Dict[int, Dict[str, Any]]: ContactID -> contact; unknown IDs are absent.

        Raises:
            TransientFetchError: If the request fails after retries.
        """
        ids = [int(i) for i in contact_ids]
        if not ids:
            return {}
        contact_filter = " or ".join(f"ContactID eq {i}" for i in ids)
        contacts = self._get_list(CONTACTS_ENDPOINT, {"filter": contact_filter, "$top": len(ids)})
        result: Dict[int, Dict[str, Any]] = {}
        for contact in contacts:
            contact_id = contact.get("ContactID") if isinstance(contact, dict) else None
            if contact_id:
                result[int(contact_id)] = contact
        return result

    def close(self):
        self.session.close()
        logger.info("Invoicing API session closed")
