"""Invoice sync: invoicing API -> reconciliation -> database.

One run paginates the open invoices and resolves contact emails. It
reconciles the batch against the stored synced columns and applies deletes and
upserts inside a single transaction. Only one run per store may be active at a
time.
"""

import threading
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ar_aging.config import Settings, load_settings
from ar_aging.db.invoices import is_bootstrap_state, load_synced_state
from ar_aging.db.models import SYNCED_COLUMNS, Invoice
from ar_aging.db.session import get_db_session
from ar_aging.db.system_settings import record_sync_time
from ar_aging.db.upsert import bulk_upsert
from ar_aging.errors import (
    AuthenticationError,
    PersistenceWriteError,
    SyncInProgressError,
    TransientFetchError,
)
from ar_aging.logging_config import get_logger
from ar_aging.metrics import (
    api_fetch_failures_total,
    invoices_synced,
    measure_duration,
    sync_duration_seconds,
)
from ar_aging.sync.client import InvoiceApiClient
from ar_aging.sync.reconcile import ReconcileResult, reconcile

logger = get_logger(__name__)

CONTACT_FIELDS = (
    ("BillingContactID", "BillingContactEmail"),
    ("PrimaryContactID", "PrimaryContactEmail"),
)

_store_locks: Dict[str, threading.Lock] = {}
_store_locks_guard = threading.Lock()


@contextmanager
def _single_flight(store_key: str):
    with _store_locks_guard:
        lock = _store_locks.setdefault(store_key, threading.Lock())
    if not lock.acquire(blocking=False):
        raise SyncInProgressError("A sync is already running for this store")
    try:
        yield
    finally:
        lock.release()


def _chunks(items: Sequence, size: int) -> Iterable[Sequence]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


@dataclass
class FetchOutcome:
    invoices: List[Dict[str, Any]]
    pages: int
    complete: bool
    truncated: bool


@dataclass
class SyncResult:
    """Summary of a finished sync.

    Attributes:
        count (int): Invoices fetched and reconciled.
        upserted (int): Invoices inserted or changed.
        deleted (int): Paid-off invoices removed.
        pages (int): Invoice pages requested.
        truncated (bool): The page ceiling was hit with more data upstream.
        complete (bool): Pagination ran to the end; deletes are withheld otherwise.
        synced_at (datetime): Reference time used for aging.
    """

    count: int
    upserted: int = 0
    deleted: int = 0
    pages: int = 0
    truncated: bool = False
    complete: bool = True
    synced_at: Optional[datetime] = None

    @property
    def message(self) -> str:
        if self.count == 0:
            return "No invoices found"
        message = f"Successfully synced {self.count} invoices"
        if self.truncated:
            message += " (stopped at page limit; results are partial)"
        elif not self.complete:
            message += " (an upstream page failed; results are partial)"
        return message


def fetch_all_invoices(client: InvoiceApiClient, page_size: int, max_pages: int) -> FetchOutcome:
    """Page through open invoices using the highest InvoiceID seen as cursor.

    A failed page ends pagination with what was fetched so far. Reaching
    ``max_pages`` while pages are still full marks the outcome truncated; both
    leave it incomplete.
    """
    invoices: List[Dict[str, Any]] = []
    last_max_id = 0
    pages = 0
    complete = True
    truncated = False

    while True:
        if pages >= max_pages:
            truncated = True
            complete = False
            logger.warning(f"Stopped at safety limit of {max_pages} pages")
            break
        pages += 1
        try:
            page = client.fetch_invoice_page(last_max_id, page_size)
        except TransientFetchError as e:
            api_fetch_failures_total.labels(stage="invoices").inc()
            logger.warning(f"Invoice page {pages} failed, treating as end of data: {e}", extra={"page": pages})
            complete = False
            break

        if not page:
            logger.info("No more invoices", extra={"page": pages})
            break

        ids = []
        for inv in page:
            try:
                ids.append(int(inv.get("InvoiceID")))
            except (TypeError, ValueError):
                continue
        invoices.extend(page)
        logger.info(
            f"Page {pages}: got {len(page)} invoices"
            + (f" (ID range: {min(ids)} to {max(ids)})" if ids else ""),
            extra={"page": pages},
        )

        if not ids or max(ids) <= last_max_id:
            logger.warning("Invoice cursor did not advance; stopping pagination", extra={"page": pages})
            complete = False
            break
        last_max_id = max(ids)

        if len(page) < page_size:
            logger.info("Last page reached", extra={"page": pages})
            break

    logger.info(f"Fetched {len(invoices)} total invoices")
    return FetchOutcome(invoices=invoices, pages=pages, complete=complete, truncated=truncated)


def collect_contact_ids(invoices: Iterable[Dict[str, Any]]) -> List[int]:
    """Distinct billing/primary contact IDs referenced by the invoices, in first-seen order."""
    seen: Dict[int, None] = {}
    for inv in invoices:
        for id_field, _ in CONTACT_FIELDS:
            value = inv.get(id_field)
            if not value:
                continue
            try:
                seen.setdefault(int(value), None)
            except (TypeError, ValueError):
                logger.warning(f"Ignoring malformed {id_field}: {value!r}")
    return list(seen)


def fetch_contacts_by_ids(
    client: InvoiceApiClient,
    contact_ids: Sequence[int],
    batch_size: int = 20,
    delay: float = 0.1,
    sleep: Callable[[float], None] = time.sleep,
) -> Dict[int, Dict[str, Any]]:
    """Resolve contacts in fixed-size batches, pausing ``delay`` seconds between batches.

    A failed batch is logged and skipped; its contacts stay unresolved.
    """
    contact_map: Dict[int, Dict[str, Any]] = {}
    batches = list(_chunks(list(contact_ids), batch_size))
    for number, batch in enumerate(batches, start=1):
        try:
            contact_map.update(client.fetch_contacts(batch))
        except TransientFetchError as e:
            api_fetch_failures_total.labels(stage="contacts").inc()
            logger.warning(f"Contact batch {number} failed, leaving emails blank: {e}", extra={"batch": number})
        if number < len(batches):
            sleep(delay)
    logger.info(f"Fetched {len(contact_map)} of {len(contact_ids)} contacts")
    return contact_map


def enrich_invoices(
    invoices: Iterable[Dict[str, Any]], contact_map: Dict[int, Dict[str, Any]]
) -> List[Dict[str, Any]]:
    """Return copies of the invoices with billing/primary contact emails attached."""
    enriched = []
    for inv in invoices:
        inv = dict(inv)
        for id_field, email_field in CONTACT_FIELDS:
            try:
                contact = contact_map.get(int(inv.get(id_field) or 0))
            except (TypeError, ValueError):
                contact = None
            if contact is not None:
                inv[email_field] = contact.get("Email") or ""
        enriched.append(inv)
    return enriched


def write_reconciled(
    db: Session,
    result: ReconcileResult,
    synced_at: datetime,
    batch_size: int = 500,
) -> None:
    """Apply deletes, then upserts in batches, within the caller's transaction.

    Raises:
        PersistenceWriteError: On the first failing statement. Nothing after it
            is attempted; the session is expected to roll back.
    """
    if result.deletes:
        try:
            for chunk in _chunks(result.deletes, batch_size):
                db.query(Invoice).filter(Invoice.invoice_id.in_(list(chunk))).delete(
                    synchronize_session=False
                )
        except SQLAlchemyError as e:
            raise PersistenceWriteError(f"Failed to delete paid invoices: {e}") from e
        logger.info(f"Deleted {len(result.deletes)} paid-off invoices")

    update_columns = SYNCED_COLUMNS + ("last_synced_at", "updated_at")
    for number, batch in enumerate(_chunks(result.upserts, batch_size), start=1):
        rows = [dict(row, last_synced_at=synced_at, updated_at=synced_at) for row in batch]
        try:
            bulk_upsert(db, Invoice, rows, ["invoice_id"], update_columns=update_columns)
        except SQLAlchemyError as e:
            raise PersistenceWriteError(
                f"Failed to upsert invoices batch {number}: {e}", batch=number
            ) from e
        logger.info(f"Upserted batch {number}: {len(rows)} records", extra={"batch": number})


def _stamp_legacy_rows(db: Session, synced_at: datetime) -> int:
    try:
        return (
            db.query(Invoice)
            .filter(Invoice.last_synced_at.is_(None))
            .update({Invoice.last_synced_at: synced_at}, synchronize_session=False)
        )
    except SQLAlchemyError as e:
        raise PersistenceWriteError(f"Failed to mark legacy invoices as migrated: {e}") from e


@measure_duration(sync_duration_seconds)
def run_sync(
    caller_identity: str,
    client: Optional[InvoiceApiClient] = None,
    settings: Optional[Settings] = None,
    session_scope=get_db_session,
    as_of: Optional[datetime] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> SyncResult:
    """Pull open invoices from the invoicing API and reconcile them into the store.

    Args:
        caller_identity (str): Who triggered the sync; recorded on the sync timestamp.
        client (InvoiceApiClient, optional): API client; built from settings if omitted.
        settings (Settings, optional): Defaults to ``load_settings()``.
        session_scope: Context manager yielding a transactional Session.
        as_of (datetime, optional): Aging reference time; defaults to now (UTC).
        sleep: Pause function used between contact batches.

    Returns:
        SyncResult: Counts for the run.

    Raises:
        AuthenticationError: If no caller identity is given; nothing is fetched.
        SyncInProgressError: If another sync on the same store is running.
        PersistenceWriteError: If a write fails; the whole run is rolled back.
    """
    if not caller_identity or not caller_identity.strip():
        raise AuthenticationError("A caller identity is required to run a sync")
    settings = settings or load_settings(require_api=client is None)
    synced_at = as_of or datetime.now(timezone.utc)
    run_id = uuid.uuid4().hex[:8]
    log_ctx = {"sync_run": run_id, "caller": caller_identity}

    with _single_flight(settings.database_url):
        owns_client = client is None
        client = client or InvoiceApiClient.from_settings(settings)
        try:
            logger.info("Starting invoice sync", extra=log_ctx)
            fetched = fetch_all_invoices(client, settings.sync_page_size, settings.sync_max_pages)
            if not fetched.invoices:
                logger.warning("No invoices returned upstream; store left unchanged", extra=log_ctx)
                return SyncResult(
                    count=0,
                    pages=fetched.pages,
                    truncated=fetched.truncated,
                    complete=fetched.complete,
                    synced_at=synced_at,
                )

            contact_ids = collect_contact_ids(fetched.invoices)
            contact_map = fetch_contacts_by_ids(
                client,
                contact_ids,
                batch_size=settings.contact_batch_size,
                delay=settings.contact_batch_delay,
                sleep=sleep,
            )
            invoices = enrich_invoices(fetched.invoices, contact_map)
        finally:
            if owns_client:
                client.close()

        stamp = synced_at.astimezone(timezone.utc).replace(tzinfo=None) if synced_at.tzinfo else synced_at
        with session_scope() as db:
            bootstrap = is_bootstrap_state(db)
            result = reconcile(load_synced_state(db), invoices, is_bootstrap=bootstrap, as_of=synced_at)
            if result.deletes and not fetched.complete:
                logger.warning(
                    f"Upstream data incomplete; keeping {len(result.deletes)} invoices that would have been deleted",
                    extra=log_ctx,
                )
                result.deletes = []
            write_reconciled(db, result, stamp, batch_size=settings.upsert_batch_size)
            if bootstrap:
                marked = _stamp_legacy_rows(db, stamp)
                logger.info(f"Marked {marked} legacy invoices as migrated", extra=log_ctx)
            record_sync_time(db, synced_at, caller_identity)

    invoices_synced.set(result.processed)
    logger.info(
        f"Sync complete: processed={result.processed}, upserted={len(result.upserts)}, "
        f"unchanged={result.unchanged}, deleted={len(result.deletes)}",
        extra=log_ctx,
    )
    return SyncResult(
        count=result.processed,
        upserted=len(result.upserts),
        deleted=len(result.deletes),
        pages=fetched.pages,
        truncated=fetched.truncated,
        complete=fetched.complete,
        synced_at=synced_at,
    )
