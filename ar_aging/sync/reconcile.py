"""Reconciliation of freshly fetched invoices against the stored set.

Everything here is a pure transformation: the orchestrator supplies the stored
state and performs the writes. Upsert payloads only ever carry the synced
(authoritative + derived) columns, so the user-maintained columns of an
existing invoice are left alone by the write.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional

from ar_aging.aging.classifier import bucket_amounts, classify, to_utc_date
from ar_aging.db.models import SYNCED_COLUMNS
from ar_aging.errors import MalformedInputError
from ar_aging.logging_config import get_logger

logger = get_logger(__name__)

LOCAL_DEFAULTS = {
    "is_ghosting": False,
    "is_terminated": False,
    "payment_status": "No Follow Up",
    "comments": "",
}


def _parse_money(value, field_name: str) -> float:
    if value is None or value == "":
        return 0.0
    try:
        return round(float(value), 2)
    except (TypeError, ValueError):
        raise MalformedInputError(f"{field_name} is not a number: {value!r}")


def _text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def _join_opportunities(opportunities) -> Dict[str, str]:
    names: List[str] = []
    numbers: List[str] = []
    for opp in opportunities or []:
        if not isinstance(opp, Mapping):
            continue
        if opp.get("OpportunityName"):
            names.append(_text(opp["OpportunityName"]))
        if opp.get("OpportunityNumber"):
            numbers.append(_text(opp["OpportunityNumber"]))
    return {"opportunity_name": "; ".join(names), "opportunity_number": "; ".join(numbers)}


def process_invoice(raw: Mapping[str, Any], as_of=None) -> Optional[Dict[str, Any]]:
    """Map one API invoice to invoice_id plus the synced columns.

    Malformed amounts and dates are logged and defaulted rather than raised,
    so one bad record never aborts a sync.

    Args:
        raw (Mapping[str, Any]): Invoice object as returned by the invoicing API,
            optionally enriched with contact emails.
        as_of: Reference point for aging; defaults to now in UTC.

    Returns:
        Optional[Dict[str, Any]]: Row values, or None if the record has no usable InvoiceID.
    """
    try:
        invoice_id = int(raw.get("InvoiceID"))
    except (TypeError, ValueError):
        logger.warning(f"Skipping invoice without a valid InvoiceID: {raw.get('InvoiceID')!r}")
        return None

    amounts = {}
    for api_field, column in (("Amount", "amount"), ("AmountRemaining", "amount_remaining")):
        try:
            amounts[column] = _parse_money(raw.get(api_field), api_field)
        except MalformedInputError as e:
            logger.warning(f"Invoice {invoice_id}: {e}; defaulting to 0")
            amounts[column] = 0.0

    due_date = to_utc_date(raw.get("DueDate"))
    if raw.get("DueDate") and due_date is None:
        logger.warning(f"Invoice {invoice_id}: unparseable DueDate {raw.get('DueDate')!r}")

    aging = classify(due_date, as_of)
    row = {
        "invoice_id": invoice_id,
        "invoice_number": _text(raw.get("InvoiceNumber")),
        "company_name": _text(raw.get("CompanyName")),
        "property_name": _text(raw.get("PropertyName")),
        "branch_name": _text(raw.get("BranchName")),
        "amount": amounts["amount"],
        "amount_remaining": amounts["amount_remaining"],
        "due_date": due_date,
        "invoice_date": to_utc_date(raw.get("InvoiceDate")),
        "past_due": aging.past_due_days,
        "aging_category": aging.aging_category,
        "primary_contact_name": _text(raw.get("PrimaryContactName")),
        "primary_contact_email": _text(raw.get("PrimaryContactEmail")),
        "billing_contact_name": _text(raw.get("BillingContactName")),
        "billing_contact_email": _text(raw.get("BillingContactEmail")),
        "payment_terms_name": _text(raw.get("PaymentTermsName")),
    }
    row.update(_join_opportunities(raw.get("InvoiceOpportunities")))
    row.update(bucket_amounts(aging.bucket, amounts["amount_remaining"]))
    return row


@dataclass
class ReconcileResult:
    """Outcome of reconciling one fetched batch.

    Attributes:
        upserts (List[Dict[str, Any]]): New or changed rows, synced columns only.
        deletes (List[int]): Stored invoice IDs missing from the batch.
        unchanged (int): Fetched invoices whose stored synced columns already match.
    """

    upserts: List[Dict[str, Any]] = field(default_factory=list)
    deletes: List[int] = field(default_factory=list)
    unchanged: int = 0

    @property
    def processed(self) -> int:
        return len(self.upserts) + self.unchanged

    @property
    def is_noop(self) -> bool:
        return not self.upserts and not self.deletes

    def apply_to(self, store: Mapping[int, Mapping[str, Any]]) -> Dict[int, Dict[str, Any]]:
        """Return a copy of ``store`` with this result applied as the database would.

        Existing rows keep their local columns; new rows get local defaults.
        """
        result = {invoice_id: dict(values) for invoice_id, values in store.items()}
        for invoice_id in self.deletes:
            result.pop(invoice_id, None)
        for row in self.upserts:
            invoice_id = row["invoice_id"]
            target = result.get(invoice_id)
            if target is None:
                target = dict(LOCAL_DEFAULTS)
                result[invoice_id] = target
            target.update({c: row[c] for c in SYNCED_COLUMNS})
        return result


def _same_synced_values(stored: Mapping[str, Any], fresh: Mapping[str, Any]) -> bool:
    for column in SYNCED_COLUMNS:
        old, new = stored.get(column), fresh.get(column)
        if isinstance(new, float) or isinstance(old, float):
            if old is None or new is None or round(float(old) - float(new), 2) != 0:
                return False
        elif old != new:
            return False
    return True


def reconcile(
    existing_store: Mapping[int, Mapping[str, Any]],
    fresh_batch: Iterable[Mapping[str, Any]],
    is_bootstrap: bool = False,
    as_of=None,
) -> ReconcileResult:
    """Compute the writes that bring the store in line with a fetched batch.

    Args:
        existing_store: invoice_id -> stored column values (at least the synced columns).
        fresh_batch: Invoices from the API, all with a positive remaining amount.
        is_bootstrap (bool): Stored rows predate external-ID keying; suppress deletes.
        as_of: Reference point for aging; defaults to now in UTC.

    Returns:
        ReconcileResult: Upserts for new/changed invoices and deletes for paid-off ones.
    """
    as_of = as_of if as_of is not None else datetime.now(timezone.utc)

    fresh: Dict[int, Dict[str, Any]] = {}
    for raw in fresh_batch:
        row = process_invoice(raw, as_of)
        if row is not None:
            fresh[row["invoice_id"]] = row

    result = ReconcileResult()
    for invoice_id, row in fresh.items():
        stored = existing_store.get(invoice_id)
        if stored is not None and _same_synced_values(stored, row):
            result.unchanged += 1
        else:
            result.upserts.append(row)

    if is_bootstrap:
        logger.info("Bootstrap state detected; skipping delete of absent invoices")
    else:
        result.deletes = sorted(i for i in existing_store if i and i not in fresh)

    return result
