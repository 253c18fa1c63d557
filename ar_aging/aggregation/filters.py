"""Region predicates and invoice filtering for the dashboard views."""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from ar_aging.aging.classifier import BUCKET_COLUMNS, AgingBucket
from ar_aging.db.invoices import InvoiceRecord

REGIONS = ("all", "phoenix", "las-vegas")

# Historical snapshots were computed with exactly these branch names.
PHOENIX_BRANCHES = frozenset(["Phx - North", "Phx - SouthWest", "Phx - SouthEast", "Corporate"])

ALL_BUCKETS = "all"
BUCKET_IDS = (ALL_BUCKETS,) + tuple(b.value for b in BUCKET_COLUMNS)


def in_region(branch_name: Optional[str], region: str) -> bool:
    """Whether an invoice with ``branch_name`` belongs to ``region``.

    Raises:
        ValueError: If the region is not one of REGIONS.
    """
    if region == "all":
        return True
    if region == "phoenix":
        return branch_name in PHOENIX_BRANCHES
    if region == "las-vegas":
        return "vegas" in (branch_name or "").lower()
    raise ValueError(f"Unknown region: {region!r}")


def filter_region(records: Iterable[InvoiceRecord], region: str = "all") -> List[InvoiceRecord]:
    return [r for r in records if in_region(r.branch_name, region)]


def bucket_amount(record: InvoiceRecord, bucket_id: str) -> float:
    """Amount the record carries in ``bucket_id``; "all" means amount remaining."""
    if bucket_id == ALL_BUCKETS:
        return record.amount_remaining
    try:
        column = BUCKET_COLUMNS[AgingBucket(bucket_id)]
    except (ValueError, KeyError):
        raise ValueError(f"Unknown bucket: {bucket_id!r}")
    return getattr(record, column)


def in_bucket(record: InvoiceRecord, bucket_id: str) -> bool:
    """Whether the record has a positive amount in ``bucket_id``; "all" means any balance left."""
    return bucket_amount(record, bucket_id) > 0


@dataclass(frozen=True)
class InvoiceFilter:
    """Dashboard filter selections passed explicitly to the query functions.

    ``None`` for a field means "do not filter on it".
    """

    region: str = "all"
    bucket: str = ALL_BUCKETS
    branch: Optional[str] = None
    company: Optional[str] = None
    property_name: Optional[str] = None
    ghosting: Optional[bool] = None
    terminated: Optional[bool] = None

    def matches(self, record: InvoiceRecord) -> bool:
        if not in_region(record.branch_name, self.region):
            return False
        if not in_bucket(record, self.bucket):
            return False
        if self.branch is not None and record.branch_name != self.branch:
            return False
        if self.company is not None and record.company_name != self.company:
            return False
        if self.property_name is not None and record.property_name != self.property_name:
            return False
        if self.ghosting is not None and record.is_ghosting != self.ghosting:
            return False
        if self.terminated is not None and record.is_terminated != self.terminated:
            return False
        return True


def apply_filter(records: Iterable[InvoiceRecord], invoice_filter: InvoiceFilter) -> List[InvoiceRecord]:
    return [r for r in records if invoice_filter.matches(r)]


def available_values(
    records: Iterable[InvoiceRecord], region: str = "all", bucket: str = ALL_BUCKETS
) -> Dict[str, List[str]]:
    """Distinct branch, company and property values left after region and bucket filtering.

    The caller decides what to do with a selection that is no longer listed.

    Returns:
        Dict[str, List[str]]: Keys "branches", "companies", "properties"; sorted,
            empty strings omitted.
    """
    scoped = apply_filter(records, InvoiceFilter(region=region, bucket=bucket))
    return {
        "branches": sorted({r.branch_name for r in scoped if r.branch_name}),
        "companies": sorted({r.company_name for r in scoped if r.company_name}),
        "properties": sorted({r.property_name for r in scoped if r.property_name}),
    }
