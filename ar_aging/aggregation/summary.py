"""Bucket summaries and company/property breakdowns over invoice records.

All functions are pure: they read ``InvoiceRecord`` lists and never touch the
database. Bucket membership is read from the precomputed aging_* amounts; a
record counts in a bucket when that bucket's amount is positive.
"""

from dataclasses import asdict, dataclass, fields
from typing import Dict, Iterable, List

import pandas as pd

from ar_aging.aging.classifier import BUCKET_COLUMNS
from ar_aging.aggregation.filters import ALL_BUCKETS, filter_region
from ar_aging.db.invoices import InvoiceRecord
from ar_aging.logging_config import get_logger
from ar_aging.metrics import aggregation_duration_seconds, measure_duration

logger = get_logger(__name__)

RECORD_COLUMNS = [f.name for f in fields(InvoiceRecord)]

AMOUNT_COLUMNS = list(BUCKET_COLUMNS.values())
COUNT_COLUMNS = [c.replace("aging_", "count_") for c in AMOUNT_COLUMNS]

GROUP_COLUMNS = {"company": "company_name", "property": "property_name"}
SORT_KEYS = ("total", "count")

BUCKET_LABELS = {
    ALL_BUCKETS: "All Outstanding",
    "1-30": "1-30 Days",
    "31-60": "31-60 Days",
    "61-90": "61-90 Days",
    "91-120": "91-120 Days",
    "121+": "121+ Days",
}


@dataclass(frozen=True)
class BucketSummary:
    count: int
    value: float


@dataclass
class GroupBreakdown:
    """Aggregated totals for one company or property."""

    key: str
    total: float
    count: int
    aging_1_30: float = 0.0
    aging_31_60: float = 0.0
    aging_61_90: float = 0.0
    aging_91_120: float = 0.0
    aging_121_plus: float = 0.0
    count_1_30: int = 0
    count_31_60: int = 0
    count_61_90: int = 0
    count_91_120: int = 0
    count_121_plus: int = 0
    has_ghosting: bool = False
    has_terminated: bool = False

    def to_dict(self) -> Dict:
        return asdict(self)


def records_frame(records: Iterable[InvoiceRecord]) -> pd.DataFrame:
    """Build a DataFrame with one row per record and one column per InvoiceRecord field."""
    return pd.DataFrame([asdict(r) for r in records], columns=RECORD_COLUMNS)


def _money(value) -> float:
    return round(float(value), 2)


def summarize(records: Iterable[InvoiceRecord], region: str = "all") -> Dict[str, BucketSummary]:
    """Count and value per bucket for the records in ``region``.

    Every record contributes its amount remaining to "all"; it contributes to
    one of the five aging buckets only when that bucket's amount is positive.

    Returns:
        Dict[str, BucketSummary]: Keyed by "all", "1-30", "31-60", "61-90", "91-120", "121+".
    """
    df = records_frame(filter_region(records, region))
    summary = {
        ALL_BUCKETS: BucketSummary(count=len(df), value=_money(df["amount_remaining"].sum()))
    }
    for bucket, column in BUCKET_COLUMNS.items():
        hits = df[column] > 0
        summary[bucket.value] = BucketSummary(
            count=int(hits.sum()), value=_money(df.loc[hits, column].sum())
        )
    return summary


def bucket_cards(summary: Dict[str, BucketSummary]) -> List[Dict]:
    """Summary cards in display order with their labels."""
    return [
        {"id": bucket_id, "label": label, "count": summary[bucket_id].count, "value": summary[bucket_id].value}
        for bucket_id, label in BUCKET_LABELS.items()
    ]


@measure_duration(aggregation_duration_seconds)
def breakdown(
    records: Iterable[InvoiceRecord],
    group_by: str = "company",
    sort_by: str = "total",
    region: str = "all",
) -> List[GroupBreakdown]:
    """Group records by company or property and aggregate each group.

    Records without a property name are left out when grouping by property.

    Args:
        records (Iterable[InvoiceRecord]): Invoices to aggregate.
        group_by (str): "company" or "property".
        sort_by (str): "total" or "count"; descending, ties broken by key ascending.
        region (str): Region to restrict to before grouping.

    Returns:
        List[GroupBreakdown]: One entry per group, sorted.

    Raises:
        ValueError: On an unknown group_by or sort_by.
    """
    if group_by not in GROUP_COLUMNS:
        raise ValueError(f"Unknown group_by: {group_by!r}")
    if sort_by not in SORT_KEYS:
        raise ValueError(f"Unknown sort_by: {sort_by!r}")

    df = records_frame(filter_region(records, region))
    key_column = GROUP_COLUMNS[group_by]
    if group_by == "property":
        df = df[df[key_column] != ""]
    if df.empty:
        return []

    df = df.assign(key=df[key_column])
    for amount_column, count_column in zip(AMOUNT_COLUMNS, COUNT_COLUMNS):
        df[count_column] = (df[amount_column] > 0).astype(int)

    aggregations = {
        "total": ("amount_remaining", "sum"),
        "count": ("invoice_id", "size"),
        "has_ghosting": ("is_ghosting", "any"),
        "has_terminated": ("is_terminated", "any"),
    }
    aggregations.update({c: (c, "sum") for c in AMOUNT_COLUMNS + COUNT_COLUMNS})
    grouped = df.groupby("key", sort=False).agg(**aggregations).reset_index()
    grouped = grouped.sort_values(
        [sort_by, "key"], ascending=[False, True], kind="mergesort"
    )

    result = []
    for row in grouped.to_dict("records"):
        result.append(
            GroupBreakdown(
                key=row["key"],
                total=_money(row["total"]),
                count=int(row["count"]),
                has_ghosting=bool(row["has_ghosting"]),
                has_terminated=bool(row["has_terminated"]),
                **{c: _money(row[c]) for c in AMOUNT_COLUMNS},
                **{c: int(row[c]) for c in COUNT_COLUMNS},
            )
        )
    logger.info(f"Built {group_by} breakdown with {len(result)} groups", extra={"region": region})
    return result


def aging_totals(records: Iterable[InvoiceRecord]) -> Dict[str, float]:
    """Column sums of the five aging amount columns."""
    df = records_frame(records)
    return {column: _money(df[column].sum()) for column in AMOUNT_COLUMNS}
