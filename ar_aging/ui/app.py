"""Streamlit UI for the AR aging dashboard.

This module renders the aggregates computed by ``ar_aging.aggregation``:
- Bucket cards and an aging chart for the selected region.
- A filterable invoice table with local status flags.
- Company/property breakdowns.
- Open and completed follow-ups.
- Monthly snapshot KPIs with a trend chart.
"""

import altair as alt
import pandas as pd
import streamlit as st

from ar_aging.aggregation.filters import ALL_BUCKETS, InvoiceFilter, apply_filter, available_values
from ar_aging.aggregation.snapshots import create_monthly_snapshots, list_snapshots, month_over_month_change
from ar_aging.aggregation.summary import breakdown, bucket_cards, records_frame, summarize
from ar_aging.annotations import store
from ar_aging.db.invoices import load_invoices
from ar_aging.db.session import get_db_session
from ar_aging.db.system_settings import get_last_sync_time
from ar_aging.errors import AnnotationError, ConfigurationError, SyncError
from ar_aging.logging_config import get_logger
from ar_aging.sync.orchestrator import run_sync

logger = get_logger(__name__)

REGION_LABELS = {"all": "All Regions", "phoenix": "Phoenix", "las-vegas": "Las Vegas"}
TABLE_COLUMNS = [
    "invoice_number",
    "company_name",
    "property_name",
    "branch_name",
    "amount_remaining",
    "due_date",
    "past_due",
    "aging_category",
    "payment_status",
    "is_ghosting",
    "is_terminated",
]


def _pick(label, options, key):
    choice = st.sidebar.selectbox(label, ["(any)"] + options, key=key)
    return None if choice == "(any)" else choice


def render_invoices(records, region, user):
    cards = bucket_cards(summarize(records, region))
    for column, card in zip(st.columns(len(cards)), cards):
        column.metric(card["label"], f"${card['value']:,.0f}", f"{card['count']} invoices", delta_color="off")

    chart_df = pd.DataFrame([c for c in cards if c["id"] != ALL_BUCKETS])
    chart = (
        alt.Chart(chart_df)
        .mark_bar()
        .encode(
            x=alt.X("label:N", sort=None, title="Bucket"),
            y=alt.Y("value:Q", title="Outstanding ($)"),
            tooltip=["label", "count", alt.Tooltip("value:Q", format="$,.2f")],
        )
    )
    st.altair_chart(chart, use_container_width=True)

    bucket = st.sidebar.selectbox("Bucket", [c["id"] for c in cards], key="bucket")
    options = available_values(records, region, bucket)
    invoice_filter = InvoiceFilter(
        region=region,
        bucket=bucket,
        branch=_pick("Branch", options["branches"], "branch"),
        company=_pick("Company", options["companies"], "company"),
        property_name=_pick("Property", options["properties"], "property"),
    )
    filtered = apply_filter(records, invoice_filter)
    st.subheader(f"{len(filtered)} invoices")
    st.dataframe(records_frame(filtered)[TABLE_COLUMNS], use_container_width=True)

    if not filtered:
        return
    with st.expander("Annotate invoice"):
        by_label = {f"{r.invoice_number} - {r.company_name}": r for r in filtered}
        record = by_label[st.selectbox("Invoice", list(by_label))]
        status = st.selectbox(
            "Payment status",
            [s.value for s in store.PaymentStatus],
            index=[s.value for s in store.PaymentStatus].index(record.payment_status)
            if record.payment_status in [s.value for s in store.PaymentStatus]
            else 0,
        )
        ghosting = st.checkbox("Ghosting", value=record.is_ghosting)
        terminated = st.checkbox("Terminated", value=record.is_terminated)
        note_text = st.text_area("Note")
        follow_up_date = st.date_input("Follow-up date (optional)", value=None)
        if st.button("Save"):
            try:
                with get_db_session() as db:
                    store.set_payment_status(db, record.invoice_id, status)
                    store.set_ghosting(db, record.invoice_id, ghosting)
                    store.set_terminated(db, record.invoice_id, terminated)
                    if note_text.strip() and follow_up_date:
                        store.add_follow_up(db, record.invoice_id, note_text, follow_up_date, user)
                    elif note_text.strip():
                        store.add_note(db, record.invoice_id, note_text, user)
                st.success("Saved.")
            except AnnotationError as e:
                st.error(str(e))
        with get_db_session() as db:
            history = store.history_for_invoice(db, record.invoice_id)
        for item in history:
            st.caption(f"{item.created_at:%Y-%m-%d %H:%M} {item.created_by} ({item.kind})")
            st.write(item.text)


def render_stats(records, region):
    group_by = st.radio("Group by", ["company", "property"], horizontal=True)
    sort_by = st.radio("Sort by", ["total", "count"], horizontal=True)
    groups = breakdown(records, group_by=group_by, sort_by=sort_by, region=region)
    st.dataframe(pd.DataFrame([g.to_dict() for g in groups]), use_container_width=True)


def render_follow_ups():
    status = st.radio("Show", ["open", "completed"], horizontal=True)
    with get_db_session() as db:
        authors = store.follow_up_authors(db)
        author = st.selectbox("Created by", ["(anyone)"] + authors)
        items = store.list_follow_ups(db, status, None if author == "(anyone)" else author)
        rows = [
            {
                "id": f.id,
                "invoice_number": f.invoice_number,
                "company": f.company_name,
                "property": f.property_name,
                "amount": f.amount,
                "follow_up_date": f.follow_up_date,
                "note": f.note_text,
                "created_by": f.created_by,
                "completed_at": f.completed_at,
            }
            for f in items
        ]
    st.dataframe(pd.DataFrame(rows), use_container_width=True)
    if rows:
        follow_up_id = st.selectbox("Follow-up", [r["id"] for r in rows])
        if st.button("Complete" if status == "open" else "Reopen"):
            with get_db_session() as db:
                store.toggle_follow_up(db, follow_up_id)
            st.rerun()


def render_kpis(records, region, user):
    if st.button("Create snapshot for this month"):
        with get_db_session() as db:
            create_monthly_snapshots(db, records, user)
        st.success("Snapshots saved.")

    with get_db_session() as db:
        snapshots = [
            {"snapshot_date": s.snapshot_date, "total_outstanding": s.total_outstanding, "invoice_count": s.invoice_count}
            for s in list_snapshots(db, region)
        ]
    if not snapshots:
        st.info("No snapshots yet.")
        return

    latest = snapshots[0]
    previous = snapshots[1] if len(snapshots) > 1 else {}
    change = month_over_month_change(latest["total_outstanding"], previous.get("total_outstanding"))
    st.metric(
        "Total outstanding",
        f"${latest['total_outstanding']:,.0f}",
        f"{change:+.1f}%" if change is not None else None,
        delta_color="inverse",
    )
    trend = (
        alt.Chart(pd.DataFrame(snapshots))
        .mark_line(point=True)
        .encode(x="snapshot_date:T", y="total_outstanding:Q", tooltip=["snapshot_date", "total_outstanding", "invoice_count"])
    )
    st.altair_chart(trend, use_container_width=True)


def main():
    """Main Streamlit app entry point for the AR aging dashboard."""
    st.title("AR Aging Dashboard")

    user = st.sidebar.text_input("Your name", key="user")
    region = st.sidebar.selectbox("Region", list(REGION_LABELS), format_func=REGION_LABELS.get)

    with get_db_session() as db:
        records = load_invoices(db)
        last_sync = get_last_sync_time(db)
    st.sidebar.caption(f"Last sync: {last_sync:%Y-%m-%d %H:%M} UTC" if last_sync else "Never synced")

    if st.sidebar.button("Sync now", disabled=not user):
        with st.spinner("Syncing invoices..."):
            try:
                result = run_sync(user)
                st.sidebar.success(result.message)
            except (SyncError, ConfigurationError) as e:
                logger.exception("UI sync error", exc_info=e)
                st.sidebar.error(f"Sync failed: {e}")

    invoices_tab, stats_tab, follow_ups_tab, kpi_tab = st.tabs(["Invoices", "Stats", "Follow-ups", "KPIs"])
    with invoices_tab:
        render_invoices(records, region, user)
    with stats_tab:
        render_stats(records, region)
    with follow_ups_tab:
        render_follow_ups()
    with kpi_tab:
        render_kpis(records, region, user or "dashboard")


if __name__ == "__main__":
    main()
