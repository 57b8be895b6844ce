"""Streamlit console for the fee simulator and provider reconciliation."""
from __future__ import annotations

from datetime import datetime
from typing import Sequence

import pandas as pd
import streamlit as st

from toll_engine import (
    FeeRuleEngine,
    LedgerFileRepository,
    ProviderFileRepository,
    ReconcileUseCase,
    ReconciliationContext,
    Reconciler,
    ValidationError,
)
from toll_engine.application.dto import ReconciliationResponse
from toll_engine.application.use_cases import SettleRunUseCase
from toll_engine.config import SETTINGS
from toll_engine.domain.history.entities import RunStatus
from toll_engine.domain.models import CrossingEvent, FeeRule, ReconciliationRecord
from toll_engine.errors import ConfigurationError
from toll_engine.infrastructure.parsing.rules import rules_from_json
from toll_engine.infrastructure.storage.run_store import FileSystemRunStore
from toll_engine.logger import configure_logging
from toll_engine.presentation.diff_report import discrepancies_to_rows, render_csv, render_html

VEHICLE_TYPES = ["car", "motorcycle", "truck", "bus"]

configure_logging(SETTINGS.log_level, SETTINGS.log_dir)
st.set_page_config(page_title="Toll Console", layout="wide")
st.title("Toll Pricing & Reconciliation")


def rules_to_dataframe(rules: Sequence[FeeRule]) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "id": r.id,
                "name": r.name,
                "rule_type": r.rule_type.value,
                "base_amount": r.base_amount,
                "vehicle_type": r.vehicle_type,
                "priority": r.priority,
                "is_active": r.is_active,
                "valid_from": r.valid_from,
                "valid_until": r.valid_until,
            }
            for r in rules
        ]
    )


def records_to_dataframe(records: Sequence[ReconciliationRecord]) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "key": r.key,
                "amount": r.amount,
                "transaction_id": r.transaction_id,
                "provider_ref": r.provider_ref,
                "source": r.source,
                "occurred_at": r.occurred_at,
                "lineage": r.lineage,
            }
            for r in records
        ]
    )


def run_reconciliation(ledger_file, provider_file) -> ReconciliationResponse:
    provider_bytes = provider_file.getvalue()
    provider_repo = ProviderFileRepository(provider_bytes, filename=provider_file.name)
    context = ReconciliationContext(
        our_repository=LedgerFileRepository(ledger_file.getvalue(), filename=ledger_file.name),
        provider_repository=provider_repo,
        reconciler=Reconciler(tolerance=SETTINGS.amount_tolerance, currency=SETTINGS.currency),
        run_store=FileSystemRunStore(SETTINGS.runs_dir),
        filename=provider_file.name,
        provider=provider_repo.provider,
    )
    return ReconcileUseCase(context).execute(provider_file=provider_bytes)


if "simulations" not in st.session_state:
    st.session_state["simulations"] = []

pricing_tab, finance_tab, history_tab = st.tabs(["Pricing simulator", "Reconciliation", "Run history"])

with pricing_tab:
    rules_file = st.file_uploader("Upload fee rules (JSON)", type=["json"])
    rules: Sequence[FeeRule] = []
    if rules_file is not None:
        try:
            snapshot = rules_from_json(rules_file.getvalue())
        except ConfigurationError as exc:
            st.error(exc.message)
        else:
            rules = snapshot.rules
            for rejection in snapshot.rejected:
                st.warning(f"Rule #{rejection.position} ({rejection.rule_id or '-'}) ignored: {rejection.reason}")
            st.dataframe(rules_to_dataframe(rules))

    col1, col2, col3 = st.columns(3)
    with col1:
        vehicle_type = st.selectbox("Vehicle type", VEHICLE_TYPES)
    with col2:
        plate_number = st.text_input("Plate number", value="ABC 123")
    with col3:
        entry_date = st.date_input("Entry date")
        entry_clock = st.time_input("Entry time")

    if st.button("Calculate fee"):
        engine = FeeRuleEngine(
            fallback_fee=SETTINGS.fallback_fee,
            currency=SETTINGS.currency,
            resolution=SETTINGS.resolution,
            timezone=SETTINGS.timezone,
        )
        event = CrossingEvent(
            vehicle_type=vehicle_type,
            entry_time=datetime.combine(entry_date, entry_clock),
            plate_number=plate_number,
        )
        quote = engine.quote(rules, event)
        for name in quote.skipped_rules:
            st.warning(f"Rule {name} is misconfigured and was skipped")
        st.success(f"Calculated fee: {quote.calculated_fee} {quote.currency}")
        st.session_state["simulations"] = [quote, *st.session_state["simulations"][:9]]

    if st.session_state["simulations"]:
        st.subheader("Recent simulations")
        st.dataframe(
            pd.DataFrame(
                [
                    {
                        "vehicle_type": q.vehicle_type,
                        "plate_number": q.plate_number,
                        "entry_time": q.entry_time,
                        "calculated_fee": q.calculated_fee,
                        "applied_rules": ", ".join(q.applied_rules) or "(fallback)",
                    }
                    for q in st.session_state["simulations"]
                ]
            )
        )

with finance_tab:
    col1, col2 = st.columns(2)
    with col1:
        ledger_file = st.file_uploader("Our transactions export", type=["csv", "json", "xls", "xlsx"])
    with col2:
        provider_file = st.file_uploader("Provider settlement file", type=["csv", "json", "xls", "xlsx"])

    run_btn = st.button("Run reconciliation", disabled=not (ledger_file and provider_file))
    if run_btn and ledger_file and provider_file:
        try:
            with st.spinner("Reconciling..."):
                response = run_reconciliation(ledger_file, provider_file)
        except ValidationError as exc:
            st.error(f"Upload failed: {exc.message}")
        else:
            report = response.report
            summary = report.summary
            st.metric("Provider records", summary.total_theirs)
            st.metric("Missing transactions", summary.missing_transactions)
            st.metric("Amount mismatches", summary.amount_mismatches)
            st.metric("Unknown transactions", summary.unknown_transactions)
            st.metric("Duplicates", summary.duplicates)

            diff_tab, ours_tab, theirs_tab = st.tabs(["Discrepancies", "Ours", "Provider"])
            with diff_tab:
                discrepancies = tuple(report.iter_all_discrepancies())
                st.dataframe(pd.DataFrame(discrepancies_to_rows(discrepancies)))
                st.download_button(
                    "Download discrepancy CSV",
                    data=render_csv(discrepancies),
                    file_name=f"discrepancy-report-{provider_file.name}.csv",
                    mime="text/csv",
                )
                st.download_button(
                    "Download discrepancy HTML",
                    data=render_html(report).encode("utf-8"),
                    file_name=f"discrepancy-report-{provider_file.name}.html",
                    mime="text/html",
                )
            with ours_tab:
                st.dataframe(records_to_dataframe(response.ours))
            with theirs_tab:
                st.dataframe(records_to_dataframe(response.theirs))

with history_tab:
    store = FileSystemRunStore(SETTINGS.runs_dir)
    runs = store.list_runs()
    if not runs:
        st.info("No reconciliation runs recorded yet.")
    for run in runs:
        with st.expander(f"{run.filename or run.run_id} · {run.provider} · {run.status.value}"):
            st.write(
                {
                    "uploaded_at": run.uploaded_at.isoformat(),
                    "processed_at": run.processed_at.isoformat() if run.processed_at else None,
                    "settled_at": run.settled_at.isoformat() if run.settled_at else None,
                    "transaction_count": run.transaction_count,
                    "total_amount": str(run.total_amount) if run.total_amount is not None else None,
                    "discrepancies": run.discrepancies_count,
                    "error": run.error,
                }
            )
            if run.status is RunStatus.COMPLETED and run.settled_at is None:
                if st.button("Settle", key=f"settle-{run.run_id}"):
                    SettleRunUseCase(run_store=store).execute(run.run_id)
                    st.rerun()
