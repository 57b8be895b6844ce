"""Discrepancy report generators for reconciliation runs."""
from __future__ import annotations

import csv
import html
import io
from typing import Sequence

from toll_engine.domain.models import Discrepancy
from toll_engine.domain.results import ReconciliationReport

REPORT_COLUMNS = ["Type", "Transaction ID", "Provider Ref", "Our Amount", "Provider Amount", "Description"]


def discrepancies_to_rows(discrepancies: Sequence[Discrepancy]) -> list[dict[str, str]]:
    rows: list[dict[str, str]] = []
    for item in discrepancies:
        rows.append(
            {
                "Type": item.type.value,
                "Transaction ID": item.transaction_id or "",
                "Provider Ref": item.provider_ref or "",
                "Our Amount": "" if item.our_amount is None else str(item.our_amount),
                "Provider Amount": "" if item.provider_amount is None else str(item.provider_amount),
                "Description": item.description,
            }
        )
    return rows


def render_csv(discrepancies: Sequence[Discrepancy]) -> bytes:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=REPORT_COLUMNS)
    writer.writeheader()
    writer.writerows(discrepancies_to_rows(discrepancies))
    return buffer.getvalue().encode("utf-8")


def render_html(report: ReconciliationReport) -> str:
    rows = discrepancies_to_rows(tuple(report.iter_all_discrepancies()))
    if not rows:
        return "<p>No discrepancies detected.</p>"
    header = "".join(f"<th>{col}</th>" for col in REPORT_COLUMNS)
    body_parts = []
    for row in rows:
        body_parts.append("<tr>" + "".join(f"<td>{html.escape(value)}</td>" for value in row.values()) + "</tr>")
    body_html = "".join(body_parts)
    return f"<table><thead><tr>{header}</tr></thead><tbody>{body_html}</tbody></table>"
