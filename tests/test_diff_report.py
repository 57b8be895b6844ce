import csv
import io
from decimal import Decimal

from toll_engine.domain.models import Discrepancy, DiscrepancyType, ReconciliationRecord
from toll_engine.domain.reconciliation import Reconciler
from toll_engine.presentation.diff_report import discrepancies_to_rows, render_csv, render_html


def sample() -> list[Discrepancy]:
    return [
        Discrepancy(
            type=DiscrepancyType.AMOUNT_MISMATCH,
            key="REF-123",
            transaction_id="TXN-001",
            provider_ref="REF-123",
            our_amount=Decimal("25.00"),
            provider_amount=Decimal("24.50"),
            description="Amount difference of +0.50 EGP (ours 25.00, provider 24.50)",
        ),
        Discrepancy(
            type=DiscrepancyType.MISSING_TRANSACTION,
            key="REF-456",
            provider_ref="REF-456",
            provider_amount=Decimal("15.00"),
            description="Transaction found in provider file but missing in our records",
        ),
    ]


def test_rows_leave_absent_sides_blank():
    rows = discrepancies_to_rows(sample())

    assert rows[1] == {
        "Type": "missing_transaction",
        "Transaction ID": "",
        "Provider Ref": "REF-456",
        "Our Amount": "",
        "Provider Amount": "15.00",
        "Description": "Transaction found in provider file but missing in our records",
    }


def test_render_csv():
    content = render_csv(sample()).decode("utf-8")

    rows = list(csv.DictReader(io.StringIO(content)))
    assert [row["Type"] for row in rows] == ["amount_mismatch", "missing_transaction"]
    assert rows[0]["Our Amount"] == "25.00"


def test_render_csv_without_discrepancies_keeps_header():
    assert render_csv([]).decode("utf-8").strip() == "Type,Transaction ID,Provider Ref,Our Amount,Provider Amount,Description"


def test_render_html_escapes_values():
    report = Reconciler().compare([], [ReconciliationRecord(key="<b>REF</b>", amount=Decimal("1"))])

    html = render_html(report)

    assert "&lt;b&gt;REF&lt;/b&gt;" in html
    assert "<b>REF</b>" not in html


def test_render_html_empty_report():
    report = Reconciler().compare([], [])

    assert render_html(report) == "<p>No discrepancies detected.</p>"
