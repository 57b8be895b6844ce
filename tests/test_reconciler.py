from decimal import Decimal

import pytest

from toll_engine.domain.models import DiscrepancyType, ReconciliationRecord
from toll_engine.domain.reconciliation import Reconciler, reconcile
from toll_engine.errors import ValidationError


def ours(key: str, amount) -> ReconciliationRecord:
    amount = Decimal(amount) if isinstance(amount, str) else amount
    return ReconciliationRecord(key=key, amount=amount, transaction_id=key, source="internal")


def theirs(key: str, amount) -> ReconciliationRecord:
    amount = Decimal(amount) if isinstance(amount, str) else amount
    return ReconciliationRecord(key=key, amount=amount, provider_ref=key, source="provider")


def kinds(discrepancies) -> set[tuple[DiscrepancyType, str]]:
    return {(item.type, item.key) for item in discrepancies}


def test_identical_ledgers_have_no_discrepancies():
    records = [("T1", "25.00"), ("T2", "15.00")]

    report = Reconciler().compare([ours(*r) for r in records], [theirs(*r) for r in records])

    assert list(report.iter_all_discrepancies()) == []
    assert not report.has_issues()


def test_provider_only_key_is_missing_transaction():
    result = reconcile([ours("T1", "25")], [theirs("T1", "25"), theirs("T2", "15")])

    assert len(result) == 1
    missing = result[0]
    assert missing.type is DiscrepancyType.MISSING_TRANSACTION
    assert missing.provider_ref == "T2"
    assert missing.provider_amount == Decimal("15")
    assert missing.our_amount is None


def test_one_missing_transaction_per_provider_only_key():
    result = reconcile([], [theirs("T1", "5"), theirs("T2", "6"), theirs("T3", "7")])

    assert kinds(result) == {
        (DiscrepancyType.MISSING_TRANSACTION, "T1"),
        (DiscrepancyType.MISSING_TRANSACTION, "T2"),
        (DiscrepancyType.MISSING_TRANSACTION, "T3"),
    }


def test_amount_mismatch_reports_both_amounts_and_signed_delta():
    result = reconcile([ours("TXN-001", "25.00")], [theirs("TXN-001", "24.50")])

    assert len(result) == 1
    mismatch = result[0]
    assert mismatch.type is DiscrepancyType.AMOUNT_MISMATCH
    assert mismatch.our_amount == Decimal("25.00")
    assert mismatch.provider_amount == Decimal("24.50")
    assert mismatch.description == "Amount difference of +0.50 EGP (ours 25.00, provider 24.50)"


def test_negative_delta_is_signed():
    result = reconcile([ours("T1", "24")], [theirs("T1", "25")], currency="USD")

    assert result[0].description.startswith("Amount difference of -1.00 USD")


def test_tolerance_absorbs_small_differences():
    records = ([ours("T1", "25.00")], [theirs("T1", "24.50")])

    assert reconcile(*records, tolerance=Decimal("0.50")) == []
    assert len(reconcile(*records, tolerance=Decimal("0.49"))) == 1


def test_our_only_key_is_unknown_transaction():
    result = reconcile([ours("T1", "25"), ours("T9", "3")], [theirs("T1", "25")])

    assert kinds(result) == {(DiscrepancyType.UNKNOWN_TRANSACTION, "T9")}
    assert result[0].our_amount == Decimal("3")


def test_empty_provider_side_reports_everything_unknown():
    result = reconcile([ours("T1", "1"), ours("T2", "2")], [])

    assert kinds(result) == {
        (DiscrepancyType.UNKNOWN_TRANSACTION, "T1"),
        (DiscrepancyType.UNKNOWN_TRANSACTION, "T2"),
    }


def test_duplicate_detection_is_independent_of_amounts():
    result = reconcile([ours("T1", "25"), ours("T1", "25")], [theirs("T1", "25")])

    assert len(result) == 1
    duplicate = result[0]
    assert duplicate.type is DiscrepancyType.DUPLICATE
    assert duplicate.transaction_id == "T1"
    assert duplicate.description == "2 records share reference T1 in our records"


def test_duplicates_on_both_sides_are_reported_per_side():
    report = Reconciler().compare(
        [ours("T1", "25"), ours("T1", "30")],
        [theirs("T1", "25"), theirs("T1", "25"), theirs("T1", "25")],
    )

    assert report.summary.duplicates == 2
    assert report.summary.amount_mismatches == 0
    descriptions = {item.description for item in report.duplicates}
    assert descriptions == {
        "2 records share reference T1 in our records",
        "3 records share reference T1 in the provider file",
    }


def test_discrepancy_order_is_stable():
    result = reconcile(
        [ours("A", "1"), ours("U", "9"), ours("A", "1")],
        [theirs("M", "5"), theirs("A", "2")],
    )

    assert [item.type for item in result] == [
        DiscrepancyType.MISSING_TRANSACTION,
        DiscrepancyType.AMOUNT_MISMATCH,
        DiscrepancyType.UNKNOWN_TRANSACTION,
        DiscrepancyType.DUPLICATE,
    ]


def test_numeric_amounts_are_normalised():
    assert reconcile([ours("T1", 24.5)], [theirs("T1", "24.50")]) == []
    assert reconcile([ours("T1", 25)], [theirs("T1", "25.00")]) == []


def test_summary_totals():
    report = Reconciler().compare([ours("T1", "25"), ours("T2", "5")], [theirs("T1", "24.50")])

    summary = report.summary
    assert summary.total_ours == 2
    assert summary.total_theirs == 1
    assert summary.our_total_amount == Decimal("30")
    assert summary.provider_total_amount == Decimal("24.50")
    assert summary.amount_mismatches == 1
    assert summary.unknown_transactions == 1


@pytest.mark.parametrize("amount", ["abc", None, float("nan"), True, "Infinity"])
def test_malformed_amount_names_the_record(amount):
    with pytest.raises(ValidationError) as excinfo:
        reconcile([ours("T1", "25"), ReconciliationRecord(key="T2", amount=amount)], [])

    assert excinfo.value.record == "ours[1] (T2)"


def test_record_without_key_is_rejected():
    with pytest.raises(ValidationError) as excinfo:
        reconcile([], [theirs("  ", "10")])

    assert excinfo.value.record == "theirs[0]"


@pytest.mark.parametrize("tolerance", [Decimal("-0.01"), Decimal("NaN")])
def test_negative_or_undefined_tolerance_is_rejected(tolerance):
    with pytest.raises(ValidationError):
        reconcile([ours("T1", "25")], [theirs("T1", "25")], tolerance=tolerance)
