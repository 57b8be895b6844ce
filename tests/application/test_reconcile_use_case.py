import json
from decimal import Decimal
from pathlib import Path

import pytest

from toll_engine.application.use_cases import ReconcileUseCase, ReconciliationContext, SettleRunUseCase
from toll_engine.domain.history.entities import RunStatus
from toll_engine.domain.models import DiscrepancyType
from toll_engine.domain.reconciliation import Reconciler
from toll_engine.errors import RunNotFoundError, ValidationError
from toll_engine.infrastructure.repositories.file_repositories import (
    LedgerFileRepository,
    ProviderFileRepository,
)
from toll_engine.infrastructure.storage.run_store import FileSystemRunStore

OURS_CSV = b"id,transaction_ref,amount\nTXN-001,REF-123,25.00\nTXN-002,REF-200,10.00\n"
PROVIDER_CSV = b"reference,amount\nREF-123,24.50\nREF-200,10.00\nREF-456,15.00\n"


@pytest.fixture
def store(tmp_path: Path) -> FileSystemRunStore:
    return FileSystemRunStore(tmp_path / "runs")


def make_context(
    store: FileSystemRunStore | None, provider_csv: bytes = PROVIDER_CSV, filename: str = "vodafone_may.csv"
) -> ReconciliationContext:
    provider_repo = ProviderFileRepository(provider_csv, filename=filename)
    return ReconciliationContext(
        our_repository=LedgerFileRepository(OURS_CSV, filename="transactions.csv"),
        provider_repository=provider_repo,
        reconciler=Reconciler(),
        run_store=store,
        filename=filename,
        provider=provider_repo.provider,
    )


def test_reconcile_without_store_returns_report_only():
    response = ReconcileUseCase(make_context(None)).execute()

    assert response.run is None
    assert {(d.type, d.key) for d in response.report.iter_all_discrepancies()} == {
        (DiscrepancyType.AMOUNT_MISMATCH, "REF-123"),
        (DiscrepancyType.MISSING_TRANSACTION, "REF-456"),
    }
    assert len(response.ours) == 2
    assert len(response.theirs) == 3


def test_completed_run_is_recorded(store: FileSystemRunStore):
    response = ReconcileUseCase(make_context(store)).execute(run_id="20240501_120000", provider_file=PROVIDER_CSV)

    run = response.run
    assert run.status is RunStatus.COMPLETED
    assert run.provider == "Vodafone Cash"
    assert run.transaction_count == 3
    assert run.total_amount == Decimal("49.50")
    assert run.discrepancies_count == 2

    run_dir = store.location("20240501_120000")
    assert (run_dir / "vodafone_may.csv").read_bytes() == PROVIDER_CSV
    assert (run_dir / "discrepancies.csv").read_bytes().startswith(b"Type,Transaction ID")
    manifest = json.loads((run_dir / "run.json").read_text())
    assert manifest["status"] == "completed"
    assert manifest["discrepancies_count"] == 2

    assert store.load("20240501_120000") == run


def test_invalid_provider_file_marks_run_failed(store: FileSystemRunStore):
    bad_csv = b"reference,amount\nREF-123,24.50\nREF-456,oops\n"

    with pytest.raises(ValidationError):
        ReconcileUseCase(make_context(store, bad_csv)).execute(run_id="20240502_080000")

    run = store.load("20240502_080000")
    assert run.status is RunStatus.FAILED
    assert run.discrepancies == ()
    assert "row 2" in run.error


def test_settle_completed_run(store: FileSystemRunStore):
    ReconcileUseCase(make_context(store)).execute(run_id="20240503_090000")

    settled = SettleRunUseCase(run_store=store).execute("20240503_090000")

    assert settled.settled_at is not None
    assert store.load("20240503_090000").settled_at == settled.settled_at


def test_settle_rejects_failed_and_unknown_runs(store: FileSystemRunStore):
    with pytest.raises(ValidationError):
        ReconcileUseCase(make_context(store, b"reference,amount\nREF-1,x\n")).execute(run_id="20240504_090000")

    with pytest.raises(ValidationError):
        SettleRunUseCase(run_store=store).execute("20240504_090000")
    with pytest.raises(RunNotFoundError):
        SettleRunUseCase(run_store=store).execute("missing")


@pytest.mark.parametrize(
    "payload, filename",
    [(b"", "vodafone_may.csv"), (b"PK\x03\x04 truncated workbook", "vodafone_may.xlsx")],
)
def test_unreadable_provider_file_marks_run_failed(store: FileSystemRunStore, payload: bytes, filename: str):
    with pytest.raises(ValidationError) as excinfo:
        ReconcileUseCase(make_context(store, payload, filename)).execute(run_id="20240505_100000")

    assert excinfo.value.record == filename
    run = store.load("20240505_100000")
    assert run.status is RunStatus.FAILED
    assert filename in run.error
