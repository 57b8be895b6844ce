from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

import pytest

from toll_engine.domain.history.entities import ReconciliationRun, RunAttachment, RunStatus
from toll_engine.domain.models import Discrepancy, DiscrepancyType
from toll_engine.errors import RunNotFoundError
from toll_engine.infrastructure.storage.run_store import FileSystemRunStore, normalize_run_id


def make_run(run_id: str, uploaded_at: datetime) -> ReconciliationRun:
    return ReconciliationRun(
        run_id=run_id,
        filename="instapay.csv",
        provider="InstaPay",
        status=RunStatus.COMPLETED,
        uploaded_at=uploaded_at,
        processed_at=uploaded_at,
        transaction_count=1,
        total_amount=Decimal("24.50"),
        discrepancies=(
            Discrepancy(
                type=DiscrepancyType.AMOUNT_MISMATCH,
                key="REF-123",
                transaction_id="TXN-001",
                provider_ref="REF-123",
                our_amount=Decimal("25.00"),
                provider_amount=Decimal("24.50"),
                description="Amount difference of +0.50 EGP (ours 25.00, provider 24.50)",
            ),
        ),
    )


def test_normalize_run_id():
    assert normalize_run_id(" 2024/10/05 10:15:00 ") == "20241005_101500"
    assert normalize_run_id("vodafone run #3") == "vodafonerun3"
    assert normalize_run_id("") == "run"


def test_save_and_load_round_trip(tmp_path: Path):
    store = FileSystemRunStore(tmp_path)
    run = make_run("2024/10/05 10:15:00", datetime(2024, 10, 5, 10, 15, tzinfo=timezone.utc))

    saved = store.save(run, [RunAttachment(name="../instapay.csv", content=b"reference,amount\n")])

    assert saved.run_id == "20241005_101500"
    assert (tmp_path / "20241005_101500" / "instapay.csv").is_file()
    assert store.load("20241005_101500") == saved


def test_list_runs_newest_first(tmp_path: Path):
    store = FileSystemRunStore(tmp_path)
    store.save(make_run("older", datetime(2024, 1, 1, tzinfo=timezone.utc)))
    store.save(make_run("newer", datetime(2024, 2, 1, tzinfo=timezone.utc)))

    assert [run.run_id for run in store.list_runs()] == ["newer", "older"]
    assert FileSystemRunStore(tmp_path / "absent").list_runs() == []


def test_load_unknown_run(tmp_path: Path):
    with pytest.raises(RunNotFoundError):
        FileSystemRunStore(tmp_path).load("nope")
