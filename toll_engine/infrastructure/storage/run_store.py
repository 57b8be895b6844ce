"""Filesystem store for reconciliation runs and their attachments."""
from __future__ import annotations

import json
import re
from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Iterable, Sequence

from toll_engine.domain.history.entities import ReconciliationRun, RunAttachment, RunStatus
from toll_engine.domain.models import Discrepancy, DiscrepancyType
from toll_engine.errors import RunNotFoundError

MANIFEST_NAME = "run.json"


def normalize_run_id(run_id: str) -> str:
    if not run_id:
        return "run"
    digits = re.findall(r"\d", run_id)
    if len(digits) >= 14 and not re.search(r"[A-Za-z]", run_id):
        normalized = f"{''.join(digits[:8])}_{''.join(digits[8:14])}"
        rest = "".join(digits[14:])
        return normalized + rest
    sanitized = re.sub(r"[^0-9A-Za-z_-]+", "", run_id.strip())
    return sanitized or "run"


def _amount(value: Decimal | None) -> str | None:
    return None if value is None else str(value)


def _timestamp(value: datetime | None) -> str | None:
    return None if value is None else value.isoformat()


def _discrepancy_to_dict(item: Discrepancy) -> dict[str, Any]:
    return {
        "type": item.type.value,
        "key": item.key,
        "transaction_id": item.transaction_id,
        "provider_ref": item.provider_ref,
        "our_amount": _amount(item.our_amount),
        "provider_amount": _amount(item.provider_amount),
        "description": item.description,
    }


def _discrepancy_from_dict(raw: dict[str, Any]) -> Discrepancy:
    return Discrepancy(
        type=DiscrepancyType(raw["type"]),
        key=raw["key"],
        transaction_id=raw.get("transaction_id"),
        provider_ref=raw.get("provider_ref"),
        our_amount=None if raw.get("our_amount") is None else Decimal(raw["our_amount"]),
        provider_amount=None if raw.get("provider_amount") is None else Decimal(raw["provider_amount"]),
        description=raw["description"],
    )


def run_to_dict(run: ReconciliationRun) -> dict[str, Any]:
    return {
        "run_id": run.run_id,
        "filename": run.filename,
        "provider": run.provider,
        "status": run.status.value,
        "uploaded_at": _timestamp(run.uploaded_at),
        "processed_at": _timestamp(run.processed_at),
        "settled_at": _timestamp(run.settled_at),
        "transaction_count": run.transaction_count,
        "total_amount": _amount(run.total_amount),
        "discrepancies_count": run.discrepancies_count,
        "discrepancies": [_discrepancy_to_dict(item) for item in run.discrepancies],
        "error": run.error,
    }


def run_from_dict(raw: dict[str, Any]) -> ReconciliationRun:
    def parse_ts(value: str | None) -> datetime | None:
        return None if value is None else datetime.fromisoformat(value)

    return ReconciliationRun(
        run_id=raw["run_id"],
        filename=raw["filename"],
        provider=raw["provider"],
        status=RunStatus(raw["status"]),
        uploaded_at=datetime.fromisoformat(raw["uploaded_at"]),
        processed_at=parse_ts(raw.get("processed_at")),
        settled_at=parse_ts(raw.get("settled_at")),
        transaction_count=raw.get("transaction_count"),
        total_amount=None if raw.get("total_amount") is None else Decimal(raw["total_amount"]),
        discrepancies=tuple(_discrepancy_from_dict(item) for item in raw.get("discrepancies", [])),
        error=raw.get("error"),
    )


class FileSystemRunStore:
    def __init__(self, root: Path) -> None:
        self._root = Path(root)

    def save(self, run: ReconciliationRun, attachments: Iterable[RunAttachment] = ()) -> ReconciliationRun:
        run = replace(run, run_id=normalize_run_id(run.run_id))
        run_dir = self._root / run.run_id
        run_dir.mkdir(parents=True, exist_ok=True)

        for attachment in attachments:
            (run_dir / Path(attachment.name).name).write_bytes(attachment.content)

        (run_dir / MANIFEST_NAME).write_text(json.dumps(run_to_dict(run), indent=2), encoding="utf-8")
        return run

    def load(self, run_id: str) -> ReconciliationRun:
        manifest = self._root / normalize_run_id(run_id) / MANIFEST_NAME
        if not manifest.is_file():
            raise RunNotFoundError(run_id)
        return run_from_dict(json.loads(manifest.read_text(encoding="utf-8")))

    def list_runs(self) -> Sequence[ReconciliationRun]:
        if not self._root.is_dir():
            return []
        runs = [
            run_from_dict(json.loads(path.read_text(encoding="utf-8")))
            for path in self._root.glob(f"*/{MANIFEST_NAME}")
        ]
        return sorted(runs, key=lambda run: run.uploaded_at, reverse=True)

    def location(self, run_id: str) -> Path:
        return self._root / normalize_run_id(run_id)
