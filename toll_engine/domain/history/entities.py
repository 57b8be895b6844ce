"""Entities describing a recorded reconciliation run."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Sequence

from toll_engine.domain.models import Discrepancy


class RunStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class ReconciliationRun:
    run_id: str
    filename: str
    provider: str
    status: RunStatus
    uploaded_at: datetime
    processed_at: datetime | None = None
    settled_at: datetime | None = None
    transaction_count: int | None = None
    total_amount: Decimal | None = None
    discrepancies: Sequence[Discrepancy] = field(default_factory=tuple)
    error: str | None = None

    @property
    def discrepancies_count(self) -> int:
        return len(self.discrepancies)


@dataclass(frozen=True)
class RunAttachment:
    """A file stored alongside a run, such as the uploaded settlement or the diff report."""

    name: str
    content: bytes
