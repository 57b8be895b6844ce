"""Repository interfaces anchoring the domain layer."""
from __future__ import annotations

from typing import Protocol, Sequence

from .models import DateRange, FeeRule, ReconciliationRecord


class RuleRepository(Protocol):
    """Provides the current fee rule snapshot; never written to by the engines."""

    def fetch_active_rules(self) -> Sequence[FeeRule]:
        ...


class RecordRepository(Protocol):
    """Provides reconciliation records for one side of a settlement."""

    def fetch_records(self, period: DateRange | None = None) -> Sequence[ReconciliationRecord]:
        ...
