"""Domain-level results for settlement reconciliation."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Sequence

from .models import Discrepancy


@dataclass(frozen=True)
class ReconciliationSummary:
    total_ours: int
    total_theirs: int
    our_total_amount: Decimal
    provider_total_amount: Decimal
    missing_transactions: int
    amount_mismatches: int
    unknown_transactions: int
    duplicates: int
    generated_at: datetime


@dataclass(frozen=True)
class ReconciliationReport:
    summary: ReconciliationSummary
    mismatches: Sequence[Discrepancy] = field(default_factory=tuple)
    unknown: Sequence[Discrepancy] = field(default_factory=tuple)
    duplicates: Sequence[Discrepancy] = field(default_factory=tuple)

    def has_issues(self) -> bool:
        return any(
            [
                self.summary.missing_transactions,
                self.summary.amount_mismatches,
                self.summary.unknown_transactions,
                self.summary.duplicates,
            ]
        )

    def iter_all_discrepancies(self) -> Iterable[Discrepancy]:
        yield from self.mismatches
        yield from self.unknown
        yield from self.duplicates
