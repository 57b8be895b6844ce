"""Application-level DTOs for pricing and reconciliation."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from toll_engine.domain.history.entities import ReconciliationRun
from toll_engine.domain.models import ReconciliationRecord
from toll_engine.domain.results import ReconciliationReport


@dataclass(slots=True, frozen=True)
class ReconciliationResponse:
    report: ReconciliationReport
    ours: Sequence[ReconciliationRecord]
    theirs: Sequence[ReconciliationRecord]
    run: ReconciliationRun | None = None
