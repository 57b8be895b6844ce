"""File-backed repositories for fee rules and ledger records."""
from __future__ import annotations

from io import BytesIO
from pathlib import Path
from typing import Sequence

from toll_engine.domain.models import DateRange, FeeRule, ReconciliationRecord, RuleRejection
from toll_engine.domain.repositories import RecordRepository, RuleRepository
from toll_engine.infrastructure.parsing.ledger_files import (
    detect_provider,
    ledger_file_to_records,
    provider_file_to_records,
)
from toll_engine.infrastructure.parsing.rules import rules_from_json
from toll_engine.infrastructure.parsing.utils import ensure_bytes


class JsonRuleRepository(RuleRepository):
    def __init__(self, source: BytesIO | Path | bytes | str) -> None:
        self._source = ensure_bytes(source)
        self._rejected: tuple[RuleRejection, ...] = ()

    @property
    def rejected(self) -> Sequence[RuleRejection]:
        """Rows dropped by the last fetch because they could not be parsed."""
        return self._rejected

    def fetch_active_rules(self) -> Sequence[FeeRule]:
        snapshot = rules_from_json(self._source)
        self._rejected = snapshot.rejected
        return [rule for rule in snapshot.rules if rule.is_active]


class _LedgerFileRepository(RecordRepository):
    def __init__(self, source: BytesIO | Path | bytes | str, filename: str | None = None) -> None:
        if filename is None:
            if not isinstance(source, (Path, str)):
                raise ValueError("filename is required when the source is not a path")
            filename = Path(source).name
        self._source = ensure_bytes(source)
        self.filename = filename

    def fetch_records(self, period: DateRange | None = None) -> Sequence[ReconciliationRecord]:
        records = self._parse()
        if period is None:
            return records
        return [record for record in records if period.contains(record.occurred_at)]

    def _parse(self) -> Sequence[ReconciliationRecord]:
        raise NotImplementedError


class LedgerFileRepository(_LedgerFileRepository):
    """Our side of the settlement, exported from the transactions table."""

    def _parse(self) -> Sequence[ReconciliationRecord]:
        return ledger_file_to_records(self._source, self.filename)


class ProviderFileRepository(_LedgerFileRepository):
    """Settlement file uploaded from a payment provider."""

    @property
    def provider(self) -> str:
        return detect_provider(self.filename)

    def _parse(self) -> Sequence[ReconciliationRecord]:
        return provider_file_to_records(self._source, self.filename)
