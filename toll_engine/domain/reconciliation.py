"""Domain service diffing our transaction ledger against a provider settlement file."""
from __future__ import annotations

from collections import defaultdict
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Mapping, Sequence

from toll_engine.errors import ValidationError

from .models import Discrepancy, DiscrepancyType, ReconciliationRecord
from .results import ReconciliationReport, ReconciliationSummary

OURS = "ours"
THEIRS = "theirs"

SIDE_LABELS = {OURS: "our records", THEIRS: "the provider file"}


class Reconciler:
    """Executes tolerance-bounded comparisons between our ledger and a provider's."""

    def __init__(self, tolerance: Decimal | None = None, currency: str = "EGP") -> None:
        if tolerance is None:
            tolerance = Decimal("0")
        if not tolerance.is_finite() or tolerance < 0:
            raise ValidationError(f"Amount tolerance must be a non-negative number, got {tolerance}")
        self._tolerance = tolerance
        self._currency = currency

    def compare(
        self, ours: Sequence[ReconciliationRecord], theirs: Sequence[ReconciliationRecord]
    ) -> ReconciliationReport:
        ours = self._validated(ours, OURS)
        theirs = self._validated(theirs, THEIRS)
        our_map = self._to_map(ours)
        their_map = self._to_map(theirs)

        mismatches: list[Discrepancy] = []
        unknown: list[Discrepancy] = []
        duplicates: list[Discrepancy] = []

        for key, their_record in their_map.items():
            our_record = our_map.get(key)
            if our_record is None:
                mismatches.append(
                    Discrepancy(
                        type=DiscrepancyType.MISSING_TRANSACTION,
                        key=key,
                        provider_ref=their_record.provider_ref or key,
                        provider_amount=their_record.amount,
                        description="Transaction found in provider file but missing in our records",
                    )
                )
                continue
            if not self._values_equal(our_record.amount, their_record.amount):
                mismatches.append(
                    Discrepancy(
                        type=DiscrepancyType.AMOUNT_MISMATCH,
                        key=key,
                        transaction_id=our_record.transaction_id or key,
                        provider_ref=their_record.provider_ref or key,
                        our_amount=our_record.amount,
                        provider_amount=their_record.amount,
                        description=self._mismatch_message(our_record.amount, their_record.amount),
                    )
                )

        for key, our_record in our_map.items():
            if key not in their_map:
                unknown.append(
                    Discrepancy(
                        type=DiscrepancyType.UNKNOWN_TRANSACTION,
                        key=key,
                        transaction_id=our_record.transaction_id or key,
                        our_amount=our_record.amount,
                        description="Transaction found in our records but missing in provider file",
                    )
                )

        for side, records, record_map in ((OURS, ours, our_map), (THEIRS, theirs, their_map)):
            for key, count in self._detect_duplicates(records).items():
                record = record_map[key]
                duplicates.append(
                    Discrepancy(
                        type=DiscrepancyType.DUPLICATE,
                        key=key,
                        transaction_id=(record.transaction_id or key) if side == OURS else None,
                        provider_ref=(record.provider_ref or key) if side == THEIRS else None,
                        our_amount=record.amount if side == OURS else None,
                        provider_amount=record.amount if side == THEIRS else None,
                        description=f"{count} records share reference {key} in {SIDE_LABELS[side]}",
                    )
                )

        summary = ReconciliationSummary(
            total_ours=len(ours),
            total_theirs=len(theirs),
            our_total_amount=sum((record.amount for record in ours), Decimal("0")),
            provider_total_amount=sum((record.amount for record in theirs), Decimal("0")),
            missing_transactions=len([d for d in mismatches if d.type is DiscrepancyType.MISSING_TRANSACTION]),
            amount_mismatches=len([d for d in mismatches if d.type is DiscrepancyType.AMOUNT_MISMATCH]),
            unknown_transactions=len(unknown),
            duplicates=len(duplicates),
            generated_at=datetime.now(timezone.utc),
        )

        return ReconciliationReport(
            summary=summary,
            mismatches=tuple(mismatches),
            unknown=tuple(unknown),
            duplicates=tuple(duplicates),
        )

    @staticmethod
    def _to_map(records: Sequence[ReconciliationRecord]) -> Mapping[str, ReconciliationRecord]:
        mapping: dict[str, ReconciliationRecord] = {}
        for record in records:
            mapping.setdefault(record.key, record)
        return mapping

    @staticmethod
    def _detect_duplicates(records: Sequence[ReconciliationRecord]) -> Mapping[str, int]:
        counts: dict[str, int] = defaultdict(int)
        for record in records:
            counts[record.key] += 1
        return {key: count for key, count in counts.items() if count > 1}

    @staticmethod
    def _validated(records: Sequence[ReconciliationRecord], side: str) -> list[ReconciliationRecord]:
        cleaned: list[ReconciliationRecord] = []
        for position, record in enumerate(records):
            label = f"{side}[{position}]"
            key = record.key.strip() if isinstance(record.key, str) else ""
            if not key:
                raise ValidationError(f"Record {label} has no matching key", record=label)
            label = f"{label} ({key})"
            cleaned.append(replace(record, key=key, amount=coerce_amount(record.amount, label)))
        return cleaned

    def _values_equal(self, left: Decimal, right: Decimal) -> bool:
        return abs(left - right) <= self._tolerance

    def _mismatch_message(self, ours: Decimal, theirs: Decimal) -> str:
        delta = ours - theirs
        return (
            f"Amount difference of {delta:+.2f} {self._currency} "
            f"(ours {ours:.2f}, provider {theirs:.2f})"
        )


def coerce_amount(value: object, label: str) -> Decimal:
    """Convert ``value`` to a finite ``Decimal`` or raise ``ValidationError`` naming ``label``."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"Record {label} has a non-numeric amount {value!r}", record=label)
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, int):
        amount = Decimal(value)
    elif isinstance(value, (float, str)):
        try:
            amount = Decimal(str(value).strip())
        except InvalidOperation as exc:
            raise ValidationError(f"Record {label} has a non-numeric amount {value!r}", record=label) from exc
    else:
        raise ValidationError(f"Record {label} has a non-numeric amount {value!r}", record=label)
    if not amount.is_finite():
        raise ValidationError(f"Record {label} has a non-finite amount {value!r}", record=label)
    return amount


def reconcile(
    ours: Sequence[ReconciliationRecord],
    theirs: Sequence[ReconciliationRecord],
    tolerance: Decimal | None = None,
    currency: str = "EGP",
) -> list[Discrepancy]:
    report = Reconciler(tolerance=tolerance, currency=currency).compare(ours, theirs)
    return list(report.iter_all_discrepancies())
