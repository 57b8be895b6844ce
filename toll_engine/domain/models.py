"""Domain models for toll pricing and settlement reconciliation.

These dataclasses capture the canonical schema shared by both engines. Amounts
are always ``Decimal``; the engines never see floats.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum


class RuleType(str, Enum):
    FLAT = "flat"
    TIME_OF_DAY = "time_of_day"
    VEHICLE_TYPE = "vehicle_type"


class ResolutionStrategy(str, Enum):
    """How the winning amount is picked when several rules match a crossing."""

    HIGHEST_PRIORITY = "highest_priority"
    LAST_MATCH = "last_match"


class DiscrepancyType(str, Enum):
    MISSING_TRANSACTION = "missing_transaction"
    AMOUNT_MISMATCH = "amount_mismatch"
    DUPLICATE = "duplicate"
    UNKNOWN_TRANSACTION = "unknown_transaction"


@dataclass(frozen=True)
class TimeWindow:
    """Clock-time range with inclusive bounds; ``start > end`` wraps past midnight."""

    start: time
    end: time

    def contains(self, moment: time) -> bool:
        if self.start <= self.end:
            return self.start <= moment <= self.end
        return moment >= self.start or moment <= self.end


@dataclass(frozen=True)
class FeeRule:
    """Pricing rule as configured by an administrator in the rule store."""

    id: str
    name: str
    rule_type: RuleType
    base_amount: Decimal
    vehicle_type: str | None = None
    time_conditions: object | None = None
    is_active: bool = True
    priority: int = 0
    valid_from: date | None = None
    valid_until: date | None = None
    device_ids: tuple[str, ...] = ()

    def is_valid_on(self, day: date) -> bool:
        if self.valid_from is not None and day < self.valid_from:
            return False
        if self.valid_until is not None and day > self.valid_until:
            return False
        return True


@dataclass(frozen=True)
class CrossingEvent:
    vehicle_type: str
    entry_time: datetime
    plate_number: str = ""


@dataclass(frozen=True)
class FeeQuote:
    """Resolved charge for a crossing plus the audit trail of the rules involved."""

    calculated_fee: Decimal
    applied_rules: tuple[str, ...]
    currency: str
    vehicle_type: str
    plate_number: str
    entry_time: datetime
    matched_rules: tuple[str, ...] = ()
    skipped_rules: tuple[str, ...] = ()
    used_fallback: bool = False


@dataclass(frozen=True)
class ReconciliationRecord:
    """One ledger line, either from our transactions or from a provider settlement file."""

    key: str
    amount: Decimal
    transaction_id: str | None = None
    provider_ref: str | None = None
    source: str = ""
    occurred_at: datetime | None = None
    lineage: str | None = None


@dataclass(frozen=True)
class Discrepancy:
    """Represents an actionable issue discovered during reconciliation."""

    type: DiscrepancyType
    key: str
    description: str
    transaction_id: str | None = None
    provider_ref: str | None = None
    our_amount: Decimal | None = None
    provider_amount: Decimal | None = None


@dataclass(frozen=True)
class DateRange:
    """Inclusive calendar range used to narrow record fetches."""

    start: date | None = None
    end: date | None = None

    def contains(self, moment: datetime | date | None) -> bool:
        if moment is None:
            return True
        day = moment.date() if isinstance(moment, datetime) else moment
        if self.start is not None and day < self.start:
            return False
        if self.end is not None and day > self.end:
            return False
        return True


@dataclass(frozen=True)
class RuleRejection:
    """A rule document row that could not be turned into a ``FeeRule``."""

    position: int
    rule_id: str | None
    reason: str


@dataclass(frozen=True)
class RuleSnapshot:
    rules: tuple[FeeRule, ...] = field(default_factory=tuple)
    rejected: tuple[RuleRejection, ...] = field(default_factory=tuple)
