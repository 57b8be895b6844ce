"""Fee rule engine: resolves the charge for a vehicle crossing."""
from __future__ import annotations

import json
import logging
from datetime import datetime, time, tzinfo
from decimal import Decimal
from typing import Iterable, Mapping, Sequence

from toll_engine.config import SETTINGS, Settings
from toll_engine.errors import ConfigurationError, ValidationError

from .models import CrossingEvent, FeeQuote, FeeRule, ResolutionStrategy, RuleType, TimeWindow

logger = logging.getLogger(__name__)

CLOCK_FORMATS = ("%H:%M", "%H:%M:%S")


def parse_clock(value: object) -> time:
    if isinstance(value, time):
        return value
    text = str(value).strip() if value is not None else ""
    for fmt in CLOCK_FORMATS:
        try:
            return datetime.strptime(text, fmt).time()
        except ValueError:
            continue
    raise ConfigurationError(f"Invalid clock time {value!r}; expected HH:MM or HH:MM:SS")


def _window_from_mapping(raw: Mapping[str, object]) -> TimeWindow:
    if "start" not in raw or "end" not in raw:
        raise ConfigurationError(f"Time window {dict(raw)!r} needs both 'start' and 'end'")
    return TimeWindow(start=parse_clock(raw["start"]), end=parse_clock(raw["end"]))


def _window_from_range(text: str) -> TimeWindow:
    start, sep, end = text.partition("-")
    if not sep:
        raise ConfigurationError(f"Time window {text!r} must look like HH:MM-HH:MM")
    return TimeWindow(start=parse_clock(start), end=parse_clock(end))


def parse_time_windows(conditions: object) -> tuple[TimeWindow, ...]:
    """Normalise the stored ``time_conditions`` value into a tuple of windows.

    Accepts a list of ``{start, end}`` objects, a single such object, a mapping of
    named groups (``{"peak_hours": [...]}``), a JSON string of any of these, or
    comma-separated ``HH:MM-HH:MM`` ranges.
    """
    if isinstance(conditions, str):
        text = conditions.strip()
        if text and text[0] not in "[{":
            return tuple(_window_from_range(part) for part in text.split(","))
        try:
            conditions = json.loads(conditions)
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"time_conditions is not valid JSON: {exc.msg}") from exc

    if isinstance(conditions, TimeWindow):
        return (conditions,)
    if isinstance(conditions, Mapping):
        if "start" in conditions or "end" in conditions:
            return (_window_from_mapping(conditions),)
        windows: list[TimeWindow] = []
        for group in conditions.values():
            windows.extend(parse_time_windows(group))
        if not windows:
            raise ConfigurationError("time_conditions defines no windows")
        return tuple(windows)
    if isinstance(conditions, (list, tuple)):
        windows = []
        for item in conditions:
            if isinstance(item, TimeWindow):
                windows.append(item)
            elif isinstance(item, Mapping):
                windows.append(_window_from_mapping(item))
            elif isinstance(item, str):
                windows.append(_window_from_range(item))
            else:
                raise ConfigurationError(f"Unsupported time window entry {item!r}")
        if not windows:
            raise ConfigurationError("time_conditions defines no windows")
        return tuple(windows)
    raise ConfigurationError(f"Unsupported time_conditions value {conditions!r}")


class FeeRuleEngine:
    """Evaluates a rule snapshot against a crossing event.

    Instances hold configuration only, so a single engine can serve concurrent callers.
    """

    def __init__(
        self,
        fallback_fee: Decimal = Decimal("10"),
        currency: str = "EGP",
        resolution: ResolutionStrategy = ResolutionStrategy.HIGHEST_PRIORITY,
        timezone: tzinfo | None = None,
    ) -> None:
        self._fallback_fee = fallback_fee
        self._currency = currency
        self._resolution = resolution
        self._timezone = timezone

    def quote(self, rule_set: Sequence[FeeRule], event: CrossingEvent) -> FeeQuote:
        self._validate_event(event)
        entry_time = self._localize(event.entry_time)
        vehicle_type = _normalize_tag(event.vehicle_type)

        candidates = [
            rule for rule in rule_set if rule.is_active and rule.is_valid_on(entry_time.date())
        ]
        matched: list[FeeRule] = []
        skipped: list[str] = []
        for rule in self._evaluation_order(candidates):
            try:
                if self._matches(rule, vehicle_type, entry_time.time()):
                    matched.append(rule)
            except ConfigurationError as exc:
                logger.warning("Skipping fee rule %s (%s): %s", rule.id, rule.name, exc.message)
                skipped.append(rule.name)

        fee, applied = self._resolve(matched)
        if fee is None:
            logger.debug("No fee rule matched %s at %s; using fallback", vehicle_type, entry_time)
        return FeeQuote(
            calculated_fee=self._fallback_fee if fee is None else fee,
            applied_rules=applied,
            currency=self._currency,
            vehicle_type=event.vehicle_type,
            plate_number=event.plate_number,
            entry_time=event.entry_time,
            matched_rules=tuple(rule.name for rule in matched),
            skipped_rules=tuple(skipped),
            used_fallback=fee is None,
        )

    def _evaluation_order(self, rules: Iterable[FeeRule]) -> list[FeeRule]:
        if self._resolution is ResolutionStrategy.LAST_MATCH:
            # stable: equal priorities keep store order
            return sorted(rules, key=lambda rule: -rule.priority)
        return sorted(rules, key=lambda rule: (-rule.priority, rule.id))

    def _resolve(self, matched: Sequence[FeeRule]) -> tuple[Decimal | None, tuple[str, ...]]:
        if not matched:
            return None, ()
        if self._resolution is ResolutionStrategy.LAST_MATCH:
            fee: Decimal | None = None
            for rule in matched:
                fee = rule.base_amount
            return fee, tuple(rule.name for rule in matched)
        winner = matched[0]
        return winner.base_amount, (winner.name,)

    @staticmethod
    def _matches(rule: FeeRule, vehicle_type: str, moment: time) -> bool:
        if rule.base_amount < 0:
            raise ConfigurationError(f"base_amount {rule.base_amount} is negative", rule_id=rule.id)
        if rule.rule_type is RuleType.FLAT:
            return True
        if rule.rule_type is RuleType.VEHICLE_TYPE:
            if not rule.vehicle_type or not rule.vehicle_type.strip():
                raise ConfigurationError("vehicle_type rule has no vehicle_type", rule_id=rule.id)
            return _normalize_tag(rule.vehicle_type) == vehicle_type
        if rule.rule_type is RuleType.TIME_OF_DAY:
            if rule.time_conditions is None:
                raise ConfigurationError("time_of_day rule has no time_conditions", rule_id=rule.id)
            return any(window.contains(moment) for window in parse_time_windows(rule.time_conditions))
        raise ConfigurationError(f"Unsupported rule type {rule.rule_type!r}", rule_id=rule.id)

    def _localize(self, moment: datetime) -> datetime:
        if self._timezone is not None and moment.tzinfo is not None:
            return moment.astimezone(self._timezone)
        return moment

    @staticmethod
    def _validate_event(event: CrossingEvent) -> None:
        if not isinstance(event.entry_time, datetime):
            raise ValidationError(f"entry_time must be a datetime, got {event.entry_time!r}", record="event")
        if not isinstance(event.vehicle_type, str) or not event.vehicle_type.strip():
            raise ValidationError("vehicle_type must be a non-empty string", record="event")


def _normalize_tag(value: str) -> str:
    return value.strip().lower()


def compute_fee(rule_set: Sequence[FeeRule], event: CrossingEvent, settings: Settings | None = None) -> FeeQuote:
    """Quote the charge for ``event`` using the configured fallback fee and resolution strategy."""
    settings = settings or SETTINGS
    engine = FeeRuleEngine(
        fallback_fee=settings.fallback_fee,
        currency=settings.currency,
        resolution=settings.resolution,
        timezone=settings.timezone,
    )
    return engine.quote(rule_set, event)
