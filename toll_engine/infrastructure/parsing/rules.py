"""Fee rule document parser producing canonical ``FeeRule`` objects.

Rows follow the ``fee_rules`` table layout (snake_case); camelCase keys from JSON
clients are accepted as well.
"""
from __future__ import annotations

import json
import logging
from decimal import Decimal, InvalidOperation
from io import BytesIO
from pathlib import Path
from typing import Any, Iterable, Mapping

from toll_engine.domain.models import FeeRule, RuleRejection, RuleSnapshot, RuleType
from toll_engine.errors import ConfigurationError
from toll_engine.infrastructure.parsing.utils import ensure_bytes, is_blank, parse_date

logger = logging.getLogger(__name__)

FIELD_ALIASES = {
    "rule_type": ("rule_type", "ruleType", "type"),
    "base_amount": ("base_amount", "baseAmount", "amount"),
    "vehicle_type": ("vehicle_type", "vehicleType"),
    "time_conditions": ("time_conditions", "timeConditions", "window", "windows"),
    "is_active": ("is_active", "isActive", "active"),
    "valid_from": ("valid_from", "validFrom"),
    "valid_until": ("valid_until", "validUntil"),
    "device_ids": ("device_ids", "deviceIds"),
}

RULE_TYPE_ALIASES = {
    "flat": RuleType.FLAT,
    "time_of_day": RuleType.TIME_OF_DAY,
    "timeofday": RuleType.TIME_OF_DAY,
    "vehicle_type": RuleType.VEHICLE_TYPE,
    "vehicletype": RuleType.VEHICLE_TYPE,
}

TRUE_STRINGS = {"true", "1", "yes", "y"}
FALSE_STRINGS = {"false", "0", "no", "n"}


def _field(row: Mapping[str, Any], name: str) -> Any:
    for alias in FIELD_ALIASES.get(name, (name,)):
        if alias in row:
            return row[alias]
    return None


def _rule_type(value: Any, rule_id: str) -> RuleType:
    key = str(value or "").strip().lower().replace("-", "_").replace(" ", "_")
    rule_type = RULE_TYPE_ALIASES.get(key) or RULE_TYPE_ALIASES.get(key.replace("_", ""))
    if rule_type is None:
        raise ConfigurationError(f"Unknown rule_type {value!r}", rule_id=rule_id)
    return rule_type


def _amount(value: Any, rule_id: str) -> Decimal:
    if is_blank(value) or isinstance(value, bool):
        raise ConfigurationError("base_amount is required", rule_id=rule_id)
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise ConfigurationError(f"base_amount {value!r} is not numeric", rule_id=rule_id) from exc
    if not amount.is_finite():
        raise ConfigurationError(f"base_amount {value!r} is not finite", rule_id=rule_id)
    return amount


def _flag(value: Any, rule_id: str) -> bool:
    if value is None:
        return True
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in TRUE_STRINGS:
        return True
    if text in FALSE_STRINGS:
        return False
    raise ConfigurationError(f"is_active {value!r} is not a boolean", rule_id=rule_id)


def _priority(value: Any, rule_id: str) -> int:
    if is_blank(value):
        return 0
    try:
        return int(str(value).strip())
    except ValueError as exc:
        raise ConfigurationError(f"priority {value!r} is not an integer", rule_id=rule_id) from exc


def rule_from_mapping(row: Mapping[str, Any], position: int = 0) -> FeeRule:
    if not isinstance(row, Mapping):
        raise ConfigurationError(f"Rule at position {position} is not an object")
    rule_id = str(row.get("id") or f"rule-{position + 1}").strip()
    name = str(row.get("name") or "").strip()
    if not name:
        raise ConfigurationError("Rule has no name", rule_id=rule_id)

    try:
        valid_from = parse_date(_field(row, "valid_from"))
        valid_until = parse_date(_field(row, "valid_until"))
    except ValueError as exc:
        raise ConfigurationError(f"Invalid validity date: {exc}", rule_id=rule_id) from exc
    if valid_from and valid_until and valid_from > valid_until:
        raise ConfigurationError("valid_from is after valid_until", rule_id=rule_id)

    vehicle_type = _field(row, "vehicle_type")
    device_ids = _field(row, "device_ids") or ()
    if isinstance(device_ids, str):
        device_ids = [device for device in device_ids.split(",") if device.strip()]
    return FeeRule(
        id=rule_id,
        name=name,
        rule_type=_rule_type(_field(row, "rule_type"), rule_id),
        base_amount=_amount(_field(row, "base_amount"), rule_id),
        vehicle_type=None if is_blank(vehicle_type) else str(vehicle_type).strip(),
        time_conditions=_field(row, "time_conditions"),
        is_active=_flag(_field(row, "is_active"), rule_id),
        priority=_priority(row.get("priority"), rule_id),
        valid_from=valid_from,
        valid_until=valid_until,
        device_ids=tuple(str(device).strip() for device in device_ids),
    )


def load_rules(rows: Iterable[Mapping[str, Any]]) -> RuleSnapshot:
    """Parse every row, logging and setting aside the ones that cannot be configured."""
    rules: list[FeeRule] = []
    rejected: list[RuleRejection] = []
    for position, row in enumerate(rows):
        try:
            rules.append(rule_from_mapping(row, position))
        except ConfigurationError as exc:
            logger.warning("Rejected fee rule at position %d (%s): %s", position, exc.rule_id, exc.message)
            rejected.append(RuleRejection(position=position, rule_id=exc.rule_id, reason=exc.message))
    return RuleSnapshot(rules=tuple(rules), rejected=tuple(rejected))


def rules_from_json(source: BytesIO | Path | bytes | str) -> RuleSnapshot:
    """Read a rule document: either a JSON array of rows or ``{"rules": [...]}``."""
    raw = ensure_bytes(source)
    try:
        document = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"Rule document is not valid JSON: {exc}") from exc
    if isinstance(document, Mapping):
        document = document.get("rules", [])
    if not isinstance(document, list):
        raise ConfigurationError("Rule document must be a list of rules")
    return load_rules(document)
