"""Central configuration for the toll engine package."""
from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timezone, tzinfo
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Mapping
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from toll_engine.domain.models import ResolutionStrategy
from toll_engine.errors import ConfigurationError

# Charge applied when no rule matches a crossing.
DEFAULT_FALLBACK_FEE = Decimal("10")
DEFAULT_CURRENCY = "EGP"

BASE_DIR = Path(__file__).resolve().parent.parent
DATA_DIR = BASE_DIR / "data"
RUNS_DIR = DATA_DIR / "runs"
LOG_DIR = DATA_DIR / "logs"


@dataclass(slots=True, frozen=True)
class Settings:
    fallback_fee: Decimal
    currency: str
    amount_tolerance: Decimal
    timezone: tzinfo | None
    resolution: ResolutionStrategy
    runs_dir: Path
    log_level: str
    log_dir: Path | None


def _decimal_setting(env: Mapping[str, str], name: str, default: Decimal) -> Decimal:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = Decimal(raw.strip())
    except InvalidOperation as exc:
        raise ConfigurationError(f"{name} must be a decimal number, got {raw!r}") from exc
    if value < 0:
        raise ConfigurationError(f"{name} must not be negative, got {raw!r}")
    return value


def _timezone_setting(raw: str | None) -> tzinfo | None:
    """Zone aware crossing times are converted to; unset keeps their own wall clock."""
    if raw is None or not raw.strip():
        return None
    if raw.strip().upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(raw.strip())
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigurationError(f"Unknown timezone {raw!r}") from exc


def _resolution_setting(raw: str | None) -> ResolutionStrategy:
    if raw is None or not raw.strip():
        return ResolutionStrategy.HIGHEST_PRIORITY
    try:
        return ResolutionStrategy(raw.strip().lower())
    except ValueError as exc:
        choices = ", ".join(strategy.value for strategy in ResolutionStrategy)
        raise ConfigurationError(f"TOLL_RESOLUTION must be one of {choices}, got {raw!r}") from exc


def load_settings(env: Mapping[str, str] | None = None) -> Settings:
    """Build settings from ``TOLL_*`` environment variables, falling back to defaults."""
    env = os.environ if env is None else env
    log_dir = env.get("TOLL_LOG_DIR")
    return Settings(
        fallback_fee=_decimal_setting(env, "TOLL_FALLBACK_FEE", DEFAULT_FALLBACK_FEE),
        currency=env.get("TOLL_CURRENCY", DEFAULT_CURRENCY).strip().upper() or DEFAULT_CURRENCY,
        amount_tolerance=_decimal_setting(env, "TOLL_AMOUNT_TOLERANCE", Decimal("0")),
        timezone=_timezone_setting(env.get("TOLL_TIMEZONE")),
        resolution=_resolution_setting(env.get("TOLL_RESOLUTION")),
        runs_dir=Path(env["TOLL_RUNS_DIR"]) if env.get("TOLL_RUNS_DIR") else RUNS_DIR,
        log_level=env.get("TOLL_LOG_LEVEL", "INFO").strip().upper() or "INFO",
        log_dir=Path(log_dir) if log_dir else None,
    )


SETTINGS = load_settings()
