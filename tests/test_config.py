import logging
from datetime import timezone
from decimal import Decimal
from pathlib import Path

import pytest

from toll_engine.config import DEFAULT_FALLBACK_FEE, RUNS_DIR, load_settings
from toll_engine.domain.models import ResolutionStrategy
from toll_engine.errors import ConfigurationError
from toll_engine.logger import ROOT_LOGGER, configure_logging


def test_defaults():
    settings = load_settings({})

    assert settings.fallback_fee == DEFAULT_FALLBACK_FEE == Decimal("10")
    assert settings.currency == "EGP"
    assert settings.amount_tolerance == Decimal("0")
    assert settings.timezone is None
    assert settings.resolution is ResolutionStrategy.HIGHEST_PRIORITY
    assert settings.runs_dir == RUNS_DIR
    assert settings.log_dir is None


def test_environment_overrides(tmp_path: Path):
    settings = load_settings(
        {
            "TOLL_FALLBACK_FEE": "7.5",
            "TOLL_CURRENCY": "usd",
            "TOLL_AMOUNT_TOLERANCE": "0.01",
            "TOLL_RESOLUTION": "LAST_MATCH",
            "TOLL_RUNS_DIR": str(tmp_path),
            "TOLL_LOG_LEVEL": "debug",
        }
    )

    assert settings.fallback_fee == Decimal("7.5")
    assert settings.currency == "USD"
    assert settings.amount_tolerance == Decimal("0.01")
    assert settings.resolution is ResolutionStrategy.LAST_MATCH
    assert settings.runs_dir == tmp_path
    assert settings.log_level == "DEBUG"


def test_timezone_is_only_set_explicitly():
    assert load_settings({"TOLL_TIMEZONE": " "}).timezone is None
    assert load_settings({"TOLL_TIMEZONE": "utc"}).timezone is timezone.utc


@pytest.mark.parametrize(
    "env",
    [
        {"TOLL_FALLBACK_FEE": "ten"},
        {"TOLL_FALLBACK_FEE": "-1"},
        {"TOLL_RESOLUTION": "first_match"},
        {"TOLL_TIMEZONE": "Not/AZone"},
    ],
)
def test_invalid_settings(env):
    with pytest.raises(ConfigurationError):
        load_settings(env)


def test_configure_logging_is_idempotent(tmp_path: Path):
    configure_logging("DEBUG")
    logger = configure_logging("INFO", log_dir=tmp_path / "logs")

    assert logger.name == ROOT_LOGGER
    assert logger.level == logging.INFO
    assert len(logger.handlers) == 2
    assert (tmp_path / "logs" / "toll_engine.log").exists()

    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)
