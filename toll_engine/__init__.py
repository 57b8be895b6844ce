"""Toll fee calculation and settlement reconciliation toolkit."""
from toll_engine.application.use_cases import (
    QuoteContext,
    QuoteFeeUseCase,
    ReconcileUseCase,
    ReconciliationContext,
    SettleRunUseCase,
)
from toll_engine.domain.models import (
    CrossingEvent,
    Discrepancy,
    DiscrepancyType,
    FeeQuote,
    FeeRule,
    ReconciliationRecord,
    ResolutionStrategy,
    RuleType,
)
from toll_engine.domain.pricing import FeeRuleEngine, compute_fee
from toll_engine.domain.reconciliation import Reconciler, reconcile
from toll_engine.errors import ConfigurationError, ValidationError
from toll_engine.infrastructure.repositories.file_repositories import (
    JsonRuleRepository,
    LedgerFileRepository,
    ProviderFileRepository,
)

__all__ = [
    "ConfigurationError",
    "CrossingEvent",
    "Discrepancy",
    "DiscrepancyType",
    "FeeQuote",
    "FeeRule",
    "FeeRuleEngine",
    "JsonRuleRepository",
    "LedgerFileRepository",
    "ProviderFileRepository",
    "QuoteContext",
    "QuoteFeeUseCase",
    "ReconcileUseCase",
    "ReconciliationContext",
    "ReconciliationRecord",
    "Reconciler",
    "ResolutionStrategy",
    "RuleType",
    "SettleRunUseCase",
    "ValidationError",
    "compute_fee",
    "reconcile",
]
