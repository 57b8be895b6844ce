"""Application services orchestrating fee quotes and settlement reconciliation."""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone

from toll_engine.application.dto import ReconciliationResponse
from toll_engine.domain.history.entities import ReconciliationRun, RunAttachment, RunStatus
from toll_engine.domain.models import CrossingEvent, DateRange, FeeQuote
from toll_engine.domain.pricing import FeeRuleEngine
from toll_engine.domain.reconciliation import Reconciler
from toll_engine.domain.repositories import RecordRepository, RuleRepository
from toll_engine.errors import ValidationError
from toll_engine.infrastructure.storage.run_store import FileSystemRunStore
from toll_engine.presentation.diff_report import render_csv

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class QuoteContext:
    rule_repository: RuleRepository
    engine: FeeRuleEngine


class QuoteFeeUseCase:
    def __init__(self, context: QuoteContext) -> None:
        self._context = context

    def execute(self, event: CrossingEvent) -> FeeQuote:
        rules = self._context.rule_repository.fetch_active_rules()
        quote = self._context.engine.quote(rules, event)
        logger.info(
            "Quoted %s %s for %s (%s) at %s via %s",
            quote.calculated_fee,
            quote.currency,
            event.plate_number or "-",
            event.vehicle_type,
            event.entry_time.isoformat(),
            ", ".join(quote.applied_rules) or "fallback",
        )
        return quote


@dataclass(slots=True)
class ReconciliationContext:
    our_repository: RecordRepository
    provider_repository: RecordRepository
    reconciler: Reconciler
    run_store: FileSystemRunStore | None = None
    filename: str = ""
    provider: str = "Unknown"


class ReconcileUseCase:
    """Runs a reconciliation and, when a run store is configured, records its outcome.

    A ``ValidationError`` marks the run as failed and is re-raised; no discrepancies
    are kept for a failed run.
    """

    def __init__(self, context: ReconciliationContext) -> None:
        self._context = context

    def execute(
        self,
        period: DateRange | None = None,
        run_id: str | None = None,
        provider_file: bytes | None = None,
    ) -> ReconciliationResponse:
        ctx = self._context
        run = self._start_run(run_id)
        try:
            ours = ctx.our_repository.fetch_records(period)
            theirs = ctx.provider_repository.fetch_records(period)
            report = ctx.reconciler.compare(ours, theirs)
        except ValidationError as exc:
            logger.error("Reconciliation of %s failed: %s", ctx.filename or "provider file", exc.message)
            if run is not None:
                ctx.run_store.save(
                    replace(run, status=RunStatus.FAILED, processed_at=_now(), error=exc.message)
                )
            raise

        summary = report.summary
        logger.info(
            "Reconciled %d internal against %d provider records: %d missing, %d mismatched, %d unknown, %d duplicate",
            summary.total_ours,
            summary.total_theirs,
            summary.missing_transactions,
            summary.amount_mismatches,
            summary.unknown_transactions,
            summary.duplicates,
        )

        if run is not None:
            discrepancies = tuple(report.iter_all_discrepancies())
            attachments = [RunAttachment(name="discrepancies.csv", content=render_csv(discrepancies))]
            if provider_file is not None and ctx.filename:
                attachments.append(RunAttachment(name=ctx.filename, content=provider_file))
            run = ctx.run_store.save(
                replace(
                    run,
                    status=RunStatus.COMPLETED,
                    processed_at=_now(),
                    transaction_count=summary.total_theirs,
                    total_amount=summary.provider_total_amount,
                    discrepancies=discrepancies,
                ),
                attachments,
            )
        return ReconciliationResponse(report=report, ours=ours, theirs=theirs, run=run)

    def _start_run(self, run_id: str | None) -> ReconciliationRun | None:
        ctx = self._context
        if ctx.run_store is None:
            return None
        uploaded_at = _now()
        run = ReconciliationRun(
            run_id=run_id or uploaded_at.strftime("%Y%m%d_%H%M%S%f"),
            filename=ctx.filename,
            provider=ctx.provider,
            status=RunStatus.PROCESSING,
            uploaded_at=uploaded_at,
        )
        return ctx.run_store.save(run)


@dataclass(slots=True)
class SettleRunUseCase:
    """Marks a completed run as settled with the provider."""

    run_store: FileSystemRunStore

    def execute(self, run_id: str) -> ReconciliationRun:
        run = self.run_store.load(run_id)
        if run.status is not RunStatus.COMPLETED:
            raise ValidationError(f"Run {run.run_id} is {run.status.value}; only completed runs can be settled", record=run.run_id)
        settled = replace(run, settled_at=_now())
        logger.info("Settled reconciliation run %s (%s)", settled.run_id, settled.provider)
        return self.run_store.save(settled)


def _now() -> datetime:
    return datetime.now(timezone.utc)
