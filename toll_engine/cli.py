"""Command-line entrypoint for fee quotes and settlement reconciliation."""
from __future__ import annotations

import argparse
import sys
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path

from toll_engine.application.use_cases import (
    QuoteContext,
    QuoteFeeUseCase,
    ReconcileUseCase,
    ReconciliationContext,
    SettleRunUseCase,
)
from toll_engine.config import SETTINGS
from toll_engine.domain.models import CrossingEvent, DateRange, ResolutionStrategy
from toll_engine.domain.pricing import FeeRuleEngine
from toll_engine.domain.reconciliation import Reconciler
from toll_engine.errors import TollEngineError
from toll_engine.infrastructure.repositories.file_repositories import (
    JsonRuleRepository,
    LedgerFileRepository,
    ProviderFileRepository,
)
from toll_engine.infrastructure.storage.run_store import FileSystemRunStore
from toll_engine.logger import configure_logging
from toll_engine.presentation.diff_report import render_csv


def _decimal_arg(value: str) -> Decimal:
    try:
        return Decimal(value)
    except InvalidOperation as exc:
        raise argparse.ArgumentTypeError(f"not a decimal number: {value!r}") from exc


def _datetime_arg(value: str) -> datetime:
    try:
        return datetime.fromisoformat(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"not an ISO 8601 timestamp: {value!r}") from exc


def _date_arg(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"not a YYYY-MM-DD date: {value!r}") from exc


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Toll fee quotes and provider settlement reconciliation")
    parser.add_argument("--log-level", default=SETTINGS.log_level, help="Logging level (default: %(default)s)")
    sub = parser.add_subparsers(dest="command", required=True)

    quote = sub.add_parser("quote", help="Compute the fee for a vehicle crossing")
    quote.add_argument("rules", type=str, help="Path to a JSON fee rule document")
    quote.add_argument("--vehicle-type", required=True, help="Vehicle type tag, e.g. car or truck")
    quote.add_argument("--plate", default="", help="Plate number, for the audit trail only")
    quote.add_argument("--at", type=_datetime_arg, help="Crossing time (ISO 8601); defaults to now")
    quote.add_argument(
        "--resolution",
        choices=[strategy.value for strategy in ResolutionStrategy],
        default=SETTINGS.resolution.value,
        help="How overlapping rules are resolved (default: %(default)s)",
    )

    recon = sub.add_parser("reconcile", help="Reconcile our ledger against a provider settlement file")
    recon.add_argument("ours", type=str, help="Path to our transactions export (CSV, JSON or Excel)")
    recon.add_argument("provider", type=str, help="Path to the provider settlement file")
    recon.add_argument("--tolerance", type=_decimal_arg, default=SETTINGS.amount_tolerance, help="Absolute amount tolerance")
    recon.add_argument("--from", dest="date_from", type=_date_arg, help="Only records on or after YYYY-MM-DD")
    recon.add_argument("--until", dest="date_until", type=_date_arg, help="Only records on or before YYYY-MM-DD")
    recon.add_argument("--csv", type=str, help="Write the discrepancy report to this CSV path")
    recon.add_argument("--archive", action="store_true", help="Record the run in the run store")

    settle = sub.add_parser("settle", help="Mark an archived run as settled")
    settle.add_argument("run_id", type=str)
    return parser.parse_args(argv)


def _quote(args: argparse.Namespace) -> int:
    entry_time = args.at or datetime.now(SETTINGS.timezone)
    repository = JsonRuleRepository(Path(args.rules))
    engine = FeeRuleEngine(
        fallback_fee=SETTINGS.fallback_fee,
        currency=SETTINGS.currency,
        resolution=ResolutionStrategy(args.resolution),
        timezone=SETTINGS.timezone,
    )
    use_case = QuoteFeeUseCase(QuoteContext(rule_repository=repository, engine=engine))
    quote = use_case.execute(CrossingEvent(vehicle_type=args.vehicle_type, entry_time=entry_time, plate_number=args.plate))

    print("Fee Quote")
    print("=========")
    print(f"Vehicle: {quote.vehicle_type} {quote.plate_number}".rstrip())
    print(f"Entry time: {quote.entry_time.isoformat()}")
    print(f"Fee: {quote.calculated_fee} {quote.currency}")
    print(f"Applied rules: {', '.join(quote.applied_rules) or '(fallback fee)'}")
    if quote.skipped_rules:
        print(f"Skipped misconfigured rules: {', '.join(quote.skipped_rules)}")
    for rejection in repository.rejected:
        print(f"Rejected rule #{rejection.position} ({rejection.rule_id or '-'}): {rejection.reason}")
    return 0


def _reconcile(args: argparse.Namespace) -> int:
    provider_path = Path(args.provider)
    provider_repo = ProviderFileRepository(provider_path)
    period = None
    if args.date_from or args.date_until:
        period = DateRange(
            start=args.date_from,
            end=args.date_until,
        )

    context = ReconciliationContext(
        our_repository=LedgerFileRepository(Path(args.ours)),
        provider_repository=provider_repo,
        reconciler=Reconciler(tolerance=args.tolerance, currency=SETTINGS.currency),
        run_store=FileSystemRunStore(SETTINGS.runs_dir) if args.archive else None,
        filename=provider_path.name,
        provider=provider_repo.provider,
    )
    response = ReconcileUseCase(context).execute(
        period=period,
        provider_file=provider_path.read_bytes() if args.archive else None,
    )
    report = response.report

    print("Reconciliation Summary")
    print("======================")
    summary = report.summary
    print(f"Provider: {context.provider}")
    print(f"Our records: {summary.total_ours} ({summary.our_total_amount} {SETTINGS.currency})")
    print(f"Provider records: {summary.total_theirs} ({summary.provider_total_amount} {SETTINGS.currency})")
    print(f"Missing transactions: {summary.missing_transactions}")
    print(f"Amount mismatches: {summary.amount_mismatches}")
    print(f"Unknown transactions: {summary.unknown_transactions}")
    print(f"Duplicates: {summary.duplicates}")

    discrepancies = tuple(report.iter_all_discrepancies())
    if report.has_issues():
        print("\nDiscrepancies detected:")
        for discrepancy in discrepancies:
            print(f"- {discrepancy.type.value} for {discrepancy.key}: {discrepancy.description}")
    else:
        print("\nNo discrepancies detected.")

    if args.csv:
        Path(args.csv).write_bytes(render_csv(discrepancies))
        print(f"\nReport written to {args.csv}")
    if response.run is not None:
        print(f"Run archived as {response.run.run_id}")
    return 1 if report.has_issues() else 0


def _settle(args: argparse.Namespace) -> int:
    run = SettleRunUseCase(run_store=FileSystemRunStore(SETTINGS.runs_dir)).execute(args.run_id)
    print(f"Run {run.run_id} settled at {run.settled_at.isoformat()}")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    configure_logging(args.log_level, SETTINGS.log_dir)
    handlers = {"quote": _quote, "reconcile": _reconcile, "settle": _settle}
    try:
        return handlers[args.command](args)
    except TollEngineError as exc:
        print(f"error [{exc.code}]: {exc.message}", file=sys.stderr)
        return 2


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
