"""JSON service exposing fee quotes and reconciliation over HTTP."""
from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from fastapi import APIRouter, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from toll_engine.config import SETTINGS
from toll_engine.domain.models import CrossingEvent, Discrepancy, ReconciliationRecord
from toll_engine.domain.pricing import FeeRuleEngine
from toll_engine.domain.reconciliation import Reconciler
from toll_engine.errors import TollEngineError, ValidationError
from toll_engine.infrastructure.parsing.rules import load_rules

logger = logging.getLogger(__name__)


class CrossingEventIn(BaseModel):
    vehicleType: str
    entryTime: datetime
    plateNumber: str = ""


class QuoteRequest(BaseModel):
    ruleSet: list[dict[str, Any]] = Field(default_factory=list)
    event: CrossingEventIn


class RecordIn(BaseModel):
    key: Optional[str] = None
    transactionId: Optional[str] = None
    providerRef: Optional[str] = None
    amount: Any = None


class ReconcileRequest(BaseModel):
    ours: list[RecordIn] = Field(default_factory=list)
    theirs: list[RecordIn] = Field(default_factory=list)
    tolerance: Optional[Decimal] = None


def _money(value: Decimal | None) -> str | None:
    return None if value is None else str(value)


def _discrepancy_out(item: Discrepancy) -> dict[str, Any]:
    return {
        "type": item.type.value,
        "transactionId": item.transaction_id,
        "providerRef": item.provider_ref,
        "ourAmount": _money(item.our_amount),
        "providerAmount": _money(item.provider_amount),
        "description": item.description,
    }


def _to_record(item: RecordIn, side: str, position: int) -> ReconciliationRecord:
    own_id = item.transactionId if side == "ours" else item.providerRef
    key = (own_id or item.key or "").strip()
    if not key:
        label = f"{side}[{position}]"
        raise ValidationError(f"Record {label} has no matching key", record=label)
    return ReconciliationRecord(
        key=key,
        amount=item.amount,
        transaction_id=item.transactionId or (key if side == "ours" else None),
        provider_ref=item.providerRef or (key if side == "theirs" else None),
        source=side,
    )


router = APIRouter()


@router.post("/fees/quote")
def quote_fee(request: QuoteRequest) -> dict[str, Any]:
    snapshot = load_rules(request.ruleSet)
    engine = FeeRuleEngine(
        fallback_fee=SETTINGS.fallback_fee,
        currency=SETTINGS.currency,
        resolution=SETTINGS.resolution,
        timezone=SETTINGS.timezone,
    )
    event = CrossingEvent(
        vehicle_type=request.event.vehicleType,
        entry_time=request.event.entryTime,
        plate_number=request.event.plateNumber,
    )
    quote = engine.quote(snapshot.rules, event)
    return {
        "calculatedFee": _money(quote.calculated_fee),
        "currency": quote.currency,
        "appliedRules": list(quote.applied_rules),
        "matchedRules": list(quote.matched_rules),
        "skippedRules": list(quote.skipped_rules),
        "rejectedRules": [
            {"position": item.position, "ruleId": item.rule_id, "reason": item.reason} for item in snapshot.rejected
        ],
        "usedFallback": quote.used_fallback,
    }


@router.post("/reconciliations")
def run_reconciliation(request: ReconcileRequest) -> dict[str, Any]:
    ours = [_to_record(item, "ours", position) for position, item in enumerate(request.ours)]
    theirs = [_to_record(item, "theirs", position) for position, item in enumerate(request.theirs)]
    tolerance = SETTINGS.amount_tolerance if request.tolerance is None else request.tolerance
    report = Reconciler(tolerance=tolerance, currency=SETTINGS.currency).compare(ours, theirs)
    summary = report.summary
    return {
        "discrepancies": [_discrepancy_out(item) for item in report.iter_all_discrepancies()],
        "summary": {
            "totalOurs": summary.total_ours,
            "totalTheirs": summary.total_theirs,
            "ourTotalAmount": _money(summary.our_total_amount),
            "providerTotalAmount": _money(summary.provider_total_amount),
            "missingTransactions": summary.missing_transactions,
            "amountMismatches": summary.amount_mismatches,
            "unknownTransactions": summary.unknown_transactions,
            "duplicates": summary.duplicates,
        },
    }


def create_app() -> FastAPI:
    app = FastAPI(title="Toll Engine API")
    app.include_router(router, tags=["Toll"])

    @app.exception_handler(TollEngineError)
    async def engine_error_handler(request: Request, exc: TollEngineError) -> JSONResponse:
        logger.warning("Rejected %s %s: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=400, content={"error": exc.code, "message": exc.message})

    @app.exception_handler(RequestValidationError)
    async def request_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        first = exc.errors()[0] if exc.errors() else {}
        location = ".".join(str(part) for part in first.get("loc", ()))
        message = f"{location}: {first.get('msg', 'invalid request')}" if location else "invalid request"
        return JSONResponse(status_code=400, content={"error": ValidationError.code, "message": message})

    @app.get("/")
    def root() -> dict[str, str]:
        return {"message": "Toll Engine API is running"}

    return app


app = create_app()
