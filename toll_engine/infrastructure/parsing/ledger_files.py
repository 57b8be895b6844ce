"""Ledger file parser producing canonical reconciliation records.

Handles both sides of a settlement: exports of our ``transactions`` table and the
files payment providers send back. CSV, JSON and Excel inputs are read with pandas.
"""
from __future__ import annotations

import json
import zipfile
from io import BytesIO
from pathlib import Path
from typing import Sequence

import pandas as pd
from openpyxl.utils.exceptions import InvalidFileException
from xlrd import XLRDError

from toll_engine.domain.models import ReconciliationRecord
from toll_engine.errors import ValidationError
from toll_engine.infrastructure.parsing.utils import (
    compute_file_hash,
    ensure_bytes,
    find_column,
    is_blank,
    parse_amount,
    parse_timestamp,
)

KNOWN_PROVIDER_REF_COLUMNS = [
    "provider_ref",
    "Provider Ref",
    "Provider Reference",
    "reference",
    "Reference",
    "Reference Number",
    "ref",
    "transaction_ref",
    "Transaction Ref",
]

KNOWN_TRANSACTION_REF_COLUMNS = [
    "transaction_ref",
    "Transaction Ref",
    "provider_ref",
    "reference",
]

KNOWN_TRANSACTION_ID_COLUMNS = [
    "transaction_id",
    "Transaction ID",
    "id",
]

KNOWN_AMOUNT_COLUMNS = [
    "amount",
    "Amount",
    "Transaction Amount",
    "Paid Amount",
    "Settled Amount",
    "value",
]

KNOWN_DATE_COLUMNS = [
    "created_at",
    "processed_at",
    "Transaction Date",
    "Settlement Date",
    "Value Date",
    "Date",
]

PROVIDER_KEYWORDS = [
    ("vodafone", "Vodafone Cash"),
    ("instapay", "InstaPay"),
    ("bank", "Bank Transfer"),
]

SUPPORTED_SUFFIXES = (".csv", ".json", ".xls", ".xlsx")

# Raised by pandas, openpyxl and xlrd for empty, truncated or corrupt uploads.
UNREADABLE_FILE_ERRORS = (
    pd.errors.EmptyDataError,
    pd.errors.ParserError,
    zipfile.BadZipFile,
    InvalidFileException,
    XLRDError,
    ValueError,
    KeyError,
)


def detect_provider(filename: str) -> str:
    lower = filename.lower()
    for keyword, provider in PROVIDER_KEYWORDS:
        if keyword in lower:
            return provider
    return "Unknown"


def _json_frame(raw: bytes) -> pd.DataFrame:
    try:
        document = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ValidationError(f"Ledger file is not valid JSON: {exc}") from exc
    if isinstance(document, dict):
        for key in ("transactions", "records", "data"):
            if isinstance(document.get(key), list):
                document = document[key]
                break
    if not isinstance(document, list):
        raise ValidationError("JSON ledger must be a list of records")
    return pd.DataFrame(document, dtype=object)


def read_ledger_frame(source: BytesIO | Path | bytes, filename: str) -> pd.DataFrame:
    raw = ensure_bytes(source)
    suffix = Path(filename).suffix.lower()
    if suffix not in SUPPORTED_SUFFIXES:
        raise ValidationError(
            f"Unsupported ledger file type {suffix or filename!r}; expected one of {', '.join(SUPPORTED_SUFFIXES)}"
        )
    if suffix == ".json":
        return _json_frame(raw)
    try:
        if suffix == ".csv":
            return pd.read_csv(BytesIO(raw), dtype=str, keep_default_na=False)
        engine = "openpyxl" if suffix == ".xlsx" else "xlrd"
        return pd.read_excel(BytesIO(raw), engine=engine, dtype=str, keep_default_na=False)
    except UNREADABLE_FILE_ERRORS as exc:
        raise ValidationError(f"{filename}: file could not be read ({exc})", record=filename) from exc


def _require_column(df: pd.DataFrame, candidates: Sequence[str], what: str, filename: str) -> str:
    column = find_column(df.columns, candidates)
    if column is None:
        raise ValidationError(f"{filename}: no {what} column (looked for {', '.join(candidates)})")
    return column


def provider_file_to_records(source: BytesIO | Path | bytes, filename: str) -> Sequence[ReconciliationRecord]:
    """Parse a provider settlement file; the provider reference is the matching key."""
    raw = ensure_bytes(source)
    df = read_ledger_frame(raw, filename)
    ref_col = _require_column(df, KNOWN_PROVIDER_REF_COLUMNS, "reference", filename)
    amount_col = _require_column(df, KNOWN_AMOUNT_COLUMNS, "amount", filename)
    date_col = find_column(df.columns, KNOWN_DATE_COLUMNS)
    provider = detect_provider(filename)
    digest = compute_file_hash(raw)[:12]

    records: list[ReconciliationRecord] = []
    for idx, row in df.iterrows():
        if all(is_blank(value) for value in row.tolist()):
            continue
        label = f"{filename} row {idx + 1}"
        ref = row.get(ref_col)
        if is_blank(ref):
            raise ValidationError(f"Row {label} has no provider reference", record=label)
        ref = str(ref).strip()
        records.append(
            ReconciliationRecord(
                key=ref,
                amount=parse_amount(row.get(amount_col), label),
                provider_ref=ref,
                source=provider,
                occurred_at=parse_timestamp(row.get(date_col)) if date_col else None,
                lineage=f"file={digest};row={idx}",
            )
        )
    return records


def ledger_file_to_records(source: BytesIO | Path | bytes, filename: str) -> Sequence[ReconciliationRecord]:
    """Parse an export of our transactions; keyed by ``transaction_ref``, else by id."""
    raw = ensure_bytes(source)
    df = read_ledger_frame(raw, filename)
    ref_col = find_column(df.columns, KNOWN_TRANSACTION_REF_COLUMNS)
    id_col = find_column(df.columns, KNOWN_TRANSACTION_ID_COLUMNS)
    if ref_col is None and id_col is None:
        raise ValidationError(f"{filename}: no transaction reference or id column")
    amount_col = _require_column(df, KNOWN_AMOUNT_COLUMNS, "amount", filename)
    date_col = find_column(df.columns, KNOWN_DATE_COLUMNS)
    digest = compute_file_hash(raw)[:12]

    records: list[ReconciliationRecord] = []
    for idx, row in df.iterrows():
        if all(is_blank(value) for value in row.tolist()):
            continue
        label = f"{filename} row {idx + 1}"
        transaction_id = None if id_col is None or is_blank(row.get(id_col)) else str(row.get(id_col)).strip()
        ref = None if ref_col is None or is_blank(row.get(ref_col)) else str(row.get(ref_col)).strip()
        key = ref or transaction_id
        if not key:
            raise ValidationError(f"Row {label} has neither a transaction reference nor an id", record=label)
        records.append(
            ReconciliationRecord(
                key=key,
                amount=parse_amount(row.get(amount_col), label),
                transaction_id=transaction_id or key,
                source="internal",
                occurred_at=parse_timestamp(row.get(date_col)) if date_col else None,
                lineage=f"file={digest};row={idx}",
            )
        )
    return records
