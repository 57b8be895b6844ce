"""Shared parsing utilities for rule documents and ledger files."""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from io import BytesIO
from pathlib import Path
from typing import Iterable
import hashlib

import pandas as pd

from toll_engine.errors import ValidationError


def ensure_bytes(source: BytesIO | Path | bytes | str) -> bytes:
    if isinstance(source, bytes):
        return source
    if isinstance(source, BytesIO):
        return source.getvalue()
    if isinstance(source, str):
        source = Path(source)
    if isinstance(source, Path):
        try:
            return source.read_bytes()
        except OSError as exc:
            raise ValidationError(f"Cannot read {source}: {exc.strerror or exc}", record=str(source)) from exc
    raise TypeError(f"Unsupported source type: {type(source)!r}")


def compute_file_hash(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def is_blank(value: object) -> bool:
    if value is None:
        return True
    try:
        if pd.isna(value):
            return True
    except (TypeError, ValueError):
        pass
    return not str(value).strip()


def parse_amount(value: object, label: str) -> Decimal:
    """Strict amount parser: blanks and garbage raise instead of defaulting to zero."""
    if is_blank(value):
        raise ValidationError(f"Row {label} has no amount", record=label)
    s = str(value).strip()
    negative = False
    if s.startswith("(") and s.endswith(")"):
        negative = True
        s = s[1:-1]
    for token in (",", "$", "€", "£", "EGP", "egp", " "):
        s = s.replace(token, "")
    try:
        result = Decimal(s)
    except InvalidOperation as exc:
        raise ValidationError(f"Row {label} has a non-numeric amount {value!r}", record=label) from exc
    if not result.is_finite():
        raise ValidationError(f"Row {label} has a non-finite amount {value!r}", record=label)
    return -result if negative else result


def parse_date(value: object) -> date | None:
    if is_blank(value):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value).strip()[:10])


def parse_timestamp(value: object) -> datetime | None:
    if is_blank(value):
        return None
    parsed = pd.to_datetime(value, errors="coerce")
    if pd.isna(parsed):
        return None
    return parsed.to_pydatetime()


def find_column(columns: Iterable[object], candidates: Iterable[str]) -> str | None:
    """Return the first column matching a candidate name, ignoring case and surrounding spaces."""
    lookup = {str(column).strip().lower(): str(column) for column in columns}
    for candidate in candidates:
        match = lookup.get(candidate.strip().lower())
        if match is not None:
            return match
    return None
