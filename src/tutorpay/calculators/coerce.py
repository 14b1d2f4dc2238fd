"""Lenient coercion of raw row values into calculator types."""

from __future__ import annotations

import json
import logging
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

logger = logging.getLogger(__name__)


def to_decimal(value: Any) -> Decimal | None:
    """Coerce a number-like value to a finite Decimal, or None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    return result if result.is_finite() else None


def to_date(value: Any) -> date | None:
    """Parse a date from a date, datetime or ISO string (first 10 chars)."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and len(value.strip()) >= 10:
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            return None
    return None


def parse_metadata(value: Any) -> dict[str, Any] | None:
    """Return row metadata as a dict, decoding JSON strings."""
    if not value:
        return None
    if isinstance(value, dict):
        return value
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError:
            logger.warning("Failed to parse leave metadata JSON: %.80s", value)
            return None
        if isinstance(parsed, dict):
            return parsed
    return None


def coerce_boolean(value: Any) -> bool | None:
    """Interpret legacy truthy/falsy encodings; None when undecidable."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        if value == 1:
            return True
        if value == 0:
            return False
        return None
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in ("true", "1", "yes", "paid"):
            return True
        if normalized in ("false", "0", "no", "unpaid"):
            return False
    return None


def field_value(source: Any, name: str) -> Any:
    """Read ``name`` from a mapping or an object attribute."""
    if source is None:
        return None
    if isinstance(source, dict):
        return source.get(name)
    return getattr(source, name, None)
