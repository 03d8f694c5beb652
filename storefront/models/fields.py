# storefront/models/fields.py
"""
Converters shared by the models. The file-backed store hands back every
value as a string, so these turn cells into proper Python types.
"""
from __future__ import annotations
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Optional
import json

CENT = Decimal("0.01")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def money(value: Any) -> Decimal:
    """Parse a monetary value and round it to 2 decimal places (half up)."""
    if isinstance(value, Decimal):
        amount = value
    elif value in (None, ""):
        amount = Decimal("0")
    else:
        try:
            # str() first so floats do not drag their binary expansion along
            amount = Decimal(str(value).strip())
        except InvalidOperation:
            amount = Decimal("0")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def parse_int(value: Any, default: Optional[int] = 0) -> Optional[int]:
    if value in (None, ""):
        return default
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return default


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "y", "t")
    return False


def parse_datetime(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).strip())
        except ValueError:
            try:
                parsed = datetime.strptime(str(value).strip(), "%Y-%m-%d %H:%M:%S")
            except ValueError:
                return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_json_map(value: Any) -> Dict[str, Any]:
    if isinstance(value, dict):
        return dict(value)
    if not value:
        return {}
    try:
        parsed = json.loads(value)
    except (TypeError, ValueError):
        return {}
    return parsed if isinstance(parsed, dict) else {}


def iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None
