"""
Helper utilities
"""
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Optional

CENT = Decimal("0.01")


def utc_today() -> date:
    """Current day in UTC. Every window and retention floor is computed in UTC."""
    return datetime.utcnow().date()


def to_money(value: Any) -> Decimal:
    """Round to cents, half-up."""
    if value is None:
        return Decimal("0.00")
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def money(value: Any) -> float:
    """Cents-rounded float for JSON payloads."""
    return float(to_money(value))


def safe_divide(numerator: Any, denominator: Any, default: float = 0.0) -> float:
    """Safely divide two numbers"""
    try:
        return float(numerator) / float(denominator) if denominator else default
    except (TypeError, ZeroDivisionError):
        return default


def parse_iso_date(value: Optional[str]) -> Optional[date]:
    """Parse YYYY-MM-DD, returning None for empty input."""
    if not value:
        return None
    return datetime.strptime(value[:10], "%Y-%m-%d").date()
