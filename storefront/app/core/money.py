"""Decimal helpers for monetary arithmetic."""
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Optional

from storefront.app.core.constants import ZERO, ONE_CENT, ONE_GRAM_KG, PERCENT_BASE


def to_decimal(value: Any, default: Decimal = ZERO) -> Decimal:
    """Convert numbers / strings to Decimal via str() to avoid binary float artifacts."""
    if value is None:
        return default
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def optional_decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    return to_decimal(value)


def round_money(value: Decimal) -> Decimal:
    return value.quantize(ONE_CENT, rounding=ROUND_HALF_UP)


def round_weight(value: Decimal) -> Decimal:
    return value.quantize(ONE_GRAM_KG, rounding=ROUND_HALF_UP)


def discount_factor(percent: Any) -> Decimal:
    """1 - percent/100, clamped so a bad percentage never produces a negative price."""
    pct = min(max(to_decimal(percent), ZERO), PERCENT_BASE)
    return 1 - pct / PERCENT_BASE
