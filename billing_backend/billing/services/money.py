# billing/services/money.py

"""
MONEY HELPERS

All bill arithmetic goes through these helpers:
- Decimal only (floats are converted through str)
- 2dp, ROUND_HALF_UP (half away from zero) at every monetary step
"""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

logger = logging.getLogger(__name__)

TWOPLACES = Decimal("0.01")
ZERO = Decimal("0.00")


def to_decimal(value, default=ZERO) -> Decimal:
    """
    Coerce str/int/float/Decimal/None into a finite Decimal.

    Booleans, blanks, NaN/Infinity and unparsable input fall back to `default`.
    """
    if value is None or value == "" or isinstance(value, bool):
        return default

    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError, TypeError):
            logger.warning("Invalid decimal value; using default", extra={"value": repr(value)})
            return default

    if not result.is_finite():
        logger.warning("Non-finite decimal value; using default", extra={"value": repr(value)})
        return default

    return result


def round2(value) -> Decimal:
    return to_decimal(value).quantize(TWOPLACES, rounding=ROUND_HALF_UP)


def to_positive(value, fallback) -> Decimal:
    result = to_decimal(value, default=None)
    if result is None or result <= 0:
        return Decimal(str(fallback))
    return result


def to_non_negative(value, fallback) -> Decimal:
    result = to_decimal(value, default=None)
    if result is None or result < 0:
        return Decimal(str(fallback))
    return result


def money_str(value) -> str:
    """2dp string form, used when money is written into JSON documents."""
    return str(round2(value))
