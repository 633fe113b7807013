"""
RECONCILIATION ENGINE - QUANTITY & RATE PRECISION

This module provides:
1. Decimal conversion for rates and quantities
2. Rate rounding at a fixed number of places (ROUND_HALF_UP)
3. Quantity validation (finite, no negative amounts)
4. Float tolerance for pending quantity checks
"""

from decimal import Context, Decimal, ROUND_HALF_UP
from typing import Any, Optional, Union
import math
import logging

from reconciliation.errors import InvalidQuantityError

logger = logging.getLogger(__name__)

# Precision configuration
# Bill lines are matched against each other at 4 places, while JobopsMaster
# and Contractor_WD entries only ever agree with bills at 2 places.
BILL_RATE_PRECISION = 4
LEDGER_RATE_PRECISION = 2

# Tolerance when deciding whether pending work would go negative
PENDING_EPSILON = 1e-6

# Wide enough to quantize any finite float (up to ~1.8e308) at 4 places
RATE_CONTEXT = Context(prec=400)


def to_decimal(value: Union[float, int, str, Decimal]) -> Decimal:
    """
    Convert any numeric value to Decimal.
    Does NOT round - preserves full precision for intermediate calculations.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        # Convert via string to avoid float precision issues
        return Decimal(str(value))
    return Decimal(str(value))


def to_number(value: Any) -> Optional[float]:
    """Coerce a stored or submitted value to float, None if it is not a finite number"""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def quantity_or_zero(value: Any) -> float:
    """Read a stored quantity, treating absent or garbage values as 0"""
    number = to_number(value)
    return number if number is not None else 0.0


def format_rate(rate: Any, places: int) -> str:
    """
    Render a rate with exactly `places` decimal digits.

    Non-finite or absent rates render as zero (e.g. '0.0000' at 4 places).
    """
    number = to_number(rate)
    if number is None or number == 0:
        number = 0.0
    quantum = Decimal(1).scaleb(-places)
    return str(to_decimal(number).quantize(quantum, rounding=ROUND_HALF_UP, context=RATE_CONTEXT))


def round_rate(rate: Any, places: int = LEDGER_RATE_PRECISION) -> float:
    """Round a rate for storage, e.g. valuePerBook on a Contractor_WD entry"""
    return float(format_rate(rate, places))


def parse_quantity(value: Any, field_name: str) -> float:
    """
    Validate a submitted quantity.
    Raises InvalidQuantityError unless the value is a finite number >= 0.
    """
    number = to_number(value)
    if number is None or number < 0:
        raise InvalidQuantityError(field_name, value)
    return number


def clamp(value: float, lower: float, upper: float) -> float:
    """Saturate value into [lower, upper]"""
    return max(lower, min(upper, value))
