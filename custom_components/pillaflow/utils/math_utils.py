# File: utils/math_utils.py
"""Numeric coercion utilities for Pillaflow.

Pure Python math functions with ZERO Home Assistant dependencies.

⚠️ UTILS PURITY: NO `homeassistant.*` imports allowed.

Functions:
    - as_number: Coerce loosely typed input to a number with fallback
    - normalize_optional_number: Blank or non-numeric input becomes None
    - clamp_int: Round and clamp to an inclusive integer range
    - round_amount: Consistent rounding for ledger amounts
"""

from __future__ import annotations

import logging
import math
from typing import Any

# Module-level logger (no HA dependency)
_LOGGER = logging.getLogger(__name__)

# Default float precision for ledger amounts
DATA_FLOAT_PRECISION = 2


def as_number(value: Any, fallback: float | None = 0) -> float | None:
    """Coerce a value to a finite number, returning fallback otherwise.

    Integral floats are returned as int so JSON output stays tidy.

    Examples:
        as_number("120") → 120
        as_number("abc", 0) → 0
        as_number(None, None) → None
    """
    if value is None or isinstance(value, bool):
        return fallback
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return fallback
    try:
        number = float(value)
    except (TypeError, ValueError):
        return fallback
    if not math.isfinite(number):
        return fallback
    if number.is_integer():
        return int(number)
    return number


def normalize_optional_number(value: Any) -> float | None:
    """Return a finite number, or None for blank and non-numeric input."""
    return as_number(value, None)


def clamp_int(value: Any, low: int, high: int, fallback: int) -> int:
    """Round a numeric value and clamp it into [low, high].

    Non-numeric input uses the fallback, which is clamped as well.
    """
    number = as_number(value, None)
    if number is None:
        number = fallback
    return min(high, max(low, round(number)))


def round_amount(value: float, precision: int = DATA_FLOAT_PRECISION) -> float:
    """Round a ledger amount to the configured precision."""
    return round(value, precision)
