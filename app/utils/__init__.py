"""Shared utility helpers used across services.

Model output is untrusted: json.loads accepts NaN and Infinity (1e999),
so every helper here returns None for non-finite numbers instead of raising.
"""

import math
import re

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


def safe_int(v):
    """Safely convert a value to int, returning None on failure."""
    if v is None or isinstance(v, bool):
        return None
    try:
        return int(v)
    except (ValueError, TypeError, OverflowError):
        return None


def safe_float(v):
    """Safely convert a value to float, returning None on failure or non-finite."""
    if v is None or isinstance(v, bool):
        return None
    try:
        f = float(v)
    except (ValueError, TypeError, OverflowError):
        return None
    return f if math.isfinite(f) else None


def leading_int(v):
    """Parse the leading integer of a value: "30 days" → 30, 14.7 → 14.

    Returns None when the value does not start with a number.
    """
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, float) and not math.isfinite(v):
        return None
    if isinstance(v, (int, float)):
        return int(v)
    m = _LEADING_INT.match(str(v))
    return int(m.group(1)) if m else None
