# eventhub/utils/numeric.py
from __future__ import annotations

from typing import Optional


def coerce_int(value) -> Optional[int]:
    """
    Best-effort integer conversion with support for numeric strings/floats.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, str):
        value = value.strip().replace(",", "")
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        try:
            return int(float(value))
        except (TypeError, ValueError, OverflowError):
            # "1e999", Infinity and NaN have no integer value
            return None


def coerce_capacity(value) -> Optional[int]:
    """Attendee capacity: a positive integer or None."""
    n = coerce_int(value)
    if n is None or n <= 0:
        return None
    return n


__all__ = ["coerce_int", "coerce_capacity"]
