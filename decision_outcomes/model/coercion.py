"""Loose value coercion for externally supplied parameter values.

Documents and command lines deliver values as strings or mixed primitives.
These helpers turn them into numbers, booleans and text without raising:
anything that is not numeric becomes NaN so validation can report it.
"""

import math
from typing import Any

FALSE_STRINGS = frozenset({"", "false", "0", "no", "off", "n", "f"})


def to_number(value: Any) -> float:
    """Convert a value to a float, returning NaN when it is not numeric.

    Booleans count as 1 and 0, blank strings as 0. None and containers are
    not numeric.
    """
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        try:
            return float(text)
        except ValueError:
            return math.nan
    try:
        # numpy scalars and other number-likes
        return float(value)
    except (TypeError, ValueError):
        return math.nan


def to_boolean(value: Any) -> bool:
    """Convert a value to a bool, reading common spellings of false in strings."""
    if isinstance(value, str):
        return value.strip().lower() not in FALSE_STRINGS
    return bool(value)


def to_text(value: Any) -> str:
    """Convert a value to its string form; booleans render lowercase."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)
