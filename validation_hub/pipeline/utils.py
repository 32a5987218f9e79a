"""
Numeric Utilities
validation_hub/pipeline/utils.py

Tolerant number parsing and clamping for provider payloads.
"""

import math
import re
from typing import Any, Optional


# Magnitude suffixes seen in provider payloads ("$7.9B", {"value": 1185, "unit": "M"})
UNIT_MULTIPLIERS = {
    "k": 1_000,
    "thousand": 1_000,
    "m": 1_000_000,
    "mm": 1_000_000,
    "million": 1_000_000,
    "b": 1_000_000_000,
    "bn": 1_000_000_000,
    "billion": 1_000_000_000,
    "t": 1_000_000_000_000,
    "trillion": 1_000_000_000_000,
}

_NUMBER_RE = re.compile(
    r"^\s*([+-])?\s*\$?\s*([+-])?(\d{1,3}(?:,\d{3})+(?:\.\d+)?|\d+(?:[.,]\d+)?)\s*([a-zA-Z]+)?\s*%?\s*(?:/\s*100)?\s*$"
)
# "7,900" and "1,234.5" use thousands separators; "1,5" is a decimal comma
_THOUSANDS_RE = re.compile(r"\d{1,3}(?:,\d{3})+(?:\.\d+)?")


def clamp(
    value: float,
    min_val: Optional[float] = 0.0,
    max_val: Optional[float] = 100.0,
) -> float:
    """Clamp value to range [min_val, max_val]; None leaves that side open."""
    if min_val is not None:
        value = max(min_val, value)
    if max_val is not None:
        value = min(max_val, value)
    return value


def unit_multiplier(unit: Any) -> float:
    """Multiplier for a magnitude unit such as "M" or "billion" (1 if unknown)."""
    if not isinstance(unit, str):
        return 1.0
    return float(UNIT_MULTIPLIERS.get(unit.strip().lower(), 1))


def to_number(value: Any) -> Optional[float]:
    """
    Coerce a provider value into a float.

    Accepts ints/floats, numeric strings with currency, thousands separators,
    percent signs and magnitude suffixes ("$1.2B", "12%", "7,900", "+15%"),
    and {"value": ..., "unit": ...} objects. Returns None when the value
    cannot be read as a finite number; booleans are never numbers.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return None
        return number if math.isfinite(number) else None
    if isinstance(value, dict):
        if "value" not in value:
            return None
        inner = to_number(value.get("value"))
        if inner is None:
            return None
        return inner * unit_multiplier(value.get("unit"))
    if isinstance(value, str):
        match = _NUMBER_RE.match(value)
        if not match:
            return None
        sign_a, sign_b, digits, suffix = match.groups()
        if _THOUSANDS_RE.fullmatch(digits):
            digits = digits.replace(",", "")
        else:
            digits = digits.replace(",", ".")
        try:
            number = float(digits)
        except ValueError:
            return None
        if suffix:
            suffix_key = suffix.lower()
            if suffix_key not in UNIT_MULTIPLIERS:
                return None
            number *= UNIT_MULTIPLIERS[suffix_key]
        if "-" in (sign_a or "", sign_b or ""):
            number = -number
        return number if math.isfinite(number) else None
    return None


def to_fraction(value: Any) -> Optional[float]:
    """Read a confidence-like value as a fraction in [0, 1] (accepts 0-100)."""
    number = to_number(value)
    if number is None:
        return None
    if number > 1.0:
        number = number / 100.0
    return clamp(number, 0.0, 1.0)


def format_compact(value: Any) -> str:
    """Human-friendly rendering used in insight text (strings are echoed as given)."""
    if isinstance(value, str):
        return value.strip()
    number = to_number(value)
    if number is None:
        return str(value)
    magnitude = abs(number)
    if magnitude >= 1_000_000_000:
        return f"{number / 1_000_000_000:.1f}B"
    if magnitude >= 1_000_000:
        return f"{number / 1_000_000:.1f}M"
    if magnitude >= 1_000:
        return f"{number / 1_000:.1f}K"
    if number == int(number):
        return str(int(number))
    return f"{number:.2f}"
