"""Conversion of raw header values to strings.

Headers arrive as decoded JSON, so a value may be any JSON type. Scalars are
rendered as text; arrays, objects and null have no sensible environment
representation and are dropped.
"""

import math
from decimal import Decimal
from typing import Any


def format_float(value: float) -> str:
    """Render a float in plain decimal notation with no exponent.

    Whole numbers lose their fraction (``1.0`` gives ``1``) and small or large
    values are written out in full (``1e-07`` gives ``0.0000001``).
    """
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "inf" if value > 0 else "-inf"
    text = format(Decimal(repr(value)), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def get_string_value(value: Any) -> str | None:
    """Return the string form of a header value, or None if it has none."""
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return format_float(value)
    if isinstance(value, (int, str)):
        return str(value)
    return None


def to_string_headers(raw: dict[str, Any] | None) -> dict[str, str]:
    """Convert a raw header mapping, keeping key order and skipping unconvertible values."""
    headers: dict[str, str] = {}
    for key, value in (raw or {}).items():
        converted = get_string_value(value)
        if converted is not None:
            headers[str(key)] = converted
    return headers
