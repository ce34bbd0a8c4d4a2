"""
Tolerant quantity coercion.

Source documents carry quantities as numbers, numeric strings (sometimes
with thousands separators), empty strings, or not at all.  Malformed input
never raises here: callers get ``Decimal("0")`` or ``None`` and decide.
"""

import re
from collections.abc import Iterable, Mapping
from decimal import Decimal, InvalidOperation
from typing import Any

ZERO = Decimal("0")

_EMBEDDED_NUMBER = re.compile(r"-?\d+(?:\.\d+)?")


def parse_quantity(value: Any) -> Decimal | None:
    """
    Strict parse: the whole value must be a finite number.

    Returns None for missing, empty, boolean, non-numeric or non-finite
    values.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, (int, float)):
        try:
            parsed = Decimal(str(value))
        except InvalidOperation:
            return None
        return parsed if parsed.is_finite() else None
    if isinstance(value, str):
        text = value.replace(",", "").strip()
        if not text:
            return None
        try:
            parsed = Decimal(text)
        except InvalidOperation:
            return None
        return parsed if parsed.is_finite() else None
    return None


def coerce_quantity(value: Any) -> Decimal:
    """Strict parse, defaulting to zero."""
    parsed = parse_quantity(value)
    return parsed if parsed is not None else ZERO


def extract_quantity(value: Any) -> Decimal:
    """
    Lenient parse: first number embedded in the value.

    ``"12 pcs"`` gives 12, ``"1,250.5"`` gives 1250.5; anything without a
    number gives zero.
    """
    strict = parse_quantity(value)
    if strict is not None:
        return strict
    if value is None or isinstance(value, bool):
        return ZERO
    match = _EMBEDDED_NUMBER.search(str(value).replace(",", ""))
    if match is None:
        return ZERO
    return Decimal(match.group(0))


def first_present(document: Mapping[str, Any], fields: Iterable[str]) -> Any:
    """Value of the first field that is present and not None."""
    for field in fields:
        value = document.get(field)
        if value is not None:
            return value
    return None


def first_truthy(document: Mapping[str, Any], fields: Iterable[str]) -> Any:
    """Value of the first field that is present and non-empty."""
    for field in fields:
        value = document.get(field)
        if value not in (None, ""):
            return value
    return None


def to_json_number(value: Decimal) -> int | float:
    """Render a quantity for a JSON document (integral values as int)."""
    if value == value.to_integral_value():
        return int(value)
    return float(value)
