"""
Key normalisation for loosely formatted identifiers.

The four record collections are joined only by free-text order numbers,
indent numbers and item codes.  Every comparison goes through
``normalize``: surrounding whitespace is dropped and letters are
upper-cased.  No other fuzzy matching is performed.
"""

from typing import Any

# Not expected inside order, indent or item identifiers.
KEY_SEPARATOR = "|"

# Prefix for receipt keys derived from an indent number when the receipt
# carries no order number.
INDENT_KEY_PREFIX = "INDENT::"


def normalize(value: Any) -> str:
    """Canonical form of an identifier; ``None`` maps to ``""``."""
    if value is None:
        return ""
    return str(value).strip().upper()


def composite_key(indent_no: Any, item_code: Any) -> str:
    """Identity key of a procurement record: ``(indentNo, itemCode)``."""
    return f"{normalize(indent_no)}{KEY_SEPARATOR}{normalize(item_code)}"


def indent_only_key(indent_no: Any) -> str:
    """Composite key with an empty item code (indent-level fallback)."""
    return composite_key(indent_no, "")


def match_key(order_no: Any, indent_no: Any, item_code: Any) -> str:
    """Merge key used when overlaying the two order collections."""
    return KEY_SEPARATOR.join(
        (normalize(order_no), normalize(indent_no), normalize(item_code))
    )


def indent_key(indent_no: Any) -> str:
    return f"{INDENT_KEY_PREFIX}{normalize(indent_no)}"


def order_key(order_no: Any, indent_no: Any) -> str:
    """
    Logical key of a receipt or inspection record.

    The normalised order number, or ``INDENT::<indentNo>`` when the record
    has no order number.
    """
    order = normalize(order_no)
    return order if order else indent_key(indent_no)


def order_key_forms(order_no: Any, indent_no: Any) -> set[str]:
    """All key forms a source record makes valid (order and indent)."""
    forms: set[str] = set()
    order = normalize(order_no)
    if order:
        forms.add(order)
    if normalize(indent_no):
        forms.add(indent_key(indent_no))
    return forms
