"""
Pure domain layer.

This module contains the record types and identifier/quantity helpers
with NO dependencies on:
- ORM (SQLAlchemy)
- Document store
- I/O

All domain objects are immutable and deterministic.
"""

from procurement_kernel.domain.aliases import DEFAULT_ALIASES, FieldAliases
from procurement_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from procurement_kernel.domain.keys import (
    INDENT_KEY_PREFIX,
    KEY_SEPARATOR,
    composite_key,
    indent_key,
    indent_only_key,
    match_key,
    normalize,
    order_key,
    order_key_forms,
)
from procurement_kernel.domain.quantities import (
    ZERO,
    coerce_quantity,
    extract_quantity,
    first_present,
    first_truthy,
    parse_quantity,
    to_json_number,
)
from procurement_kernel.domain.records import (
    IndentStatus,
    InspectionRecord,
    ItemMasterEntry,
    ProcurementRecord,
    ReceiptLine,
    ReceiptRecord,
    StockRecord,
)

__all__ = [
    # Keys
    "KEY_SEPARATOR",
    "INDENT_KEY_PREFIX",
    "normalize",
    "composite_key",
    "indent_only_key",
    "match_key",
    "indent_key",
    "order_key",
    "order_key_forms",
    # Quantities
    "ZERO",
    "parse_quantity",
    "coerce_quantity",
    "extract_quantity",
    "first_present",
    "first_truthy",
    "to_json_number",
    # Records
    "IndentStatus",
    "ProcurementRecord",
    "ReceiptLine",
    "ReceiptRecord",
    "InspectionRecord",
    "StockRecord",
    "ItemMasterEntry",
    # Field aliases
    "FieldAliases",
    "DEFAULT_ALIASES",
    # Clock
    "Clock",
    "SystemClock",
    "DeterministicClock",
]
