"""
Module: procurement_engines
Responsibility:
    Package entrypoint re-exporting the pure reconciliation engines.  This
    is the import surface for ``procurement_services``.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import procurement_kernel (domain, logging) and sibling
    engine modules.  MUST NOT import procurement_config or
    procurement_services.

Invariants enforced:
    - Purity: engines never read the clock; dates are passed in.
    - Decimal-only quantity arithmetic.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Public engine entry points are traced via ``@traced_engine`` (see
    ``procurement_engines.tracer``), emitting PROCUREMENT_ENGINE_TRACE
    records with engine name, version, input fingerprint and duration.
"""

from procurement_engines.actuals import accepted_quantity, purchase_actuals
from procurement_engines.batch_code import batch_number, next_batch_code
from procurement_engines.dedup import dedupe, dedupe_by, dedupe_inspections
from procurement_engines.live_stock import (
    EMPTY_LIVE_STOCK,
    LiveStockInfo,
    LiveStockMap,
    compute_live_stock,
    indent_line_quantity,
    stock_from_indent_line,
)
from procurement_engines.matching import (
    MatchDetails,
    MatchResolver,
    MatchStep,
    build_match_resolver,
)
from procurement_engines.orphans import find_orphans, is_orphan, valid_order_keys
from procurement_engines.purchasing import (
    IndentImportPlan,
    ProcurementSummary,
    apply_indent_status,
    apply_receipt_quantities,
    indent_status_of,
    plan_indent_import,
    purchase_quantity_for,
    summarize,
)
from procurement_engines.receipts import (
    ImportCandidate,
    ReceiptPrefill,
    apply_item_master,
    line_quantity_errors,
    plan_import_candidates,
    prefill_from_order,
    reconcile_line_quantities,
    refresh_order_quantities,
    with_order_quantities,
)
from procurement_engines.repair import LineRepair, ReceiptRepair, plan_repairs

__all__ = [
    # Matching
    "MatchStep",
    "MatchDetails",
    "MatchResolver",
    "build_match_resolver",
    # Live stock
    "LiveStockInfo",
    "LiveStockMap",
    "EMPTY_LIVE_STOCK",
    "compute_live_stock",
    "stock_from_indent_line",
    "indent_line_quantity",
    # Dedup
    "dedupe",
    "dedupe_by",
    "dedupe_inspections",
    # Batch codes
    "next_batch_code",
    "batch_number",
    # Orphans
    "valid_order_keys",
    "find_orphans",
    "is_orphan",
    # Repair
    "LineRepair",
    "ReceiptRepair",
    "plan_repairs",
    # Purchasing
    "IndentImportPlan",
    "ProcurementSummary",
    "plan_indent_import",
    "apply_indent_status",
    "apply_receipt_quantities",
    "indent_status_of",
    "purchase_quantity_for",
    "summarize",
    # Receipts
    "ImportCandidate",
    "ReceiptPrefill",
    "plan_import_candidates",
    "prefill_from_order",
    "reconcile_line_quantities",
    "line_quantity_errors",
    "apply_item_master",
    "with_order_quantities",
    "refresh_order_quantities",
    # Actuals
    "accepted_quantity",
    "purchase_actuals",
]
