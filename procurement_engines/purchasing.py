"""
procurement_engines.purchasing -- Procurement record derivations.

Responsibility:
    Pure planning for the purchasing workflow:

    - ``plan_indent_import``: one procurement record per indent line,
      refreshing only indent-owned fields on records that already exist.
    - ``apply_indent_status``: status / current stock / purchase quantity
      refresh when the indent collections change.
    - ``apply_receipt_quantities``: received / ok / rejected quantities
      copied from the matching receipt line.
    - ``summarize``: record counts for dashboards.

    Purchase quantity rule: an Open line needs its live-stock display
    quantity (falling back to the stock carried on the indent line);
    any other status needs nothing.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Callers persist the
    returned records.

Invariants enforced:
    - Import never overwrites user-entered fields (order number, supplier,
      order date, remarks).
    - At most one record per composite key is produced by an import.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Any

from procurement_engines.live_stock import (
    LiveStockMap,
    indent_line_quantity,
    stock_from_indent_line,
)
from procurement_engines.tracer import traced_engine
from procurement_kernel.domain.aliases import DEFAULT_ALIASES, FieldAliases
from procurement_kernel.domain.keys import composite_key, normalize
from procurement_kernel.domain.quantities import ZERO, first_truthy
from procurement_kernel.domain.records import (
    IndentStatus,
    ProcurementRecord,
    ReceiptRecord,
)


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def purchase_quantity_for(status: IndentStatus, needed: Decimal) -> Decimal:
    """Quantity still to purchase for a line in ``status``."""
    return needed if status is IndentStatus.OPEN else ZERO


def _line_keys(line: Mapping[str, Any]) -> list[str]:
    return [
        composite_key(line.get("indentNo"), line.get("itemCode") or ""),
        composite_key(line.get("indentNo"), line.get("Code") or ""),
    ]


def indent_status_of(
    indent_no: Any,
    item_code: Any,
    open_items: Iterable[Mapping[str, Any]],
    closed_items: Iterable[Mapping[str, Any]],
) -> IndentStatus:
    """Open if an open line matches, Closed if a closed line matches, else Open."""
    key = composite_key(indent_no, item_code)
    for items, status in ((open_items, IndentStatus.OPEN), (closed_items, IndentStatus.CLOSED)):
        for line in items or ():
            if isinstance(line, Mapping) and key in _line_keys(line):
                return status
    return IndentStatus.OPEN


@dataclass(frozen=True)
class IndentImportPlan:
    records: tuple[ProcurementRecord, ...]
    created: int
    updated: int


@traced_engine("indent_import", "1.0")
def plan_indent_import(
    records: Sequence[ProcurementRecord],
    *,
    open_items: Sequence[Mapping[str, Any]],
    closed_items: Sequence[Mapping[str, Any]],
    live_stock: LiveStockMap,
    aliases: FieldAliases = DEFAULT_ALIASES,
) -> IndentImportPlan:
    """
    Merge indent lines into the procurement records.

    Existing records (same composite key) get original quantity, current
    stock, status, OA number and purchase quantity refreshed.  New lines
    are appended in indent order.
    """
    result = list(records)
    position = {record.key: i for i, record in reversed(list(enumerate(result)))}
    created = updated = 0

    for line in [*(open_items or ()), *(closed_items or ())]:
        if not isinstance(line, Mapping) or not line.get("indentNo"):
            continue
        item_code = _text(first_truthy(line, ("itemCode", "Code")))
        key = composite_key(line.get("indentNo"), item_code)
        stock = stock_from_indent_line(line, aliases)
        needed = live_stock.display_for(line.get("indentNo"), item_code, fallback=stock)
        line_status = indent_status_of(line.get("indentNo"), item_code, open_items, closed_items)
        oa_no = first_truthy(line, aliases.oa_no)

        if key in position:
            i = position[key]
            current = result[i]
            result[i] = replace(
                current,
                original_indent_qty=indent_line_quantity(line, aliases),
                current_stock=stock,
                indent_status=line_status,
                oa_no=_text(oa_no) if oa_no else current.oa_no,
                purchase_qty=purchase_quantity_for(line_status, needed),
            )
            updated += 1
        else:
            record = ProcurementRecord(
                item_name=_text(first_truthy(line, aliases.indent_item_name)),
                item_code=item_code,
                indent_no=_text(line.get("indentNo")),
                indent_date=_text(first_truthy(line, ("date", "indentDate"))),
                indent_by=_text(line.get("indentBy")),
                oa_no=_text(oa_no),
                original_indent_qty=indent_line_quantity(line, aliases),
                current_stock=stock,
                indent_status=line_status,
                purchase_qty=purchase_quantity_for(line_status, needed),
            )
            position.setdefault(record.key, len(result))
            result.append(record)
            created += 1

    return IndentImportPlan(records=tuple(result), created=created, updated=updated)


@traced_engine("indent_status_sync", "1.0")
def apply_indent_status(
    records: Sequence[ProcurementRecord],
    *,
    open_items: Sequence[Mapping[str, Any]],
    closed_items: Sequence[Mapping[str, Any]],
    live_stock: LiveStockMap,
    aliases: FieldAliases = DEFAULT_ALIASES,
) -> tuple[list[ProcurementRecord], int]:
    """
    Refresh status, current stock and purchase quantity from indent lines.

    Returns the records and how many changed.  Records without a matching
    indent line are returned unchanged.
    """
    status_by_key: dict[str, IndentStatus] = {}
    stock_by_key: dict[str, Decimal] = {}
    for items, status in ((open_items, IndentStatus.OPEN), (closed_items, IndentStatus.CLOSED)):
        for line in items or ():
            if not isinstance(line, Mapping) or not line.get("indentNo"):
                continue
            for key in _line_keys(line):
                status_by_key[key] = status
                stock_by_key[key] = stock_from_indent_line(line, aliases)

    changed = 0
    updated: list[ProcurementRecord] = []
    for record in records:
        key = record.key
        if key not in status_by_key:
            updated.append(record)
            continue
        status = status_by_key[key]
        stock = stock_by_key[key]
        needed = live_stock.display_for(record.indent_no, record.item_code, fallback=stock)
        refreshed = replace(
            record,
            indent_status=status,
            current_stock=stock,
            purchase_qty=purchase_quantity_for(status, needed),
        )
        if refreshed != record:
            changed += 1
        updated.append(refreshed)
    return updated, changed


@traced_engine("receipt_quantity_sync", "1.0")
def apply_receipt_quantities(
    records: Sequence[ProcurementRecord],
    receipts: Sequence[ReceiptRecord],
) -> tuple[list[ProcurementRecord], int]:
    """
    Copy received / ok / rejected quantities from receipt lines.

    The receipt is the first one with the record's order number; the line
    is its first line with the record's item code.
    """
    by_order: dict[str, ReceiptRecord] = {}
    for receipt in receipts:
        order = normalize(receipt.order_no)
        if order:
            by_order.setdefault(order, receipt)

    changed = 0
    updated: list[ProcurementRecord] = []
    for record in records:
        receipt = by_order.get(normalize(record.order_no))
        line = None
        if receipt is not None:
            code = normalize(record.item_code)
            line = next((l for l in receipt.lines if normalize(l.item_code) == code), None)
        if line is None:
            updated.append(record)
            continue
        synced = replace(
            record,
            received_qty=line.qty_received,
            ok_qty=line.ok_qty,
            rejected_qty=line.reject_qty,
        )
        if synced != record:
            changed += 1
        updated.append(synced)
    return updated, changed


@dataclass(frozen=True)
class ProcurementSummary:
    total: int
    open: int
    closed: int
    without_order_no: int


def summarize(records: Iterable[ProcurementRecord]) -> ProcurementSummary:
    total = open_count = closed_count = missing = 0
    for record in records:
        total += 1
        if record.indent_status is IndentStatus.OPEN:
            open_count += 1
        elif record.indent_status is IndentStatus.CLOSED:
            closed_count += 1
        if not normalize(record.order_no):
            missing += 1
    return ProcurementSummary(
        total=total,
        open=open_count,
        closed=closed_count,
        without_order_no=missing,
    )
