"""
procurement_engines.receipts -- Goods receipt derivations.

Responsibility:
    - Line quantity reconciliation: a line's received quantity must equal
      ok + rejected; a non-positive received quantity is taken to be
      ok + rejected.
    - Item-master lookup: a line whose item name is in the item master
      takes the master's item code.
    - Order quantity cache: every line caches the quantity MatchResolver
      currently resolves for ``(orderNo, indentNo, itemCode)``.
    - Import candidates: one receipt draft per distinct order number in
      the order source, with lines taken from the order's item list, its
      top-level item fields, or the matching secondary rows, in that order.
    - Header autofill from an order number.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - A cached order quantity always equals ``resolver.resolve(...)`` for
      the receipt it was refreshed against.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from typing import Any

from procurement_engines.matching import MatchResolver
from procurement_engines.tracer import traced_engine
from procurement_kernel.domain.aliases import DEFAULT_ALIASES, FieldAliases
from procurement_kernel.domain.keys import normalize
from procurement_kernel.domain.quantities import first_truthy
from procurement_kernel.domain.records import ItemMasterEntry, ReceiptLine, ReceiptRecord


def _text(value: Any) -> str:
    return "" if value is None else str(value).strip()


# ---------------------------------------------------------------------------
# Lines
# ---------------------------------------------------------------------------


def reconcile_line_quantities(line: ReceiptLine) -> ReceiptLine:
    """Fill a non-positive received quantity with ok + rejected."""
    if line.qty_received <= 0:
        return replace(line, qty_received=line.ok_qty + line.reject_qty)
    return line


def line_quantity_errors(line: ReceiptLine, index: int) -> list[dict]:
    """Validation problems of one (already reconciled) line."""
    errors: list[dict] = []
    if not line.item_name and not line.item_code:
        errors.append({"field": f"items[{index}].itemName", "message": "item name or code required"})
    if line.qty_received != line.ok_qty + line.reject_qty:
        errors.append({
            "field": f"items[{index}].qtyReceived",
            "message": "received quantity must equal ok + rejected",
            "qty_received": str(line.qty_received),
            "ok_plus_rejected": str(line.ok_qty + line.reject_qty),
        })
    return errors


def apply_item_master(line: ReceiptLine, item_master: Sequence[ItemMasterEntry]) -> ReceiptLine:
    """Take the item code the master records for the line's item name."""
    if not line.item_name:
        return line
    for entry in item_master:
        if entry.item_name == line.item_name:
            if entry.item_code and entry.item_code != line.item_code:
                return replace(line, item_code=entry.item_code)
            return line
    return line


def with_order_quantities(receipt: ReceiptRecord, resolver: MatchResolver) -> ReceiptRecord:
    """The receipt with every line's cached order quantity re-resolved."""
    return receipt.with_lines(
        tuple(
            replace(
                line,
                po_qty=resolver.resolve(receipt.order_no, receipt.indent_no, line.item_code),
            )
            for line in receipt.lines
        )
    )


@traced_engine("order_quantity_refresh", "1.0")
def refresh_order_quantities(
    receipts: Sequence[ReceiptRecord],
    *,
    resolver: MatchResolver,
) -> list[ReceiptRecord]:
    """Receipts whose cached order quantities are stale, refreshed."""
    stale: list[ReceiptRecord] = []
    for receipt in receipts:
        refreshed = with_order_quantities(receipt, resolver)
        if refreshed.lines != receipt.lines:
            stale.append(refreshed)
    return stale


# ---------------------------------------------------------------------------
# Import candidates
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ImportCandidate:
    """Receipt draft for one order number of the import source."""

    key: str
    order_no: str
    indent_no: str
    supplier_name: str = ""
    oa_no: str = ""
    lines: tuple[ReceiptLine, ...] = field(default_factory=tuple)


def _row_lines(row: Mapping[str, Any], aliases: FieldAliases) -> list[tuple[str, str]]:
    items = row.get("items")
    if isinstance(items, list) and items:
        return [
            (
                _text(first_truthy(item, aliases.item_name)),
                _text(first_truthy(item, ("itemCode", "Code"))),
            )
            for item in items
            if isinstance(item, Mapping)
        ]
    name = _text(first_truthy(row, aliases.item_name))
    code = _text(first_truthy(row, ("itemCode", "Code", "CodeNo")))
    if name or code:
        return [(name, code)]
    return []


def _related(
    rows: Iterable[Mapping[str, Any]],
    order_no: str,
    indent_no: str,
) -> list[Mapping[str, Any]]:
    order, indent = normalize(order_no), normalize(indent_no)
    return [
        row
        for row in rows
        if isinstance(row, Mapping)
        and (
            (order and normalize(row.get("poNo")) == order)
            or (indent and normalize(row.get("indentNo")) == indent)
        )
    ]


@traced_engine("import_candidates", "1.0")
def plan_import_candidates(
    source: Sequence[Mapping[str, Any]],
    *,
    secondary: Sequence[Mapping[str, Any]],
    resolver: MatchResolver,
    aliases: FieldAliases = DEFAULT_ALIASES,
) -> list[ImportCandidate]:
    """
    One candidate per distinct order number in ``source`` (first-seen order).

    Rows without an order number are skipped.  The OA number and, when the
    order has no supplier, the supplier come from the first related
    secondary row (same order number or same indent number).
    """
    groups: dict[str, list[Mapping[str, Any]]] = {}
    for row in source:
        if not isinstance(row, Mapping):
            continue
        key = normalize(row.get("poNo"))
        if key:
            groups.setdefault(key, []).append(row)

    candidates: list[ImportCandidate] = []
    for key, rows in groups.items():
        order_no = _text(rows[0].get("poNo"))
        indent_no = next((_text(r.get("indentNo")) for r in rows if _text(r.get("indentNo"))), "")
        supplier = next((_text(r.get("supplierName")) for r in rows if _text(r.get("supplierName"))), "")

        related = _related(secondary, order_no, indent_no)
        oa_no = _text(related[0].get("oaNo")) if related else ""

        pairs: list[tuple[str, str]] = []
        for row in rows:
            pairs.extend(_row_lines(row, aliases))
        if not pairs and related:
            pairs = [
                (
                    _text(first_truthy(r, aliases.item_name)),
                    _text(first_truthy(r, ("itemCode", "Code", "CodeNo"))),
                )
                for r in related
            ]
            if not supplier:
                supplier = _text(first_truthy(related[0], aliases.supplier_name))

        if pairs:
            lines = tuple(
                ReceiptLine(
                    item_name=name,
                    item_code=code,
                    po_qty=resolver.resolve(order_no, indent_no, code),
                )
                for name, code in pairs
            )
        else:
            lines = (ReceiptLine(),)

        candidates.append(
            ImportCandidate(
                key=key,
                order_no=order_no,
                indent_no=indent_no,
                supplier_name=supplier,
                oa_no=oa_no,
                lines=lines,
            )
        )
    return candidates


# ---------------------------------------------------------------------------
# Header autofill
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ReceiptPrefill:
    indent_no: str = ""
    oa_no: str = ""
    supplier_name: str = ""
    item_name: str = ""
    item_code: str = ""


def prefill_from_order(
    order_no: str,
    *,
    orders: Sequence[Mapping[str, Any]],
    secondary: Sequence[Mapping[str, Any]],
    aliases: FieldAliases = DEFAULT_ALIASES,
) -> ReceiptPrefill | None:
    """
    Header and first-item suggestions for a receipt against ``order_no``.

    Searches ``orders`` (or ``secondary`` when ``orders`` is empty); None
    when no order matches.
    """
    target = normalize(order_no)
    if not target:
        return None
    search = orders if orders else secondary
    order = next(
        (o for o in search if isinstance(o, Mapping) and normalize(o.get("poNo")) == target),
        None,
    )
    if order is None:
        return None

    pairs = _row_lines(order, aliases)
    name, code = pairs[0] if pairs else ("", "")
    supplier = _text(order.get("supplierName"))
    if not supplier:
        related = _related(secondary, _text(order.get("poNo")), _text(order.get("indentNo")))
        for row in related:
            supplier = _text(first_truthy(row, aliases.supplier_name))
            break
    return ReceiptPrefill(
        indent_no=_text(order.get("indentNo")),
        oa_no=_text(order.get("oaNo")),
        supplier_name=supplier,
        item_name=name,
        item_code=code,
    )

