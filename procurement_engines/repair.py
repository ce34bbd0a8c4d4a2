"""
procurement_engines.repair -- Received quantities overwritten by order quantities.

Responsibility:
    Detect receipt lines whose received quantity was at some point filled
    in with the ORDER quantity instead of what was actually received, and
    plan restoring them to the originally requested quantity.

    For each line the matching order entry is resolved (MatchResolver).
    With ``order = purchaseQty ?? poQty`` and
    ``original = originalIndentQty ?? originalQty ?? qty`` on that entry,
    a line is restored to ``original`` when:

        order > 0 and original > 0
        and qtyReceived == order
        and original != order

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The RepairPass service
    runs this once per load and persists the changed receipts.

Caveat:
    The rule is a heuristic, not a corruption detector.  A receipt that
    genuinely received exactly the ordered quantity, against an order whose
    requested quantity differs, is indistinguishable from a corrupted one
    and will be "restored" too.

    Only ``qtyReceived`` is restored; ``okQty`` and ``rejectQty`` keep
    their stored values.  A restored line therefore no longer satisfies
    ``qtyReceived == okQty + rejectQty`` and ``ReceiptService.update_receipt``
    rejects the receipt until its quantities are corrected.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, replace
from decimal import Decimal

from procurement_engines.matching import MatchResolver
from procurement_engines.tracer import traced_engine
from procurement_kernel.domain.aliases import DEFAULT_ALIASES, FieldAliases
from procurement_kernel.domain.quantities import coerce_quantity, first_present
from procurement_kernel.domain.records import ReceiptLine, ReceiptRecord


@dataclass(frozen=True)
class LineRepair:
    line_index: int
    item_code: str
    stored_qty: Decimal
    restored_qty: Decimal


@dataclass(frozen=True)
class ReceiptRepair:
    """A receipt with at least one restored line."""

    original: ReceiptRecord
    repaired: ReceiptRecord
    line_repairs: tuple[LineRepair, ...]


def _repair_line(
    receipt: ReceiptRecord,
    line: ReceiptLine,
    resolver: MatchResolver,
    aliases: FieldAliases,
) -> Decimal | None:
    details = resolver.resolve_with_details(receipt.order_no, receipt.indent_no, line.item_code)
    entry = details.matched_entry
    if entry is None:
        return None
    ordered = coerce_quantity(first_present(entry, aliases.repair_order_quantity))
    original = coerce_quantity(first_present(entry, aliases.original_quantity))
    if ordered > 0 and original > 0 and line.qty_received == ordered and original != ordered:
        return original
    return None


@traced_engine("receipt_repair", "1.0")
def plan_repairs(
    receipts: Sequence[ReceiptRecord],
    *,
    resolver: MatchResolver,
    aliases: FieldAliases = DEFAULT_ALIASES,
) -> list[ReceiptRepair]:
    """Repairs for every receipt that has a line to restore, in input order."""
    repairs: list[ReceiptRepair] = []
    for receipt in receipts:
        lines = list(receipt.lines)
        line_repairs: list[LineRepair] = []
        for i, line in enumerate(lines):
            restored = _repair_line(receipt, line, resolver, aliases)
            if restored is None:
                continue
            line_repairs.append(
                LineRepair(
                    line_index=i,
                    item_code=line.item_code,
                    stored_qty=line.qty_received,
                    restored_qty=restored,
                )
            )
            lines[i] = replace(line, qty_received=restored)
        if line_repairs:
            repairs.append(
                ReceiptRepair(
                    original=receipt,
                    repaired=receipt.with_lines(tuple(lines)),
                    line_repairs=tuple(line_repairs),
                )
            )
    return repairs
