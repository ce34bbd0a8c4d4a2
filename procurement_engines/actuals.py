"""
procurement_engines.actuals -- Accepted quantities per stocked item.

For every stock record, the total accepted quantity across all receipt
lines with the same item name.  A line counts its ok quantity, or its
received quantity when no ok quantity was recorded.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal

from procurement_engines.tracer import traced_engine
from procurement_kernel.domain.keys import normalize
from procurement_kernel.domain.quantities import ZERO
from procurement_kernel.domain.records import ReceiptLine, ReceiptRecord, StockRecord


def accepted_quantity(line: ReceiptLine) -> Decimal:
    return line.ok_qty if line.ok_qty > 0 else line.qty_received


@traced_engine("purchase_actuals", "1.0")
def purchase_actuals(
    stock_records: Sequence[StockRecord],
    receipts: Sequence[ReceiptRecord],
) -> dict[str, Decimal]:
    """Item name -> accepted quantity, one entry per stock record."""
    totals: dict[str, Decimal] = {}
    for receipt in receipts:
        for line in receipt.lines:
            name = normalize(line.item_name)
            if not name:
                continue
            totals[name] = totals.get(name, ZERO) + accepted_quantity(line)

    return {
        stock.item_name: totals.get(normalize(stock.item_name), ZERO)
        for stock in stock_records
    }
