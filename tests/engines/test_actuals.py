"""Tests for purchase actuals per stocked item."""

from decimal import Decimal

from procurement_engines.actuals import accepted_quantity, purchase_actuals
from procurement_kernel.domain.records import ReceiptLine, ReceiptRecord, StockRecord


class TestPurchaseActuals:
    def test_sums_accepted_quantity_by_item_name(self):
        receipts = [
            ReceiptRecord(lines=(ReceiptLine(item_name="Bolt", qty_received=Decimal("10"), ok_qty=Decimal("9")),)),
            ReceiptRecord(lines=(ReceiptLine(item_name=" bolt", qty_received=Decimal("4")),)),
        ]
        stock = [StockRecord(item_code="A1", item_name="Bolt"), StockRecord(item_code="B1", item_name="Nut")]

        assert purchase_actuals(stock, receipts) == {"Bolt": Decimal("13"), "Nut": Decimal("0")}

    def test_lines_without_name_ignored(self):
        receipts = [ReceiptRecord(lines=(ReceiptLine(qty_received=Decimal("5")),))]
        assert purchase_actuals([StockRecord(item_name="Bolt")], receipts) == {"Bolt": Decimal("0")}

    def test_accepted_quantity_prefers_ok(self):
        assert accepted_quantity(ReceiptLine(qty_received=Decimal("5"), ok_qty=Decimal("3"))) == Decimal("3")
        assert accepted_quantity(ReceiptLine(qty_received=Decimal("5"))) == Decimal("5")
