"""Tests for the once-per-load receipt repair pass."""

from decimal import Decimal

from procurement_engines.matching import MatchResolver
from procurement_kernel.domain.records import ReceiptRecord
from procurement_services.repair_pass import RepairPass
from tests.builders import TENANT, line_doc, receipt_doc


def _receipts(store):
    return [ReceiptRecord.from_document(d) for d in store.snapshot(TENANT, "receipts")]


def _resolver():
    return MatchResolver(
        [{"poNo": "PO-1", "indentNo": "IND-1", "itemCode": "A1", "purchaseQty": 12, "originalIndentQty": 10}],
        [],
    )


class TestRepairPass:
    def test_corrupted_line_restored_once(self, store, captured_logs):
        store.add(TENANT, "receipts", receipt_doc(items=[line_doc(qty_received=12, ok_qty=12)]))
        repair = RepairPass(store, "receipts")

        result = repair.run(TENANT, _receipts(store), _resolver())

        assert result.written_count == 1
        assert _receipts(store)[0].lines[0].qty_received == Decimal("10")
        assert repair.completed
        applied = [r for r in captured_logs() if r["message"] == "repair_pass_applied"]
        assert applied[0]["line_count"] == 1

    def test_latch_prevents_second_run(self, store):
        repair = RepairPass(store, "receipts")
        repair.run(TENANT, [], _resolver())

        store.add(TENANT, "receipts", receipt_doc(items=[line_doc(qty_received=12, ok_qty=12)]))

        assert repair.run(TENANT, _receipts(store), _resolver()) is None
        assert _receipts(store)[0].lines[0].qty_received == Decimal("12")

    def test_reset_rearms(self, store):
        repair = RepairPass(store, "receipts")
        repair.run(TENANT, [], _resolver())
        repair.reset()

        store.add(TENANT, "receipts", receipt_doc(items=[line_doc(qty_received=12, ok_qty=12)]))
        result = repair.run(TENANT, _receipts(store), _resolver())

        assert result.written_count == 1

    def test_receipts_without_id_not_written(self, store):
        receipt = ReceiptRecord.from_document(receipt_doc(items=[line_doc(qty_received=12, ok_qty=12)]))
        result = RepairPass(store, "receipts").run(TENANT, [receipt], _resolver())

        assert result.written_count == 0
        assert result.ok
