"""
Tests for ImportIdempotencyTracker.

Covers:
- Creation of one receipt per pending candidate
- Idempotency: a second import with unchanged inputs writes nothing
- Patching only the fields an existing receipt lacks
- Tombstones and force
- Write failures leave the key pending
"""

from decimal import Decimal

import pytest

from procurement_engines.receipts import ImportCandidate
from procurement_kernel.domain.records import ReceiptLine, ReceiptRecord
from procurement_kernel.exceptions import StoreWriteError
from procurement_services.document_store import InMemoryDocumentStore
from procurement_services.import_tracker import ImportIdempotencyTracker
from tests.builders import TENANT, receipt_doc


def _receipts(store):
    return [ReceiptRecord.from_document(d) for d in store.snapshot(TENANT, "receipts")]


@pytest.fixture
def tracker(store, processed, tombstones, deterministic_clock):
    return ImportIdempotencyTracker(store, "receipts", processed, tombstones, deterministic_clock)


@pytest.fixture
def candidates():
    return [
        ImportCandidate(
            key="PO-1",
            order_no="PO-1",
            indent_no="IND-1",
            supplier_name="Acme",
            oa_no="OA-1",
            lines=(ReceiptLine(item_name="Bolt", item_code="A1", po_qty=Decimal("12")),),
        ),
        ImportCandidate(key="PO-2", order_no="PO-2", indent_no="IND-2", lines=(ReceiptLine(),)),
    ]


class TestImportAll:
    def test_creates_one_receipt_per_candidate(self, store, tracker, candidates, captured_logs):
        result = tracker.import_all(TENANT, candidates, [])

        assert result.created == 2
        receipts = _receipts(store)
        assert [r.order_no for r in receipts] == ["PO-1", "PO-2"]
        assert receipts[0].received_date == "2024-06-15"
        assert receipts[0].lines[0].po_qty == Decimal("12")
        assert tracker.processed_keys == frozenset({"PO-1", "PO-2"})

        completed = [r for r in captured_logs() if r["message"] == "import_completed"]
        assert completed[0]["created_count"] == 2

    def test_second_import_writes_nothing(self, store, tracker, candidates, captured_logs):
        tracker.import_all(TENANT, candidates, [])
        again = tracker.import_all(TENANT, candidates, _receipts(store))

        assert again.nothing_to_import
        assert again.skipped == 2
        assert len(_receipts(store)) == 2
        assert any(r["message"] == "import_nothing_to_import" for r in captured_logs())

    def test_existing_receipt_only_gets_missing_fields(self, store, tracker, candidates):
        store.add(TENANT, "receipts", receipt_doc("PO-1", supplierName="", items=[]))

        result = tracker.import_all(TENANT, candidates[:1], _receipts(store))

        assert result.patched == 1
        assert result.created == 0
        receipt = _receipts(store)[0]
        assert receipt.supplier_name == "Acme"
        assert receipt.oa_no == "OA-1"
        assert receipt.invoice_no == "INV-1"
        assert [line.item_code for line in receipt.lines] == ["A1"]

    def test_complete_existing_receipt_skipped_and_marked(self, store, tracker, candidates):
        store.add(TENANT, "receipts", receipt_doc("PO-1", oaNo="OA-OLD"))

        result = tracker.import_all(TENANT, candidates[:1], _receipts(store))

        assert (result.created, result.patched, result.skipped) == (0, 0, 1)
        assert "PO-1" in tracker.processed_keys

    def test_tombstoned_key_skipped_unless_forced(self, store, tracker, tombstones, candidates):
        tombstones.add("PO-2")

        result = tracker.import_all(TENANT, candidates, [])
        assert result.created == 1

        forced = tracker.import_all(TENANT, candidates, _receipts(store), force=True)
        assert forced.created == 1
        assert "PO-2" not in tombstones
        assert [r.order_no for r in _receipts(store)] == ["PO-1", "PO-2"]

    def test_seed_marks_existing_receipts(self, tracker):
        tracker.seed([ReceiptRecord(order_no="po-5"), ReceiptRecord(indent_no="IND-6")])

        assert not tracker.is_pending("PO-5")
        assert not tracker.is_pending("INDENT::IND-6")
        assert tracker.is_pending("PO-5", force=True)

    def test_forget_and_reset(self, tracker):
        tracker.seed([ReceiptRecord(order_no="PO-5"), ReceiptRecord(order_no="PO-6")])
        tracker.forget("PO-5")
        assert tracker.is_pending("PO-5")

        tracker.reset()
        assert tracker.processed_keys == frozenset()

    def test_failed_write_leaves_key_pending(self, processed, tombstones, deterministic_clock, candidates, captured_logs):
        class FailingStore(InMemoryDocumentStore):
            def _insert(self, tenant_id, collection, document):
                if document["poNo"] == "PO-1":
                    raise StoreWriteError(collection, "add", "quota exceeded")
                return super()._insert(tenant_id, collection, document)

        store = FailingStore()
        tracker = ImportIdempotencyTracker(store, "receipts", processed, tombstones, deterministic_clock)

        result = tracker.import_all(TENANT, candidates, [])

        assert result.created == 1
        assert len(result.failures) == 1
        assert tracker.is_pending("PO-1")
        assert not tracker.is_pending("PO-2")
        failed = [r for r in captured_logs() if r["message"] == "import_write_failed"]
        assert failed[0]["key"] == "PO-1"
        assert failed[0]["exc_code"] == "STORE_WRITE_FAILED"
