"""
Tests for ProcurementService.

Covers:
- Preconditions (store, tenant) checked before anything else
- Persist: dedupe, both order collections written, event published
- Manual entry add / update / delete with validation
- Indent import and status / receipt quantity synchronisation
"""

from decimal import Decimal

import pytest

from procurement_engines.live_stock import LiveStockInfo, LiveStockMap
from procurement_kernel.domain.records import IndentStatus, ProcurementRecord, ReceiptLine, ReceiptRecord
from procurement_kernel.exceptions import (
    NotAuthenticatedError,
    RecordNotFoundError,
    RecordValidationError,
    StoreUnavailableError,
)
from procurement_services.event_bus import ChangeEvent
from procurement_services.procurement_service import ProcurementService, validate_entry
from tests.builders import TENANT, procurement_doc


@pytest.fixture
def service(store, propagator):
    return ProcurementService(store, propagator, TENANT)


@pytest.fixture
def published(propagator):
    events = []
    propagator.subscribe(ChangeEvent.PROCUREMENT_ORDERS_CHANGED, events.append)
    return events


def _entry(indent="IND-1", code="A1", **fields):
    values = {"order_no": "PO-1", "supplier_name": "Acme"}
    values.update(fields)
    return ProcurementRecord(indent_no=indent, item_code=code, **values)


class TestPreconditions:
    def test_no_store(self, propagator):
        with pytest.raises(StoreUnavailableError):
            ProcurementService(None, propagator, TENANT).add_entry(_entry())

    def test_no_tenant(self, store, propagator):
        with pytest.raises(NotAuthenticatedError):
            ProcurementService(store, propagator, None).records()

    def test_store_checked_before_tenant(self, propagator):
        with pytest.raises(StoreUnavailableError):
            ProcurementService(None, propagator, None).persist([])


class TestPersist:
    def test_dedupes_and_writes_both_collections(self, service, store, published):
        first = _entry(purchase_qty=Decimal("4"))
        duplicate = _entry(code="a1", purchase_qty=Decimal("9"))

        persisted = service.persist([first, duplicate, _entry(code="B2")])

        assert [r.key for r in persisted] == ["IND-1|A1", "IND-1|B2"]
        assert persisted[0].purchase_qty == Decimal("4")
        assert all(r.record_id for r in persisted)
        for collection in ("purchase_orders", "procurement_records"):
            assert [d["itemCode"] for d in store.snapshot(TENANT, collection)] == ["A1", "B2"]

        assert len(published) == 1
        assert published[0].records == tuple(persisted)

    def test_records_round_trip(self, service):
        service.persist([_entry(indent_status=IndentStatus.CLOSED)])
        record = service.records()[0]

        assert record.indent_status is IndentStatus.CLOSED
        assert record.supplier_name == "Acme"

    def test_summary(self, service):
        service.persist([_entry(), _entry(code="B2", order_no="", indent_status=IndentStatus.CLOSED)])
        summary = service.summary()
        assert (summary.total, summary.open, summary.closed, summary.without_order_no) == (2, 1, 1, 1)


class TestManualEntries:
    def test_validation(self):
        errors = validate_entry(ProcurementRecord(indent_no="IND-1"))
        assert {e["field"] for e in errors} == {"poNo", "supplierName"}

    def test_add_sets_purchase_quantity_from_live_stock(self, service):
        live = LiveStockMap({"IND-1|A1": LiveStockInfo(Decimal("6"), True, IndentStatus.OPEN)})
        added = service.add_entry(_entry(purchase_qty=Decimal("1")), live)

        assert added.purchase_qty == Decimal("6")
        assert added.record_id is not None

    def test_add_closed_entry_needs_nothing(self, service):
        added = service.add_entry(_entry(indent_status=IndentStatus.CLOSED, purchase_qty=Decimal("3")))
        assert added.purchase_qty == Decimal("0")

    def test_add_duplicate_rejected(self, service, published):
        service.add_entry(_entry())

        with pytest.raises(RecordValidationError) as exc_info:
            service.add_entry(_entry(code=" a1"))

        assert exc_info.value.field_errors[0]["field"] == "itemCode"
        assert len(published) == 1

    def test_invalid_entry_not_written(self, service, store):
        with pytest.raises(RecordValidationError):
            service.add_entry(_entry(supplier_name=""))
        assert store.snapshot(TENANT, "procurement_records") == []

    def test_update_entry(self, service):
        service.add_entry(_entry())
        service.add_entry(_entry(code="B2"))

        updated = service.update_entry("IND-1|A1", _entry(code="C3", supplier_name="Beta"))

        assert updated.key == "IND-1|C3"
        assert [r.key for r in service.records()] == ["IND-1|C3", "IND-1|B2"]

    def test_update_unknown_key(self, service):
        with pytest.raises(RecordNotFoundError):
            service.update_entry("IND-404|Z", _entry())

    def test_update_collision_rejected(self, service):
        service.add_entry(_entry())
        service.add_entry(_entry(code="B2"))

        with pytest.raises(RecordValidationError):
            service.update_entry("IND-1|A1", _entry(code="B2"))

    def test_delete_entry(self, service):
        service.add_entry(_entry())
        service.add_entry(_entry(code="B2"))
        service.delete_entry("IND-1|A1")

        assert [r.key for r in service.records()] == ["IND-1|B2"]
        with pytest.raises(RecordNotFoundError):
            service.delete_entry("IND-1|A1")


class TestIndentSync:
    def test_import_from_indents(self, service, store):
        store.replace_collection(TENANT, "procurement_records", [procurement_doc(order_no="PO-1", supplierName="Acme")])

        plan = service.import_from_indents(
            [{"indentNo": "IND-1", "itemCode": "A1", "qty": 20}, {"indentNo": "IND-2", "itemCode": "B1", "qty": 5}],
            [],
        )

        assert (plan.created, plan.updated) == (1, 1)
        records = service.records()
        assert [r.key for r in records] == ["IND-1|A1", "IND-2|B1"]
        assert records[0].order_no == "PO-1"
        assert records[0].original_indent_qty == Decimal("20")

    def test_sync_indent_status_persists_only_on_change(self, service, published):
        service.persist([_entry(purchase_qty=Decimal("5"))])
        published.clear()

        assert service.sync_indent_status([], [{"indentNo": "IND-1", "itemCode": "A1"}]) == 1
        assert service.records()[0].indent_status is IndentStatus.CLOSED
        assert len(published) == 1

        assert service.sync_indent_status([], [{"indentNo": "IND-1", "itemCode": "A1"}]) == 0
        assert len(published) == 1

    def test_sync_receipt_quantities(self, service):
        service.persist([_entry()])
        receipt = ReceiptRecord(
            order_no="PO-1",
            lines=(ReceiptLine(item_code="A1", qty_received=Decimal("10"), ok_qty=Decimal("9"), reject_qty=Decimal("1")),),
        )

        assert service.sync_receipt_quantities([receipt]) == 1
        record = service.records()[0]
        assert (record.received_qty, record.ok_qty, record.rejected_qty) == (Decimal("10"), Decimal("9"), Decimal("1"))
        assert service.sync_receipt_quantities([receipt]) == 0
