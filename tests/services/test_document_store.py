"""
Tests for the document stores.

Both the in-memory and the SQLite-backed store must honour the same
contract: snapshot on subscribe, snapshot after every write, queued
(never nested) delivery, deep-copied snapshots and typed failures.
"""

import pytest

from procurement_kernel.exceptions import RecordNotFoundError, StoreWriteError
from procurement_services.document_store import BulkWriteResult, InMemoryDocumentStore
from tests.builders import TENANT


@pytest.fixture(params=["memory", "sql"])
def any_store(request):
    if request.param == "memory":
        return InMemoryDocumentStore()
    return request.getfixturevalue("sql_store")


class TestReadsAndWrites:
    def test_add_then_snapshot_carries_id(self, any_store):
        record_id = any_store.add(TENANT, "receipts", {"poNo": "PO-1", "id": "ignored"})
        docs = any_store.snapshot(TENANT, "receipts")

        assert docs == [{"poNo": "PO-1", "id": record_id}]

    def test_insertion_order_kept(self, any_store):
        for n in range(3):
            any_store.add(TENANT, "receipts", {"n": n})
        assert [d["n"] for d in any_store.snapshot(TENANT, "receipts")] == [0, 1, 2]

    def test_update_merges_patch(self, any_store):
        record_id = any_store.add(TENANT, "receipts", {"poNo": "PO-1", "supplierName": ""})
        any_store.update(TENANT, "receipts", record_id, {"supplierName": "Acme"})

        assert any_store.snapshot(TENANT, "receipts")[0]["supplierName"] == "Acme"
        assert any_store.snapshot(TENANT, "receipts")[0]["poNo"] == "PO-1"

    def test_delete(self, any_store):
        keep = any_store.add(TENANT, "receipts", {"n": 1})
        drop = any_store.add(TENANT, "receipts", {"n": 2})
        any_store.delete(TENANT, "receipts", drop)

        assert [d["id"] for d in any_store.snapshot(TENANT, "receipts")] == [keep]

    def test_replace_collection(self, any_store):
        any_store.add(TENANT, "purchase_orders", {"poNo": "OLD"})
        ids = any_store.replace_collection(TENANT, "purchase_orders", [{"poNo": "A"}, {"poNo": "B", "id": "x"}])

        docs = any_store.snapshot(TENANT, "purchase_orders")
        assert [d["poNo"] for d in docs] == ["A", "B"]
        assert [d["id"] for d in docs] == ids

    def test_tenants_and_collections_isolated(self, any_store):
        any_store.add(TENANT, "receipts", {"n": 1})

        assert any_store.snapshot("tenant-2", "receipts") == []
        assert any_store.snapshot(TENANT, "inspections") == []

    def test_unknown_id_raises_not_found(self, any_store):
        with pytest.raises(RecordNotFoundError) as exc_info:
            any_store.update(TENANT, "receipts", "00000000-0000-0000-0000-000000000000", {"a": 1})
        assert exc_info.value.code == "RECORD_NOT_FOUND"

        with pytest.raises(RecordNotFoundError):
            any_store.delete(TENANT, "receipts", "not-an-id")

    def test_snapshots_are_copies(self, any_store):
        any_store.add(TENANT, "receipts", {"items": [{"itemCode": "A1"}]})
        docs = any_store.snapshot(TENANT, "receipts")
        docs[0]["items"][0]["itemCode"] = "CHANGED"

        assert any_store.snapshot(TENANT, "receipts")[0]["items"][0]["itemCode"] == "A1"


class TestSubscriptions:
    def test_snapshot_delivered_on_subscribe_and_after_writes(self, any_store):
        any_store.add(TENANT, "receipts", {"n": 1})
        seen = []
        any_store.subscribe(TENANT, "receipts", lambda docs: seen.append([d["n"] for d in docs]))
        any_store.add(TENANT, "receipts", {"n": 2})

        assert seen == [[1], [1, 2]]

    def test_other_collections_do_not_notify(self, any_store):
        seen = []
        any_store.subscribe(TENANT, "receipts", seen.append)
        any_store.add(TENANT, "inspections", {"n": 1})
        any_store.add("tenant-2", "receipts", {"n": 1})

        assert seen == [[]]

    def test_unsubscribe(self, any_store):
        seen = []
        unsubscribe = any_store.subscribe(TENANT, "receipts", seen.append)
        unsubscribe()
        unsubscribe()
        any_store.add(TENANT, "receipts", {"n": 1})

        assert len(seen) == 1

    def test_writes_from_listener_are_queued_not_nested(self, any_store):
        depth = 0
        max_depth = 0
        seen = []

        def listener(docs):
            nonlocal depth, max_depth
            depth += 1
            max_depth = max(max_depth, depth)
            seen.append(len(docs))
            if len(docs) == 1:
                any_store.add(TENANT, "receipts", {"n": 2})
            depth -= 1

        any_store.subscribe(TENANT, "receipts", listener)
        any_store.add(TENANT, "receipts", {"n": 1})

        assert seen == [0, 1, 2]
        assert max_depth == 1

    def test_failing_listener_isolated(self, any_store, captured_logs):
        seen = []

        def broken(docs):
            raise RuntimeError("listener bug")

        any_store.subscribe(TENANT, "receipts", broken)
        any_store.subscribe(TENANT, "receipts", seen.append)
        any_store.add(TENANT, "receipts", {"n": 1})

        assert len(seen) == 2
        failures = [r for r in captured_logs() if r["message"] == "snapshot_listener_failed"]
        assert failures and failures[0]["exc_type"] == "RuntimeError"


class TestBulkWrites:
    def test_update_many_is_best_effort(self, any_store, captured_logs):
        good = any_store.add(TENANT, "receipts", {"n": 1})
        missing = "00000000-0000-0000-0000-000000000000"

        result = any_store.update_many(TENANT, "receipts", [(missing, {"n": 9}), (good, {"n": 2})])

        assert result.written_ids == [good]
        assert [f.record_id for f in result.failures] == [missing]
        assert isinstance(result.failures[0].error, RecordNotFoundError)
        assert any_store.snapshot(TENANT, "receipts")[0]["n"] == 2

        logged = [r for r in captured_logs() if r["message"] == "bulk_write_failed"]
        assert logged[0]["level"] == "ERROR"
        assert logged[0]["record_id"] == missing
        assert logged[0]["exc_code"] == "RECORD_NOT_FOUND"

    def test_delete_many(self, any_store):
        ids = [any_store.add(TENANT, "receipts", {"n": n}) for n in range(2)]
        result = any_store.delete_many(TENANT, "receipts", ids)

        assert result.ok
        assert result.written_count == 2
        assert any_store.snapshot(TENANT, "receipts") == []

    def test_write_error_reported(self):
        class FailingStore(InMemoryDocumentStore):
            def _patch(self, tenant_id, collection, record_id, patch):
                raise StoreWriteError(collection, "update", "disk full", record_id)

        store = FailingStore()
        record_id = store.add(TENANT, "receipts", {"n": 1})
        result = store.update_many(TENANT, "receipts", [(record_id, {"n": 2})])

        assert not result.ok
        assert result.failures[0].error.reason == "disk full"

    def test_merge(self):
        merged = BulkWriteResult(written_ids=["a"]).merge(BulkWriteResult(written_ids=["b"]))
        assert merged.written_ids == ["a", "b"]
        assert merged.ok
