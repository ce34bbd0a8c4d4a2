"""
ReceiptService -- goods receipt entry and derived-field upkeep.

Responsibility:
    - ``add_receipt`` / ``update_receipt``: header validation, line
      reconciliation (received <= 0 becomes ok + rejected; received must
      then equal ok + rejected), item-master code lookup, batch code
      allocation when blank, cached order quantity per line.
    - ``delete_line`` / ``delete_receipt``: a receipt never persists with
      an empty line list; removing it tombstones its key.
    - ``refresh_order_quantities``: rewrite the cached order quantity of
      every line whose value no longer matches MatchResolver.
    - ``next_batch_code``, ``prefill`` and ``purchase_actuals`` helpers.

Architecture position:
    Services -- imperative shell over ``procurement_engines.receipts``,
    ``batch_code`` and ``actuals``.

Failure modes:
    Precondition errors are raised in this order, before any store call:
        StoreUnavailableError -> NotAuthenticatedError
        -> MissingRecordIdError -> RecordValidationError
    Store errors propagate unchanged.  ``refresh_order_quantities`` is a
    bulk write and reports per-receipt failures instead of raising.

Usage:
    service = ReceiptService(store, propagator, tenant_id="t1", tombstones=KeySet("tombstones"))
    receipt = service.add_receipt(ReceiptRecord(...))
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace
from decimal import Decimal

from procurement_config.schema import CollectionNames
from procurement_engines.actuals import purchase_actuals
from procurement_engines.batch_code import next_batch_code
from procurement_engines.matching import MatchResolver, build_match_resolver
from procurement_engines.receipts import (
    ReceiptPrefill,
    apply_item_master,
    line_quantity_errors,
    prefill_from_order,
    reconcile_line_quantities,
    refresh_order_quantities,
    with_order_quantities,
)
from procurement_kernel.domain.aliases import DEFAULT_ALIASES, FieldAliases
from procurement_kernel.domain.clock import Clock, SystemClock
from procurement_kernel.domain.records import ItemMasterEntry, ReceiptRecord, StockRecord
from procurement_kernel.exceptions import (
    MissingRecordIdError,
    NotAuthenticatedError,
    RecordValidationError,
    StoreUnavailableError,
)
from procurement_kernel.logging_config import LogContext, get_logger
from procurement_services.document_store import BulkWriteResult, DocumentStore
from procurement_services.event_bus import ChangeEvent, ChangePropagator, ReceiptsChanged
from procurement_services.keysets import KeySet

logger = get_logger("services.receipts")

_REQUIRED_HEADER = (
    ("received_date", "receivedDate", "received date required"),
    ("indent_no", "indentNo", "indent number required"),
    ("order_no", "poNo", "order number required"),
    ("invoice_no", "invoiceNo", "invoice number required"),
    ("supplier_name", "supplierName", "supplier required"),
)


def validate_receipt(receipt: ReceiptRecord) -> list[dict]:
    """Header and line errors of an (already reconciled) receipt."""
    errors: list[dict] = []
    for attr, field_name, message in _REQUIRED_HEADER:
        if not getattr(receipt, attr).strip():
            errors.append({"field": field_name, "message": message})
    if not receipt.lines:
        errors.append({"field": "items", "message": "at least one line required"})
    for i, line in enumerate(receipt.lines):
        errors.extend(line_quantity_errors(line, i))
    return errors


class ReceiptService:
    """
    Receipt (PSIR) operations for one tenant.

    ``resolver_provider`` returns the MatchResolver for the current order
    snapshots; the session passes its cached resolver.  Without one, a
    resolver is built from the store on every call.
    """

    def __init__(
        self,
        store: DocumentStore | None,
        propagator: ChangePropagator,
        tenant_id: str | None,
        tombstones: KeySet,
        collections: CollectionNames = CollectionNames(),
        clock: Clock | None = None,
        aliases: FieldAliases = DEFAULT_ALIASES,
        batch_prefix: str = "P",
        resolver_provider: Callable[[], MatchResolver] | None = None,
    ):
        self._store = store
        self._propagator = propagator
        self._tenant_id = tenant_id
        self._tombstones = tombstones
        self._collections = collections
        self._clock = clock or SystemClock()
        self._aliases = aliases
        self._batch_prefix = batch_prefix
        self._resolver_provider = resolver_provider

    def _require(self, operation: str) -> tuple[DocumentStore, str]:
        if self._store is None:
            raise StoreUnavailableError(operation)
        if not self._tenant_id:
            raise NotAuthenticatedError(operation)
        return self._store, self._tenant_id

    def _require_id(self, receipt: ReceiptRecord, operation: str) -> str:
        if not receipt.record_id:
            raise MissingRecordIdError(self._collections.receipts, operation)
        return receipt.record_id

    def _publish(self) -> None:
        self._propagator.publish(
            ChangeEvent.RECEIPTS_CHANGED,
            ReceiptsChanged(receipts=tuple(self.receipts())),
        )

    # -- reads --------------------------------------------------------------

    def receipts(self) -> list[ReceiptRecord]:
        store, tenant_id = self._require("read receipts")
        return [
            ReceiptRecord.from_document(doc)
            for doc in store.snapshot(tenant_id, self._collections.receipts)
        ]

    def item_master(self) -> list[ItemMasterEntry]:
        store, tenant_id = self._require("read item master")
        return [
            ItemMasterEntry.from_document(doc)
            for doc in store.snapshot(tenant_id, self._collections.item_master)
        ]

    def resolver(self) -> MatchResolver:
        if self._resolver_provider is not None:
            return self._resolver_provider()
        store, tenant_id = self._require("resolve order quantities")
        return build_match_resolver(
            primary=store.snapshot(tenant_id, self._collections.purchase_orders),
            secondary=store.snapshot(tenant_id, self._collections.procurement_records),
            aliases=self._aliases,
        )

    def next_batch_code(self) -> str:
        return next_batch_code(
            (r.batch_no for r in self.receipts()),
            today=self._clock.today(),
            prefix=self._batch_prefix,
        )

    def prefill(self, order_no: str) -> ReceiptPrefill | None:
        store, tenant_id = self._require("prefill receipt")
        return prefill_from_order(
            order_no,
            orders=store.snapshot(tenant_id, self._collections.purchase_orders),
            secondary=store.snapshot(tenant_id, self._collections.procurement_records),
            aliases=self._aliases,
        )

    def purchase_actuals(self) -> dict[str, Decimal]:
        store, tenant_id = self._require("compute purchase actuals")
        stock = [
            StockRecord.from_document(doc)
            for doc in store.snapshot(tenant_id, self._collections.stock_records)
        ]
        return purchase_actuals(stock, self.receipts())

    # -- writes -------------------------------------------------------------

    def _prepare(self, receipt: ReceiptRecord) -> ReceiptRecord:
        master = self.item_master()
        lines = tuple(
            apply_item_master(reconcile_line_quantities(line), master)
            for line in receipt.lines
        )
        prepared = receipt.with_lines(lines)
        errors = validate_receipt(prepared)
        if errors:
            raise RecordValidationError("ReceiptRecord", errors)
        return with_order_quantities(prepared, self.resolver())

    def add_receipt(self, receipt: ReceiptRecord) -> ReceiptRecord:
        store, tenant_id = self._require("add receipt")
        prepared = self._prepare(receipt)
        if not prepared.batch_no.strip():
            prepared = replace(prepared, batch_no=self.next_batch_code())

        record_id = store.add(tenant_id, self._collections.receipts, prepared.to_document())
        with LogContext.bind(tenant_id=tenant_id, record_id=record_id):
            logger.info(
                "receipt_added",
                extra={"key": prepared.key, "batch_no": prepared.batch_no},
            )
        self._publish()
        return replace(prepared, record_id=record_id)

    def update_receipt(self, receipt: ReceiptRecord) -> ReceiptRecord:
        store, tenant_id = self._require("update receipt")
        record_id = self._require_id(receipt, "update")
        prepared = self._prepare(receipt)

        store.update(tenant_id, self._collections.receipts, record_id, prepared.to_document())
        with LogContext.bind(tenant_id=tenant_id, record_id=record_id):
            logger.info("receipt_updated", extra={"key": prepared.key})
        self._publish()
        return prepared

    def delete_receipt(self, receipt: ReceiptRecord) -> None:
        """Delete the receipt and tombstone its key."""
        store, tenant_id = self._require("delete receipt")
        record_id = self._require_id(receipt, "delete")
        store.delete(tenant_id, self._collections.receipts, record_id)
        self._tombstones.add(receipt.key)
        with LogContext.bind(tenant_id=tenant_id, record_id=record_id):
            logger.info("receipt_deleted", extra={"key": receipt.key})
        self._publish()

    def delete_line(self, receipt: ReceiptRecord, line_index: int) -> ReceiptRecord | None:
        """
        Remove one line.  Returns the updated receipt, or None when the
        receipt had no lines left and was deleted.
        """
        store, tenant_id = self._require("delete receipt line")
        record_id = self._require_id(receipt, "update")
        if not 0 <= line_index < len(receipt.lines):
            raise RecordValidationError(
                "ReceiptRecord",
                [{"field": f"items[{line_index}]", "message": "no such line"}],
            )

        remaining = receipt.lines[:line_index] + receipt.lines[line_index + 1:]
        if not remaining:
            self.delete_receipt(receipt)
            return None

        updated = receipt.with_lines(remaining)
        store.update(
            tenant_id,
            self._collections.receipts,
            record_id,
            {"items": [line.to_document() for line in remaining]},
        )
        self._publish()
        return updated

    def refresh_order_quantities(self) -> BulkWriteResult:
        """Persist receipts whose cached order quantities are stale."""
        store, tenant_id = self._require("refresh order quantities")
        stale = [
            r
            for r in refresh_order_quantities(self.receipts(), resolver=self.resolver())
            if r.record_id
        ]
        if not stale:
            return BulkWriteResult()

        result = store.update_many(
            tenant_id,
            self._collections.receipts,
            [(r.record_id, {"items": [line.to_document() for line in r.lines]}) for r in stale],
        )
        logger.info(
            "order_quantities_refreshed",
            extra={"refreshed_count": result.written_count, "failure_count": len(result.failures)},
        )
        if result.written_ids:
            self._publish()
        return result
