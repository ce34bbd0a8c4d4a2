"""
ProcurementService -- purchasing workflow over the procurement collections.

Responsibility:
    Manual procurement entry plus the two synchronisation effects that keep
    procurement records in line with the indent and receipt collections.

    The procurement record set is persisted wholesale: deduplicated (first
    record per ``(indentNo, itemCode)`` wins) and written with
    ``replace_collection`` to both order collections, after which
    ``procurement-orders-changed`` is published.

Architecture position:
    Services -- imperative shell.  Calculations live in
    ``procurement_engines.purchasing``; this module reads snapshots,
    checks preconditions and writes.

Failure modes:
    - StoreUnavailableError / NotAuthenticatedError before any store call.
    - RecordValidationError for missing order number / supplier, or an
      entry whose key collides with another record.
    - RecordNotFoundError when ``update_entry`` / ``delete_entry`` address
      a key that is not present.
    - Store errors propagate unchanged.

Usage:
    service = ProcurementService(store, propagator, tenant_id="t1")
    plan = service.import_from_indents(open_items, closed_items, live_stock)
    service.update_entry(record.key, replace(record, order_no="PO-7"))
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import replace
from typing import Any

from procurement_config.schema import CollectionNames
from procurement_engines.dedup import dedupe
from procurement_engines.live_stock import EMPTY_LIVE_STOCK, LiveStockMap
from procurement_engines.purchasing import (
    IndentImportPlan,
    ProcurementSummary,
    apply_indent_status,
    apply_receipt_quantities,
    plan_indent_import,
    purchase_quantity_for,
    summarize,
)
from procurement_kernel.domain.aliases import DEFAULT_ALIASES, FieldAliases
from procurement_kernel.domain.records import ProcurementRecord, ReceiptRecord
from procurement_kernel.exceptions import (
    NotAuthenticatedError,
    RecordNotFoundError,
    RecordValidationError,
    StoreUnavailableError,
)
from procurement_kernel.logging_config import LogContext, get_logger
from procurement_services.document_store import DocumentStore
from procurement_services.event_bus import ChangeEvent, ChangePropagator, ProcurementOrdersChanged

logger = get_logger("services.procurement")


def validate_entry(record: ProcurementRecord) -> list[dict]:
    """Field errors of a manually entered procurement record."""
    errors: list[dict] = []
    if not record.order_no.strip():
        errors.append({"field": "poNo", "message": "order number required"})
    if not record.supplier_name.strip():
        errors.append({"field": "supplierName", "message": "supplier required"})
    return errors


class ProcurementService:
    """
    Procurement record operations for one tenant.

    Contract:
        Every write replaces the whole (deduplicated) record set and
        publishes ``procurement-orders-changed`` with the persisted records.
    Non-goals:
        Transactions across collections; concurrent writers race and the
        last ``replace_collection`` wins.
    """

    def __init__(
        self,
        store: DocumentStore | None,
        propagator: ChangePropagator,
        tenant_id: str | None,
        collections: CollectionNames = CollectionNames(),
        aliases: FieldAliases = DEFAULT_ALIASES,
    ):
        self._store = store
        self._propagator = propagator
        self._tenant_id = tenant_id
        self._collections = collections
        self._aliases = aliases

    def _require(self, operation: str) -> tuple[DocumentStore, str]:
        if self._store is None:
            raise StoreUnavailableError(operation)
        if not self._tenant_id:
            raise NotAuthenticatedError(operation)
        return self._store, self._tenant_id

    # -- reads --------------------------------------------------------------

    def records(self) -> list[ProcurementRecord]:
        store, tenant_id = self._require("read procurement records")
        return [
            ProcurementRecord.from_document(doc)
            for doc in store.snapshot(tenant_id, self._collections.procurement_records)
        ]

    def summary(self) -> ProcurementSummary:
        return summarize(self.records())

    # -- persistence --------------------------------------------------------

    def persist(self, records: Sequence[ProcurementRecord]) -> list[ProcurementRecord]:
        """Dedupe, replace both order collections, publish.  Returns stored records."""
        store, tenant_id = self._require("persist procurement records")
        kept = dedupe(records)
        documents = [record.to_document() for record in kept]

        with LogContext.bind(tenant_id=tenant_id):
            store.replace_collection(tenant_id, self._collections.purchase_orders, documents)
            ids = store.replace_collection(
                tenant_id, self._collections.procurement_records, documents
            )
            persisted = [replace(record, record_id=i) for record, i in zip(kept, ids)]
            logger.info(
                "procurement_records_persisted",
                extra={
                    "record_count": len(persisted),
                    "duplicates_dropped": len(records) - len(kept),
                },
            )

        self._propagator.publish(
            ChangeEvent.PROCUREMENT_ORDERS_CHANGED,
            ProcurementOrdersChanged(records=tuple(persisted)),
        )
        return persisted

    # -- indent import ------------------------------------------------------

    def import_from_indents(
        self,
        open_items: Sequence[Mapping[str, Any]],
        closed_items: Sequence[Mapping[str, Any]],
        live_stock: LiveStockMap = EMPTY_LIVE_STOCK,
    ) -> IndentImportPlan:
        """One record per indent line; existing records keep user-entered fields."""
        self._require("import from indents")
        plan = plan_indent_import(
            self.records(),
            open_items=open_items,
            closed_items=closed_items,
            live_stock=live_stock,
            aliases=self._aliases,
        )
        self.persist(plan.records)
        logger.info(
            "indent_import_completed",
            extra={"created_count": plan.created, "updated_count": plan.updated},
        )
        return plan

    # -- manual entry -------------------------------------------------------

    def _with_purchase_quantity(
        self,
        record: ProcurementRecord,
        live_stock: LiveStockMap,
    ) -> ProcurementRecord:
        needed = live_stock.display_for(
            record.indent_no, record.item_code, fallback=record.purchase_qty
        )
        return replace(
            record,
            purchase_qty=purchase_quantity_for(record.indent_status, needed),
        )

    def add_entry(
        self,
        record: ProcurementRecord,
        live_stock: LiveStockMap = EMPTY_LIVE_STOCK,
    ) -> ProcurementRecord:
        self._require("add procurement entry")
        errors = validate_entry(record)
        current = self.records()
        if any(existing.key == record.key for existing in current):
            errors.append({"field": "itemCode", "message": f"duplicate entry {record.key}"})
        if errors:
            raise RecordValidationError("ProcurementRecord", errors)

        persisted = self.persist([*current, self._with_purchase_quantity(record, live_stock)])
        return next(r for r in persisted if r.key == record.key)

    def update_entry(
        self,
        original_key: str,
        record: ProcurementRecord,
        live_stock: LiveStockMap = EMPTY_LIVE_STOCK,
    ) -> ProcurementRecord:
        self._require("update procurement entry")
        errors = validate_entry(record)
        current = self.records()
        index = next((i for i, r in enumerate(current) if r.key == original_key), None)
        if index is None:
            raise RecordNotFoundError(self._collections.procurement_records, original_key)
        if any(r.key == record.key for i, r in enumerate(current) if i != index):
            errors.append({"field": "itemCode", "message": f"duplicate entry {record.key}"})
        if errors:
            raise RecordValidationError("ProcurementRecord", errors)

        current[index] = self._with_purchase_quantity(record, live_stock)
        persisted = self.persist(current)
        return next(r for r in persisted if r.key == record.key)

    def delete_entry(self, key: str) -> None:
        self._require("delete procurement entry")
        current = self.records()
        remaining = [r for r in current if r.key != key]
        if len(remaining) == len(current):
            raise RecordNotFoundError(self._collections.procurement_records, key)
        self.persist(remaining)

    # -- synchronisation effects --------------------------------------------

    def sync_indent_status(
        self,
        open_items: Sequence[Mapping[str, Any]],
        closed_items: Sequence[Mapping[str, Any]],
        live_stock: LiveStockMap = EMPTY_LIVE_STOCK,
    ) -> int:
        """Refresh status / stock / purchase qty from the indent items; persist on change."""
        records, changed = apply_indent_status(
            self.records(),
            open_items=open_items,
            closed_items=closed_items,
            live_stock=live_stock,
            aliases=self._aliases,
        )
        if changed:
            self.persist(records)
            logger.info("indent_status_synced", extra={"changed_count": changed})
        return changed

    def sync_receipt_quantities(self, receipts: Sequence[ReceiptRecord]) -> int:
        """Copy received / ok / rejected quantities from receipts; persist on change."""
        records, changed = apply_receipt_quantities(self.records(), receipts)
        if changed:
            self.persist(records)
            logger.info("receipt_quantities_synced", extra={"changed_count": changed})
        return changed
