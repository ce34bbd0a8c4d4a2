"""
ReconciliationSession -- explicit owner of all reconciliation state.

Responsibility:
    Subscribes to every collection of one tenant, keeps the latest snapshot
    of each, and drives the derived-state effects:

        live-stock input changed -> publish indents-changed (once all
                                    four inputs are loaded)
        indent items changed     -> orphan scan
        order collections change -> orphan scan, repair pass, order
                                    quantity refresh
        receipts first loaded    -> seed processed keys, orphan scan,
                                    repair pass, order quantity refresh
        inspections first loaded -> orphan scan
        indents-changed          -> ProcurementService.sync_indent_status
        receipts-changed         -> ProcurementService.sync_receipt_quantities
        procurement-orders-changed
                                 -> ReceiptService.refresh_order_quantities

    State the session owns, with inspection and reset operations:
        - snapshots with loaded-state tracking
        - the cached LiveStockMap and MatchResolver
        - the processed-key and tombstone sets
        - the repair latch
        - store and event subscriptions

Architecture position:
    Services -- top of the imperative shell.  Nothing else in the package
    holds mutable reconciliation state.

Invariants enforced:
    - The live-stock map is computed only once all four of its inputs have
      been delivered; until then every lookup sees the empty map, never a
      partially computed one.  Any input change drops the whole cached map.
    - The resolver cache is dropped whenever either order collection
      changes.
    - Orphan scans run only when the order collections and the scanned
      collection are loaded; with ``skip_orphan_scan_when_sources_empty``
      they are also skipped while either side is empty.
    - The repair pass runs at most once between ``reset_repair_latch``
      calls.

Usage:
    session = ReconciliationSession(store, tenant_id="t1")
    session.start()
    session.import_from_indents()
    result = session.import_all()
    session.close()
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from procurement_config import get_active_config
from procurement_config.schema import ReconciliationConfig
from procurement_engines.dedup import dedupe_inspections
from procurement_engines.live_stock import EMPTY_LIVE_STOCK, LiveStockMap, compute_live_stock
from procurement_engines.matching import MatchResolver, build_match_resolver
from procurement_engines.orphans import valid_order_keys
from procurement_engines.purchasing import IndentImportPlan
from procurement_engines.receipts import plan_import_candidates
from procurement_kernel.domain.clock import Clock, SystemClock
from procurement_kernel.domain.records import (
    InspectionRecord,
    ProcurementRecord,
    ReceiptRecord,
    StockRecord,
)
from procurement_kernel.exceptions import NotAuthenticatedError, StoreUnavailableError
from procurement_kernel.logging_config import LogContext, get_logger
from procurement_services.document_store import DocumentStore
from procurement_services.event_bus import (
    ChangeEvent,
    ChangePropagator,
    IndentsChanged,
    InspectionsChanged,
    ProcurementOrdersChanged,
    ReceiptsChanged,
)
from procurement_services.import_tracker import ImportIdempotencyTracker, ImportResult
from procurement_services.keysets import KeySet
from procurement_services.orphan_reconciler import OrphanPurgeResult, OrphanReconciler
from procurement_services.procurement_service import ProcurementService
from procurement_services.receipt_service import ReceiptService
from procurement_services.repair_pass import RepairPass

logger = get_logger("services.session")


class ReconciliationSession:
    """
    One tenant's reconciliation engine.

    Contract:
        Construct, ``start()``, use, ``close()``.  A closed session can be
        started again; its key sets and repair latch survive unless reset.
    Non-goals:
        Thread safety.  All callbacks run on the caller's thread.
    """

    def __init__(
        self,
        store: DocumentStore | None,
        tenant_id: str | None = None,
        config: ReconciliationConfig | None = None,
        propagator: ChangePropagator | None = None,
        clock: Clock | None = None,
    ):
        self._config = config or get_active_config()
        self._store = store
        self._tenant_id = tenant_id or self._config.default_tenant
        self._propagator = propagator or ChangePropagator()
        self._clock = clock or SystemClock()
        names = self._config.collections
        self._names = names

        self._snapshots: dict[str, list[dict[str, Any]]] = {}
        self._live_stock: LiveStockMap | None = None
        self._resolver: MatchResolver | None = None
        self._unsubscribers: list[Callable[[], None]] = []

        self._tombstones = KeySet("tombstones")
        self._processed = KeySet("processed")

        self.procurement = ProcurementService(
            store, self._propagator, self._tenant_id, names, self._config.aliases
        )
        self.receipts = ReceiptService(
            store,
            self._propagator,
            self._tenant_id,
            self._tombstones,
            collections=names,
            clock=self._clock,
            aliases=self._config.aliases,
            batch_prefix=self._config.batch_prefix,
        )
        self._tracker: ImportIdempotencyTracker | None = None
        self._orphans: OrphanReconciler | None = None
        self._repair: RepairPass | None = None
        if store is not None:
            self._tracker = ImportIdempotencyTracker(
                store, names.receipts, self._processed, self._tombstones, self._clock
            )
            self._orphans = OrphanReconciler(store, self._tombstones, self._processed)
            self._repair = RepairPass(store, names.receipts, self._config.aliases)

        self._live_stock_inputs = frozenset({
            names.open_indent_items,
            names.closed_indent_items,
            names.indent_data,
            names.stock_records,
        })
        self._order_collections = frozenset({names.purchase_orders, names.procurement_records})

    # -- lifecycle ----------------------------------------------------------

    def _require(self, operation: str) -> tuple[DocumentStore, str]:
        if self._store is None:
            raise StoreUnavailableError(operation)
        if not self._tenant_id:
            raise NotAuthenticatedError(operation)
        return self._store, self._tenant_id

    @property
    def tenant_id(self) -> str | None:
        return self._tenant_id

    @property
    def propagator(self) -> ChangePropagator:
        return self._propagator

    @property
    def started(self) -> bool:
        return bool(self._unsubscribers)

    def start(self) -> None:
        """Subscribe to the event bus and to every collection."""
        store, tenant_id = self._require("start session")
        if self.started:
            return
        with LogContext.bind(tenant_id=tenant_id):
            logger.info("session_starting", extra={"config_id": self._config.config_id})
            self._unsubscribers.extend([
                self._propagator.subscribe(ChangeEvent.INDENTS_CHANGED, self._on_indents_changed),
                self._propagator.subscribe(ChangeEvent.RECEIPTS_CHANGED, self._on_receipts_changed),
                self._propagator.subscribe(
                    ChangeEvent.PROCUREMENT_ORDERS_CHANGED, self._on_orders_changed
                ),
            ])
            for collection in self._names.all():
                self._unsubscribers.append(
                    store.subscribe(
                        tenant_id,
                        collection,
                        lambda docs, collection=collection: self._on_snapshot(collection, docs),
                    )
                )

    def close(self) -> None:
        """Drop every subscription and all snapshot-derived caches."""
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        self._snapshots.clear()
        self._live_stock = None
        self._resolver = None
        logger.info("session_closed", extra={"tenant_id": self._tenant_id})

    def __enter__(self) -> ReconciliationSession:
        self.start()
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    # -- inspection / reset -------------------------------------------------

    @property
    def processed_keys(self) -> frozenset[str]:
        return self._processed.snapshot()

    @property
    def tombstones(self) -> frozenset[str]:
        return self._tombstones.snapshot()

    @property
    def repair_completed(self) -> bool:
        return self._repair is not None and self._repair.completed

    def reset_tombstones(self) -> None:
        self._tombstones.clear()

    def reset_processed_keys(self) -> None:
        self._processed.clear()

    def reset_repair_latch(self) -> None:
        if self._repair is not None:
            self._repair.reset()

    def is_loaded(self, collection: str) -> bool:
        return collection in self._snapshots

    def snapshot(self, collection: str) -> list[dict[str, Any]]:
        return list(self._snapshots.get(collection, ()))

    # -- derived state ------------------------------------------------------

    def live_stock(self) -> LiveStockMap:
        """The cached map, or the empty map while any input is missing."""
        if not all(self.is_loaded(c) for c in self._live_stock_inputs):
            return EMPTY_LIVE_STOCK
        if self._live_stock is None:
            self._live_stock = compute_live_stock(
                open_items=self.snapshot(self._names.open_indent_items),
                closed_items=self.snapshot(self._names.closed_indent_items),
                indent_data=self.snapshot(self._names.indent_data),
                stock_records=[
                    StockRecord.from_document(d)
                    for d in self.snapshot(self._names.stock_records)
                ],
                procurement_records=[
                    ProcurementRecord.from_document(d)
                    for d in self.snapshot(self._names.procurement_records)
                ],
                aliases=self._config.aliases,
            )
        return self._live_stock

    def resolver(self) -> MatchResolver:
        if self._resolver is None:
            self._resolver = build_match_resolver(
                primary=self.snapshot(self._names.purchase_orders),
                secondary=self.snapshot(self._names.procurement_records),
                aliases=self._config.aliases,
            )
        return self._resolver

    def receipt_records(self) -> list[ReceiptRecord]:
        return [ReceiptRecord.from_document(d) for d in self.snapshot(self._names.receipts)]

    def inspection_records(self) -> list[InspectionRecord]:
        """Inspections, one per order key and item code (first wins)."""
        return dedupe_inspections(
            InspectionRecord.from_document(d) for d in self.snapshot(self._names.inspections)
        )

    # -- explicit operations ------------------------------------------------

    def import_from_indents(self) -> IndentImportPlan:
        return self.procurement.import_from_indents(
            self.snapshot(self._names.open_indent_items),
            self.snapshot(self._names.closed_indent_items),
            self.live_stock(),
        )

    def import_all(self, force: bool = False) -> ImportResult:
        """Materialise one receipt per order; idempotent unless ``force``."""
        store, tenant_id = self._require("import receipts")
        source = self.snapshot(self._names.purchase_orders) or self.snapshot(
            self._names.procurement_records
        )
        candidates = plan_import_candidates(
            source,
            secondary=self.snapshot(self._names.procurement_records),
            resolver=self.resolver(),
            aliases=self._config.aliases,
        )
        existing = [
            ReceiptRecord.from_document(d)
            for d in store.snapshot(tenant_id, self._names.receipts)
        ]
        result = self._tracker.import_all(tenant_id, candidates, existing, force=force)
        if not result.nothing_to_import:
            self._publish_receipts()
        return result

    def purge_orphans(self) -> list[OrphanPurgeResult]:
        """Run the orphan scan over receipts and inspections now."""
        store, tenant_id = self._require("purge orphans")
        if not all(self.is_loaded(c) for c in self._order_collections):
            return []
        orders = [self.snapshot(c) for c in self._order_collections]
        if self._config.skip_orphan_scan_when_sources_empty and not any(orders):
            logger.debug("orphan_scan_skipped", extra={"reason": "order collections empty"})
            return []

        valid = valid_order_keys(*orders)
        results: list[OrphanPurgeResult] = []
        for collection, parse in (
            (self._names.receipts, ReceiptRecord.from_document),
            (self._names.inspections, InspectionRecord.from_document),
        ):
            if not self.is_loaded(collection):
                continue
            documents = self.snapshot(collection)
            if self._config.skip_orphan_scan_when_sources_empty and not documents:
                continue
            records = [parse(d) for d in documents]
            results.append(self._orphans.reconcile(tenant_id, collection, records, valid))
        if any(r.deleted_ids for r in results if r.collection == self._names.receipts):
            self._publish_receipts()
        return results

    # -- snapshot handling --------------------------------------------------

    def _on_snapshot(self, collection: str, documents: list[dict[str, Any]]) -> None:
        first_load = collection not in self._snapshots
        self._snapshots[collection] = documents
        if collection in self._live_stock_inputs or collection == self._names.procurement_records:
            self._live_stock = None
        if collection in self._order_collections:
            self._resolver = None

        names = self._names
        if collection in self._live_stock_inputs:
            self._publish_indents()
            if collection in (names.open_indent_items, names.closed_indent_items):
                self.purge_orphans()
        elif collection in self._order_collections:
            self.purge_orphans()
            self._maybe_repair()
            self._maybe_refresh_order_quantities()
        elif collection == names.receipts:
            if first_load:
                self._tracker.seed(self.receipt_records())
                self.purge_orphans()
            self._maybe_repair()
            if first_load:
                self._maybe_refresh_order_quantities()
        elif collection == names.inspections:
            if first_load:
                self.purge_orphans()
            self._propagator.publish(
                ChangeEvent.INSPECTIONS_CHANGED,
                InspectionsChanged(inspections=tuple(self.inspection_records())),
            )

    def _maybe_repair(self) -> None:
        loaded = all(self.is_loaded(c) for c in (*self._order_collections, self._names.receipts))
        if not loaded or self._repair.completed:
            return
        result = self._repair.run(self._tenant_id, self.receipt_records(), self.resolver())
        if result is not None and result.written_ids:
            self._publish_receipts()

    def _maybe_refresh_order_quantities(self) -> None:
        loaded = all(self.is_loaded(c) for c in (*self._order_collections, self._names.receipts))
        if loaded:
            self.receipts.refresh_order_quantities()

    def _publish_indents(self) -> None:
        names = self._names
        if not all(self.is_loaded(c) for c in self._live_stock_inputs):
            return
        self._propagator.publish(
            ChangeEvent.INDENTS_CHANGED,
            IndentsChanged(
                open_items=tuple(self.snapshot(names.open_indent_items)),
                closed_items=tuple(self.snapshot(names.closed_indent_items)),
            ),
        )

    def _publish_receipts(self) -> None:
        self._propagator.publish(
            ChangeEvent.RECEIPTS_CHANGED,
            ReceiptsChanged(receipts=tuple(self.receipts.receipts())),
        )

    # -- event handling -----------------------------------------------------

    def _on_indents_changed(self, payload: IndentsChanged) -> None:
        if not self.is_loaded(self._names.procurement_records):
            return
        self.procurement.sync_indent_status(
            payload.open_items, payload.closed_items, self.live_stock()
        )

    def _on_receipts_changed(self, payload: ReceiptsChanged) -> None:
        if not self.is_loaded(self._names.procurement_records):
            return
        self.procurement.sync_receipt_quantities(payload.receipts)

    def _on_orders_changed(self, payload: ProcurementOrdersChanged) -> None:
        if not self.is_loaded(self._names.receipts):
            return
        self.receipts.refresh_order_quantities()
