"""
procurement_services -- Imperative shell of the reconciliation engine.

Architecture position:
    Sits above procurement_engines (pure calculations) and
    procurement_config.  Owns every store read and write, the typed change
    propagator and the explicit session state (processed keys, tombstones,
    repair latch, cached derived maps).
"""

from procurement_services.document_store import (
    BulkWriteFailure,
    BulkWriteResult,
    DocumentStore,
    InMemoryDocumentStore,
    SqlDocumentStore,
)
from procurement_services.event_bus import (
    ChangeEvent,
    ChangePropagator,
    DispatchReport,
    IndentsChanged,
    InspectionsChanged,
    ListenerFailure,
    ProcurementOrdersChanged,
    ReceiptsChanged,
)
from procurement_services.import_tracker import ImportIdempotencyTracker, ImportResult
from procurement_services.keysets import KeySet
from procurement_services.orphan_reconciler import OrphanPurgeResult, OrphanReconciler
from procurement_services.procurement_service import ProcurementService, validate_entry
from procurement_services.receipt_service import ReceiptService, validate_receipt
from procurement_services.repair_pass import RepairPass
from procurement_services.session import ReconciliationSession

__all__ = [
    # Store
    "BulkWriteFailure",
    "BulkWriteResult",
    "DocumentStore",
    "InMemoryDocumentStore",
    "SqlDocumentStore",
    # Change propagation
    "ChangeEvent",
    "ChangePropagator",
    "DispatchReport",
    "IndentsChanged",
    "InspectionsChanged",
    "ListenerFailure",
    "ProcurementOrdersChanged",
    "ReceiptsChanged",
    # Reconciliation state
    "ImportIdempotencyTracker",
    "ImportResult",
    "KeySet",
    "OrphanPurgeResult",
    "OrphanReconciler",
    "RepairPass",
    # Workflow services
    "ProcurementService",
    "ReceiptService",
    "validate_entry",
    "validate_receipt",
    # Session
    "ReconciliationSession",
]
