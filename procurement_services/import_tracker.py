"""
ImportIdempotencyTracker -- import-from-order without duplicates.

Responsibility:
    Materialise one receipt per order of the import source, remembering
    which order keys were already materialised so repeated imports write
    nothing.

    Per candidate (see ``procurement_engines.receipts.plan_import_candidates``):
        - skipped when its key is processed or tombstoned (unless ``force``);
        - a receipt with that key already exists: patch only what it is
          missing (supplier, OA number, lines), never user-entered data;
        - otherwise: create a receipt dated today.

Invariants enforced:
    - The processed-key set is seeded from existing receipts on load.
    - A key is marked processed only after its write succeeded.
    - ``force`` bypasses both sets and lifts the key's tombstone.

Failure modes:
    - A store error on one candidate is logged at ERROR and reported in
      ``ImportResult.failures``; other candidates are still imported and
      earlier writes are not undone.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from procurement_engines.receipts import ImportCandidate
from procurement_kernel.domain.clock import Clock, SystemClock
from procurement_kernel.domain.records import ReceiptRecord
from procurement_kernel.exceptions import StoreError
from procurement_kernel.logging_config import LogContext, get_logger
from procurement_services.document_store import BulkWriteFailure, DocumentStore
from procurement_services.keysets import KeySet

logger = get_logger("services.import_tracker")


@dataclass(frozen=True)
class ImportResult:
    created: int = 0
    patched: int = 0
    skipped: int = 0
    created_ids: tuple[str, ...] = ()
    patched_ids: tuple[str, ...] = ()
    failures: tuple[BulkWriteFailure, ...] = field(default_factory=tuple)

    @property
    def nothing_to_import(self) -> bool:
        return self.created == 0 and self.patched == 0 and not self.failures


def _missing_fields(existing: ReceiptRecord, candidate: ImportCandidate) -> dict[str, Any]:
    patch: dict[str, Any] = {}
    if not existing.supplier_name and candidate.supplier_name:
        patch["supplierName"] = candidate.supplier_name
    if not existing.oa_no and candidate.oa_no:
        patch["oaNo"] = candidate.oa_no
    if existing.is_empty and candidate.lines:
        patch["items"] = [line.to_document() for line in candidate.lines]
    return patch


class ImportIdempotencyTracker:
    """
    Idempotent receipt import against a processed-key and tombstone set.

    Both sets are owned by the session and shared with the
    OrphanReconciler.
    """

    def __init__(
        self,
        store: DocumentStore,
        collection: str,
        processed: KeySet,
        tombstones: KeySet,
        clock: Clock | None = None,
    ):
        self._store = store
        self._collection = collection
        self._processed = processed
        self._tombstones = tombstones
        self._clock = clock or SystemClock()

    @property
    def processed_keys(self) -> frozenset[str]:
        return self._processed.snapshot()

    def seed(self, receipts: Iterable[ReceiptRecord]) -> None:
        """Mark the keys of receipts already in the store as processed."""
        self._processed.update(r.key for r in receipts)

    def forget(self, key: str) -> None:
        self._processed.discard(key)

    def reset(self) -> None:
        self._processed.clear()

    def is_pending(self, key: str, force: bool = False) -> bool:
        if force:
            return True
        return key not in self._processed and key not in self._tombstones

    def import_all(
        self,
        tenant_id: str,
        candidates: Sequence[ImportCandidate],
        existing: Sequence[ReceiptRecord],
        force: bool = False,
    ) -> ImportResult:
        by_key: dict[str, ReceiptRecord] = {}
        for receipt in existing:
            by_key.setdefault(receipt.key, receipt)

        created_ids: list[str] = []
        patched_ids: list[str] = []
        failures: list[BulkWriteFailure] = []
        skipped = 0

        with LogContext.bind(tenant_id=tenant_id, collection=self._collection):
            for candidate in candidates:
                if not self.is_pending(candidate.key, force):
                    skipped += 1
                    continue
                if force:
                    self._tombstones.discard(candidate.key)

                current = by_key.get(candidate.key)
                try:
                    if current is not None and current.record_id:
                        patch = _missing_fields(current, candidate)
                        if patch:
                            self._store.update(tenant_id, self._collection, current.record_id, patch)
                            patched_ids.append(current.record_id)
                        else:
                            skipped += 1
                    else:
                        receipt = ReceiptRecord(
                            received_date=self._clock.today().isoformat(),
                            indent_no=candidate.indent_no,
                            order_no=candidate.order_no,
                            oa_no=candidate.oa_no,
                            supplier_name=candidate.supplier_name,
                            lines=candidate.lines,
                        )
                        record_id = self._store.add(tenant_id, self._collection, receipt.to_document())
                        created_ids.append(record_id)
                        by_key[candidate.key] = receipt
                except StoreError as exc:
                    record_id = current.record_id if current is not None else None
                    failures.append(BulkWriteFailure(record_id=record_id, error=exc))
                    logger.error(
                        "import_write_failed",
                        extra={"key": candidate.key},
                        exc_info=exc,
                    )
                    continue
                self._processed.add(candidate.key)

            result = ImportResult(
                created=len(created_ids),
                patched=len(patched_ids),
                skipped=skipped,
                created_ids=tuple(created_ids),
                patched_ids=tuple(patched_ids),
                failures=tuple(failures),
            )
            if result.nothing_to_import:
                logger.info("import_nothing_to_import", extra={"skipped": skipped})
            else:
                logger.info(
                    "import_completed",
                    extra={
                        "created_count": result.created,
                        "patched_count": result.patched,
                        "skipped": skipped,
                        "failure_count": len(failures),
                        "force": force,
                    },
                )
        return result
