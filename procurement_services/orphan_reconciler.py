"""
OrphanReconciler -- delete receipts and inspections whose order is gone.

After every change to the order collections the session hands this
service the currently valid key set.  Every receipt or inspection none of
whose key forms is valid is deleted, its key is tombstoned so a later
import does not recreate it, and the key is dropped from the processed-key
set so a forced import can bring it back.

Deletes go through ``DocumentStore.delete_many``: best-effort, a failed
delete is reported and the record stays in the store (and is retried on
the next pass).  Records without a store id are skipped.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from procurement_engines.orphans import OrderKeyed, find_orphans
from procurement_kernel.logging_config import LogContext, get_logger
from procurement_services.document_store import BulkWriteResult, DocumentStore
from procurement_services.keysets import KeySet

logger = get_logger("services.orphan_reconciler")


@dataclass(frozen=True)
class OrphanPurgeResult:
    collection: str
    orphan_keys: tuple[str, ...] = ()
    deleted_ids: tuple[str, ...] = ()
    skipped_without_id: int = 0
    write_result: BulkWriteResult = field(default_factory=BulkWriteResult)

    @property
    def deleted_count(self) -> int:
        return len(self.deleted_ids)


class OrphanReconciler:
    """
    Purges orphaned derived records and tombstones their keys.

    Contract:
        ``reconcile`` is idempotent against an unchanged store: the second
        pass finds no orphans because the first one deleted them.
    """

    def __init__(self, store: DocumentStore, tombstones: KeySet, processed: KeySet):
        self._store = store
        self._tombstones = tombstones
        self._processed = processed

    def reconcile(
        self,
        tenant_id: str,
        collection: str,
        records: Sequence[OrderKeyed],
        valid_keys: frozenset[str],
    ) -> OrphanPurgeResult:
        orphans = find_orphans(records, valid_keys=valid_keys)
        if not orphans:
            return OrphanPurgeResult(collection=collection)

        ids: list[str] = []
        keys: list[str] = []
        skipped = 0
        for record in orphans:
            record_id = getattr(record, "record_id", None)
            if not record_id:
                skipped += 1
                continue
            ids.append(record_id)
            keys.append(record.key)

        write_result = self._store.delete_many(tenant_id, collection, ids)
        deleted = set(write_result.written_ids)
        for record_id, key in zip(ids, keys):
            if record_id in deleted:
                self._tombstones.add(key)
                self._processed.discard(key)

        with LogContext.bind(tenant_id=tenant_id, collection=collection):
            logger.info(
                "orphans_purged",
                extra={
                    "orphan_count": len(orphans),
                    "deleted_count": len(deleted),
                    "skipped_without_id": skipped,
                    "failure_count": len(write_result.failures),
                },
            )
        return OrphanPurgeResult(
            collection=collection,
            orphan_keys=tuple(dict.fromkeys(keys)),
            deleted_ids=tuple(i for i in ids if i in deleted),
            skipped_without_id=skipped,
            write_result=write_result,
        )
