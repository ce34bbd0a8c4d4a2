"""
RepairPass -- one-shot restore of overwritten received quantities.

Runs ``procurement_engines.repair.plan_repairs`` once per load and writes
back only the receipts that changed.  A latch keeps the pass from running
again when its own writes cause fresh receipt snapshots; ``reset()`` re-arms
it.

The latch is set before any write, so a failing write is not retried on
the next snapshot.  Failures are reported in the returned BulkWriteResult.
"""

from __future__ import annotations

from collections.abc import Sequence

from procurement_engines.matching import MatchResolver
from procurement_engines.repair import plan_repairs
from procurement_kernel.domain.aliases import DEFAULT_ALIASES, FieldAliases
from procurement_kernel.domain.records import ReceiptRecord
from procurement_kernel.logging_config import LogContext, get_logger
from procurement_services.document_store import BulkWriteResult, DocumentStore

logger = get_logger("services.repair_pass")


class RepairPass:
    def __init__(
        self,
        store: DocumentStore,
        collection: str,
        aliases: FieldAliases = DEFAULT_ALIASES,
    ):
        self._store = store
        self._collection = collection
        self._aliases = aliases
        self._completed = False

    @property
    def completed(self) -> bool:
        return self._completed

    def reset(self) -> None:
        self._completed = False

    def run(
        self,
        tenant_id: str,
        receipts: Sequence[ReceiptRecord],
        resolver: MatchResolver,
    ) -> BulkWriteResult | None:
        """Repair once; None when the latch is already set."""
        if self._completed:
            return None
        self._completed = True

        repairs = [
            r for r in plan_repairs(receipts, resolver=resolver, aliases=self._aliases)
            if r.original.record_id
        ]
        result = self._store.update_many(
            tenant_id,
            self._collection,
            [
                (
                    repair.original.record_id,
                    {"items": [line.to_document() for line in repair.repaired.lines]},
                )
                for repair in repairs
            ],
        )
        with LogContext.bind(tenant_id=tenant_id, collection=self._collection):
            logger.info(
                "repair_pass_applied",
                extra={
                    "receipt_count": len(receipts),
                    "repaired_count": result.written_count,
                    "line_count": sum(len(r.line_repairs) for r in repairs),
                    "failure_count": len(result.failures),
                },
            )
        return result
