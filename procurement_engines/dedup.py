"""
procurement_engines.dedup -- One record per identity key.

Responsibility:
    Collapse a record list so that at most one record per key remains.
    A single policy applies to every record type: the FIRST occurrence of a
    key wins and later records sharing it are discarded.  Kept records stay
    in first-seen order.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Idempotent: ``dedupe(dedupe(xs)) == dedupe(xs)``.
    - Deterministic and order-preserving for kept records.
"""

from __future__ import annotations

from collections.abc import Callable, Hashable, Iterable
from typing import TypeVar

from procurement_engines.tracer import traced_engine
from procurement_kernel.domain.keys import normalize
from procurement_kernel.domain.records import InspectionRecord, ProcurementRecord

T = TypeVar("T")


def dedupe_by(records: Iterable[T], key: Callable[[T], Hashable]) -> list[T]:
    """Keep the first record for each ``key(record)``."""
    seen: set[Hashable] = set()
    kept: list[T] = []
    for record in records:
        k = key(record)
        if k in seen:
            continue
        seen.add(k)
        kept.append(record)
    return kept


@traced_engine("dedupe", "1.0")
def dedupe(records: Iterable[ProcurementRecord]) -> list[ProcurementRecord]:
    """Procurement records keyed by ``composite_key(indentNo, itemCode)``."""
    return dedupe_by(records, lambda record: record.key)


@traced_engine("dedupe_inspections", "1.0")
def dedupe_inspections(records: Iterable[InspectionRecord]) -> list[InspectionRecord]:
    """
    Inspection records keyed by order key and item code.

    Uses the same first-wins policy as procurement records.
    """
    return dedupe_by(records, lambda record: (record.key, normalize(record.item_code)))
