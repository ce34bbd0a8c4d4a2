"""
procurement_engines.orphans -- Derived records whose parent order is gone.

Responsibility:
    Build the set of currently valid order keys from the order collections
    (each order's normalised order number and ``INDENT::<indentNo>``), and
    select the receipt or inspection records that none of their key forms
    reaches.  Deleting them and remembering their keys is the
    OrphanReconciler service's job.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - A record is kept when its order number or its indent form is valid.
    - A record with neither an order number nor an indent number is always
      an orphan.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any, Protocol, TypeVar

from procurement_engines.tracer import traced_engine
from procurement_kernel.domain.keys import order_key_forms


class OrderKeyed(Protocol):
    order_no: str
    indent_no: str


R = TypeVar("R", bound=OrderKeyed)


def valid_order_keys(*collections: Iterable[Mapping[str, Any]]) -> frozenset[str]:
    """Every key form made valid by the given order collections."""
    keys: set[str] = set()
    for collection in collections:
        for order in collection or ():
            if isinstance(order, Mapping):
                keys |= order_key_forms(order.get("poNo"), order.get("indentNo"))
    return frozenset(keys)


def is_orphan(record: OrderKeyed, valid_keys: frozenset[str]) -> bool:
    return not (order_key_forms(record.order_no, record.indent_no) & valid_keys)


@traced_engine("orphans", "1.0", fingerprint_fields=("valid_keys",))
def find_orphans(records: Iterable[R], *, valid_keys: frozenset[str]) -> list[R]:
    """Records, in input order, whose key is absent from ``valid_keys``."""
    return [record for record in records if is_orphan(record, valid_keys)]
