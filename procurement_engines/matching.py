"""
procurement_engines.matching -- Multi-source order quantity resolution.

Responsibility:
    Answer "how much was ordered for this (order, indent, item)?" when two
    overlapping order collections may both describe the same real-world
    order.  The collections are merged into one lookup (the secondary
    collection wins on merge-key collision), then searched with a fixed
    priority cascade:

        1. order number AND item code   (skipped when no order number)
        2. indent number AND item code
        3. order number alone           (skipped when no order number)
        4. item code alone, any order

    Item codes are compared against every code alias of an entry
    (``itemCode``, ``Code``, ``CodeNo``, ``Item`` by default).

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import procurement_kernel/domain and the tracer.

Invariants enforced:
    - Resolution is a pure function of the three targets and the two
      collections; a MatchResolver is immutable once built.
    - Merge precedence: for one merge key ``(poNo, indentNo, itemCode)`` the
      secondary entry replaces the primary entry, keeping the position the
      key first appeared at.
    - An empty target item code never matches on code.

Failure modes:
    - None raised.  Non-mapping entries are ignored; unexpected errors while
      resolving are logged and yield quantity 0.

Usage:
    from procurement_engines.matching import build_match_resolver

    resolver = build_match_resolver(primary=orders, secondary=records)
    qty = resolver.resolve("PO-1", "IND-1", "A1")
    details = resolver.resolve_with_details("PO-1", "IND-1", "A1")
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any

from procurement_engines.tracer import traced_engine
from procurement_kernel.domain.aliases import DEFAULT_ALIASES, FieldAliases
from procurement_kernel.domain.keys import match_key, normalize
from procurement_kernel.domain.quantities import ZERO, coerce_quantity, first_present, first_truthy
from procurement_kernel.logging_config import get_logger

logger = get_logger("engines.matching")


class MatchStep(str, Enum):
    """Priority steps of the resolution cascade, in order."""

    ORDER_AND_CODE = "po+code"
    INDENT_AND_CODE = "indent+code"
    ORDER_ONLY = "po-only"
    CODE_ONLY = "code-any"


@dataclass(frozen=True)
class MatchDetails:
    """
    Diagnostic result of one resolution.

    ``tried_steps`` lists every step attempted, the matched one last.
    """

    order_no: str
    indent_no: str
    item_code: str
    quantity: Decimal = ZERO
    matched_step: MatchStep | None = None
    matched_entry: Mapping[str, Any] | None = None
    tried_steps: tuple[MatchStep, ...] = field(default_factory=tuple)

    @property
    def matched(self) -> bool:
        return self.matched_entry is not None


@dataclass(frozen=True)
class _IndexedEntry:
    order_no: str
    indent_no: str
    codes: frozenset[str]
    entry: Mapping[str, Any]


class MatchResolver:
    """
    Resolver over one merged snapshot of the two order collections.

    Contract:
        Pure -- no I/O, no writes, no clock access.  Build a new resolver
        whenever either collection changes.
    """

    def __init__(
        self,
        primary: Iterable[Mapping[str, Any]],
        secondary: Iterable[Mapping[str, Any]],
        aliases: FieldAliases = DEFAULT_ALIASES,
    ):
        self._aliases = aliases
        merged: dict[str, Mapping[str, Any]] = {}
        for collection in (primary, secondary):
            for entry in collection or ():
                if not isinstance(entry, Mapping):
                    continue
                merged[self._merge_key(entry)] = entry
        self._entries: tuple[_IndexedEntry, ...] = tuple(
            _IndexedEntry(
                order_no=normalize(entry.get("poNo")),
                indent_no=normalize(entry.get("indentNo")),
                codes=frozenset(
                    normalize(entry.get(name)) for name in aliases.item_code
                ),
                entry=entry,
            )
            for entry in merged.values()
        )

    def _merge_key(self, entry: Mapping[str, Any]) -> str:
        return match_key(
            entry.get("poNo"),
            entry.get("indentNo"),
            first_truthy(entry, self._aliases.merge_item_code),
        )

    @property
    def entries(self) -> tuple[Mapping[str, Any], ...]:
        """Merged entries in merge order."""
        return tuple(indexed.entry for indexed in self._entries)

    def quantity_of(self, entry: Mapping[str, Any]) -> Decimal:
        """Ordered quantity of an entry through the order-quantity aliases."""
        return coerce_quantity(first_present(entry, self._aliases.order_quantity))

    def resolve(self, order_no: Any, indent_no: Any, item_code: Any) -> Decimal:
        """Ordered quantity for the target, 0 when nothing matches."""
        return self.resolve_with_details(order_no, indent_no, item_code).quantity

    def resolve_with_details(
        self,
        order_no: Any,
        indent_no: Any,
        item_code: Any,
    ) -> MatchDetails:
        """Resolve and report the matched step, entry and steps attempted."""
        target_order = normalize(order_no)
        target_indent = normalize(indent_no)
        target_code = normalize(item_code)
        tried: list[MatchStep] = []

        try:
            for step in MatchStep:
                tried.append(step)
                match = self._find(step, target_order, target_indent, target_code)
                if match is not None:
                    return MatchDetails(
                        order_no=target_order,
                        indent_no=target_indent,
                        item_code=target_code,
                        quantity=self.quantity_of(match.entry),
                        matched_step=step,
                        matched_entry=match.entry,
                        tried_steps=tuple(tried),
                    )
        except Exception:
            logger.warning(
                "match_resolution_failed",
                extra={
                    "order_no": target_order,
                    "indent_no": target_indent,
                    "item_code": target_code,
                },
                exc_info=True,
            )

        return MatchDetails(
            order_no=target_order,
            indent_no=target_indent,
            item_code=target_code,
            tried_steps=tuple(tried),
        )

    def _find(
        self,
        step: MatchStep,
        target_order: str,
        target_indent: str,
        target_code: str,
    ) -> _IndexedEntry | None:
        has_code = bool(target_code)
        for indexed in self._entries:
            code_hit = has_code and target_code in indexed.codes
            if step is MatchStep.ORDER_AND_CODE:
                if target_order and indexed.order_no == target_order and code_hit:
                    return indexed
            elif step is MatchStep.INDENT_AND_CODE:
                if indexed.indent_no == target_indent and code_hit:
                    return indexed
            elif step is MatchStep.ORDER_ONLY:
                if target_order and indexed.order_no == target_order:
                    return indexed
            elif code_hit:
                return indexed
        return None


@traced_engine("match_resolver", "1.0", fingerprint_fields=("primary", "secondary"))
def build_match_resolver(
    *,
    primary: Iterable[Mapping[str, Any]],
    secondary: Iterable[Mapping[str, Any]],
    aliases: FieldAliases = DEFAULT_ALIASES,
) -> MatchResolver:
    """Merge the two order collections into a resolver (secondary wins)."""
    return MatchResolver(primary, secondary, aliases)
