"""
procurement_engines.live_stock -- Live stock per indent line.

Responsibility:
    Compute, for every ``(indentNo, itemCode)`` pair in the open and closed
    indent-item collections, how much of the item is available against that
    specific indent line when several lines compete for the same stock.

    Per line:
        1. An explicit per-indent availability field (``availableForThisIndent``
           and aliases) is used directly; not short.
        2. Otherwise the line is located in the indent detail collection
           (indents in stored order, items in list order) and the ordered
           quantity of every item with the same code is summed from the
           start up to and including that line (cumulative allocation).
           Without a position, the line's own quantity is used.
        3. Closing stock comes from the first StockRecord with that code.
        4. ``display = cumulative - closing`` and short when
           ``cumulative > closing``; otherwise ``display = closing``.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - The whole map is computed in one pass from the four inputs and is
      immutable afterwards; a change to any input means building a new map,
      never patching entries.
    - Lookups are O(1): composite key, then indent-only key, then the
      caller's default.
    - The first computed entry for a key wins (open items are visited
      before closed items).

Failure modes:
    - Malformed lines never raise: if computing a line fails, the stock
      figure carried on the indent line itself is used (not short) and a
      warning is logged.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal
from types import MappingProxyType
from typing import Any

from procurement_engines.tracer import traced_engine
from procurement_kernel.domain.aliases import DEFAULT_ALIASES, FieldAliases
from procurement_kernel.domain.keys import composite_key, indent_only_key, normalize
from procurement_kernel.domain.quantities import (
    ZERO,
    extract_quantity,
    first_truthy,
    parse_quantity,
)
from procurement_kernel.domain.records import IndentStatus, ProcurementRecord, StockRecord
from procurement_kernel.logging_config import get_logger

logger = get_logger("engines.live_stock")


@dataclass(frozen=True)
class LiveStockInfo:
    """Display quantity and shortfall flag for one indent line."""

    display: Decimal
    is_short: bool
    status: IndentStatus | None = None


class LiveStockMap(Mapping[str, LiveStockInfo]):
    """Read-only composite-key -> LiveStockInfo map."""

    def __init__(self, entries: Mapping[str, LiveStockInfo] | None = None):
        self._entries = MappingProxyType(dict(entries or {}))

    def __getitem__(self, key: str) -> LiveStockInfo:
        return self._entries[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def lookup(
        self,
        indent_no: Any,
        item_code: Any,
        default: LiveStockInfo | None = None,
    ) -> LiveStockInfo | None:
        """Entry for the line, else the indent-only entry, else ``default``."""
        hit = self._entries.get(composite_key(indent_no, item_code))
        if hit is None:
            hit = self._entries.get(indent_only_key(indent_no))
        return hit if hit is not None else default

    def display_for(self, indent_no: Any, item_code: Any, fallback: Decimal = ZERO) -> Decimal:
        """Display quantity for the line, ``fallback`` when unknown."""
        info = self.lookup(indent_no, item_code)
        return info.display if info is not None else fallback


EMPTY_LIVE_STOCK = LiveStockMap()


def stock_from_indent_line(
    line: Mapping[str, Any] | None,
    aliases: FieldAliases = DEFAULT_ALIASES,
) -> Decimal:
    """
    Stock figure carried on an indent line.

    First non-zero stock field, then first non-zero quantity field, then
    ``qty - issued`` when non-negative; else 0.  Values are parsed
    leniently (``"1,200 pcs"`` reads as 1200).
    """
    if not line:
        return ZERO
    for name in aliases.indent_stock:
        if name in line:
            parsed = extract_quantity(line[name])
            if parsed != 0:
                return parsed
    for name in aliases.indent_stock_quantity:
        if name in line:
            parsed = extract_quantity(line[name])
            if parsed != 0:
                return parsed
    if "qty" in line and "issued" in line:
        balance = extract_quantity(line["qty"]) - extract_quantity(line["issued"])
        if balance >= 0:
            return balance
    return ZERO


def indent_line_quantity(
    line: Mapping[str, Any],
    aliases: FieldAliases = DEFAULT_ALIASES,
) -> Decimal:
    """Requested quantity of an indent line; first parseable alias wins."""
    for name in aliases.indent_quantity:
        parsed = parse_quantity(line.get(name))
        if parsed is not None:
            return parsed
    return ZERO


def _line_codes(line: Mapping[str, Any], aliases: FieldAliases) -> frozenset[str]:
    primary = normalize(line.get(aliases.indent_item_code[0]))
    secondary = normalize(first_truthy(line, aliases.indent_item_code[1:]))
    return frozenset(code for code in (primary, secondary) if code)


@dataclass(frozen=True)
class _Position:
    indent_index: int
    item_index: int
    quantity: Decimal


class _AllocationIndex:
    """Positions of every indent detail item, grouped by item code."""

    def __init__(self, indent_data: Sequence[Mapping[str, Any]], aliases: FieldAliases):
        self._by_code: dict[str, list[_Position]] = {}
        self._first_at: dict[tuple[str, str], _Position] = {}
        for i, indent in enumerate(indent_data or ()):
            if not isinstance(indent, Mapping):
                continue
            items = indent.get("items")
            if not isinstance(items, list):
                continue
            indent_no = normalize(indent.get("indentNo"))
            for j, item in enumerate(items):
                if not isinstance(item, Mapping):
                    continue
                position = _Position(i, j, parse_quantity(item.get("qty")) or ZERO)
                for code in _line_codes(item, aliases):
                    self._by_code.setdefault(code, []).append(position)
                    self._first_at.setdefault((indent_no, code), position)

    def cumulative(self, indent_no: str, code: str) -> Decimal | None:
        """Allocated quantity up to and including the line; None if not found."""
        target = self._first_at.get((indent_no, code))
        if target is None:
            return None
        total = ZERO
        bound = (target.indent_index, target.item_index)
        for position in self._by_code.get(code, ()):
            if (position.indent_index, position.item_index) > bound:
                break
            total += position.quantity
        return total


def _override(line: Mapping[str, Any], aliases: FieldAliases) -> Decimal | None:
    for name in aliases.live_stock_override:
        parsed = parse_quantity(line.get(name))
        if parsed is not None:
            return parsed
    return None


def _compute_line(
    line: Mapping[str, Any],
    code: str,
    indent_no: str,
    allocations: _AllocationIndex,
    closing_by_code: Mapping[str, Decimal],
    aliases: FieldAliases,
) -> tuple[Decimal, bool]:
    override = _override(line, aliases)
    if override is not None:
        return override, False

    cumulative = allocations.cumulative(indent_no, code) or ZERO
    if not cumulative:
        cumulative = indent_line_quantity(line, aliases)

    closing = closing_by_code.get(code, ZERO)
    if cumulative > closing:
        return cumulative - closing, True
    return closing, False


def _source_lines(
    open_items: Iterable[Mapping[str, Any]],
    closed_items: Iterable[Mapping[str, Any]],
    procurement_records: Iterable[ProcurementRecord],
) -> Iterator[tuple[Mapping[str, Any], IndentStatus]]:
    seen: set[str] = set()
    for items, status in (
        (open_items, IndentStatus.OPEN),
        (closed_items, IndentStatus.CLOSED),
    ):
        for line in items or ():
            if isinstance(line, Mapping):
                seen.add(composite_key(line.get("indentNo"), line.get("itemCode")))
                yield line, status
    # Procurement records stand in for indent lines the indent collections
    # do not (yet) carry.
    for record in procurement_records or ():
        if record.key not in seen:
            yield record.to_document(), record.indent_status


@traced_engine(
    "live_stock",
    "1.0",
    fingerprint_fields=("open_items", "closed_items", "indent_data", "stock_records"),
)
def compute_live_stock(
    *,
    open_items: Sequence[Mapping[str, Any]],
    closed_items: Sequence[Mapping[str, Any]],
    indent_data: Sequence[Mapping[str, Any]],
    stock_records: Sequence[StockRecord],
    procurement_records: Sequence[ProcurementRecord] = (),
    aliases: FieldAliases = DEFAULT_ALIASES,
) -> LiveStockMap:
    """Build the complete live-stock map in one pass."""
    allocations = _AllocationIndex(indent_data, aliases)

    closing_by_code: dict[str, Decimal] = {}
    for stock in stock_records or ():
        closing_by_code.setdefault(normalize(stock.item_code), stock.closing_stock)

    entries: dict[str, LiveStockInfo] = {}
    for line, status in _source_lines(open_items, closed_items, procurement_records):
        indent_no = normalize(line.get("indentNo"))
        if not indent_no:
            continue
        codes = [c for c in (normalize(line.get("itemCode")), normalize(line.get("Code"))) if c]
        for code in codes or [""]:
            key = composite_key(indent_no, code)
            if key in entries:
                continue
            try:
                display, is_short = _compute_line(
                    line, code, indent_no, allocations, closing_by_code, aliases
                )
            except (TypeError, ValueError, ArithmeticError):
                logger.warning(
                    "live_stock_line_fallback",
                    extra={"key": key},
                    exc_info=True,
                )
                display, is_short = stock_from_indent_line(line, aliases), False
            entries[key] = LiveStockInfo(display=display, is_short=is_short, status=status)

    logger.debug("live_stock_computed", extra={"entry_count": len(entries)})
    return LiveStockMap(entries)
