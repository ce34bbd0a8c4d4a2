"""
Tests for the live-stock calculator.

Covers:
- Cumulative allocation against closing stock (shortfall rule)
- Explicit per-indent availability overrides
- Fallback to the line's own quantity and to procurement records
- Composite / indent-only / default lookup
- Malformed lines falling back to the stock carried on the line
"""

from decimal import Decimal

import pytest

from procurement_engines.live_stock import (
    EMPTY_LIVE_STOCK,
    LiveStockInfo,
    LiveStockMap,
    compute_live_stock,
    indent_line_quantity,
    stock_from_indent_line,
)
from procurement_kernel.domain.records import IndentStatus, ProcurementRecord, StockRecord


def _compute(open_items=(), closed_items=(), indent_data=(), stock=(), records=()):
    return compute_live_stock(
        open_items=list(open_items),
        closed_items=list(closed_items),
        indent_data=list(indent_data),
        stock_records=list(stock),
        procurement_records=list(records),
    )


@pytest.fixture
def competing_lines():
    """Two indents asking for the same item: 10 then 5."""
    indent_data = [
        {"indentNo": "IND-1", "items": [{"itemCode": "A1", "qty": 10}]},
        {"indentNo": "IND-2", "items": [{"itemCode": "A1", "qty": 5}]},
    ]
    open_items = [
        {"indentNo": "IND-1", "itemCode": "A1", "qty": 10},
        {"indentNo": "IND-2", "itemCode": "A1", "qty": 5},
    ]
    return open_items, indent_data


class TestShortfallRule:
    def test_second_line_short_by_cumulative_minus_closing(self, competing_lines):
        open_items, indent_data = competing_lines
        result = _compute(open_items, indent_data=indent_data, stock=[StockRecord("A1", "", Decimal("8"))])

        assert result["IND-2|A1"].display == Decimal("7")
        assert result["IND-2|A1"].is_short is True
        assert result["IND-1|A1"].display == Decimal("2")
        assert result["IND-1|A1"].is_short is True

    def test_enough_stock_displays_closing(self, competing_lines):
        open_items, indent_data = competing_lines
        result = _compute(open_items, indent_data=indent_data, stock=[StockRecord("A1", "", Decimal("20"))])

        assert result["IND-2|A1"] == LiveStockInfo(Decimal("20"), False, IndentStatus.OPEN)

    def test_cumulative_equal_to_closing_is_not_short(self, competing_lines):
        open_items, indent_data = competing_lines
        result = _compute(open_items, indent_data=indent_data, stock=[StockRecord("A1", "", Decimal("15"))])

        assert result["IND-2|A1"].is_short is False
        assert result["IND-2|A1"].display == Decimal("15")

    def test_missing_stock_record_means_zero_closing(self, competing_lines):
        open_items, indent_data = competing_lines
        result = _compute(open_items, indent_data=indent_data)

        assert result["IND-2|A1"].display == Decimal("15")
        assert result["IND-2|A1"].is_short is True

    def test_allocation_counts_items_within_one_indent(self):
        indent_data = [
            {"indentNo": "IND-1", "items": [{"itemCode": "A1", "qty": 3}, {"Code": "A1", "qty": 4}]},
        ]
        open_items = [{"indentNo": "IND-1", "itemCode": "A1", "qty": 3}]
        result = _compute(open_items, indent_data=indent_data, stock=[StockRecord("A1", "", Decimal("1"))])

        # Only items up to the line's own first position count
        assert result["IND-1|A1"].display == Decimal("2")


class TestOverridesAndFallbacks:
    def test_override_used_directly(self, competing_lines):
        open_items, indent_data = competing_lines
        open_items[1]["availableForThisIndent"] = "3"
        result = _compute(open_items, indent_data=indent_data, stock=[StockRecord("A1", "", Decimal("8"))])

        assert result["IND-2|A1"].display == Decimal("3")
        assert result["IND-2|A1"].is_short is False

    def test_empty_override_is_ignored(self, competing_lines):
        open_items, indent_data = competing_lines
        open_items[1]["availableForThisIndent"] = ""
        result = _compute(open_items, indent_data=indent_data, stock=[StockRecord("A1", "", Decimal("8"))])

        assert result["IND-2|A1"].display == Decimal("7")

    def test_line_quantity_when_not_in_indent_detail(self):
        result = _compute(
            [{"indentNo": "IND-3", "itemCode": "B1", "qty": 4}],
            stock=[StockRecord("B1", "", Decimal("1"))],
        )
        assert result["IND-3|B1"] == LiveStockInfo(Decimal("3"), True, IndentStatus.OPEN)

    def test_procurement_record_stands_in_for_missing_indent_line(self):
        """A record with 20 requested against a closing stock of 5 shows 15 short."""
        record = ProcurementRecord(
            indent_no="IND-1",
            item_code="A1",
            original_indent_qty=Decimal("20"),
            purchase_qty=Decimal("0"),
            indent_status=IndentStatus.OPEN,
        )
        result = _compute(stock=[StockRecord("A1", "", Decimal("5"))], records=[record])

        assert result.lookup("IND-1", "A1") == LiveStockInfo(Decimal("15"), True, IndentStatus.OPEN)

    def test_indent_line_takes_precedence_over_record(self):
        record = ProcurementRecord(indent_no="IND-1", item_code="A1", original_indent_qty=Decimal("20"))
        result = _compute(
            [{"indentNo": "IND-1", "itemCode": "A1", "qty": 2}],
            stock=[StockRecord("A1", "", Decimal("5"))],
            records=[record],
        )
        assert result["IND-1|A1"].display == Decimal("5")

    def test_first_entry_per_key_wins(self):
        result = _compute(
            open_items=[{"indentNo": "IND-1", "itemCode": "A1", "qty": 1}],
            closed_items=[{"indentNo": "IND-1", "itemCode": "A1", "qty": 50}],
        )
        assert result["IND-1|A1"].status is IndentStatus.OPEN
        assert result["IND-1|A1"].display == Decimal("1")

    def test_closed_lines_carry_closed_status(self):
        result = _compute(closed_items=[{"indentNo": "IND-9", "itemCode": "C1", "qty": 1}])
        assert result["IND-9|C1"].status is IndentStatus.CLOSED

    def test_lines_without_indent_number_skipped(self):
        assert len(_compute([{"itemCode": "A1", "qty": 1}])) == 0

    def test_malformed_line_falls_back_to_line_stock(self, captured_logs):
        result = _compute(
            [{"indentNo": "IND-1", "itemCode": "A1", "qty": 3, "stock": "12 pcs"}],
            stock=[StockRecord("A1", "", "not-a-number")],
        )

        assert result["IND-1|A1"] == LiveStockInfo(Decimal("12"), False, IndentStatus.OPEN)
        assert any(r["message"] == "live_stock_line_fallback" for r in captured_logs())


class TestLookup:
    def test_composite_then_indent_only_then_default(self):
        live = _compute([{"indentNo": "IND-4", "qty": 2}])
        default = LiveStockInfo(Decimal("99"), False)

        assert live.lookup("IND-4", "ZZ") == live["IND-4|"]
        assert live.lookup("IND-5", "ZZ", default) is default
        assert live.lookup("IND-5", "ZZ") is None

    def test_lookup_is_normalized(self, competing_lines):
        open_items, indent_data = competing_lines
        live = _compute(open_items, indent_data=indent_data)
        assert live.lookup(" ind-2", "a1") is live["IND-2|A1"]

    def test_display_for_fallback(self):
        assert EMPTY_LIVE_STOCK.display_for("IND-1", "A1", fallback=Decimal("4")) == Decimal("4")

    def test_map_is_read_only(self):
        live = LiveStockMap({"K": LiveStockInfo(Decimal("1"), False)})
        with pytest.raises(TypeError):
            live._entries["K"] = LiveStockInfo(Decimal("2"), True)


class TestIndentLineHelpers:
    @pytest.mark.parametrize(
        "line, expected",
        [
            ({"Current Stock": "1,200 pcs"}, Decimal("1200")),
            ({"stock": 0, "quantity": 5}, Decimal("5")),
            ({"balance": "7"}, Decimal("7")),
            ({}, Decimal("0")),
            (None, Decimal("0")),
        ],
    )
    def test_stock_from_indent_line(self, line, expected):
        assert stock_from_indent_line(line) == expected

    def test_indent_line_quantity_alias_chain(self):
        assert indent_line_quantity({"indentQty": "7"}) == Decimal("7")
        assert indent_line_quantity({"qty": "", "requestedQty": 3}) == Decimal("3")
        assert indent_line_quantity({}) == Decimal("0")
