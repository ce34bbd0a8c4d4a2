"""
Tests for record de-duplication.

Covers:
- First-wins policy for procurement and inspection records
- Idempotency and order preservation (property-based)
"""

from decimal import Decimal

from hypothesis import given, settings
from hypothesis import strategies as st

from procurement_engines.dedup import dedupe, dedupe_by, dedupe_inspections
from procurement_kernel.domain.records import InspectionRecord, ProcurementRecord

_codes = st.sampled_from(["A1", "a1", "B2", " b2", "C3"])
_indents = st.sampled_from(["IND-1", "ind-1 ", "IND-2"])

_records = st.lists(
    st.builds(
        ProcurementRecord,
        indent_no=_indents,
        item_code=_codes,
        purchase_qty=st.integers(min_value=0, max_value=50).map(Decimal),
    ),
    max_size=20,
)


class TestDedupe:
    def test_first_occurrence_wins(self):
        first = ProcurementRecord(indent_no="IND-1", item_code="A1", purchase_qty=Decimal("5"))
        later = ProcurementRecord(indent_no="ind-1", item_code="a1 ", purchase_qty=Decimal("9"))
        other = ProcurementRecord(indent_no="IND-1", item_code="B2")

        assert dedupe([first, later, other]) == [first, other]

    def test_empty_input(self):
        assert dedupe([]) == []

    @given(_records)
    @settings(max_examples=100)
    def test_idempotent(self, records):
        once = dedupe(records)
        assert dedupe(once) == once

    @given(_records)
    @settings(max_examples=100)
    def test_keys_unique_and_in_first_seen_order(self, records):
        kept = dedupe(records)
        keys = [r.key for r in kept]

        assert len(keys) == len(set(keys))
        first_seen = list(dict.fromkeys(r.key for r in records))
        assert keys == first_seen


class TestDedupeInspections:
    def test_same_order_different_items_kept(self):
        a = InspectionRecord(order_no="PO-1", item_code="A1")
        b = InspectionRecord(order_no="PO-1", item_code="B2")
        assert dedupe_inspections([a, b]) == [a, b]

    def test_same_order_same_item_first_wins(self):
        a = InspectionRecord(order_no="PO-1", item_code="A1", ok_qty=Decimal("1"))
        b = InspectionRecord(order_no="po-1", item_code="a1", ok_qty=Decimal("2"))
        assert dedupe_inspections([a, b]) == [a]

    def test_indent_keyed_records(self):
        a = InspectionRecord(indent_no="IND-1", item_code="A1")
        b = InspectionRecord(order_no="PO-1", indent_no="IND-1", item_code="A1")
        assert dedupe_inspections([a, b]) == [a, b]


class TestDedupeBy:
    def test_custom_key(self):
        assert dedupe_by([3, 13, 4, 23], key=lambda n: n % 10) == [3, 4]
