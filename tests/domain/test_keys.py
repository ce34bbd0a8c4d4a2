"""
Tests for key normalisation.

Covers:
- normalize: trim, upper-case, None handling
- composite / indent-only / match keys
- receipt order keys and the key forms an order makes valid
"""

import string

from hypothesis import given
from hypothesis import strategies as st

from procurement_kernel.domain.keys import (
    INDENT_KEY_PREFIX,
    KEY_SEPARATOR,
    composite_key,
    indent_key,
    indent_only_key,
    match_key,
    normalize,
    order_key,
    order_key_forms,
)


class TestNormalize:
    def test_trims_and_upper_cases(self):
        assert normalize("  po-12a ") == "PO-12A"

    def test_none_is_empty(self):
        assert normalize(None) == ""

    def test_numbers_are_stringified(self):
        assert normalize(1042) == "1042"

    def test_no_fuzzy_matching(self):
        """Inner whitespace and punctuation are significant."""
        assert normalize("PO 1") != normalize("PO1")
        assert normalize("PO-1") != normalize("PO_1")

    @given(st.text(alphabet=string.printable))
    def test_idempotent(self, value):
        assert normalize(normalize(value)) == normalize(value)

    @given(
        st.text(alphabet=string.ascii_letters + string.digits + "-/ "),
        st.text(alphabet=" \t\n", max_size=3),
        st.text(alphabet=" \t\n", max_size=3),
    )
    def test_surrounding_whitespace_and_case_ignored(self, value, left, right):
        assert normalize(f"{left}{value.lower()}{right}") == normalize(value.upper())


class TestCompositeKeys:
    def test_composite_key_joins_normalized_parts(self):
        assert composite_key(" ind-1", "a1 ") == f"IND-1{KEY_SEPARATOR}A1"

    def test_composite_keys_equal_iff_normalized_parts_equal(self):
        assert composite_key("ind-1", "a1") == composite_key("IND-1 ", " A1")
        assert composite_key("IND-1", "A1") != composite_key("IND-1", "A2")

    def test_indent_only_key_has_empty_code(self):
        assert indent_only_key("ind-7") == f"IND-7{KEY_SEPARATOR}"
        assert indent_only_key("ind-7") == composite_key("IND-7", None)

    def test_match_key_has_three_parts(self):
        assert match_key("po-1", "ind-1", "a1") == "PO-1|IND-1|A1"
        assert match_key(None, "ind-1", "a1") == "|IND-1|A1"


class TestOrderKeys:
    def test_order_number_preferred(self):
        assert order_key(" po-9", "IND-1") == "PO-9"

    def test_falls_back_to_indent_form(self):
        assert order_key("", "ind-1") == f"{INDENT_KEY_PREFIX}IND-1"
        assert indent_key("ind-1") == "INDENT::IND-1"

    def test_forms_include_order_and_indent(self):
        assert order_key_forms("po-1", "ind-1") == {"PO-1", "INDENT::IND-1"}

    def test_forms_skip_empty_parts(self):
        assert order_key_forms("", "ind-1") == {"INDENT::IND-1"}
        assert order_key_forms("po-1", None) == {"PO-1"}
        assert order_key_forms(None, "  ") == set()
