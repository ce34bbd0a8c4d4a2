"""Tests for the engine tracer."""

from decimal import Decimal

import pytest

from procurement_engines.tracer import compute_input_fingerprint, traced_engine
from procurement_kernel.domain.records import StockRecord


class TestFingerprint:
    def test_deterministic_and_short(self):
        kwargs = {"codes": ["24/P1"], "prefix": "P"}
        fp = compute_input_fingerprint(("codes", "prefix"), kwargs)

        assert fp == compute_input_fingerprint(("codes", "prefix"), dict(kwargs))
        assert len(fp) == 16

    def test_mapping_order_irrelevant(self):
        a = compute_input_fingerprint(("doc",), {"doc": {"x": 1, "y": 2}})
        b = compute_input_fingerprint(("doc",), {"doc": {"y": 2, "x": 1}})
        assert a == b

    def test_dataclasses_fingerprint_by_value(self):
        a = compute_input_fingerprint(("stock",), {"stock": [StockRecord("A1", "", Decimal("8"))]})
        b = compute_input_fingerprint(("stock",), {"stock": [StockRecord("A1", "", Decimal("9"))]})
        assert a != b

    def test_missing_field_is_null(self):
        assert compute_input_fingerprint(("x",), {}) == compute_input_fingerprint(("x",), {"x": None})


class TestTracedEngine:
    def test_result_returned_and_trace_logged(self, captured_logs):
        @traced_engine("sample", "2.1", fingerprint_fields=("value",))
        def double(*, value):
            return value * 2

        assert double(value=4) == 8

        trace = [r for r in captured_logs() if r["message"] == "PROCUREMENT_ENGINE_TRACE"][-1]
        assert trace["engine_name"] == "sample"
        assert trace["engine_version"] == "2.1"
        assert trace["function"].endswith("double")
        assert trace["duration_ms"] >= 0
        assert trace["level"] == "INFO"

    def test_exceptions_propagate_without_trace(self, captured_logs):
        @traced_engine("failing", "1.0")
        def boom():
            raise ValueError("no")

        with pytest.raises(ValueError):
            boom()
        assert not [r for r in captured_logs() if r.get("engine_name") == "failing"]
