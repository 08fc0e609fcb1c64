"""Engine call tracing: one BILLING_ENGINE_TRACE record per successful call."""

from decimal import Decimal

import pytest

from billing_engines.tracer import TRACE_EVENT, compute_input_fingerprint, traced_engine


@traced_engine("sample", "2.1", fingerprint_fields=("amount", "options"))
def _sample(amount, options=None, ignored=None):
    return amount * 2


@traced_engine("bare", "1.0")
def _bare():
    return "ok"


@traced_engine("failing", "1.0")
def _failing():
    raise ValueError("boom")


def _traces(captured_logs):
    return [r for r in captured_logs() if r["message"] == TRACE_EVENT]


class TestFingerprint:
    def test_stable_for_equal_inputs(self):
        a = compute_input_fingerprint(("x", "y"), {"x": Decimal("1.50"), "y": {"b": 1, "a": 2}})
        b = compute_input_fingerprint(("x", "y"), {"y": {"a": 2, "b": 1}, "x": Decimal("1.50")})
        assert a == b
        assert len(a) == 16

    def test_differs_for_different_inputs(self):
        assert compute_input_fingerprint(("x",), {"x": 1}) != compute_input_fingerprint(
            ("x",), {"x": 2}
        )

    def test_unlisted_arguments_ignored(self):
        assert compute_input_fingerprint(("x",), {"x": 1, "z": 5}) == compute_input_fingerprint(
            ("x",), {"x": 1, "z": 6}
        )

    def test_missing_argument_hashes_as_null(self):
        assert compute_input_fingerprint(("x",), {}) == compute_input_fingerprint(
            ("x",), {"x": None}
        )


class TestTracedEngine:
    def test_returns_result_and_logs_trace(self, captured_logs):
        assert _sample(Decimal("3")) == Decimal("6")

        (trace,) = _traces(captured_logs)
        assert trace["engine_name"] == "sample"
        assert trace["engine_version"] == "2.1"
        assert trace["trace_type"] == TRACE_EVENT
        assert trace["duration_ms"] >= 0
        assert len(trace["input_fingerprint"]) == 16

    def test_positional_and_keyword_calls_fingerprint_alike(self, captured_logs):
        _sample(Decimal("3"), ["a"])
        _sample(amount=Decimal("3"), options=["a"], ignored="x")

        first, second = _traces(captured_logs)
        assert first["input_fingerprint"] == second["input_fingerprint"]

    def test_no_fields_gives_empty_fingerprint(self, captured_logs):
        assert _bare() == "ok"
        (trace,) = _traces(captured_logs)
        assert trace["input_fingerprint"] == ""

    def test_failure_propagates_without_trace(self, captured_logs):
        with pytest.raises(ValueError, match="boom"):
            _failing()
        assert _traces(captured_logs) == []

    def test_wrapper_keeps_metadata(self):
        assert _sample.__name__ == "_sample"
        assert _sample.engine_name == "sample"
        assert _sample.engine_version == "2.1"
