"""
Tests for the execution trace and the in-memory metrics service.
"""

import pytest

from fraud_triage.audit.trace import Trace, sanitize_data
from fraud_triage.metrics.service import MetricsService
from fraud_triage.schemas import ProfilePayload, StepResult, StepStatus


def _result(fallback_used=False) -> StepResult:
    return StepResult(
        status=StepStatus.OK,
        duration_ms=3,
        payload=ProfilePayload(customer_id="cust_001", name="Jane", email_masked="j***@x.com"),
        fallback_used=fallback_used,
    )


def test_trace_records_in_order():
    trace = Trace("req-1")
    trace.record("step_2_b", _result())
    trace.record("step_1_a", _result())

    assert list(trace.entries()) == ["step_2_b", "step_1_a"]
    assert len(trace) == 2
    assert "step_1_a" in trace
    assert trace.get("missing") is None


def test_trace_rejects_duplicate_keys():
    trace = Trace("req-1")
    trace.record("step_1_get_profile", _result())

    with pytest.raises(ValueError):
        trace.record("step_1_get_profile", _result())


def test_trace_fallback_flag_and_annotations():
    trace = Trace("req-1")
    trace.annotate("pii_detection")
    trace.record("step_1_get_profile", _result())
    assert trace.fallback_used is False

    trace.record("step_2_get_recent_transactions", _result(fallback_used=True))
    assert trace.fallback_used is True
    assert trace.annotations == ["pii_detection"]


def test_trace_summary_is_log_safe():
    trace = Trace("req-1")
    trace.record("step_1_get_profile", _result())

    summary = trace.summary()
    step = summary["steps"]["step_1_get_profile"]
    assert step["status"] == "ok"
    assert step["payload"]["name"] == "Jane"


def test_sanitize_data():
    data = {"otp": "123456", "nested": {"token": "abc"}, "note": "x" * 1500, "items": list(range(150))}

    sanitized = sanitize_data(data)

    assert sanitized["otp"] == "***REDACTED***"
    assert sanitized["nested"]["token"] == "***REDACTED***"
    assert sanitized["note"].endswith("... (truncated)")
    assert len(sanitized["items"]) == 100


def test_metrics_snapshot():
    metrics = MetricsService()
    metrics.record_step_outcome("risk_signals", True)
    metrics.record_step_outcome("risk_signals", False)
    metrics.record_fallback("risk_signals")
    metrics.record_action_blocked("already_frozen")
    for latency in range(1, 101):
        metrics.record_latency(latency)

    snapshot = metrics.snapshot()

    assert {"tool": "risk_signals", "ok": True, "count": 1} in snapshot["tool_call_total"]
    assert snapshot["agent_fallback_total"] == {"risk_signals": 1}
    assert snapshot["action_blocked_total"] == {"already_frozen": 1}
    assert snapshot["agent_latency_ms"]["count"] == 100
    assert snapshot["agent_latency_ms"]["p50"] == pytest.approx(50.5)
    assert snapshot["agent_latency_ms"]["p99"] > snapshot["agent_latency_ms"]["p95"]


def test_metrics_latency_window_and_reset():
    metrics = MetricsService(max_latency_samples=3)
    for latency in (1, 2, 3, 4):
        metrics.record_latency(latency)
    assert metrics.snapshot()["agent_latency_ms"]["count"] == 3

    metrics.reset()
    snapshot = metrics.snapshot()
    assert snapshot["agent_latency_ms"] == {"count": 0, "p50": 0.0, "p95": 0.0, "p99": 0.0}
    assert snapshot["tool_call_total"] == []
