"""
In-memory metrics for step outcomes, fallbacks, latency and blocked actions.
"""

import statistics
import threading
from collections import Counter
from typing import Any, Protocol


class MetricsSink(Protocol):
    """Fire-and-forget metrics interface consumed by the step executor."""

    def record_step_outcome(self, name: str, success: bool) -> None: ...

    def record_latency(self, latency_ms: float) -> None: ...

    def record_fallback(self, name: str) -> None: ...


class MetricsService:
    """
    Thread-safe in-memory metrics collector.

    Counters:
    - tool_call_total{tool, ok}
    - agent_fallback_total{tool}
    - action_blocked_total{policy}

    Latency samples are kept in a bounded window for percentile snapshots.
    """

    def __init__(self, max_latency_samples: int = 10_000):
        self.max_latency_samples = max_latency_samples
        self._tool_calls: Counter = Counter()
        self._fallbacks: Counter = Counter()
        self._blocked_actions: Counter = Counter()
        self._latencies: list[float] = []
        self._lock = threading.Lock()

    def record_step_outcome(self, name: str, success: bool) -> None:
        with self._lock:
            self._tool_calls[(name, success)] += 1

    def record_latency(self, latency_ms: float) -> None:
        with self._lock:
            self._latencies.append(latency_ms)
            if len(self._latencies) > self.max_latency_samples:
                del self._latencies[: len(self._latencies) - self.max_latency_samples]

    def record_fallback(self, name: str) -> None:
        with self._lock:
            self._fallbacks[name] += 1

    def record_action_blocked(self, policy: str) -> None:
        with self._lock:
            self._blocked_actions[policy] += 1

    def tool_call_count(self, name: str, success: bool) -> int:
        with self._lock:
            return self._tool_calls[(name, success)]

    def fallback_count(self, name: str) -> int:
        with self._lock:
            return self._fallbacks[name]

    def snapshot(self) -> dict[str, Any]:
        """
        Get a point-in-time view of all metrics.

        Returns:
            Dictionary with counters and latency percentiles
        """
        with self._lock:
            latencies = list(self._latencies)
            snapshot = {
                "tool_call_total": [
                    {"tool": name, "ok": ok, "count": count}
                    for (name, ok), count in sorted(self._tool_calls.items())
                ],
                "agent_fallback_total": dict(sorted(self._fallbacks.items())),
                "action_blocked_total": dict(sorted(self._blocked_actions.items())),
            }

        snapshot["agent_latency_ms"] = _percentiles(latencies)
        return snapshot

    def reset(self) -> None:
        with self._lock:
            self._tool_calls.clear()
            self._fallbacks.clear()
            self._blocked_actions.clear()
            self._latencies.clear()


def _percentiles(samples: list[float]) -> dict[str, float]:
    if not samples:
        return {"count": 0, "p50": 0.0, "p95": 0.0, "p99": 0.0}
    if len(samples) == 1:
        value = float(samples[0])
        return {"count": 1, "p50": value, "p95": value, "p99": value}

    cuts = statistics.quantiles(samples, n=100, method="inclusive")
    return {
        "count": len(samples),
        "p50": round(cuts[49], 2),
        "p95": round(cuts[94], 2),
        "p99": round(cuts[98], 2),
    }
