"""
Metrics module for step outcomes, fallbacks and latency.
"""

from fraud_triage.metrics.service import MetricsService, MetricsSink

__all__ = ["MetricsService", "MetricsSink"]
