"""
Audit module for tracking workflow execution.
Provides the append-only trace of every workflow step for one request.
"""

from fraud_triage.audit.trace import Trace, sanitize_data

__all__ = ["Trace", "sanitize_data"]
