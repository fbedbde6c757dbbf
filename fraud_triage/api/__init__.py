"""
FastAPI API layer for triage and remediation actions.
"""

from fraud_triage.api.router import router

__all__ = ["router"]
