"""
Guardrails module for PII redaction and request validation.
"""

from fraud_triage.guardrails.enforcement import (
    GuardrailViolation,
    PiiDetector,
    RegexPiiDetector,
    mask_customer_id,
    validate_triage_request,
)

__all__ = [
    "GuardrailViolation",
    "PiiDetector",
    "RegexPiiDetector",
    "mask_customer_id",
    "validate_triage_request",
]
