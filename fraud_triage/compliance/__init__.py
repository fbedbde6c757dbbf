"""
Compliance module for validating remediation actions.
"""

from fraud_triage.compliance.cache import TTLCache
from fraud_triage.compliance.validator import (
    ComplianceDirectory,
    ComplianceValidator,
    DemoComplianceDirectory,
    ValidationResult,
)

__all__ = [
    "ComplianceDirectory",
    "ComplianceValidator",
    "DemoComplianceDirectory",
    "TTLCache",
    "ValidationResult",
]
