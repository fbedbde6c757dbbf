"""
Guardrail enforcement for triage requests.
Provides PII detection and redaction, log-safe identifiers and request validation.
"""

import logging
import re
from typing import Optional, Protocol

from fraud_triage.config import settings
from fraud_triage.schemas import WorkflowRequest

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 2000

_CUSTOMER_ID = re.compile(r"^[A-Za-z0-9_\-]{1,64}$")


class GuardrailViolation(Exception):
    """Exception raised when a guardrail check fails."""

    def __init__(self, message: str, violation_type: str):
        self.message = message
        self.violation_type = violation_type
        super().__init__(self.message)


class PiiDetector(Protocol):
    def contains(self, text: Optional[str]) -> bool: ...

    def redact(self, text: Optional[str]) -> Optional[str]: ...


class RegexPiiDetector:
    """
    Pattern-based PII detector.

    Patterns are applied in order, so separator-formatted card numbers
    are replaced whole before the bare digit-run patterns run.
    """

    PII_PATTERNS = [
        # Social security numbers
        r"\b\d{3}-\d{2}-\d{4}\b",
        # Card numbers with separators
        r"\b\d{4}[- ]\d{4}[- ]\d{4}[- ]\d{4}\b",
        # Card numbers (13-19 digits)
        r"\b\d{13,19}\b",
        # Email addresses
        r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b",
        # Mobile numbers
        r"\b[6-9]\d{9}\b",
        # Tax account numbers
        r"\b[A-Z]{5}[0-9]{4}[A-Z]\b",
        # National identity numbers (12 digits, optionally grouped)
        r"\b\d{4}\s?\d{4}\s?\d{4}\b",
    ]

    def __init__(self, replacement: Optional[str] = None):
        self.replacement = replacement or settings.pii_replacement
        self._patterns = [re.compile(p) for p in self.PII_PATTERNS]

    def contains(self, text: Optional[str]) -> bool:
        if not text:
            return False
        return any(pattern.search(text) for pattern in self._patterns)

    def redact(self, text: Optional[str]) -> Optional[str]:
        """
        Replace every PII match with the configured replacement.

        Args:
            text: Text to redact

        Returns:
            Redacted text, or the input unchanged if empty
        """
        if not text:
            return text

        result = text
        for pattern in self._patterns:
            result = pattern.sub(self.replacement, result)
        return result


def mask_customer_id(customer_id: Optional[str]) -> str:
    """Log-safe form of a customer id: first two and last two characters."""
    if not customer_id or len(customer_id) < 4:
        return "****"
    return f"{customer_id[:2]}***{customer_id[-2:]}"


def validate_triage_request(request: WorkflowRequest) -> None:
    """
    Validate triage request parameters.

    Args:
        request: Request to validate

    Raises:
        GuardrailViolation: If validation fails
    """
    if not request.customer_id or not request.customer_id.strip():
        raise GuardrailViolation(
            "Required field 'customer_id' missing from request",
            violation_type="invalid_triage_input",
        )

    if not _CUSTOMER_ID.match(request.customer_id):
        raise GuardrailViolation(
            f"Invalid customer_id format: {mask_customer_id(request.customer_id)}",
            violation_type="invalid_triage_input",
        )

    if request.user_message and len(request.user_message) > MAX_MESSAGE_LENGTH:
        raise GuardrailViolation(
            f"user_message exceeds {MAX_MESSAGE_LENGTH} characters",
            violation_type="invalid_triage_input",
        )
