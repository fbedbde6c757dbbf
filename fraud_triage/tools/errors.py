"""
Exceptions raised by external capability providers.

The step executor absorbs all of these into fallback step results; they
never reach the caller of a triage run.
"""

from typing import Any, Optional


class ProviderError(Exception):
    """Raised when a provider cannot produce a result."""

    def __init__(
        self,
        message: str,
        provider: str,
        details: Optional[dict[str, Any]] = None,
    ):
        self.message = message
        self.provider = provider
        self.details = details or {}
        super().__init__(self.message)


class CustomerNotFoundError(ProviderError):
    """Raised when a customer id has no active profile."""

    def __init__(self, customer_id: str):
        super().__init__(
            f"Customer not found: {customer_id}",
            provider="profile",
            details={"customer_id": customer_id},
        )


class InvalidProviderInput(ProviderError):
    """Raised when a provider is called without the inputs it needs."""
