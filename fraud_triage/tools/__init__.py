"""
Step execution and capability providers for triage workflows.
"""

from fraud_triage.tools.circuit_breaker import CircuitBreakerRegistry
from fraud_triage.tools.errors import CustomerNotFoundError, ProviderError
from fraud_triage.tools.executor import StepExecutor
from fraud_triage.tools.fallbacks import build_fallback

__all__ = [
    "CircuitBreakerRegistry",
    "CustomerNotFoundError",
    "ProviderError",
    "StepExecutor",
    "build_fallback",
]
