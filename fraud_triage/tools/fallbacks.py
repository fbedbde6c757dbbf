"""
Deterministic fallback payloads for failed workflow steps.
"""

from fraud_triage.schemas import (
    FallbackPayload,
    KnowledgeBasePayload,
    RiskPayload,
    StepName,
)

NO_KB_RESULTS = "No relevant information found"


def build_fallback(step_name: StepName):
    """
    Build the degraded payload recorded when a step times out, fails or is
    skipped by an open circuit breaker.

    Defined for every step name; steps without a specific template get a
    generic unavailable message.
    """
    if step_name == StepName.RISK_SIGNALS:
        return RiskPayload(
            risk_score="medium",
            reasons=["risk_unavailable", "rule_based_fallback"],
            fallback_used=True,
        )

    if step_name in (StepName.KB_LOOKUP, StepName.KB_SEARCH):
        return KnowledgeBasePayload(results=[NO_KB_RESULTS])

    return FallbackPayload()
