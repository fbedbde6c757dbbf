"""
Decision engine.
Reduces recorded step results into a risk decision and a recommended action.
"""

from typing import Mapping, Optional

from fraud_triage.schemas import (
    Action,
    Decision,
    MerchantAnalysisPayload,
    RiskPayload,
    RiskScore,
    StepResult,
    StepStatus,
)

# High-risk reasons that call for freezing the card rather than a dispute
FREEZE_REASONS = {"geo_velocity_violation", "chargeback_history"}

SYSTEM_ERROR_REASONS = ["system_error", "manual_review_required"]


def reduce_risk(step_result: Optional[StepResult]) -> Decision:
    """
    Build a decision from the risk-signals step.

    Score and reasons are copied verbatim; a missing score defaults to
    medium. A missing or non-risk payload yields ``risk_unavailable``.
    """
    if step_result is None or not isinstance(step_result.payload, RiskPayload):
        return Decision(
            risk_score=RiskScore.MEDIUM.value,
            reasons=["risk_unavailable"],
            fallback_used=True,
        )

    risk = step_result.payload
    return Decision(
        risk_score=risk.risk_score or RiskScore.MEDIUM.value,
        reasons=list(risk.reasons),
        fallback_used=step_result.fallback_used or risk.fallback_used,
    )


def propose_action(decision: Decision) -> Action:
    """
    Map a decision to an action.

    | risk   | condition                              | action           |
    |--------|----------------------------------------|------------------|
    | high   | geo_velocity_violation / chargeback    | freeze_card+OTP  |
    | high   | otherwise                              | open_dispute     |
    | medium |                                        | contact_customer |
    | low    | duplicate_transaction                  | explain_only     |
    | low    | otherwise                              | no_action        |
    | other  |                                        | contact_customer |
    """
    reasons = set(decision.reasons)

    if decision.risk_score == RiskScore.HIGH.value:
        if reasons & FREEZE_REASONS:
            return Action(action="freeze_card", requires_otp=True)
        return Action(action="open_dispute", reason_code="10.4")

    if decision.risk_score == RiskScore.LOW.value:
        if "duplicate_transaction" in reasons:
            return Action(action="explain_only")
        return Action(action="no_action")

    return Action(action="contact_customer")


def reduce_merchant_analysis(step_result: Optional[StepResult]) -> Decision:
    if (
        step_result is None
        or step_result.status != StepStatus.OK
        or not isinstance(step_result.payload, MerchantAnalysisPayload)
    ):
        return Decision(
            risk_score=RiskScore.MEDIUM.value,
            reasons=["merchant_analysis_unavailable"],
            fallback_used=True,
        )

    if step_result.payload.disambiguation_required:
        reasons = ["merchant_disambiguation_required"]
    else:
        reasons = ["merchant_recognized"]
    return Decision(risk_score=RiskScore.LOW.value, reasons=reasons)


def guidance_decision() -> Decision:
    return Decision(risk_score=RiskScore.LOW.value, reasons=["kb_faq", "guidance_provided"])


def unavailable_decision() -> Decision:
    return Decision(
        risk_score=RiskScore.MEDIUM.value,
        reasons=["decision_unavailable", "manual_review_required"],
        fallback_used=True,
    )


def system_error_decision() -> Decision:
    return Decision(
        risk_score=RiskScore.MEDIUM.value,
        reasons=list(SYSTEM_ERROR_REASONS),
        fallback_used=True,
    )


def payload_of(trace: Mapping[str, StepResult], key: Optional[str], kind: type):
    """Return the payload recorded under ``key`` if it has the expected type."""
    if key is None:
        return None
    result = trace.get(key)
    if result is None or not isinstance(result.payload, kind):
        return None
    return result.payload
