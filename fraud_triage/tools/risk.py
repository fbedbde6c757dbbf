"""
Rule-based risk provider.
Scores the suspect transaction from markers embedded in its identifier.
"""

import logging
from typing import Optional, Protocol

from fraud_triage.guardrails.enforcement import mask_customer_id
from fraud_triage.schemas import RiskPayload, RiskScore
from fraud_triage.tools.errors import InvalidProviderInput

logger = logging.getLogger(__name__)

RULE_CONFIDENCE = 0.85

# (markers, risk score, reasons), checked in order; first match wins
RISK_RULES = [
    (("unauthorized", "fraud"), RiskScore.HIGH, ["unauthorized_transaction", "fraud_pattern"]),
    (("geo", "velocity"), RiskScore.HIGH, ["geo_velocity_violation", "impossible_travel"]),
    (("device", "mcc"), RiskScore.MEDIUM, ["device_change", "mcc_anomaly"]),
    (("duplicate",), RiskScore.LOW, ["duplicate_transaction", "preauth_capture"]),
]

DEFAULT_RISK = (RiskScore.MEDIUM, ["unusual_pattern"])


class RiskProvider(Protocol):
    async def analyze_risk(
        self, customer_id: str, suspect_txn_id: Optional[str]
    ) -> RiskPayload: ...


class RuleBasedRiskProvider:
    """
    Deterministic risk scoring over the suspect transaction id.

    Raises InvalidProviderInput when either identifier is missing so the
    executor substitutes the rule-based fallback.
    """

    async def analyze_risk(
        self, customer_id: str, suspect_txn_id: Optional[str]
    ) -> RiskPayload:
        if not customer_id or not suspect_txn_id:
            raise InvalidProviderInput(
                "Invalid input parameters",
                provider="risk",
                details={"suspect_txn_id": suspect_txn_id},
            )

        txn_id = suspect_txn_id.lower()
        risk_score, reasons = DEFAULT_RISK
        for markers, score, rule_reasons in RISK_RULES:
            if any(marker in txn_id for marker in markers):
                risk_score, reasons = score, rule_reasons
                break

        logger.debug(
            f"Risk for customer {mask_customer_id(customer_id)}: "
            f"{risk_score.value} {reasons}"
        )

        return RiskPayload(
            risk_score=risk_score.value,
            reasons=list(reasons),
            confidence=RULE_CONFIDENCE,
        )
