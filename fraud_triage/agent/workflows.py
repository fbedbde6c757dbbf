"""
Workflow definitions and selection.

A workflow is an ordered list of steps plus a rule for reducing the trace
into the final decision and action. Alert-type tags select hand-tuned
workflows; untagged "don't recognize this charge" messages go to merchant
disambiguation; everything else runs the standard triage workflow.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Callable, Mapping, Optional

from fraud_triage.agent import nodes
from fraud_triage.agent.nodes import StepRunner, is_merchant_ambiguity
from fraud_triage.schemas import (
    Action,
    AlertType,
    Decision,
    RiskPayload,
    StepName,
    StepResult,
    WorkflowRequest,
)

logger = logging.getLogger(__name__)

LOOKUP_GROUP = "lookup"
# Knowledge-base search gets a longer deadline than the other steps
KB_TIMEOUT_MS = 1500


class WorkflowKind(str, enum.Enum):
    STANDARD = "standard"
    CARD_LOST = "card_lost"
    DUPLICATE_CHARGE = "duplicate_charge"
    UNAUTHORIZED_CHARGE = "unauthorized_charge"
    GEO_VELOCITY = "geo_velocity"
    CHARGEBACK_HISTORY = "chargeback_history"
    KB_FAQ = "kb_faq"
    MERCHANT_DISAMBIGUATION = "merchant_disambiguation"


class OutcomeRule(str, enum.Enum):
    """How the final decision and action are read from the trace."""

    # Decision and action recorded by canned steps
    FIXED = "fixed"
    # Decision reduced from risk signals, action from the policy table
    DERIVED = "derived"
    # Decision reduced from the merchant analysis step
    MERCHANT = "merchant"
    # Fixed guidance decision, action from the action card step
    GUIDANCE = "guidance"


@dataclass(frozen=True)
class StepSpec:
    """
    One step of a workflow.

    ``key`` is the stable trace key. Consecutive steps sharing a
    ``parallel_group`` run concurrently. A step with a ``when`` predicate
    runs only if it holds for the trace recorded before it.
    """

    key: str
    name: StepName
    run: StepRunner
    timeout_ms: Optional[int] = None
    parallel_group: Optional[str] = None
    when: Optional[Callable[[Mapping[str, StepResult]], bool]] = None


@dataclass(frozen=True)
class WorkflowDefinition:
    kind: WorkflowKind
    steps: list[StepSpec]
    outcome: OutcomeRule
    decision_key: Optional[str] = None
    action_key: Optional[str] = None
    analysis_key: Optional[str] = None

    @property
    def keys(self) -> list[str]:
        return [step.key for step in self.steps]


def step_key(position: int, name: StepName) -> str:
    return f"step_{position}_{name.value}"


PROFILE_KEY = step_key(1, StepName.GET_PROFILE)
TRANSACTIONS_KEY = step_key(2, StepName.GET_RECENT_TRANSACTIONS)
RISK_KEY = step_key(3, StepName.RISK_SIGNALS)
KB_KEY = step_key(4, StepName.KB_LOOKUP)
DECIDE_KEY = step_key(5, StepName.DECIDE)
PROPOSE_KEY = step_key(6, StepName.PROPOSE_ACTION)
ACTION_KEY = step_key(6, StepName.ACTION_EXECUTION)
MERCHANT_ANALYSIS_KEY = step_key(3, StepName.MERCHANT_ANALYSIS)


def _lookup_steps(window_days: Optional[int]) -> list[StepSpec]:
    return [
        StepSpec(
            key=PROFILE_KEY,
            name=StepName.GET_PROFILE,
            run=nodes.fetch_profile,
            parallel_group=LOOKUP_GROUP,
        ),
        StepSpec(
            key=TRANSACTIONS_KEY,
            name=StepName.GET_RECENT_TRANSACTIONS,
            run=nodes.fetch_transactions(window_days),
            parallel_group=LOOKUP_GROUP,
        ),
    ]


def standard_workflow() -> WorkflowDefinition:
    """Profile, transactions, risk, knowledge base, decide, propose action."""
    steps = _lookup_steps(None) + [
        StepSpec(key=RISK_KEY, name=StepName.RISK_SIGNALS, run=nodes.analyze_risk),
        StepSpec(
            key=KB_KEY,
            name=StepName.KB_LOOKUP,
            run=nodes.search_message,
            timeout_ms=KB_TIMEOUT_MS,
        ),
        StepSpec(key=DECIDE_KEY, name=StepName.DECIDE, run=nodes.decide_from(RISK_KEY)),
        StepSpec(
            key=PROPOSE_KEY,
            name=StepName.PROPOSE_ACTION,
            run=nodes.propose_from(DECIDE_KEY),
        ),
    ]
    return WorkflowDefinition(
        kind=WorkflowKind.STANDARD,
        steps=steps,
        outcome=OutcomeRule.DERIVED,
        decision_key=DECIDE_KEY,
        action_key=PROPOSE_KEY,
    )


def canned_workflow(
    kind: WorkflowKind,
    window_days: int,
    risk: RiskPayload,
    kb_query: str,
    decision: Decision,
    action: Action,
    kb_cache_key: Optional[str] = None,
) -> WorkflowDefinition:
    """Lookups followed by hand-tuned risk, decision and action payloads."""
    steps = _lookup_steps(window_days) + [
        StepSpec(key=RISK_KEY, name=StepName.RISK_SIGNALS, run=nodes.canned(risk)),
        StepSpec(
            key=KB_KEY,
            name=StepName.KB_LOOKUP,
            run=nodes.search_kb(kb_query, cache_key=kb_cache_key),
            timeout_ms=KB_TIMEOUT_MS,
        ),
        StepSpec(key=DECIDE_KEY, name=StepName.DECIDE, run=nodes.canned(decision)),
        StepSpec(key=ACTION_KEY, name=StepName.ACTION_EXECUTION, run=nodes.canned(action)),
    ]
    return WorkflowDefinition(
        kind=kind,
        steps=steps,
        outcome=OutcomeRule.FIXED,
        decision_key=DECIDE_KEY,
        action_key=ACTION_KEY,
    )


def merchant_workflow() -> WorkflowDefinition:
    prompt_key = step_key(4, StepName.DISAMBIGUATION_PROMPT)
    selection_key = step_key(5, StepName.USER_SELECTION)
    ambiguous = nodes.needs_disambiguation(MERCHANT_ANALYSIS_KEY)

    steps = _lookup_steps(None) + [
        StepSpec(
            key=MERCHANT_ANALYSIS_KEY,
            name=StepName.MERCHANT_ANALYSIS,
            run=nodes.analyze_merchant,
        ),
        StepSpec(
            key=prompt_key,
            name=StepName.DISAMBIGUATION_PROMPT,
            run=nodes.build_prompt(MERCHANT_ANALYSIS_KEY),
            when=ambiguous,
        ),
        StepSpec(
            key=selection_key,
            name=StepName.USER_SELECTION,
            run=nodes.select_merchant(MERCHANT_ANALYSIS_KEY),
            when=ambiguous,
        ),
        StepSpec(
            key=ACTION_KEY,
            name=StepName.ACTION_EXECUTION,
            run=nodes.execute_merchant_action(MERCHANT_ANALYSIS_KEY),
        ),
    ]
    return WorkflowDefinition(
        kind=WorkflowKind.MERCHANT_DISAMBIGUATION,
        steps=steps,
        outcome=OutcomeRule.MERCHANT,
        action_key=ACTION_KEY,
        analysis_key=MERCHANT_ANALYSIS_KEY,
    )


def kb_faq_workflow() -> WorkflowDefinition:
    action_key = step_key(4, StepName.ACTION_CARD_CREATION)
    steps = [
        StepSpec(
            key=step_key(1, StepName.KB_SEARCH),
            name=StepName.KB_SEARCH,
            run=nodes.search_message,
            timeout_ms=KB_TIMEOUT_MS,
        ),
        StepSpec(
            key=step_key(2, StepName.CONTENT_RETRIEVAL),
            name=StepName.CONTENT_RETRIEVAL,
            run=nodes.retrieve_content,
        ),
        StepSpec(
            key=step_key(3, StepName.CITATION_GENERATION),
            name=StepName.CITATION_GENERATION,
            run=nodes.generate_citations,
        ),
        StepSpec(key=action_key, name=StepName.ACTION_CARD_CREATION, run=nodes.create_action_card),
    ]
    return WorkflowDefinition(
        kind=WorkflowKind.KB_FAQ,
        steps=steps,
        outcome=OutcomeRule.GUIDANCE,
        action_key=action_key,
    )


def _canned_definitions() -> dict[AlertType, WorkflowDefinition]:
    card_lost_reasons = ["card_lost", "immediate_action_required"]
    duplicate_reasons = ["duplicate_transaction", "preauth_capture"]
    unauthorized_reasons = ["unauthorized_transaction", "fraud_pattern"]
    geo_reasons = ["geo_velocity_violation", "impossible_travel"]
    chargeback_reasons = ["chargeback_history", "repeat_offender"]

    return {
        AlertType.CARD_LOST: canned_workflow(
            WorkflowKind.CARD_LOST,
            window_days=7,
            risk=RiskPayload(risk_score="high", reasons=card_lost_reasons, confidence=0.95),
            kb_query="card lost freeze procedure",
            kb_cache_key="card_lost_freeze_procedure",
            decision=Decision(risk_score="high", reasons=card_lost_reasons),
            action=Action(
                action="freeze_card",
                requires_otp=True,
                message="Card will be frozen immediately after OTP verification",
                final_status="FROZEN",
            ),
        ),
        AlertType.DUPLICATE_CHARGE: canned_workflow(
            WorkflowKind.DUPLICATE_CHARGE,
            window_days=30,
            risk=RiskPayload(risk_score="low", reasons=duplicate_reasons, confidence=0.90),
            kb_query="duplicate charge preauth capture explanation",
            decision=Decision(risk_score="low", reasons=duplicate_reasons, risk_downgraded=True),
            action=Action(
                action="explain_only",
                message=(
                    "This appears to be a preauthorization followed by capture. "
                    "The first charge will be released within 1-3 business days."
                ),
                no_dispute=True,
            ),
        ),
        AlertType.UNAUTHORIZED_CHARGE: canned_workflow(
            WorkflowKind.UNAUTHORIZED_CHARGE,
            window_days=90,
            risk=RiskPayload(risk_score="high", reasons=unauthorized_reasons, confidence=0.95),
            kb_query="unauthorized charge dispute procedure",
            decision=Decision(risk_score="high", reasons=unauthorized_reasons),
            action=Action(
                action="open_dispute",
                reason_code="10.4",
                message="Dispute will be opened with reason code 10.4 (Unauthorized transaction)",
                final_status="OPEN",
            ),
        ),
        AlertType.GEO_VELOCITY: canned_workflow(
            WorkflowKind.GEO_VELOCITY,
            window_days=1,
            risk=RiskPayload(risk_score="high", reasons=geo_reasons, confidence=0.95),
            kb_query="geo velocity violation impossible travel",
            decision=Decision(risk_score="high", reasons=geo_reasons, propose_freeze=True),
            action=Action(
                action="freeze_card",
                message=(
                    "Impossible travel detected. Card frozen for security. "
                    "Please contact customer service for verification."
                ),
                final_status="FROZEN",
            ),
        ),
        AlertType.CHARGEBACK_HISTORY: canned_workflow(
            WorkflowKind.CHARGEBACK_HISTORY,
            window_days=90,
            risk=RiskPayload(risk_score="high", reasons=chargeback_reasons, confidence=0.90),
            kb_query="chargeback history escalation procedures",
            decision=Decision(
                risk_score="high",
                reasons=chargeback_reasons,
                escalate_to_lead=True,
                open_case=True,
            ),
            action=Action(
                action="escalate",
                message=(
                    "Customer has chargeback history. "
                    "Escalating to team lead for special handling."
                ),
                escalate_to_lead=True,
                open_case=True,
                final_status="ESCALATED",
            ),
        ),
        AlertType.KB_FAQ: kb_faq_workflow(),
        AlertType.MERCHANT_DISAMBIGUATION: merchant_workflow(),
    }


TAGGED_WORKFLOWS = _canned_definitions()
MERCHANT_WORKFLOW = TAGGED_WORKFLOWS[AlertType.MERCHANT_DISAMBIGUATION]
STANDARD_WORKFLOW = standard_workflow()


def select_workflow(request: WorkflowRequest) -> WorkflowDefinition:
    """
    Pick the workflow for a request.

    An exact alert-type tag always wins over the message heuristic.
    """
    alert_type = AlertType.parse(request.alert_type)
    if alert_type is not None:
        definition = TAGGED_WORKFLOWS[alert_type]
    elif is_merchant_ambiguity(request.user_message, request.alert_type):
        definition = MERCHANT_WORKFLOW
    else:
        definition = STANDARD_WORKFLOW

    logger.info(
        f"Workflow selection: alert_type={request.alert_type}, workflow={definition.kind.value}"
    )
    return definition


def all_workflows() -> list[WorkflowDefinition]:
    return list(TAGGED_WORKFLOWS.values()) + [STANDARD_WORKFLOW]
