"""
End-to-end tests for triage workflows over the synthetic demo data.
"""

import asyncio
import time

import pytest

from fraud_triage.agent import graph as graph_module
from fraud_triage.agent.graph import TriageOrchestrator
from fraud_triage.agent.nodes import WorkflowContext
from fraud_triage.compliance.cache import TTLCache
from fraud_triage.guardrails.enforcement import RegexPiiDetector
from fraud_triage.schemas import StepStatus, WorkflowRequest
from fraud_triage.tools.executor import CIRCUIT_OPEN, StepExecutor

STANDARD_KEYS = [
    "step_1_get_profile",
    "step_2_get_recent_transactions",
    "step_3_risk_signals",
    "step_4_kb_lookup",
    "step_5_decide",
    "step_6_propose_action",
]

CANNED_KEYS = STANDARD_KEYS[:5] + ["step_6_action_execution"]


def _context(providers, **overrides) -> WorkflowContext:
    components = {
        "profiles": providers.profiles,
        "transactions": providers.transactions,
        "risk": providers.risk,
        "knowledge_base": providers.knowledge_base,
        "merchants": providers.merchants,
        "kb_cache": TTLCache(ttl_seconds=3600),
    }
    components.update(overrides)
    return WorkflowContext(**components)


class SlowRisk:
    async def analyze_risk(self, customer_id, suspect_txn_id):
        await asyncio.sleep(5)


class SlowProfiles:
    def __init__(self, inner, delay: float = 0.05):
        self.inner = inner
        self.delay = delay

    async def get_profile(self, customer_id):
        await asyncio.sleep(self.delay)
        return await self.inner.get_profile(customer_id)


class DelayedTransactions:
    def __init__(self, inner, delay: float):
        self.inner = inner
        self.delay = delay

    async def get_recent_transactions(self, customer_id, window_days):
        await asyncio.sleep(self.delay)
        return await self.inner.get_recent_transactions(customer_id, window_days)


class CountingKnowledgeBase:
    def __init__(self, inner):
        self.inner = inner
        self.queries = []

    async def search(self, query):
        self.queries.append(query)
        return await self.inner.search(query)


@pytest.mark.asyncio
async def test_card_lost_workflow(orchestrator: TriageOrchestrator):
    response = await orchestrator.run_triage(
        WorkflowRequest(
            customer_id="cust_001",
            suspect_txn_id="txn_001",
            alert_type="card_lost",
            user_message="I lost my card yesterday",
        )
    )

    assert response.workflow == "card_lost"
    assert response.risk_score == "high"
    assert response.recommended_action == "freeze_card"
    assert response.requires_otp is True
    assert response.reasons == ["card_lost", "immediate_action_required"]
    assert response.fallback_used is False
    assert list(response.trace) == CANNED_KEYS
    assert all(r.status == StepStatus.OK for r in response.trace.values())

    kb = response.step("step_4_kb_lookup").payload
    assert kb.results[0].doc_id == "kb_card_freeze"
    assert response.step("step_2_get_recent_transactions").payload.window_days == 7


@pytest.mark.asyncio
async def test_duplicate_charge_workflow(orchestrator: TriageOrchestrator):
    response = await orchestrator.run_triage(
        WorkflowRequest(
            customer_id="cust_001",
            suspect_txn_id="txn_duplicate_002",
            alert_type="duplicate_charge",
        )
    )

    assert response.risk_score == "low"
    assert response.recommended_action == "explain_only"
    assert response.reasons == ["duplicate_transaction", "preauth_capture"]
    assert response.step("step_5_decide").payload.risk_downgraded is True

    transactions = response.step("step_2_get_recent_transactions").payload
    assert transactions.duplicate_transaction is True
    assert transactions.duplicate_merchant == "QuickStop Market"


@pytest.mark.asyncio
async def test_standard_workflow_derives_action(orchestrator: TriageOrchestrator):
    response = await orchestrator.run_triage(
        WorkflowRequest(
            customer_id="cust_001",
            suspect_txn_id="txn_fraud_123",
            user_message="Please review this payment",
        )
    )

    assert response.workflow == "standard"
    assert list(response.trace) == STANDARD_KEYS
    assert response.risk_score == "high"
    assert response.reasons == ["unauthorized_transaction", "fraud_pattern"]
    assert response.recommended_action == "open_dispute"
    assert response.step("step_6_propose_action").payload.reason_code == "10.4"


@pytest.mark.asyncio
async def test_geo_velocity_customer_history(orchestrator: TriageOrchestrator):
    response = await orchestrator.run_triage(
        WorkflowRequest(
            customer_id="cust_002",
            suspect_txn_id="txn_geo_velocity_003",
            alert_type="geo_velocity",
        )
    )

    transactions = response.step("step_2_get_recent_transactions").payload
    assert transactions.window_days == 1
    assert transactions.geo_velocity_violation is True
    assert transactions.device_change is True
    assert response.recommended_action == "freeze_card"
    assert response.step("step_5_decide").payload.propose_freeze is True


@pytest.mark.asyncio
async def test_pii_is_redacted_before_steps(orchestrator: TriageOrchestrator):
    message = "My card 4111 1111 1111 1111 was charged, email me at jane@example.com"
    request = WorkflowRequest(
        customer_id="cust_001",
        suspect_txn_id="txn_001",
        user_message=message,
    )

    response = await orchestrator.run_triage(request)

    assert response.pii_detected is True
    assert response.trace_steps == ["pii_detection", "redaction_applied"]
    query = response.step("step_4_kb_lookup").payload.query
    assert "4111" not in query
    assert "jane@example.com" not in query
    assert "****REDACTED****" in query
    # The caller's request is left untouched
    assert request.user_message == message


@pytest.mark.asyncio
async def test_no_pii_no_annotations(orchestrator: TriageOrchestrator):
    response = await orchestrator.run_triage(
        WorkflowRequest(customer_id="cust_001", suspect_txn_id="txn_001", user_message="hello")
    )

    assert response.pii_detected is False
    assert response.trace_steps == []


@pytest.mark.asyncio
async def test_ambiguous_merchant_workflow(orchestrator: TriageOrchestrator):
    response = await orchestrator.run_triage(
        WorkflowRequest(
            customer_id="cust_001",
            user_message="I don't recognize this charge at Gaming Store",
        )
    )

    assert response.workflow == "merchant_disambiguation"
    assert list(response.trace) == [
        "step_1_get_profile",
        "step_2_get_recent_transactions",
        "step_3_merchant_analysis",
        "step_4_disambiguation_prompt",
        "step_5_user_selection",
        "step_6_action_execution",
    ]
    assert response.risk_score == "low"
    assert response.reasons == ["merchant_disambiguation_required"]
    assert response.recommended_action == "merchant_disambiguated"

    analysis = response.step("step_3_merchant_analysis").payload
    names = [c.merchant_name for c in analysis.candidates]
    assert names == ["Gaming Store Inc", "Gaming Store LLC", "GamingStore.com"]

    prompt = response.step("step_4_disambiguation_prompt").payload.prompt
    assert prompt.startswith('I found multiple merchants that might match "Gaming Store":')

    selection = response.step("step_5_user_selection").payload
    assert selection.selected_merchant == "Gaming Store Inc"
    assert selection.selection_valid is True


@pytest.mark.asyncio
async def test_clear_merchant_skips_disambiguation(orchestrator: TriageOrchestrator):
    response = await orchestrator.run_triage(
        WorkflowRequest(
            customer_id="cust_001",
            user_message="I don't recognize this charge at Pizza Palace",
        )
    )

    assert list(response.trace) == [
        "step_1_get_profile",
        "step_2_get_recent_transactions",
        "step_3_merchant_analysis",
        "step_6_action_execution",
    ]
    assert response.reasons == ["merchant_recognized"]
    assert response.recommended_action == "no_action_required"


@pytest.mark.asyncio
async def test_kb_faq_workflow(orchestrator: TriageOrchestrator):
    response = await orchestrator.run_triage(
        WorkflowRequest(
            customer_id="cust_004",
            alert_type="kb_faq",
            user_message="How do I set a travel notice?",
        )
    )

    assert list(response.trace) == [
        "step_1_kb_search",
        "step_2_content_retrieval",
        "step_3_citation_generation",
        "step_4_action_card_creation",
    ]
    assert response.risk_score == "low"
    assert response.reasons == ["kb_faq", "guidance_provided"]
    assert response.recommended_action == "provide_guidance"
    assert response.step("step_2_content_retrieval").payload.travel_notice is True
    assert len(response.step("step_3_citation_generation").payload.steps) == 5


@pytest.mark.asyncio
async def test_unknown_customer_degrades_to_fallback(orchestrator: TriageOrchestrator):
    response = await orchestrator.run_triage(
        WorkflowRequest(customer_id="cust_999", suspect_txn_id="txn_duplicate_777")
    )

    profile = response.step("step_1_get_profile")
    assert profile.status == StepStatus.ERROR
    assert profile.error.startswith("CustomerNotFoundError")
    assert response.fallback_used is True
    # Remaining steps still run
    assert list(response.trace) == STANDARD_KEYS
    assert response.recommended_action == "explain_only"


@pytest.mark.asyncio
async def test_missing_suspect_transaction_uses_risk_fallback(orchestrator: TriageOrchestrator):
    response = await orchestrator.run_triage(WorkflowRequest(customer_id="cust_001"))

    risk = response.step("step_3_risk_signals")
    assert risk.fallback_used is True
    assert response.risk_score == "medium"
    assert response.reasons == ["risk_unavailable", "rule_based_fallback"]
    assert response.recommended_action == "contact_customer"
    assert response.fallback_used is True


@pytest.mark.asyncio
async def test_breaker_opens_across_requests(orchestrator: TriageOrchestrator, services):
    request = WorkflowRequest(customer_id="cust_999", suspect_txn_id="txn_001")
    for _ in range(3):
        await orchestrator.run_triage(request)

    response = await orchestrator.run_triage(request)

    assert response.step("step_1_get_profile").error == CIRCUIT_OPEN
    assert services.breakers.is_open("get_profile") is True
    assert services.metrics.fallback_count("get_profile") == 4


@pytest.mark.asyncio
async def test_slow_step_times_out(providers, breakers, metrics):
    orchestrator = TriageOrchestrator(
        _context(providers, risk=SlowRisk()),
        StepExecutor(breakers, metrics, default_timeout_ms=50),
        RegexPiiDetector(),
    )

    response = await orchestrator.run_triage(
        WorkflowRequest(customer_id="cust_001", suspect_txn_id="txn_001")
    )

    risk = response.step("step_3_risk_signals")
    assert risk.status == StepStatus.ERROR
    assert risk.error == "timeout after 50ms"
    assert response.risk_score == "medium"
    assert response.fallback_used is True


@pytest.mark.asyncio
async def test_trace_keeps_definition_order(providers, breakers, metrics):
    orchestrator = TriageOrchestrator(
        _context(providers, profiles=SlowProfiles(providers.profiles)),
        StepExecutor(breakers, metrics),
        RegexPiiDetector(),
    )

    response = await orchestrator.run_triage(
        WorkflowRequest(customer_id="cust_001", suspect_txn_id="txn_001")
    )

    assert list(response.trace) == STANDARD_KEYS
    assert response.step("step_1_get_profile").status == StepStatus.OK


@pytest.mark.asyncio
async def test_canned_kb_lookup_is_cached(providers, breakers, metrics):
    knowledge_base = CountingKnowledgeBase(providers.knowledge_base)
    orchestrator = TriageOrchestrator(
        _context(providers, knowledge_base=knowledge_base),
        StepExecutor(breakers, metrics),
        RegexPiiDetector(),
    )
    request = WorkflowRequest(customer_id="cust_001", suspect_txn_id="txn_001", alert_type="card_lost")

    first = await orchestrator.run_triage(request)
    second = await orchestrator.run_triage(request)

    assert knowledge_base.queries == ["card lost freeze procedure"]
    assert first.step("step_4_kb_lookup").payload == second.step("step_4_kb_lookup").payload


@pytest.mark.asyncio
async def test_runs_are_deterministic(orchestrator: TriageOrchestrator):
    request = WorkflowRequest(
        customer_id="cust_003",
        suspect_txn_id="txn_555",
        alert_type="chargeback_history",
    )

    first = await orchestrator.run_triage(request)
    second = await orchestrator.run_triage(request)

    assert first.request_id != second.request_id
    for field in ("risk_score", "recommended_action", "reasons", "requires_otp", "fallback_used"):
        assert getattr(first, field) == getattr(second, field)
    assert list(first.trace) == list(second.trace)
    for key in first.trace:
        assert first.trace[key].payload == second.trace[key].payload
    assert first.step("step_1_get_profile").payload.chargeback_count == 2


@pytest.mark.asyncio
async def test_unexpected_error_yields_system_error(orchestrator: TriageOrchestrator, monkeypatch):
    def broken_selection(request):
        raise RuntimeError("selector crashed")

    monkeypatch.setattr(graph_module, "select_workflow", broken_selection)

    response = await orchestrator.run_triage(WorkflowRequest(customer_id="cust_001"))

    assert response.workflow is None
    assert response.risk_score == "medium"
    assert response.reasons == ["system_error", "manual_review_required"]
    assert response.recommended_action == "contact_customer"
    assert response.fallback_used is True
    assert response.trace == {}


@pytest.mark.parametrize(
    "alert_type, user_message",
    [
        ("card_lost", "I lost my card"),
        ("geo_velocity", None),
        (None, "I don't recognize this charge at Gaming Store"),
    ],
)
@pytest.mark.asyncio
async def test_profile_and_transactions_run_concurrently(
    providers, breakers, metrics, alert_type, user_message
):
    orchestrator = TriageOrchestrator(
        _context(
            providers,
            profiles=SlowProfiles(providers.profiles, delay=0.3),
            transactions=DelayedTransactions(providers.transactions, delay=0.3),
        ),
        StepExecutor(breakers, metrics, default_timeout_ms=2000),
        RegexPiiDetector(),
    )

    start = time.perf_counter()
    response = await orchestrator.run_triage(
        WorkflowRequest(
            customer_id="cust_001",
            suspect_txn_id="txn_001",
            alert_type=alert_type,
            user_message=user_message,
        )
    )
    elapsed = time.perf_counter() - start

    assert response.step("step_1_get_profile").status == StepStatus.OK
    assert response.step("step_2_get_recent_transactions").status == StepStatus.OK
    assert elapsed < 0.55


@pytest.mark.asyncio
async def test_stream_emits_plan_updates_and_decision(orchestrator: TriageOrchestrator):
    events = [
        event
        async for event in orchestrator.stream_triage(
            WorkflowRequest(customer_id="cust_001", suspect_txn_id="txn_001", alert_type="card_lost")
        )
    ]

    names = [event.event for event in events]
    assert names == ["plan_built"] + ["tool_update"] * 6 + ["decision_finalized"]
    assert events[0].data["workflow"] == "card_lost"
    assert events[0].data["steps"] == CANNED_KEYS
    assert [event.data["step"] for event in events[1:-1]] == CANNED_KEYS

    final = events[-1]
    assert final.data["risk_score"] == "high"
    assert final.data["recommended_action"] == "freeze_card"
    assert final.data["requires_otp"] is True
    assert final.response.request_id == events[0].data["request_id"]
    assert list(final.response.trace) == CANNED_KEYS


@pytest.mark.asyncio
async def test_stream_reports_fallback_before_decision(orchestrator: TriageOrchestrator):
    events = [
        event async for event in orchestrator.stream_triage(WorkflowRequest(customer_id="cust_001"))
    ]

    names = [event.event for event in events]
    assert names[-2:] == ["fallback_triggered", "decision_finalized"]
    assert "step_3_risk_signals" in events[-2].data["steps"]
    assert events[-2].data["reason"] == "Service timeout or error"


@pytest.mark.asyncio
async def test_stream_skipped_branch_updates_match_trace(orchestrator: TriageOrchestrator):
    events = [
        event
        async for event in orchestrator.stream_triage(
            WorkflowRequest(
                customer_id="cust_001",
                user_message="I don't recognize this charge at Pizza Palace",
            )
        )
    ]

    steps = [event.data["step"] for event in events if event.event == "tool_update"]
    assert steps == list(events[-1].response.trace)
    assert "step_4_disambiguation_prompt" not in steps


@pytest.mark.asyncio
async def test_stream_system_error_still_finalizes(orchestrator: TriageOrchestrator, monkeypatch):
    def broken_selection(request):
        raise RuntimeError("selector crashed")

    monkeypatch.setattr(graph_module, "select_workflow", broken_selection)

    events = [
        event async for event in orchestrator.stream_triage(WorkflowRequest(customer_id="cust_001"))
    ]

    assert [event.event for event in events] == ["fallback_triggered", "decision_finalized"]
    assert events[0].data["reason"] == "Unexpected workflow error"
    assert events[1].data["reasons"] == ["system_error", "manual_review_required"]


@pytest.mark.asyncio
async def test_remembered_merchant_selection_skips_prompt(orchestrator: TriageOrchestrator, providers):
    await providers.merchants.select("Gaming Store", "Gaming Store LLC", "cust_001")

    response = await orchestrator.run_triage(
        WorkflowRequest(
            customer_id="cust_001",
            user_message="I don't recognize this charge at Gaming Store",
        )
    )

    analysis = response.step("step_3_merchant_analysis").payload
    assert analysis.canonical_merchant == "Gaming Store LLC"
    assert analysis.disambiguation_required is False
    assert "step_4_disambiguation_prompt" not in response.trace
    assert response.reasons == ["merchant_recognized"]
