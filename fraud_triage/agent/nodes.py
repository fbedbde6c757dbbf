"""
Units of work for workflow steps.

Each unit takes the shared context, the (redacted) request and the trace
recorded so far, and returns a step payload. Units raise freely; the step
executor turns failures into fallback results.
"""

import logging
import re
from typing import Awaitable, Callable, Mapping, Optional

from fraud_triage.agent.decision import (
    payload_of,
    propose_action,
    reduce_risk,
    unavailable_decision,
)
from fraud_triage.compliance.cache import TTLCache
from fraud_triage.schemas import (
    Action,
    CitationPayload,
    ContentPayload,
    Decision,
    DisambiguationPromptPayload,
    KnowledgeBasePayload,
    MerchantAnalysisPayload,
    MerchantSelectionPayload,
    ProfilePayload,
    RiskPayload,
    StepResult,
    TransactionsPayload,
    WorkflowRequest,
)
from fraud_triage.tools.knowledge_base import KnowledgeBaseProvider
from fraud_triage.tools.merchant import MerchantDisambiguationProvider
from fraud_triage.tools.profile import ProfileProvider
from fraud_triage.tools.risk import RiskProvider
from fraud_triage.tools.transactions import TransactionProvider

logger = logging.getLogger(__name__)

TraceView = Mapping[str, StepResult]

TRAVEL_NOTICE_STEPS = [
    "1. Log into your account",
    "2. Go to Card Settings",
    "3. Select Travel Notice",
    "4. Enter your travel dates and destinations",
    "5. Submit the notice",
]

_MERCHANT_SUFFIX = re.compile(r"\s+(charge|transaction|payment).*$", re.IGNORECASE | re.DOTALL)
_AT = re.compile(r"at ", re.IGNORECASE)


class WorkflowContext:
    """
    Context object passed to units of work containing shared providers.
    """

    def __init__(
        self,
        profiles: ProfileProvider,
        transactions: TransactionProvider,
        risk: RiskProvider,
        knowledge_base: KnowledgeBaseProvider,
        merchants: MerchantDisambiguationProvider,
        kb_cache: TTLCache[KnowledgeBasePayload],
        default_window_days: int = 90,
    ):
        self.profiles = profiles
        self.transactions = transactions
        self.risk = risk
        self.knowledge_base = knowledge_base
        self.merchants = merchants
        self.kb_cache = kb_cache
        self.default_window_days = default_window_days


StepRunner = Callable[[WorkflowContext, WorkflowRequest, TraceView], Awaitable]


# --- Message helpers ---------------------------------------------------------


def normalize_message(message: Optional[str]) -> str:
    if not message:
        return ""
    return message.replace("’", "'").replace("‘", "'").lower()


def is_merchant_ambiguity(message: Optional[str], alert_type: Optional[str]) -> bool:
    """True for "don't recognize ... charge" messages not already tagged unauthorized."""
    text = normalize_message(message)
    if alert_type and alert_type.strip().lower() == "unauthorized_charge":
        return False
    return "don't recognize" in text and "charge" in text


def extract_merchant_name(message: Optional[str]) -> str:
    """
    Pull the merchant out of text like "charge at Gaming Store yesterday".

    Takes the text after the first "at " and drops any trailing
    "charge/transaction/payment ..." clause.
    """
    if not message:
        return "Unknown"

    parts = _AT.split(message)
    if len(parts) < 2:
        return "Unknown"

    merchant = _MERCHANT_SUFFIX.sub("", parts[1].strip()).strip()
    return merchant or "Unknown"


# --- Lookups -----------------------------------------------------------------


async def fetch_profile(ctx: WorkflowContext, request: WorkflowRequest, trace: TraceView) -> ProfilePayload:
    return await ctx.profiles.get_profile(request.customer_id)


def fetch_transactions(window_days: Optional[int] = None) -> StepRunner:
    async def run(ctx: WorkflowContext, request: WorkflowRequest, trace: TraceView) -> TransactionsPayload:
        return await ctx.transactions.get_recent_transactions(
            request.customer_id, window_days or ctx.default_window_days
        )

    return run


async def analyze_risk(ctx: WorkflowContext, request: WorkflowRequest, trace: TraceView) -> RiskPayload:
    return await ctx.risk.analyze_risk(request.customer_id, request.suspect_txn_id)


async def search_message(ctx: WorkflowContext, request: WorkflowRequest, trace: TraceView) -> KnowledgeBasePayload:
    return await ctx.knowledge_base.search(request.user_message)


def search_kb(query: str, cache_key: Optional[str] = None) -> StepRunner:
    """Search with a fixed query, optionally memoised in the KB cache."""

    async def run(ctx: WorkflowContext, request: WorkflowRequest, trace: TraceView) -> KnowledgeBasePayload:
        if cache_key is None:
            return await ctx.knowledge_base.search(query)

        payload, hit = await ctx.kb_cache.get_or_compute(
            cache_key, lambda: ctx.knowledge_base.search(query)
        )
        if hit:
            logger.debug(f"Knowledge base cache hit for '{cache_key}'")
        return payload.model_copy(deep=True)

    return run


def canned(payload) -> StepRunner:
    """Unit of work that returns a fixed payload."""

    async def run(ctx: WorkflowContext, request: WorkflowRequest, trace: TraceView):
        return payload.model_copy(deep=True)

    return run


# --- Standard decision steps -------------------------------------------------


def decide_from(risk_key: str) -> StepRunner:
    async def run(ctx: WorkflowContext, request: WorkflowRequest, trace: TraceView) -> Decision:
        return reduce_risk(trace.get(risk_key))

    return run


def propose_from(decision_key: str) -> StepRunner:
    async def run(ctx: WorkflowContext, request: WorkflowRequest, trace: TraceView) -> Action:
        decision = payload_of(trace, decision_key, Decision)
        return propose_action(decision or unavailable_decision())

    return run


# --- Merchant disambiguation -------------------------------------------------


def _merchant_analysis(trace: TraceView, key: str) -> Optional[MerchantAnalysisPayload]:
    return payload_of(trace, key, MerchantAnalysisPayload)


def needs_disambiguation(analysis_key: str) -> Callable[[TraceView], bool]:
    def predicate(trace: TraceView) -> bool:
        analysis = _merchant_analysis(trace, analysis_key)
        return analysis is not None and analysis.disambiguation_required

    return predicate


async def analyze_merchant(
    ctx: WorkflowContext, request: WorkflowRequest, trace: TraceView
) -> MerchantAnalysisPayload:
    merchant_name = extract_merchant_name(request.user_message)
    return await ctx.merchants.analyze(merchant_name, request.customer_id)


def build_prompt(analysis_key: str) -> StepRunner:
    async def run(
        ctx: WorkflowContext, request: WorkflowRequest, trace: TraceView
    ) -> DisambiguationPromptPayload:
        analysis = _merchant_analysis(trace, analysis_key)
        if analysis is None:
            raise ValueError("Merchant analysis unavailable")
        return DisambiguationPromptPayload(
            prompt=analysis.disambiguation_prompt,
            candidates=list(analysis.candidates),
            original_merchant=analysis.original_merchant,
        )

    return run


def select_merchant(analysis_key: str) -> StepRunner:
    """Select the top candidate on the customer's behalf."""

    async def run(
        ctx: WorkflowContext, request: WorkflowRequest, trace: TraceView
    ) -> MerchantSelectionPayload:
        analysis = _merchant_analysis(trace, analysis_key)
        if analysis is None:
            raise ValueError("Merchant analysis unavailable")
        if not analysis.candidates:
            return MerchantSelectionPayload(
                original_merchant=analysis.original_merchant,
                error="No candidates available",
            )
        return await ctx.merchants.select(
            analysis.original_merchant,
            analysis.candidates[0].merchant_name,
            request.customer_id,
        )

    return run


def execute_merchant_action(analysis_key: str) -> StepRunner:
    async def run(ctx: WorkflowContext, request: WorkflowRequest, trace: TraceView) -> Action:
        if needs_disambiguation(analysis_key)(trace):
            return Action(
                action="merchant_disambiguated",
                message="Merchant has been disambiguated. Transaction can proceed normally.",
            )
        return Action(
            action="no_action_required",
            message="Merchant is clear, no disambiguation needed.",
        )

    return run


# --- Knowledge-base FAQ ------------------------------------------------------


async def retrieve_content(ctx: WorkflowContext, request: WorkflowRequest, trace: TraceView) -> ContentPayload:
    return ContentPayload(
        query=request.user_message,
        travel_notice="travel notice" in normalize_message(request.user_message),
    )


async def generate_citations(ctx: WorkflowContext, request: WorkflowRequest, trace: TraceView) -> CitationPayload:
    return CitationPayload(steps=list(TRAVEL_NOTICE_STEPS))


async def create_action_card(ctx: WorkflowContext, request: WorkflowRequest, trace: TraceView) -> Action:
    return Action(
        action="provide_guidance",
        action_card=True,
        message="Here's how to set a travel notice for your upcoming trip:",
    )
