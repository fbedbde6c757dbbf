"""
Core data model for triage workflows.

Step payloads form a tagged union discriminated by ``kind`` so that the
orchestrator can extract decisions and actions by type rather than by
string-keyed lookups.
"""

import enum
import json
from datetime import datetime
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, Field


class AlertType(str, enum.Enum):
    """Categorical reason a transaction was flagged."""

    CARD_LOST = "card_lost"
    DUPLICATE_CHARGE = "duplicate_charge"
    UNAUTHORIZED_CHARGE = "unauthorized_charge"
    GEO_VELOCITY = "geo_velocity"
    CHARGEBACK_HISTORY = "chargeback_history"
    KB_FAQ = "kb_faq"
    MERCHANT_DISAMBIGUATION = "merchant_disambiguation"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["AlertType"]:
        """Return the matching alert type, or None for absent/unknown tags."""
        if not value:
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


class RiskScore(str, enum.Enum):
    """Risk level assigned to a triage request."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class StepStatus(str, enum.Enum):
    """Outcome of a single workflow step."""

    OK = "ok"
    ERROR = "error"


class StepName(str, enum.Enum):
    """Every step the orchestrator can invoke.

    The step name doubles as the circuit-breaker service name and the
    metrics tag.
    """

    GET_PROFILE = "get_profile"
    GET_RECENT_TRANSACTIONS = "get_recent_transactions"
    RISK_SIGNALS = "risk_signals"
    KB_LOOKUP = "kb_lookup"
    DECIDE = "decide"
    PROPOSE_ACTION = "propose_action"
    MERCHANT_ANALYSIS = "merchant_analysis"
    DISAMBIGUATION_PROMPT = "disambiguation_prompt"
    USER_SELECTION = "user_selection"
    ACTION_EXECUTION = "action_execution"
    KB_SEARCH = "kb_search"
    CONTENT_RETRIEVAL = "content_retrieval"
    CITATION_GENERATION = "citation_generation"
    ACTION_CARD_CREATION = "action_card_creation"


# --- Request ---------------------------------------------------------------


class WorkflowRequest(BaseModel):
    """A triage request.

    Only ``user_message`` may change after the workflow starts, and only
    to replace it with a redacted copy.
    """

    customer_id: str = Field(description="Customer identifier")
    suspect_txn_id: Optional[str] = Field(
        default=None,
        description="Suspect transaction identifier (optional for FAQ requests)",
    )
    alert_type: Optional[str] = Field(
        default=None,
        description="Alert type tag, e.g. card_lost or geo_velocity",
    )
    user_message: Optional[str] = Field(
        default=None,
        description="Free-text message from the customer or analyst",
    )


# --- Step payloads -----------------------------------------------------------


class ProfilePayload(BaseModel):
    """Customer profile returned by the profile provider."""

    kind: Literal["profile"] = "profile"
    customer_id: str
    name: str
    email_masked: str
    status: str = "active"
    risk_flags: List[str] = Field(default_factory=list)
    chargeback_history: bool = False
    chargeback_count: int = 0


class Geo(BaseModel):
    """Location of a card-present transaction."""

    lat: float
    lon: float
    country: str
    city: str


class TransactionRecord(BaseModel):
    """A single card transaction."""

    id: str
    customer_id: str
    merchant: str
    amount: float
    currency: str = "USD"
    mcc: str = "5999"
    status: str = "captured"
    timestamp: datetime
    device_id: Optional[str] = None
    geo: Optional[Geo] = None


class TransactionsPayload(BaseModel):
    """Recent transaction history with pattern flags."""

    kind: Literal["transactions"] = "transactions"
    customer_id: str
    window_days: int
    transactions: List[TransactionRecord] = Field(default_factory=list)
    total_count: int = 0
    duplicate_transaction: bool = False
    duplicate_merchant: Optional[str] = None
    geo_velocity_violation: bool = False
    cities_visited: int = 0
    device_change: bool = False
    device_count: int = 0


class RiskPayload(BaseModel):
    """Risk signals for the suspect transaction."""

    kind: Literal["risk"] = "risk"
    risk_score: Optional[str] = None
    reasons: List[str] = Field(default_factory=list)
    confidence: Optional[float] = None
    fallback_used: bool = False


class KbSnippet(BaseModel):
    """A ranked knowledge-base extract."""

    doc_id: str
    title: str
    anchor: str
    extract: str
    relevance: float


class KnowledgeBasePayload(BaseModel):
    """Knowledge-base search results."""

    kind: Literal["kb"] = "kb"
    query: Optional[str] = None
    results: List[Union[KbSnippet, str]] = Field(default_factory=list)
    total_matches: int = 0


class Decision(BaseModel):
    """Risk decision reduced from the trace."""

    kind: Literal["decision"] = "decision"
    risk_score: Optional[str] = None
    reasons: List[str] = Field(default_factory=list)
    fallback_used: bool = False
    risk_downgraded: bool = False
    propose_freeze: bool = False
    escalate_to_lead: bool = False
    open_case: bool = False


class Action(BaseModel):
    """Recommended remediation action."""

    kind: Literal["action"] = "action"
    action: str
    requires_otp: bool = False
    reason_code: Optional[str] = None
    message: Optional[str] = None
    final_status: Optional[str] = None
    escalate_to_lead: bool = False
    open_case: bool = False
    no_dispute: bool = False
    action_card: bool = False


class MerchantCandidate(BaseModel):
    """A merchant from the customer's history that may match a descriptor."""

    merchant_name: str
    transaction_count: int
    last_transaction: Optional[datetime] = None
    total_amount: float = 0.0
    similarity_score: float = 0.0


class MerchantAnalysisPayload(BaseModel):
    """Result of analysing a merchant descriptor for ambiguity."""

    kind: Literal["merchant_analysis"] = "merchant_analysis"
    original_merchant: str
    is_ambiguous: bool = False
    disambiguation_required: bool = False
    candidates: List[MerchantCandidate] = Field(default_factory=list)
    disambiguation_prompt: Optional[str] = None
    canonical_merchant: Optional[str] = None


class DisambiguationPromptPayload(BaseModel):
    """Prompt asking the customer to pick the merchant they meant."""

    kind: Literal["disambiguation_prompt"] = "disambiguation_prompt"
    prompt: Optional[str] = None
    candidates: List[MerchantCandidate] = Field(default_factory=list)
    original_merchant: str
    requires_user_input: bool = True


class MerchantSelectionPayload(BaseModel):
    """Confirmation of a merchant selection."""

    kind: Literal["merchant_selection"] = "merchant_selection"
    original_merchant: str
    selected_merchant: Optional[str] = None
    selection_valid: bool = False
    error: Optional[str] = None


class ContentPayload(BaseModel):
    """Content retrieved for an FAQ request."""

    kind: Literal["content"] = "content"
    query: Optional[str] = None
    kb_lookup: bool = True
    travel_notice: bool = False


class CitationPayload(BaseModel):
    """Cited procedure steps for an FAQ answer."""

    kind: Literal["citation"] = "citation"
    cited_steps: bool = True
    citation_provided: bool = True
    steps: List[str] = Field(default_factory=list)


class FallbackPayload(BaseModel):
    """Generic degraded result for steps without a specific fallback."""

    kind: Literal["fallback"] = "fallback"
    message: str = "Service temporarily unavailable"


StepPayload = Annotated[
    Union[
        ProfilePayload,
        TransactionsPayload,
        RiskPayload,
        KnowledgeBasePayload,
        Decision,
        Action,
        MerchantAnalysisPayload,
        DisambiguationPromptPayload,
        MerchantSelectionPayload,
        ContentPayload,
        CitationPayload,
        FallbackPayload,
    ],
    Field(discriminator="kind"),
]


class StepResult(BaseModel):
    """Exactly one of these is produced for every step invocation."""

    status: StepStatus
    duration_ms: int
    payload: StepPayload
    error: Optional[str] = None
    fallback_used: bool = False


# --- Response ----------------------------------------------------------------


class TriageResponse(BaseModel):
    """Final result of a triage run."""

    request_id: str
    customer_id: str
    suspect_txn_id: Optional[str] = None
    workflow: Optional[str] = None
    risk_score: Optional[str] = None
    recommended_action: Optional[str] = None
    reasons: List[str] = Field(default_factory=list)
    requires_otp: bool = False
    fallback_used: bool = False
    pii_detected: bool = False
    trace: dict[str, StepResult] = Field(default_factory=dict)
    trace_steps: List[str] = Field(default_factory=list)
    completed_at: Optional[datetime] = None

    def step(self, key: str) -> Optional[StepResult]:
        """Look up a trace entry by its step key."""
        return self.trace.get(key)


class TriageEvent(BaseModel):
    """Progress event emitted while a triage run streams."""

    event: Literal["plan_built", "tool_update", "fallback_triggered", "decision_finalized"]
    data: dict[str, Any] = Field(default_factory=dict)
    # Only set on decision_finalized
    response: Optional[TriageResponse] = Field(default=None, exclude=True)

    def to_sse(self) -> str:
        """Render as a server-sent event frame."""
        payload = json.dumps(self.model_dump(mode="json")["data"])
        return f"event: {self.event}\ndata: {payload}\n\n"
