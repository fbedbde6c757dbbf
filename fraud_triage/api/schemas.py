"""
Pydantic schemas for API request/response models.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class FreezeCardRequest(BaseModel):
    """Request to freeze a card."""

    card_id: str = Field(description="Card identifier", examples=["card_001"])
    otp: Optional[str] = Field(
        default=None,
        description="One-time passcode from a previous PENDING_OTP response",
    )
    idempotency_key: Optional[str] = Field(
        default=None,
        description="Client request id used to de-duplicate in-flight freezes",
    )


class OpenDisputeRequest(BaseModel):
    """Request to open a dispute on a transaction."""

    txn_id: str = Field(description="Transaction to dispute")
    reason_code: str = Field(description="Dispute reason code", examples=["10.4"])
    confirm: bool = Field(
        default=False,
        description="Customer confirmed the dispute; otherwise confirmation is requested",
    )
    idempotency_key: Optional[str] = None


class ContactCustomerRequest(BaseModel):
    """Request to contact a customer."""

    customer_id: str = Field(description="Customer identifier")
    message: Optional[str] = Field(default=None, max_length=2000)


class BreakerStatus(BaseModel):
    failures: int
    open: bool


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    app_name: str
    version: str
    breakers: Dict[str, BreakerStatus] = Field(default_factory=dict)
    open_breakers: List[str] = Field(default_factory=list)


class MetricsResponse(BaseModel):
    """In-memory metrics snapshot."""

    tool_call_total: List[Dict[str, Any]]
    agent_fallback_total: Dict[str, int]
    action_blocked_total: Dict[str, int]
    agent_latency_ms: Dict[str, float]
