"""
FastAPI router with triage and action endpoints.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse

from fraud_triage.actions.service import ActionError, ActionResult
from fraud_triage.api.schemas import (
    BreakerStatus,
    ContactCustomerRequest,
    FreezeCardRequest,
    HealthResponse,
    MetricsResponse,
    OpenDisputeRequest,
)
from fraud_triage.config import settings
from fraud_triage.guardrails.enforcement import GuardrailViolation, validate_triage_request
from fraud_triage.schemas import TriageResponse, WorkflowRequest
from fraud_triage.services import TriageServices

logger = logging.getLogger(__name__)

router = APIRouter()


def get_services(request: Request) -> TriageServices:
    return request.app.state.services


@router.post("/triage", response_model=TriageResponse)
async def run_triage(
    request: WorkflowRequest,
    services: TriageServices = Depends(get_services),
):
    """
    Run a triage workflow for a request.

    This endpoint:
    1. Validates the input
    2. Selects and executes the matching workflow
    3. Returns the decision, action and execution trace

    Step failures degrade to fallbacks inside the trace; they never
    fail the request.
    """
    try:
        validate_triage_request(request)
    except GuardrailViolation as e:
        logger.warning(f"Rejected triage request: {e.message}")
        raise HTTPException(status_code=400, detail=e.message)

    return await services.orchestrator.run_triage(request)


@router.post("/triage/stream")
async def stream_triage(
    request: WorkflowRequest,
    services: TriageServices = Depends(get_services),
):
    """
    Run a triage workflow, streaming progress as server-sent events.

    Events: plan_built, tool_update (one per step), fallback_triggered
    (only when a step degraded) and decision_finalized.
    """
    try:
        validate_triage_request(request)
    except GuardrailViolation as e:
        logger.warning(f"Rejected streaming triage request: {e.message}")
        raise HTTPException(status_code=400, detail=e.message)

    async def events():
        async for event in services.orchestrator.stream_triage(request):
            yield event.to_sse()

    return StreamingResponse(events(), media_type="text/event-stream")


@router.post("/actions/freeze-card", response_model=ActionResult)
async def freeze_card(
    request: FreezeCardRequest,
    services: TriageServices = Depends(get_services),
):
    """
    Freeze a card.

    The first call for an OTP-gated card returns PENDING_OTP; repeat the
    call with the passcode to complete the freeze.
    """
    try:
        return await services.actions.freeze_card(
            request.card_id,
            otp=request.otp,
            idempotency_key=request.idempotency_key,
        )
    except ActionError as e:
        logger.error(f"Error freezing card: {e}")
        raise HTTPException(status_code=500, detail=e.message)


@router.post("/actions/open-dispute", response_model=ActionResult)
async def open_dispute(
    request: OpenDisputeRequest,
    services: TriageServices = Depends(get_services),
):
    return await services.actions.open_dispute(
        request.txn_id,
        request.reason_code,
        confirm=request.confirm,
        idempotency_key=request.idempotency_key,
    )


@router.post("/actions/contact-customer", response_model=ActionResult)
async def contact_customer(
    request: ContactCustomerRequest,
    services: TriageServices = Depends(get_services),
):
    return await services.actions.contact_customer(request.customer_id, request.message)


@router.get("/health", response_model=HealthResponse)
async def health_check(services: TriageServices = Depends(get_services)):
    """
    Health check endpoint.

    Reports "degraded" while any step's circuit breaker is open.
    """
    breakers = {
        name: BreakerStatus(**state) for name, state in services.breakers.snapshot().items()
    }
    open_breakers = sorted(name for name, state in breakers.items() if state.open)

    return HealthResponse(
        status="degraded" if open_breakers else "healthy",
        app_name=settings.app_name,
        version=settings.app_version,
        breakers=breakers,
        open_breakers=open_breakers,
    )


@router.get("/metrics", response_model=MetricsResponse)
async def get_metrics(services: TriageServices = Depends(get_services)):
    return MetricsResponse(**services.metrics.snapshot())
