"""
Tests for remediation actions behind compliance checks.
"""

import asyncio

import pytest

from fraud_triage.actions.service import ActionError, ActionService, ActionStatus
from fraud_triage.compliance.cache import TTLCache
from fraud_triage.compliance.validator import ComplianceValidator
from fraud_triage.metrics.service import MetricsService


@pytest.fixture
def action_service(clock, metrics: MetricsService) -> ActionService:
    return ActionService(
        compliance=ComplianceValidator(clock=clock),
        metrics=metrics,
        otp_cache=TTLCache(ttl_seconds=300, clock=clock),
    )


def test_injected_empty_otp_cache_is_kept(clock, metrics: MetricsService):
    otp_cache = TTLCache(ttl_seconds=300, clock=clock)

    service = ActionService(
        compliance=ComplianceValidator(clock=clock),
        metrics=metrics,
        otp_cache=otp_cache,
    )

    assert len(otp_cache) == 0
    assert service.otp_cache is otp_cache
    assert service.metrics is metrics


@pytest.mark.asyncio
async def test_freeze_card_without_otp(action_service: ActionService):
    result = await action_service.freeze_card("card_001", idempotency_key="req-1")

    assert result.status == ActionStatus.FROZEN
    assert result.request_id == "req-1"
    assert result.card_id == "card_001"


@pytest.mark.asyncio
async def test_freeze_card_otp_flow(action_service: ActionService):
    pending = await action_service.freeze_card("card_high_risk")
    assert pending.status == ActionStatus.PENDING_OTP
    assert pending.otp_sent is True

    otp = action_service.otp_cache.get("card_high_risk")
    assert otp is not None and len(otp) == 6

    wrong = "000000" if otp != "000000" else "111111"
    invalid = await action_service.freeze_card("card_high_risk", otp=wrong)
    assert invalid.status == ActionStatus.INVALID_OTP

    frozen = await action_service.freeze_card("card_high_risk", otp=otp)
    assert frozen.status == ActionStatus.FROZEN

    # OTPs are single use
    reused = await action_service.freeze_card("card_high_risk", otp=otp)
    assert reused.status == ActionStatus.INVALID_OTP


@pytest.mark.asyncio
async def test_otp_expires(action_service: ActionService, clock):
    await action_service.freeze_card("card_high_risk")
    otp = action_service.otp_cache.get("card_high_risk")

    clock.advance(301)
    result = await action_service.freeze_card("card_high_risk", otp=otp)

    assert result.status == ActionStatus.INVALID_OTP


@pytest.mark.asyncio
async def test_freeze_blocked_by_policy(action_service: ActionService, metrics: MetricsService):
    result = await action_service.freeze_card("card_frozen")

    assert result.status == ActionStatus.BLOCKED
    assert result.violations == ["already_frozen"]
    assert metrics.snapshot()["action_blocked_total"] == {"already_frozen": 1}


@pytest.mark.asyncio
async def test_duplicate_in_flight_freeze(clock):
    release = asyncio.Event()

    async def slow_freeze(card_id: str) -> bool:
        await release.wait()
        return True

    service = ActionService(
        compliance=ComplianceValidator(clock=clock),
        freeze_card_fn=slow_freeze,
        action_timeout_ms=5000,
    )

    first = asyncio.create_task(service.freeze_card("card_001", idempotency_key="dup"))
    await asyncio.sleep(0.01)
    second = await service.freeze_card("card_001", idempotency_key="dup")
    release.set()

    assert second.status == ActionStatus.IN_PROGRESS
    assert (await first).status == ActionStatus.FROZEN


@pytest.mark.asyncio
async def test_freeze_timeout(clock):
    async def hanging_freeze(card_id: str) -> bool:
        await asyncio.sleep(5)
        return True

    service = ActionService(
        compliance=ComplianceValidator(clock=clock),
        freeze_card_fn=hanging_freeze,
        action_timeout_ms=20,
    )

    result = await service.freeze_card("card_001")

    assert result.status == ActionStatus.TIMEOUT


@pytest.mark.asyncio
async def test_freeze_failure_raises_action_error(clock):
    async def broken_freeze(card_id: str) -> bool:
        raise RuntimeError("card processor down")

    service = ActionService(
        compliance=ComplianceValidator(clock=clock),
        freeze_card_fn=broken_freeze,
    )

    with pytest.raises(ActionError) as exc_info:
        await service.freeze_card("card_001", idempotency_key="req-9")

    assert exc_info.value.action == "freeze_card"
    assert exc_info.value.request_id == "req-9"


@pytest.mark.asyncio
async def test_open_dispute_flow(action_service: ActionService):
    pending = await action_service.open_dispute("txn_123", "10.4")
    assert pending.status == ActionStatus.PENDING_CONFIRMATION

    opened = await action_service.open_dispute("txn_123", "10.4", confirm=True)
    assert opened.status == ActionStatus.OPEN
    assert opened.case_id.startswith("CASE-")
    assert len(opened.case_id) == len("CASE-") + 8
    assert opened.reason_code == "10.4"


@pytest.mark.asyncio
async def test_open_dispute_blocked(action_service: ActionService):
    result = await action_service.open_dispute("txn_disputed", "10.1", confirm=True)

    assert result.status == ActionStatus.BLOCKED
    assert result.violations == ["dispute_already_exists", "invalid_reason_code"]


@pytest.mark.asyncio
async def test_contact_customer(action_service: ActionService):
    sent = await action_service.contact_customer("cust_001", "We noticed unusual activity")
    blocked = await action_service.contact_customer("cust_no_contact")

    assert sent.status == ActionStatus.SENT
    assert sent.contact_id.startswith("CONTACT-")
    assert blocked.status == ActionStatus.BLOCKED
    assert blocked.violations == ["no_contact_info"]
