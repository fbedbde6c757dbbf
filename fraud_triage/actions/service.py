"""
Remediation action execution.

Every action is checked by the compliance validator before it runs.
Card freezes additionally go through OTP verification when compliance
requires it, and are de-duplicated while in flight.
"""

import asyncio
import enum
import logging
import secrets
import uuid
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from pydantic import BaseModel, Field

from fraud_triage.compliance.cache import TTLCache
from fraud_triage.compliance.validator import ComplianceValidator
from fraud_triage.config import settings
from fraud_triage.guardrails.enforcement import mask_customer_id
from fraud_triage.metrics.service import MetricsService

logger = logging.getLogger(__name__)


class ActionStatus(str, enum.Enum):
    IN_PROGRESS = "IN_PROGRESS"
    BLOCKED = "BLOCKED"
    PENDING_OTP = "PENDING_OTP"
    INVALID_OTP = "INVALID_OTP"
    PENDING_CONFIRMATION = "PENDING_CONFIRMATION"
    FROZEN = "FROZEN"
    FAILED = "FAILED"
    TIMEOUT = "TIMEOUT"
    OPEN = "OPEN"
    SENT = "SENT"


class ActionError(Exception):
    """Raised when an action fails for reasons other than policy or timeout."""

    def __init__(self, message: str, action: str, request_id: Optional[str] = None):
        self.message = message
        self.action = action
        self.request_id = request_id
        super().__init__(self.message)


class ActionResult(BaseModel):
    """Outcome of a remediation action request."""

    status: ActionStatus
    request_id: Optional[str] = None
    violations: list[str] = Field(default_factory=list)
    message: Optional[str] = None
    card_id: Optional[str] = None
    otp_sent: bool = False
    case_id: Optional[str] = None
    txn_id: Optional[str] = None
    reason_code: Optional[str] = None
    contact_id: Optional[str] = None
    customer_id: Optional[str] = None
    timestamp: Optional[datetime] = None


async def _freeze(card_id: str) -> bool:
    logger.info(f"Card freeze executed for card {mask_customer_id(card_id)}")
    return True


class ActionService:
    """
    Executes freeze, dispute and contact actions behind compliance checks.

    OTPs are six digits, live for ``otp_ttl_seconds`` and are single use.
    """

    def __init__(
        self,
        compliance: ComplianceValidator,
        metrics: Optional[MetricsService] = None,
        otp_cache: Optional[TTLCache[str]] = None,
        freeze_card_fn: Callable[[str], Awaitable[bool]] = _freeze,
        compliance_timeout_ms: Optional[int] = None,
        action_timeout_ms: Optional[int] = None,
    ):
        self.compliance = compliance
        self.metrics = metrics if metrics is not None else MetricsService()
        self.otp_cache = (
            otp_cache if otp_cache is not None else TTLCache(ttl_seconds=settings.otp_ttl_seconds)
        )
        self.freeze_card_fn = freeze_card_fn
        self.compliance_timeout_ms = compliance_timeout_ms or settings.compliance_timeout_ms
        self.action_timeout_ms = action_timeout_ms or settings.action_timeout_ms
        self._in_progress: set[str] = set()

    async def freeze_card(
        self,
        card_id: str,
        otp: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> ActionResult:
        """
        Freeze a card.

        Args:
            card_id: Card to freeze
            otp: One-time passcode, when one was previously requested
            idempotency_key: Client request id; generated if absent

        Returns:
            ActionResult with status IN_PROGRESS, BLOCKED, PENDING_OTP,
            INVALID_OTP, FROZEN, FAILED or TIMEOUT
        """
        request_id = idempotency_key or str(uuid.uuid4())
        freeze_key = f"{card_id}-{request_id}"

        if freeze_key in self._in_progress:
            return ActionResult(status=ActionStatus.IN_PROGRESS, request_id=request_id)
        self._in_progress.add(freeze_key)

        try:
            try:
                validation = await asyncio.wait_for(
                    self.compliance.validate("freeze_card", card_id, {"cardId": card_id}),
                    timeout=self.compliance_timeout_ms / 1000,
                )
            except asyncio.TimeoutError:
                logger.error(f"Timeout checking compliance for card {mask_customer_id(card_id)}")
                return ActionResult(status=ActionStatus.TIMEOUT, request_id=request_id)

            if not validation.is_compliant:
                self._record_blocked(validation.violations)
                return ActionResult(
                    status=ActionStatus.BLOCKED,
                    request_id=request_id,
                    violations=validation.violations,
                )

            if validation.requirements.get("otp_required"):
                if otp is None:
                    self.issue_otp(card_id)
                    return ActionResult(
                        status=ActionStatus.PENDING_OTP,
                        request_id=request_id,
                        otp_sent=True,
                    )
                if not self.verify_otp(card_id, otp):
                    return ActionResult(status=ActionStatus.INVALID_OTP, request_id=request_id)

            try:
                success = await asyncio.wait_for(
                    self.freeze_card_fn(card_id),
                    timeout=self.action_timeout_ms / 1000,
                )
            except asyncio.TimeoutError:
                logger.error(f"Timeout freezing card {mask_customer_id(card_id)}")
                return ActionResult(status=ActionStatus.TIMEOUT, request_id=request_id)
            except Exception as e:
                logger.error(f"Error freezing card {mask_customer_id(card_id)}: {e}")
                raise ActionError("Failed to freeze card", "freeze_card", request_id) from e

            return ActionResult(
                status=ActionStatus.FROZEN if success else ActionStatus.FAILED,
                request_id=request_id,
                card_id=card_id,
                timestamp=datetime.now(timezone.utc),
            )
        finally:
            self._in_progress.discard(freeze_key)

    async def open_dispute(
        self,
        txn_id: Optional[str],
        reason_code: Optional[str],
        confirm: bool = False,
        idempotency_key: Optional[str] = None,
    ) -> ActionResult:
        """Open a dispute once compliance passes and the caller confirms."""
        request_id = idempotency_key or str(uuid.uuid4())
        context = {"transactionId": txn_id, "reasonCode": reason_code}

        validation = await self.compliance.validate("open_dispute", txn_id or "", context)
        if not validation.is_compliant:
            self._record_blocked(validation.violations)
            return ActionResult(
                status=ActionStatus.BLOCKED,
                request_id=request_id,
                violations=validation.violations,
                message="Policy violation",
            )

        if not confirm:
            return ActionResult(
                status=ActionStatus.PENDING_CONFIRMATION,
                request_id=request_id,
                message="Confirmation required to open dispute",
            )

        case_id = _reference("CASE")
        logger.info(f"Dispute opened: case={case_id}, txn={txn_id}, reason_code={reason_code}")

        return ActionResult(
            status=ActionStatus.OPEN,
            request_id=request_id,
            case_id=case_id,
            txn_id=txn_id,
            reason_code=reason_code,
            timestamp=datetime.now(timezone.utc),
        )

    async def contact_customer(self, customer_id: str, message: Optional[str] = None) -> ActionResult:
        """Send a message to a customer unless contact policy blocks it."""
        validation = await self.compliance.validate(
            "contact_customer", customer_id, {"message": message}
        )
        if not validation.is_compliant:
            self._record_blocked(validation.violations)
            return ActionResult(
                status=ActionStatus.BLOCKED,
                violations=validation.violations,
                message="Policy violation",
            )

        contact_id = _reference("CONTACT")
        logger.info(f"Customer contacted: contact={contact_id}, customer={mask_customer_id(customer_id)}")

        return ActionResult(
            status=ActionStatus.SENT,
            contact_id=contact_id,
            customer_id=customer_id,
            timestamp=datetime.now(timezone.utc),
        )

    def issue_otp(self, card_id: str) -> str:
        otp = f"{secrets.randbelow(1_000_000):06d}"
        self.otp_cache.put(card_id, otp)
        return otp

    def verify_otp(self, card_id: str, otp: str) -> bool:
        """Check an OTP; a correct one is consumed."""
        expected = self.otp_cache.get(card_id)
        if expected is not None and secrets.compare_digest(expected, otp):
            self.otp_cache.invalidate(card_id)
            return True
        return False

    def _record_blocked(self, violations: list[str]) -> None:
        for violation in violations:
            try:
                self.metrics.record_action_blocked(violation)
            except Exception as e:
                logger.error(f"Failed to record blocked action: {e}")


def _reference(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8].upper()}"
