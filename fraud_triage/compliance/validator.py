"""
Compliance validation for remediation actions.

Each action has a rule set evaluated against a ComplianceDirectory.
Results are cached per (action, subject, context) for a short time.
"""

import asyncio
import hashlib
import json
import logging
from typing import Any, Callable, Optional, Protocol

from pydantic import BaseModel, Field, computed_field

from fraud_triage.compliance.cache import TTLCache
from fraud_triage.config import settings
from fraud_triage.guardrails.enforcement import mask_customer_id

logger = logging.getLogger(__name__)

VALID_REASON_CODES = {"10.4", "10.5", "10.6", "10.7", "10.8"}
OTP_TIMEOUT_SECONDS = 300


class ValidationResult(BaseModel):
    """Outcome of a compliance check. Compliant iff there are no violations."""

    action: str
    subject_id: str
    violations: list[str] = Field(default_factory=list)
    requirements: dict[str, Any] = Field(default_factory=dict)
    cached: bool = False

    @computed_field
    @property
    def is_compliant(self) -> bool:
        return not self.violations

    def add_violation(self, violation: str) -> None:
        if violation not in self.violations:
            self.violations.append(violation)


class ComplianceDirectory(Protocol):
    """Facts about customers, cards and transactions consulted by the rules."""

    async def has_active_cards(self, subject_id: str) -> bool: ...

    async def is_high_risk(self, subject_id: str) -> bool: ...

    async def is_frozen(self, subject_id: str) -> bool: ...

    async def has_identity_verification(self, subject_id: str) -> bool: ...

    async def transaction_exists(self, txn_id: Optional[str]) -> bool: ...

    async def is_dispute_expired(self, txn_id: str) -> bool: ...

    async def dispute_exists(self, txn_id: str) -> bool: ...

    async def has_contact_info(self, subject_id: str) -> bool: ...

    async def contact_limit_exceeded(self, subject_id: str) -> bool: ...


class DemoComplianceDirectory:
    """
    Directory answering from markers embedded in identifiers.

    For example a subject id containing ``frozen`` is treated as already
    frozen and one containing ``high_risk`` requires an OTP.
    """

    HIGH_RISK_SUBJECTS = ("high_risk", "cust_025")

    async def has_active_cards(self, subject_id: str) -> bool:
        return "no_cards" not in subject_id

    async def is_high_risk(self, subject_id: str) -> bool:
        return any(marker in subject_id for marker in self.HIGH_RISK_SUBJECTS)

    async def is_frozen(self, subject_id: str) -> bool:
        return "frozen" in subject_id

    async def has_identity_verification(self, subject_id: str) -> bool:
        return "no_identity" not in subject_id

    async def transaction_exists(self, txn_id: Optional[str]) -> bool:
        return bool(txn_id)

    async def is_dispute_expired(self, txn_id: str) -> bool:
        return "expired" in txn_id

    async def dispute_exists(self, txn_id: str) -> bool:
        return "disputed" in txn_id

    async def has_contact_info(self, subject_id: str) -> bool:
        return "no_contact" not in subject_id

    async def contact_limit_exceeded(self, subject_id: str) -> bool:
        return "contact_limit" in subject_id


class ComplianceValidator:
    """
    Validates actions against policy rule sets.

    Rule sets:
    - freeze_card / unfreeze_card: sequential checks, stop at first violation
    - open_dispute / contact_customer: independent probes run concurrently,
      every violation is reported

    A probe that raises yields a ``validation_error`` result, which is
    never cached.
    """

    def __init__(
        self,
        directory: Optional[ComplianceDirectory] = None,
        cache: Optional[TTLCache[ValidationResult]] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.directory = directory if directory is not None else DemoComplianceDirectory()
        if cache is None:
            cache_kwargs = {"clock": clock} if clock else {}
            cache = TTLCache(
                ttl_seconds=settings.compliance_cache_ttl_seconds,
                max_entries=settings.compliance_cache_max_entries,
                **cache_kwargs,
            )
        self.cache = cache
        self._rules = {
            "freeze_card": self._validate_freeze_card,
            "unfreeze_card": self._validate_unfreeze_card,
            "open_dispute": self._validate_open_dispute,
            "contact_customer": self._validate_contact_customer,
        }

    async def validate(
        self,
        action: str,
        subject_id: str,
        context: Optional[dict[str, Any]] = None,
    ) -> ValidationResult:
        """
        Validate whether an action is compliant.

        Args:
            action: Action name, e.g. freeze_card
            subject_id: Customer, card or transaction the action targets
            context: Action parameters (transactionId, reasonCode, ...)

        Returns:
            ValidationResult; ``cached`` is True when served from cache
        """
        context = context or {}
        key = (action, subject_id, context_fingerprint(context))

        result, hit = await self.cache.get_or_compute(
            key,
            lambda: self._evaluate(action, subject_id, context),
            cacheable=lambda r: "validation_error" not in r.violations,
        )
        if hit:
            return result.model_copy(update={"cached": True}, deep=True)
        return result.model_copy(deep=True)

    async def _evaluate(
        self, action: str, subject_id: str, context: dict[str, Any]
    ) -> ValidationResult:
        result = ValidationResult(action=action, subject_id=subject_id)
        rule = self._rules.get(action.lower())

        if rule is None:
            result.add_violation("unknown_action")
            return result

        try:
            await rule(subject_id, context, result)
        except Exception as e:
            logger.error(
                f"Error validating action {action} for {mask_customer_id(subject_id)}: {e}"
            )
            return ValidationResult(
                action=action,
                subject_id=subject_id,
                violations=["validation_error"],
            )

        if not result.is_compliant:
            logger.warning(
                f"Action {action} blocked for {mask_customer_id(subject_id)}, "
                f"violations: {result.violations}"
            )
        return result

    async def _validate_freeze_card(
        self, subject_id: str, context: dict[str, Any], result: ValidationResult
    ) -> None:
        if not await self.directory.has_active_cards(subject_id):
            result.add_violation("no_active_cards")
            return

        if await self.directory.is_high_risk(subject_id):
            result.requirements["otp_required"] = True
            result.requirements["otp_timeout_seconds"] = OTP_TIMEOUT_SECONDS

        if await self.directory.is_frozen(subject_id):
            result.add_violation("already_frozen")

    async def _validate_unfreeze_card(
        self, subject_id: str, context: dict[str, Any], result: ValidationResult
    ) -> None:
        if not await self.directory.is_frozen(subject_id):
            result.add_violation("not_frozen")
            return

        if not await self.directory.has_identity_verification(subject_id):
            result.add_violation("identity_verification_required")
            result.requirements["identity_verification"] = True
            result.requirements["handoff_required"] = True
            return

        if await self.directory.is_high_risk(subject_id):
            result.requirements["otp_required"] = True

    async def _validate_open_dispute(
        self, subject_id: str, context: dict[str, Any], result: ValidationResult
    ) -> None:
        txn_id = context.get("transactionId")
        reason_code = context.get("reasonCode")

        if not txn_id:
            result.add_violation("transaction_not_found")
            return

        exists, expired, disputed = await asyncio.gather(
            self.directory.transaction_exists(txn_id),
            self.directory.is_dispute_expired(txn_id),
            self.directory.dispute_exists(txn_id),
        )

        if not exists:
            result.add_violation("transaction_not_found")
            return
        if expired:
            result.add_violation("dispute_time_expired")
        if disputed:
            result.add_violation("dispute_already_exists")
        if reason_code not in VALID_REASON_CODES:
            result.add_violation("invalid_reason_code")

    async def _validate_contact_customer(
        self, subject_id: str, context: dict[str, Any], result: ValidationResult
    ) -> None:
        has_contact, over_limit = await asyncio.gather(
            self.directory.has_contact_info(subject_id),
            self.directory.contact_limit_exceeded(subject_id),
        )

        if not has_contact:
            result.add_violation("no_contact_info")
        if over_limit:
            result.add_violation("contact_limit_exceeded")


def context_fingerprint(context: dict[str, Any]) -> str:
    """Stable hash of an action context for cache keys."""
    serialized = json.dumps(context, sort_keys=True, default=str)
    return hashlib.sha256(serialized.encode()).hexdigest()
