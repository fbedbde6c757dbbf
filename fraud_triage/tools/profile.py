"""
Customer profile provider.
Looks up an active customer and flags chargeback history.
"""

import logging
from typing import Optional, Protocol

from pydantic import BaseModel, Field

from fraud_triage.guardrails.enforcement import mask_customer_id
from fraud_triage.schemas import ProfilePayload
from fraud_triage.tools.errors import CustomerNotFoundError

logger = logging.getLogger(__name__)

# Reported for any customer carrying the chargeback_history risk flag
CHARGEBACK_COUNT = 2


class CustomerRecord(BaseModel):
    """A stored customer."""

    id: str
    name: str
    email: str
    email_masked: str
    status: str = "active"
    risk_flags: list[str] = Field(default_factory=list)
    has_active_cards: bool = True
    card_frozen: bool = False
    identity_verified: bool = True
    has_contact_info: bool = True


class ProfileProvider(Protocol):
    async def get_profile(self, customer_id: str) -> ProfilePayload: ...


class InMemoryProfileProvider:
    """
    Profile provider backed by a dictionary of customer records.

    Only customers with status ``active`` are returned.
    """

    def __init__(self, customers: Optional[dict[str, CustomerRecord]] = None):
        self.customers = customers if customers is not None else {}

    def find_active(self, customer_id: str) -> Optional[CustomerRecord]:
        customer = self.customers.get(customer_id)
        if customer is None or customer.status != "active":
            return None
        return customer

    async def get_profile(self, customer_id: str) -> ProfilePayload:
        """
        Retrieve a customer profile.

        Raises:
            CustomerNotFoundError: If no active customer has this id
        """
        customer = self.find_active(customer_id)
        if customer is None:
            raise CustomerNotFoundError(customer_id)

        chargeback_history = "chargeback_history" in customer.risk_flags

        logger.debug(f"Retrieved profile for customer {mask_customer_id(customer_id)}")

        return ProfilePayload(
            customer_id=customer.id,
            name=customer.name,
            email_masked=customer.email_masked,
            status=customer.status,
            risk_flags=list(customer.risk_flags),
            chargeback_history=chargeback_history,
            chargeback_count=CHARGEBACK_COUNT if chargeback_history else 0,
        )
