"""
Transaction history provider.
Retrieves recent transactions and flags suspicious patterns in them.
"""

import logging
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Protocol

from fraud_triage.guardrails.enforcement import mask_customer_id
from fraud_triage.schemas import TransactionRecord, TransactionsPayload

logger = logging.getLogger(__name__)

MAX_TRANSACTIONS = 100
GEO_VELOCITY_CITY_LIMIT = 3
DEVICE_CHANGE_LIMIT = 2


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TransactionProvider(Protocol):
    async def get_recent_transactions(
        self, customer_id: str, window_days: int
    ) -> TransactionsPayload: ...


class InMemoryTransactionProvider:
    """
    Transaction provider backed by an in-memory list.

    Returns at most 100 transactions inside the window, newest first,
    with pattern flags for duplicates, geo-velocity and device changes.
    """

    def __init__(
        self,
        transactions: Optional[list[TransactionRecord]] = None,
        now: Callable[[], datetime] = utc_now,
    ):
        self.transactions = list(transactions or [])
        self._now = now

    def for_customer(self, customer_id: str) -> list[TransactionRecord]:
        return [txn for txn in self.transactions if txn.customer_id == customer_id]

    async def get_recent_transactions(
        self, customer_id: str, window_days: int
    ) -> TransactionsPayload:
        """
        Retrieve recent transactions for a customer.

        Args:
            customer_id: Customer to look up
            window_days: How many days to look back

        Returns:
            TransactionsPayload with pattern flags set
        """
        from_date = self._now() - timedelta(days=window_days)

        recent = sorted(
            (
                txn
                for txn in self.for_customer(customer_id)
                if txn.timestamp >= from_date
            ),
            key=lambda txn: txn.timestamp,
            reverse=True,
        )
        total_count = len(recent)
        recent = recent[:MAX_TRANSACTIONS]

        payload = TransactionsPayload(
            customer_id=customer_id,
            window_days=window_days,
            transactions=recent,
            total_count=total_count,
        )
        analyze_transaction_patterns(payload)

        logger.debug(
            f"Retrieved {len(recent)} transactions for customer "
            f"{mask_customer_id(customer_id)}"
        )

        return payload


def analyze_transaction_patterns(payload: TransactionsPayload) -> None:
    """
    Flag risk patterns in a transaction list, in place.

    - Duplicate: one merchant has both a pending and a captured charge
    - Geo-velocity: more than 3 distinct cities
    - Device change: more than 2 distinct devices
    """
    if not payload.transactions:
        return

    statuses_by_merchant: dict[str, set[str]] = defaultdict(set)
    for txn in payload.transactions:
        statuses_by_merchant[txn.merchant].add(txn.status)

    for merchant, statuses in statuses_by_merchant.items():
        if {"pending", "captured"} <= statuses:
            payload.duplicate_transaction = True
            payload.duplicate_merchant = merchant
            break

    cities = {txn.geo.city for txn in payload.transactions if txn.geo and txn.geo.city}
    if len(cities) > GEO_VELOCITY_CITY_LIMIT:
        payload.geo_velocity_violation = True
        payload.cities_visited = len(cities)

    devices = {txn.device_id for txn in payload.transactions if txn.device_id}
    if len(devices) > DEVICE_CHANGE_LIMIT:
        payload.device_change = True
        payload.device_count = len(devices)
