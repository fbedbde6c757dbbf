"""
Synthetic transaction data generator with injected fraud scenarios.

Routine transactions never trip pattern checks on their own: each customer
shops in a home city on a single device and every charge is captured.
Scenario transactions are then added for specific customers:
- cust_001: pending/captured duplicate and several "Gaming Store" variants
- cust_002: charges in five cities on three devices within a day
"""

import random
from datetime import datetime, timedelta, timezone
from typing import Optional

from faker import Faker

from fraud_triage.schemas import Geo, TransactionRecord
from fraud_triage.tools.profile import CustomerRecord

fake = Faker()
Faker.seed(42)  # Consistent seed for reproducibility


# Merchants by category with their MCC and typical amount range
MERCHANTS = {
    "groceries": ("5411", (15.0, 150.0), ["FreshMart", "GreenGrocer", "Whole Foods Co"]),
    "restaurants": ("5812", (20.0, 100.0), ["The Local Bistro", "Pizza Palace", "Sushi Express"]),
    "gas": ("5541", (30.0, 80.0), ["QuickFuel", "EcoGas", "MainStreet Fuel"]),
    "entertainment": ("7832", (10.0, 100.0), ["Cinema Plus", "StreamFlix", "Concert Hall"]),
    "online_services": ("5818", (5.0, 50.0), ["CloudStorage Co", "Music Streaming", "News Portal"]),
}

CITIES = [
    Geo(lat=40.7128, lon=-74.0060, country="US", city="New York"),
    Geo(lat=34.0522, lon=-118.2437, country="US", city="Los Angeles"),
    Geo(lat=41.8781, lon=-87.6298, country="US", city="Chicago"),
    Geo(lat=51.5074, lon=-0.1278, country="GB", city="London"),
    Geo(lat=35.6762, lon=139.6503, country="JP", city="Tokyo"),
    Geo(lat=48.8566, lon=2.3522, country="FR", city="Paris"),
]


def _txn(
    txn_id: str,
    customer_id: str,
    merchant: str,
    amount: float,
    timestamp: datetime,
    mcc: str = "5999",
    status: str = "captured",
    device_id: Optional[str] = None,
    geo: Optional[Geo] = None,
) -> TransactionRecord:
    return TransactionRecord(
        id=txn_id,
        customer_id=customer_id,
        merchant=merchant,
        amount=amount,
        mcc=mcc,
        status=status,
        timestamp=timestamp,
        device_id=device_id,
        geo=geo,
    )


def generate_transactions(
    customers: list[CustomerRecord],
    per_customer: int = 12,
    now: Optional[datetime] = None,
) -> list[TransactionRecord]:
    """
    Generate routine transactions plus scenario transactions.

    Args:
        customers: Customers to attach transactions to
        per_customer: Routine transactions per customer
        now: Reference time; transactions fall in the 90 days before it

    Returns:
        List of TransactionRecord instances sorted by timestamp
    """
    now = now or datetime.now(timezone.utc)
    rng = random.Random(42)
    transactions = []

    for index, customer in enumerate(customers):
        home = CITIES[index % 2]
        device_id = f"dev_{customer.id}"

        for n in range(per_customer):
            category = rng.choice(list(MERCHANTS))
            mcc, (low, high), names = MERCHANTS[category]
            # Routine history starts a week back so scenarios own the recent window
            timestamp = now - timedelta(
                days=rng.randint(8, 90), hours=rng.randint(0, 23), minutes=rng.randint(0, 59)
            )
            transactions.append(
                _txn(
                    f"txn_{customer.id}_{n:03d}",
                    customer.id,
                    rng.choice(names),
                    round(rng.uniform(low, high), 2),
                    timestamp,
                    mcc=mcc,
                    device_id=device_id,
                    geo=home,
                )
            )

    customer_ids = {c.id for c in customers}
    if "cust_001" in customer_ids:
        transactions.extend(_duplicate_and_merchant_scenario("cust_001", now))
    if "cust_002" in customer_ids:
        transactions.extend(_geo_velocity_scenario("cust_002", now))

    transactions.sort(key=lambda t: t.timestamp)
    return transactions


def _duplicate_and_merchant_scenario(cid: str, now: datetime) -> list[TransactionRecord]:
    device = f"dev_{cid}"
    geo = CITIES[0]
    return [
        _txn("txn_duplicate_001", cid, "QuickStop Market", 42.50, now - timedelta(days=2),
             mcc="5411", status="pending", device_id=device, geo=geo),
        _txn("txn_duplicate_002", cid, "QuickStop Market", 42.50, now - timedelta(days=2, hours=-1),
             mcc="5411", status="captured", device_id=device, geo=geo),
        _txn("txn_gaming_001", cid, "Gaming Store Inc", 59.99, now - timedelta(days=3),
             mcc="5816", device_id=device, geo=geo),
        _txn("txn_gaming_002", cid, "Gaming Store Inc", 19.99, now - timedelta(days=12),
             mcc="5816", device_id=device, geo=geo),
        _txn("txn_gaming_003", cid, "Gaming Store Inc", 9.99, now - timedelta(days=40),
             mcc="5816", device_id=device, geo=geo),
        _txn("txn_gaming_004", cid, "Gaming Store LLC", 24.99, now - timedelta(days=20),
             mcc="5816", device_id=device, geo=geo),
        _txn("txn_gaming_005", cid, "GamingStore.com", 4.99, now - timedelta(days=25),
             mcc="5816", device_id=device, geo=geo),
    ]


def _geo_velocity_scenario(cid: str, now: datetime) -> list[TransactionRecord]:
    devices = [f"dev_{cid}", f"dev_{cid}_b", f"dev_{cid}_c"]
    return [
        _txn(
            f"txn_geo_velocity_{i:03d}",
            cid,
            fake.company(),
            round(80.0 + 15 * i, 2),
            now - timedelta(hours=20 - 4 * i),
            mcc="5732",
            device_id=devices[i % len(devices)],
            geo=geo,
        )
        for i, geo in enumerate(CITIES[1:])
    ]
