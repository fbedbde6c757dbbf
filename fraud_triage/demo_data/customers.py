"""
Synthetic customer data generator.
Creates fake customers with deterministic ids and realistic attributes.
"""

from faker import Faker

from fraud_triage.tools.profile import CustomerRecord

fake = Faker()
Faker.seed(42)  # Consistent seed for reproducibility

# Customers with hand-assigned risk flags for demo scenarios
RISK_FLAGS = {
    "cust_003": ["chargeback_history"],
    "cust_025": ["high_risk"],
}


def customer_id(index: int) -> str:
    return f"cust_{index:03d}"


def mask_email(email: str) -> str:
    local, _, domain = email.partition("@")
    return f"{local[:1]}***@{domain}"


def generate_customers(count: int = 25) -> list[CustomerRecord]:
    """
    Generate synthetic customer records.

    Args:
        count: Number of customers to generate

    Returns:
        List of CustomerRecord instances with ids cust_001, cust_002, ...
    """
    fake.seed_instance(42)
    customers = []

    for i in range(1, count + 1):
        cid = customer_id(i)
        email = fake.unique.email()

        customers.append(
            CustomerRecord(
                id=cid,
                name=fake.name(),
                email=email,
                email_masked=mask_email(email),
                risk_flags=list(RISK_FLAGS.get(cid, [])),
            )
        )

    fake.unique.clear()
    return customers
