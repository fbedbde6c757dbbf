"""
Synthetic demo data: customers, transactions and knowledge-base articles.

All data is generated deterministically and is not real customer data.
"""

from fraud_triage.demo_data.seed import DemoProviders, seed_providers

__all__ = ["DemoProviders", "seed_providers"]
