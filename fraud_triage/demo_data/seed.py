"""
Master seeding orchestrator.
Generates all synthetic data and loads it into the in-memory providers.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from fraud_triage.config import settings
from fraud_triage.demo_data.customers import generate_customers
from fraud_triage.demo_data.knowledge_base import build_kb_documents
from fraud_triage.demo_data.transactions import generate_transactions
from fraud_triage.tools.knowledge_base import KeywordKnowledgeBase
from fraud_triage.tools.merchant import HistoryMerchantDisambiguator
from fraud_triage.tools.profile import InMemoryProfileProvider
from fraud_triage.tools.risk import RuleBasedRiskProvider
from fraud_triage.tools.transactions import InMemoryTransactionProvider

logger = logging.getLogger(__name__)


@dataclass
class DemoProviders:
    """Capability providers backed by synthetic data."""

    profiles: InMemoryProfileProvider
    transactions: InMemoryTransactionProvider
    risk: RuleBasedRiskProvider
    knowledge_base: KeywordKnowledgeBase
    merchants: HistoryMerchantDisambiguator


def seed_providers(now: Optional[datetime] = None) -> DemoProviders:
    """
    Build providers loaded with synthetic data.

    Args:
        now: Reference time for transaction timestamps and windows;
            the wall clock when omitted

    Returns:
        DemoProviders ready to be wired into a WorkflowContext
    """
    logger.info(f"Generating {settings.seed_customers_count} customers...")
    customers = generate_customers(count=settings.seed_customers_count)
    profiles = InMemoryProfileProvider({c.id: c for c in customers})

    transactions = generate_transactions(
        customers=customers,
        per_customer=settings.seed_transactions_per_customer,
        now=now,
    )
    if now is not None:
        transaction_provider = InMemoryTransactionProvider(transactions, now=lambda: now)
    else:
        transaction_provider = InMemoryTransactionProvider(transactions)
    logger.info(f"Created {len(transactions)} transactions")

    documents = build_kb_documents()
    logger.info(f"Created {len(documents)} knowledge base documents")

    return DemoProviders(
        profiles=profiles,
        transactions=transaction_provider,
        risk=RuleBasedRiskProvider(),
        knowledge_base=KeywordKnowledgeBase(documents, max_results=settings.kb_max_results),
        merchants=HistoryMerchantDisambiguator(transaction_provider),
    )
