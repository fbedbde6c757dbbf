"""
Merchant disambiguation provider.
Matches an ambiguous merchant descriptor against the customer's history.
"""

import functools
import logging
from typing import Optional, Protocol

from fraud_triage.guardrails.enforcement import mask_customer_id
from fraud_triage.schemas import (
    MerchantAnalysisPayload,
    MerchantCandidate,
    MerchantSelectionPayload,
)
from fraud_triage.tools.transactions import InMemoryTransactionProvider

logger = logging.getLogger(__name__)

AMBIGUITY_MARKERS = ("store", "shop", "market", "center", "inc", "llc", "corp", "ltd")
HISTORY_LIMIT = 100
MAX_CANDIDATES = 3
SCORE_TIE_MARGIN = 0.1


class MerchantDisambiguationProvider(Protocol):
    async def analyze(
        self, merchant_name: str, customer_id: str
    ) -> MerchantAnalysisPayload: ...

    async def select(
        self, original: str, chosen: str, customer_id: str
    ) -> MerchantSelectionPayload: ...


class HistoryMerchantDisambiguator:
    """
    Finds candidate merchants in the customer's last 100 transactions.

    Confirmed selections are remembered per customer so later lookups
    can resolve the descriptor directly.
    """

    def __init__(self, transactions: InMemoryTransactionProvider):
        self.transactions = transactions
        self.mappings: dict[tuple[str, str], str] = {}

    async def analyze(
        self, merchant_name: str, customer_id: str
    ) -> MerchantAnalysisPayload:
        if not is_merchant_ambiguous(merchant_name):
            return MerchantAnalysisPayload(
                original_merchant=merchant_name,
                canonical_merchant=merchant_name,
            )

        remembered = self.mappings.get((customer_id, merchant_name))
        if remembered is not None:
            logger.info(f"Resolved merchant from earlier selection: {merchant_name} -> {remembered}")
            return MerchantAnalysisPayload(
                original_merchant=merchant_name,
                is_ambiguous=True,
                canonical_merchant=remembered,
            )

        candidates = self.find_candidates(merchant_name, customer_id)
        logger.info(f"Found {len(candidates)} candidates for merchant: {merchant_name}")

        return MerchantAnalysisPayload(
            original_merchant=merchant_name,
            is_ambiguous=True,
            disambiguation_required=True,
            candidates=candidates,
            disambiguation_prompt=build_disambiguation_prompt(merchant_name, candidates),
        )

    async def select(
        self, original: str, chosen: str, customer_id: str
    ) -> MerchantSelectionPayload:
        candidates = self.find_candidates(original, customer_id)
        if not any(c.merchant_name == chosen for c in candidates):
            logger.warning(f"Invalid merchant selection: {chosen}")
            return MerchantSelectionPayload(
                original_merchant=original,
                selection_valid=False,
                error="Invalid merchant selection",
            )

        self.mappings[(customer_id, original)] = chosen
        logger.info(
            f"Updated merchant mapping for customer {mask_customer_id(customer_id)}: "
            f"{original} -> {chosen}"
        )

        return MerchantSelectionPayload(
            original_merchant=original,
            selected_merchant=chosen,
            selection_valid=True,
        )

    def find_candidates(self, merchant_name: str, customer_id: str) -> list[MerchantCandidate]:
        history = sorted(
            self.transactions.for_customer(customer_id),
            key=lambda txn: txn.timestamp,
            reverse=True,
        )[:HISTORY_LIMIT]

        groups: dict[str, list] = {}
        for txn in history:
            groups.setdefault(txn.merchant, []).append(txn)

        target = merchant_name.lower()
        candidates = []
        for merchant, txns in groups.items():
            existing = merchant.lower()
            if not is_similar_merchant(target, existing):
                continue
            candidates.append(
                MerchantCandidate(
                    merchant_name=merchant,
                    transaction_count=len(txns),
                    last_transaction=txns[0].timestamp,
                    total_amount=round(sum(t.amount for t in txns), 2),
                    similarity_score=merchant_similarity(target, existing),
                )
            )

        candidates.sort(key=functools.cmp_to_key(_compare_candidates))
        return candidates[:MAX_CANDIDATES]


def is_merchant_ambiguous(merchant_name: Optional[str]) -> bool:
    if not merchant_name or not merchant_name.strip():
        return False
    normalized = merchant_name.lower().strip()
    return any(marker in normalized for marker in AMBIGUITY_MARKERS)


def is_similar_merchant(name1: str, name2: str) -> bool:
    """Equal, one contains the other, or they share a word of 3+ characters."""
    if name1 == name2 or name1 in name2 or name2 in name1:
        return True

    for word1 in name1.split():
        for word2 in name2.split():
            if len(word1) > 2 and len(word2) > 2 and (word1 in word2 or word2 in word1):
                return True
    return False


def merchant_similarity(name1: str, name2: str) -> float:
    """Jaccard similarity over whitespace-separated words."""
    if name1 == name2:
        return 1.0
    words1, words2 = set(name1.split()), set(name2.split())
    union = words1 | words2
    if not union:
        return 0.0
    return len(words1 & words2) / len(union)


def _compare_candidates(a: MerchantCandidate, b: MerchantCandidate) -> int:
    # Near-equal scores fall back to transaction count, most first
    if abs(a.similarity_score - b.similarity_score) < SCORE_TIE_MARGIN:
        return b.transaction_count - a.transaction_count
    return -1 if a.similarity_score > b.similarity_score else 1


def build_disambiguation_prompt(original: str, candidates: list[MerchantCandidate]) -> str:
    lines = [f'I found multiple merchants that might match "{original}":', ""]
    for i, candidate in enumerate(candidates, start=1):
        lines.append(
            f"{i}. {candidate.merchant_name} ({candidate.transaction_count} transactions)"
        )
    lines.append("")
    lines.append("Please select which merchant you meant, or say 'none' if none of these match.")
    return "\n".join(lines)
