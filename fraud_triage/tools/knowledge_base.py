"""
Keyword knowledge base.
Ranks document chunks by the share of query words they contain.
"""

import logging
import re
from typing import Optional, Protocol

from pydantic import BaseModel, Field

from fraud_triage.schemas import KbSnippet, KnowledgeBasePayload

logger = logging.getLogger(__name__)

_WORD = re.compile(r"[a-z0-9]+")


class KbChunk(BaseModel):
    id: str
    content: str


class KbDocument(BaseModel):
    """A knowledge-base article split into searchable chunks."""

    id: str
    title: str
    anchor: str
    chunks: list[KbChunk] = Field(default_factory=list)


class KnowledgeBaseProvider(Protocol):
    async def search(self, query: Optional[str]) -> KnowledgeBasePayload: ...


class KeywordKnowledgeBase:
    """
    In-memory knowledge base with naive keyword relevance.

    A chunk matches when any query word of three or more characters
    appears in the document title, anchor or chunk text. Relevance is the
    fraction of query words found in the chunk text.
    """

    def __init__(self, documents: Optional[list[KbDocument]] = None, max_results: int = 3):
        self.documents = list(documents or [])
        self.max_results = max_results

    async def search(self, query: Optional[str]) -> KnowledgeBasePayload:
        if not query or not query.strip():
            return KnowledgeBasePayload(query=query)

        words = [w for w in _WORD.findall(query.lower()) if len(w) > 2]
        if not words:
            return KnowledgeBasePayload(query=query)

        matches: list[KbSnippet] = []
        for doc in self.documents:
            heading = f"{doc.title} {doc.anchor}".lower()
            for chunk in doc.chunks:
                content = chunk.content.lower()
                found = [w for w in words if w in content]
                if not found and not any(w in heading for w in words):
                    continue
                matches.append(
                    KbSnippet(
                        doc_id=doc.id,
                        title=doc.title,
                        anchor=doc.anchor,
                        extract=chunk.content,
                        relevance=round(len(found) / len(words), 3),
                    )
                )

        # sorted() is stable, so equal relevance keeps document order
        matches = sorted(matches, key=lambda m: m.relevance, reverse=True)
        results = matches[: self.max_results]

        logger.debug(f"Found {len(matches)} knowledge base matches for query: {query}")

        return KnowledgeBasePayload(
            query=query,
            results=results,
            total_matches=len(results),
        )
