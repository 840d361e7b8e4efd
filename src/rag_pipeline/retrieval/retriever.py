"""Conversation-aware retrieval over the chunk store."""

from __future__ import annotations

from dataclasses import dataclass, field

import structlog

from rag_pipeline.ingest.embedder import EmbeddingBatcher
from rag_pipeline.retrieval.query_expansion import QueryExpander, detect_follow_up
from rag_pipeline.retrieval.vector_store import ChunkStore
from rag_pipeline.types import ConversationMessage, QueryExpansionResult, SearchHit

log = structlog.get_logger(__name__)


@dataclass(slots=True)
class RetrievalResult:
    query: str
    expansion: QueryExpansionResult
    hits: list[SearchHit] = field(default_factory=list)
    embedding_cost: float = 0.0

    @property
    def total_cost(self) -> float:
        return self.expansion.cost + self.embedding_cost


class ContextRetriever:
    """Expands follow-up questions before searching.

    Only queries flagged by `detect_follow_up` are sent to the expander; the
    search always runs on the expanded query when one was produced.
    """

    def __init__(
        self,
        store: ChunkStore,
        batcher: EmbeddingBatcher,
        expander: QueryExpander,
        *,
        top_k: int = 5,
        similarity_threshold: float = 0.3,
    ) -> None:
        self.store = store
        self.batcher = batcher
        self.expander = expander
        self.top_k = top_k
        self.similarity_threshold = similarity_threshold

    def retrieve(
        self,
        tenant_id: str,
        query: str,
        history: list[ConversationMessage] | None = None,
        *,
        top_k: int | None = None,
        similarity_threshold: float | None = None,
    ) -> RetrievalResult:
        history = history or []
        if history and detect_follow_up(query):
            expansion = self.expander.expand_query_with_context(query, history)
        else:
            expansion = QueryExpansionResult(expanded_query=query, was_expanded=False)

        embedded = self.batcher.embed(expansion.expanded_query)
        hits = self.store.similarity_search(
            tenant_id,
            embedded.embedding,
            expansion.expanded_query,
            top_k or self.top_k,
            self.similarity_threshold if similarity_threshold is None else similarity_threshold,
        )
        log.info(
            "retrieval.done",
            tenant_id=tenant_id,
            expanded=expansion.was_expanded,
            hits=len(hits),
        )
        return RetrievalResult(
            query=query, expansion=expansion, hits=hits, embedding_cost=embedded.cost
        )
