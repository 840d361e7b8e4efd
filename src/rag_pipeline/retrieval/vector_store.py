"""Chunk store contract and an in-memory, tenant-scoped implementation."""

from __future__ import annotations

from dataclasses import dataclass
from math import sqrt
from typing import Protocol

from rag_pipeline.types import SearchHit, StructuredChunk


class ChunkStore(Protocol):
    """Persistence seam for embedded chunks, scoped per tenant."""

    def store_chunks(
        self,
        tenant_id: str,
        chunks: list[StructuredChunk],
        embeddings: list[list[float]],
        *,
        pending_indices: list[int] | None = None,
    ) -> None:
        """Persist chunks with their vectors.

        `pending_indices` marks chunks whose vectors are placeholders and
        must be re-embedded later.
        """

    def similarity_search(
        self,
        tenant_id: str,
        query_embedding: list[float],
        query_text: str,
        top_k: int,
        similarity_threshold: float,
    ) -> list[SearchHit]:
        """Return up to `top_k` hits with score >= threshold, best first."""


@dataclass(slots=True)
class _StoredVector:
    chunk: StructuredChunk
    embedding: list[float]
    pending: bool = False


class InMemoryChunkStore:
    """Deterministic cosine-similarity store used for tests and local runs."""

    def __init__(self) -> None:
        self._store: dict[str, list[_StoredVector]] = {}

    def store_chunks(
        self,
        tenant_id: str,
        chunks: list[StructuredChunk],
        embeddings: list[list[float]],
        *,
        pending_indices: list[int] | None = None,
    ) -> None:
        if len(chunks) != len(embeddings):
            raise ValueError("chunks and embeddings must have the same length")
        pending = set(pending_indices or ())
        records = self._store.setdefault(tenant_id, [])
        for index, (chunk, embedding) in enumerate(zip(chunks, embeddings, strict=True)):
            records.append(_StoredVector(chunk=chunk, embedding=embedding, pending=index in pending))

    def similarity_search(
        self,
        tenant_id: str,
        query_embedding: list[float],
        query_text: str,
        top_k: int,
        similarity_threshold: float,
    ) -> list[SearchHit]:
        scored = [
            (record, _cosine_similarity(query_embedding, record.embedding))
            for record in self._store.get(tenant_id, [])
            if not record.pending
        ]
        ranked = sorted(
            (item for item in scored if item[1] >= similarity_threshold),
            key=lambda item: item[1],
            reverse=True,
        )
        return [
            SearchHit(
                content=record.chunk.content,
                score=score,
                metadata={
                    "chunk_index": record.chunk.chunk_index,
                    "page_number": record.chunk.page_number,
                    "context_header": record.chunk.context_header,
                },
            )
            for record, score in ranked[:top_k]
        ]

    def pending_reembedding(self, tenant_id: str) -> list[StructuredChunk]:
        """Chunks stored with placeholder vectors, awaiting re-embedding."""
        return [record.chunk for record in self._store.get(tenant_id, []) if record.pending]

    def count(self, tenant_id: str) -> int:
        return len(self._store.get(tenant_id, []))


def _cosine_similarity(a: list[float], b: list[float]) -> float:
    if not a or not b or len(a) != len(b):
        return 0.0
    dot = sum(x * y for x, y in zip(a, b, strict=True))
    norm_a = sqrt(sum(x * x for x in a))
    norm_b = sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)
