"""End-to-end ingest pipeline: chunk -> embed -> store."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import structlog

from rag_pipeline.config import SmartChunkingOptions
from rag_pipeline.ingest.assembler import SmartChunker
from rag_pipeline.ingest.embedder import EmbeddingBatcher
from rag_pipeline.retrieval.vector_store import ChunkStore
from rag_pipeline.types import Page, StructuredChunk

log = structlog.get_logger(__name__)


@dataclass(slots=True)
class IngestResult:
    chunks: list[StructuredChunk] = field(default_factory=list)
    failed_indices: list[int] = field(default_factory=list)
    chunking_cost: float = 0.0
    embedding_cost: float = 0.0
    total_tokens: int = 0
    structures_detected: int = 0

    @property
    def total_cost(self) -> float:
        return self.chunking_cost + self.embedding_cost


def embedding_text(chunk: StructuredChunk) -> str:
    """Text sent to the embedding model: breadcrumb header, then content."""
    if chunk.context_header:
        return f"{chunk.context_header}\n\n{chunk.content}"
    return chunk.content


class IngestPipeline:
    """Coordinates chunker/embedder/store stages for one document at a time.

    Chunks whose embedding failed are still stored, flagged as pending
    re-embedding, so nothing is dropped silently.
    """

    def __init__(
        self,
        chunker: SmartChunker,
        batcher: EmbeddingBatcher,
        store: ChunkStore,
    ) -> None:
        self._chunker = chunker
        self._batcher = batcher
        self._store = store

    def ingest(
        self,
        tenant_id: str,
        document_name: str,
        pages: list[Page],
        options: SmartChunkingOptions | Mapping[str, Any] | None = None,
    ) -> IngestResult:
        chunked = self._chunker.chunk_document(pages, document_name, options)
        if not chunked.chunks:
            log.warning("ingest.empty_document", tenant_id=tenant_id, document=document_name)
            return IngestResult(chunking_cost=chunked.cost, total_tokens=chunked.tokens_used)

        embedded = self._batcher.embed_batch([embedding_text(chunk) for chunk in chunked.chunks])
        self._store.store_chunks(
            tenant_id,
            chunked.chunks,
            embedded.embeddings,
            pending_indices=embedded.failed_indices,
        )

        result = IngestResult(
            chunks=chunked.chunks,
            failed_indices=embedded.failed_indices,
            chunking_cost=chunked.cost,
            embedding_cost=embedded.total_cost,
            total_tokens=chunked.tokens_used + embedded.total_tokens,
            structures_detected=chunked.structures_detected,
        )
        log.info(
            "ingest.done",
            tenant_id=tenant_id,
            document=document_name,
            chunks=len(result.chunks),
            failed=len(result.failed_indices),
            cost=round(result.total_cost, 6),
        )
        return result

    def ingest_many(
        self,
        tenant_id: str,
        documents: Mapping[str, list[Page]],
        options: SmartChunkingOptions | Mapping[str, Any] | None = None,
    ) -> dict[str, IngestResult]:
        """Ingest several documents sequentially, keyed by document name."""
        return {
            name: self.ingest(tenant_id, name, pages, options)
            for name, pages in documents.items()
        }
