"""Assembles structured, page-attributed chunks from a document's pages."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import replace
from typing import Any

import structlog

from rag_pipeline.config import SmartChunkingOptions, resolve_chunking_options
from rag_pipeline.errors import ConfigurationError
from rag_pipeline.ingest.boundaries import legacy_chunk, smart_boundary_chunk
from rag_pipeline.ingest.positions import (
    advance_watermark,
    combine_pages,
    find_chunk_start,
    find_page_for_position,
)
from rag_pipeline.ingest.sanitizer import sanitize
from rag_pipeline.ingest.semantic import SemanticChunker
from rag_pipeline.ingest.structure import (
    build_structure_path,
    detect_structure,
    find_structure_at_position,
    generate_context_header,
    get_structure_summary,
)
from rag_pipeline.types import (
    ChunkMetadata,
    DocumentStructure,
    Page,
    SmartChunkingResult,
    StructuredChunk,
)

log = structlog.get_logger(__name__)

MERGE_SEPARATOR = "\n\n"


def count_words(text: str) -> int:
    return len(text.split())


class SmartChunker:
    """Runs sanitize -> combine -> detect -> chunk -> reconcile -> merge.

    Chunker choice per call: semantic (LLM) when enabled, otherwise scored
    smart boundaries, otherwise fixed-size legacy chunks. Chunks are placed
    in order with a monotonic watermark so repeated text resolves to the
    occurrence after the previous chunk.
    """

    def __init__(self, semantic_chunker: SemanticChunker | None = None) -> None:
        self._semantic = semantic_chunker

    def chunk_document(
        self,
        pages: list[Page],
        document_name: str,
        options: SmartChunkingOptions | Mapping[str, Any] | None = None,
    ) -> SmartChunkingResult:
        opts = resolve_chunking_options(options)
        if opts.enable_semantic_chunking and self._semantic is None:
            raise ConfigurationError(
                "Semantic chunking is enabled but no semantic chunker is configured"
            )

        combined = combine_pages([Page(page.page_number, sanitize(page.text)) for page in pages])
        full_text = combined.full_text
        if not full_text:
            return SmartChunkingResult(chunks=[])

        structures = detect_structure(full_text) if opts.enable_structure_detection else []
        log.info(
            "chunking.start",
            document=document_name,
            chars=len(full_text),
            pages=len(combined.boundaries),
            structure=get_structure_summary(structures),
        )

        cost = 0.0
        tokens_used = 0
        positions: list[int] = []
        if opts.enable_semantic_chunking and self._semantic is not None:
            semantic = self._semantic.semantic_chunk(full_text, opts)
            contents = semantic.chunks
            positions = semantic.chunk_positions
            cost = semantic.cost
            tokens_used = semantic.tokens_used
        elif opts.enable_smart_boundaries:
            contents = smart_boundary_chunk(full_text, structures, opts)
        else:
            contents = legacy_chunk(full_text, opts)

        chunks: list[StructuredChunk] = []
        last_known = 0
        total = len(contents)
        for index, content in enumerate(contents):
            hint = max(positions[index], last_known) if index < len(positions) else last_known
            start = find_chunk_start(full_text, content, hint, index, total)
            last_known = advance_watermark(last_known, start, len(content))

            node = find_structure_at_position(structures, start)
            header = (
                generate_context_header(document_name, node, structures, start)
                if opts.enable_context_headers
                else ""
            )
            chunks.append(
                StructuredChunk(
                    content=content,
                    context_header=header,
                    page_number=find_page_for_position(combined.boundaries, start),
                    chunk_index=index,
                    structure=node.index if node is not None else None,
                    metadata=_chunk_metadata(content, start, structures, node),
                )
            )

        merged = merge_small_chunks(chunks, opts.min_chunk_size)
        log.info(
            "chunking.done",
            document=document_name,
            chunks=len(merged),
            merged_away=len(chunks) - len(merged),
            cost=cost,
        )
        return SmartChunkingResult(
            chunks=merged,
            cost=cost,
            tokens_used=tokens_used,
            structures_detected=len(structures),
        )


def _chunk_metadata(
    content: str,
    start: int,
    structures: list[DocumentStructure],
    node: DocumentStructure | None,
) -> ChunkMetadata:
    return ChunkMetadata(
        start_char=start,
        end_char=start + len(content),
        word_count=count_words(content),
        structure_type=node.type if node is not None else None,
        structure_path=tuple(build_structure_path(structures, node)),
    )


def merge_small_chunks(chunks: list[StructuredChunk], min_size: int) -> list[StructuredChunk]:
    """Fold chunks shorter than `min_size` into their predecessor.

    The first chunk has no predecessor and is kept as is. Output is
    re-indexed densely from 0.
    """
    merged: list[StructuredChunk] = []
    for chunk in chunks:
        if merged and len(chunk.content) < min_size:
            previous = merged[-1]
            content = previous.content + MERGE_SEPARATOR + chunk.content
            metadata = replace(
                previous.metadata,
                end_char=max(previous.metadata.end_char, chunk.metadata.end_char),
                word_count=count_words(content),
            )
            merged[-1] = replace(previous, content=content, metadata=metadata)
        else:
            merged.append(chunk)
    return [replace(chunk, chunk_index=index) for index, chunk in enumerate(merged)]
