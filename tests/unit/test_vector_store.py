import pytest

from rag_pipeline.retrieval.vector_store import InMemoryChunkStore
from rag_pipeline.types import ChunkMetadata, StructuredChunk


def _chunk(content: str, index: int, page: int = 1) -> StructuredChunk:
    return StructuredChunk(
        content=content,
        context_header=f"cao.pdf > Artikel {index + 1}",
        page_number=page,
        chunk_index=index,
        metadata=ChunkMetadata(start_char=0, end_char=len(content), word_count=len(content.split())),
    )


def test_search_ranks_and_filters() -> None:
    store = InMemoryChunkStore()
    store.store_chunks(
        "tenant-a",
        [_chunk("vakantie", 0), _chunk("ziekte", 1, page=2), _chunk("pensioen", 2)],
        [[1.0, 0.0], [0.8, 0.6], [0.0, 1.0]],
    )

    hits = store.similarity_search("tenant-a", [1.0, 0.0], "vakantie", top_k=5, similarity_threshold=0.5)

    assert [hit.content for hit in hits] == ["vakantie", "ziekte"]
    assert hits[0].score == pytest.approx(1.0)
    assert hits[1].score == pytest.approx(0.8)
    assert hits[1].metadata == {
        "chunk_index": 1,
        "page_number": 2,
        "context_header": "cao.pdf > Artikel 2",
    }


def test_top_k_limits_hits() -> None:
    store = InMemoryChunkStore()
    store.store_chunks("tenant-a", [_chunk("a", 0), _chunk("b", 1)], [[1.0, 0.0], [1.0, 0.1]])

    hits = store.similarity_search("tenant-a", [1.0, 0.0], "a", top_k=1, similarity_threshold=0.0)

    assert [hit.content for hit in hits] == ["a"]


def test_tenants_are_isolated() -> None:
    store = InMemoryChunkStore()
    store.store_chunks("tenant-a", [_chunk("geheim", 0)], [[1.0, 0.0]])

    assert store.similarity_search("tenant-b", [1.0, 0.0], "geheim", 5, 0.0) == []
    assert store.count("tenant-a") == 1
    assert store.count("tenant-b") == 0


def test_pending_chunks_are_not_searchable() -> None:
    store = InMemoryChunkStore()
    chunks = [_chunk("klaar", 0), _chunk("wacht", 1)]
    store.store_chunks("tenant-a", chunks, [[1.0, 0.0], [0.0, 0.0]], pending_indices=[1])

    hits = store.similarity_search("tenant-a", [1.0, 0.0], "klaar", 5, 0.0)

    assert [hit.content for hit in hits] == ["klaar"]
    assert store.pending_reembedding("tenant-a") == [chunks[1]]


def test_length_mismatch_is_rejected() -> None:
    with pytest.raises(ValueError):
        InMemoryChunkStore().store_chunks("tenant-a", [_chunk("a", 0)], [])
