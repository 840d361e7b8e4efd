import pytest

from rag_pipeline.errors import (
    EmptyTextError,
    ProviderError,
    TokenLimitExceededError,
    UnknownEmbeddingModelError,
)
from rag_pipeline.ingest.embedder import EmbeddingBatcher
from rag_pipeline.providers.embeddings import HashingEmbeddingClient
from rag_pipeline.types import EmbeddingResponse


class RecordingEmbeddingClient(HashingEmbeddingClient):
    def __init__(self, fail_batches: bool = False, fail_texts: tuple[str, ...] = ()) -> None:
        self.fail_batches = fail_batches
        self.fail_texts = fail_texts
        self.calls: list[list[str]] = []

    def embed(self, *, model: str, inputs: list[str], dimensions: int) -> EmbeddingResponse:
        self.calls.append(list(inputs))
        if self.fail_batches and len(inputs) > 1:
            raise RuntimeError("batch rejected")
        if any(text in self.fail_texts for text in inputs):
            raise RuntimeError("item rejected")
        return super().embed(model=model, inputs=inputs, dimensions=dimensions)


def test_oversized_item_gets_placeholder() -> None:
    client = RecordingEmbeddingClient()
    batcher = EmbeddingBatcher(client)

    result = batcher.embed_batch(["Vakantiedagen per jaar", "x" * 40_000, "Ziekteverzuim melden"])

    assert result.failed_indices == [1]
    assert len(result.embeddings) == 3
    assert result.embeddings[1] == [0.0] * 1536
    assert any(value != 0.0 for value in result.embeddings[0])
    assert any(value != 0.0 for value in result.embeddings[2])
    assert client.calls == [["Vakantiedagen per jaar", "Ziekteverzuim melden"]]


def test_unknown_model_fails_before_any_call() -> None:
    client = RecordingEmbeddingClient()
    batcher = EmbeddingBatcher(client)

    with pytest.raises(UnknownEmbeddingModelError):
        batcher.embed_batch(["tekst"], model="text-embedding-9")
    with pytest.raises(KeyError):
        batcher.embed("tekst", model="text-embedding-9")
    assert client.calls == []


def test_empty_input_returns_empty_result() -> None:
    result = EmbeddingBatcher(RecordingEmbeddingClient()).embed_batch([])

    assert result.embeddings == []
    assert result.failed_indices == []
    assert result.total_cost == 0.0


def test_empty_after_sanitization_is_failed_with_issues() -> None:
    result = EmbeddingBatcher(RecordingEmbeddingClient()).embed_batch(["geldig", "\u200b"])

    assert result.failed_indices == [1]
    assert "Text is empty after sanitization" in result.issues_by_index[1]


def test_batch_failure_falls_back_to_single_items() -> None:
    client = RecordingEmbeddingClient(fail_batches=True, fail_texts=("kapot",))
    batcher = EmbeddingBatcher(client, max_item_attempts=2)

    result = batcher.embed_batch(["een", "kapot", "drie"])

    assert result.failed_indices == [1]
    assert result.embeddings[1] == [0.0] * 1536
    assert client.calls.count(["kapot"]) == 2
    assert ["een"] in client.calls and ["drie"] in client.calls
    assert result.total_tokens == 2


def test_sub_batches_respect_batch_size() -> None:
    client = RecordingEmbeddingClient()
    batcher = EmbeddingBatcher(client, batch_size=2)

    result = batcher.embed_batch([f"tekst {n}" for n in range(5)])

    assert [len(call) for call in client.calls] == [2, 2, 1]
    assert result.failed_indices == []
    assert result.total_tokens == 10
    assert result.total_cost == pytest.approx(10 / 1_000_000 * 0.02)


def test_large_model_uses_its_dimensions() -> None:
    result = EmbeddingBatcher(RecordingEmbeddingClient()).embed_batch(
        ["", "tekst"], model="text-embedding-3-large"
    )

    assert len(result.embeddings[0]) == 3072
    assert len(result.embeddings[1]) == 3072


def test_embed_single_text() -> None:
    result = EmbeddingBatcher(RecordingEmbeddingClient()).embed("Hoeveel vakantiedagen heb ik?")

    assert len(result.embedding) == 1536
    assert result.tokens == 4
    assert result.cost == pytest.approx(4 / 1_000_000 * 0.02)


def test_embed_single_text_errors() -> None:
    batcher = EmbeddingBatcher(RecordingEmbeddingClient(fail_texts=("kapot",)))

    with pytest.raises(EmptyTextError):
        batcher.embed("\u200b  ")
    with pytest.raises(TokenLimitExceededError):
        batcher.embed("x" * 40_000)
    with pytest.raises(ProviderError):
        batcher.embed("kapot")


def test_estimate_embedding_cost() -> None:
    batcher = EmbeddingBatcher(RecordingEmbeddingClient())

    assert batcher.estimate_embedding_cost("x" * 35) == pytest.approx(10 / 1_000_000 * 0.02)
