"""Embedding client seam with OpenAI and deterministic offline implementations."""

from __future__ import annotations

from hashlib import blake2b
from math import sqrt
from typing import Protocol, runtime_checkable

import openai

from rag_pipeline.errors import ConfigurationError
from rag_pipeline.types import EmbeddingResponse


@runtime_checkable
class EmbeddingClient(Protocol):
    """Embeds a list of texts with one provider call."""

    def embed(self, *, model: str, inputs: list[str], dimensions: int) -> EmbeddingResponse:
        """Return one vector per input, in input order, plus billed tokens."""


class OpenAIEmbeddingClient:
    """OpenAI embeddings API client."""

    def __init__(self, api_key: str | None, *, timeout: float | None = 60.0) -> None:
        if not api_key or not api_key.strip():
            raise ConfigurationError("OPENAI_API_KEY is required for embeddings")
        self._client = openai.OpenAI(api_key=api_key, timeout=timeout)

    def embed(self, *, model: str, inputs: list[str], dimensions: int) -> EmbeddingResponse:
        response = self._client.embeddings.create(
            model=model,
            input=inputs,
            dimensions=dimensions if model.startswith("text-embedding-3") else openai.NOT_GIVEN,
        )
        ordered = sorted(response.data, key=lambda item: item.index)
        tokens = response.usage.total_tokens if response.usage is not None else 0
        return EmbeddingResponse(
            vectors=[list(item.embedding) for item in ordered],
            total_tokens=tokens,
        )


class HashingEmbeddingClient:
    """Deterministic signed feature-hashing embeddings without remote calls.

    Used for local runs and tests. Token usage is reported as the number of
    whitespace-separated words so cost accounting stays exercised.
    """

    def embed(self, *, model: str, inputs: list[str], dimensions: int) -> EmbeddingResponse:
        vectors = [self._embed(text, dimensions) for text in inputs]
        tokens = sum(len(text.split()) for text in inputs)
        return EmbeddingResponse(vectors=vectors, total_tokens=tokens)

    @staticmethod
    def _embed(text: str, dimensions: int) -> list[float]:
        vector = [0.0 for _ in range(dimensions)]
        tokens = text.lower().split()
        if not tokens:
            return vector

        for token in tokens:
            digest = blake2b(token.encode("utf-8"), digest_size=8).digest()
            idx = int.from_bytes(digest[:4], "little") % dimensions
            sign = -1.0 if digest[4] % 2 else 1.0
            vector[idx] += sign

        norm = sqrt(sum(value * value for value in vector))
        if norm == 0:
            return vector
        return [value / norm for value in vector]
