"""Embedding generation with sanitization, sub-batching and per-item fallback."""

from __future__ import annotations

import structlog

from rag_pipeline.config import (
    DEFAULT_EMBEDDING_MODEL,
    EmbeddingModelConfig,
    require_model_config,
)
from rag_pipeline.errors import (
    ConfigurationError,
    EmptyTextError,
    ProviderError,
    TokenLimitExceededError,
)
from rag_pipeline.ingest.sanitizer import (
    DEFAULT_TOKEN_LIMIT,
    estimate_token_count,
    sanitize,
    sanitize_batch,
)
from rag_pipeline.providers.embeddings import EmbeddingClient
from rag_pipeline.types import BatchEmbeddingResult, EmbeddingResult

log = structlog.get_logger(__name__)

DEFAULT_BATCH_SIZE = 100


class EmbeddingBatcher:
    """Turns texts into vectors through an `EmbeddingClient`.

    `embed_batch` never raises for individual items: texts that cannot be
    embedded get a zero vector of the model's dimensionality and are listed
    in `failed_indices`, so the output always lines up with the input.
    Unknown models fail before any provider call.
    """

    def __init__(
        self,
        client: EmbeddingClient,
        *,
        model: str = DEFAULT_EMBEDDING_MODEL,
        batch_size: int = DEFAULT_BATCH_SIZE,
        token_limit: int = DEFAULT_TOKEN_LIMIT,
        max_item_attempts: int = 2,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        if max_item_attempts < 1:
            raise ValueError("max_item_attempts must be >= 1")
        self._client = client
        self.model = model
        self.batch_size = batch_size
        self.token_limit = token_limit
        self.max_item_attempts = max_item_attempts

    def embed(self, text: str, model: str | None = None) -> EmbeddingResult:
        """Embed one text.

        Raises:
            UnknownEmbeddingModelError: `model` is not registered.
            EmptyTextError: nothing is left after sanitization.
            TokenLimitExceededError: the text is estimated to be too long.
            ProviderError: the provider call failed.
        """
        config = require_model_config(model or self.model)
        cleaned = sanitize(text)
        if not cleaned:
            raise EmptyTextError("Text is empty after sanitization")
        estimated = estimate_token_count(cleaned)
        if estimated > self.token_limit:
            raise TokenLimitExceededError(estimated, self.token_limit)

        try:
            response = self._client.embed(
                model=config.model, inputs=[cleaned], dimensions=config.dimensions
            )
        except ConfigurationError:
            raise
        except Exception as exc:
            raise ProviderError(f"Embedding request failed: {exc}") from exc
        return EmbeddingResult(
            embedding=response.vectors[0],
            tokens=response.total_tokens,
            cost=_cost(response.total_tokens, config),
        )

    def embed_batch(self, texts: list[str], model: str | None = None) -> BatchEmbeddingResult:
        config = require_model_config(model or self.model)
        if not texts:
            return BatchEmbeddingResult(embeddings=[], total_tokens=0, total_cost=0.0)

        sanitized = sanitize_batch(texts)
        vectors: list[list[float] | None] = [None] * len(texts)
        failed: set[int] = set()
        total_tokens = 0

        for batch_start in range(0, len(texts), self.batch_size):
            batch_indices: list[int] = []
            for index in range(batch_start, min(batch_start + self.batch_size, len(texts))):
                text = sanitized.sanitized_texts[index]
                if not text:
                    failed.add(index)
                elif estimate_token_count(text) > self.token_limit:
                    log.warning(
                        "embed.token_limit",
                        index=index,
                        estimated_tokens=estimate_token_count(text),
                        limit=self.token_limit,
                    )
                    failed.add(index)
                else:
                    batch_indices.append(index)
            if not batch_indices:
                continue

            inputs = [sanitized.sanitized_texts[index] for index in batch_indices]
            try:
                response = self._client.embed(
                    model=config.model, inputs=inputs, dimensions=config.dimensions
                )
                if len(response.vectors) != len(inputs):
                    raise ProviderError(
                        f"Expected {len(inputs)} vectors, provider returned {len(response.vectors)}"
                    )
            except ConfigurationError:
                raise
            except Exception as exc:
                log.error(
                    "embed.batch_failed",
                    batch_start=batch_start,
                    size=len(inputs),
                    error=str(exc),
                )
                total_tokens += self._embed_one_by_one(
                    config, batch_indices, sanitized.sanitized_texts, vectors, failed
                )
                continue

            for index, vector in zip(batch_indices, response.vectors, strict=True):
                vectors[index] = vector
            total_tokens += response.total_tokens

        placeholder = [0.0] * config.dimensions
        embeddings = [vector if vector is not None else list(placeholder) for vector in vectors]
        if failed:
            log.warning("embed.placeholders", failed=len(failed), total=len(texts))
        return BatchEmbeddingResult(
            embeddings=embeddings,
            total_tokens=total_tokens,
            total_cost=_cost(total_tokens, config),
            failed_indices=sorted(failed),
            issues_by_index=sanitized.issues_by_index,
        )

    def _embed_one_by_one(
        self,
        config: EmbeddingModelConfig,
        indices: list[int],
        texts: list[str],
        vectors: list[list[float] | None],
        failed: set[int],
    ) -> int:
        tokens = 0
        for index in indices:
            attempt = 0
            while attempt < self.max_item_attempts:
                attempt += 1
                try:
                    response = self._client.embed(
                        model=config.model, inputs=[texts[index]], dimensions=config.dimensions
                    )
                except ConfigurationError:
                    raise
                except Exception as exc:
                    log.warning("embed.item_failed", index=index, attempt=attempt, error=str(exc))
                    continue
                if response.vectors:
                    vectors[index] = response.vectors[0]
                    tokens += response.total_tokens
                    break
            if vectors[index] is None:
                failed.add(index)
        return tokens

    def estimate_embedding_cost(self, text: str, model: str | None = None) -> float:
        config = require_model_config(model or self.model)
        return _cost(estimate_token_count(sanitize(text)), config)


def _cost(tokens: int, config: EmbeddingModelConfig) -> float:
    return tokens / 1_000_000 * config.cost_per_million
