"""Exception hierarchy for fatal pipeline errors."""

from __future__ import annotations


class RagPipelineError(Exception):
    """Base class for errors raised to callers of the pipeline."""


class ConfigurationError(RagPipelineError):
    """A provider or feature was requested without the configuration it needs."""


class UnknownEmbeddingModelError(ConfigurationError, KeyError):
    """The requested embedding model is not in the model registry."""

    def __init__(self, model: str) -> None:
        super().__init__(f"Unknown embedding model: {model}")
        self.model = model

    def __str__(self) -> str:
        return str(self.args[0])


class EmptyTextError(RagPipelineError, ValueError):
    """Text was empty once sanitized."""


class TokenLimitExceededError(RagPipelineError, ValueError):
    """Text is estimated to exceed the embedding model's input limit."""

    def __init__(self, estimated_tokens: int, limit: int) -> None:
        super().__init__(f"Text exceeds token limit: ~{estimated_tokens} tokens (limit {limit})")
        self.estimated_tokens = estimated_tokens
        self.limit = limit


class ProviderError(RagPipelineError):
    """A remote LLM or embedding call failed."""
