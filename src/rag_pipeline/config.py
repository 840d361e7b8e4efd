"""Configuration models for chunking, embedding models and provider settings."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from rag_pipeline.errors import UnknownEmbeddingModelError


class SmartChunkingOptions(BaseModel):
    """Configures structure-aware chunking.

    Sizes are measured in characters. Values are immutable; use
    `resolve_chunking_options` to derive an effective value for one call.
    """

    model_config = ConfigDict(frozen=True)

    target_chunk_size: int = Field(default=3500, ge=1)
    min_chunk_size: int = Field(default=600, ge=0)
    max_chunk_size: int = Field(default=5000, ge=1)
    overlap_percentage: int = Field(default=25, ge=0, lt=100)
    enable_structure_detection: bool = True
    enable_semantic_chunking: bool = True
    enable_context_headers: bool = True
    enable_smart_boundaries: bool = True
    semantic_model: str = "gpt-4o-mini"
    batch_size: int = Field(default=10, ge=1)

    @model_validator(mode="after")
    def _check_size_order(self) -> "SmartChunkingOptions":
        if not self.min_chunk_size <= self.target_chunk_size <= self.max_chunk_size:
            raise ValueError(
                "chunk sizes must satisfy min_chunk_size <= target_chunk_size <= max_chunk_size"
            )
        return self

    @property
    def overlap_chars(self) -> int:
        return self.target_chunk_size * self.overlap_percentage // 100


DEFAULT_CHUNKING_OPTIONS = SmartChunkingOptions()


def resolve_chunking_options(
    overrides: SmartChunkingOptions | Mapping[str, Any] | None = None,
) -> SmartChunkingOptions:
    """Merge caller overrides over the defaults into a new options value."""

    if overrides is None:
        return DEFAULT_CHUNKING_OPTIONS
    if isinstance(overrides, SmartChunkingOptions):
        return overrides
    merged = {**DEFAULT_CHUNKING_OPTIONS.model_dump(), **dict(overrides)}
    return SmartChunkingOptions.model_validate(merged)


class EmbeddingModelConfig(BaseModel):
    """Dimensionality and pricing of one embedding model."""

    model_config = ConfigDict(frozen=True)

    model: str
    dimensions: int = Field(ge=1)
    cost_per_million: float = Field(ge=0.0)


DEFAULT_EMBEDDING_MODEL = "text-embedding-3-small"

EMBEDDING_MODELS: dict[str, EmbeddingModelConfig] = {
    "text-embedding-3-small": EmbeddingModelConfig(
        model="text-embedding-3-small", dimensions=1536, cost_per_million=0.02
    ),
    "text-embedding-3-large": EmbeddingModelConfig(
        model="text-embedding-3-large", dimensions=3072, cost_per_million=0.13
    ),
}


def get_model_config(model: str) -> EmbeddingModelConfig | None:
    return EMBEDDING_MODELS.get(model)


def require_model_config(model: str) -> EmbeddingModelConfig:
    config = EMBEDDING_MODELS.get(model)
    if config is None:
        raise UnknownEmbeddingModelError(model)
    return config


class ProviderSettings(BaseSettings):
    """Process-level provider settings read from the environment or `.env`."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    OPENAI_API_KEY: str | None = None
    LLM_MODEL: str = "gpt-4o-mini"
    EMBED_MODEL: str = DEFAULT_EMBEDDING_MODEL
    LOG_FORMAT: Literal["json", "plain", "auto"] = "auto"

    @property
    def has_openai_key(self) -> bool:
        return bool(self.OPENAI_API_KEY and self.OPENAI_API_KEY.strip())
