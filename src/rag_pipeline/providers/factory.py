"""Build provider clients and model-bound services from process settings."""

from __future__ import annotations

import structlog

from rag_pipeline.config import ProviderSettings, require_model_config
from rag_pipeline.errors import ConfigurationError
from rag_pipeline.ingest.embedder import EmbeddingBatcher
from rag_pipeline.providers.embeddings import EmbeddingClient, OpenAIEmbeddingClient
from rag_pipeline.providers.llm import CompletionClient, LangChainCompletionClient
from rag_pipeline.qa.hallucination import HallucinationQuestionGenerator
from rag_pipeline.qa.verifier import CorpusVerifier
from rag_pipeline.retrieval.query_expansion import QueryExpander

log = structlog.get_logger(__name__)


def build_completion_client(settings: ProviderSettings | None = None) -> CompletionClient | None:
    """Return a completion client, or None when no API key is configured."""
    settings = settings or ProviderSettings()
    if not settings.has_openai_key:
        log.info("providers.completion.disabled", reason="missing OPENAI_API_KEY")
        return None
    return LangChainCompletionClient(settings.OPENAI_API_KEY)


def build_embedding_client(settings: ProviderSettings | None = None) -> EmbeddingClient:
    """Return an embedding client; raises ConfigurationError without an API key."""
    settings = settings or ProviderSettings()
    return OpenAIEmbeddingClient(settings.OPENAI_API_KEY)


def build_embedding_batcher(
    settings: ProviderSettings | None = None,
    client: EmbeddingClient | None = None,
) -> EmbeddingBatcher:
    """Batcher bound to `EMBED_MODEL`; unknown models fail here, before any call."""
    settings = settings or ProviderSettings()
    config = require_model_config(settings.EMBED_MODEL)
    return EmbeddingBatcher(client or build_embedding_client(settings), model=config.model)


def build_query_expander(
    settings: ProviderSettings | None = None,
    client: CompletionClient | None = None,
) -> QueryExpander:
    """Expander using `LLM_MODEL`; without a client it leaves queries unchanged."""
    settings = settings or ProviderSettings()
    return QueryExpander(client or build_completion_client(settings), model=settings.LLM_MODEL)


def build_hallucination_generator(
    verifier: CorpusVerifier,
    settings: ProviderSettings | None = None,
    client: CompletionClient | None = None,
) -> HallucinationQuestionGenerator:
    """Generator using `LLM_MODEL`; raises ConfigurationError without a client."""
    settings = settings or ProviderSettings()
    client = client or build_completion_client(settings)
    if client is None:
        raise ConfigurationError("OPENAI_API_KEY is required for question generation")
    return HallucinationQuestionGenerator(client, verifier, model=settings.LLM_MODEL)
