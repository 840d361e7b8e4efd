from math import sqrt

import pytest
from langchain_core.messages import AIMessage, HumanMessage

from rag_pipeline.config import ProviderSettings
from rag_pipeline.errors import ConfigurationError
from rag_pipeline.providers import llm
from rag_pipeline.providers.embeddings import (
    EmbeddingClient,
    HashingEmbeddingClient,
    OpenAIEmbeddingClient,
)
from rag_pipeline.errors import UnknownEmbeddingModelError
from rag_pipeline.providers.factory import (
    build_completion_client,
    build_embedding_batcher,
    build_embedding_client,
    build_hallucination_generator,
    build_query_expander,
)
from rag_pipeline.qa.verifier import CorpusVerifier
from rag_pipeline.retrieval.vector_store import InMemoryChunkStore
from rag_pipeline.types import ConversationMessage
from rag_pipeline.providers.llm import CompletionClient, LangChainCompletionClient


class FakeChatOpenAI:
    instances: list["FakeChatOpenAI"] = []

    def __init__(self, **kwargs) -> None:
        self.kwargs = kwargs
        self.received: list = []
        FakeChatOpenAI.instances.append(self)

    def invoke(self, messages):
        self.received = messages
        return AIMessage(
            content="Hoeveel vakantiedagen krijgen parttimers?",
            usage_metadata={"input_tokens": 42, "output_tokens": 7, "total_tokens": 49},
        )


@pytest.mark.parametrize("key", [None, "", "   "])
def test_clients_require_api_key(key: str | None) -> None:
    with pytest.raises(ConfigurationError):
        LangChainCompletionClient(key)
    with pytest.raises(ConfigurationError):
        OpenAIEmbeddingClient(key)


def test_factory_without_key() -> None:
    settings = ProviderSettings(OPENAI_API_KEY=None)

    assert not settings.has_openai_key
    assert build_completion_client(settings) is None
    with pytest.raises(ConfigurationError):
        build_embedding_client(settings)


def test_factory_with_key() -> None:
    settings = ProviderSettings(OPENAI_API_KEY="sk-test")

    assert isinstance(build_completion_client(settings), CompletionClient)
    assert isinstance(build_embedding_client(settings), EmbeddingClient)


def test_completion_client_passes_call_parameters(monkeypatch: pytest.MonkeyPatch) -> None:
    FakeChatOpenAI.instances = []
    monkeypatch.setattr(llm, "ChatOpenAI", FakeChatOpenAI)
    client = LangChainCompletionClient("sk-test", timeout=5.0)

    completion = client.complete(
        model="gpt-4o-mini",
        messages=(HumanMessage(content="En de vakantiedagen?"),),
        temperature=0.3,
        max_tokens=50,
    )

    assert completion.text == "Hoeveel vakantiedagen krijgen parttimers?"
    assert completion.usage.prompt_tokens == 42
    assert completion.usage.completion_tokens == 7
    assert completion.usage.total_tokens == 49
    fake = FakeChatOpenAI.instances[-1]
    assert fake.kwargs == {
        "model": "gpt-4o-mini",
        "temperature": 0.3,
        "max_tokens": 50,
        "api_key": "sk-test",
        "timeout": 5.0,
    }
    assert isinstance(fake.received, list)


def test_message_text_joins_content_parts() -> None:
    message = AIMessage(content=[{"type": "text", "text": "Hallo "}, "wereld", {"type": "image_url"}])

    assert llm._message_text(message) == "Hallo wereld"


def test_hashing_embeddings_are_deterministic_and_normalised() -> None:
    client = HashingEmbeddingClient()

    first = client.embed(model="text-embedding-3-small", inputs=["Vakantiegeld wordt in mei uitbetaald"], dimensions=64)
    second = client.embed(model="text-embedding-3-small", inputs=["vakantiegeld wordt in mei uitbetaald"], dimensions=64)

    assert first.vectors == second.vectors
    assert len(first.vectors[0]) == 64
    assert sqrt(sum(value * value for value in first.vectors[0])) == pytest.approx(1.0)
    assert first.total_tokens == 5


def test_hashing_embeddings_of_blank_text_are_zero() -> None:
    response = HashingEmbeddingClient().embed(model="m", inputs=["   "], dimensions=8)

    assert response.vectors == [[0.0] * 8]
    assert response.total_tokens == 0


def test_builders_bind_configured_models() -> None:
    settings = ProviderSettings(
        OPENAI_API_KEY="sk-test", LLM_MODEL="gpt-4o", EMBED_MODEL="text-embedding-3-large"
    )

    batcher = build_embedding_batcher(settings, client=HashingEmbeddingClient())
    expander = build_query_expander(settings)
    verifier = CorpusVerifier(InMemoryChunkStore(), batcher)
    generator = build_hallucination_generator(verifier, settings)

    assert batcher.model == "text-embedding-3-large"
    assert len(batcher.embed("Vakantiegeld wordt in mei uitbetaald").embedding) == 3072
    assert expander.model == "gpt-4o"
    assert generator.model == "gpt-4o"


def test_builders_without_key() -> None:
    settings = ProviderSettings(OPENAI_API_KEY=None)
    verifier = CorpusVerifier(InMemoryChunkStore(), build_embedding_batcher(settings, client=HashingEmbeddingClient()))

    expander = build_query_expander(settings)

    history = [ConversationMessage("user", "Hoeveel vakantiedagen heb ik?")]
    assert expander.expand_query_with_context("En dat?", history).expanded_query == "En dat?"
    with pytest.raises(ConfigurationError):
        build_hallucination_generator(verifier, settings)


def test_unknown_embed_model_fails_when_building_batcher() -> None:
    settings = ProviderSettings(OPENAI_API_KEY=None, EMBED_MODEL="ada-001")

    with pytest.raises(UnknownEmbeddingModelError):
        build_embedding_batcher(settings, client=HashingEmbeddingClient())
