"""Chat completion client seam and the LangChain/OpenAI implementation."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Protocol, runtime_checkable

from langchain_core.messages import BaseMessage
from langchain_openai import ChatOpenAI

from rag_pipeline.errors import ConfigurationError
from rag_pipeline.types import Completion, TokenUsage


@runtime_checkable
class CompletionClient(Protocol):
    """Minimal chat-completion contract used by chunking, expansion and QA."""

    def complete(
        self,
        *,
        model: str,
        messages: Sequence[BaseMessage],
        temperature: float,
        max_tokens: int,
    ) -> Completion:
        """Run one completion and return its text and token usage."""


class LangChainCompletionClient:
    """`CompletionClient` backed by `langchain_openai.ChatOpenAI`.

    A chat model is built per call so every call carries its own model,
    temperature and token cap; nothing is shared between calls besides the key.
    """

    def __init__(self, api_key: str | None, *, timeout: float | None = 60.0) -> None:
        if not api_key or not api_key.strip():
            raise ConfigurationError("OPENAI_API_KEY is required for chat completions")
        self._api_key = api_key
        self._timeout = timeout

    def complete(
        self,
        *,
        model: str,
        messages: Sequence[BaseMessage],
        temperature: float,
        max_tokens: int,
    ) -> Completion:
        llm = ChatOpenAI(
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            api_key=self._api_key,
            timeout=self._timeout,
        )
        response = llm.invoke(list(messages))
        return Completion(text=_message_text(response), usage=_message_usage(response))


def _message_text(message: BaseMessage) -> str:
    content = message.content
    if isinstance(content, str):
        return content
    parts: list[str] = []
    for part in content:
        if isinstance(part, str):
            parts.append(part)
        elif isinstance(part, dict) and part.get("type") == "text":
            parts.append(str(part.get("text", "")))
    return "".join(parts)


def _message_usage(message: Any) -> TokenUsage:
    usage = getattr(message, "usage_metadata", None) or {}
    return TokenUsage(
        prompt_tokens=int(usage.get("input_tokens", 0)),
        completion_tokens=int(usage.get("output_tokens", 0)),
    )
