"""Follow-up detection and conversation-aware query rewriting."""

from __future__ import annotations

import re

import structlog
from langchain_core.prompts import ChatPromptTemplate

from rag_pipeline.errors import ConfigurationError
from rag_pipeline.obs.tracing import DEFAULT_LLM_MODEL, Timer, cost_model_for
from rag_pipeline.providers.llm import CompletionClient
from rag_pipeline.types import ConversationMessage, QueryExpansionResult

log = structlog.get_logger(__name__)

CONTEXT_PRONOUNS = frozenset(
    {
        # Dutch
        "hun", "zij", "hij", "het", "dit", "dat", "deze", "die",
        "hem", "haar", "hen", "er", "daar", "hier", "zo",
        # English
        "their", "them", "they", "it", "this", "that", "those",
        "these", "his", "her", "him", "there", "here",
    }
)

FOLLOWUP_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(pattern)
    for pattern in (
        r"^en\s",
        r"^maar\s",
        r"^hoe\s+zit",
        r"^wat\s+is\s+(hun|zijn|haar|die|dat)\b",
        r"^waar\s+kan",
        r"^wie\s+is",
        r"^wanneer\s+is",
        r"^hoeveel\s+is",
        r"^kan\s+(ik|je)\b",
        r"^moet\s+ik\b",
        r"^and\s",
        r"^but\s",
        r"^what\s+is\s+(their|its)\b",
        r"^who\s+is",
    )
)

SHORT_QUERY_CHARS = 10
PRONOUN_CHECK_MAX_CHARS = 40
TRANSCRIPT_MESSAGE_CHARS = 300
EXPANSION_TEMPERATURE = 0.3
EXPANSION_MAX_TOKENS = 50

_WORD = re.compile(r"\w+")

QUERY_EXPANSION_PROMPT = ChatPromptTemplate.from_messages(
    [
        (
            "system",
            "You rewrite follow-up questions from an HR assistant chat into standalone "
            "search queries. Use the conversation to resolve pronouns and missing subjects. "
            "Answer with the rewritten query only, at most 10 words, in the language of "
            "the question.",
        ),
        ("human", "Conversation:\n{transcript}\n\nFollow-up question: {query}\n\nStandalone query:"),
    ]
)

_ROLE_LABELS = {"user": "Gebruiker", "assistant": "Assistent"}


def detect_follow_up(query: str) -> bool:
    """Heuristically decide whether `query` depends on earlier turns."""
    normalized = query.lower().strip()
    if len(normalized) < SHORT_QUERY_CHARS:
        return True
    if any(pattern.search(normalized) for pattern in FOLLOWUP_PATTERNS):
        return True
    if len(normalized) < PRONOUN_CHECK_MAX_CHARS:
        return any(word in CONTEXT_PRONOUNS for word in _WORD.findall(normalized))
    return False


def build_transcript(history: list[ConversationMessage]) -> str:
    lines = []
    for message in history:
        content = message.content
        if len(content) > TRANSCRIPT_MESSAGE_CHARS:
            content = content[:TRANSCRIPT_MESSAGE_CHARS] + "..."
        lines.append(f"{_ROLE_LABELS.get(message.role, message.role)}: {content}")
    return "\n\n".join(lines)


class QueryExpander:
    """Rewrites follow-up questions into standalone queries.

    Expansion is best effort: without history, without a client, or when the
    provider fails, the original query is returned unchanged.
    """

    def __init__(
        self,
        client: CompletionClient | None,
        *,
        model: str = DEFAULT_LLM_MODEL,
        max_history: int = 4,
    ) -> None:
        self._client = client
        self.model = model
        self.max_history = max_history

    def expand_query_with_context(
        self,
        query: str,
        history: list[ConversationMessage],
        max_history: int | None = None,
    ) -> QueryExpansionResult:
        window = max_history if max_history is not None else self.max_history
        recent = history[-window:] if window > 0 else []
        if not recent or self._client is None:
            return QueryExpansionResult(expanded_query=query, was_expanded=False)

        timer = Timer()
        try:
            with timer:
                completion = self._client.complete(
                    model=self.model,
                    messages=QUERY_EXPANSION_PROMPT.format_messages(
                        transcript=build_transcript(recent), query=query
                    ),
                    temperature=EXPANSION_TEMPERATURE,
                    max_tokens=EXPANSION_MAX_TOKENS,
                )
        except ConfigurationError:
            log.warning("expansion.unavailable", reason="configuration")
            return QueryExpansionResult(expanded_query=query, was_expanded=False)
        except Exception as exc:
            log.error("expansion.failed", error=str(exc))
            return QueryExpansionResult(
                expanded_query=query, was_expanded=False, latency_ms=timer.elapsed_ms
            )

        cost = cost_model_for(self.model).estimate_cost(
            completion.usage.prompt_tokens, completion.usage.completion_tokens
        )
        expanded = (completion.text or "").strip().strip("\"'").strip()
        if not expanded:
            return QueryExpansionResult(
                expanded_query=query, was_expanded=False, cost=cost, latency_ms=timer.elapsed_ms
            )

        log.info("expansion.done", original=query, expanded=expanded, latency_ms=timer.elapsed_ms)
        return QueryExpansionResult(
            expanded_query=expanded,
            was_expanded=expanded != query,
            cost=cost,
            latency_ms=timer.elapsed_ms,
        )
