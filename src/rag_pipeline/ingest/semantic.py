"""LLM-driven semantic chunking with marker-delimited responses."""

from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass
from enum import Enum

import structlog
from langchain_core.prompts import ChatPromptTemplate

from rag_pipeline.config import SmartChunkingOptions
from rag_pipeline.errors import ConfigurationError
from rag_pipeline.obs.tracing import cost_model_for
from rag_pipeline.providers.llm import CompletionClient
from rag_pipeline.types import SemanticChunkResult, TokenUsage

log = structlog.get_logger(__name__)

CHUNK_MARKER = "|||CHUNK|||"
MIN_SEMANTIC_CHARS = 500
MAX_SECTION_CHARS = 15_000
SPLIT_SEARCH_CHARS = 500
SEMANTIC_TEMPERATURE = 0.1
BOUNDARY_PREVIEW_CHARS = 3000

_SYSTEM_PROMPT = f"""You split HR documents (collective labour agreements, staff handbooks, \
regulations) into semantically coherent chunks for a retrieval system.

Rules:
1. Keep related content together: one article, rule or procedure belongs in one chunk.
2. Never split in the middle of a sentence, a list or a table.
3. Aim for roughly 500-800 words per chunk. Shorter is fine when a topic is complete.
4. Start a new chunk at a new chapter, article or clearly new topic.
5. Put the marker {CHUNK_MARKER} on its own line before each new chunk, never before the first chunk.
6. Copy the text exactly, character for character. Do not summarise, translate or rephrase it.
7. Output only the document text and the markers, without any introduction or commentary."""

SEMANTIC_CHUNKING_PROMPT = ChatPromptTemplate.from_messages(
    [
        ("system", _SYSTEM_PROMPT),
        ("human", "Text:\n\n{text}"),
    ]
)

BOUNDARY_DETECTION_PROMPT = ChatPromptTemplate.from_messages(
    [
        (
            "system",
            "You find topic boundaries in HR documents. Return only a JSON array of the "
            "character indices where a new chunk should start, for example [0, 1520, 3480]. "
            "Always include 0.",
        ),
        ("human", "Text:\n\n{text}"),
    ]
)

_FENCE = re.compile(r"^\s*```")
_BOILERPLATE_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"^hier is de (geanalyseerde )?tekst",
        r"^hier zijn de chunks",
        r"^de tekst is opgedeeld",
        r"^ik heb de tekst",
        r"^de volgende chunks",
        r"^here is the (analy[sz]ed |chunked |split )?text",
        r"^here are the chunks",
        r"^i (have )?(split|divided|chunked) the text",
        r"^the following chunks",
        r"^(output|chunks|resultaat|result|geanalyseerde tekst|analy[sz]ed text):",
        r"met de optimale chunk ?grenzen",
        r"with the optimal chunk boundaries",
    )
)
_BOILERPLATE_MAX_CHARS = 50
_SENTENCE_END = re.compile(r"[.!?]\s+(?=[A-ZÀ-Ý])")
_INDEX_ARRAY = re.compile(r"\[[\d,\s]*\]")


class SegmentKind(str, Enum):
    CONTENT = "content"
    BOILERPLATE = "boilerplate"
    EMPTY = "empty"


@dataclass(slots=True, frozen=True)
class OutputSegment:
    """One marker-delimited piece of a model response.

    `offset` is where the piece begins in the raw response.
    """

    kind: SegmentKind
    text: str
    offset: int


def _is_boilerplate(line: str) -> bool:
    stripped = line.strip()
    return any(pattern.search(stripped) for pattern in _BOILERPLATE_PATTERNS)


def _strip_meta_lines(piece: str) -> str:
    lines = piece.strip().split("\n")
    if lines and _FENCE.match(lines[0]):
        lines.pop(0)
    if lines and _is_boilerplate(lines[0]):
        lines.pop(0)
    if lines and _FENCE.match(lines[0]):
        lines.pop(0)
    if lines and _FENCE.match(lines[-1]):
        lines.pop()
    return "\n".join(lines).strip()


def parse_marked_output(output: str) -> list[OutputSegment]:
    """Split a response on the chunk marker and classify each piece."""
    segments: list[OutputSegment] = []
    offset = 0
    for piece in output.split(CHUNK_MARKER):
        piece_offset = offset
        offset += len(piece) + len(CHUNK_MARKER)

        cleaned = _strip_meta_lines(piece)
        if not piece.strip():
            kind = SegmentKind.EMPTY
        elif not cleaned:
            kind = SegmentKind.BOILERPLATE
        elif len(cleaned) < _BOILERPLATE_MAX_CHARS and _is_boilerplate(cleaned):
            kind = SegmentKind.BOILERPLATE
        else:
            kind = SegmentKind.CONTENT
        segments.append(OutputSegment(kind=kind, text=cleaned, offset=piece_offset))
    return segments


def split_into_sections(text: str, max_chars: int = MAX_SECTION_CHARS) -> list[tuple[int, str]]:
    """Cut `text` into (offset, section) pairs of at most `max_chars`.

    Cuts prefer the last paragraph break, then the last sentence end, within
    the final ``SPLIT_SEARCH_CHARS`` of each section.
    """
    sections: list[tuple[int, str]] = []
    length = len(text)
    start = 0
    while start < length:
        end = min(start + max_chars, length)
        if end < length:
            end = _find_split_point(text, start, end)
        sections.append((start, text[start:end]))
        start = end
    return sections


def _find_split_point(text: str, start: int, end: int) -> int:
    window_start = max(start, end - SPLIT_SEARCH_CHARS)
    window = text[window_start:end]

    paragraph = window.rfind("\n\n")
    if paragraph != -1:
        return window_start + paragraph + 2

    last_sentence = None
    for last_sentence in _SENTENCE_END.finditer(window):
        pass
    if last_sentence is not None:
        return window_start + last_sentence.end()
    return end


class SemanticChunker:
    """Asks a chat model to place chunk markers in the document text.

    Long inputs are processed section by section, in order. A failing
    section degrades to a single chunk holding its original text at zero
    cost; other sections are unaffected.

    Chunk positions are proportional estimates (response offset scaled to
    the section length). They are hints for position reconciliation, not
    exact offsets.
    """

    def __init__(self, client: CompletionClient | None) -> None:
        self._client = client

    def semantic_chunk(
        self, text: str, options: SmartChunkingOptions | None = None
    ) -> SemanticChunkResult:
        options = options or SmartChunkingOptions()
        if len(text) < MIN_SEMANTIC_CHARS:
            chunks = [text.strip()] if text.strip() else []
            return SemanticChunkResult(chunks=chunks, chunk_positions=[0] * len(chunks))

        client = self._require_client()
        sections = [(offset, body) for offset, body in split_into_sections(text) if body.strip()]
        pricing = cost_model_for(options.semantic_model)
        result = SemanticChunkResult(chunks=[], chunk_positions=[])

        for number, (offset, section) in enumerate(sections, start=1):
            try:
                chunks, positions, usage = self._chunk_section(client, section, offset, options)
            except ConfigurationError:
                raise
            except Exception as exc:
                log.error(
                    "semantic.section_failed",
                    section=number,
                    sections=len(sections),
                    error=str(exc),
                )
                stripped = section.strip()
                chunks = [stripped]
                positions = [offset + section.find(stripped[:1])]
                usage = TokenUsage()

            result.chunks.extend(chunks)
            result.chunk_positions.extend(positions)
            result.tokens_used += usage.total_tokens
            result.cost += pricing.estimate_cost(usage.prompt_tokens, usage.completion_tokens)

            if number % options.batch_size == 0 or number == len(sections):
                log.info(
                    "semantic.progress",
                    sections_done=number,
                    sections=len(sections),
                    chunks=len(result.chunks),
                )
        return result

    def _chunk_section(
        self,
        client: CompletionClient,
        section: str,
        offset: int,
        options: SmartChunkingOptions,
    ) -> tuple[list[str], list[int], TokenUsage]:
        completion = client.complete(
            model=options.semantic_model,
            messages=SEMANTIC_CHUNKING_PROMPT.format_messages(text=section),
            temperature=SEMANTIC_TEMPERATURE,
            max_tokens=math.ceil(len(section) / 2) + 500,
        )
        output = completion.text or ""
        contents = [
            segment for segment in parse_marked_output(output) if segment.kind is SegmentKind.CONTENT
        ]
        if not contents:
            log.warning("semantic.empty_response", section_chars=len(section))
            stripped = section.strip()
            return [stripped], [offset + section.find(stripped[:1])], completion.usage

        section_length = len(section)
        output_length = len(output)
        positions = [
            offset + int(segment.offset / output_length * section_length) for segment in contents
        ]
        return [segment.text for segment in contents], positions, completion.usage

    def detect_boundaries(
        self, text: str, options: SmartChunkingOptions | None = None
    ) -> list[int]:
        """Ask the model for chunk start indices over a preview of `text`.

        Returns sorted, de-duplicated indices within the text that always
        start with 0. Any failure yields ``[0]``.
        """
        options = options or SmartChunkingOptions()
        client = self._require_client()
        try:
            completion = client.complete(
                model=options.semantic_model,
                messages=BOUNDARY_DETECTION_PROMPT.format_messages(
                    text=text[:BOUNDARY_PREVIEW_CHARS]
                ),
                temperature=SEMANTIC_TEMPERATURE,
                max_tokens=200,
            )
            match = _INDEX_ARRAY.search(completion.text or "")
            if match is None:
                return [0]
            indices = {int(value) for value in json.loads(match.group(0))}
        except ConfigurationError:
            raise
        except Exception as exc:
            log.error("semantic.boundary_detection_failed", error=str(exc))
            return [0]
        indices.add(0)
        return sorted(index for index in indices if 0 <= index < max(len(text), 1))

    def _require_client(self) -> CompletionClient:
        if self._client is None:
            raise ConfigurationError("Semantic chunking requires a completion client")
        return self._client
