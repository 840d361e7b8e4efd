"""Shared domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal


@dataclass(slots=True, frozen=True)
class Page:
    """Raw extracted text of one source page (1-based numbering)."""

    page_number: int
    text: str


@dataclass(slots=True, frozen=True)
class PageBoundary:
    """Character range of a page inside the combined document (end exclusive)."""

    page_number: int
    start_pos: int
    end_pos: int


@dataclass(slots=True, frozen=True)
class CombinedDocument:
    full_text: str
    boundaries: list[PageBoundary]


class StructureType(str, Enum):
    CHAPTER = "chapter"
    ARTICLE = "article"
    SECTION = "section"


@dataclass(slots=True, frozen=True)
class DocumentStructure:
    """A detected heading node.

    Nodes live in an ordered list; `index` is the node's own position in that
    list and `parent` is the position of its nearest enclosing node.
    """

    index: int
    type: StructureType
    identifier: str
    title: str
    start_index: int
    level: int
    end_index: int
    parent: int | None = None

    @property
    def label(self) -> str:
        return " ".join(part for part in (self.identifier, self.title) if part)


@dataclass(slots=True, frozen=True)
class ChunkMetadata:
    start_char: int
    end_char: int
    word_count: int
    structure_type: StructureType | None = None
    structure_path: tuple[str, ...] = ()


@dataclass(slots=True, frozen=True)
class StructuredChunk:
    """A retrieval unit emitted by the chunk assembler."""

    content: str
    context_header: str
    page_number: int | None
    chunk_index: int
    metadata: ChunkMetadata
    structure: int | None = None


@dataclass(slots=True)
class SmartChunkingResult:
    chunks: list[StructuredChunk]
    cost: float = 0.0
    tokens_used: int = 0
    structures_detected: int = 0


@dataclass(slots=True)
class SemanticChunkResult:
    """Chunk texts with approximate start positions in the input text."""

    chunks: list[str]
    chunk_positions: list[int]
    cost: float = 0.0
    tokens_used: int = 0


@dataclass(slots=True)
class TextValidationResult:
    valid: bool
    issues: list[str]
    sanitized: str
    original_length: int
    sanitized_length: int
    removed_chars: int


@dataclass(slots=True)
class BatchSanitizationResult:
    sanitized_texts: list[str]
    valid_indices: list[int]
    invalid_indices: list[int]
    total_issues: int
    issues_by_index: dict[int, list[str]]


@dataclass(slots=True)
class EmbeddingResult:
    embedding: list[float]
    tokens: int
    cost: float


@dataclass(slots=True)
class BatchEmbeddingResult:
    """Embeddings aligned 1:1 with the input texts.

    Entries listed in `failed_indices` hold zero-vector placeholders.
    """

    embeddings: list[list[float]]
    total_tokens: int
    total_cost: float
    failed_indices: list[int] = field(default_factory=list)
    issues_by_index: dict[int, list[str]] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class ConversationMessage:
    role: Literal["user", "assistant"]
    content: str


@dataclass(slots=True)
class QueryExpansionResult:
    expanded_query: str
    was_expanded: bool
    cost: float = 0.0
    latency_ms: float = 0.0


@dataclass(slots=True)
class SearchHit:
    """A chunk returned by a similarity search with its cosine score."""

    content: str
    score: float
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class VerificationResult:
    is_unique: bool
    similarity: float
    matched_content: str | None = None
    cost: float = 0.0


@dataclass(slots=True)
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


@dataclass(slots=True)
class Completion:
    """Text and token usage returned by a chat completion call."""

    text: str
    usage: TokenUsage = field(default_factory=TokenUsage)


@dataclass(slots=True)
class EmbeddingResponse:
    vectors: list[list[float]]
    total_tokens: int
