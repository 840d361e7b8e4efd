"""Boundary scoring and the heuristic (non-LLM) chunkers."""

from __future__ import annotations

import re
from dataclasses import dataclass

from rag_pipeline.config import SmartChunkingOptions
from rag_pipeline.types import DocumentStructure, StructureType

BOUNDARY_SCORES: dict[str, int] = {
    "article_start": 100,
    "chapter_start": 100,
    "section_start": 90,
    "paragraph_end": 70,
    "list_end": 60,
    "sentence_end": 40,
    "colon_newline": 30,
    "clause_end": 10,
}

SEARCH_RADIUS = 300

_STRUCTURE_KINDS = {
    StructureType.ARTICLE: "article_start",
    StructureType.CHAPTER: "chapter_start",
    StructureType.SECTION: "section_start",
}

_LIST_MARKER = r"(?:[•*\-]|\d+[.)]|[a-z][.)])[ \t]"
_TEXT_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("paragraph_end", re.compile(r"\n[ \t]*\n\s*")),
    ("list_end", re.compile(rf"^{_LIST_MARKER}[^\n]*\n(?!{_LIST_MARKER})", re.MULTILINE)),
    ("sentence_end", re.compile(r"[.!?]\s+(?=[A-ZÀ-Ý])")),
    ("colon_newline", re.compile(r":\n")),
    ("clause_end", re.compile(r"[,;]\s+")),
)


@dataclass(slots=True, frozen=True)
class BoundaryCandidate:
    """A position where a chunk may end; the next chunk starts here."""

    position: int
    score: int
    kind: str


def score_boundaries(
    text: str,
    structures: list[DocumentStructure],
    window_start: int,
    window_end: int,
) -> list[BoundaryCandidate]:
    """Collect scored candidates strictly inside ``(window_start, window_end]``."""
    candidates = [
        BoundaryCandidate(node.start_index, BOUNDARY_SCORES[_STRUCTURE_KINDS[node.type]], _STRUCTURE_KINDS[node.type])
        for node in structures
        if window_start < node.start_index < window_end
    ]

    scan_from = max(0, window_start - 2)
    for kind, pattern in _TEXT_PATTERNS:
        for match in pattern.finditer(text, scan_from, window_end):
            position = match.end()
            if window_start < position <= window_end:
                candidates.append(BoundaryCandidate(position, BOUNDARY_SCORES[kind], kind))
    return candidates


def find_best_boundary(
    text: str,
    structures: list[DocumentStructure],
    target_index: int,
    min_size: int,
    max_size: int,
    *,
    chunk_start: int = 0,
) -> int:
    """Pick the best place to end a chunk near `target_index`.

    The window spans ``SEARCH_RADIUS`` characters either side of the target
    but never starts before ``chunk_start + min_size``. The highest score
    wins; ties go to the candidate nearest the target. The result never
    exceeds ``chunk_start + max_size`` and is always past `chunk_start`.
    """
    length = len(text)
    if target_index >= length:
        return length

    limit = min(length, chunk_start + max_size)
    window_start = max(chunk_start + min_size, target_index - SEARCH_RADIUS)
    window_end = min(length, target_index + SEARCH_RADIUS, limit)

    candidates = score_boundaries(text, structures, window_start, window_end)
    if candidates:
        best = max(candidates, key=lambda c: (c.score, -abs(c.position - target_index))).position
    else:
        best = target_index
    return max(chunk_start + 1, min(best, limit))


def smart_boundary_chunk(
    text: str,
    structures: list[DocumentStructure],
    options: SmartChunkingOptions,
) -> list[str]:
    """Split `text` at scored boundaries, stepping back by the overlap each time."""
    chunks: list[str] = []
    length = len(text)
    overlap = options.overlap_chars
    start = 0

    while start < length:
        target_end = start + options.target_chunk_size
        if target_end >= length:
            _append(chunks, text[start:])
            break

        boundary = find_best_boundary(
            text,
            structures,
            target_end,
            options.min_chunk_size,
            options.max_chunk_size,
            chunk_start=start,
        )
        _append(chunks, text[start:boundary])

        next_start = min(_next_word_start(text, boundary - overlap), boundary)
        start = next_start if next_start > start else boundary

    return chunks


def legacy_chunk(text: str, options: SmartChunkingOptions) -> list[str]:
    """Fixed-size chunks that back off to the last full stop, else the last whitespace."""
    chunks: list[str] = []
    length = len(text)
    size = options.target_chunk_size
    overlap = options.overlap_chars
    start = 0

    while start < length:
        end = min(start + size, length)
        if end < length:
            floor = start + options.min_chunk_size
            stop = text.rfind(". ", floor, end)
            if stop != -1:
                end = stop + 1
            else:
                space = max(text.rfind(" ", floor, end), text.rfind("\n", floor, end))
                if space > start:
                    end = space
        _append(chunks, text[start:end])
        if end >= length:
            break
        next_start = min(_next_word_start(text, end - overlap), end)
        start = next_start if next_start > start else end

    return chunks


def _next_word_start(text: str, position: int) -> int:
    position = max(0, position)
    while 0 < position < len(text) and not text[position - 1].isspace():
        position += 1
    return position


def _append(chunks: list[str], piece: str) -> None:
    piece = piece.strip()
    if piece:
        chunks.append(piece)
