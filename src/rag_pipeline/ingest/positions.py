"""Page combination and chunk-to-source position reconciliation."""

from __future__ import annotations

import re

import structlog

from rag_pipeline.types import CombinedDocument, Page, PageBoundary

log = structlog.get_logger(__name__)

PAGE_SEPARATOR = "\n\n"
HINT_LOOKBEHIND = 500
WATERMARK_RATIO = 0.8
MIN_FRAGMENT_CHARS = 20

_WHITESPACE_RUN = re.compile(r"\s+")


def combine_pages(pages: list[Page]) -> CombinedDocument:
    """Join trimmed, non-empty pages with a blank line, recording each page's range."""
    parts: list[str] = []
    boundaries: list[PageBoundary] = []
    position = 0

    for page in pages:
        text = page.text.strip()
        if not text:
            continue
        if parts:
            position += len(PAGE_SEPARATOR)
        boundaries.append(PageBoundary(page.page_number, position, position + len(text)))
        parts.append(text)
        position += len(text)

    return CombinedDocument(full_text=PAGE_SEPARATOR.join(parts), boundaries=boundaries)


def find_chunk_start(
    full_text: str,
    chunk_content: str,
    search_hint: int,
    chunk_index: int,
    total_chunks: int,
) -> int:
    """Locate where `chunk_content` starts in `full_text`.

    Strategies, first hit wins:
      1. first 150 chars, searched from ``search_hint - 500``
      2. first 80 chars, same start
      3. first 150 chars, from the beginning
      4. first 50 chars, from the beginning
      5. whitespace-collapsed search starting at the proportional position
      6. whitespace-collapsed search from the beginning

    Falls back to the proportional estimate
    ``chunk_index / total_chunks * len(full_text)``, never to the hint.
    """
    proportional = int(chunk_index / max(total_chunks, 1) * len(full_text))
    hinted_start = max(0, search_hint - HINT_LOOKBEHIND)
    fragment = chunk_content[:150]

    if len(fragment.strip()) < MIN_FRAGMENT_CHARS:
        # Short prefixes are too ambiguous to search for from the top.
        found = full_text.find(fragment, hinted_start) if fragment else -1
        return found if found != -1 else proportional

    for needle, start in (
        (fragment, hinted_start),
        (chunk_content[:80], hinted_start),
        (fragment, 0),
        (chunk_content[:50], 0),
    ):
        found = full_text.find(needle, start)
        if found != -1:
            return found

    normalized_text = _WHITESPACE_RUN.sub(" ", full_text)
    normalized_needle = _WHITESPACE_RUN.sub(" ", fragment).strip()
    if normalized_text and normalized_needle:
        scale = len(full_text) / len(normalized_text)
        normalized_start = int(chunk_index / max(total_chunks, 1) * len(normalized_text))
        for start in (normalized_start, 0):
            found = normalized_text.find(normalized_needle, start)
            if found != -1:
                return min(int(found * scale), max(len(full_text) - 1, 0))

    log.warning(
        "reconcile.fallback",
        chunk_index=chunk_index,
        total_chunks=total_chunks,
        position=proportional,
    )
    return proportional


def find_page_for_position(boundaries: list[PageBoundary], position: int) -> int | None:
    """Page number containing `position`.

    The two separator characters after a page count as part of that page.
    Positions past the last page map to the last page.
    """
    if not boundaries:
        return None
    for boundary in boundaries:
        if boundary.start_pos <= position < boundary.end_pos + len(PAGE_SEPARATOR):
            return boundary.page_number
    if position >= boundaries[-1].end_pos:
        return boundaries[-1].page_number
    return boundaries[0].page_number


def advance_watermark(last_known: int, chunk_start: int, chunk_length: int) -> int:
    """Move the search watermark to ~80% into the chunk just placed; never backwards."""
    return max(last_known, chunk_start + int(chunk_length * WATERMARK_RATIO))
