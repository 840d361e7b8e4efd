"""Heading detection for chapters, articles and sections."""

from __future__ import annotations

import bisect
import re
from collections import Counter
from dataclasses import dataclass

from rag_pipeline.types import DocumentStructure, StructureType


@dataclass(slots=True, frozen=True)
class HeadingPattern:
    """A line-anchored heading pattern.

    Group 1 is the identifier number, group 2 the (optional) title.
    """

    type: StructureType
    pattern: re.Pattern[str]
    level: int


_ROMAN = r"[IVXLCDM]+"
_NUMBER = r"\d+(?:\.\d+)*[a-z]?"

HEADING_PATTERNS: tuple[HeadingPattern, ...] = (
    HeadingPattern(
        type=StructureType.CHAPTER,
        pattern=re.compile(
            rf"^[ \t]*((?:Hoofdstuk|HOOFDSTUK|Chapter|CHAPTER)[ \t]+(?:\d+|{_ROMAN}))\b[.:\-]?[ \t]*([^\n]{{0,100}})$",
            re.MULTILINE,
        ),
        level=1,
    ),
    HeadingPattern(
        type=StructureType.ARTICLE,
        pattern=re.compile(
            rf"^[ \t]*((?:Artikel|ARTIKEL|Article|ARTICLE|Art\.)[ \t]*(?:{_NUMBER}|{_ROMAN}))\b[.:\-]?[ \t]*([^\n]{{0,100}})$",
            re.MULTILINE,
        ),
        level=2,
    ),
    HeadingPattern(
        type=StructureType.SECTION,
        pattern=re.compile(
            rf"^[ \t]*((?:Paragraaf|PARAGRAAF|Section|SECTION|Sectie|§)[ \t]*{_NUMBER})\b[.:\-]?[ \t]*([^\n]{{0,100}})$",
            re.MULTILINE,
        ),
        level=3,
    ),
    # Bare dotted headings such as "4.3.1 Vakantiegeld"; requires a capitalised title.
    HeadingPattern(
        type=StructureType.SECTION,
        pattern=re.compile(
            r"^[ \t]*(\d+\.\d+(?:\.\d+)*)\.?[ \t]+([A-ZÀ-Ý][^\n]{1,100})$",
            re.MULTILINE,
        ),
        level=3,
    ),
)


@dataclass(slots=True)
class _Match:
    type: StructureType
    identifier: str
    title: str
    start: int
    level: int


def detect_structure(text: str) -> list[DocumentStructure]:
    """Detect heading nodes in document order.

    Parents are assigned from a level stack: each node's parent is the nearest
    preceding node with a smaller level. A node's range runs to the next node
    of the same or a smaller level, or to the end of the text.
    """
    if not text:
        return []

    by_start: dict[int, _Match] = {}
    for heading in HEADING_PATTERNS:
        for match in heading.pattern.finditer(text):
            start = match.start(1)
            identifier = " ".join(match.group(1).split())
            title = _clean_title(match.group(2) or "")
            level = heading.level + _extra_depth(identifier, heading.type)
            current = by_start.get(start)
            if current is None or level > current.level:
                by_start[start] = _Match(heading.type, identifier, title, start, level)

    matches = [by_start[start] for start in sorted(by_start)]
    parents: list[int | None] = []
    stack: list[int] = []
    for index, match in enumerate(matches):
        while stack and matches[stack[-1]].level >= match.level:
            stack.pop()
        parents.append(stack[-1] if stack else None)
        stack.append(index)

    structures: list[DocumentStructure] = []
    for index, match in enumerate(matches):
        end = len(text)
        for later in matches[index + 1 :]:
            if later.level <= match.level:
                end = later.start
                break
        structures.append(
            DocumentStructure(
                index=index,
                type=match.type,
                identifier=match.identifier,
                title=match.title,
                start_index=match.start,
                level=match.level,
                end_index=end,
                parent=parents[index],
            )
        )
    return structures


def _clean_title(raw: str) -> str:
    return raw.strip().strip(".:-").strip()


def _extra_depth(identifier: str, structure_type: StructureType) -> int:
    """Dotted section numbers nest one level deeper per extra component."""
    if structure_type is not StructureType.SECTION:
        return 0
    number = identifier.split()[-1].lstrip("§")
    return max(0, number.count(".") - 1)


def find_structure_at_position(
    structures: list[DocumentStructure], pos: int
) -> DocumentStructure | None:
    """Return the deepest node whose range contains `pos`, or None.

    Walks up from the last node starting at or before `pos` until a node's
    range contains it.
    """
    if not structures:
        return None
    starts = [node.start_index for node in structures]
    idx = bisect.bisect_right(starts, pos) - 1
    if idx < 0:
        return None
    node = structures[idx]
    while node is not None and not node.start_index <= pos < node.end_index:
        node = structures[node.parent] if node.parent is not None else None
    return node


def _ancestry(structures: list[DocumentStructure], node: DocumentStructure) -> list[DocumentStructure]:
    chain: list[DocumentStructure] = []
    current: DocumentStructure | None = node
    while current is not None:
        chain.append(current)
        current = structures[current.parent] if current.parent is not None else None
    chain.reverse()
    return chain


def build_structure_path(
    structures: list[DocumentStructure], node: DocumentStructure | None
) -> list[str]:
    """Root-to-leaf labels ("identifier title") for `node`."""
    if node is None:
        return []
    return [item.label for item in _ancestry(structures, node)]


def generate_context_header(
    document_name: str,
    structure: DocumentStructure | None,
    all_structures: list[DocumentStructure],
    pos: int,
) -> str:
    """Breadcrumb such as ``"cao.pdf > Hoofdstuk 4 > Artikel 4.3"``."""
    node = structure if structure is not None else find_structure_at_position(all_structures, pos)
    parts = [document_name] if document_name else []
    if node is not None:
        parts.extend(item.identifier or item.title for item in _ancestry(all_structures, node))
    return " > ".join(part for part in parts if part)


def get_structure_summary(structures: list[DocumentStructure]) -> str:
    if not structures:
        return "no structure detected"
    counts = Counter(node.type for node in structures)
    parts = []
    for structure_type in StructureType:
        count = counts.get(structure_type, 0)
        if count:
            noun = structure_type.value if count == 1 else f"{structure_type.value}s"
            parts.append(f"{count} {noun}")
    return ", ".join(parts)
