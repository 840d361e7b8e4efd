"""Text sanitization for PDF/DOCX extractions before chunking and embedding."""

from __future__ import annotations

import math
import re
import unicodedata

import structlog

from rag_pipeline.types import BatchSanitizationResult, TextValidationResult

log = structlog.get_logger(__name__)

DEFAULT_TOKEN_LIMIT = 8191

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
_ZERO_WIDTH_CHARS = re.compile(
    "[\u200b-\u200f\u2028-\u202f\u2060-\u206f\ufeff\u00ad\u180e\u061c]"
)
_SURROGATES = re.compile("[\ud800-\udfff]")
_SURROGATE_PAIR = re.compile("[\ud800-\udbff][\udc00-\udfff]")
_PRIVATE_USE = re.compile("[\ue000-\uf8ff]")
_SPECIALS = re.compile("[\ufff0-\ufffb]")
_REPLACEMENT_CHAR = "\ufffd"

_LIGATURES = {
    "ﬁ": "fi",
    "ﬂ": "fl",
    "ﬀ": "ff",
    "ﬃ": "ffi",
    "ﬄ": "ffl",
    "ﬅ": "st",
    "ﬆ": "st",
}
_SYMBOLS = {
    "½": "1/2",
    "⅓": "1/3",
    "⅔": "2/3",
    "¼": "1/4",
    "¾": "3/4",
    "©": "(c)",
    "®": "(R)",
    "™": "(TM)",
    "€": "EUR ",
    "£": "GBP ",
    "¥": "JPY ",
    "…": "...",
}
_DOUBLE_QUOTES = re.compile("[“”„‟]")
_SINGLE_QUOTES = re.compile("[‘’‚‛]")
_DASHES = re.compile("[\u2013\u2014\u2015\u2010\u2011\u2012]")
_EXOTIC_SPACES = re.compile("[\u00a0\u2000-\u200a\u202f\u205f\u3000]")
_BULLETS = re.compile("[●○◦◆◇■□▪▫•‣⁃] *")

_MULTI_SPACE = re.compile(r" {2,}")
_LINE_EDGE_SPACES = re.compile(r"^ +| +$", flags=re.MULTILINE)
_EXCESS_NEWLINES = re.compile(r"\n{3,}")

_URL = re.compile(r"https?://\S+")
_DIGIT = re.compile(r"\d")


def sanitize(text: object) -> str:
    """Normalize raw extracted text.

    Total and idempotent: any input yields a string and
    ``sanitize(sanitize(x)) == sanitize(x)``.
    """
    if not isinstance(text, str) or not text:
        return ""

    result = _normalize_unicode(text)
    result = _repair_surrogates(result)
    result = _CONTROL_CHARS.sub("", result)
    result = _ZERO_WIDTH_CHARS.sub("", result)
    result = _replace_pdf_artifacts(result)
    result = _normalize_whitespace(result)
    # Removals above can leave base + combining mark sequences adjacent.
    return _normalize_unicode(result)


def _normalize_unicode(text: str) -> str:
    try:
        return unicodedata.normalize("NFC", text)
    except (TypeError, ValueError) as exc:
        log.warning("sanitize.nfc_failed", error=str(exc))
        return text


def _repair_surrogates(text: str) -> str:
    """Join valid surrogate pairs into their code point and drop lone halves."""
    if not _SURROGATES.search(text):
        return text

    out: list[str] = []
    i = 0
    length = len(text)
    while i < length:
        code = ord(text[i])
        if 0xD800 <= code <= 0xDBFF and i + 1 < length and 0xDC00 <= ord(text[i + 1]) <= 0xDFFF:
            low = ord(text[i + 1])
            out.append(chr(0x10000 + ((code - 0xD800) << 10) + (low - 0xDC00)))
            i += 2
            continue
        if not 0xD800 <= code <= 0xDFFF:
            out.append(text[i])
        i += 1
    return "".join(out)


def _replace_pdf_artifacts(text: str) -> str:
    for source, target in _LIGATURES.items():
        text = text.replace(source, target)
    text = text.replace(_REPLACEMENT_CHAR, "")
    text = _DOUBLE_QUOTES.sub('"', text)
    text = _SINGLE_QUOTES.sub("'", text)
    text = _DASHES.sub("-", text)
    text = _EXOTIC_SPACES.sub(" ", text)
    text = _BULLETS.sub("• ", text)
    for source, target in _SYMBOLS.items():
        text = text.replace(source, target)
    text = _PRIVATE_USE.sub("", text)
    return _SPECIALS.sub("", text)


def _normalize_whitespace(text: str) -> str:
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = text.replace("\t", " ")
    text = _MULTI_SPACE.sub(" ", text)
    text = _LINE_EDGE_SPACES.sub("", text)
    text = _EXCESS_NEWLINES.sub("\n\n", text)
    return text.strip()


def validate_for_embedding(text: object) -> TextValidationResult:
    """Report the problem categories present in `text`; never raises."""
    if not isinstance(text, str) or not text:
        return TextValidationResult(
            valid=False,
            issues=["Text is empty or not a string"],
            sanitized="",
            original_length=0,
            sanitized_length=0,
            removed_chars=0,
        )

    issues: list[str] = []
    if _CONTROL_CHARS.search(text):
        issues.append("Contains control characters")
    if _ZERO_WIDTH_CHARS.search(text):
        issues.append("Contains zero-width characters")
    if _REPLACEMENT_CHAR in text:
        issues.append("Contains replacement characters (encoding issues)")
    if _PRIVATE_USE.search(text):
        issues.append("Contains Private Use Area characters (custom PDF fonts)")
    if _has_lone_surrogate(text):
        issues.append("Contains invalid surrogate pairs")

    sanitized = sanitize(text)
    if not sanitized:
        issues.append("Text is empty after sanitization")

    return TextValidationResult(
        valid=not issues,
        issues=issues,
        sanitized=sanitized,
        original_length=len(text),
        sanitized_length=len(sanitized),
        removed_chars=len(text) - len(sanitized),
    )


def _has_lone_surrogate(text: str) -> bool:
    return bool(_SURROGATES.search(_SURROGATE_PAIR.sub("", text)))


def sanitize_batch(texts: list[str]) -> BatchSanitizationResult:
    """Sanitize many texts, recording per-index issues."""
    sanitized_texts: list[str] = []
    valid_indices: list[int] = []
    invalid_indices: list[int] = []
    issues_by_index: dict[int, list[str]] = {}
    total_issues = 0

    for index, text in enumerate(texts):
        validation = validate_for_embedding(text)
        sanitized_texts.append(validation.sanitized)
        if validation.issues:
            issues_by_index[index] = validation.issues
            total_issues += len(validation.issues)
        if validation.sanitized:
            valid_indices.append(index)
        else:
            invalid_indices.append(index)

    if total_issues:
        log.warning(
            "sanitize.batch_issues",
            texts=len(texts),
            issues=total_issues,
            invalid=len(invalid_indices),
        )
    return BatchSanitizationResult(
        sanitized_texts=sanitized_texts,
        valid_indices=valid_indices,
        invalid_indices=invalid_indices,
        total_issues=total_issues,
        issues_by_index=issues_by_index,
    )


def estimate_token_count(text: str) -> int:
    """Conservative token estimate; numbers and URLs tokenize densely."""
    if not text:
        return 0
    base = math.ceil(len(text) / 3.5)
    digits = len(_DIGIT.findall(text))
    url_chars = sum(len(url) for url in _URL.findall(text))
    return base + math.ceil(digits / 2) + math.ceil(url_chars / 2)


def exceeds_token_limit(text: str, limit: int = DEFAULT_TOKEN_LIMIT) -> bool:
    return estimate_token_count(text) > limit
