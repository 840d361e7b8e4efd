import pytest

from rag_pipeline.ingest.sanitizer import (
    estimate_token_count,
    exceeds_token_limit,
    sanitize,
    sanitize_batch,
    validate_for_embedding,
)

_SAMPLES = [
    "ﬁnanciële “regeling” – artikel 3…",
    "  regel een  \r\n\r\n\r\n\tregel twee ",
    "a\x00b\u200bc\u00add",
    "● eerste punt\n▪ tweede punt\n•",
    "prijs: € 100 of £ 80 (½ dag)",
    "lone \ud800 surrogate and pair \ud83d\ude00",
    "e\u200b\u0301 combining",
    "private \ue000\uf8ff use and \ufffd replacement",
    "\u00a0\u2003spaces\u3000everywhere\t\t",
    "",
]


def test_sanitize_replaces_pdf_artifacts() -> None:
    assert sanitize("ﬁnanciële “regeling” – artikel 3…") == 'financiële "regeling" - artikel 3...'
    assert sanitize("‘kort’ — lang") == "'kort' - lang"
    assert sanitize("© 2024 ACME™") == "(c) 2024 ACME(TM)"
    assert sanitize("prijs: € 100") == "prijs: EUR 100"
    assert sanitize("¼ dag") == "1/4 dag"


def test_sanitize_removes_invisible_and_control_characters() -> None:
    assert sanitize("a\x00b\u200bc\u00add\ufeff") == "abcd"
    assert sanitize("font \ue000glyph\ufffd") == "font glyph"


def test_sanitize_normalizes_whitespace() -> None:
    raw = "  regel een  \r\n\r\n\r\n\tregel   twee "
    assert sanitize(raw) == "regel een\n\nregel twee"


def test_sanitize_normalizes_bullets() -> None:
    assert sanitize("● eerste\n■   tweede") == "• eerste\n• tweede"


def test_sanitize_drops_lone_surrogates_and_keeps_pairs() -> None:
    assert sanitize("abc\ud800def") == "abcdef"
    assert sanitize("smile \ud83d\ude00") == "smile \U0001f600"


def test_sanitize_is_total_for_non_strings() -> None:
    assert sanitize(None) == ""
    assert sanitize(42) == ""
    assert sanitize("") == ""


@pytest.mark.parametrize("text", _SAMPLES)
def test_sanitize_is_idempotent(text: str) -> None:
    once = sanitize(text)
    assert sanitize(once) == once


def test_validate_for_embedding_reports_issue_categories() -> None:
    result = validate_for_embedding("tekst\ufffd met \ue000 glyph\u200b")

    assert not result.valid
    assert "Contains replacement characters (encoding issues)" in result.issues
    assert "Contains Private Use Area characters (custom PDF fonts)" in result.issues
    assert "Contains zero-width characters" in result.issues
    assert result.sanitized == "tekst met glyph"
    assert result.removed_chars == result.original_length - result.sanitized_length


def test_validate_for_embedding_flags_empty_text() -> None:
    assert validate_for_embedding("").issues == ["Text is empty or not a string"]

    only_invisible = validate_for_embedding("\u200b\u200c")
    assert "Text is empty after sanitization" in only_invisible.issues
    assert not only_invisible.valid


def test_validate_for_embedding_accepts_clean_text() -> None:
    result = validate_for_embedding("Werknemers hebben recht op 25 vakantiedagen.")
    assert result.valid
    assert result.issues == []


def test_validate_for_embedding_reports_lone_surrogates_only() -> None:
    assert "Contains invalid surrogate pairs" in validate_for_embedding("x\udc00y").issues
    assert "Contains invalid surrogate pairs" not in validate_for_embedding(
        "x\ud83d\ude00y"
    ).issues


def test_estimate_token_count_weights_digits_and_urls() -> None:
    assert estimate_token_count("") == 0
    assert estimate_token_count("abcdefg") == 2
    assert estimate_token_count("1234") == 2 + 2
    assert estimate_token_count("see https://a.b/c") == 5 + 7


def test_exceeds_token_limit() -> None:
    assert exceeds_token_limit("x" * 40_000)
    assert not exceeds_token_limit("kort")
    assert exceeds_token_limit("x" * 100, limit=10)


def test_sanitize_batch_splits_valid_and_invalid() -> None:
    result = sanitize_batch(["goed", "", "\u200b", "fout\ufffd teken"])

    assert result.sanitized_texts == ["goed", "", "", "fout teken"]
    assert result.valid_indices == [0, 3]
    assert result.invalid_indices == [1, 2]
    assert set(result.issues_by_index) == {1, 2, 3}
    assert result.total_issues == sum(len(v) for v in result.issues_by_index.values())
