"""Checks that a generated test question has no answer in a tenant's corpus."""

from __future__ import annotations

import re

import structlog

from rag_pipeline.errors import ConfigurationError
from rag_pipeline.ingest.embedder import EmbeddingBatcher
from rag_pipeline.retrieval.vector_store import ChunkStore
from rag_pipeline.types import VerificationResult

log = structlog.get_logger(__name__)

# Colloquial terms mapped to the wording HR documents tend to use instead.
VERIFICATION_EXPANSIONS: dict[str, tuple[str, ...]] = {
    "teamuitje": ("afdelingsuitje", "sociale activiteit", "bedrijfsuitje", "teambuilding"),
    "teamuitjes": ("afdelingsuitjes", "sociale activiteiten", "bedrijfsuitjes"),
    "borrel": ("afdelingsuitje", "sociale activiteit", "personeelsfeest", "bedrijfsfeest"),
    "borrels": ("afdelingsuitjes", "sociale activiteiten", "personeelsfeesten"),
    "uitstapje": ("afdelingsuitje", "teamuitje", "bedrijfsuitje"),
    "feest": ("personeelsfeest", "afdelingsuitje", "bedrijfsfeest"),
    "feesten": ("personeelsfeesten", "afdelingsuitjes", "bedrijfsfeesten"),
    "activiteit": ("afdelingsuitje", "teambuilding", "sociale activiteit"),
    "activiteiten": ("afdelingsuitjes", "teambuilding", "sociale activiteiten"),
}

SYNONYMS_PER_TERM = 2
MAX_VARIANTS = 3
MATCHED_CONTENT_CHARS = 200


def expand_question_for_verification(question: str) -> list[str]:
    """The question itself followed by synonym rewrites, at most three in total."""
    variants = [question]
    lowered = question.lower()
    for term, synonyms in VERIFICATION_EXPANSIONS.items():
        if term not in lowered:
            continue
        pattern = re.compile(re.escape(term), re.IGNORECASE)
        for synonym in synonyms[:SYNONYMS_PER_TERM]:
            variant = pattern.sub(synonym, question)
            if variant not in variants:
                variants.append(variant)
    return variants[:MAX_VARIANTS]


class CorpusVerifier:
    """Searches the corpus with every variant of a question.

    A question counts as unique only when the best similarity across all
    variants stays below `uniqueness_threshold`. Variants whose embedding or
    search fails are skipped; when no variant could be checked at all the
    question is rejected rather than accepted blind.
    """

    def __init__(
        self,
        store: ChunkStore,
        batcher: EmbeddingBatcher,
        *,
        top_k: int = 8,
        similarity_floor: float = 0.25,
        uniqueness_threshold: float = 0.60,
    ) -> None:
        self.store = store
        self.batcher = batcher
        self.top_k = top_k
        self.similarity_floor = similarity_floor
        self.uniqueness_threshold = uniqueness_threshold

    def verify_not_in_corpus(self, tenant_id: str, question: str) -> VerificationResult:
        variants = expand_question_for_verification(question)
        max_similarity = 0.0
        matched_content: str | None = None
        cost = 0.0
        checked = 0

        for variant in variants:
            try:
                embedded = self.batcher.embed(variant)
                cost += embedded.cost
                hits = self.store.similarity_search(
                    tenant_id, embedded.embedding, variant, self.top_k, self.similarity_floor
                )
            except ConfigurationError:
                raise
            except Exception as exc:
                log.warning("verify.variant_failed", variant=variant, error=str(exc))
                continue

            checked += 1
            for hit in hits:
                if hit.score > max_similarity:
                    max_similarity = hit.score
                    matched_content = hit.content[:MATCHED_CONTENT_CHARS]
            if max_similarity >= self.uniqueness_threshold:
                break

        if checked == 0:
            log.warning("verify.unchecked", tenant_id=tenant_id, variants=len(variants))
            return VerificationResult(is_unique=False, similarity=0.0, cost=cost)

        is_unique = max_similarity < self.uniqueness_threshold
        log.info(
            "verify.done",
            tenant_id=tenant_id,
            is_unique=is_unique,
            similarity=round(max_similarity, 4),
            variants_checked=checked,
        )
        return VerificationResult(
            is_unique=is_unique,
            similarity=max_similarity,
            matched_content=matched_content,
            cost=cost,
        )
