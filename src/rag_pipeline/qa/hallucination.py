"""Generates out-of-corpus test questions for hallucination checks."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

import structlog
from langchain_core.prompts import ChatPromptTemplate
from pydantic import BaseModel, Field, ValidationError

from rag_pipeline.errors import ConfigurationError
from rag_pipeline.obs.tracing import DEFAULT_LLM_MODEL, cost_model_for
from rag_pipeline.providers.llm import CompletionClient
from rag_pipeline.qa.verifier import CorpusVerifier

log = structlog.get_logger(__name__)

EXPECTED_ANSWER = "De bot moet aangeven dat dit niet in de documenten staat"
TOPIC_KEY_CHARS = 30
BASE_TEMPERATURE = 0.9
TEMPERATURE_STEP = 0.05

HALLUCINATION_PROMPT = ChatPromptTemplate.from_messages(
    [
        (
            "system",
            "You write test questions for a Dutch HR assistant. Each question must sound like "
            "something an employee would really ask, but concern a topic that an ordinary staff "
            "handbook or collective labour agreement does not cover. Write the question in Dutch. "
            'Respond with JSON only: {{"question": "...", "category": "..."}}',
        ),
        ("human", "Avoid these topics: {avoid}\n\nWrite one new question."),
    ]
)

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


class CandidateQuestion(BaseModel):
    question: str = Field(min_length=5)
    category: str = ""


@dataclass(slots=True)
class GeneratedQuestion:
    question: str
    category: str
    expected_answer: str
    max_similarity: float


@dataclass(slots=True)
class HallucinationGenerationResult:
    questions: list[GeneratedQuestion] = field(default_factory=list)
    cost: float = 0.0
    unfilled_slots: int = 0


def _topic_key(question: str) -> str:
    return question.lower().strip()[:TOPIC_KEY_CHARS]


def parse_candidate(text: str) -> CandidateQuestion | None:
    match = _JSON_OBJECT.search(text or "")
    if match is None:
        return None
    try:
        return CandidateQuestion.model_validate_json(match.group(0))
    except ValidationError:
        return None


class HallucinationQuestionGenerator:
    """Fills `count` slots with verified out-of-corpus questions.

    Each slot gets at most `max_attempts` generations, with temperature
    rising per attempt. Candidates that repeat an earlier topic, fail to
    parse, or match the corpus are discarded. Slots that run out of attempts
    stay empty and are counted in `unfilled_slots`.
    """

    def __init__(
        self,
        client: CompletionClient,
        verifier: CorpusVerifier,
        *,
        model: str = DEFAULT_LLM_MODEL,
        max_attempts: int = 3,
    ) -> None:
        self._client = client
        self._verifier = verifier
        self.model = model
        self.max_attempts = max_attempts

    def generate(self, tenant_id: str, count: int) -> HallucinationGenerationResult:
        result = HallucinationGenerationResult()
        pricing = cost_model_for(self.model)
        used_topics: set[str] = set()

        for slot in range(count):
            attempt = 0
            accepted: GeneratedQuestion | None = None
            while accepted is None and attempt < self.max_attempts:
                attempt += 1
                try:
                    completion = self._client.complete(
                        model=self.model,
                        messages=HALLUCINATION_PROMPT.format_messages(
                            avoid=", ".join(sorted(used_topics)) or "none"
                        ),
                        temperature=BASE_TEMPERATURE + attempt * TEMPERATURE_STEP,
                        max_tokens=200,
                    )
                except ConfigurationError:
                    raise
                except Exception as exc:
                    log.error(
                        "hallucination.generation_failed",
                        slot=slot,
                        attempt=attempt,
                        error=str(exc),
                    )
                    continue
                result.cost += pricing.estimate_cost(
                    completion.usage.prompt_tokens, completion.usage.completion_tokens
                )

                candidate = parse_candidate(completion.text)
                if candidate is None:
                    log.warning("hallucination.unparseable", slot=slot, attempt=attempt)
                    continue
                topic = _topic_key(candidate.question)
                if topic in used_topics:
                    log.info("hallucination.duplicate_topic", slot=slot, attempt=attempt)
                    continue

                verification = self._verifier.verify_not_in_corpus(tenant_id, candidate.question)
                result.cost += verification.cost
                if not verification.is_unique:
                    log.info(
                        "hallucination.in_corpus",
                        slot=slot,
                        attempt=attempt,
                        similarity=verification.similarity,
                    )
                    continue

                used_topics.add(topic)
                accepted = GeneratedQuestion(
                    question=candidate.question,
                    category=candidate.category,
                    expected_answer=EXPECTED_ANSWER,
                    max_similarity=verification.similarity,
                )

            if accepted is None:
                result.unfilled_slots += 1
            else:
                result.questions.append(accepted)

        log.info(
            "hallucination.done",
            tenant_id=tenant_id,
            requested=count,
            generated=len(result.questions),
            cost=result.cost,
        )
        return result
