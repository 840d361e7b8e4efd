"""Cost accounting and latency timing for provider calls."""

from __future__ import annotations

import time
from dataclasses import dataclass

import structlog

log = structlog.get_logger(__name__)

DEFAULT_LLM_MODEL = "gpt-4o-mini"


@dataclass(slots=True, frozen=True)
class CostModel:
    """Token pricing model (USD per 1M tokens)."""

    input_per_million: float
    output_per_million: float

    def estimate_cost(self, input_tokens: int, output_tokens: int) -> float:
        return (
            input_tokens * self.input_per_million + output_tokens * self.output_per_million
        ) / 1_000_000


MODEL_PRICING: dict[str, CostModel] = {
    "gpt-4o-mini": CostModel(input_per_million=0.15, output_per_million=0.60),
    "gpt-4o": CostModel(input_per_million=2.50, output_per_million=10.00),
}


def cost_model_for(model: str) -> CostModel:
    """Return pricing for `model`, falling back to the default model's pricing."""
    pricing = MODEL_PRICING.get(model)
    if pricing is None:
        log.warning("pricing.unknown_model", model=model, fallback=DEFAULT_LLM_MODEL)
        return MODEL_PRICING[DEFAULT_LLM_MODEL]
    return pricing


class Timer:
    """Simple context timer used around provider calls."""

    def __init__(self) -> None:
        self._start = 0.0
        self.elapsed_ms = 0.0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000.0
