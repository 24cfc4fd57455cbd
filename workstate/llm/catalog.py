"""Known chat models with pricing and capability flags."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict

from ..models import TokenUsage


@dataclass(frozen=True)
class ModelSpec:
    identifier: str
    display_name: str
    input_cost_per_million: float = 0.0
    output_cost_per_million: float = 0.0
    supports_structured_output: bool = False

    def estimate_cost(self, usage: TokenUsage) -> float:
        """USD cost of ``usage`` at this model's list price."""
        return (
            usage.prompt_tokens * self.input_cost_per_million
            + usage.completion_tokens * self.output_cost_per_million
        ) / 1_000_000


MODEL_CATALOG: Dict[str, ModelSpec] = {
    spec.identifier: spec
    for spec in (
        ModelSpec("anthropic/claude-opus-4.5", "Claude Opus 4.5", 15.00, 75.00, True),
        ModelSpec("anthropic/claude-sonnet-4", "Claude Sonnet 4", 3.00, 15.00, True),
        ModelSpec("anthropic/claude-3.5-haiku", "Claude 3.5 Haiku", 1.00, 5.00, False),
        ModelSpec("openai/gpt-4o", "GPT-4o", 2.50, 10.00, True),
        ModelSpec("openai/gpt-4o-mini", "GPT-4o Mini", 0.15, 0.60, True),
        ModelSpec("openai/gpt-5.2-nano", "GPT-5.2 Nano", 0.10, 0.40, True),
        ModelSpec("openai/o1", "o1", 15.00, 60.00, True),
        ModelSpec("openai/o1-mini", "o1-mini", 3.00, 12.00, True),
        ModelSpec("deepseek/deepseek-r1", "DeepSeek R1", 0.55, 2.19, False),
    )
}


def lookup_model(identifier: str) -> ModelSpec:
    """Return the catalog entry, or a zero-cost entry without structured output."""
    spec = MODEL_CATALOG.get(identifier)
    if spec is not None:
        return spec
    return ModelSpec(identifier=identifier, display_name=identifier)


__all__ = ["MODEL_CATALOG", "ModelSpec", "lookup_model"]
