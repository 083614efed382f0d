"""Cost arithmetic over token usage.

Pricing is expressed per million tokens, per model id:

    pricing:
      models:
        claude-sonnet-4-6: {input_per_1m: 3.0, output_per_1m: 15.0}
"""

import logging
from pathlib import Path
from typing import Optional, Union

import yaml

from dimflow.errors import ConfigurationError
from dimflow.schemas import (
    CostSummary,
    DimensionCost,
    DimensionResult,
    ModelPricing,
    PricingConfig,
    ProviderCost,
    SectionResults,
    TokenUsage,
)

logger = logging.getLogger(__name__)


def load_pricing(path: Union[str, Path]) -> PricingConfig:
    """Load a PricingConfig from YAML (top level or under ``pricing:``)."""
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Pricing file not found: {path}", {"path": str(path)})
    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}
    section = data.get("pricing", data) if isinstance(data, dict) else data
    if not isinstance(section, dict):
        raise ConfigurationError(
            f"Pricing file must contain a mapping: {path}", {"path": str(path)}
        )
    return PricingConfig.model_validate(section)


class CostCalculator:
    """Aggregates cost per dimension and per provider from result metadata."""

    def __init__(self, pricing: PricingConfig):
        self.pricing = pricing

    def get_model_pricing(self, model: str) -> Optional[ModelPricing]:
        return self.pricing.models.get(model)

    def has_pricing_for_model(self, model: str) -> bool:
        return model in self.pricing.models

    def calculate_model_cost(self, model: str, tokens: TokenUsage) -> Optional[float]:
        """USD cost for one call, or None when the model has no pricing."""
        pricing = self.get_model_pricing(model)
        if pricing is None:
            logger.warning(f"No pricing data for model '{model}', skipping cost")
            return None
        return (
            tokens.input_tokens * pricing.input_per_1m
            + tokens.output_tokens * pricing.output_per_1m
        ) / 1_000_000

    def cost_of(self, result: DimensionResult) -> float:
        """Cost of a single result: explicit metadata.cost wins, else priced tokens."""
        metadata = result.metadata
        if metadata is None:
            return 0.0
        if metadata.cost is not None:
            return metadata.cost
        if metadata.tokens is None or not metadata.model:
            return 0.0
        return self.calculate_model_cost(metadata.model, metadata.tokens) or 0.0

    def calculate(
        self,
        section_results: list[SectionResults],
        global_results: dict[str, DimensionResult],
    ) -> CostSummary:
        summary = CostSummary()
        input_tokens = 0
        output_tokens = 0

        results = [
            (dimension, result)
            for entry in section_results
            for dimension, result in entry.results.items()
        ]
        results.extend(global_results.items())

        for dimension, result in results:
            metadata = result.metadata
            if metadata is None or metadata.tokens is None or not metadata.model:
                continue
            cost = self.calculate_model_cost(metadata.model, metadata.tokens)
            if cost is None:
                continue

            tokens = metadata.tokens
            provider = metadata.provider or "unknown"
            self._add_dimension_cost(summary, dimension, cost, tokens, metadata.model, provider)
            self._add_provider_cost(summary, provider, cost, tokens, metadata.model)

            summary.total_cost += cost
            input_tokens += tokens.input_tokens
            output_tokens += tokens.output_tokens

        summary.total_tokens = input_tokens + output_tokens
        return summary

    @staticmethod
    def _add_dimension_cost(
        summary: CostSummary,
        dimension: str,
        cost: float,
        tokens: TokenUsage,
        model: str,
        provider: str,
    ) -> None:
        entry = summary.by_dimension.get(dimension)
        if entry is None:
            entry = DimensionCost(model=model, provider=provider)
            summary.by_dimension[dimension] = entry
        entry.cost += cost
        entry.tokens = _add_tokens(entry.tokens, tokens)

    @staticmethod
    def _add_provider_cost(
        summary: CostSummary,
        provider: str,
        cost: float,
        tokens: TokenUsage,
        model: str,
    ) -> None:
        entry = summary.by_provider.setdefault(provider, ProviderCost())
        entry.cost += cost
        entry.tokens = _add_tokens(entry.tokens, tokens)
        if model not in entry.models:
            entry.models.append(model)


def _add_tokens(a: TokenUsage, b: TokenUsage) -> TokenUsage:
    return TokenUsage(
        input_tokens=a.input_tokens + b.input_tokens,
        output_tokens=a.output_tokens + b.output_tokens,
        total_tokens=a.total_tokens + b.total_tokens,
    )
