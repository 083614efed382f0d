import pytest

from dimflow.analysis.cost_calculator import CostCalculator, load_pricing
from dimflow.errors import ConfigurationError
from dimflow.schemas import (
    DimensionResult,
    ModelPricing,
    PricingConfig,
    ProviderMetadata,
    SectionData,
    SectionResults,
    TokenUsage,
)

PRICING = PricingConfig(models={
    "small": ModelPricing(input_per_1m=0.5, output_per_1m=1.5),
    "large": ModelPricing(input_per_1m=3.0, output_per_1m=15.0),
})


def _result(model, provider, input_tokens, output_tokens, cost=None):
    return DimensionResult(
        data="x",
        metadata=ProviderMetadata(
            model=model,
            provider=provider,
            tokens=TokenUsage(input_tokens=input_tokens, output_tokens=output_tokens),
            cost=cost,
        ),
    )


def test_model_cost():
    calculator = CostCalculator(PRICING)
    tokens = TokenUsage(input_tokens=2_000_000, output_tokens=1_000_000)

    assert calculator.calculate_model_cost("small", tokens) == pytest.approx(2.5)
    assert calculator.calculate_model_cost("unknown", tokens) is None
    assert calculator.has_pricing_for_model("large")
    assert not calculator.has_pricing_for_model("unknown")


def test_cost_of_prefers_explicit_cost():
    calculator = CostCalculator(PRICING)

    assert calculator.cost_of(_result("large", "p", 1_000_000, 0, cost=0.25)) == 0.25
    assert calculator.cost_of(_result("large", "p", 1_000_000, 0)) == pytest.approx(3.0)
    assert calculator.cost_of(DimensionResult(data="x")) == 0.0
    assert calculator.cost_of(_result("unknown", "p", 10, 10)) == 0.0


def test_summary_by_dimension_and_provider():
    calculator = CostCalculator(PRICING)
    section_results = [
        SectionResults(section=SectionData(content="a"), results={
            "tag": _result("small", "anthropic", 1_000_000, 0),
            "skip": DimensionResult(data={"skipped": True}, metadata=ProviderMetadata(skipped=True)),
        }),
        SectionResults(section=SectionData(content="b"), results={
            "tag": _result("small", "anthropic", 1_000_000, 0),
        }),
    ]
    global_results = {
        "summary": _result("large", "gemini", 0, 100_000),
        "unpriced": _result("mystery", "gemini", 500, 500),
    }

    summary = calculator.calculate(section_results, global_results)

    assert summary.total_cost == pytest.approx(2.5)
    assert summary.total_tokens == 2_100_000
    assert summary.by_dimension["tag"].cost == pytest.approx(1.0)
    assert summary.by_dimension["tag"].tokens.input_tokens == 2_000_000
    assert summary.by_dimension["summary"].model == "large"
    assert set(summary.by_dimension) == {"tag", "summary"}
    assert summary.by_provider["anthropic"].models == ["small"]
    assert summary.by_provider["gemini"].cost == pytest.approx(1.5)


def test_load_pricing(tmp_path):
    path = tmp_path / "pricing.yaml"
    path.write_text(
        "pricing:\n"
        "  last_updated: '2026-01-01'\n"
        "  models:\n"
        "    small: {input_per_1m: 0.5, output_per_1m: 1.5}\n"
    )

    pricing = load_pricing(path)

    assert pricing.models["small"].output_per_1m == 1.5
    assert pricing.last_updated == "2026-01-01"


def test_load_pricing_missing_file(tmp_path):
    with pytest.raises(ConfigurationError):
        load_pricing(tmp_path / "missing.yaml")


@pytest.mark.parametrize("content", ["pricing:\n", "- a\n- b\n"])
def test_load_pricing_requires_a_mapping(tmp_path, content):
    path = tmp_path / "pricing.yaml"
    path.write_text(content)
    with pytest.raises(ConfigurationError, match="must contain a mapping"):
        load_pricing(path)
