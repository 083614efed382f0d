import pydantic
import pytest

from dimflow.schemas import DimensionResult, ProviderMetadata, TokenUsage


def test_dimension_result_rejects_data_and_error():
    with pytest.raises(pydantic.ValidationError, match="both data and error"):
        DimensionResult(data="x", error="y")


def test_dimension_result_success_or_error():
    assert not DimensionResult(data="x").is_error
    assert DimensionResult(error="boom").is_error
    assert DimensionResult(data=None, error="boom").data is None


def test_token_total_is_filled():
    assert TokenUsage(input_tokens=3, output_tokens=4).total_tokens == 7
    assert TokenUsage(input_tokens=3, output_tokens=4, total_tokens=10).total_tokens == 10


def test_metadata_keeps_provider_keys():
    metadata = ProviderMetadata(model="m", finish_reason="stop")
    assert metadata.model_dump()["finish_reason"] == "stop"
