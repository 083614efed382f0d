import pytest

from dimflow.config import ExecutionConfig
from dimflow.engine import DagEngine
from dimflow.providers.registry import ProviderAdapter
from tests.helpers import MockProvider


def build_adapter(*providers) -> ProviderAdapter:
    adapter = ProviderAdapter()
    for provider in providers:
        adapter.register_provider(provider)
    return adapter


@pytest.fixture
def mock_provider():
    return MockProvider()


@pytest.fixture
def fast_config():
    """No backoff delays."""
    return ExecutionConfig(retry_delay=0, max_retry_delay=0, timeout=5)


@pytest.fixture
def make_engine(fast_config):
    def _make(plugin, *providers, **execution):
        config = fast_config.model_copy(update=execution)
        return DagEngine(plugin=plugin, providers=build_adapter(*providers), execution=config)
    return _make
