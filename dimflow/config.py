"""Engine configuration: execution settings, validation, YAML/env loading.

ExecutionConfig carries the run configuration surface (worker count,
retries, backoff, timeouts, continue-on-error). Durations are seconds.

Settings can come from code, from a YAML file, or from DIMFLOW_*
environment variables (env wins over the file):

    DIMFLOW_CONCURRENCY=10
    DIMFLOW_MAX_RETRIES=5
    DIMFLOW_RETRY_DELAY=0.5
    DIMFLOW_TIMEOUT=120
    DIMFLOW_CONTINUE_ON_ERROR=false
"""

import logging
import os
from pathlib import Path
from typing import Annotated, Any, Mapping, Optional, Union

import pydantic
import yaml
from pydantic import BaseModel, ConfigDict, Field

from dimflow.errors import ConfigurationError, NoProvidersError, ValidationError
from dimflow.plugin.base import Plugin
from dimflow.providers.registry import ProviderAdapter, ProviderRegistry
from dimflow.schemas import PricingConfig

logger = logging.getLogger(__name__)

# Bounds shared by validation and documentation
MIN_CONCURRENCY = 1
MAX_CONCURRENCY = 10_000
MIN_RETRIES = 0
MAX_RETRIES = 10
MIN_TIMEOUT = 0.1
MAX_TIMEOUT = 600.0

TimeoutSeconds = Annotated[
    float, Field(ge=MIN_TIMEOUT, le=MAX_TIMEOUT, allow_inf_nan=False)
]


class ExecutionConfig(BaseModel):
    """Run configuration consumed by the phase executor."""

    model_config = ConfigDict(extra="forbid")

    concurrency: int = Field(
        default=5,
        ge=MIN_CONCURRENCY,
        le=MAX_CONCURRENCY,
        description="Run-wide limit on in-flight section tasks",
    )
    max_retries: int = Field(
        default=3,
        ge=MIN_RETRIES,
        le=MAX_RETRIES,
        description="Retries per provider after the initial attempt",
    )
    retry_delay: float = Field(
        default=1.0, ge=0, allow_inf_nan=False,
        description="Base backoff in seconds (doubles per attempt)",
    )
    max_retry_delay: float = Field(
        default=10.0, ge=0, allow_inf_nan=False,
        description="Cap on the computed backoff",
    )
    timeout: TimeoutSeconds = Field(default=60.0, description="Default per-dimension timeout")
    dimension_timeouts: dict[str, TimeoutSeconds] = Field(default_factory=dict)
    continue_on_error: bool = True

    def timeout_for(self, dimension: str) -> float:
        return self.dimension_timeouts.get(dimension, self.timeout)


ProvidersSpec = Union[ProviderAdapter, ProviderRegistry, dict]


class EngineConfig(BaseModel):
    """Everything DagEngine needs to run."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    plugin: Optional[Plugin] = None
    providers: Optional[ProvidersSpec] = None
    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    pricing: Optional[PricingConfig] = None


def _to_validation_error(exc: pydantic.ValidationError, prefix: str = "") -> ValidationError:
    first = exc.errors()[0]
    loc = ".".join(str(part) for part in first.get("loc", ()))
    field = f"{prefix}{loc}" if loc else (prefix.rstrip(".") or None)
    return ValidationError(
        f"Invalid value for {field}: {first.get('msg')}",
        field=field,
        details={"value": first.get("input"), "errors": len(exc.errors())},
    )


def build_execution_config(values: Optional[Mapping[str, Any]] = None) -> ExecutionConfig:
    """Validate raw execution settings.

    Raises:
        ValidationError: If any numeric setting is out of range or mistyped.
    """
    try:
        return ExecutionConfig.model_validate(dict(values or {}))
    except pydantic.ValidationError as e:
        raise _to_validation_error(e, prefix="execution.") from e


def validate_engine_config(config: EngineConfig) -> None:
    """Check required setup before an engine is built.

    Raises:
        ConfigurationError: plugin or providers missing.
        NoProvidersError: an adapter/registry was given but is empty.
        ValidationError: the plugin declares no usable dimensions.
    """
    if config.plugin is None:
        raise ConfigurationError("DagEngine requires a plugin", {"missing": "plugin"})
    if config.providers is None:
        raise ConfigurationError(
            'DagEngine requires "providers" in configuration',
            {"missing": "providers"},
        )
    if isinstance(config.providers, (ProviderAdapter, ProviderRegistry)):
        if not config.providers.list_providers():
            raise NoProvidersError()

    names = config.plugin.get_dimension_names()
    if not names:
        raise ValidationError("Plugin declares no dimensions", field="plugin.dimensions")
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise ValidationError(
            f"Duplicate dimension names: {', '.join(duplicates)}",
            field="plugin.dimensions",
            details={"duplicates": duplicates},
        )


def _env_overrides(env: Mapping[str, str]) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    mapping = {
        "DIMFLOW_CONCURRENCY": "concurrency",
        "DIMFLOW_MAX_RETRIES": "max_retries",
        "DIMFLOW_RETRY_DELAY": "retry_delay",
        "DIMFLOW_MAX_RETRY_DELAY": "max_retry_delay",
        "DIMFLOW_TIMEOUT": "timeout",
    }
    for env_key, field_name in mapping.items():
        if env.get(env_key):
            overrides[field_name] = env[env_key]
    if env.get("DIMFLOW_CONTINUE_ON_ERROR"):
        overrides["continue_on_error"] = env["DIMFLOW_CONTINUE_ON_ERROR"].lower() in (
            "1", "true", "yes",
        )
    return overrides


def load_execution_config(
    path: Optional[Union[str, Path]] = None,
    env: Optional[Mapping[str, str]] = None,
) -> ExecutionConfig:
    """Load execution settings from an optional YAML file plus env overrides.

    The YAML file may hold the settings at top level or under an
    ``execution:`` key.
    """
    values: dict[str, Any] = {}
    if path is not None:
        path = Path(path)
        if not path.exists():
            raise ConfigurationError(f"Config file not found: {path}", {"path": str(path)})
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Config file must contain a mapping: {path}", {"path": str(path)}
            )
        section = data.get("execution", data)
        if not isinstance(section, dict):
            raise ConfigurationError(
                f"'execution' in {path} must be a mapping", {"path": str(path)}
            )
        values.update(section)
        logger.info(f"Loaded execution config from {path}")

    overrides = _env_overrides(os.environ if env is None else env)
    if overrides:
        logger.info(f"Applying env overrides: {sorted(overrides)}")
        values.update(overrides)

    return build_execution_config(values)
