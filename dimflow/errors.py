"""Typed errors raised by the engine.

Every error carries a stable machine-readable ``code`` plus a ``details``
dict so callers can branch on failures without parsing messages.

Cell-level failures (one dimension for one section) never surface as
exceptions from ``DagEngine.process()``; they are recorded as error-valued
DimensionResults. Only run-level and plan-level failures raise.
"""

from typing import Any, Optional


class DagEngineError(Exception):
    """Base class for all engine errors."""

    def __init__(self, message: str, code: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": type(self).__name__,
            "message": self.message,
            "code": self.code,
            "details": self.details,
        }


# --- Configuration ---


class ConfigurationError(DagEngineError):
    """Missing or inconsistent engine setup."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message, "CONFIGURATION_ERROR", details)


class NoProvidersError(ConfigurationError):
    def __init__(self):
        super().__init__(
            "DagEngine requires at least one provider to be configured",
            {"configured": 0},
        )


class NoSectionsError(ConfigurationError):
    def __init__(self):
        super().__init__(
            "DagEngine.process() requires at least one section",
            {"provided": 0},
        )


class ValidationError(DagEngineError):
    """A configuration value is out of range or of the wrong type."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        merged: dict[str, Any] = {}
        if field is not None:
            merged["field"] = field
        if details:
            merged.update(details)
        super().__init__(message, "VALIDATION_ERROR", merged)
        self.field = field


# --- Graph ---


class CircularDependencyError(DagEngineError):
    """The dependency map contains a cycle.

    ``cycle`` is the offending path with the first dimension repeated at the
    end, e.g. ``["a", "b", "c", "a"]``.
    """

    def __init__(self, cycle: list[str]):
        super().__init__(
            f"Circular dependency detected: {' -> '.join(cycle)}\n"
            "Please review your define_dependencies() configuration.",
            "CIRCULAR_DEPENDENCY",
            {"cycle": list(cycle)},
        )
        self.cycle = list(cycle)


class ExecutionGroupingError(DagEngineError):
    """Waves could not be built from the remaining dimensions."""

    def __init__(self, stuck: list[str], details: Optional[dict[str, Any]] = None):
        super().__init__(
            "Unable to create execution groups. "
            f"Stuck dimensions: {', '.join(stuck)}. "
            "This indicates a circular dependency or invalid graph.",
            "EXECUTION_GROUPING_ERROR",
            details,
        )
        self.stuck = list(stuck)


# --- Dependencies ---


class DependencyError(DagEngineError):
    """Dependencies resolved to errors while continue_on_error is disabled."""

    def __init__(self, dimension: str, failed_dependencies: dict[str, str]):
        if failed_dependencies:
            dep_list = ", ".join(
                f"{name} ({error})" for name, error in failed_dependencies.items()
            )
            message = f'Dependencies failed for dimension "{dimension}". Failed: {dep_list}'
        else:
            message = f'Dependencies failed for dimension "{dimension}"'
        super().__init__(
            message,
            "DEPENDENCIES_FAILED",
            {"dimension": dimension, "failed_dependencies": dict(failed_dependencies)},
        )
        self.dimension = dimension
        self.failed_dependencies = [
            {"name": name, "error": error} for name, error in failed_dependencies.items()
        ]


class DependencyNotFoundError(DagEngineError):
    _MESSAGES = {
        "plugin": 'Dependency "{dep}" not found in plugin dimensions',
        "global": 'Global dependency "{dep}" not found',
        "section": 'Section dependency "{dep}" not found',
        "unprocessed": 'Section dependency "{dep}" not yet processed',
    }

    def __init__(self, dependency: str, context: str = "plugin"):
        template = self._MESSAGES.get(context, self._MESSAGES["plugin"])
        super().__init__(
            template.format(dep=dependency),
            "DEPENDENCY_NOT_FOUND",
            {"dependency": dependency, "context": context},
        )
        self.dependency = dependency


# --- Execution ---


class DimensionTimeoutError(DagEngineError):
    def __init__(self, dimension: str, timeout: float):
        super().__init__(
            f'Dimension "{dimension}" timed out after {timeout}s',
            "DIMENSION_TIMEOUT",
            {"dimension": dimension, "timeout": timeout},
        )
        self.dimension = dimension
        self.timeout = timeout


# --- Providers ---


class ProviderNotFoundError(DagEngineError):
    def __init__(self, provider: str, available: list[str]):
        super().__init__(
            f'Provider "{provider}" not found. '
            f"Available providers: {', '.join(available) or 'none'}",
            "PROVIDER_NOT_FOUND",
            {"provider": provider, "available": list(available)},
        )
        self.provider = provider
        self.available = list(available)


class AllProvidersFailedError(DagEngineError):
    """Every provider in the chain failed and no failure hook recovered."""

    def __init__(self, dimension: str, providers: list[str], last_error: BaseException):
        super().__init__(
            f'All providers failed for dimension "{dimension}". '
            f"Tried: {', '.join(providers)}. Last error: {last_error}",
            "ALL_PROVIDERS_FAILED",
            {
                "dimension": dimension,
                "providers": list(providers),
                "last_error": str(last_error),
            },
        )
        self.dimension = dimension
        self.providers = list(providers)
        self.last_error = last_error
