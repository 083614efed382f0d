"""Invokes providers for one dimension execution: retries, fallbacks, gateway.

Direct mode walks the provider chain (primary plus fallbacks). Each entry
gets ``max_retries + 1`` attempts with exponential backoff:

    delay = min(retry_delay * 2 ** (attempt - 1), max_retry_delay)

Gateway mode (primary provider routes through Portkey) makes exactly one
call, since the gateway applies its own retry and fallback policy.
"""

import asyncio
import dataclasses
import logging
import time
from typing import Any, Optional, Union

from dimflow.config import ExecutionConfig
from dimflow.errors import AllProvidersFailedError, ProviderNotFoundError
from dimflow.executor.hook_executor import HookExecutor, coerce, maybe_await
from dimflow.plugin.base import Plugin
from dimflow.plugin.contexts import (
    DimensionContext,
    FailureContext,
    FallbackContext,
    PromptContext,
    ProviderContext,
    ProviderResultContext,
    RetryContext,
    SelectionContext,
)
from dimflow.providers.registry import ProviderAdapter
from dimflow.schemas import (
    AttemptRecord,
    DimensionResult,
    ProviderAttempt,
    ProviderMetadata,
    ProviderRequest,
    ProviderSelection,
    SectionData,
)

logger = logging.getLogger(__name__)


class ProviderCallError(RuntimeError):
    """A provider returned a response with ``error`` set."""

    def __init__(self, provider: str, message: str):
        super().__init__(message)
        self.provider = provider


def _dimension_fields(context: DimensionContext) -> dict[str, Any]:
    return {f.name: getattr(context, f.name) for f in dataclasses.fields(DimensionContext)}


class ProviderExecutor:
    def __init__(
        self,
        adapter: ProviderAdapter,
        plugin: Plugin,
        hooks: HookExecutor,
        config: ExecutionConfig,
    ):
        self.adapter = adapter
        self.plugin = plugin
        self.hooks = hooks
        self.config = config

    async def execute(
        self,
        dimension: str,
        sections: list[SectionData],
        dependencies: dict[str, DimensionResult],
        is_global: bool,
        context: DimensionContext,
        total_sections: Optional[int] = None,
    ) -> DimensionResult:
        """Run one dimension against its provider chain.

        Raises:
            AllProvidersFailedError: Every provider failed and
                handle_dimension_failure did not supply a result.
        """
        prompt = await maybe_await(self.plugin.create_prompt(PromptContext(
            sections=sections,
            dimension=dimension,
            dependencies=dependencies,
            is_global=is_global,
        )))

        if total_sections is None:
            total_sections = len(context.sections)
        selection = coerce(ProviderSelection, await maybe_await(self.plugin.select_provider(
            dimension,
            sections,
            SelectionContext(
                is_global=is_global,
                section_index=context.section_index,
                total_sections=total_sections,
            ),
        )))

        request_metadata: dict[str, Any] = {"total_sections": total_sections}
        if not is_global and context.section_index is not None:
            request_metadata["section_index"] = context.section_index

        request = ProviderRequest(
            input=prompt,
            options=dict(selection.options),
            dimension=dimension,
            is_global=is_global,
            metadata=request_metadata,
        )

        if self._uses_gateway(selection.provider):
            return await self._execute_with_gateway(selection.provider, request, context)
        return await self._execute_with_fallbacks(selection, request, context)

    def _uses_gateway(self, provider_name: str) -> bool:
        if not self.adapter.has_provider(provider_name):
            return False
        return self.adapter.get_provider(provider_name).is_using_gateway()

    def _backoff(self, attempt: int) -> float:
        return min(self.config.retry_delay * 2 ** (attempt - 1), self.config.max_retry_delay)

    async def _call_provider(
        self,
        provider_name: str,
        request: ProviderRequest,
        context: DimensionContext,
    ) -> DimensionResult:
        base = _dimension_fields(context)
        request = await self.hooks.before_provider_execute(ProviderContext(
            **base,
            request=request,
            provider=provider_name,
            provider_options=request.options,
        ))

        start = time.time()
        response = await self.adapter.execute(provider_name, request)
        duration = time.time() - start

        if response.error:
            raise ProviderCallError(provider_name, response.error)

        response = await self.hooks.after_provider_execute(ProviderResultContext(
            **base,
            request=request,
            provider=provider_name,
            provider_options=request.options,
            result=response,
            duration=duration,
            tokens_used=response.metadata.tokens if response.metadata else None,
        ))
        if response.error:
            raise ProviderCallError(provider_name, response.error)

        metadata = response.metadata or ProviderMetadata()
        if metadata.provider is None:
            metadata = metadata.model_copy(update={"provider": provider_name})
        return DimensionResult(data=response.data, metadata=metadata)

    async def _execute_with_gateway(
        self,
        provider_name: str,
        request: ProviderRequest,
        context: DimensionContext,
    ) -> DimensionResult:
        logger.debug(f"[{context.describe()}] Gateway mode via {provider_name}: single call")
        try:
            return await self._call_provider(provider_name, request, context)
        except Exception as e:
            logger.error(f"[{context.describe()}] Gateway call to {provider_name} failed: {e}")
            attempts = [AttemptRecord(attempt=1, error=e, provider=provider_name)]
            return await self._fail(context, request, provider_name, [provider_name], attempts, e, 1)

    async def _execute_with_fallbacks(
        self,
        selection: ProviderSelection,
        request: ProviderRequest,
        context: DimensionContext,
    ) -> DimensionResult:
        chain = [ProviderAttempt(provider=selection.provider, options=dict(selection.options))]
        chain.extend(
            ProviderAttempt(provider=f.provider, options=dict(f.options), retry_after=f.retry_after)
            for f in selection.fallbacks
        )
        providers = [entry.provider for entry in chain]
        max_attempts = self.config.max_retries + 1
        attempts: list[AttemptRecord] = []
        last_error: Optional[BaseException] = None
        current_request = request
        provider_name = selection.provider
        label = context.describe()

        for index, entry in enumerate(chain):
            provider_name = entry.provider
            if not self.adapter.has_provider(provider_name):
                last_error = ProviderNotFoundError(provider_name, self.adapter.list_providers())
                attempts.append(AttemptRecord(
                    attempt=len(attempts) + 1, error=last_error, provider=provider_name,
                ))
                logger.warning(f"[{label}] {last_error.message}")
                continue

            if index > 0 and entry.retry_after:
                logger.info(f"[{label}] Waiting {entry.retry_after}s before {entry.provider}")
                await asyncio.sleep(entry.retry_after)

            current_request = current_request.model_copy(update={"options": dict(entry.options)})

            attempt = 1
            while True:
                try:
                    result = await self._call_provider(provider_name, current_request, context)
                    if attempts:
                        logger.info(
                            f"[{label}] Succeeded on {provider_name} after "
                            f"{len(attempts)} failed attempt(s)"
                        )
                    return result
                except Exception as e:
                    last_error = e
                    attempts.append(AttemptRecord(
                        attempt=len(attempts) + 1, error=e, provider=provider_name,
                    ))

                if attempt >= max_attempts:
                    break

                retry = await self.hooks.handle_retry(RetryContext(
                    **_dimension_fields(context),
                    request=current_request,
                    provider=provider_name,
                    provider_options=current_request.options,
                    error=last_error,
                    attempt=attempt,
                    max_attempts=max_attempts,
                    previous_attempts=list(attempts),
                ))
                if retry.should_retry is False:
                    logger.info(f"[{label}] Retry vetoed by plugin after attempt {attempt}")
                    break
                if retry.modified_request is not None:
                    current_request = retry.modified_request
                if retry.modified_provider and retry.modified_provider != provider_name:
                    if self.adapter.has_provider(retry.modified_provider):
                        provider_name = retry.modified_provider
                    else:
                        logger.warning(
                            f"[{label}] Retry hook asked for unknown provider "
                            f"'{retry.modified_provider}', keeping {provider_name}"
                        )

                delay = retry.delay if retry.delay is not None else self._backoff(attempt)
                logger.warning(
                    f"[{label}] {provider_name} attempt {attempt}/{max_attempts} failed: "
                    f"{last_error}. Retrying in {delay}s..."
                )
                if delay > 0:
                    await asyncio.sleep(delay)
                attempt += 1

            if index + 1 >= len(chain):
                break

            nxt = chain[index + 1]
            fallback = await self.hooks.handle_provider_fallback(FallbackContext(
                **_dimension_fields(context),
                request=current_request,
                provider=provider_name,
                provider_options=current_request.options,
                error=last_error,
                attempt=attempt,
                max_attempts=max_attempts,
                previous_attempts=list(attempts),
                failed_provider=provider_name,
                fallback_provider=nxt.provider,
                fallback_options=dict(nxt.options),
            ))
            if fallback.should_fallback is False:
                logger.info(f"[{label}] Fallback to {nxt.provider} vetoed by plugin")
                break
            if fallback.modified_request is not None:
                current_request = fallback.modified_request
                nxt.options = {**nxt.options, **fallback.modified_request.options}
            if fallback.delay:
                await asyncio.sleep(fallback.delay)
            logger.warning(f"[{label}] {provider_name} exhausted, falling back to {nxt.provider}")

        return await self._fail(
            context, current_request, provider_name, providers, attempts, last_error, max_attempts,
        )

    async def _fail(
        self,
        context: DimensionContext,
        request: ProviderRequest,
        provider_name: str,
        providers: list[str],
        attempts: list[AttemptRecord],
        last_error: Union[BaseException, None],
        max_attempts: int,
    ) -> DimensionResult:
        if last_error is None:
            last_error = RuntimeError("No provider was attempted")

        recovered = await self.hooks.handle_dimension_failure(FailureContext(
            **_dimension_fields(context),
            request=request,
            provider=provider_name,
            provider_options=request.options,
            error=last_error,
            attempt=len(attempts),
            max_attempts=max_attempts,
            previous_attempts=list(attempts),
            total_attempts=len(attempts),
            providers=providers,
        ))
        if recovered is not None:
            logger.info(f"[{context.describe()}] Failure recovered by handle_dimension_failure")
            return recovered

        raise AllProvidersFailedError(context.dimension, providers, last_error) from last_error
