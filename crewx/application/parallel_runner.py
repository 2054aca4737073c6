"""Concurrent fan-out of agent requests."""

import asyncio
import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass, field

from crewx.domain.errors import ProviderNotAvailableError
from crewx.domain.models.ai_response import AIResponse
from crewx.domain.models.query_options import QueryOptions
from crewx.domain.providers.provider_behavior import InvocationMode
from crewx.application.agent_options import get_agent_args
from crewx.application.config_models import AgentConfig
from crewx.application.provider_registry import ProviderRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParallelRequest:
    agent: AgentConfig
    prompt: str
    mode: InvocationMode = "query"
    options: QueryOptions = field(default_factory=QueryOptions)
    # Overrides agent.provider when set
    provider: str | list[str] | None = None


@dataclass(frozen=True)
class ParallelResult:
    index: int
    agent_id: str
    provider: str
    response: AIResponse
    duration_ms: int

    @property
    def success(self) -> bool:
        return self.response.success


@dataclass(frozen=True)
class ParallelSummary:
    results: list[ParallelResult]
    total: int
    succeeded: int
    failed: int
    duration_ms: int


class ParallelRunner:
    def __init__(self, registry: ProviderRegistry, *, max_concurrency: int | None = None) -> None:
        if max_concurrency is not None and max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self.registry = registry
        self.max_concurrency = max_concurrency

    async def run(self, requests: Sequence[ParallelRequest]) -> ParallelSummary:
        """Run every request concurrently; one failure never cancels the others."""
        started = time.monotonic()
        semaphore = asyncio.Semaphore(self.max_concurrency) if self.max_concurrency else None

        async def guarded(index: int, request: ParallelRequest) -> ParallelResult:
            if semaphore is None:
                return await self._run_one(index, request)
            async with semaphore:
                return await self._run_one(index, request)

        results = await asyncio.gather(*(guarded(i, r) for i, r in enumerate(requests)))
        ordered = sorted(results, key=lambda r: r.index)
        succeeded = sum(1 for r in ordered if r.success)
        summary = ParallelSummary(
            results=ordered,
            total=len(ordered),
            succeeded=succeeded,
            failed=len(ordered) - succeeded,
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        logger.info(
            f"Parallel run finished: {summary.succeeded}/{summary.total} succeeded "
            f"in {summary.duration_ms}ms"
        )
        return summary

    def _request_options(self, request: ParallelRequest, provider_name: str, model: str | None) -> QueryOptions:
        agent = request.agent
        agent_args = get_agent_args(agent, request.mode, provider_name)
        return request.options.model_copy(
            update={
                "agent_id": agent.id,
                "model": model,
                "additional_args": [*agent_args, *request.options.additional_args],
                "working_directory": request.options.working_directory or agent.working_directory,
            }
        )

    async def _run_one(self, index: int, request: ParallelRequest) -> ParallelResult:
        started = time.monotonic()
        agent = request.agent
        requested = request.provider or agent.provider
        provider_name = requested if isinstance(requested, str) else ",".join(requested)
        try:
            model = request.options.model or agent.model
            provider_name = await self.registry.select_provider(requested, model)
            options = self._request_options(request, provider_name, model)
            logger.info(f"@{agent.id} -> {provider_name} ({request.mode})")
            if request.mode == "execute":
                response = await self.registry.execute_ai(request.prompt, provider_name, options)
            else:
                response = await self.registry.query_ai(request.prompt, provider_name, options)
        except ProviderNotAvailableError as e:
            response = AIResponse.failure(
                provider=provider_name, command=f"{provider_name} {request.mode}", error=str(e)
            )
        except Exception as e:
            logger.exception(f"Request for @{agent.id} failed")
            response = AIResponse.failure(
                provider=provider_name,
                command=f"{provider_name} {request.mode}",
                error=str(e) or type(e).__name__,
            )
        return ParallelResult(
            index=index,
            agent_id=agent.id,
            provider=provider_name,
            response=response,
            duration_ms=int((time.monotonic() - started) * 1000),
        )
