"""Provider registry: built-in and configured providers, fallback and dispatch."""

import asyncio
import logging
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path
from typing import Any

from crewx.domain.constants import DEFAULT_FALLBACK_ORDER, DEFAULT_MAX_TOOL_TURNS, qualify_provider_name
from crewx.domain.errors import CrewxError, ProviderNotAvailableError
from crewx.domain.models.ai_response import AIResponse
from crewx.domain.models.query_options import QueryOptions
from crewx.domain.models.timeout_config import TimeoutConfig
from crewx.domain.providers import AIProvider, DynamicProviderFactory, ProviderFactory, ToolCallLoop
from crewx.domain.providers.provider_behavior import InvocationMode
from crewx.application.config_models import CrewxConfig
from crewx.application.tool_registry import ToolRegistry

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Owns provider instances for one process.

    Built-ins are created once from ProviderFactory. Plugin and remote
    providers come from configuration and can be reloaded without touching
    the built-ins.
    """

    def __init__(
        self,
        *,
        timeouts: TimeoutConfig | None = None,
        logs_dir: Path | None = None,
        tool_registry: ToolRegistry | None = None,
        max_tool_turns: int = DEFAULT_MAX_TOOL_TURNS,
        dynamic_factory: DynamicProviderFactory | None = None,
    ) -> None:
        self.timeouts = timeouts or TimeoutConfig.from_env()
        self.logs_dir = logs_dir
        self.tool_registry = tool_registry
        self.max_tool_turns = max_tool_turns
        self.dynamic_factory = dynamic_factory or DynamicProviderFactory(
            timeouts=self.timeouts, logs_dir=logs_dir
        )
        self._providers: dict[str, AIProvider] = {}
        self._builtin_names: set[str] = set()
        self.load_errors: dict[str, str] = {}
        self.register_builtins()

    @classmethod
    def from_config(
        cls,
        config: CrewxConfig,
        *,
        tool_registry: ToolRegistry | None = None,
        timeouts: TimeoutConfig | None = None,
    ) -> "ProviderRegistry":
        registry = cls(
            timeouts=timeouts,
            logs_dir=Path(config.logs_dir),
            tool_registry=tool_registry,
            max_tool_turns=config.max_tool_turns,
        )
        registry.load_dynamic_providers(config.providers)
        return registry

    def register_builtins(self) -> None:
        for key in ProviderFactory.list_providers():
            provider = ProviderFactory.create(key, timeouts=self.timeouts, logs_dir=self.logs_dir)
            self._providers[provider.name] = provider
            self._builtin_names.add(provider.name)

    def register(self, provider: AIProvider) -> None:
        """Add or replace a provider under its own name."""
        self._providers[provider.name] = provider

    def load_dynamic_providers(self, configs: Iterable[Mapping[str, Any]]) -> list[str]:
        """
        Create providers from plugin/remote configs. A config that fails is
        logged and skipped; its error is kept in ``load_errors``.

        Returns:
            Names of the providers that were registered
        """
        loaded: list[str] = []
        for raw in configs:
            label = _config_label(raw)
            try:
                provider = self.dynamic_factory.create_provider(raw)
            except CrewxError as e:
                logger.error(f"Skipping provider '{label}': {e}")
                self.load_errors[label] = str(e)
                continue
            if provider.name in self._builtin_names:
                logger.warning(f"Provider '{provider.name}' would shadow a built-in; skipped")
                self.load_errors[label] = f"Provider name '{provider.name}' is reserved"
                continue
            self.register(provider)
            loaded.append(provider.name)
        return loaded

    def reload(self, configs: Iterable[Mapping[str, Any]]) -> list[str]:
        """Drop dynamic providers, keep built-ins, and load ``configs``."""
        self._providers = {
            name: provider for name, provider in self._providers.items()
            if name in self._builtin_names
        }
        self.load_errors = {}
        return self.load_dynamic_providers(configs)

    def get_provider(self, name: str) -> AIProvider | None:
        return self._providers.get(qualify_provider_name(name))

    def get_available_providers(self) -> list[str]:
        """All registered provider names (installed or not)."""
        return list(self._providers.keys())

    def is_builtin(self, name: str) -> bool:
        return qualify_provider_name(name) in self._builtin_names

    async def _is_available(self, provider: AIProvider) -> bool:
        try:
            return await provider.is_available()
        except Exception as e:
            logger.warning(f"Availability check for {provider.name} failed: {e}")
            return False

    async def check_availability(self) -> dict[str, bool]:
        providers = list(self._providers.values())
        results = await asyncio.gather(*(self._is_available(p) for p in providers))
        return {provider.name: available for provider, available in zip(providers, results)}

    async def resolve_fallback(self, candidates: str | Sequence[str]) -> str | None:
        """
        Return the first available provider name, checking in order.

        A single name is tried before the default order; a list is tried as
        given. Returns None when nothing is available.
        """
        if isinstance(candidates, str):
            first = qualify_provider_name(candidates)
            order = [first, *(name for name in DEFAULT_FALLBACK_ORDER if name != first)]
        else:
            order = [qualify_provider_name(name) for name in candidates]

        for name in order:
            provider = self.get_provider(name)
            if provider is None:
                logger.debug(f"Fallback candidate {name} is not registered")
                continue
            if await self._is_available(provider):
                logger.info(f"Selected provider {name}")
                return name
            logger.info(f"Provider {name} unavailable, trying next")
        return None

    async def select_provider(self, agent_provider: str | Sequence[str], model: str | None = None) -> str:
        """Pick the provider for an agent.

        A model override is tied to one provider, so a list collapses to its
        first entry instead of falling back.
        """
        if isinstance(agent_provider, str):
            return qualify_provider_name(agent_provider)

        candidates = [qualify_provider_name(name) for name in agent_provider]
        if not candidates:
            raise ValueError("Agent provider list is empty")
        if model:
            return candidates[0]

        resolved = await self.resolve_fallback(candidates)
        if resolved is None:
            logger.warning(
                f"No provider available among {candidates}; using {candidates[0]}"
            )
            return candidates[0]
        return resolved

    def _tools_for(self, provider: AIProvider) -> ToolRegistry | None:
        """Return the tool registry when the provider can drive the tool loop."""
        tools = self.tool_registry
        if not provider.supports_tool_calls or tools is None or not tools.list():
            return None
        return tools

    async def query_ai(
        self, prompt: str, provider_name: str, options: QueryOptions | None = None
    ) -> AIResponse:
        """
        Raises:
            ProviderNotAvailableError: If the provider is unknown or not installed
        """
        return await self._dispatch(prompt, provider_name, options, "query")

    async def execute_ai(
        self, prompt: str, provider_name: str, options: QueryOptions | None = None
    ) -> AIResponse:
        """
        Raises:
            ProviderNotAvailableError: If the provider is unknown or not installed
        """
        return await self._dispatch(prompt, provider_name, options, "execute")

    async def _dispatch(
        self,
        prompt: str,
        provider_name: str,
        options: QueryOptions | None,
        mode: InvocationMode,
    ) -> AIResponse:
        name = qualify_provider_name(provider_name)
        provider = self.get_provider(name)
        if provider is None or not await self._is_available(provider):
            raise ProviderNotAvailableError(name)

        options = options or QueryOptions()
        try:
            # Execute mode CLIs act on the workspace with their own tools
            tools = self._tools_for(provider) if mode == "query" else None
            if tools is not None:
                loop = ToolCallLoop(provider, tools, max_turns=self.max_tool_turns)
                return await loop.run(prompt, options)
            if mode == "execute":
                return await provider.execute(prompt, options)
            return await provider.query(prompt, options)
        except Exception as e:
            logger.exception(f"{name} {mode} raised unexpectedly")
            return AIResponse.failure(
                provider=name,
                command=f"{name} {mode}",
                error=str(e) or type(e).__name__,
                task_id=options.task_id,
                model=options.model,
            )


def _config_label(raw: Any) -> str:
    if not isinstance(raw, Mapping):
        return "?"
    return f"{raw.get('type', 'plugin')}/{raw.get('id', '?')}"
