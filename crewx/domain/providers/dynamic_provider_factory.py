"""Builds plugin and remote providers from YAML configuration.

Configuration is validated once, at creation time, and compiled into a
ProviderBehavior plus strategies. A configuration that fails validation
never yields a provider.
"""

import logging
from collections.abc import Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Any

import httpx
from pydantic import ValidationError

from crewx.domain.constants import ProviderNamespace
from crewx.domain.errors import ProviderConfigError
from crewx.domain.models.provider_config import (
    DynamicProviderConfig,
    PluginProviderConfig,
    RemoteProviderConfig,
)
from crewx.domain.models.timeout_config import TimeoutConfig
from crewx.domain.providers.ai_provider import AIProvider
from crewx.domain.providers.cli_provider import CliProvider
from crewx.domain.providers.error_classifiers import CompiledErrorPattern, PatternErrorClassifier
from crewx.domain.providers.provider_behavior import ProviderBehavior
from crewx.domain.providers.remote_provider import RemoteProvider
from crewx.domain.validation.security_validator import SecurityValidator

logger = logging.getLogger(__name__)

DEFAULT_PLUGIN_QUERY_TIMEOUT_MS = 600_000
DEFAULT_PLUGIN_MODEL = "default"


def parse_provider_config(raw: Mapping[str, Any] | DynamicProviderConfig) -> DynamicProviderConfig:
    """Parse a raw mapping into a plugin or remote config by its ``type`` key.

    Raises:
        ProviderConfigError: If the mapping is structurally invalid
    """
    if isinstance(raw, (PluginProviderConfig, RemoteProviderConfig)):
        return raw
    if not isinstance(raw, Mapping):
        raise ProviderConfigError(f"Provider config must be a mapping, got: {type(raw).__name__}")

    provider_type = raw.get("type", "plugin")
    try:
        if provider_type == "remote":
            return RemoteProviderConfig.model_validate(dict(raw))
        if provider_type == "plugin":
            return PluginProviderConfig.model_validate(dict(raw))
    except ValidationError as e:
        raise ProviderConfigError(
            f"Invalid {provider_type} provider config '{raw.get('id', '?')}': {e}"
        ) from e
    raise ProviderConfigError(f"Unknown provider type: {provider_type}")


class DynamicProviderFactory:
    """Creates ``plugin/<id>`` and ``remote/<id>`` providers."""

    def __init__(
        self,
        *,
        timeouts: TimeoutConfig | None = None,
        logs_dir: Path | None = None,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.timeouts = timeouts or TimeoutConfig.from_env()
        self.logs_dir = logs_dir
        self.http_transport = http_transport

    def validate_config(self, raw: Mapping[str, Any]) -> bool:
        """Structural check only; never raises."""
        try:
            config = parse_provider_config(raw)
        except ProviderConfigError as e:
            logger.debug(f"Provider config rejected: {e}")
            return False
        if isinstance(config, RemoteProviderConfig):
            return bool(config.location) and bool(config.external_agent_id)
        return bool(config.cli_command.strip())

    def create_provider(self, raw: Mapping[str, Any] | DynamicProviderConfig) -> AIProvider:
        """Validate and build a provider.

        Raises:
            ProviderConfigError: If the config is structurally invalid
            ConfigurationSecurityError: If the config violates the security policy
        """
        config = parse_provider_config(raw)
        if isinstance(config, RemoteProviderConfig):
            return self._create_remote(config)
        return self._create_plugin(config)

    def build_plugin_behavior(self, config: PluginProviderConfig) -> ProviderBehavior:
        return ProviderBehavior(
            name=f"{ProviderNamespace.PLUGIN.value}/{config.id}",
            cli_command=config.cli_command,
            not_installed_message=(
                config.not_installed_message
                or f"{config.display_name or config.id} CLI is not installed."
            ),
            query_args=tuple(config.query_args),
            execute_args=tuple(config.execute_args),
            prompt_in_args=config.prompt_in_args,
            query_timeout_ms=(config.timeout and config.timeout.query) or DEFAULT_PLUGIN_QUERY_TIMEOUT_MS,
            execute_timeout_ms=(config.timeout and config.timeout.execute) or self.timeouts.parallel,
            default_model=config.default_model or DEFAULT_PLUGIN_MODEL,
            model_flag=False,
            # Context shares stdin with the prompt
            pipe_context=not config.prompt_in_args,
            description=config.description or "",
            env=MappingProxyType(dict(config.env)),
        )

    def _create_plugin(self, config: PluginProviderConfig) -> CliProvider:
        compiled = SecurityValidator.validate_plugin_config(config)
        patterns = [
            CompiledErrorPattern(pattern=entry.pattern, message=entry.message, regex=regex)
            for entry, regex in zip(config.error_patterns, compiled)
        ]
        provider = CliProvider(
            self.build_plugin_behavior(config),
            error_classifier=PatternErrorClassifier(patterns),
            logs_dir=self.logs_dir,
        )
        logger.info(f"Created plugin provider {provider.name} ({config.cli_command})")
        return provider

    def _create_remote(self, config: RemoteProviderConfig) -> RemoteProvider:
        SecurityValidator.validate_remote_config(config)
        provider = RemoteProvider(config, transport=self.http_transport, logs_dir=self.logs_dir)
        logger.info(f"Created remote provider {provider.name} ({provider.location})")
        return provider
