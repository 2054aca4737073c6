from typing import Any

from crewx.application.config_models import AgentConfig
from crewx.domain.providers.provider_behavior import InvocationMode


def _as_args(value: Any) -> list[str]:
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value]
    return []


def get_agent_args(agent: AgentConfig, mode: InvocationMode, provider_name: str) -> list[str]:
    """
    Resolve the extra CLI args an agent configures for a mode.

    Supported shapes:
      options: ["--flag"]                      (legacy, every mode)
      options: {query: ["--flag"]}             (per mode)
      options: {query: {cli/claude: [...], default: [...]}}  (per mode and provider)

    Returns:
        Argument list, empty when nothing applies
    """
    options = agent.options
    if not options:
        return []
    if isinstance(options, list):
        return _as_args(options)

    mode_options = options.get(mode)
    if isinstance(mode_options, dict):
        if provider_name in mode_options:
            return _as_args(mode_options[provider_name])
        return _as_args(mode_options.get("default"))
    return _as_args(mode_options)
