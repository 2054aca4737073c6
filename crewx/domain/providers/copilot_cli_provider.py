"""GitHub Copilot CLI provider (prompt over stdin to avoid command-line length limits)."""

from pathlib import Path
from typing import Any

from crewx.domain.constants import BuiltInProviders
from crewx.domain.models.timeout_config import TimeoutConfig
from crewx.domain.providers.cli_provider import CliProvider
from crewx.domain.providers.error_classifiers import CopilotErrorClassifier
from crewx.domain.providers.provider_behavior import ProviderBehavior
from crewx.domain.providers.tool_use_parser import ToolUseParser

NOT_INSTALLED_MESSAGE = (
    "GitHub Copilot CLI is not installed. Please refer to "
    "https://docs.github.com/copilot/how-tos/set-up/install-copilot-cli to install it."
)


class CopilotCliProvider(CliProvider):
    def __init__(self, *, timeouts: TimeoutConfig | None = None, logs_dir: Path | None = None) -> None:
        timeouts = timeouts or TimeoutConfig.from_env()
        super().__init__(
            ProviderBehavior(
                name=BuiltInProviders.COPILOT,
                cli_command="copilot",
                not_installed_message=NOT_INSTALLED_MESSAGE,
                query_timeout_ms=timeouts.copilot_query,
                execute_timeout_ms=timeouts.copilot_execute,
                require_output=True,
                supports_tool_calls=True,
                description="GitHub Copilot CLI",
            ),
            error_classifier=CopilotErrorClassifier(),
            tool_use_parser=ToolUseParser(),
            logs_dir=logs_dir,
        )

    @classmethod
    def get_metadata(cls) -> dict[str, Any]:
        return {
            "name": BuiltInProviders.COPILOT,
            "description": "GitHub Copilot CLI",
            "cli_command": "copilot",
            "supports_tool_calls": True,
        }
