"""Gemini CLI provider.

Plain text output over stdin; tool calls are found in the text or in the
``response`` field when the CLI emits its JSON wrapper.
"""

from pathlib import Path
from typing import Any

from crewx.domain.constants import BuiltInProviders
from crewx.domain.models.timeout_config import TimeoutConfig
from crewx.domain.providers.cli_provider import CliProvider
from crewx.domain.providers.error_classifiers import ErrorClassifier
from crewx.domain.providers.provider_behavior import ProviderBehavior
from crewx.domain.providers.tool_use_parser import ToolUseParser, parse_gemini_response_field

NOT_INSTALLED_MESSAGE = "Gemini CLI is not installed."


class GeminiCliProvider(CliProvider):
    def __init__(self, *, timeouts: TimeoutConfig | None = None, logs_dir: Path | None = None) -> None:
        timeouts = timeouts or TimeoutConfig.from_env()
        super().__init__(
            ProviderBehavior(
                name=BuiltInProviders.GEMINI,
                cli_command="gemini",
                not_installed_message=NOT_INSTALLED_MESSAGE,
                query_timeout_ms=timeouts.gemini_query,
                execute_timeout_ms=timeouts.gemini_execute,
                supports_tool_calls=True,
                description="Google Gemini CLI",
            ),
            error_classifier=ErrorClassifier(),
            tool_use_parser=ToolUseParser(extra_strategies=[parse_gemini_response_field]),
            logs_dir=logs_dir,
        )

    @classmethod
    def get_metadata(cls) -> dict[str, Any]:
        return {
            "name": BuiltInProviders.GEMINI,
            "description": "Google Gemini CLI",
            "cli_command": "gemini",
            "supports_tool_calls": True,
        }
