"""Claude Code CLI provider.

Runs ``claude --output-format stream-json --verbose -p`` with the prompt on
stdin and reduces the JSONL stream to its final ``result`` record.
"""

from pathlib import Path
from typing import Any

from crewx.domain.constants import BuiltInProviders
from crewx.domain.models.timeout_config import TimeoutConfig
from crewx.domain.providers.cli_provider import CliProvider
from crewx.domain.providers.error_classifiers import ClaudeErrorClassifier
from crewx.domain.providers.provider_behavior import ProviderBehavior
from crewx.domain.providers.stream_output import extract_stream_json_result
from crewx.domain.providers.tool_use_parser import ToolUseParser

CLAUDE_ARGS = ("--output-format", "stream-json", "--verbose", "-p")

NOT_INSTALLED_MESSAGE = "Claude CLI is not installed. Please install it from https://claude.ai/download."


class ClaudeCliProvider(CliProvider):
    """Claude Code CLI via subprocess.

    Requirements:
        - Claude Code CLI must be installed
        - User must be authenticated via `claude login`
    """

    def __init__(self, *, timeouts: TimeoutConfig | None = None, logs_dir: Path | None = None) -> None:
        timeouts = timeouts or TimeoutConfig.from_env()
        super().__init__(
            ProviderBehavior(
                name=BuiltInProviders.CLAUDE,
                cli_command="claude",
                not_installed_message=NOT_INSTALLED_MESSAGE,
                query_args=CLAUDE_ARGS,
                execute_args=CLAUDE_ARGS,
                query_timeout_ms=timeouts.claude_query,
                execute_timeout_ms=timeouts.claude_execute,
                require_output=True,
                supports_tool_calls=True,
                description="Anthropic Claude Code CLI",
            ),
            error_classifier=ClaudeErrorClassifier(),
            tool_use_parser=ToolUseParser(),
            output_normalizer=extract_stream_json_result,
            logs_dir=logs_dir,
        )

    @classmethod
    def get_metadata(cls) -> dict[str, Any]:
        return {
            "name": BuiltInProviders.CLAUDE,
            "description": "Anthropic Claude Code CLI",
            "cli_command": "claude",
            "supports_tool_calls": True,
        }
