"""OpenAI Codex CLI provider.

Codex takes the prompt as the final argument and never receives piped
context. Query mode runs in the default read-only sandbox, execute mode
with workspace-write.
"""

from pathlib import Path
from typing import Any

from crewx.domain.constants import BuiltInProviders
from crewx.domain.models.timeout_config import TimeoutConfig
from crewx.domain.providers.cli_provider import CliProvider
from crewx.domain.providers.error_classifiers import CodexErrorClassifier
from crewx.domain.providers.provider_behavior import ProviderBehavior
from crewx.domain.providers.stream_output import extract_codex_message

NOT_INSTALLED_MESSAGE = "Codex CLI is not installed. Please install it first."


class CodexCliProvider(CliProvider):
    def __init__(self, *, timeouts: TimeoutConfig | None = None, logs_dir: Path | None = None) -> None:
        timeouts = timeouts or TimeoutConfig.from_env()
        super().__init__(
            ProviderBehavior(
                name=BuiltInProviders.CODEX,
                cli_command="codex",
                not_installed_message=NOT_INSTALLED_MESSAGE,
                query_args=("exec", "--experimental-json"),
                execute_args=("exec", "-s", "workspace-write", "--experimental-json"),
                prompt_in_args=True,
                pipe_context=False,
                query_timeout_ms=timeouts.codex_query,
                execute_timeout_ms=timeouts.codex_execute,
                description="OpenAI Codex CLI",
            ),
            error_classifier=CodexErrorClassifier(),
            output_normalizer=extract_codex_message,
            logs_dir=logs_dir,
        )

    @classmethod
    def get_metadata(cls) -> dict[str, Any]:
        return {
            "name": BuiltInProviders.CODEX,
            "description": "OpenAI Codex CLI",
            "cli_command": "codex",
            "supports_tool_calls": False,
        }
