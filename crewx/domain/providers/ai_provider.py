from abc import ABC, abstractmethod
from typing import Any

from crewx.domain.models.ai_response import AIResponse
from crewx.domain.models.query_options import QueryOptions


class AIProvider(ABC):
    """Abstract interface for AI providers (Strategy pattern).

    Invocation-time failures (spawn errors, timeouts, provider-reported
    errors) are returned as ``AIResponse(success=False)``; implementations
    never raise them from ``query`` or ``execute``.
    """

    supports_tool_calls: bool = False

    @property
    @abstractmethod
    def name(self) -> str:
        """Namespaced provider identity, e.g. ``cli/claude`` or ``plugin/aider``."""
        ...

    @classmethod
    def get_metadata(cls) -> dict[str, Any]:
        """Return provider metadata for discovery commands.

        Returns:
            dict with keys: name, description, cli_command, supports_tool_calls
        """
        return {
            "name": "unknown",
            "description": "No description available",
            "cli_command": None,
            "supports_tool_calls": cls.supports_tool_calls,
        }

    def describe(self) -> dict[str, Any]:
        """Metadata for this instance (dynamic providers have no class-level identity)."""
        return {**type(self).get_metadata(), "name": self.name}

    @abstractmethod
    async def is_available(self) -> bool:
        """True when the provider can be invoked (CLI installed, endpoint healthy)."""
        ...

    @abstractmethod
    async def get_tool_path(self) -> str | None:
        """Resolved executable path, or None when the CLI is not installed."""
        ...

    @abstractmethod
    async def query(self, prompt: str, options: QueryOptions | None = None) -> AIResponse:
        """Ask the provider a question (read-only mode).

        Args:
            prompt: The prompt text to send
            options: Per-call options; provider defaults apply to unset fields

        Returns:
            Normalized response; failures carry ``success=False`` and ``error``
        """
        ...

    @abstractmethod
    async def execute(self, prompt: str, options: QueryOptions | None = None) -> AIResponse:
        """Have the provider carry out a task (may modify the workspace)."""
        ...
