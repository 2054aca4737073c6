from typing import Any

from crewx.domain.constants import BuiltInProviders
from crewx.domain.models.ai_response import AIResponse
from crewx.domain.models.query_options import QueryOptions

from .ai_provider import AIProvider


class MockProvider(AIProvider):
    """In-process provider with scripted responses (tests and dry runs)."""

    def __init__(self, **_: Any) -> None:
        self._responses: dict[str, str] = {}
        self._default_content: str | None = None

    @property
    def name(self) -> str:
        return BuiltInProviders.MOCK

    @classmethod
    def get_metadata(cls) -> dict[str, Any]:
        """Return mock provider metadata for discovery commands."""
        return {
            "name": BuiltInProviders.MOCK,
            "description": "Scripted in-process responses (no external CLI)",
            "cli_command": None,
            "supports_tool_calls": False,
        }

    def set_response(self, prompt: str, content: str) -> None:
        self._responses[prompt] = content

    def set_default_response(self, content: str | None) -> None:
        """Content for prompts without an override; None echoes the prompt."""
        self._default_content = content

    def clear_responses(self) -> None:
        self._responses.clear()

    async def is_available(self) -> bool:
        return True

    async def get_tool_path(self) -> str | None:
        return None

    async def query(self, prompt: str, options: QueryOptions | None = None) -> AIResponse:
        options = options or QueryOptions()
        content = self._responses.get(prompt)
        if content is None:
            content = self._default_content or f"Mock response for: {prompt}"
        return AIResponse(
            content=content,
            provider=self.name,
            command="mock-command",
            success=True,
            task_id=options.task_id,
            model=options.model,
            raw_output=content,
        )

    async def execute(self, prompt: str, options: QueryOptions | None = None) -> AIResponse:
        return await self.query(prompt, options)
