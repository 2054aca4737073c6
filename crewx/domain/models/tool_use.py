"""Tool-use detection result."""

from typing import Any

from pydantic import BaseModel


class ToolUseRequest(BaseModel):
    """Outcome of scanning a provider response for an embedded tool call."""

    is_tool_use: bool
    tool_name: str | None = None
    tool_input: Any = None

    @classmethod
    def none(cls) -> "ToolUseRequest":
        return cls(is_tool_use=False)
