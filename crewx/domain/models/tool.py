"""Tool catalog and tool execution models."""

from typing import Any

from pydantic import BaseModel, Field


class ToolDefinition(BaseModel):
    """A tool the provider may request through a tool-use block."""

    name: str
    description: str
    input_schema: dict[str, Any] = Field(default_factory=dict)
    output_schema: dict[str, Any] | None = None


class ToolExecutionResult(BaseModel):
    success: bool
    data: Any = None
    error: str | None = None
    metadata: dict[str, Any] | None = None
