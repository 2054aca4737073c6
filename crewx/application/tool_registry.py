"""Tool catalog and executor used by the tool call loop."""

import inspect
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

from crewx.domain.errors import ToolExecutionError
from crewx.domain.models.tool import ToolDefinition, ToolExecutionResult
from crewx.domain.validation import SecurityValidator

logger = logging.getLogger(__name__)

ToolHandler = Callable[[Any, dict[str, Any]], Any | Awaitable[Any]]

# Larger files are truncated before being handed back to the model
MAX_READ_FILE_BYTES = 256 * 1024


class ToolRegistry:
    def __init__(self) -> None:
        self._tools: dict[str, tuple[ToolDefinition, ToolHandler]] = {}

    def register(self, definition: ToolDefinition, handler: ToolHandler) -> None:
        """
        Register a tool. Re-registering a name replaces the previous handler.

        Args:
            definition: Name, description and input schema shown to the model
            handler: Called as handler(tool_input, context); may be async
        """
        self._tools[definition.name] = (definition, handler)

    def list(self) -> list[ToolDefinition]:
        return [definition for definition, _ in self._tools.values()]

    def has(self, name: str) -> bool:
        return name in self._tools

    async def execute(
        self,
        tool_name: str,
        tool_input: Any,
        context: dict[str, Any] | None = None,
    ) -> ToolExecutionResult:
        """
        Run a tool by name.

        Raises:
            ToolExecutionError: If no tool is registered under tool_name
        """
        if tool_name not in self._tools:
            available = ", ".join(self._tools) or "none"
            raise ToolExecutionError(f"Unknown tool: '{tool_name}'. Available tools: {available}")

        _, handler = self._tools[tool_name]
        try:
            result = handler(tool_input, context or {})
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            logger.warning(f"Tool {tool_name} failed: {e}")
            return ToolExecutionResult(success=False, error=str(e) or type(e).__name__)

        if isinstance(result, ToolExecutionResult):
            return result
        return ToolExecutionResult(success=True, data=result)


READ_FILE_TOOL = ToolDefinition(
    name="read_file",
    description="Read a UTF-8 text file inside the working directory.",
    input_schema={
        "type": "object",
        "properties": {
            "path": {"type": "string", "description": "File path relative to the working directory"},
        },
        "required": ["path"],
    },
    output_schema={
        "type": "object",
        "properties": {
            "path": {"type": "string"},
            "content": {"type": "string"},
            "truncated": {"type": "boolean"},
        },
    },
)


def read_file(tool_input: Any, context: dict[str, Any]) -> dict[str, Any]:
    if not isinstance(tool_input, dict) or not isinstance(tool_input.get("path"), str):
        raise ValueError("read_file requires a string 'path' input")

    root = Path(context.get("working_directory") or Path.cwd())
    target = SecurityValidator.validate_within_root(root / tool_input["path"], root)
    if not target.is_file():
        raise FileNotFoundError(f"File not found: {tool_input['path']}")

    data = target.read_bytes()
    truncated = len(data) > MAX_READ_FILE_BYTES
    content = data[:MAX_READ_FILE_BYTES].decode("utf-8", errors="replace")
    return {
        "path": str(target.relative_to(root.resolve())),
        "content": content,
        "truncated": truncated,
    }


def create_default_tool_registry() -> ToolRegistry:
    registry = ToolRegistry()
    registry.register(READ_FILE_TOOL, read_file)
    return registry
