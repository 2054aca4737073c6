"""Multi-turn tool execution driven by tool-use blocks in provider output.

Each turn queries the provider, looks for a tool request, runs the tool
and feeds its result back as the next prompt. The loop ends when the
provider answers without a tool request, when a query or tool fails, or
when the turn limit is reached.
"""

import json
import logging
import re
from typing import Any, Protocol

from crewx.domain.constants import DEFAULT_MAX_TOOL_TURNS, TOOL_RESULT_PREVIEW_CHARS
from crewx.domain.models.ai_response import AIResponse, ToolCallRecord
from crewx.domain.models.query_options import QueryOptions
from crewx.domain.models.tool import ToolDefinition, ToolExecutionResult
from crewx.domain.providers.ai_provider import AIProvider
from crewx.domain.providers.cli_provider import generate_task_id
from crewx.domain.providers.task_log import TaskLog
from crewx.domain.providers.tool_use_parser import TOOL_CALL_TAG, ToolUseParser

logger = logging.getLogger(__name__)

_USER_QUERY = re.compile(r'<user_query key="[^"]*">\n?([\s\S]*?)\n?</user_query>')


class ToolExecutor(Protocol):
    """What the loop needs from a tool registry."""

    def list(self) -> list[ToolDefinition]: ...

    async def execute(
        self,
        tool_name: str,
        tool_input: Any,
        context: dict[str, Any] | None = None,
    ) -> ToolExecutionResult: ...


def wrap_user_query(query: str, security_key: str) -> str:
    """Delimit untrusted user text so injected instructions stay inside the block."""
    return f'<user_query key="{security_key}">\n{query}\n</user_query>'


def extract_user_query(prompt: str) -> str:
    match = _USER_QUERY.search(prompt)
    return match.group(1).strip() if match else prompt


def build_tools_prompt(prompt: str, tools: list[ToolDefinition]) -> str:
    catalog = "\n".join(
        f"- {tool.name}: {tool.description}\n"
        f"  Input schema: {json.dumps(tool.input_schema, indent=2)}"
        for tool in tools
    )
    return (
        f"\n\nAvailable tools:\n{catalog}\n\n"
        f"To use a tool, wrap your JSON response in <{TOOL_CALL_TAG}> tags like this:\n"
        f"<{TOOL_CALL_TAG}>\n"
        f'{{\n  "type": "tool_use",\n  "name": "tool_name",\n  "input": {{ ... }}\n}}\n'
        f"</{TOOL_CALL_TAG}>\n\n"
        f"If you don't need to use a tool, respond normally.\n"
        f"\n{prompt}"
    )


def _result_payload(result: ToolExecutionResult) -> Any:
    if result.success and result.data is not None:
        return result.data
    return result.model_dump(exclude_none=True)


def build_follow_up_prompt(tool_name: str, result: ToolExecutionResult) -> str:
    rendered = json.dumps(_result_payload(result), indent=2, ensure_ascii=False, default=str)
    return (
        f"The {tool_name} tool has been executed successfully.\n\n"
        f"<tool_result>\n{rendered}\n</tool_result>\n\n"
        f"Based on the tool execution result above, please provide a clear, detailed, "
        f"and user-friendly response to the user's original request. "
        f"Present the information in an organized and easy-to-read format."
    )


class ToolCallLoop:
    """Bounded query → tool → follow-up cycle for one provider."""

    def __init__(
        self,
        provider: AIProvider,
        tools: ToolExecutor,
        *,
        max_turns: int = DEFAULT_MAX_TOOL_TURNS,
        parser: ToolUseParser | None = None,
    ) -> None:
        if max_turns < 1:
            raise ValueError("max_turns must be >= 1")
        self.provider = provider
        self.tools = tools
        self.max_turns = max_turns
        self.parser = parser or getattr(provider, "tool_use_parser", None) or ToolUseParser()

    def _cli_label(self) -> str:
        return self.provider.describe().get("cli_command") or self.provider.name

    async def run(self, prompt: str, options: QueryOptions | None = None) -> AIResponse:
        options = options or QueryOptions()
        task_id = options.task_id or generate_task_id(self.provider.name, "query")
        turn_options = options.model_copy(update={"task_id": task_id})
        task_log = TaskLog(task_id, getattr(self.provider, "logs_dir", None))
        task_log.start(self.provider.name, f"{self._cli_label()} (tool call loop)")

        user_prompt = prompt
        if options.security_key:
            user_prompt = wrap_user_query(prompt, options.security_key)
        current_prompt = build_tools_prompt(user_prompt, self.tools.list())
        last_call: ToolCallRecord | None = None

        for turn in range(1, self.max_turns + 1):
            task_log.info(f"--- Tool Call Turn {turn}/{self.max_turns} ---")
            response = await self.provider.query(current_prompt, turn_options)
            if not response.success:
                return response

            request = self.parser.parse(response.raw_output or response.content)
            if not request.is_tool_use or request.tool_name is None:
                if last_call is not None:
                    return response.model_copy(update={"tool_call": last_call})
                return response

            tool_name = request.tool_name
            logger.info(f"[{task_id}] Tool call requested: {tool_name}")
            task_log.info(f"Tool call detected: {tool_name}")
            task_log.info(f"Tool input: {json.dumps(request.tool_input, ensure_ascii=False, default=str)}")

            try:
                result = await self.tools.execute(
                    tool_name,
                    request.tool_input,
                    {"task_id": task_id, "working_directory": options.working_directory},
                )
            except Exception as e:
                result = ToolExecutionResult(success=False, error=str(e) or type(e).__name__)

            if not result.success:
                error = f"Tool execution failed: {result.error or 'unknown error'}"
                task_log.error(error)
                return AIResponse.failure(
                    provider=self.provider.name,
                    command=response.command,
                    error=error,
                    task_id=task_id,
                    model=response.model,
                )

            preview = json.dumps(_result_payload(result), ensure_ascii=False, default=str)
            task_log.info(f"Tool result: {preview[:TOOL_RESULT_PREVIEW_CHARS]}")
            last_call = ToolCallRecord(
                tool_name=tool_name,
                tool_input=request.tool_input,
                tool_result=result.data,
            )
            current_prompt = build_follow_up_prompt(tool_name, result)

        error = f"Maximum tool call iterations ({self.max_turns}) exceeded"
        task_log.error(error)
        logger.warning(f"[{task_id}] {error}")
        return AIResponse.failure(
            provider=self.provider.name,
            command=f"{self._cli_label()} (max turns exceeded)",
            error=error,
            task_id=task_id,
            model=options.model,
        )
