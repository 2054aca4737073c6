"""Remote provider: forwards requests to another CrewX instance.

``file://`` locations relay through a local ``crewx`` invocation scoped to
the target configuration file. ``http(s)://`` locations are called over
HTTP at ``<location>/mcp/query``.
"""

import json
import logging
from pathlib import Path
from typing import Any

import httpx

from crewx.domain.constants import ProviderNamespace
from crewx.domain.models.ai_response import AIResponse, ToolCallRecord
from crewx.domain.models.provider_config import RemoteProviderConfig
from crewx.domain.models.query_options import QueryOptions
from crewx.domain.providers.ai_provider import AIProvider
from crewx.domain.providers.cli_provider import CliProvider, generate_task_id
from crewx.domain.providers.context_payload import (
    build_piped_context,
    build_structured_payload,
    is_structured_payload,
)
from crewx.domain.providers.provider_behavior import InvocationMode, ProviderBehavior
from crewx.domain.providers.tool_call_loop import extract_user_query

logger = logging.getLogger(__name__)

DEFAULT_REMOTE_QUERY_TIMEOUT_MS = 300_000
DEFAULT_REMOTE_EXECUTE_TIMEOUT_MS = 600_000
HEALTH_CHECK_TIMEOUT = 5.0
RELAY_COMMAND = "crewx"


class RemoteProvider(AIProvider):
    def __init__(
        self,
        config: RemoteProviderConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        logs_dir: Path | None = None,
    ) -> None:
        if not config.location or not config.external_agent_id:
            raise ValueError("RemoteProvider requires a validated configuration")
        self.config = config
        self.location = config.location.rstrip("/")
        self._name = f"{ProviderNamespace.REMOTE.value}/{config.id}"
        self._transport = transport
        timeout = config.timeout
        self.query_timeout_ms = (timeout and timeout.query) or DEFAULT_REMOTE_QUERY_TIMEOUT_MS
        self.execute_timeout_ms = (timeout and timeout.execute) or DEFAULT_REMOTE_EXECUTE_TIMEOUT_MS
        self.relay: CliProvider | None = None
        if self.is_file_location:
            self.relay = CliProvider(self._relay_behavior(), logs_dir=logs_dir)

    @property
    def name(self) -> str:
        return self._name

    @property
    def is_file_location(self) -> bool:
        return self.location.startswith("file://")

    @property
    def config_path(self) -> Path:
        return Path(self.location[len("file://"):])

    def describe(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.config.description or f"Remote agent {self.config.external_agent_id} at {self.location}",
            "cli_command": RELAY_COMMAND if self.is_file_location else None,
            "supports_tool_calls": False,
        }

    def _relay_behavior(self) -> ProviderBehavior:
        config_flag = f"--config={self.config_path}"
        return ProviderBehavior(
            name=self.name,
            cli_command=RELAY_COMMAND,
            not_installed_message="CrewX CLI is not installed or not on PATH.",
            query_args=("query", "--raw", config_flag),
            execute_args=("execute", "--raw", config_flag),
            prompt_in_args=True,
            query_timeout_ms=self.query_timeout_ms,
            execute_timeout_ms=self.execute_timeout_ms,
            default_model=self.config.default_model,
            model_flag=False,
            description=self.config.description or "",
        )

    def _auth_headers(self) -> dict[str, str]:
        auth = self.config.auth
        if auth is None or auth.type == "none" or not auth.token:
            return {}
        if auth.type == "bearer":
            return {"Authorization": f"Bearer {auth.token}"}
        if auth.type == "api_key":
            return {"Api-Key": auth.token}
        return {}

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            **self._auth_headers(),
            **self.config.headers,
        }

    async def get_tool_path(self) -> str | None:
        if self.relay is not None:
            return await self.relay.get_tool_path()
        return None

    async def is_available(self) -> bool:
        if self.relay is not None:
            return self.config_path.is_file() and await self.relay.is_available()

        try:
            async with httpx.AsyncClient(timeout=HEALTH_CHECK_TIMEOUT, transport=self._transport) as client:
                response = await client.get(
                    f"{self.location}/health",
                    headers={**self.config.headers, **self._auth_headers()},
                )
        except httpx.HTTPError as e:
            logger.debug(f"{self.name} health check failed: {e}")
            return False
        return response.is_success

    async def query(self, prompt: str, options: QueryOptions | None = None) -> AIResponse:
        return await self._invoke(prompt, options or QueryOptions(), "query")

    async def execute(self, prompt: str, options: QueryOptions | None = None) -> AIResponse:
        return await self._invoke(prompt, options or QueryOptions(), "execute")

    async def _invoke(self, prompt: str, options: QueryOptions, mode: InvocationMode) -> AIResponse:
        if self.relay is not None:
            return await self._relay_invoke(self.relay, prompt, options, mode)
        return await self._http_invoke(prompt, options, mode)

    async def _relay_invoke(
        self, relay: CliProvider, prompt: str, options: QueryOptions, mode: InvocationMode
    ) -> AIResponse:
        if not self.config_path.is_file():
            return AIResponse.failure(
                provider=self.name,
                command=f"{RELAY_COMMAND} {mode} --config={self.config_path}",
                error=f"Remote CrewX configuration not found: {self.config_path}",
                task_id=options.task_id,
            )

        user_query = extract_user_query(prompt).strip() if prompt else ""
        agent = f"@{self.config.external_agent_id}"
        formatted = f"{agent} {user_query}" if user_query else agent

        # The relayed instance always gets the full prompt and history on stdin
        payload = build_piped_context(
            prompt, provider=self.name, mode=mode, options=options
        ) or build_structured_payload(prompt, provider=self.name, mode=mode, options=options)
        relay_options = options.model_copy(update={"piped_context": payload})
        if mode == "execute":
            return await relay.execute(formatted, relay_options)
        return await relay.query(formatted, relay_options)

    async def _http_invoke(self, prompt: str, options: QueryOptions, mode: InvocationMode) -> AIResponse:
        task_id = options.task_id or generate_task_id(self.name, mode)
        command = f"remote {mode} to {self.location}"
        timeout_ms = options.timeout_ms or (
            self.execute_timeout_ms if mode == "execute" else self.query_timeout_ms
        )

        body: dict[str, Any] = {
            "prompt": prompt,
            "agent_id": self.config.external_agent_id,
            "task_id": task_id,
            "mode": mode,
            "model": options.model or self.config.default_model,
            "working_directory": options.working_directory,
        }
        structured = build_piped_context(prompt, provider=self.name, mode=mode, options=options)
        if structured:
            body["structured_payload"] = structured
        if options.messages:
            body["messages"] = [m.model_dump() for m in options.messages]
        piped = (options.piped_context or "").strip()
        if piped and not is_structured_payload(piped):
            body["context"] = piped

        def fail(error: str) -> AIResponse:
            logger.info(f"[{task_id}] {self.name} {mode} failed: {error}")
            return AIResponse.failure(
                provider=self.name, command=command, error=error, task_id=task_id, model=body["model"]
            )

        logger.info(f"[{task_id}] {command}")
        try:
            async with httpx.AsyncClient(timeout=timeout_ms / 1000, transport=self._transport) as client:
                response = await client.post(
                    f"{self.location}/mcp/query",
                    json=body,
                    headers=self._headers(),
                )
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException:
            return fail(f"{self.name} remote timeout after {timeout_ms / 1000:g}s")
        except httpx.HTTPStatusError as e:
            return fail(f"HTTP {e.response.status_code}: {e.response.reason_phrase}")
        except httpx.RequestError as e:
            return fail(str(e) or type(e).__name__)
        except ValueError as e:
            return fail(f"Invalid JSON from remote agent: {e}")

        if not isinstance(data, dict):
            return fail("Invalid response from remote agent: expected a JSON object")

        success = data.get("success") is not False
        error = _as_text(data.get("error"))
        if not success and not error:
            error = "Remote agent reported a failure"
        return AIResponse(
            content=_as_text(data.get("content")) or "",
            provider=self.name,
            command=command,
            success=success,
            error=error,
            task_id=_as_text(data.get("task_id")) or task_id,
            model=body["model"],
            tool_call=_tool_call_record(data.get("tool_call")),
        )


def _as_text(value: Any) -> str | None:
    """Coerce a reply field to text; error objects contribute their message."""
    if value is None or value == "":
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, dict) and isinstance(value.get("message"), str):
        return value["message"]
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def _tool_call_record(raw: Any) -> ToolCallRecord | None:
    if not isinstance(raw, dict):
        return None
    name = raw.get("tool_name") or raw.get("toolName")
    if not isinstance(name, str) or not name:
        return None
    return ToolCallRecord(
        tool_name=name,
        tool_input=raw.get("tool_input", raw.get("toolInput")),
        tool_result=raw.get("tool_result", raw.get("toolResult")),
    )
