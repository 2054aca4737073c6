"""Process invoker shared by every CLI-backed provider.

Launches the provider CLI as a child process, streams the prompt over
stdin (or passes it as the last argument), collects stdout/stderr into a
per-task log, applies a timeout and classifies the outcome.
"""

import asyncio
import codecs
import logging
import os
import secrets
import shlex
import shutil
import string
import sys
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from crewx.domain.models.ai_response import AIResponse
from crewx.domain.models.query_options import QueryOptions
from crewx.domain.providers.ai_provider import AIProvider
from crewx.domain.providers.context_payload import build_piped_context
from crewx.domain.providers.error_classifiers import ErrorClassifier
from crewx.domain.providers.provider_behavior import InvocationMode, ProviderBehavior
from crewx.domain.providers.stream_output import OutputNormalizer, passthrough
from crewx.domain.providers.task_log import LogLevel, TaskLog
from crewx.domain.providers.tool_use_parser import (
    ToolUseParser,
    filter_tool_use_from_response,
)

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 65536

# Grace period for a killed process to be reaped
KILL_WAIT_SECONDS = 5

_TASK_ID_ALPHABET = string.ascii_lowercase + string.digits


class ToolPathState(Enum):
    UNRESOLVED = "unresolved"
    RESOLVED = "resolved"
    ABSENT = "absent"


@dataclass
class ToolPathCache:
    """Per-instance memo of the executable lookup, including negative results."""

    state: ToolPathState = ToolPathState.UNRESOLVED
    path: str | None = None

    def store(self, path: str | None) -> None:
        self.path = path
        self.state = ToolPathState.RESOLVED if path else ToolPathState.ABSENT

    def invalidate(self) -> None:
        self.state = ToolPathState.UNRESOLVED
        self.path = None


def resolve_executable(command: str) -> str | None:
    """Locate a CLI on PATH, or relative to the current directory if it has separators."""
    if "/" in command or "\\" in command:
        candidate = Path.cwd() / command
        if candidate.is_file() and os.access(candidate, os.X_OK):
            return str(candidate)
        return None
    return shutil.which(command)


def generate_task_id(provider_name: str, mode: InvocationMode) -> str:
    prefix = provider_name.replace("/", "_")
    if mode == "execute":
        prefix = f"{prefix}_execute"
    suffix = "".join(secrets.choice(_TASK_ID_ALPHABET) for _ in range(9))
    return f"{prefix}_{int(time.time() * 1000)}_{suffix}"


class CliProvider(AIProvider):
    """Single concrete invoker parameterized by a ProviderBehavior.

    Error classification, tool-use parsing and output normalization are
    injected strategies, so built-in and configured providers share this
    class.
    """

    def __init__(
        self,
        behavior: ProviderBehavior,
        *,
        error_classifier: ErrorClassifier | None = None,
        tool_use_parser: ToolUseParser | None = None,
        output_normalizer: OutputNormalizer = passthrough,
        logs_dir: Path | None = None,
    ) -> None:
        self.behavior = behavior
        self.error_classifier = error_classifier or ErrorClassifier()
        self.tool_use_parser = tool_use_parser or ToolUseParser()
        self.output_normalizer = output_normalizer
        self.logs_dir = logs_dir
        self._tool_path = ToolPathCache()

    @property
    def name(self) -> str:
        return self.behavior.name

    @property
    def supports_tool_calls(self) -> bool:  # type: ignore[override]
        return self.behavior.supports_tool_calls

    def describe(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.behavior.description or f"{self.behavior.cli_command} CLI",
            "cli_command": self.behavior.cli_command,
            "supports_tool_calls": self.behavior.supports_tool_calls,
        }

    async def get_tool_path(self) -> str | None:
        if self._tool_path.state is ToolPathState.UNRESOLVED:
            path = resolve_executable(self.behavior.cli_command)
            self._tool_path.store(path)
            if path is None:
                logger.debug(f"{self.name}: '{self.behavior.cli_command}' not found")
        return self._tool_path.path

    def invalidate_tool_path(self) -> None:
        self._tool_path.invalidate()

    async def is_available(self) -> bool:
        return await self.get_tool_path() is not None

    async def query(self, prompt: str, options: QueryOptions | None = None) -> AIResponse:
        return await self.invoke(prompt, options or QueryOptions(), "query")

    async def execute(self, prompt: str, options: QueryOptions | None = None) -> AIResponse:
        return await self.invoke(prompt, options or QueryOptions(), "execute")

    def build_args(self, mode: InvocationMode, options: QueryOptions) -> tuple[list[str], str | None]:
        """Return the argument list (without the prompt) and the effective model."""
        model = options.model or self.behavior.default_model
        args = [*options.additional_args, *self.behavior.args_for(mode)]

        if model:
            args = [arg.replace("{model}", model) for arg in args]

        if (
            self.behavior.model_flag
            and options.model
            and not any(arg.startswith("--model") for arg in args)
        ):
            args.insert(0, f"--model={options.model}")

        return args, model

    def command_string(self, args: list[str]) -> str:
        parts = [self.behavior.cli_command, *args]
        if self.behavior.prompt_in_args:
            return f"{shlex.join(parts)} \"<prompt>\""
        return shlex.join(parts)

    def build_env(self) -> dict[str, str]:
        env = dict(os.environ)
        if sys.platform == "win32":
            env["PYTHONIOENCODING"] = "utf-8"
            env["LANG"] = "en_US.UTF-8"
        env.update(self.behavior.env)
        return env

    def build_stdin_payload(self, prompt: str, options: QueryOptions, mode: InvocationMode) -> bytes:
        parts: list[str] = []
        if self.behavior.pipe_context:
            piped = build_piped_context(prompt, provider=self.name, mode=mode, options=options)
            if piped:
                parts.append(piped if piped.endswith("\n") else f"{piped}\n")
        if not self.behavior.prompt_in_args:
            parts.append(prompt)
        return "".join(parts).encode("utf-8")

    async def invoke(self, prompt: str, options: QueryOptions, mode: InvocationMode) -> AIResponse:
        task_id = options.task_id or generate_task_id(self.name, mode)
        args, model = self.build_args(mode, options)
        command = self.command_string(args)
        launch_args = [*args, prompt] if self.behavior.prompt_in_args else args
        timeout_ms = options.timeout_ms or self.behavior.timeout_for(mode)
        cwd = options.working_directory or os.getcwd()

        task_log = TaskLog(task_id, self.logs_dir)
        task_log.start(self.name, command)
        task_log.info(f"Mode: {mode}, working directory: {cwd}, timeout: {timeout_ms}ms")
        logger.info(f"[{task_id}] {self.name} {mode} started")

        def fail(error: str) -> AIResponse:
            task_log.error(error)
            logger.info(f"[{task_id}] {self.name} {mode} failed: {error}")
            return AIResponse.failure(
                provider=self.name, command=command, error=error, task_id=task_id, model=model
            )

        executable = await self.get_tool_path() or self.behavior.cli_command
        try:
            process = await asyncio.create_subprocess_exec(
                executable,
                *launch_args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
                env=self.build_env(),
            )
        except FileNotFoundError:
            return fail(self.behavior.not_installed_message)
        except OSError as e:
            return fail(str(e))

        payload = self.build_stdin_payload(prompt, options, mode)
        try:
            stdout, stderr = await asyncio.wait_for(
                self._communicate(process, payload, task_log),
                timeout=timeout_ms / 1000,
            )
        except asyncio.TimeoutError:
            await self._terminate(process)
            label = "CLI execute timeout" if mode == "execute" else "CLI timeout"
            return fail(f"{self.name} {label} after {timeout_ms / 1000:g}s")

        returncode = process.returncode if process.returncode is not None else -1
        task_log.info(f"Process exited with code {returncode}")

        if stderr.strip():
            logger.debug(f"{self.name} stderr: {stderr.strip()}")

        label = "CLI execute failed" if mode == "execute" else "CLI failed"
        classification = self.error_classifier.parse_provider_error(stderr, stdout)
        if classification.error:
            return fail(f"{self.name} {label}: {classification.message}")
        if returncode != 0:
            return fail(f"{self.name} {label}: {stderr.strip() or f'Exit code {returncode}'}")
        if self.behavior.require_output and not stdout.strip():
            return fail(f"{self.name} {label}: no output received")

        raw = stdout.strip()
        content = filter_tool_use_from_response(self.output_normalizer(raw, args))
        task_log.info("Completed successfully")
        logger.info(f"[{task_id}] {self.name} {mode} completed")
        return AIResponse(
            content=content,
            provider=self.name,
            command=command,
            success=True,
            task_id=task_id,
            model=model,
            raw_output=raw,
        )

    async def _communicate(
        self,
        process: asyncio.subprocess.Process,
        payload: bytes,
        task_log: TaskLog,
    ) -> tuple[str, str]:
        stdout_parts: list[str] = []
        stderr_parts: list[str] = []

        await asyncio.gather(
            self._feed_stdin(process, payload),
            self._pump(process.stdout, LogLevel.STDOUT, stdout_parts, task_log),
            self._pump(process.stderr, LogLevel.STDERR, stderr_parts, task_log),
        )
        await process.wait()
        return "".join(stdout_parts), "".join(stderr_parts)

    async def _feed_stdin(self, process: asyncio.subprocess.Process, payload: bytes) -> None:
        if process.stdin is None:
            return
        try:
            if payload:
                process.stdin.write(payload)
                await process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            # The CLI may exit before reading stdin; its output still decides the result
            logger.debug(f"{self.name}: stdin closed early: {e}")
        finally:
            process.stdin.close()

    @staticmethod
    async def _pump(
        stream: asyncio.StreamReader | None,
        level: LogLevel,
        sink: list[str],
        task_log: TaskLog,
    ) -> None:
        if stream is None:
            return
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            chunk = await stream.read(READ_CHUNK_SIZE)
            if not chunk:
                break
            text = decoder.decode(chunk)
            if text:
                sink.append(text)
                task_log.append(level, text.rstrip("\n"))
        tail = decoder.decode(b"", final=True)
        if tail:
            sink.append(tail)
            task_log.append(level, tail)

    async def _terminate(self, process: asyncio.subprocess.Process) -> None:
        try:
            process.kill()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(process.wait(), timeout=KILL_WAIT_SECONDS)
        except asyncio.TimeoutError:
            logger.warning(f"{self.name}: process {process.pid} did not exit after kill")
