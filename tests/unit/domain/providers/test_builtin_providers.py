"""Unit tests for the built-in Claude, Gemini, Copilot and Codex providers."""

import asyncio
import json
from unittest.mock import AsyncMock, patch

import pytest

from crewx.domain.models.query_options import QueryOptions
from crewx.domain.models.timeout_config import TimeoutConfig
from crewx.domain.providers import (
    ClaudeCliProvider,
    CodexCliProvider,
    CopilotCliProvider,
    GeminiCliProvider,
)


def make_jsonl(*records: dict) -> str:
    return "\n".join(json.dumps(r) for r in records)


def invoke(provider, process, mode="query", prompt="Hi", options=None):
    with patch("shutil.which", return_value=f"/usr/bin/{provider.behavior.cli_command}"), patch(
        "asyncio.create_subprocess_exec", new=AsyncMock(return_value=process)
    ) as mock:
        method = provider.execute if mode == "execute" else provider.query
        response = asyncio.run(method(prompt, options))
    return response, mock


class TestClaudeCliProvider:

    def test_stream_json_result_extracted(self, fake_process, tmp_path):
        stdout = make_jsonl(
            {"type": "system", "subtype": "init"},
            {"type": "assistant", "message": {"content": [{"type": "text", "text": "Hello"}]}},
            {"type": "result", "result": "Hello world"},
        )
        response, mock = invoke(ClaudeCliProvider(logs_dir=tmp_path), fake_process(stdout))

        assert response.success is True
        assert response.content == "Hello world"
        assert mock.call_args[0][1:] == ("--output-format", "stream-json", "--verbose", "-p")

    def test_model_flag(self, fake_process, tmp_path):
        stdout = make_jsonl({"type": "result", "result": "ok"})
        _, mock = invoke(
            ClaudeCliProvider(logs_dir=tmp_path), fake_process(stdout),
            options=QueryOptions(model="opus"),
        )
        assert mock.call_args[0][1] == "--model=opus"

    def test_session_limit_reported_despite_exit_zero(self, fake_process, tmp_path):
        process = fake_process("Session limit reached ∙ resets 3pm", "")
        response, _ = invoke(ClaudeCliProvider(logs_dir=tmp_path), process)

        assert response.success is False
        assert "3pm" in response.error
        assert "session limit" in response.error.lower()

    def test_empty_output_is_failure(self, fake_process, tmp_path):
        response, _ = invoke(ClaudeCliProvider(logs_dir=tmp_path), fake_process(""))
        assert response.success is False
        assert "no output received" in response.error

    def test_supports_tool_calls(self):
        assert ClaudeCliProvider().supports_tool_calls is True
        assert ClaudeCliProvider.get_metadata()["supports_tool_calls"] is True


class TestGeminiCliProvider:

    def test_prompt_on_stdin_without_args(self, fake_process, tmp_path):
        process = fake_process("Gemini says hi")
        response, mock = invoke(GeminiCliProvider(logs_dir=tmp_path), process, prompt="Hello?")

        assert response.content == "Gemini says hi"
        assert mock.call_args[0] == ("/usr/bin/gemini",)
        assert process.stdin_text == "Hello?"

    def test_response_field_tool_call_detected(self):
        content = json.dumps({
            "response": '<crewx_tool_call>{"type": "tool_use", "name": "read_file", "input": {"path": "x"}}</crewx_tool_call>'
        })
        request = GeminiCliProvider().tool_use_parser.parse(content)
        assert request.tool_name == "read_file"


class TestCopilotCliProvider:

    def test_quota_error(self, fake_process, tmp_path):
        process = fake_process("", "Error: quota exceeded for this month", returncode=1)
        response, _ = invoke(CopilotCliProvider(logs_dir=tmp_path), process)
        assert response.success is False
        assert "quota exceeded" in response.error.lower()

    def test_success(self, fake_process, tmp_path):
        response, _ = invoke(CopilotCliProvider(logs_dir=tmp_path), fake_process("Done"))
        assert response.success is True
        assert response.content == "Done"


class TestCodexCliProvider:

    def test_prompt_is_last_argument_and_stdin_empty(self, fake_process, tmp_path):
        stdout = make_jsonl({"type": "item.completed", "item": {"item_type": "assistant_message", "text": "Fixed"}})
        process = fake_process(stdout)
        response, mock = invoke(
            CodexCliProvider(logs_dir=tmp_path), process, prompt="Fix it",
            options=QueryOptions(piped_context="ignored context"),
        )

        assert response.content == "Fixed"
        assert mock.call_args[0][1:] == ("exec", "--experimental-json", "Fix it")
        assert process.stdin_text == ""

    def test_execute_uses_workspace_write_sandbox(self, fake_process, tmp_path):
        _, mock = invoke(CodexCliProvider(logs_dir=tmp_path), fake_process("ok"), mode="execute")
        assert mock.call_args[0][1:5] == ("exec", "-s", "workspace-write", "--experimental-json")

    def test_no_tool_calls(self):
        assert CodexCliProvider().supports_tool_calls is False


class TestTimeouts:

    def test_env_overrides_apply_per_mode(self, monkeypatch):
        monkeypatch.setenv("CREWX_TIMEOUT_CLAUDE_QUERY", "1000")
        monkeypatch.setenv("CREWX_TIMEOUT_CLAUDE_EXECUTE", "2000")
        provider = ClaudeCliProvider()
        assert provider.behavior.timeout_for("query") == 1000
        assert provider.behavior.timeout_for("execute") == 2000

    def test_explicit_timeouts(self):
        provider = GeminiCliProvider(timeouts=TimeoutConfig(gemini_query=5))
        assert provider.behavior.query_timeout_ms == 5

    @pytest.mark.parametrize("value", ["abc", "0", "-5", ""])
    def test_invalid_env_values_keep_default(self, monkeypatch, value):
        monkeypatch.setenv("CREWX_TIMEOUT_PARALLEL", value)
        assert TimeoutConfig.from_env().parallel == 1_800_000
