"""Tests for ProviderRegistry: registration, fallback and dispatch."""

import asyncio
import json

import pytest

from crewx.application.config_models import CrewxConfig
from crewx.application.provider_registry import ProviderRegistry
from crewx.application.tool_registry import ToolRegistry, create_default_tool_registry
from crewx.domain.errors import ProviderNotAvailableError
from crewx.domain.models.ai_response import AIResponse
from crewx.domain.models.query_options import QueryOptions
from crewx.domain.providers import MockProvider, ProviderFactory
from crewx.domain.providers.ai_provider import AIProvider


class StubProvider(AIProvider):
    """Provider whose availability and outputs are set per test."""

    def __init__(self, name="cli/claude", *, available=True, outputs=None, supports_tools=False, error=None, **_):
        self._name = name
        self.available = available
        self.outputs = list(outputs or ["stub answer"])
        self.supports_tool_calls = supports_tools
        self.error = error
        self.availability_checks = 0
        self.calls: list[tuple[str, str, QueryOptions | None]] = []

    @property
    def name(self) -> str:
        return self._name

    async def is_available(self) -> bool:
        self.availability_checks += 1
        if isinstance(self.available, Exception):
            raise self.available
        return self.available

    async def get_tool_path(self) -> str | None:
        return None

    async def _respond(self, mode, prompt, options):
        self.calls.append((mode, prompt, options))
        if self.error is not None:
            raise self.error
        content = self.outputs.pop(0) if len(self.outputs) > 1 else self.outputs[0]
        return AIResponse(
            content=content,
            provider=self.name,
            command=f"stub {mode}",
            success=True,
            task_id=options.task_id if options else None,
            raw_output=content,
        )

    async def query(self, prompt, options=None):
        return await self._respond("query", prompt, options)

    async def execute(self, prompt, options=None):
        return await self._respond("execute", prompt, options)


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def registry(tmp_path) -> ProviderRegistry:
    return ProviderRegistry(logs_dir=tmp_path)


def install(registry: ProviderRegistry, *providers: StubProvider) -> None:
    for provider in providers:
        registry.register(provider)


class TestRegistration:

    def test_builtins_registered(self, registry):
        names = registry.get_available_providers()
        assert {"cli/claude", "cli/gemini", "cli/copilot", "cli/codex", "mock/default"} <= set(names)
        assert registry.is_builtin("claude") is True
        assert isinstance(registry.get_provider("mock/default"), MockProvider)

    def test_short_name_lookup(self, registry):
        assert registry.get_provider("gemini") is registry.get_provider("cli/gemini")
        assert registry.get_provider("nope/none") is None

    def test_dynamic_providers_loaded(self, registry):
        loaded = registry.load_dynamic_providers([
            {"id": "aider", "cli_command": "aider", "query_args": ["--message"], "prompt_in_args": True},
            {"id": "backend", "type": "remote", "location": "https://crewx.example.com", "external_agent_id": "dev"},
        ])

        assert loaded == ["plugin/aider", "remote/backend"]
        assert registry.is_builtin("plugin/aider") is False
        assert registry.load_errors == {}

    def test_invalid_config_skipped_with_error(self, registry, caplog):
        loaded = registry.load_dynamic_providers([
            {"id": "shell", "cli_command": "bash"},
            {"id": "aider", "cli_command": "aider"},
        ])

        assert loaded == ["plugin/aider"]
        assert registry.get_provider("plugin/shell") is None
        assert "Security" in registry.load_errors["plugin/shell"]
        assert "Skipping provider 'plugin/shell'" in caplog.text

    def test_builtin_name_cannot_be_shadowed(self, tmp_path):
        class ReservedAider(StubProvider):
            def __init__(self, **kwargs):
                super().__init__("plugin/aider")

        ProviderFactory.register("plugin/aider", ReservedAider)
        registry = ProviderRegistry(logs_dir=tmp_path)

        loaded = registry.load_dynamic_providers([{"id": "aider", "cli_command": "aider"}])

        assert loaded == []
        assert registry.load_errors["plugin/aider"] == "Provider name 'plugin/aider' is reserved"
        assert isinstance(registry.get_provider("plugin/aider"), StubProvider)

    def test_reload_replaces_dynamic_keeps_builtins(self, registry):
        registry.load_dynamic_providers([{"id": "aider", "cli_command": "aider"}, {"id": "x", "cli_command": "sh"}])
        assert registry.load_errors

        loaded = registry.reload([{"id": "goose", "cli_command": "goose"}])

        assert loaded == ["plugin/goose"]
        assert registry.get_provider("plugin/aider") is None
        assert registry.get_provider("cli/claude") is not None
        assert registry.load_errors == {}

    def test_from_config(self, tmp_path):
        config = CrewxConfig(
            providers=[{"id": "aider", "cli_command": "aider"}],
            logs_dir=str(tmp_path / "logs"),
            max_tool_turns=2,
        )
        registry = ProviderRegistry.from_config(config)

        assert registry.get_provider("plugin/aider") is not None
        assert registry.max_tool_turns == 2
        assert registry.logs_dir == tmp_path / "logs"

    def test_check_availability(self, registry):
        install(
            registry,
            StubProvider("cli/claude"),
            StubProvider("cli/gemini", available=False),
            StubProvider("cli/copilot", available=RuntimeError("probe crashed")),
        )

        availability = run(registry.check_availability())

        assert availability["cli/claude"] is True
        assert availability["cli/gemini"] is False
        assert availability["cli/copilot"] is False
        assert availability["mock/default"] is True


class TestFallback:
    """Tests for resolve_fallback() and select_provider()."""

    def test_first_available_in_list_order(self, registry):
        claude = StubProvider("cli/claude", available=False)
        gemini = StubProvider("cli/gemini")
        copilot = StubProvider("cli/copilot")
        install(registry, claude, gemini, copilot)

        resolved = run(registry.resolve_fallback(["claude", "cli/gemini", "cli/copilot"]))

        assert resolved == "cli/gemini"
        assert copilot.availability_checks == 0

    def test_single_name_falls_back_to_default_order(self, registry):
        install(
            registry,
            StubProvider("cli/claude", available=False),
            StubProvider("cli/gemini", available=False),
            StubProvider("cli/copilot"),
        )
        assert run(registry.resolve_fallback("cli/gemini")) == "cli/copilot"

    def test_unregistered_candidates_skipped(self, registry):
        assert run(registry.resolve_fallback(["plugin/ghost", "mock/default"])) == "mock/default"

    def test_nothing_available(self, registry):
        install(registry, StubProvider("cli/claude", available=False))
        assert run(registry.resolve_fallback(["cli/claude"])) is None

    def test_select_single_string_without_check(self, registry):
        claude = StubProvider("cli/claude", available=False)
        install(registry, claude)

        assert run(registry.select_provider("claude")) == "cli/claude"
        assert claude.availability_checks == 0

    def test_select_list_uses_fallback(self, registry):
        install(registry, StubProvider("cli/claude", available=False), StubProvider("cli/gemini"))
        assert run(registry.select_provider(["cli/claude", "cli/gemini"])) == "cli/gemini"

    def test_model_collapses_list_to_first(self, registry):
        claude = StubProvider("cli/claude", available=False)
        install(registry, claude)

        assert run(registry.select_provider(["cli/claude", "cli/gemini"], model="opus")) == "cli/claude"
        assert claude.availability_checks == 0

    def test_none_available_uses_first(self, registry, caplog):
        install(registry, StubProvider("cli/claude", available=False), StubProvider("cli/gemini", available=False))

        assert run(registry.select_provider(["cli/claude", "cli/gemini"])) == "cli/claude"
        assert "No provider available" in caplog.text

    def test_empty_list_rejected(self, registry):
        with pytest.raises(ValueError, match="empty"):
            run(registry.select_provider([]))


def tool_call(path: str) -> str:
    body = json.dumps({"type": "tool_use", "name": "read_file", "input": {"path": path}})
    return f"<crewx_tool_call>{body}</crewx_tool_call>"


class TestDispatch:
    """Tests for query_ai() and execute_ai()."""

    def test_query_routes_to_provider(self, registry):
        claude = StubProvider("cli/claude", outputs=["hello"])
        install(registry, claude)

        response = run(registry.query_ai("hi", "claude"))

        assert response.content == "hello"
        assert claude.calls[0][0] == "query"

    def test_execute_routes_to_provider(self, registry):
        claude = StubProvider("cli/claude", outputs=["done"], supports_tools=True)
        registry.tool_registry = create_default_tool_registry()
        install(registry, claude)

        response = run(registry.execute_ai("do it", "cli/claude"))

        assert response.content == "done"
        assert len(claude.calls) == 1
        assert claude.calls[0][:2] == ("execute", "do it")

    @pytest.mark.parametrize("name", ["cli/claude", "plugin/ghost"])
    def test_unavailable_raises(self, registry, name):
        install(registry, StubProvider("cli/claude", available=False))

        with pytest.raises(ProviderNotAvailableError) as exc_info:
            run(registry.query_ai("hi", name))

        assert exc_info.value.provider_name == name
        assert f"AI Provider '{name}' is not available" in str(exc_info.value)

    def test_query_uses_tool_loop(self, tmp_path):
        workdir = tmp_path / "repo"
        workdir.mkdir()
        (workdir / "README.md").write_text("Project readme", encoding="utf-8")
        registry = ProviderRegistry(logs_dir=tmp_path, tool_registry=create_default_tool_registry())
        claude = StubProvider("cli/claude", outputs=[tool_call("README.md"), "It is a readme."], supports_tools=True)
        install(registry, claude)

        response = run(registry.query_ai("Summarize", "cli/claude", QueryOptions(working_directory=str(workdir))))

        assert response.success is True
        assert response.content == "It is a readme."
        assert response.tool_call.tool_name == "read_file"
        assert response.tool_call.tool_result["content"] == "Project readme"
        assert len(claude.calls) == 2

    def test_tool_loop_respects_max_turns(self, tmp_path):
        (tmp_path / "a.txt").write_text("a", encoding="utf-8")
        registry = ProviderRegistry(
            logs_dir=tmp_path, tool_registry=create_default_tool_registry(), max_tool_turns=2
        )
        claude = StubProvider("cli/claude", outputs=[tool_call("a.txt")], supports_tools=True)
        install(registry, claude)

        response = run(registry.query_ai("loop", "cli/claude", QueryOptions(working_directory=str(tmp_path))))

        assert response.error == "Maximum tool call iterations (2) exceeded"
        assert len(claude.calls) == 2

    def test_no_tool_loop_without_support(self, tmp_path):
        registry = ProviderRegistry(logs_dir=tmp_path, tool_registry=create_default_tool_registry())
        codex = StubProvider("cli/codex", outputs=["plain"])
        install(registry, codex)

        run(registry.query_ai("question", "cli/codex"))

        assert codex.calls[0][1] == "question"

    def test_no_tool_loop_with_empty_tool_registry(self, tmp_path):
        registry = ProviderRegistry(logs_dir=tmp_path, tool_registry=ToolRegistry())
        claude = StubProvider("cli/claude", outputs=[tool_call("a.txt")], supports_tools=True)
        install(registry, claude)

        response = run(registry.query_ai("question", "cli/claude"))

        assert response.tool_call is None
        assert claude.calls == [("query", "question", QueryOptions())]

    def test_unexpected_exception_becomes_failure(self, registry, caplog):
        install(registry, StubProvider("cli/claude", error=RuntimeError("kaboom")))

        response = run(registry.query_ai("hi", "cli/claude", QueryOptions(task_id="t1", model="opus")))

        assert response.success is False
        assert response.error == "kaboom"
        assert response.command == "cli/claude query"
        assert response.task_id == "t1"
        assert response.model == "opus"
        assert "cli/claude query raised unexpectedly" in caplog.text
