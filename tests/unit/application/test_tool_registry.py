"""Tests for ToolRegistry and the built-in read_file tool."""

import asyncio

import pytest

from crewx.application.tool_registry import (
    MAX_READ_FILE_BYTES,
    ToolRegistry,
    create_default_tool_registry,
)
from crewx.domain.errors import ToolExecutionError
from crewx.domain.models.tool import ToolDefinition, ToolExecutionResult


def definition(name: str) -> ToolDefinition:
    return ToolDefinition(name=name, description=f"{name} tool")


def run(coro):
    return asyncio.run(coro)


class TestToolRegistry:

    def test_register_and_list(self):
        registry = ToolRegistry()
        registry.register(definition("echo"), lambda tool_input, context: tool_input)

        assert [tool.name for tool in registry.list()] == ["echo"]
        assert registry.has("echo") is True
        assert registry.has("other") is False

    def test_sync_handler_result_wrapped(self):
        registry = ToolRegistry()
        registry.register(definition("echo"), lambda tool_input, context: {"echo": tool_input})

        result = run(registry.execute("echo", "hi"))

        assert result.success is True
        assert result.data == {"echo": "hi"}

    def test_async_handler_awaited(self):
        async def handler(tool_input, context):
            return context["working_directory"]

        registry = ToolRegistry()
        registry.register(definition("where"), handler)

        result = run(registry.execute("where", None, {"working_directory": "/repo"}))

        assert result.data == "/repo"

    def test_execution_result_passed_through(self):
        registry = ToolRegistry()
        registry.register(
            definition("fail"),
            lambda tool_input, context: ToolExecutionResult(success=False, error="nope"),
        )
        assert run(registry.execute("fail", {})).error == "nope"

    def test_handler_exception_becomes_failure(self):
        def handler(tool_input, context):
            raise RuntimeError("disk on fire")

        registry = ToolRegistry()
        registry.register(definition("boom"), handler)

        result = run(registry.execute("boom", {}))

        assert result.success is False
        assert result.error == "disk on fire"

    def test_unknown_tool_raises(self):
        registry = ToolRegistry()
        registry.register(definition("echo"), lambda tool_input, context: None)

        with pytest.raises(ToolExecutionError, match="Unknown tool: 'missing'. Available tools: echo"):
            run(registry.execute("missing", {}))


class TestReadFileTool:
    """Tests for the read_file tool."""

    def test_reads_relative_file(self, tmp_path):
        (tmp_path / "docs").mkdir()
        (tmp_path / "docs" / "notes.md").write_text("hello", encoding="utf-8")

        result = run(create_default_tool_registry().execute(
            "read_file", {"path": "docs/notes.md"}, {"working_directory": str(tmp_path)}
        ))

        assert result.success is True
        assert result.data == {"path": "docs/notes.md", "content": "hello", "truncated": False}

    def test_defaults_to_cwd(self):
        with open("local.txt", "w", encoding="utf-8") as f:
            f.write("here")

        result = run(create_default_tool_registry().execute("read_file", {"path": "local.txt"}))

        assert result.data["content"] == "here"

    def test_path_traversal_rejected(self, tmp_path):
        root = tmp_path / "root"
        root.mkdir()
        (tmp_path / "secret.txt").write_text("secret", encoding="utf-8")

        result = run(create_default_tool_registry().execute(
            "read_file", {"path": "../secret.txt"}, {"working_directory": str(root)}
        ))

        assert result.success is False
        assert "Path traversal detected" in result.error

    def test_missing_file(self, tmp_path):
        result = run(create_default_tool_registry().execute(
            "read_file", {"path": "nope.txt"}, {"working_directory": str(tmp_path)}
        ))
        assert result.success is False
        assert result.error == "File not found: nope.txt"

    @pytest.mark.parametrize("tool_input", [None, "README.md", {"path": 3}, {}])
    def test_invalid_input(self, tool_input):
        result = run(create_default_tool_registry().execute("read_file", tool_input))
        assert result.success is False
        assert "requires a string 'path'" in result.error

    def test_large_file_truncated(self, tmp_path):
        (tmp_path / "big.txt").write_bytes(b"a" * (MAX_READ_FILE_BYTES + 10))

        result = run(create_default_tool_registry().execute(
            "read_file", {"path": "big.txt"}, {"working_directory": str(tmp_path)}
        ))

        assert result.data["truncated"] is True
        assert len(result.data["content"]) == MAX_READ_FILE_BYTES
