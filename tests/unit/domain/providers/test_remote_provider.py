"""Unit tests for RemoteProvider (HTTP and file:// relay)."""

import asyncio
import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from crewx.domain.models.provider_config import RemoteAuthConfig, RemoteProviderConfig
from crewx.domain.models.query_options import ConversationMessage, QueryOptions
from crewx.domain.providers.remote_provider import RemoteProvider


def http_config(**overrides) -> RemoteProviderConfig:
    values = dict(
        id="backend",
        location="https://crewx.example.com",
        external_agent_id="backend_dev",
        auth=RemoteAuthConfig(type="bearer", token="s3cret"),
        headers={"X-Team": "core"},
    )
    values.update(overrides)
    return RemoteProviderConfig(**values)


def run(coro):
    return asyncio.run(coro)


class TestHttpRemote:

    def test_query_posts_and_maps_response(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["headers"] = request.headers
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={
                "success": True,
                "content": "Remote answer",
                "task_id": "remote_task_1",
                "tool_call": {"toolName": "read_file", "toolInput": {"path": "a"}, "toolResult": "x"},
            })

        provider = RemoteProvider(http_config(), transport=httpx.MockTransport(handler))
        response = run(provider.query("Review the API", QueryOptions(model="sonnet")))

        assert response.success is True
        assert response.content == "Remote answer"
        assert response.provider == "remote/backend"
        assert response.task_id == "remote_task_1"
        assert response.tool_call.tool_name == "read_file"
        assert seen["url"] == "https://crewx.example.com/mcp/query"
        assert seen["headers"]["authorization"] == "Bearer s3cret"
        assert seen["headers"]["x-team"] == "core"
        assert seen["body"]["agent_id"] == "backend_dev"
        assert seen["body"]["mode"] == "query"
        assert seen["body"]["model"] == "sonnet"
        assert seen["body"]["prompt"] == "Review the API"

    def test_execute_mode_and_history(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"content": "done"})

        provider = RemoteProvider(http_config(), transport=httpx.MockTransport(handler))
        options = QueryOptions(messages=[ConversationMessage(text="earlier")], piped_context="ctx")
        response = run(provider.execute("Ship it", options))

        assert response.success is True
        assert seen["body"]["mode"] == "execute"
        assert seen["body"]["messages"][0]["text"] == "earlier"
        assert seen["body"]["context"] == "ctx"
        assert json.loads(seen["body"]["structured_payload"])["prompt"] == "Ship it"

    def test_api_key_header(self):
        seen = {}

        def handler(request):
            seen["headers"] = request.headers
            return httpx.Response(200, json={"content": "ok"})

        config = http_config(auth=RemoteAuthConfig(type="api_key", token="k"))
        run(RemoteProvider(config, transport=httpx.MockTransport(handler)).query("x"))
        assert seen["headers"]["api-key"] == "k"
        assert "authorization" not in seen["headers"]

    def test_http_error_status(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(503))
        response = run(RemoteProvider(http_config(), transport=transport).query("x"))

        assert response.success is False
        assert response.error == "HTTP 503: Service Unavailable"

    def test_remote_reported_failure(self):
        transport = httpx.MockTransport(
            lambda request: httpx.Response(200, json={"success": False, "error": "agent busy"})
        )
        response = run(RemoteProvider(http_config(), transport=transport).query("x"))
        assert response.success is False
        assert response.error == "agent busy"

    @pytest.mark.parametrize(
        "payload,error,task_id",
        [
            ({"success": False, "error": {"message": "boom"}, "task_id": 7}, "boom", "7"),
            ({"success": False, "error": {"code": 42}}, '{"code": 42}', None),
            ({"success": False, "error": ["a", "b"], "task_id": ""}, '["a", "b"]', None),
        ],
    )
    def test_non_string_reply_fields_coerced(self, payload, error, task_id):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json=payload))
        options = QueryOptions(task_id="local_task")

        response = run(RemoteProvider(http_config(), transport=transport).query("x", options))

        assert response.success is False
        assert response.error == error
        assert response.task_id == (task_id or "local_task")

    def test_non_string_content_coerced(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"content": 42}))
        response = run(RemoteProvider(http_config(), transport=transport).query("x"))
        assert response.success is True
        assert response.content == "42"

    def test_invalid_json(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html>"))
        response = run(RemoteProvider(http_config(), transport=transport).query("x"))
        assert response.success is False
        assert "Invalid JSON" in response.error

    def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        response = run(RemoteProvider(http_config(), transport=httpx.MockTransport(handler)).query("x"))
        assert response.success is False
        assert "connection refused" in response.error

    def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        provider = RemoteProvider(http_config(), transport=httpx.MockTransport(handler))
        response = run(provider.query("x", QueryOptions(timeout_ms=1500)))
        assert response.error == "remote/backend remote timeout after 1.5s"

    @pytest.mark.parametrize("status,expected", [(200, True), (500, False)])
    def test_health_check(self, status, expected):
        def handler(request):
            assert request.url.path == "/health"
            return httpx.Response(status)

        provider = RemoteProvider(http_config(), transport=httpx.MockTransport(handler))
        assert run(provider.is_available()) is expected

    def test_health_check_unreachable(self):
        def handler(request):
            raise httpx.ConnectError("down", request=request)

        provider = RemoteProvider(http_config(), transport=httpx.MockTransport(handler))
        assert run(provider.is_available()) is False


class TestFileRelay:

    def test_missing_config_fails_without_spawning(self, tmp_path):
        config = http_config(location=f"file://{tmp_path / 'missing.yaml'}", auth=None)
        provider = RemoteProvider(config, logs_dir=tmp_path)

        with patch("asyncio.create_subprocess_exec", new=AsyncMock()) as mock:
            response = run(provider.query("x"))

        assert response.success is False
        assert response.error.startswith("Remote CrewX configuration not found:")
        mock.assert_not_called()

    def test_relays_through_crewx_cli(self, tmp_path, fake_process):
        remote_config = tmp_path / "crewx.yaml"
        remote_config.write_text("agents: []\n")
        config = http_config(location=f"file://{remote_config}", auth=None)
        provider = RemoteProvider(config, logs_dir=tmp_path)
        process = fake_process("relayed answer")

        with patch("shutil.which", return_value="/usr/bin/crewx"), patch(
            "asyncio.create_subprocess_exec", new=AsyncMock(return_value=process)
        ) as mock:
            response = run(provider.query('<user_query key="k">\nList endpoints\n</user_query>'))

        assert response.success is True
        assert response.content == "relayed answer"
        assert response.provider == "remote/backend"
        args = mock.call_args[0]
        assert args[1:4] == ("query", "--raw", f"--config={remote_config}")
        assert args[-1] == "@backend_dev List endpoints"
        assert json.loads(process.stdin_text)["prompt"].endswith("</user_query>")

    def test_availability_requires_config_file(self, tmp_path):
        config = http_config(location=f"file://{tmp_path / 'nope.yaml'}", auth=None)
        provider = RemoteProvider(config)
        with patch("shutil.which", return_value="/usr/bin/crewx"):
            assert run(provider.is_available()) is False
