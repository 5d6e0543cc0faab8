"""Tests for the raidbot CLI commands."""

import json
import logging
from unittest.mock import patch

import httpx
import pytest
from click.testing import CliRunner

from conftest import StubAdapter, reply
from raidbot.cli.main import cli
from raidbot.client.session import ChatClient
from raidbot.core.errors import ProviderHTTPError
from raidbot.core.service import AIService


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def _quiet_logging(monkeypatch):
    """Keep log lines out of command output and undo handler changes."""
    monkeypatch.setenv("RAIDBOT_LOG_LEVEL", "CRITICAL")
    package_logger = logging.getLogger("raidbot")
    level, handlers = package_logger.level, list(package_logger.handlers)
    yield
    package_logger.setLevel(level)
    package_logger.handlers[:] = handlers


def _stub_service(*adapters):
    def factory(config):
        return AIService(config, adapters={a.name: a for a in adapters})

    return factory


class TestAsk:
    def test_success_text(self, runner, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "k")
        with patch("raidbot.cli.main._service", _stub_service(StubAdapter("gemini", reply("Hello back")))):
            result = runner.invoke(cli, ["ask", "Hello"])

        assert result.exit_code == 0, result.output
        assert result.output.strip() == "Hello back"

    def test_success_json(self, runner, monkeypatch):
        monkeypatch.setenv("GROQ_API_KEY", "k")
        with patch("raidbot.cli.main._service", _stub_service(StubAdapter("groq", reply("Hi", "groq:llama")))):
            result = runner.invoke(cli, ["ask", "Hello", "--temperature", "0.2", "--json"])

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["success"] is True
        assert data["provider"] == "groq"
        assert data["correlationId"].startswith("ai_")

    def test_unconfigured_exits_nonzero(self, runner):
        result = runner.invoke(cli, ["ask", "Hello"])

        assert result.exit_code == 1
        assert "CONFIGURATION" in result.output

    def test_failure_json(self, runner, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "k")
        gemini = StubAdapter("gemini", ProviderHTTPError("gemini", 401, "bad key"))
        with patch("raidbot.cli.main._service", _stub_service(gemini)):
            result = runner.invoke(cli, ["ask", "Hello", "--json"])

        assert result.exit_code == 1
        data = json.loads(result.output)
        assert data == {
            "success": False,
            "error": data["error"],
            "type": "API_KEY",
            "correlationId": data["correlationId"],
        }
        assert "bad key" not in result.output


class TestHealth:
    def test_json(self, runner, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "secret-value")
        result = runner.invoke(cli, ["health", "--json"])

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["status"] == "healthy"
        assert data["providers"]["groq"]["status"] == "not_configured"
        assert "secret-value" not in result.output

    def test_text_with_probe(self, runner, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "k")
        with patch("raidbot.cli.main._service", _stub_service(StubAdapter("gemini", reply("OK")))):
            result = runner.invoke(cli, ["health", "--probe"])

        assert result.exit_code == 0, result.output
        assert "Overall: healthy" in result.output
        assert "probe=ok" in result.output


class TestChat:
    def _patched_client(self, handler):
        original = ChatClient.from_settings.__func__

        def from_settings(cls, settings, **kwargs):
            http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
            return original(cls, settings, http_client=http)

        return patch.object(ChatClient, "from_settings", classmethod(from_settings))

    def test_success(self, runner):
        seen = []

        def handler(request):
            seen.append(str(request.url))
            return httpx.Response(
                200,
                json={
                    "success": True,
                    "response": "Remote hello",
                    "model": "gemini-1.5-flash",
                    "provider": "gemini",
                    "correlationId": "ai_remote",
                },
            )

        with self._patched_client(handler):
            result = runner.invoke(cli, ["chat", "Hello", "--url", "http://remote:9000/api/ai"])

        assert result.exit_code == 0, result.output
        assert result.output.strip() == "Remote hello"
        assert seen == ["http://remote:9000/api/ai"]

    def test_failure(self, runner):
        def handler(request):
            return httpx.Response(
                200,
                json={
                    "success": False,
                    "error": "AI service is busy. Please wait a moment and try again.",
                    "type": "RATE_LIMIT",
                    "correlationId": "ai_remote",
                },
            )

        with self._patched_client(handler):
            result = runner.invoke(cli, ["chat", "Hello", "--json"])

        assert result.exit_code == 1
        data = json.loads(result.output)
        assert data["type"] == "RATE_LIMIT"
        assert data["correlationId"] == "ai_remote"


class TestServe:
    def test_runs_uvicorn_with_config(self, runner, tmp_path):
        (tmp_path / "raidbot.toml").write_text("[server]\nhost = '0.0.0.0'\nport = 9100\n")

        with patch("uvicorn.run") as mock_run:
            result = runner.invoke(cli, ["serve"])

        assert result.exit_code == 0, result.output
        _, kwargs = mock_run.call_args
        assert kwargs["host"] == "0.0.0.0"
        assert kwargs["port"] == 9100

    def test_cli_overrides(self, runner):
        with patch("uvicorn.run") as mock_run:
            result = runner.invoke(cli, ["serve", "--port", "8123"])

        assert result.exit_code == 0, result.output
        assert mock_run.call_args.kwargs["port"] == 8123
        assert mock_run.call_args.kwargs["host"] == "127.0.0.1"


def test_version(runner):
    result = runner.invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert "raidbot" in result.output
