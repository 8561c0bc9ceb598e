import pytest

from mcp_gate.cli import build_parser, build_server
from mcp_gate.config import Settings, parse_bool
from mcp_gate.providers import Provider
from mcp_gate.server import GateServer


class TestSettings:
    def test_defaults(self):
        settings = Settings.from_env({}, dotenv=False)

        assert settings.provider is Provider.ANTHROPIC
        assert settings.model_name == "claude-3-haiku-20240307"
        assert settings.max_tokens == 1024
        assert settings.tool_server == "../mcp-server/build/index.js"
        assert (settings.host, settings.port) == ("127.0.0.1", 3000)
        assert settings.require_stream_stop is True
        assert settings.answer_skipped_tools is False
        assert settings.timeout == 60.0
        assert settings.completion_params() == {"max_tokens": 1024}

    def test_environment_values(self):
        settings = Settings.from_env(
            {
                "MCP_GATE_PROVIDER": "OpenAI",
                "MCP_GATE_MAX_TOKENS": "256",
                "MCP_GATE_TOOL_SERVER": "/srv/tools/server.py",
                "MCP_GATE_PORT": "8080",
                "MCP_GATE_REQUIRE_STREAM_STOP": "off",
                "MCP_GATE_ANSWER_SKIPPED_TOOLS": "yes",
                "MCP_GATE_TIMEOUT": "12.5",
            },
            dotenv=False,
        )

        assert settings.provider is Provider.OPENAI
        assert settings.model_name == "gpt-4o-mini"
        assert settings.max_tokens == 256
        assert settings.tool_server == "/srv/tools/server.py"
        assert settings.port == 8080
        assert settings.require_stream_stop is False
        assert settings.answer_skipped_tools is True
        assert settings.timeout == 12.5

    @pytest.mark.parametrize(
        "env",
        [
            {"MCP_GATE_PROVIDER": "gemini"},
            {"MCP_GATE_MAX_TOKENS": "lots"},
            {"MCP_GATE_PORT": "-1"},
            {"MCP_GATE_REQUIRE_STREAM_STOP": "maybe"},
            {"MCP_GATE_TIMEOUT": "soon"},
        ],
    )
    def test_invalid_values(self, env):
        with pytest.raises(ValueError):
            Settings.from_env(env, dotenv=False)

    def test_override_ignores_none(self):
        settings = Settings().override(port=9000, host=None, model="claude-3-5-sonnet-latest")

        assert settings.port == 9000
        assert settings.host == "127.0.0.1"
        assert settings.model_name == "claude-3-5-sonnet-latest"


def test_parse_bool():
    assert parse_bool("X", " TRUE ") is True
    assert parse_bool("X", "0") is False


class TestCli:
    def test_parser_flags(self):
        args = build_parser().parse_args(
            ["--port", "4000", "--tool-server", "server.py", "--provider", "openai", "--log-level", "DEBUG"]
        )
        assert args.port == 4000
        assert args.tool_server == "server.py"
        assert args.provider == "openai"
        assert args.log_level == "DEBUG"
        assert args.host is None

    def test_build_server(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-test")
        server = build_server(Settings(tool_server="server.py"))

        assert isinstance(server, GateServer)
        assert server.llm.model == "claude-3-haiku-20240307"
        assert server.tools.server_path == "server.py"
