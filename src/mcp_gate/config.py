"""Runtime settings read from the environment (and a ``.env`` file, if present)."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Any, Mapping, Optional

from dotenv import load_dotenv

from mcp_gate.providers import DEFAULT_MODELS, Provider

__all__ = ["Settings", "parse_bool"]

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean (true/false), got {value!r}")


def _parse_int(name: str, value: str) -> int:
    try:
        parsed = int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}") from None
    if parsed <= 0:
        raise ValueError(f"{name} must be positive, got {parsed}")
    return parsed


def _parse_float(name: str, value: str) -> float:
    try:
        parsed = float(value)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {value!r}") from None
    if parsed <= 0:
        raise ValueError(f"{name} must be positive, got {parsed}")
    return parsed


@dataclass(frozen=True, slots=True)
class Settings:
    provider: Provider = Provider.ANTHROPIC
    model: Optional[str] = None
    max_tokens: int = 1024
    tool_server: str = "../mcp-server/build/index.js"
    host: str = "127.0.0.1"
    port: int = 3000
    require_stream_stop: bool = True
    answer_skipped_tools: bool = False
    timeout: float = 60.0

    @classmethod
    def from_env(
        cls, environ: Optional[Mapping[str, str]] = None, *, dotenv: bool = True
    ) -> "Settings":
        """
        Build settings from ``MCP_GATE_*`` variables.

        Args:
            environ: Mapping to read instead of ``os.environ``.
            dotenv: Load a ``.env`` file into ``os.environ`` first.

        Raises:
            ValueError: If a variable has an invalid value.
        """
        if dotenv:
            load_dotenv()
        env = os.environ if environ is None else environ

        values: dict[str, Any] = {}
        if "MCP_GATE_PROVIDER" in env:
            values["provider"] = Provider.parse(env["MCP_GATE_PROVIDER"])
        if "MCP_GATE_MODEL" in env:
            values["model"] = env["MCP_GATE_MODEL"]
        if "MCP_GATE_MAX_TOKENS" in env:
            values["max_tokens"] = _parse_int("MCP_GATE_MAX_TOKENS", env["MCP_GATE_MAX_TOKENS"])
        if "MCP_GATE_TOOL_SERVER" in env:
            values["tool_server"] = env["MCP_GATE_TOOL_SERVER"]
        if "MCP_GATE_HOST" in env:
            values["host"] = env["MCP_GATE_HOST"]
        if "MCP_GATE_PORT" in env:
            values["port"] = _parse_int("MCP_GATE_PORT", env["MCP_GATE_PORT"])
        if "MCP_GATE_REQUIRE_STREAM_STOP" in env:
            values["require_stream_stop"] = parse_bool(
                "MCP_GATE_REQUIRE_STREAM_STOP", env["MCP_GATE_REQUIRE_STREAM_STOP"]
            )
        if "MCP_GATE_ANSWER_SKIPPED_TOOLS" in env:
            values["answer_skipped_tools"] = parse_bool(
                "MCP_GATE_ANSWER_SKIPPED_TOOLS", env["MCP_GATE_ANSWER_SKIPPED_TOOLS"]
            )
        if "MCP_GATE_TIMEOUT" in env:
            values["timeout"] = _parse_float("MCP_GATE_TIMEOUT", env["MCP_GATE_TIMEOUT"])

        return cls(**values)

    def override(self, **changes: Any) -> "Settings":
        """Return a copy with every non-None keyword applied."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})

    @property
    def model_name(self) -> str:
        """Configured model, or the provider default."""
        return self.model or DEFAULT_MODELS[self.provider]

    def completion_params(self) -> dict[str, Any]:
        return {"max_tokens": self.max_tokens}
