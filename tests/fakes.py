"""In-process stand-ins for the completion service and the tool server."""

from __future__ import annotations

import asyncio
import copy
import json
from types import SimpleNamespace
from typing import Any

from anthropic.types import Message

from mcp_gate.adapters import AnthropicRequestAdapter
from mcp_gate.client import BaseAsyncLLM
from mcp_gate.errors import ToolConnectionError
from mcp_gate.tool_process import ConnectionState, ToolOutput
from mcp_gate.types import ToolCatalogEntry

TX_HASH = "A" * 64
MODEL = "claude-3-haiku-20240307"

PAYMENT_TOOL = ToolCatalogEntry(
    name="send_payment",
    description="Send XRP to an address",
    input_schema={
        "type": "object",
        "properties": {"toAddress": {"type": "string"}, "amount": {"type": "string"}},
        "required": ["toAddress", "amount"],
    },
)


def anthropic_message(*blocks: dict[str, Any], stop_reason: str = "end_turn") -> Message:
    return Message.model_validate(
        {
            "id": "msg_01",
            "type": "message",
            "role": "assistant",
            "model": MODEL,
            "content": list(blocks),
            "stop_reason": stop_reason,
            "stop_sequence": None,
            "usage": {"input_tokens": 12, "output_tokens": 7},
        }
    )


def text_delta(text: str) -> SimpleNamespace:
    return SimpleNamespace(
        type="content_block_delta",
        index=0,
        delta=SimpleNamespace(type="text_delta", text=text),
    )


def message_stop() -> SimpleNamespace:
    return SimpleNamespace(type="message_stop")


def mcp_text_output(payload: Any, *, is_error: bool = False) -> ToolOutput:
    """Tool output as the real connection serializes it: a JSON list of content items."""
    text = payload if isinstance(payload, str) else json.dumps(payload)
    return ToolOutput(text=json.dumps([{"type": "text", "text": text}]), is_error=is_error)


class ScriptedLLM(BaseAsyncLLM):
    """Completion client that replays canned Anthropic responses and stream events."""

    def __init__(
        self,
        replies: list[Any] | None = None,
        stream_events: list[Any] | None = None,
        stream_error: Exception | None = None,
    ) -> None:
        super().__init__(model=MODEL, name="scripted")
        self.replies = list(replies or [])
        self.stream_events = list(stream_events or [])
        self.stream_error = stream_error
        self.requests: list[tuple[list[dict[str, Any]], dict[str, Any]]] = []
        self.stream_closed = False
        self.closed = False
        self._adapter = AnthropicRequestAdapter()

    @property
    def adapter(self) -> AnthropicRequestAdapter:
        return self._adapter

    async def _chat_impl(self, messages, params):
        self.requests.append((copy.deepcopy(list(messages)), params))
        if params["stream"]:
            return self._events()
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def _events(self):
        try:
            for event in self.stream_events:
                yield event
            if self.stream_error is not None:
                raise self.stream_error
        finally:
            self.stream_closed = True

    async def aclose(self) -> None:
        self.closed = True


class FakeConnection:
    def __init__(self, server: "FakeToolServer", path: str, on_close=None) -> None:
        self.server = server
        self.path = path
        self.on_close = on_close
        self.state = ConnectionState.DISCONNECTED
        self.tools: list[ToolCatalogEntry] = []
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def start(self) -> None:
        self.state = ConnectionState.CONNECTING
        self.server.starts += 1
        await asyncio.sleep(self.server.start_delay)
        if self.server.fail_starts > 0:
            self.server.fail_starts -= 1
            self.state = ConnectionState.FAILED
            raise ToolConnectionError("handshake failed")
        self.tools = list(self.server.tools)
        self.state = ConnectionState.CONNECTED

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> ToolOutput:
        self.calls.append((name, arguments))
        self.server.calls.append((name, arguments))
        if self.server.error is not None:
            raise self.server.error
        return self.server.result

    async def aclose(self) -> None:
        self.state = ConnectionState.DISCONNECTED
        self.server.closed += 1
        if self.on_close is not None:
            self.on_close(self)


class FakeToolServer:
    """Connection factory for ``ToolProcessManager`` that never spawns a process."""

    def __init__(
        self,
        *,
        result: ToolOutput | None = None,
        error: Exception | None = None,
        fail_starts: int = 0,
        start_delay: float = 0.0,
        tools: list[ToolCatalogEntry] | None = None,
    ) -> None:
        self.result = result if result is not None else mcp_text_output({"hash": TX_HASH})
        self.error = error
        self.fail_starts = fail_starts
        self.start_delay = start_delay
        self.tools = [PAYMENT_TOOL] if tools is None else tools
        self.connections: list[FakeConnection] = []
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.starts = 0
        self.closed = 0

    def __call__(self, path: str, *, on_close=None) -> FakeConnection:
        connection = FakeConnection(self, path, on_close)
        self.connections.append(connection)
        return connection
