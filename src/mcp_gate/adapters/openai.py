"""OpenAI adapter for pure request/response transformations.

The conversation history is always kept in the Anthropic block shape; this
adapter translates it to chat-completions messages on the way out and turns
completions back into blocks on the way in.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Sequence

from openai.types.chat import ChatCompletion, ChatCompletionChunk

from mcp_gate.adapters.anthropic import tool_result_content
from mcp_gate.response import ChatResponse
from mcp_gate.types import (
    ChatMessage,
    ContentBlock,
    ToolCallRequest,
    ToolCallResult,
    ToolCatalogEntry,
    iter_blocks,
    joined_text,
    text_block,
    tool_use_block,
)

_logger = logging.getLogger(__name__)


def _as_text(content: Any) -> str:
    content = tool_result_content(content)
    if isinstance(content, list):
        return "".join(item["text"] for item in content)
    return content


class OpenAIRequestAdapter:
    """Adapter for converting between the canonical history and OpenAI format."""

    def to_provider(
        self, messages: Sequence[ChatMessage], params: dict[str, Any]
    ) -> dict[str, Any]:
        """Convert canonical messages and normalized params to OpenAI request format."""
        openai_messages: list[dict[str, Any]] = []
        if params.get("system"):
            openai_messages.append({"role": "system", "content": params["system"]})

        for msg in messages:
            if isinstance(msg.get("content"), str) or msg["role"] == "system":
                openai_messages.append({"role": msg["role"], "content": msg.get("content") or ""})
                continue

            blocks = iter_blocks(msg)
            if msg["role"] == "assistant":
                openai_msg: dict[str, Any] = {"role": "assistant", "content": joined_text(blocks) or None}
                tool_calls = [
                    {
                        "id": block["id"],
                        "type": "function",
                        "function": {
                            "name": block["name"],
                            "arguments": json.dumps(block.get("input") or {}),
                        },
                    }
                    for block in blocks
                    if block.get("type") == "tool_use"
                ]
                if tool_calls:
                    openai_msg["tool_calls"] = tool_calls
                elif openai_msg["content"] is None:
                    openai_msg["content"] = ""
                openai_messages.append(openai_msg)
                continue

            # tool results become role=tool messages, remaining text a user message
            for block in blocks:
                if block.get("type") == "tool_result":
                    openai_messages.append(
                        {
                            "role": "tool",
                            "tool_call_id": block["tool_use_id"],
                            "content": _as_text(block.get("content")),
                        }
                    )
            text = joined_text(blocks)
            if text:
                openai_messages.append({"role": "user", "content": text})

        base_params = {k: v for k, v in params.items() if v is not None}
        base_params.pop("stream", None)
        base_params.pop("system", None)
        extras = base_params.pop("extra", {})

        tools = base_params.pop("tools", None)
        if tools:
            base_params["tools"] = [self._function_tool(tool) for tool in tools]

        for k, v in extras.items():
            base_params.setdefault(k, v)

        return {"messages": openai_messages, **base_params}

    @staticmethod
    def _function_tool(tool: dict[str, Any]) -> dict[str, Any]:
        if tool.get("type") == "function":
            return tool
        return {
            "type": "function",
            "function": {
                "name": tool["name"],
                "description": tool.get("description", ""),
                "parameters": tool.get("input_schema") or {"type": "object", "properties": {}},
            },
        }

    def _blocks_from(self, raw: ChatCompletion) -> list[ContentBlock]:
        if not raw.choices or not raw.choices[0].message:
            return []

        message = raw.choices[0].message
        blocks: list[ContentBlock] = []
        if message.content:
            blocks.append(text_block(message.content))
        for tc in message.tool_calls or []:
            raw_args = tc.function.arguments
            arguments: dict[str, Any] = {}
            if isinstance(raw_args, str) and raw_args.strip():
                try:
                    arguments = json.loads(raw_args)
                except json.JSONDecodeError as exc:
                    _logger.warning(f"Bad JSON in tool call: {raw_args}", exc_info=exc)
            blocks.append(tool_use_block(tc.id, tc.function.name, arguments))
        return blocks

    def from_provider(self, raw: ChatCompletion) -> ChatResponse:
        """Convert OpenAI response to unified ChatResponse."""
        blocks = self._blocks_from(raw)
        tool_calls = [
            ToolCallRequest(id=block["id"], name=block["name"], arguments=block["input"])
            for block in blocks
            if block["type"] == "tool_use"
        ]
        return ChatResponse(
            content=joined_text(blocks),
            tool_calls=tool_calls or None,
            blocks=blocks,
            raw=raw,
        )

    def stream_text(self, raw_chunk: ChatCompletionChunk) -> ChatResponse:
        """Extract content (and the finish signal) from a streaming chunk."""
        content = ""
        done = False
        if raw_chunk.choices:
            choice = raw_chunk.choices[0]
            if choice.delta:
                content = choice.delta.content or ""
            done = choice.finish_reason is not None

        return ChatResponse(content=content, raw=raw_chunk, done=done)

    def assistant_message_from(self, raw: ChatCompletion) -> ChatMessage:
        """Assistant message in the canonical block shape."""
        return {"role": "assistant", "content": self._blocks_from(raw)}

    def tool_result_message(self, result: ToolCallResult) -> ChatMessage:
        """Tool results are stored canonically; translation happens in to_provider."""
        return {"role": "user", "content": [result.to_block()]}

    def tool_declarations(self, catalog: Sequence[ToolCatalogEntry]) -> list[dict[str, Any]]:
        return [self._function_tool(entry.as_tool_declaration()) for entry in catalog]
