"""Anthropic adapter for pure request/response transformations."""

from __future__ import annotations

import json
from typing import Any, Sequence

from anthropic.types import Message

from mcp_gate.response import ChatResponse
from mcp_gate.types import (
    ChatMessage,
    ContentBlock,
    ToolCallRequest,
    ToolCallResult,
    ToolCatalogEntry,
    joined_text,
)


def block_to_dict(block: Any) -> ContentBlock:
    """Convert an SDK content block into its request-ready dict form."""
    block_type = getattr(block, "type", None)
    if block_type == "text":
        return {"type": "text", "text": block.text}
    if block_type == "tool_use":
        return {
            "type": "tool_use",
            "id": block.id,
            "name": block.name,
            "input": dict(block.input) if hasattr(block.input, "items") else {},
        }
    if hasattr(block, "model_dump"):
        return block.model_dump(mode="json", exclude_none=True)
    return dict(block)


def tool_result_content(content: Any) -> str | list[dict[str, Any]]:
    """
    Coerce a tool_result payload into something the Messages API accepts.

    Text blocks pass through (MCP content items already have that shape);
    any other structured value is sent as its JSON text.
    """
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list) and content and all(
        isinstance(item, dict)
        and item.get("type") == "text"
        and isinstance(item.get("text"), str)
        for item in content
    ):
        return [{"type": "text", "text": item["text"]} for item in content]
    return json.dumps(content)


class AnthropicRequestAdapter:
    """Adapter for converting between the canonical history and Anthropic format."""

    def to_provider(
        self, messages: Sequence[ChatMessage], params: dict[str, Any]
    ) -> dict[str, Any]:
        """Convert canonical messages and normalized params to Anthropic request format."""
        anthropic_messages: list[dict[str, Any]] = []
        system_prompt = params.get("system") or ""

        for msg in messages:
            if msg["role"] == "system":
                system_prompt = msg.get("content", "")
                continue

            content = msg.get("content")
            if isinstance(content, list):
                content = [self._outgoing_block(block) for block in content]
            elif content is None:
                content = ""
            elif not isinstance(content, str):
                content = str(content)

            anthropic_messages.append({"role": msg["role"], "content": content})

        base_params = {k: v for k, v in params.items() if v is not None}

        # Remove fields not accepted by the API or handled above
        base_params.pop("stream", None)
        base_params.pop("system", None)
        extras = base_params.pop("extra", {})

        # Anthropic requires max_tokens
        base_params.setdefault("max_tokens", 4096)

        tools = base_params.pop("tools", None)
        if tools:
            anthropic_tools = []
            for tool in tools:
                if tool.get("type") == "function":
                    func = tool["function"]
                    anthropic_tools.append(
                        {
                            "name": func["name"],
                            "description": func.get("description", ""),
                            "input_schema": func.get("parameters", {}),
                        }
                    )
                else:
                    anthropic_tools.append(tool)
            base_params["tools"] = anthropic_tools

        for k, v in extras.items():
            base_params.setdefault(k, v)

        request: dict[str, Any] = {"messages": anthropic_messages, **base_params}
        if system_prompt:
            request["system"] = system_prompt
        return request

    @staticmethod
    def _outgoing_block(block: ContentBlock) -> ContentBlock:
        if block.get("type") != "tool_result":
            return block
        outgoing = dict(block)
        outgoing["content"] = tool_result_content(block.get("content"))
        if not outgoing.get("is_error"):
            outgoing.pop("is_error", None)
        return outgoing

    def from_provider(self, raw: Message) -> ChatResponse:
        """Convert Anthropic response to unified ChatResponse."""
        blocks = [block_to_dict(block) for block in raw.content or []]
        tool_calls = [
            ToolCallRequest(id=block["id"], name=block["name"], arguments=block["input"])
            for block in blocks
            if block.get("type") == "tool_use"
        ]
        return ChatResponse(
            content=joined_text(blocks),
            tool_calls=tool_calls or None,
            blocks=blocks,
            raw=raw,
        )

    def stream_text(self, raw_chunk: Any) -> ChatResponse:
        """Extract the text delta (or stop signal) from an Anthropic stream event."""
        content = ""
        done = False

        event_type = getattr(raw_chunk, "type", None)
        if event_type == "content_block_delta":
            delta = getattr(raw_chunk, "delta", None)
            if getattr(delta, "type", None) == "text_delta":
                content = delta.text
        elif event_type == "message_stop":
            done = True

        return ChatResponse(content=content, raw=raw_chunk, done=done)

    def assistant_message_from(self, raw: Message) -> ChatMessage:
        """Assistant message carrying the response's content blocks unmodified."""
        return {
            "role": "assistant",
            "content": [block_to_dict(block) for block in raw.content or []],
        }

    def tool_result_message(self, result: ToolCallResult) -> ChatMessage:
        """Convert ToolCallResult to Anthropic ChatMessage."""
        return {"role": "user", "content": [result.to_block()]}

    def tool_declarations(self, catalog: Sequence[ToolCatalogEntry]) -> list[dict[str, Any]]:
        return [entry.as_tool_declaration() for entry in catalog]
