"""Conversation history types.

Messages and content blocks stay plain dicts in the Anthropic Messages API
shape, so a history can be sent to the model, returned to the browser and
posted back without any conversion.
"""

from __future__ import annotations

from typing import Any, Sequence

from mcp_gate.errors import RequestValidationError

__all__ = [
    "ChatMessage",
    "ContentBlock",
    "ROLES",
    "text_block",
    "tool_use_block",
    "tool_result_block",
    "iter_blocks",
    "joined_text",
    "validate_history",
]


# Type alias for chat messages
ChatMessage = dict[str, Any]
# Type alias for a single content block inside a message
ContentBlock = dict[str, Any]

ROLES = frozenset({"user", "assistant"})


def text_block(text: str) -> ContentBlock:
    return {"type": "text", "text": text}


def tool_use_block(id: str, name: str, input: dict[str, Any]) -> ContentBlock:
    return {"type": "tool_use", "id": id, "name": name, "input": input}


def tool_result_block(
    tool_use_id: str, content: Any, *, is_error: bool = False
) -> ContentBlock:
    """Return a tool_result block; ``is_error`` is only set when true."""
    block: ContentBlock = {
        "type": "tool_result",
        "tool_use_id": tool_use_id,
        "content": content,
    }
    if is_error:
        block["is_error"] = True
    return block


def iter_blocks(message: ChatMessage) -> list[ContentBlock]:
    """Return the content of ``message`` as a list of blocks.

    String content is presented as a single text block.
    """
    content = message.get("content")
    if isinstance(content, str):
        return [text_block(content)] if content else []
    if isinstance(content, list):
        return [block for block in content if isinstance(block, dict)]
    return []


def validate_history(history: Any, *, field: str = "history") -> list[ChatMessage]:
    """
    Check that a client-supplied history has the shape of a message list.

    The history round-trips through the browser, so it is untrusted input:
    this only guarantees the completion request can be built from it.

    Args:
        history: Decoded JSON value from the request body.
        field: Name used in error messages.

    Returns:
        A shallow copy of the history as a list.

    Raises:
        RequestValidationError: If any message is malformed.
    """
    if not isinstance(history, list):
        raise RequestValidationError(f"{field} must be a list of messages")

    messages: list[ChatMessage] = []
    for index, message in enumerate(history):
        if not isinstance(message, dict):
            raise RequestValidationError(f"{field}[{index}] must be an object")
        if message.get("role") not in ROLES:
            raise RequestValidationError(
                f"{field}[{index}].role must be one of {sorted(ROLES)}"
            )
        content = message.get("content")
        if isinstance(content, list):
            for block in content:
                if not isinstance(block, dict) or not isinstance(block.get("type"), str):
                    raise RequestValidationError(
                        f"{field}[{index}].content blocks must be objects with a type"
                    )
        elif not isinstance(content, str):
            raise RequestValidationError(
                f"{field}[{index}].content must be a string or a list of blocks"
            )
        messages.append(message)
    return messages


def joined_text(blocks: Sequence[ContentBlock]) -> str:
    """Concatenate the text of all text blocks, in order."""
    return "".join(
        block.get("text", "") for block in blocks if block.get("type") == "text"
    )
