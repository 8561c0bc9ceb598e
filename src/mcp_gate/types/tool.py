"""
Provider‑neutral dataclasses for confirmation‑gated tool use.

They are intentionally minimal: everything provider‑specific lives in adapters.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from mcp_gate.errors import RequestValidationError
from mcp_gate.types.chat import ChatMessage, ContentBlock, tool_result_block, validate_history

__all__ = [
    "ToolCallRequest",
    "ToolCallResult",
    "ToolCatalogEntry",
    "PendingConfirmation",
]


@dataclass(slots=True)
class ToolCallRequest:
    """A model‑agnostic request emitted by the LLM to call a tool."""
    id: str
    name: str
    arguments: dict[str, Any]


@dataclass(slots=True)
class ToolCallResult:
    """Payload to send back to the LLM after the tool finished running."""
    id: str                     # must match the request id
    content: Any
    is_error: bool = False

    def to_block(self) -> ContentBlock:
        return tool_result_block(self.id, self.content, is_error=self.is_error)


@dataclass(slots=True)
class ToolCatalogEntry:
    """One tool advertised by the tool server."""
    name: str
    description: str = ""
    input_schema: dict[str, Any] = field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )

    def as_tool_declaration(self) -> dict[str, Any]:
        """Anthropic tool declaration for this entry."""
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema,
        }


@dataclass(slots=True)
class PendingConfirmation:
    """
    Everything needed to resume a suspended conversation.

    The server keeps no copy: the caller receives it from the turn endpoint
    and posts it back to the confirmation endpoint.
    """

    name: str
    input: dict[str, Any]
    id: str
    messages_history: list[ChatMessage]
    initial_assistant_text: Optional[str] = None

    @classmethod
    def from_tool_call(
        cls,
        call: ToolCallRequest,
        messages_history: list[ChatMessage],
        initial_assistant_text: Optional[str] = None,
    ) -> "PendingConfirmation":
        return cls(
            name=call.name,
            input=call.arguments,
            id=call.id,
            messages_history=messages_history,
            initial_assistant_text=initial_assistant_text or None,
        )

    @property
    def tool_call(self) -> ToolCallRequest:
        return ToolCallRequest(id=self.id, name=self.name, arguments=self.input)

    def to_dict(self) -> dict[str, Any]:
        """Wire form, as sent to and received from the browser."""
        payload: dict[str, Any] = {
            "name": self.name,
            "input": self.input,
            "id": self.id,
            "messagesHistory": self.messages_history,
        }
        if self.initial_assistant_text:
            payload["initialAssistantText"] = self.initial_assistant_text
        return payload

    @classmethod
    def from_dict(cls, payload: Any) -> "PendingConfirmation":
        """
        Build a confirmation from a request body.

        Raises:
            RequestValidationError: If a required field is missing or has the
                wrong type.
        """
        if not isinstance(payload, dict):
            raise RequestValidationError("Confirmation request body must be an object")

        missing = [
            key
            for key in ("name", "input", "id", "messagesHistory")
            if payload.get(key) is None or payload.get(key) == ""
        ]
        if missing:
            raise RequestValidationError(
                "Missing required fields in confirmation request: " + ", ".join(missing)
            )

        name, tool_input, tool_use_id = payload["name"], payload["input"], payload["id"]
        if not isinstance(name, str) or not isinstance(tool_use_id, str):
            raise RequestValidationError("name and id must be strings")
        if not isinstance(tool_input, dict):
            raise RequestValidationError("input must be an object")

        text = payload.get("initialAssistantText")
        return cls(
            name=name,
            input=tool_input,
            id=tool_use_id,
            messages_history=validate_history(
                payload["messagesHistory"], field="messagesHistory"
            ),
            initial_assistant_text=text if isinstance(text, str) else None,
        )
