from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from mcp_gate.errors import CompletionError
from mcp_gate.types import ContentBlock, ToolCallRequest


@dataclass
class ChatResponse:
    """Unified response object for all completion backends.

    For a full completion ``blocks`` holds the assistant content blocks in
    the order the model produced them. For a streaming chunk ``content`` is
    the text delta and ``done`` marks the backend's stop signal.
    """

    content: str
    tool_calls: list[ToolCallRequest] | None = None
    blocks: list[ContentBlock] | None = None
    raw: Any = None
    error: Optional[str] = None
    done: bool = False

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def raise_for_error(self) -> None:
        if self.is_error:
            raise CompletionError(self.error)
