"""
First phase of a turn: ask the model, stop at the first tool request.

The orchestrator never runs a tool. When the model asks for one it returns a
:class:`ConfirmationNeeded` carrying the full history; the caller shows it to
a human and posts it back to the confirmation endpoint.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol, Sequence, Union

from mcp_gate.client import BaseAsyncLLM
from mcp_gate.errors import RequestValidationError
from mcp_gate.params import merge_params
from mcp_gate.tool_process import ToolProcessManager
from mcp_gate.types import ChatMessage, PendingConfirmation, ToolCallRequest, validate_history

__all__ = [
    "ToolSelectionPolicy",
    "FirstToolOnly",
    "FinalTurn",
    "ConfirmationNeeded",
    "TurnResult",
    "TurnOrchestrator",
]

logger = logging.getLogger(__name__)


class ToolSelectionPolicy(Protocol):
    """Chooses which of a response's tool calls goes to the confirmation gate."""

    def select(self, tool_calls: Sequence[ToolCallRequest]) -> Optional[ToolCallRequest]: ...


class FirstToolOnly:
    """Confirm the first tool call; later ones stay in history unexecuted."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or logging.getLogger(__name__)

    def select(self, tool_calls: Sequence[ToolCallRequest]) -> Optional[ToolCallRequest]:
        if not tool_calls:
            return None
        for skipped in tool_calls[1:]:
            self.logger.warning(
                "Multiple tool_use blocks received, only requesting confirmation "
                "for the first (skipping %s, id=%s)",
                skipped.name,
                skipped.id,
            )
        return tool_calls[0]


@dataclass(slots=True)
class FinalTurn:
    response: ChatMessage
    history: list[ChatMessage]

    def to_dict(self) -> dict[str, Any]:
        return {"response": self.response, "history": self.history}


@dataclass(slots=True)
class ConfirmationNeeded:
    pending: PendingConfirmation

    def to_dict(self) -> dict[str, Any]:
        return {"confirmationNeeded": self.pending.to_dict()}


TurnResult = Union[FinalTurn, ConfirmationNeeded]


class TurnOrchestrator:
    """
    Runs the first, non-streaming completion of a conversational turn.

    Args:
        llm: Completion client.
        tools: Owner of the shared tool server connection.
        params: Completion parameters (``max_tokens`` and friends) sent with
            every request.
        policy: Picks the tool call to confirm. Defaults to ``FirstToolOnly``.
    """

    def __init__(
        self,
        llm: BaseAsyncLLM,
        tools: ToolProcessManager,
        *,
        params: Optional[dict[str, Any]] = None,
        policy: Optional[ToolSelectionPolicy] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.llm = llm
        self.tools = tools
        self.params = dict(params or {})
        self.logger = logger or logging.getLogger(__name__)
        self.policy = policy or FirstToolOnly(self.logger)

    async def ask(self, query: Any, history: Any = None) -> TurnResult:
        """
        Send ``query`` with the prior ``history`` and the tool catalog.

        Raises:
            RequestValidationError: Blank query or malformed history.
            ToolConnectionError: The tool server could not be reached.
            CompletionError: The completion request failed.
        """
        if not isinstance(query, str) or not query.strip():
            raise RequestValidationError("Missing query in request body")
        messages = validate_history([] if history is None else history)

        connection = await self.tools.get_connection()
        declarations = self.llm.adapter.tool_declarations(connection.tools)

        messages.append({"role": "user", "content": query})

        params = merge_params(self.params, {"tools": declarations or None})
        response = await self.llm.chat(messages, params=params)
        response.raise_for_error()

        chosen = self.policy.select(response.tool_calls or [])
        text = response.content

        if chosen is not None:
            messages.append(self.llm.adapter.assistant_message_from(response.raw))
            self.logger.info("Requesting confirmation for tool %s: %s", chosen.name, chosen.arguments)
            return ConfirmationNeeded(
                PendingConfirmation.from_tool_call(chosen, messages, text or None)
            )

        final: ChatMessage = {"role": "assistant", "content": text}
        return FinalTurn(response=final, history=[*messages, final])
