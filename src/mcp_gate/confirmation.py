"""
Second phase of a turn: run the approved tool and stream the follow-up.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from mcp_gate.client import BaseAsyncLLM
from mcp_gate.params import merge_params
from mcp_gate.streaming import StreamMultiplexer
from mcp_gate.tool_process import ToolOutput, ToolProcessManager
from mcp_gate.types import (
    ContentBlock,
    PendingConfirmation,
    ToolCallResult,
    iter_blocks,
    tool_result_block,
)

__all__ = ["ConfirmationExecutor", "parse_tool_output"]

logger = logging.getLogger(__name__)

SKIPPED_TOOL_MESSAGE = "Tool call was not executed: only one tool call is confirmed per turn."


def parse_tool_output(text: str) -> Any:
    """Decode JSON-shaped tool output, falling back to the raw text."""
    stripped = text.strip()
    if stripped.startswith(("{", "[")):
        try:
            return json.loads(stripped)
        except json.JSONDecodeError:
            logger.debug("Tool output looked like JSON but did not parse; keeping raw text")
    return text


class ConfirmationExecutor:
    """
    Executes a confirmed tool call exactly once and resumes the conversation.

    A tool that fails does not fail the request: its error text goes back to
    the model as an ``is_error`` tool result, and the model answers it.

    Args:
        llm: Completion client used for the streaming follow-up.
        tools: Owner of the shared tool server connection.
        params: Completion parameters sent with the follow-up request.
        require_stop: Passed to :class:`StreamMultiplexer`.
        answer_skipped_tools: Also answer every other tool_use block of the
            last assistant message with an error result.
    """

    def __init__(
        self,
        llm: BaseAsyncLLM,
        tools: ToolProcessManager,
        *,
        params: Optional[dict[str, Any]] = None,
        require_stop: bool = True,
        answer_skipped_tools: bool = False,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.llm = llm
        self.tools = tools
        self.params = dict(params or {})
        self.require_stop = require_stop
        self.answer_skipped_tools = answer_skipped_tools
        self.logger = logger or logging.getLogger(__name__)

    async def _run_tool(self, pending: PendingConfirmation) -> ToolOutput:
        connection = await self.tools.get_connection()
        self.logger.info("Executing confirmed tool %s (id=%s)", pending.name, pending.id)
        try:
            return await connection.call_tool(pending.name, pending.input)
        except Exception as exc:
            self.logger.exception("Tool %s failed", pending.name)
            return ToolOutput(text=f"Error executing tool: {exc}", is_error=True)

    def _skipped_results(self, pending: PendingConfirmation) -> list[ContentBlock]:
        assistant = next(
            (m for m in reversed(pending.messages_history) if m.get("role") == "assistant"),
            None,
        )
        if assistant is None:
            return []
        return [
            tool_result_block(block["id"], SKIPPED_TOOL_MESSAGE, is_error=True)
            for block in iter_blocks(assistant)
            if block.get("type") == "tool_use" and block.get("id") != pending.id
        ]

    async def confirm(self, pending: PendingConfirmation) -> StreamMultiplexer:
        """
        Run the tool and start the streaming completion.

        Raises:
            ToolConnectionError: The tool server could not be reached. Raised
                before any event is produced.
        """
        output = await self._run_tool(pending)
        if output.is_error:
            self.logger.warning("Tool %s returned an error result", pending.name)

        result = ToolCallResult(
            id=pending.id,
            content=parse_tool_output(output.text),
            is_error=output.is_error,
        )
        tool_message = self.llm.adapter.tool_result_message(result)
        if self.answer_skipped_tools:
            tool_message["content"].extend(self._skipped_results(pending))

        history = [*pending.messages_history, tool_message]
        params = merge_params(self.params, {"stream": True})
        completion = self.llm.stream(history, params=params)

        return StreamMultiplexer(
            completion,
            history=history,
            tool_output=output.text,
            require_stop=self.require_stop,
            logger=self.logger,
        )
