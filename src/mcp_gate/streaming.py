"""
Relay of the second completion to the caller as stream events.

A :class:`StreamMultiplexer` wraps the completion client's ``stream()``
generator. Iterating it yields, in order: one ``chunk`` carrying the
transaction hash found in the tool output, one ``chunk`` per text delta, and
finally either a ``history`` event with the completed conversation or a
single ``error`` event.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Literal, Optional

from mcp_gate.hash_extraction import extract_transaction_hash
from mcp_gate.response import ChatResponse
from mcp_gate.types import ChatMessage

__all__ = ["StreamEvent", "StreamMultiplexer", "hash_prefix"]

logger = logging.getLogger(__name__)

EventType = Literal["chunk", "history", "error"]


@dataclass(slots=True)
class StreamEvent:
    type: EventType
    content: Any

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "content": self.content}

    def to_sse(self) -> bytes:
        """Server-sent-events frame for this event."""
        return f"data: {json.dumps(self.to_dict())}\n\n".encode("utf-8")


def hash_prefix(tool_output: Any) -> str:
    return f"Transaction hash: {extract_transaction_hash(tool_output)}\n\n"


class StreamMultiplexer:
    """
    Turn a stream of ``ChatResponse`` chunks into caller-facing events.

    The multiplexer can be iterated once. Set ``require_stop=False`` to
    accept a completion stream that ends without its stop signal; by default
    that is reported as an error.
    """

    def __init__(
        self,
        completion: AsyncIterator[ChatResponse],
        *,
        history: list[ChatMessage],
        tool_output: Any,
        require_stop: bool = True,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._completion = completion
        self.history = history
        self.tool_output = tool_output
        self.require_stop = require_stop
        self.logger = logger or logging.getLogger(__name__)
        self.running_text = ""
        self.failed = False
        self.finished = False
        self._started = False
        self._closed = False

    def __aiter__(self) -> AsyncIterator[StreamEvent]:
        if self._started:
            raise RuntimeError("StreamMultiplexer can only be iterated once")
        self._started = True
        return self._events()

    def _chunk(self, text: str) -> StreamEvent:
        self.running_text += text
        return StreamEvent("chunk", text)

    def _history(self) -> StreamEvent:
        self.finished = True
        final = {"role": "assistant", "content": self.running_text}
        return StreamEvent("history", [*self.history, final])

    def _error(self, message: str) -> StreamEvent:
        self.failed = True
        return StreamEvent("error", message)

    async def _events(self) -> AsyncIterator[StreamEvent]:
        try:
            yield self._chunk(hash_prefix(self.tool_output))

            async for response in self._completion:
                if response.is_error:
                    self.logger.error("Completion stream failed: %s", response.error)
                    yield self._error(f"Stream processing error: {response.error}")
                    return
                if response.content:
                    yield self._chunk(response.content)
                if response.done:
                    yield self._history()
                    return

            if self.require_stop:
                self.logger.error("Completion stream ended without a stop signal")
                yield self._error("Completion stream ended before completion")
            else:
                yield self._history()
        except Exception as exc:
            self.logger.exception("Error while relaying completion stream")
            yield self._error(f"Stream processing error: {exc}")
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying completion stream. Safe to call multiple times."""
        if self._closed:
            return
        self._closed = True
        close = getattr(self._completion, "aclose", None)
        if close is not None:
            await close()
