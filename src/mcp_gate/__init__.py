"""
mcp-gate - Confirmation-gated conversations between an LLM and an MCP tool server.
"""

from .client import (
    BaseAsyncLLM,
    OpenAILLM,
    AnthropicLLM,
    create_llm,
)
from .confirmation import ConfirmationExecutor
from .errors import CompletionError, GateError, RequestValidationError, ToolConnectionError
from .hash_extraction import NO_HASH, extract_transaction_hash
from .orchestrator import ConfirmationNeeded, FinalTurn, FirstToolOnly, TurnOrchestrator
from .providers import Provider, get_api_key
from .response import ChatResponse
from .streaming import StreamEvent, StreamMultiplexer
from .tool_process import ConnectionState, ToolProcessConnection, ToolProcessManager
from .types import ChatMessage, PendingConfirmation, ToolCallRequest, ToolCallResult

__version__ = "0.1.0"

__all__ = [
    "BaseAsyncLLM",
    "OpenAILLM",
    "AnthropicLLM",
    "create_llm",
    "ConfirmationExecutor",
    "CompletionError",
    "GateError",
    "RequestValidationError",
    "ToolConnectionError",
    "NO_HASH",
    "extract_transaction_hash",
    "ConfirmationNeeded",
    "FinalTurn",
    "FirstToolOnly",
    "TurnOrchestrator",
    "Provider",
    "get_api_key",
    "ChatResponse",
    "StreamEvent",
    "StreamMultiplexer",
    "ConnectionState",
    "ToolProcessConnection",
    "ToolProcessManager",
    "ChatMessage",
    "PendingConfirmation",
    "ToolCallRequest",
    "ToolCallResult",
]
