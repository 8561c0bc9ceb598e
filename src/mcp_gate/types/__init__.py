from .chat import (
    ChatMessage,
    ContentBlock,
    iter_blocks,
    joined_text,
    text_block,
    tool_result_block,
    tool_use_block,
    validate_history,
)
from .tool import PendingConfirmation, ToolCallRequest, ToolCallResult, ToolCatalogEntry

__all__ = [
    "ChatMessage",
    "ContentBlock",
    "iter_blocks",
    "joined_text",
    "text_block",
    "tool_result_block",
    "tool_use_block",
    "validate_history",
    "PendingConfirmation",
    "ToolCallRequest",
    "ToolCallResult",
    "ToolCatalogEntry",
]
