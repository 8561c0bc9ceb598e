"""Pure transformation adapters for the supported completion backends."""

from .anthropic import AnthropicRequestAdapter, block_to_dict, tool_result_content
from .openai import OpenAIRequestAdapter

__all__ = [
    "AnthropicRequestAdapter",
    "OpenAIRequestAdapter",
    "block_to_dict",
    "tool_result_content",
]
