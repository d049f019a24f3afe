"""Test doubles for the Anthropic client."""
from .client import MockAnthropic, MockAnthropicMessages
from .responses import MockAnthropicResponse, text_block, tool_use_block

__all__ = [
    "MockAnthropic",
    "MockAnthropicMessages",
    "MockAnthropicResponse",
    "text_block",
    "tool_use_block",
]
