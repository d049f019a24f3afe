"""Chat tool abstractions for the compacting chat backend."""

from .handler import ChatTool, ToolContext, ToolFunc, ToolOutput, execute_tool
from .schemas import (
    ListFilesInput,
    RecallContextInput,
    SearchSkillsInput,
    ToolSchema,
    parse_tool_input,
    validate_tool_input,
)
from errors import ToolError

__all__ = [
    "ChatTool",
    "ListFilesInput",
    "RecallContextInput",
    "SearchSkillsInput",
    "ToolContext",
    "ToolError",
    "ToolFunc",
    "ToolOutput",
    "ToolSchema",
    "execute_tool",
    "parse_tool_input",
    "validate_tool_input",
]
