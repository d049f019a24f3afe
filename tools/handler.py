"""Chat tool abstraction and execution wrapper."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Optional, Set

from pydantic import ValidationError

from context_service import ContextServiceClient
from errors import ChatError, ToolError
from session.telemetry import SessionTelemetry

from .schemas import parse_tool_input

logger = logging.getLogger(__name__)


@dataclass
class ToolContext:
    """Resources a chat tool may use on behalf of the current session."""

    client: Optional[ContextServiceClient]
    context_session_id: Optional[str] = None
    space_id: Optional[str] = None
    disk_id: Optional[str] = None
    telemetry: SessionTelemetry = field(default_factory=SessionTelemetry)


@dataclass
class ToolOutput:
    """Result of tool execution."""

    content: str
    success: bool
    metadata: Dict[str, Any] | None = None

    def log_preview(self, max_bytes: int = 2048, max_lines: int = 64) -> str:
        """Return a truncated preview string suitable for logging."""
        content = self.content or ""
        if len(content) <= max_bytes and content.count("\n") < max_lines:
            return content

        lines = content.splitlines()
        preview = "\n".join(lines[:max_lines])
        if len(preview) > max_bytes:
            preview = preview[:max_bytes]
        if len(preview) < len(content):
            preview += "\n[... truncated ...]"
        return preview


ToolFunc = Callable[[Any, ToolContext], ToolOutput]


class ChatTool:
    def __init__(
        self,
        name: str,
        description: str,
        input_schema: Dict[str, Any],
        fn: ToolFunc,
        *,
        capabilities: Optional[Iterable[str]] = None,
    ) -> None:
        self.name = name
        self.description = description
        self.input_schema = input_schema
        self.fn = fn
        self.capabilities: Set[str] = set(capabilities or [])

    def to_definition(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema,
        }


def execute_tool(tool: ChatTool, raw_input: Any, context: ToolContext) -> ToolOutput:
    """Validate *raw_input* and run *tool*, converting failures into error output."""

    context.telemetry.incr("tool_calls")
    if not isinstance(raw_input, dict):
        raw_input = {}
    try:
        payload = parse_tool_input(tool.name, raw_input)
        output = tool.fn(payload, context)
    except ValidationError as exc:
        output = ToolOutput(content=f"Invalid input for {tool.name}: {_first_error(exc)}", success=False)
    except ToolError as exc:
        output = ToolOutput(content=exc.message, success=False)
    except ChatError as exc:
        logger.warning("Tool %s failed: %s", tool.name, exc)
        output = ToolOutput(content=f"{tool.name} failed: {exc.message}", success=False)

    if not output.success:
        context.telemetry.incr("tool_errors")
    logger.debug("Tool %s -> %s", tool.name, output.log_preview(max_bytes=256, max_lines=4))
    return output


def _first_error(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return str(exc)
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ())) or "input"
    return f"{location}: {first.get('msg', 'invalid value')}"


def dumps(payload: Any) -> str:
    return json.dumps(payload, ensure_ascii=False, indent=2)


__all__ = ["ChatTool", "ToolContext", "ToolFunc", "ToolOutput", "dumps", "execute_tool"]
