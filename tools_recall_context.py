"""Tool that replays recent turns of the conversation verbatim."""
from __future__ import annotations

from context_service import search_relevant_context
from tools.handler import ToolContext, ToolOutput, dumps
from tools.schemas import RecallContextInput


def recall_context_tool_def() -> dict:
    return {
        "name": "recall_context",
        "description": (
            "Fetch the most recent stored messages of this conversation verbatim, bypassing any compaction applied to the "
            "prompt. Use it when an earlier tool result was replaced by a placeholder and you need its exact text. "
            "`query` describes what you are looking for; `limit` caps the number of messages returned (default 5)."
        ),
        "input_schema": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "query": {"type": "string"},
                "limit": {"type": "integer", "minimum": 1, "maximum": 50},
            },
            "required": ["query"],
        },
    }


def recall_context_impl(payload: RecallContextInput, context: ToolContext) -> ToolOutput:
    if context.client is None or not context.context_session_id:
        return ToolOutput(content="Conversation storage is not available.", success=False)
    messages = search_relevant_context(
        context.client, context.context_session_id, payload.query, limit=payload.limit
    )
    return ToolOutput(content=dumps({"messages": messages}), success=True, metadata={"count": len(messages)})


__all__ = ["recall_context_impl", "recall_context_tool_def"]
