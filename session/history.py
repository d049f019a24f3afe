"""Message records replayed from the context service."""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from .compaction import ConversationMessage

# Blobs are written and read back in this shape only; tool activity is counted from it.
MESSAGE_FORMAT = "openai"


@dataclass
class ChatMessage:
    role: str
    content: str
    id: Optional[str] = None
    session_id: Optional[str] = None
    created_at: Optional[str] = None
    tool_calls: List[Dict[str, Any]] = field(default_factory=list)
    tool_call_id: Optional[str] = None

    def to_policy_view(self) -> ConversationMessage:
        refs = []
        for index, call in enumerate(self.tool_calls):
            identifier = call.get("id") if isinstance(call, dict) else None
            refs.append(str(identifier) if identifier else f"{self.id or 'message'}#{index}")
        return ConversationMessage(role=self.role, tool_calls=tuple(refs))

    def to_blob(self) -> Dict[str, Any]:
        """Return the OpenAI-format blob stored by the context service."""

        blob: Dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_calls:
            blob["tool_calls"] = [dict(call) for call in self.tool_calls]
        if self.tool_call_id:
            blob["tool_call_id"] = self.tool_call_id
        return blob


def normalize_items(items: Iterable[Any], session_id: Optional[str] = None) -> List[ChatMessage]:
    messages: List[ChatMessage] = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            continue
        messages.append(
            ChatMessage(
                id=str(item.get("id") or f"ctx-{index}"),
                session_id=session_id,
                role=str(item.get("role") or "user"),
                content=_content_to_text(item.get("content")),
                created_at=_optional_str(item.get("created_at") or item.get("timestamp")),
                tool_calls=_normalize_tool_calls(item.get("tool_calls")),
                tool_call_id=_optional_str(item.get("tool_call_id")),
            )
        )
    return messages


def policy_view(messages: Iterable[ChatMessage]) -> List[ConversationMessage]:
    return [message.to_policy_view() for message in messages]


def to_anthropic_messages(
    messages: Sequence[ChatMessage],
    fallback_text: Optional[str] = None,
) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
    """Split *messages* into Anthropic ``system`` blocks and alternating turns.

    When trimming leaves no user-led turn, *fallback_text* becomes the only turn.
    """

    system_blocks: List[Dict[str, Any]] = []
    turns: List[Dict[str, Any]] = []
    # Trimmed history can start mid-exchange; results whose call was dropped are skipped.
    seen_call_ids: set[str] = set()

    for message in messages:
        if message.role == "system":
            if message.content:
                system_blocks.append({"type": "text", "text": message.content})
            continue

        if message.role == "tool":
            if not message.tool_call_id or message.tool_call_id not in seen_call_ids:
                continue
            role = "user"
            blocks = [
                {
                    "type": "tool_result",
                    "tool_use_id": message.tool_call_id or "",
                    "content": message.content,
                }
            ]
        elif message.role == "assistant":
            role = "assistant"
            blocks = []
            if message.content:
                blocks.append({"type": "text", "text": message.content})
            for call in message.tool_calls:
                function = call.get("function") or {}
                seen_call_ids.add(str(call.get("id", "")))
                blocks.append(
                    {
                        "type": "tool_use",
                        "id": call.get("id", ""),
                        "name": function.get("name", ""),
                        "input": _decode_arguments(function.get("arguments")),
                    }
                )
        else:
            role = "user"
            blocks = [{"type": "text", "text": message.content}] if message.content else []

        if not blocks:
            continue
        if turns and turns[-1]["role"] == role:
            turns[-1]["content"].extend(blocks)
        else:
            turns.append({"role": role, "content": blocks})

    while turns and (turns[0]["role"] != "user" or _has_tool_result(turns[0])):
        turns.pop(0)
    if not turns and fallback_text:
        turns.append({"role": "user", "content": [{"type": "text", "text": fallback_text}]})

    return system_blocks, turns


def tool_use_to_call(block: Dict[str, Any]) -> Dict[str, Any]:
    """Convert an Anthropic ``tool_use`` block to an OpenAI-style tool call."""

    return {
        "id": block.get("id", ""),
        "type": "function",
        "function": {
            "name": block.get("name", ""),
            "arguments": json.dumps(block.get("input") or {}, ensure_ascii=False),
        },
    }


def _has_tool_result(turn: Dict[str, Any]) -> bool:
    return any(block.get("type") == "tool_result" for block in turn["content"])


def _content_to_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return json.dumps(content, ensure_ascii=False)
    if content is None:
        return ""
    return str(content)


def _normalize_tool_calls(value: Any) -> List[Dict[str, Any]]:
    if not value:
        return []
    calls = value if isinstance(value, list) else [value]
    normalized: List[Dict[str, Any]] = []
    for call in calls:
        if isinstance(call, dict):
            normalized.append(dict(call))
        else:
            normalized.append({"id": str(call)})
    return normalized


def _decode_arguments(raw: Any) -> Dict[str, Any]:
    if isinstance(raw, dict):
        return dict(raw)
    if not raw:
        return {}
    try:
        decoded = json.loads(raw)
    except (TypeError, ValueError):
        return {}
    return decoded if isinstance(decoded, dict) else {}


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


__all__ = [
    "MESSAGE_FORMAT",
    "ChatMessage",
    "normalize_items",
    "policy_view",
    "to_anthropic_messages",
    "tool_use_to_call",
]
