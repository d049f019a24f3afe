"""Session management utilities for context compaction."""
from .compaction import (
    CompactionDirective,
    CompactionPolicy,
    CompactionThresholds,
    ConversationMessage,
    RemoveToolCallParams,
    RemoveToolResults,
    TokenLimit,
    TokenUsage,
    ToolActivity,
    count_tool_activity,
    decide,
    directive_from_payload,
    directives_to_payload,
)
from .history import MESSAGE_FORMAT, ChatMessage, normalize_items, policy_view, to_anthropic_messages, tool_use_to_call
from .settings import (
    ChatSettings,
    CompactionSettings,
    ModelSettings,
    SessionSettings,
    StoreSettings,
    load_session_settings,
)
from .store import ChatSessionRecord, SessionStore
from .telemetry import SessionTelemetry

__all__ = [
    "ChatMessage",
    "ChatSessionRecord",
    "ChatSettings",
    "CompactionDirective",
    "CompactionPolicy",
    "CompactionSettings",
    "CompactionThresholds",
    "ConversationMessage",
    "ModelSettings",
    "RemoveToolCallParams",
    "RemoveToolResults",
    "SessionSettings",
    "SessionStore",
    "SessionTelemetry",
    "StoreSettings",
    "TokenLimit",
    "TokenUsage",
    "ToolActivity",
    "count_tool_activity",
    "decide",
    "directive_from_payload",
    "directives_to_payload",
    "load_session_settings",
    "normalize_items",
    "policy_view",
    "to_anthropic_messages",
    "tool_use_to_call",
]
