"""Chat turn orchestration: compaction decision, history replay, completion, tools."""
from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from anthropic import Anthropic, APIError, RateLimitError

from config import AnthropicConfig, load_anthropic_config, load_context_service_config
from context_service import (
    ContextServiceClient,
    create_session_directly,
    get_token_counts,
    load_messages,
    render_skills_prompt,
    search_relevant_skills,
    store_message,
)
from errors import ChatError, ErrorCode
from session import (
    ChatMessage,
    ChatSessionRecord,
    CompactionDirective,
    SessionSettings,
    SessionStore,
    SessionTelemetry,
    TokenUsage,
    ToolActivity,
    count_tool_activity,
    decide,
    load_session_settings,
    policy_view,
    to_anthropic_messages,
    tool_use_to_call,
)
from session.store import DEFAULT_STORE_PATH
from tools import ChatTool, ToolContext, execute_tool

logger = logging.getLogger(__name__)

MAX_RATE_LIMIT_RETRIES = 5


@dataclass
class ToolEvent:
    turn: int
    tool_name: str
    raw_input: Any
    result: str
    is_error: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "turn": self.turn,
            "tool": self.tool_name,
            "input": self.raw_input,
            "result": self.result,
            "is_error": self.is_error,
        }


@dataclass
class ChatTurnResult:
    session_id: str
    reply: str
    directives: Tuple[CompactionDirective, ...] = ()
    tool_events: List[ToolEvent] = field(default_factory=list)
    degraded: bool = False
    turns_used: int = 0
    stopped_reason: str = "completed"
    skills_used: int = 0


@dataclass
class PlanReport:
    """What the compaction policy would do for a session right now."""

    session_id: str
    usage: Optional[TokenUsage]
    activity: ToolActivity
    directives: Tuple[CompactionDirective, ...]
    message_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "total_tokens": self.usage.total_tokens if self.usage else None,
            "message_count": self.message_count,
            "tool_results": self.activity.tool_results,
            "tool_calls": self.activity.tool_calls,
            "edit_strategies": [directive.to_payload() for directive in self.directives],
        }


class ChatService:
    def __init__(
        self,
        *,
        context_client: Optional[ContextServiceClient],
        store: SessionStore,
        settings: Optional[SessionSettings] = None,
        anthropic_client: Optional[Anthropic] = None,
        anthropic_config: Optional[AnthropicConfig] = None,
        tools: Sequence[ChatTool] = (),
        telemetry: Optional[SessionTelemetry] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings or SessionSettings()
        self.context_client = context_client
        self.store = store
        self.config = anthropic_config or AnthropicConfig(
            model=self.settings.model.name,
            max_tokens=self.settings.model.max_tokens,
        )
        self._anthropic = anthropic_client
        self.tools = list(tools)
        self.tool_map = {tool.name: tool for tool in self.tools}
        self.telemetry = telemetry or SessionTelemetry()
        self._sleep = sleep
        self._local_history: Dict[str, List[ChatMessage]] = {}
        self._last_skill_count = 0

    @classmethod
    def from_env(
        cls,
        *,
        settings: Optional[SessionSettings] = None,
        tools: Sequence[ChatTool] = (),
    ) -> "ChatService":
        settings = settings or load_session_settings()
        context_config = load_context_service_config()
        client = ContextServiceClient(context_config) if context_config else None
        if client is None:
            logger.warning("Context service not configured; sessions will only live in memory")
        env_config = load_anthropic_config(settings.model.name, settings.model.max_tokens)
        return cls(
            context_client=client,
            store=SessionStore(settings.store.path or DEFAULT_STORE_PATH),
            settings=settings,
            anthropic_config=env_config,
            tools=tools,
        )

    @property
    def anthropic(self) -> Anthropic:
        if self._anthropic is None:
            self._anthropic = Anthropic()
        return self._anthropic

    def create_session(self, user_id: str, title: Optional[str] = None) -> ChatSessionRecord:
        """Create a chat session, falling back to a local-only one when needed."""

        created = create_session_directly(self.context_client, self.store, user_id, title)
        if created is not None:
            record = self.store.get(created.session_id)
            if record is not None:
                return record
        local_id = f"local-{uuid.uuid4().hex[:12]}"
        logger.info("Creating local-only session %s for user %s", local_id, user_id)
        return self.store.create(user_id=user_id, context_session_id=local_id, title=title)

    def plan(self, session_id: str) -> PlanReport:
        record = self._require_session(session_id)
        usage, raw, degraded = self._fetch_snapshot(record)
        view = policy_view(raw)
        directives = decide(usage, view, self.settings.compaction.thresholds())
        return PlanReport(
            session_id=session_id,
            usage=usage,
            activity=count_tool_activity(view),
            directives=directives,
            message_count=len(raw),
        )

    def send(self, session_id: str, text: str) -> ChatTurnResult:
        if not text.strip():
            raise ChatError("message must contain text", ErrorCode.INVALID_REQUEST)

        record = self._require_session(session_id)
        self.telemetry.incr("turns")

        degraded = not self._remote_enabled(record) or not store_message(
            self.context_client, record.context_session_id, "user", text
        )
        if degraded:
            self.telemetry.incr("context_failures")
            self._append_local(record, ChatMessage(role="user", content=text))

        system_text = self._build_system_prompt(record, text)
        tool_context = ToolContext(
            client=self.context_client if not degraded else None,
            context_session_id=record.context_session_id,
            space_id=record.space_id,
            disk_id=record.disk_id,
            telemetry=self.telemetry,
        )

        result = ChatTurnResult(session_id=session_id, reply="", degraded=degraded)
        result.skills_used = self._last_skill_count

        for turn_idx in range(1, self.settings.chat.max_turns + 1):
            messages, directives = self._prepare_history(record, degraded)
            if directives:
                result.directives = directives
            result.turns_used = turn_idx

            system_blocks, turns = to_anthropic_messages(messages, fallback_text=text)
            if system_text:
                system_blocks.insert(0, {"type": "text", "text": system_text})
            response = self._call_with_backoff(system_blocks, turns)

            blocks = _normalize_content(getattr(response, "content", []) or [])
            reply_text = _blocks_to_text(blocks)
            tool_uses = [block for block in blocks if block.get("type") == "tool_use"]

            self._record_message(
                record,
                degraded,
                ChatMessage(
                    role="assistant",
                    content=reply_text,
                    tool_calls=[tool_use_to_call(block) for block in tool_uses],
                ),
            )
            if reply_text:
                result.reply = reply_text

            if not tool_uses:
                result.stopped_reason = "completed"
                break

            for block in tool_uses:
                event = self._run_tool(turn_idx, block, tool_context)
                result.tool_events.append(event)
                self._record_message(
                    record,
                    degraded,
                    ChatMessage(role="tool", content=event.result, tool_call_id=str(block.get("id", ""))),
                )
        else:
            result.stopped_reason = "max_turns"

        return result

    def history(self, session_id: str) -> List[ChatMessage]:
        record = self._require_session(session_id)
        if self._remote_enabled(record):
            return load_messages(self.context_client, record.context_session_id)
        return list(self._local_history.get(record.context_session_id, []))

    def _require_session(self, session_id: str) -> ChatSessionRecord:
        record = self.store.get(session_id)
        if record is None:
            raise ChatError(f"Unknown session {session_id}", ErrorCode.INVALID_REQUEST)
        return record

    def _remote_enabled(self, record: ChatSessionRecord) -> bool:
        return self.context_client is not None and not record.context_session_id.startswith("local-")

    def _fetch_snapshot(
        self, record: ChatSessionRecord
    ) -> Tuple[Optional[TokenUsage], List[ChatMessage], bool]:
        if not self._remote_enabled(record):
            return None, list(self._local_history.get(record.context_session_id, [])), True
        usage = get_token_counts(self.context_client, record.context_session_id)
        raw = load_messages(self.context_client, record.context_session_id)
        return usage, raw, False

    def _prepare_history(
        self, record: ChatSessionRecord, degraded: bool
    ) -> Tuple[List[ChatMessage], Tuple[CompactionDirective, ...]]:
        if degraded:
            return list(self._local_history.get(record.context_session_id, [])), ()

        usage, raw, _ = self._fetch_snapshot(record)
        if not self.settings.compaction.auto:
            return raw, ()

        view = policy_view(raw)
        directives = decide(usage, view, self.settings.compaction.thresholds())
        activity = count_tool_activity(view)
        logger.debug(
            "Compaction inputs for %s: total_tokens=%s tool_results=%d tool_calls=%d -> %s",
            record.context_session_id,
            usage.total_tokens if usage else None,
            activity.tool_results,
            activity.tool_calls,
            [directive.kind for directive in directives] or "none",
        )
        if not directives:
            return raw, ()

        self.telemetry.record_directives(directive.kind for directive in directives)
        compacted = load_messages(self.context_client, record.context_session_id, directives)
        if not compacted and raw:
            logger.warning("Compacted reload returned nothing; replaying uncompacted history")
            return raw, directives
        return compacted, directives

    def _build_system_prompt(self, record: ChatSessionRecord, query: str) -> str:
        parts = [self.settings.model.system_prompt.strip()]
        self._last_skill_count = 0
        if self.settings.chat.skills_enabled and self._remote_enabled(record):
            skills = search_relevant_skills(self.context_client, record.space_id, query)
            if skills:
                self._last_skill_count = len(skills)
                self.telemetry.incr("skills_injected", len(skills))
                parts.append(render_skills_prompt(skills))
        return "\n\n".join(part for part in parts if part)

    def _record_message(self, record: ChatSessionRecord, degraded: bool, message: ChatMessage) -> None:
        if degraded:
            self._append_local(record, message)
            return
        stored = store_message(
            self.context_client,
            record.context_session_id,
            message.role,
            message.content,
            tool_calls=message.tool_calls,
            tool_call_id=message.tool_call_id,
        )
        if not stored:
            self.telemetry.incr("context_failures")

    def _append_local(self, record: ChatSessionRecord, message: ChatMessage) -> None:
        history = self._local_history.setdefault(record.context_session_id, [])
        message.session_id = record.context_session_id
        message.id = message.id or f"local-{len(history)}"
        history.append(message)

    def _run_tool(self, turn_idx: int, block: Dict[str, Any], context: ToolContext) -> ToolEvent:
        name = str(block.get("name", ""))
        raw_input = block.get("input") or {}
        tool = self.tool_map.get(name)
        if tool is None:
            return ToolEvent(
                turn=turn_idx,
                tool_name=name,
                raw_input=raw_input,
                result=f"Unknown tool '{name}'",
                is_error=True,
            )
        output = execute_tool(tool, raw_input, context)
        return ToolEvent(
            turn=turn_idx,
            tool_name=name,
            raw_input=raw_input,
            result=output.content,
            is_error=not output.success,
        )

    def _call_with_backoff(
        self,
        system_blocks: List[Dict[str, Any]],
        messages: List[Dict[str, Any]],
        backoff_seconds: float = 2.0,
    ) -> Any:
        request: Dict[str, Any] = {
            "model": self.config.model,
            "max_tokens": self.config.max_tokens,
            "messages": messages,
        }
        if system_blocks:
            request["system"] = system_blocks
        if self.tools:
            request["tools"] = [tool.to_definition() for tool in self.tools]

        wait = backoff_seconds
        retries = 0
        while True:
            try:
                return self.anthropic.messages.create(**request)
            except RateLimitError as exc:
                retries += 1
                if retries > MAX_RATE_LIMIT_RETRIES:
                    raise ChatError("Completion service rate limit exceeded", ErrorCode.RATE_LIMIT) from exc
                delay = min(wait, 30.0)
                logger.warning(
                    "Anthropic rate limit hit; retry %d/%d in %.1fs", retries, MAX_RATE_LIMIT_RETRIES, delay
                )
                self._sleep(delay)
                wait = min(wait * 2, 60.0)
            except APIError as exc:
                raise ChatError(f"Completion request failed: {exc}", ErrorCode.LLM_ERROR) from exc


def _normalize_content(blocks: Iterable[Any]) -> List[Dict[str, Any]]:
    return [_normalize_block(block) for block in blocks]


def _normalize_block(block: Any) -> Dict[str, Any]:
    if isinstance(block, dict):
        return dict(block)
    btype = getattr(block, "type", None)
    if btype == "text":
        return {"type": "text", "text": getattr(block, "text", "")}
    if btype == "tool_use":
        return {
            "type": "tool_use",
            "id": getattr(block, "id", getattr(block, "tool_use_id", "")),
            "name": getattr(block, "name", ""),
            "input": getattr(block, "input", {}),
        }
    data = {"type": btype or "text"}
    for attr in ("id", "name", "text", "input"):
        if hasattr(block, attr):
            data[attr] = getattr(block, attr)
    return data


def _blocks_to_text(blocks: Iterable[Dict[str, Any]]) -> str:
    texts = [block.get("text", "") for block in blocks if block.get("type") == "text"]
    return "\n".join(txt for txt in texts if txt).strip()


__all__ = ["ChatService", "ChatTurnResult", "PlanReport", "ToolEvent"]
