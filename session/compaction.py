"""Context compaction policy.

Decides which edit strategy (if any) the context service should apply when
history is replayed into the model. The decision is a pure function of the
token snapshot and the message projection handed in; the context service
applies the returned directives transiently for a single retrieval and never
rewrites stored history.
"""
from __future__ import annotations

from dataclasses import dataclass, fields, replace
from typing import Any, Iterable, Mapping, Optional, Sequence, Tuple, Union

ROLES = ("user", "assistant", "system", "tool")

DEFAULT_TOKEN_LIMIT_THRESHOLD = 80_000
DEFAULT_TOKEN_LIMIT_TARGET = 70_000
DEFAULT_TOOL_RESULT_THRESHOLD = 5
DEFAULT_TOOL_CALL_THRESHOLD = 10

MIN_KEEP_RECENT = 3
TOOL_RESULT_PLACEHOLDER = "Done"

ToolCallRef = str


@dataclass(frozen=True)
class TokenUsage:
    total_tokens: int = 0


@dataclass(frozen=True)
class ConversationMessage:
    """Projection of a stored message carrying only what the policy counts."""

    role: str
    tool_calls: Tuple[ToolCallRef, ...] = ()


_CAMEL_ALIASES = {
    "tokenLimitThreshold": "token_limit_threshold",
    "tokenLimitTarget": "token_limit_target",
    "toolResultThreshold": "tool_result_threshold",
    "toolCallThreshold": "tool_call_threshold",
}


@dataclass(frozen=True)
class CompactionThresholds:
    """Trigger points for the compaction policy.

    Values are taken as given: a target at or above the threshold is not
    rejected, it simply makes the token-limit directive a no-op reduction.
    """

    token_limit_threshold: int = DEFAULT_TOKEN_LIMIT_THRESHOLD
    token_limit_target: int = DEFAULT_TOKEN_LIMIT_TARGET
    tool_result_threshold: int = DEFAULT_TOOL_RESULT_THRESHOLD
    tool_call_threshold: int = DEFAULT_TOOL_CALL_THRESHOLD

    def with_overrides(self, **overrides: Optional[int]) -> "CompactionThresholds":
        """Return a copy with every non-``None`` override applied."""

        known = {field.name for field in fields(self)}
        applied = {}
        for key, value in overrides.items():
            name = _CAMEL_ALIASES.get(key, key)
            if name not in known:
                raise KeyError(f"Unknown compaction threshold '{key}'")
            if value is not None:
                applied[name] = int(value)
        return replace(self, **applied)

    @classmethod
    def from_mapping(cls, mapping: Optional[Mapping[str, Any]]) -> "CompactionThresholds":
        if not mapping:
            return cls()
        return cls().with_overrides(**dict(mapping))


@dataclass(frozen=True)
class TokenLimit:
    limit_tokens: int

    kind = "token_limit"

    def to_payload(self) -> dict[str, Any]:
        return {"type": self.kind, "params": {"limit_tokens": self.limit_tokens}}


@dataclass(frozen=True)
class RemoveToolResults:
    keep_recent_count: int
    placeholder: str = TOOL_RESULT_PLACEHOLDER

    kind = "remove_tool_result"

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": self.kind,
            "params": {
                "keep_recent_n_tool_results": self.keep_recent_count,
                "tool_result_placeholder": self.placeholder,
            },
        }


@dataclass(frozen=True)
class RemoveToolCallParams:
    keep_recent_count: int

    kind = "remove_tool_call_params"

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": self.kind,
            "params": {"keep_recent_n_tool_calls": self.keep_recent_count},
        }


CompactionDirective = Union[TokenLimit, RemoveToolResults, RemoveToolCallParams]

DIRECTIVE_KINDS: Tuple[str, ...] = (
    TokenLimit.kind,
    RemoveToolResults.kind,
    RemoveToolCallParams.kind,
)


@dataclass(frozen=True)
class ToolActivity:
    tool_results: int
    tool_calls: int


def count_tool_activity(messages: Iterable[ConversationMessage]) -> ToolActivity:
    tool_results = 0
    tool_calls = 0
    for message in messages:
        if message.role == "tool":
            tool_results += 1
        tool_calls += len(message.tool_calls)
    return ToolActivity(tool_results=tool_results, tool_calls=tool_calls)


def decide(
    usage: Optional[TokenUsage],
    messages: Sequence[ConversationMessage],
    thresholds: Optional[CompactionThresholds] = None,
) -> Tuple[CompactionDirective, ...]:
    """Return at most one directive for the given snapshot.

    Checks run in priority order and the first match wins: token budget
    breach, then tool-result volume, then tool-call volume. Without a token
    signal nothing is emitted.
    """

    limits = thresholds or CompactionThresholds()

    if usage is None or usage.total_tokens == 0:
        return ()

    if usage.total_tokens > limits.token_limit_threshold:
        return (TokenLimit(limit_tokens=limits.token_limit_target),)

    activity = count_tool_activity(messages)

    if activity.tool_results > limits.tool_result_threshold:
        return (
            RemoveToolResults(
                keep_recent_count=_keep_recent(limits.tool_result_threshold),
                placeholder=TOOL_RESULT_PLACEHOLDER,
            ),
        )

    if activity.tool_calls > limits.tool_call_threshold:
        return (RemoveToolCallParams(keep_recent_count=_keep_recent(limits.tool_call_threshold)),)

    return ()


class CompactionPolicy:
    """Holds configured thresholds and delegates to :func:`decide`."""

    def __init__(self, thresholds: Optional[CompactionThresholds] = None) -> None:
        self.thresholds = thresholds or CompactionThresholds()

    def decide(
        self,
        usage: Optional[TokenUsage],
        messages: Sequence[ConversationMessage],
    ) -> Tuple[CompactionDirective, ...]:
        return decide(usage, messages, self.thresholds)


def directives_to_payload(directives: Iterable[CompactionDirective]) -> list[dict[str, Any]]:
    return [directive.to_payload() for directive in directives]


def directive_from_payload(payload: Mapping[str, Any]) -> CompactionDirective:
    kind = payload.get("type")
    params = payload.get("params") or {}
    if not isinstance(params, Mapping):
        raise ValueError("edit strategy params must be a mapping")
    if kind == TokenLimit.kind:
        return TokenLimit(limit_tokens=int(params["limit_tokens"]))
    if kind == RemoveToolResults.kind:
        return RemoveToolResults(
            keep_recent_count=int(params.get("keep_recent_n_tool_results", MIN_KEEP_RECENT)),
            placeholder=str(params.get("tool_result_placeholder", TOOL_RESULT_PLACEHOLDER)),
        )
    if kind == RemoveToolCallParams.kind:
        return RemoveToolCallParams(
            keep_recent_count=int(params.get("keep_recent_n_tool_calls", MIN_KEEP_RECENT)),
        )
    raise ValueError(f"unknown edit strategy type {kind!r}")


def _keep_recent(threshold: int) -> int:
    return max(MIN_KEEP_RECENT, threshold // 2)


__all__ = [
    "CompactionDirective",
    "CompactionPolicy",
    "CompactionThresholds",
    "ConversationMessage",
    "DIRECTIVE_KINDS",
    "RemoveToolCallParams",
    "RemoveToolResults",
    "TokenLimit",
    "TokenUsage",
    "ToolActivity",
    "count_tool_activity",
    "decide",
    "directive_from_payload",
    "directives_to_payload",
]
