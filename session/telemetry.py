"""Telemetry collector for chat session metrics."""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Dict, Iterable


@dataclass
class SessionTelemetry:
    counters: Dict[str, int] = field(default_factory=lambda: {
        "turns": 0,
        "compaction_decisions": 0,
        "context_failures": 0,
        "tool_calls": 0,
        "tool_errors": 0,
        "skills_injected": 0,
        # Directive counters, keyed by edit strategy type
        "directives.token_limit": 0,
        "directives.remove_tool_result": 0,
        "directives.remove_tool_call_params": 0,
    })

    def incr(self, key: str, amount: int = 1) -> None:
        self.counters[key] = self.counters.get(key, 0) + amount

    def set(self, key: str, value: int) -> None:
        self.counters[key] = value

    def record_directives(self, kinds: Iterable[str]) -> None:
        self.incr("compaction_decisions")
        for kind in kinds:
            self.incr(f"directives.{kind}")

    def snapshot(self) -> Dict[str, int]:
        return dict(self.counters)

    def export_json(self) -> str:
        return json.dumps({"counters": self.snapshot()}, ensure_ascii=False, indent=2)


__all__ = ["SessionTelemetry"]
