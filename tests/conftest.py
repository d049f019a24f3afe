"""Shared pytest fixtures for the compactchat test suite."""
from __future__ import annotations

import sys
from typing import Any, Callable, Iterable

import pytest

from chat_service import ChatService
from session import SessionSettings, SessionStore, SessionTelemetry
from tests.fakes import FakeContextClient
from tests.mocking import MockAnthropic


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch, tmp_path):
    for name in (
        "ACONTEXT_API_KEY",
        "ACONTEXT_BASE_URL",
        "ACONTEXT_TIMEOUT_SECONDS",
        "ANTHROPIC_MODEL",
        "ANTHROPIC_MAX_TOKENS",
        "COMPACTCHAT_SESSION_CONFIG",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("COMPACTCHAT_HISTORY_FILE", str(tmp_path / "history.txt"))


@pytest.fixture
def anthropic_mock() -> MockAnthropic:
    return MockAnthropic()


@pytest.fixture
def fake_context() -> FakeContextClient:
    return FakeContextClient()


@pytest.fixture
def session_store(tmp_path) -> SessionStore:
    return SessionStore(tmp_path / "sessions.json")


@pytest.fixture
def make_service(anthropic_mock, fake_context, session_store) -> Callable[..., ChatService]:
    """Build a ``ChatService`` wired to the fakes; keyword overrides pass through."""

    def factory(**overrides: Any) -> ChatService:
        kwargs: dict[str, Any] = {
            "context_client": fake_context,
            "store": session_store,
            "settings": SessionSettings(),
            "anthropic_client": anthropic_mock,
            "telemetry": SessionTelemetry(),
            "sleep": lambda _seconds: None,
        }
        kwargs.update(overrides)
        return ChatService(**kwargs)

    return factory


@pytest.fixture
def stdin_stub(monkeypatch):
    """Patch ``sys.stdin`` with a simple line-based stub."""

    def factory(*lines: str):
        class _Stub:
            def __init__(self, values: Iterable[str]):
                self._values = list(values)

            def readline(self) -> str:
                return self._values.pop(0) if self._values else ""

            def isatty(self) -> bool:
                return False

            def read(self) -> str:
                data = "".join(self._values)
                self._values.clear()
                return data

        stub = _Stub(lines)
        monkeypatch.setattr(sys, "stdin", stub)
        return stub

    return factory
