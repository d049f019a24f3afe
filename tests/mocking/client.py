"""Anthropic client stub that serves deterministic responses for tests."""
from __future__ import annotations

from collections import deque
from typing import Any, Deque, Dict, List, Mapping, Sequence, Union

from .responses import MockAnthropicResponse

_Queued = Union[MockAnthropicResponse, BaseException]


class MockAnthropicMessages:
    """Mimics the ``Anthropic.messages`` namespace."""

    def __init__(self, server: "MockAnthropic") -> None:
        self._server = server

    def create(self, **request: Any) -> MockAnthropicResponse:
        self._server.requests.append(request)
        return self._server._dequeue_response()


class MockAnthropic:
    """Drop-in replacement for ``Anthropic`` in tests.

    Queued exceptions are raised from ``messages.create`` in order, which lets
    tests exercise rate-limit retries and API failures.
    """

    def __init__(self) -> None:
        self.requests: List[Dict[str, Any]] = []
        self._responses: Deque[_Queued] = deque()
        self.messages = MockAnthropicMessages(self)

    def add_response(self, response: MockAnthropicResponse) -> None:
        self._responses.append(response.clone())

    def add_response_from_blocks(self, blocks: Sequence[Mapping[str, Any]]) -> None:
        self.add_response(MockAnthropicResponse.from_blocks(blocks))

    def add_error(self, error: BaseException) -> None:
        self._responses.append(error)

    def reset(self) -> None:
        self.requests.clear()
        self._responses.clear()

    def _dequeue_response(self) -> MockAnthropicResponse:
        if not self._responses:
            raise RuntimeError("MockAnthropic: no more responses queued")
        queued = self._responses.popleft()
        if isinstance(queued, BaseException):
            raise queued
        return queued.clone()


__all__ = ["MockAnthropic", "MockAnthropicMessages"]
