"""
Shared pytest fixtures for the boardgame_hype test suite.

Provides:
  - ``fake_session``: a stand-in for ``aiohttp.ClientSession`` that replays queued
    responses (or raises queued exceptions) and records every request.
  - ``sleeps``: an async sleep replacement that records delays instead of waiting.
  - ``store``: a fresh in-memory document store.
  - ``make_game``: CanonicalGame factory.
"""

from __future__ import annotations

from typing import Any, List, Optional, Tuple

import pytest

from boardgame_hype.core.store import InMemoryDocumentStore
from boardgame_hype.models.game import new_canonical_game


# ── HTTP fakes ────────────────────────────────────────────────────────────────

class FakeResponse:
    def __init__(self, status: int, body: str):
        self.status = status
        self._body = body

    async def text(self) -> str:
        return self._body


class _RequestContext:
    def __init__(self, outcome: Any):
        self._outcome = outcome

    async def __aenter__(self) -> FakeResponse:
        if isinstance(self._outcome, BaseException):
            raise self._outcome
        status, body = self._outcome
        return FakeResponse(status, body)

    async def __aexit__(self, *exc_info) -> bool:
        return False


class FakeSession:
    """Replays queued ``(status, body)`` tuples or exceptions, one per request."""

    def __init__(self, outcomes: Optional[List[Any]] = None, default: Optional[Tuple[int, str]] = None):
        self.outcomes = list(outcomes or [])
        self.default = default
        self.requests: List[dict] = []

    def queue(self, *outcomes: Any) -> "FakeSession":
        self.outcomes.extend(outcomes)
        return self

    def request(self, method: str, url: str, headers=None, timeout=None, **kwargs) -> _RequestContext:
        self.requests.append({'method': method, 'url': url, 'headers': dict(headers or {})})
        if self.outcomes:
            return _RequestContext(self.outcomes.pop(0))
        if self.default is not None:
            return _RequestContext(self.default)
        raise AssertionError(f"Unexpected request to {url}")


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


# ── Sleep recorder ────────────────────────────────────────────────────────────

class SleepRecorder:
    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()


# ── Store and domain factories ────────────────────────────────────────────────

@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def make_game():
    def _make(game_id: int = 13, name: str = "Catan", **fields):
        return new_canonical_game(game_id, name, **fields)
    return _make
