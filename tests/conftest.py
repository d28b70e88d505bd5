# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of NoParrot Engine.
#
# NoParrot Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from noparrot_core.agents.llm_client import LLMClient
from noparrot_core.quiz.store import InMemoryAttemptLog, InMemoryQuizStore
from noparrot_core.runtime_config import EngineQuizConfig
from noparrot_core.schema.quiz import QuizChoice, QuizMode, QuizQuestion, QuizRecord
from noparrot_core.trust.store import InMemoryTrustScoreStore


class FakeClock:
    """Wall clock for expiry logic; advance explicitly."""

    def __init__(self, start: datetime.datetime | None = None) -> None:
        self.now = start or datetime.datetime(2025, 6, 1, 12, 0, tzinfo=datetime.timezone.utc)

    def __call__(self) -> datetime.datetime:
        return self.now

    def advance(self, **delta) -> None:
        self.now = self.now + datetime.timedelta(**delta)


class FakeMonotonic:
    """Monotonic seconds for the tracker and orchestrator."""

    def __init__(self, start: float = 100.0) -> None:
        self.t = start

    def __call__(self) -> float:
        return self.t

    def advance(self, seconds: float) -> None:
        self.t += seconds


class FakeSurface:
    def __init__(self, scroll_height: float = 3000.0, client_height: float = 800.0, scroll_top: float = 0.0) -> None:
        self.scroll_height = scroll_height
        self.client_height = client_height
        self.scroll_top = scroll_top

    def scroll_to_ratio(self, ratio: float) -> None:
        self.scroll_top = max(0.0, ratio * self.scroll_height - self.client_height)


def make_questions(count: int = 3) -> list[QuizQuestion]:
    return [
        QuizQuestion(
            id=f"q{i}",
            prompt=f"According to the article, what happened in step {i}?",
            choices=[
                QuizChoice(id="a", text=f"Option A{i}"),
                QuizChoice(id="b", text=f"Option B{i}"),
                QuizChoice(id="c", text=f"Option C{i}"),
            ],
            correct_choice_id="b",
        )
        for i in range(1, count + 1)
    ]


def make_record(
    *,
    quiz_id: str = "quiz-1",
    content_id: str | None = "post-1",
    source_url: str = "https://example.com/article",
    owner_id: str | None = "owner-1",
    created_at: datetime.datetime,
    ttl_hours: int = 168,
    count: int = 3,
) -> QuizRecord:
    return QuizRecord(
        quiz_id=quiz_id,
        content_id=content_id,
        source_url=source_url,
        owner_id=owner_id,
        content_hash="0123456789abcdef",
        quiz_mode=QuizMode.SOURCE_ONLY,
        questions=make_questions(count),
        created_at=created_at,
        expires_at=created_at + datetime.timedelta(hours=ttl_hours),
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def mono():
    return FakeMonotonic()


@pytest.fixture
def quiz_config():
    return EngineQuizConfig()


@pytest.fixture
def quiz_store():
    return InMemoryQuizStore()


@pytest.fixture
def attempt_log():
    return InMemoryAttemptLog()


@pytest.fixture
def trust_store():
    return InMemoryTrustScoreStore()


@pytest.fixture
def mock_llm_client():
    """Matches the interface of LLMClient, returning AsyncMocks."""
    client = MagicMock(spec=LLMClient)
    client.call = AsyncMock(return_value={
        "content": "{}",
        "parsed": {},
        "model": "gpt-5-nano",
        "usage": {"total_tokens": 100},
    })
    client.call_json = AsyncMock(return_value={})
    client.close = AsyncMock()
    return client


@pytest.fixture
def record_factory(clock):
    def _make(**kwargs) -> QuizRecord:
        kwargs.setdefault("created_at", clock())
        return make_record(**kwargs)

    return _make


@pytest.fixture
def surface():
    return FakeSurface()


@pytest.fixture
def questions_factory():
    return make_questions
