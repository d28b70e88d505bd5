# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of NoParrot Engine.
#
# NoParrot Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

from dataclasses import replace
from unittest.mock import AsyncMock, MagicMock

import pytest

from noparrot_core.agents.skills.quiz_generation import QuizOracle
from noparrot_core.agents.skills.trust_evaluation import TrustScoreOracle
from noparrot_core.config import NoparrotConfig
from noparrot_core.engine import NoparrotEngine
from noparrot_core.errors import ConfigurationError
from noparrot_core.gate.orchestrator import ClickOutcomeKind, GatedContent
from noparrot_core.runtime_config import EngineRuntimeConfig
from noparrot_core.schema.quiz import QuizDraft, QuizRequest
from noparrot_core.schema.trust import TrustBand

ARTICLE = (
    "The regional parliament passed a law that caps rent increases at three percent per year "
    "for apartments older than twenty years, starting next January."
)


@pytest.fixture
def runtime(monkeypatch):
    monkeypatch.delenv("NOPARROT_QUIZ_ORACLE", raising=False)
    monkeypatch.delenv("NOPARROT_TRUST_ORACLE", raising=False)
    return EngineRuntimeConfig.load_from_env()


@pytest.fixture
def quiz_oracle(questions_factory):
    o = MagicMock(spec=QuizOracle)
    o.generate = AsyncMock(return_value=QuizDraft(questions=questions_factory(3)))
    return o


@pytest.fixture
def trust_oracle():
    o = MagicMock(spec=TrustScoreOracle)
    o.evaluate = AsyncMock(return_value={"band": "BASSO", "score": 12, "reasons": ["Anonymous blog"]})
    return o


@pytest.fixture
def engine(runtime, quiz_oracle, trust_oracle, quiz_store, attempt_log, trust_store, clock):
    e = NoparrotEngine(
        NoparrotConfig(runtime=runtime),
        quiz_oracle=quiz_oracle,
        trust_oracle=trust_oracle,
        quiz_store=quiz_store,
        attempt_log=attempt_log,
        trust_store=trust_store,
        clock=clock,
    )
    yield e


def test_missing_api_key_fails_at_start(runtime, tmp_path):
    with pytest.raises(ConfigurationError):
        NoparrotEngine(NoparrotConfig(cache_dir=tmp_path, runtime=runtime))


@pytest.mark.asyncio
async def test_offline_engine_uses_disk_cache(runtime, tmp_path):
    offline = replace(runtime, features=replace(runtime.features, quiz_oracle=False, trust_oracle=False))
    engine = NoparrotEngine(NoparrotConfig(cache_dir=tmp_path / "cache", runtime=offline))
    try:
        assert engine.llm_client is None
        assert engine.get_trust_score("https://example.com") is None
        result = await engine.evaluate_trust_score("https://example.com")
        assert result.fallback
        payload = await engine.generate_quiz(QuizRequest(source_url="https://example.com", summary=ARTICLE))
        assert payload.reason == "generation_unavailable"
    finally:
        await engine.close()
    assert (tmp_path / "cache").is_dir()


@pytest.mark.asyncio
async def test_trust_score_cache_only_read(engine, trust_oracle):
    assert engine.get_trust_score("https://rumors.example.net/post") is None

    result = await engine.evaluate_trust_score("https://rumors.example.net/post")
    assert result.band == TrustBand.BASSO

    cached = engine.get_trust_score("http://www.rumors.example.net/post/")
    assert cached["score"] == 12
    assert cached["band"] == "BASSO"
    assert cached["reasons"] == ["Anonymous blog"]
    assert cached["expires_at"].startswith("2025-06-02T00:00")
    assert trust_oracle.evaluate.await_count == 1


@pytest.mark.asyncio
async def test_gate_end_to_end(engine, surface, mono):
    continued = []
    content = GatedContent(
        source_url="https://example.com/rent-law",
        content_id="post-42",
        title="Rent cap approved",
        summary=ARTICLE,
        owner_id="author-1",
    )
    session = engine.open_gate(
        user_id="reader-1", content=content, continuation=continued.append, surface=surface, clock=mono
    )
    assert engine.open_gate(user_id="reader-1", content=content) is None

    async with session:
        early = await session.click()
        assert early.kind == ClickOutcomeKind.REJECTED

        surface.scroll_to_ratio(1.0)
        mono.advance(10)
        outcome = await session.click()
        assert outcome.kind == ClickOutcomeKind.QUIZ
        for q in outcome.quiz.questions:
            session.answer(q.id, "b" if q.id != "q3" else "a")
        result = await session.submit()

    assert result.passed and result.score == 2
    assert len(continued) == 1
    assert engine.metrics.get("quiz.passed") == 1
    assert engine.metrics.get("gate.passed") == 1

    fetched = engine.get_quiz(caller_id="author-1", source_url=content.source_url, content_id="post-42")
    assert fetched.quiz_id == outcome.quiz.quiz_id
    assert all("correct_choice_id" not in q for q in fetched.to_dict()["questions"])

    assert engine.open_gate(user_id="reader-1", content=content) is not None


def test_cleanup_reports_all_tables(engine, quiz_store, record_factory, clock):
    quiz_store.save(record_factory(ttl_hours=1))
    clock.advance(hours=2)
    assert engine.cleanup_expired() == {"questions": 1, "answers": 1, "trust_scores": 0}


@pytest.mark.asyncio
async def test_close_returns_metrics_snapshot(engine):
    await engine.evaluate_trust_score("https://example.com")
    snapshot = await engine.close()
    assert snapshot["trust.cache_miss"] == 1
    assert not engine.metrics.active
