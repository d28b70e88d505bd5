# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of NoParrot Engine.
#
# NoParrot Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

import random

import pytest
from pydantic import ValidationError

from noparrot_core.agents.skills.quiz_generation import QuizGenerationSkill
from noparrot_core.agents.skills.trust_evaluation import TrustEvaluationSkill
from noparrot_core.config import NoparrotConfig
from noparrot_core.errors import OracleResponseError
from noparrot_core.llm.model_registry import ModelID
from noparrot_core.runtime_config import EngineRuntimeConfig
from noparrot_core.schema.quiz import QuizMode, QuizRequest


def _oracle_question(i: int, correct: int = 0) -> dict:
    return {
        "question": f"Which measure did the council approve in paragraph {i}?",
        "options": [f"Right answer {i}", f"Distractor one {i}", f"Distractor two {i}"],
        "correct": correct,
    }


@pytest.fixture
def config():
    return NoparrotConfig(openai_api_key="sk-test", runtime=EngineRuntimeConfig.load_from_env())


@pytest.fixture
def request_():
    return QuizRequest(source_url="https://example.com/a", title="Cycling lane", summary="Council approved it.")


@pytest.mark.asyncio
async def test_quiz_skill_builds_questions_with_stable_ids(config, mock_llm_client, request_):
    mock_llm_client.call_json.return_value = {"questions": [_oracle_question(i) for i in range(1, 4)]}
    skill = QuizGenerationSkill(config, mock_llm_client, rng=random.Random(7))

    draft = await skill.generate(request_, body="Council approved it.")

    assert not draft.insufficient
    assert [q.id for q in draft.questions] == ["q1", "q2", "q3"]
    for i, q in enumerate(draft.questions, start=1):
        assert [c.id for c in q.choices] == ["a", "b", "c"]
        correct = next(c for c in q.choices if c.id == q.correct_choice_id)
        assert correct.text == f"Right answer {i}"

    kwargs = mock_llm_client.call_json.call_args.kwargs
    assert kwargs["model"] == ModelID.MINI
    assert kwargs["trace_kind"] == "quiz_oracle"
    assert "<source>" in kwargs["input"]


@pytest.mark.asyncio
async def test_quiz_skill_shuffles_correct_position(config, mock_llm_client, request_):
    mock_llm_client.call_json.return_value = {"questions": [_oracle_question(i) for i in range(1, 4)]}
    positions = set()
    for seed in range(20):
        skill = QuizGenerationSkill(config, mock_llm_client, rng=random.Random(seed))
        draft = await skill.generate(request_, body="x")
        positions.update(q.correct_choice_id for q in draft.questions)
    assert positions == {"a", "b", "c"}


@pytest.mark.asyncio
async def test_quiz_skill_rejects_wrong_count(config, mock_llm_client, request_):
    mock_llm_client.call_json.return_value = {"questions": [_oracle_question(1), _oracle_question(2)]}
    with pytest.raises(OracleResponseError):
        await QuizGenerationSkill(config, mock_llm_client).generate(request_, body="x")


@pytest.mark.asyncio
async def test_quiz_skill_rejects_duplicate_choices(config, mock_llm_client, request_):
    bad = _oracle_question(1)
    bad["options"] = ["Same", "same", "Other"]
    mock_llm_client.call_json.return_value = {"questions": [bad]}
    request_ = request_.model_copy(update={"question_count": 1})
    with pytest.raises(OracleResponseError):
        await QuizGenerationSkill(config, mock_llm_client).generate(request_, body="x")


@pytest.mark.asyncio
async def test_quiz_skill_rejects_malformed_output(config, mock_llm_client, request_):
    mock_llm_client.call_json.return_value = {"questions": [{"question": "Why?", "options": ["a", "b"], "correct": 5}]}
    with pytest.raises(ValidationError):
        await QuizGenerationSkill(config, mock_llm_client).generate(request_, body="x")


@pytest.mark.asyncio
async def test_quiz_skill_flags_generic_question_sets(config, mock_llm_client, request_):
    generic = [
        {"question": "What is the title of the article?", "options": ["A", "B", "C"], "correct": 0},
        {"question": "Who wrote this article?", "options": ["D", "E", "F"], "correct": 1},
        _oracle_question(3),
    ]
    mock_llm_client.call_json.return_value = {"questions": generic}
    draft = await QuizGenerationSkill(config, mock_llm_client).generate(request_, body="x")
    assert draft.insufficient_reason == "generic_questions"


@pytest.mark.asyncio
async def test_quiz_skill_passes_model_refusal_through(config, mock_llm_client, request_):
    mock_llm_client.call_json.return_value = {"insufficient_context": True, "reason": "paywall"}
    draft = await QuizGenerationSkill(config, mock_llm_client).generate(request_, body="x")
    assert draft.insufficient
    assert draft.insufficient_reason == "paywall"


@pytest.mark.asyncio
async def test_quiz_skill_mixed_mode_includes_post(config, mock_llm_client):
    mock_llm_client.call_json.return_value = {"questions": [_oracle_question(i) for i in range(1, 4)]}
    request = QuizRequest(
        source_url="https://example.com/a",
        title="Cycling lane",
        user_text="My take: this is overdue.",
        quiz_mode=QuizMode.MIXED,
    )
    await QuizGenerationSkill(config, mock_llm_client).generate(request, body="Council approved it.")
    prompt = mock_llm_client.call_json.call_args.kwargs["input"]
    assert "<post>" in prompt
    assert "overdue" in prompt


@pytest.mark.asyncio
async def test_trust_skill_returns_raw_json(config, mock_llm_client):
    mock_llm_client.call_json.return_value = {"band": "ALTO", "score": 91, "reasons": ["Primary source"]}
    skill = TrustEvaluationSkill(config, mock_llm_client)

    raw = await skill.evaluate("https://news.example.co.uk/story", post_text="Big news", author_handle="@desk")

    assert raw["band"] == "ALTO"
    kwargs = mock_llm_client.call_json.call_args.kwargs
    assert kwargs["model"] == ModelID.NANO
    assert kwargs["trace_kind"] == "trust_oracle"
    assert "example.co.uk" in kwargs["input"]
