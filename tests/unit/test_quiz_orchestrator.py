# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of NoParrot Engine.
#
# NoParrot Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""QuizOrchestrator state machine, driven with fake clocks and a mocked backend."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from noparrot_core.errors import IncompleteAnswersError, InvalidTransitionError
from noparrot_core.gate.orchestrator import (
    ClickOutcomeKind,
    GatedContent,
    GateRegistry,
    GateState,
    InsufficientContextPolicy,
    QuizBackend,
    QuizOrchestrator,
)
from noparrot_core.gate.scheduler import CancellationToken
from noparrot_core.gate.tracker import ReadingProgressTracker
from noparrot_core.schema.quiz import GateType, QuizPayload, ValidationResult

CONTENT = GatedContent(
    source_url="https://example.com/article",
    content_id="post-1",
    title="A title",
    summary="Summary",
    word_count=600,
)


def _result(*, passed: bool, score: int, failed=(), revealed=None, retryable=True) -> ValidationResult:
    return ValidationResult(
        attempt_id="att-1",
        quiz_id="quiz-1",
        passed=passed,
        score=score,
        total=3,
        failed_question_ids=list(failed),
        latency_ms=4000,
        revealed=revealed or {},
        retryable=retryable,
    )


@pytest.fixture
def quiz_payload(record_factory):
    return record_factory().public().to_payload(cached=False)


@pytest.fixture
def backend(quiz_payload):
    b = MagicMock(spec=QuizBackend)
    b.generate_quiz = AsyncMock(return_value=quiz_payload)
    b.validate_answers = AsyncMock(return_value=_result(passed=True, score=2, failed=["q3"]))
    return b


@pytest.fixture
def make_orchestrator(backend, surface, mono):
    def _make(**kwargs):
        tracker = ReadingProgressTracker(surface, CONTENT.effective_word_count(), clock=mono)
        kwargs.setdefault("content", CONTENT)
        return QuizOrchestrator(user_id="u1", backend=backend, tracker=tracker, clock=mono, **kwargs)

    return _make


def _read_fully(orch, surface, mono, seconds: float = 7.0) -> None:
    surface.scroll_to_ratio(1.0)
    mono.advance(seconds)
    orch.tick()


def _answer_all(orch, choice: str = "b") -> None:
    for q in orch.quiz.questions:
        orch.answer(q.id, choice)


@pytest.mark.asyncio
async def test_happy_path_invokes_continuation_with_attempt(make_orchestrator, backend, surface, mono):
    received = []
    orch = make_orchestrator(on_pass=received.append)
    orch.start()
    assert orch.state == GateState.TRACKING

    _read_fully(orch, surface, mono)
    assert orch.state == GateState.READY_PENDING_CLICK

    outcome = await orch.click()
    assert outcome.kind == ClickOutcomeKind.QUIZ
    assert len(outcome.quiz.questions) == 3
    assert orch.state == GateState.QUIZ_PRESENTED

    _answer_all(orch)
    mono.advance(4)
    result = await orch.submit()

    assert result.passed and result.score == 2
    assert orch.state == GateState.IDLE
    assert len(received) == 1
    assert received[0].passed
    assert received[0].attempt.attempt_id == "att-1"
    assert received[0].gate_type == GateType.SHARE

    submission = backend.validate_answers.call_args.args[0]
    assert submission.latency_ms == 4000
    assert submission.quiz_id == "quiz-1"
    assert submission.answers == {"q1": "b", "q2": "b", "q3": "b"}


@pytest.mark.asyncio
async def test_premature_click_is_rejected_without_quiz(make_orchestrator, backend, surface, mono):
    orch = make_orchestrator()
    orch.start()
    surface.scroll_to_ratio(0.1)
    mono.advance(1)

    outcome = await orch.click()

    assert outcome.kind == ClickOutcomeKind.REJECTED
    assert outcome.deficit.seconds_remaining == 6
    assert outcome.deficit.scroll_percent_remaining > 0
    assert orch.state == GateState.TRACKING
    backend.generate_quiz.assert_not_called()


@pytest.mark.asyncio
async def test_click_when_ready_but_not_yet_ticked(make_orchestrator, surface, mono):
    orch = make_orchestrator()
    orch.start()
    surface.scroll_to_ratio(1.0)
    mono.advance(8)
    outcome = await orch.click()
    assert outcome.kind == ClickOutcomeKind.QUIZ


@pytest.mark.asyncio
async def test_click_before_start_is_an_error(make_orchestrator):
    with pytest.raises(InvalidTransitionError):
        await make_orchestrator().click()


@pytest.mark.asyncio
async def test_second_click_while_quiz_open_is_noop(make_orchestrator, backend, surface, mono):
    orch = make_orchestrator()
    orch.start()
    _read_fully(orch, surface, mono)
    await orch.click()
    outcome = await orch.click()
    assert outcome.kind == ClickOutcomeKind.BUSY
    assert backend.generate_quiz.await_count == 1


@pytest.mark.asyncio
async def test_insufficient_context_allowed(make_orchestrator, backend, surface, mono):
    backend.generate_quiz.return_value = QuizPayload.insufficient("too_short")
    received = []
    orch = make_orchestrator(insufficient_policy=InsufficientContextPolicy.ALLOW, on_pass=received.append)
    orch.start()
    _read_fully(orch, surface, mono)

    outcome = await orch.click()

    assert outcome.kind == ClickOutcomeKind.ALLOWED
    assert received[0].insufficient_context is True
    assert received[0].attempt is None
    assert orch.state == GateState.IDLE


@pytest.mark.asyncio
async def test_insufficient_context_blocked(make_orchestrator, backend, surface, mono):
    backend.generate_quiz.return_value = QuizPayload.insufficient("metadata_only")
    received = []
    orch = make_orchestrator(on_pass=received.append)
    orch.start()
    _read_fully(orch, surface, mono)

    outcome = await orch.click()

    assert outcome.kind == ClickOutcomeKind.BLOCKED
    assert outcome.reason == "metadata_only"
    assert received == []
    assert orch.quiz is None


@pytest.mark.asyncio
async def test_generation_error_returns_to_ready(make_orchestrator, backend, surface, mono):
    backend.generate_quiz.side_effect = ConnectionError("offline")
    orch = make_orchestrator()
    orch.start()
    _read_fully(orch, surface, mono)
    with pytest.raises(ConnectionError):
        await orch.click()
    assert orch.state == GateState.READY_PENDING_CLICK


@pytest.mark.asyncio
async def test_failed_attempt_can_be_retried(make_orchestrator, backend, surface, mono):
    backend.validate_answers.return_value = _result(passed=False, score=1, failed=["q1", "q2"])
    received = []
    orch = make_orchestrator(on_pass=received.append)
    orch.start()
    _read_fully(orch, surface, mono)
    await orch.click()
    _answer_all(orch, "a")

    result = await orch.submit()

    assert not result.passed
    assert orch.state == GateState.FAILED
    assert orch.retryable
    assert orch.answers["q1"].choice_id is None
    assert orch.answers["q1"].status == "wrong"
    assert orch.answers["q3"].status == "correct"

    orch.retry()
    assert orch.state == GateState.QUIZ_PRESENTED
    with pytest.raises(IncompleteAnswersError):
        await orch.submit()
    assert received == []


@pytest.mark.asyncio
async def test_revealed_answers_are_autofilled_and_locked(make_orchestrator, backend, surface, mono):
    backend.validate_answers.return_value = _result(passed=False, score=1, failed=["q1"], revealed={"q1": "b"})
    orch = make_orchestrator()
    orch.start()
    _read_fully(orch, surface, mono)
    await orch.click()
    _answer_all(orch, "a")
    await orch.submit()

    orch.retry()
    assert orch.answers["q1"].choice_id == "b"
    assert orch.answers["q1"].status == "revealed"
    with pytest.raises(InvalidTransitionError):
        orch.answer("q1", "c")


@pytest.mark.asyncio
async def test_terminal_failure_cannot_retry(make_orchestrator, backend, surface, mono):
    backend.validate_answers.return_value = _result(
        passed=False, score=0, failed=["q1", "q2", "q3"], retryable=False
    )
    orch = make_orchestrator()
    orch.start()
    _read_fully(orch, surface, mono)
    await orch.click()
    _answer_all(orch, "a")
    await orch.submit()

    with pytest.raises(InvalidTransitionError):
        orch.retry()
    orch.reset()
    assert orch.state == GateState.IDLE


@pytest.mark.asyncio
async def test_restart_after_terminal_failure_requests_fresh_quiz(make_orchestrator, backend, surface, mono):
    backend.validate_answers.return_value = _result(
        passed=False, score=0, failed=["q1", "q2", "q3"], retryable=False
    )
    orch = make_orchestrator()
    orch.start()
    _read_fully(orch, surface, mono)
    await orch.click()
    _answer_all(orch, "a")
    await orch.submit()
    dwell = orch.tracker.progress().seconds_elapsed

    orch.restart()
    assert orch.state == GateState.TRACKING
    assert orch.quiz is None
    assert orch.tracker.progress().seconds_elapsed >= dwell

    orch.tick()
    assert orch.state == GateState.READY_PENDING_CLICK
    outcome = await orch.click()
    assert outcome.kind == ClickOutcomeKind.QUIZ
    assert orch.state == GateState.QUIZ_PRESENTED
    assert backend.generate_quiz.await_count == 2


@pytest.mark.asyncio
async def test_restart_requires_failed_state(make_orchestrator, surface, mono):
    orch = make_orchestrator()
    orch.start()
    with pytest.raises(InvalidTransitionError):
        orch.restart()
    _read_fully(orch, surface, mono)
    await orch.click()
    with pytest.raises(InvalidTransitionError):
        orch.restart()


@pytest.mark.asyncio
async def test_one_session_id_per_presented_quiz(make_orchestrator, backend, surface, mono):
    backend.validate_answers.return_value = _result(passed=False, score=1, failed=["q1", "q2"])
    orch = make_orchestrator()
    orch.start()
    _read_fully(orch, surface, mono)
    await orch.click()
    _answer_all(orch, "a")
    await orch.submit()
    orch.retry()
    _answer_all(orch, "a")
    await orch.submit()

    first, second = (c.args[0] for c in backend.validate_answers.call_args_list)
    assert first.session_id is not None
    assert first.session_id == second.session_id

    orch.restart()
    orch.tick()
    await orch.click()
    _answer_all(orch, "b")
    await orch.submit()
    assert backend.validate_answers.call_args.args[0].session_id != first.session_id


@pytest.mark.asyncio
async def test_submit_error_rolls_back_answers(make_orchestrator, backend, surface, mono):
    backend.validate_answers.side_effect = TimeoutError("slow")
    orch = make_orchestrator()
    orch.start()
    _read_fully(orch, surface, mono)
    await orch.click()
    _answer_all(orch, "c")

    with pytest.raises(TimeoutError):
        await orch.submit()

    assert orch.state == GateState.QUIZ_PRESENTED
    assert all(slot.status == "draft" and slot.choice_id == "c" for slot in orch.answers.values())


@pytest.mark.asyncio
async def test_result_after_dispose_is_dropped(make_orchestrator, backend, surface, mono, quiz_payload):
    token = CancellationToken()

    async def _generate(_request):
        token.cancel()
        return quiz_payload

    backend.generate_quiz = AsyncMock(side_effect=_generate)
    orch = make_orchestrator(token=token)
    orch.start()
    _read_fully(orch, surface, mono)

    outcome = await orch.click()

    assert outcome.kind == ClickOutcomeKind.DISCARDED
    assert orch.quiz is None
    assert orch.state == GateState.QUIZ_REQUESTED


@pytest.mark.asyncio
async def test_async_continuation_is_awaited(make_orchestrator, surface, mono):
    seen = []

    async def continuation(result):
        seen.append(result.attempt.score)

    orch = make_orchestrator(on_pass=continuation)
    orch.start()
    _read_fully(orch, surface, mono)
    await orch.click()
    _answer_all(orch)
    await orch.submit()
    assert seen == [2]


def test_registry_allows_one_gate_per_user_and_content():
    registry = GateRegistry()
    assert registry.acquire("u1", "post-1")
    assert not registry.acquire("u1", "post-1")
    assert registry.acquire("u2", "post-1")
    registry.release("u1", "post-1")
    assert registry.acquire("u1", "post-1")
