# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of NoParrot Engine.
#
# NoParrot Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""
Quiz orchestration state machine for one (user, content) gate.

    IDLE -> TRACKING -> READY_PENDING_CLICK -> QUIZ_REQUESTED -> QUIZ_PRESENTED
         -> SUBMITTING -> PASSED | FAILED -> IDLE

A click before the reading requirement is met is rejected with a deficit
and leaves the state in TRACKING. Results of network calls that complete
after the owning session was disposed are dropped without touching state.
"""

from __future__ import annotations

import inspect
import logging
import time
import uuid
from dataclasses import dataclass, replace
from enum import Enum
from typing import Awaitable, Callable, Protocol, Union, runtime_checkable

from noparrot_core.errors import IncompleteAnswersError, InvalidTransitionError
from noparrot_core.gate.optimistic import OptimisticState
from noparrot_core.gate.policy import Deficit, ReadingProgress, deficit, is_ready
from noparrot_core.gate.scheduler import CancellationToken
from noparrot_core.gate.tracker import ReadingProgressTracker
from noparrot_core.schema.quiz import (
    AnswerSubmission,
    GateType,
    QuizMode,
    QuizPayload,
    QuizRequest,
    ValidationResult,
)
from noparrot_core.utils.text_utils import word_count

logger = logging.getLogger(__name__)


class GateState(str, Enum):
    IDLE = "idle"
    TRACKING = "tracking"
    READY_PENDING_CLICK = "ready_pending_click"
    QUIZ_REQUESTED = "quiz_requested"
    QUIZ_PRESENTED = "quiz_presented"
    SUBMITTING = "submitting"
    PASSED = "passed"
    FAILED = "failed"


_TRANSITIONS: dict[GateState, set[GateState]] = {
    GateState.IDLE: {GateState.TRACKING},
    GateState.TRACKING: {GateState.READY_PENDING_CLICK, GateState.IDLE},
    GateState.READY_PENDING_CLICK: {GateState.QUIZ_REQUESTED, GateState.IDLE},
    GateState.QUIZ_REQUESTED: {
        GateState.QUIZ_PRESENTED,
        GateState.READY_PENDING_CLICK,
        GateState.PASSED,
        GateState.IDLE,
    },
    GateState.QUIZ_PRESENTED: {GateState.SUBMITTING, GateState.IDLE},
    GateState.SUBMITTING: {GateState.PASSED, GateState.FAILED, GateState.QUIZ_PRESENTED},
    GateState.PASSED: {GateState.IDLE},
    GateState.FAILED: {GateState.QUIZ_PRESENTED, GateState.IDLE},
}


class InsufficientContextPolicy(str, Enum):
    """What a call site does when no quiz can be generated for the content."""

    ALLOW = "allow"
    BLOCK = "block"


@dataclass(frozen=True)
class GatedContent:
    source_url: str
    content_id: str | None = None
    title: str = ""
    summary: str = ""
    excerpt: str = ""
    user_text: str = ""
    owner_id: str | None = None
    quiz_mode: QuizMode = QuizMode.SOURCE_ONLY
    question_count: int = 3
    # Defaults to the words of title + summary + excerpt.
    word_count: int | None = None

    def effective_word_count(self) -> int:
        if self.word_count is not None:
            return max(0, self.word_count)
        return word_count(" ".join([self.title, self.summary, self.excerpt]))

    def quiz_request(self) -> QuizRequest:
        return QuizRequest(
            content_id=self.content_id,
            source_url=self.source_url,
            title=self.title,
            summary=self.summary,
            excerpt=self.excerpt,
            user_text=self.user_text,
            owner_id=self.owner_id,
            quiz_mode=self.quiz_mode,
            question_count=self.question_count,
        )


@runtime_checkable
class QuizBackend(Protocol):
    async def generate_quiz(self, request: QuizRequest) -> QuizPayload:
        ...

    async def validate_answers(self, submission: AnswerSubmission) -> ValidationResult:
        ...


class ClickOutcomeKind(str, Enum):
    REJECTED = "rejected"
    QUIZ = "quiz"
    ALLOWED = "allowed"
    BLOCKED = "blocked"
    BUSY = "busy"
    DISCARDED = "discarded"


@dataclass(frozen=True)
class ClickOutcome:
    kind: ClickOutcomeKind
    deficit: Deficit | None = None
    quiz: QuizPayload | None = None
    reason: str | None = None


@dataclass(frozen=True)
class GateResult:
    """Handed to the continuation. Carries the scored attempt, never the raw answers."""

    passed: bool
    gate_type: GateType
    attempt: ValidationResult | None = None
    insufficient_context: bool = False
    reason: str | None = None


@dataclass(frozen=True)
class AnswerSlot:
    choice_id: str | None = None
    # draft | submitted | correct | wrong | revealed
    status: str = "draft"


Continuation = Callable[[GateResult], Union[Awaitable[None], None]]


class GateRegistry:
    """At most one active gate per (user, content)."""

    def __init__(self) -> None:
        self._active: set[tuple[str, str]] = set()

    def acquire(self, user_id: str, content_key: str) -> bool:
        key = (user_id, content_key)
        if key in self._active:
            return False
        self._active.add(key)
        return True

    def release(self, user_id: str, content_key: str) -> None:
        self._active.discard((user_id, content_key))

    def is_active(self, user_id: str, content_key: str) -> bool:
        return (user_id, content_key) in self._active


class QuizOrchestrator:
    def __init__(
        self,
        *,
        user_id: str,
        content: GatedContent,
        backend: QuizBackend,
        tracker: ReadingProgressTracker,
        gate_type: GateType = GateType.SHARE,
        insufficient_policy: InsufficientContextPolicy = InsufficientContextPolicy.BLOCK,
        on_pass: Continuation | None = None,
        token: CancellationToken | None = None,
        clock: Callable[[], float] = time.monotonic,
        provider: str | None = None,
    ) -> None:
        self.user_id = user_id
        self.content = content
        self.gate_type = gate_type
        self.insufficient_policy = insufficient_policy
        self.tracker = tracker
        self._backend = backend
        self._on_pass = on_pass
        self._token = token or CancellationToken()
        self._clock = clock
        self._provider = provider

        self._state = GateState.IDLE
        self._quiz: QuizPayload | None = None
        self._answers: OptimisticState[dict[str, AnswerSlot]] = OptimisticState({})
        self._presented_at: float | None = None
        self._last_result: ValidationResult | None = None
        self._retryable = False
        self._session_id: str | None = None

    @property
    def state(self) -> GateState:
        return self._state

    @property
    def quiz(self) -> QuizPayload | None:
        return self._quiz

    @property
    def answers(self) -> dict[str, AnswerSlot]:
        return dict(self._answers.value)

    @property
    def last_result(self) -> ValidationResult | None:
        return self._last_result

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def retryable(self) -> bool:
        return self._state == GateState.FAILED and self._retryable

    def _transition(self, to: GateState) -> None:
        if to not in _TRANSITIONS[self._state]:
            raise InvalidTransitionError(f"{self._state.value} -> {to.value}")
        logger.debug("[Gate] %s -> %s (%s)", self._state.value, to.value, self.content.source_url)
        self._state = to

    def start(self) -> None:
        self._transition(GateState.TRACKING)
        self.tracker.start()

    def tick(self) -> ReadingProgress:
        """Sample the tracker; moves TRACKING -> READY_PENDING_CLICK once the policy is met."""
        if self._state not in (GateState.TRACKING, GateState.READY_PENDING_CLICK):
            return self.tracker.progress()
        progress = self.tracker.sample()
        if self._state == GateState.TRACKING and is_ready(progress, self.tracker.requirement):
            self._transition(GateState.READY_PENDING_CLICK)
        return progress

    async def click(self) -> ClickOutcome:
        if self._state == GateState.IDLE:
            raise InvalidTransitionError("gate is not tracking")
        if self._state not in (GateState.TRACKING, GateState.READY_PENDING_CLICK):
            return ClickOutcome(kind=ClickOutcomeKind.BUSY)

        progress = self.tick()
        if self._state == GateState.TRACKING:
            missing = deficit(progress, self.tracker.requirement)
            logger.debug("[Gate] Click rejected: %s", missing.message() if missing else "not ready")
            return ClickOutcome(kind=ClickOutcomeKind.REJECTED, deficit=missing)

        self._transition(GateState.QUIZ_REQUESTED)
        try:
            payload = await self._backend.generate_quiz(self.content.quiz_request())
        except Exception:
            if not self._token.cancelled:
                self._transition(GateState.READY_PENDING_CLICK)
            raise
        if self._token.cancelled:
            logger.debug("[Gate] Quiz arrived after dispose, dropped")
            return ClickOutcome(kind=ClickOutcomeKind.DISCARDED)

        if payload.insufficient_context or not payload.questions:
            reason = payload.reason or "insufficient_context"
            if self.insufficient_policy == InsufficientContextPolicy.ALLOW:
                self._transition(GateState.PASSED)
                await self._finish(GateResult(
                    passed=True, gate_type=self.gate_type, insufficient_context=True, reason=reason
                ))
                return ClickOutcome(kind=ClickOutcomeKind.ALLOWED, reason=reason)
            self._transition(GateState.IDLE)
            return ClickOutcome(kind=ClickOutcomeKind.BLOCKED, reason=reason)

        self._quiz = payload
        self._session_id = uuid.uuid4().hex
        self._answers.set({q.id: AnswerSlot() for q in payload.questions})
        self._present()
        return ClickOutcome(kind=ClickOutcomeKind.QUIZ, quiz=payload)

    def _present(self) -> None:
        self._transition(GateState.QUIZ_PRESENTED)
        self._presented_at = self._clock()

    def answer(self, question_id: str, choice_id: str) -> None:
        if self._state != GateState.QUIZ_PRESENTED:
            raise InvalidTransitionError(f"cannot answer in state {self._state.value}")
        slots = self._answers.value
        if question_id not in slots:
            raise KeyError(question_id)
        if slots[question_id].status == "revealed":
            raise InvalidTransitionError(f"question {question_id} was auto-filled")
        self._answers.set({**slots, question_id: AnswerSlot(choice_id=choice_id)})

    async def submit(self) -> ValidationResult | None:
        """
        Submit the current answers. Returns None when the session was
        disposed while the request was in flight.
        """
        if self._state != GateState.QUIZ_PRESENTED or self._quiz is None:
            raise InvalidTransitionError(f"cannot submit in state {self._state.value}")
        missing = [qid for qid, slot in self._answers.value.items() if not slot.choice_id]
        if missing:
            raise IncompleteAnswersError("All questions must be answered", missing=missing)

        latency_ms = int(max(0.0, self._clock() - (self._presented_at or self._clock())) * 1000)
        submitted = self._answers.apply(
            lambda slots: {qid: replace(s, status="submitted") for qid, s in slots.items()}
        )
        self._transition(GateState.SUBMITTING)
        submission = AnswerSubmission(
            user_id=self.user_id,
            source_url=self.content.source_url,
            content_id=self.content.content_id,
            quiz_id=self._quiz.quiz_id,
            answers={qid: s.choice_id for qid, s in submitted.items() if s.choice_id},
            gate_type=self.gate_type,
            latency_ms=latency_ms,
            provider=self._provider,
            session_id=self._session_id,
        )
        try:
            result = await self._backend.validate_answers(submission)
        except Exception:
            if not self._token.cancelled:
                self._answers.rollback()
                self._transition(GateState.QUIZ_PRESENTED)
            raise
        if self._token.cancelled:
            logger.debug("[Gate] Validation arrived after dispose, dropped")
            return None

        self._last_result = result
        self._answers.commit(lambda slots: _reconcile(slots, result))
        if result.passed:
            self._transition(GateState.PASSED)
            await self._finish(GateResult(passed=True, gate_type=self.gate_type, attempt=result))
        else:
            self._retryable = result.retryable
            self._transition(GateState.FAILED)
        return result

    def retry(self) -> None:
        """FAILED -> QUIZ_PRESENTED with wrong answers cleared and revealed ones auto-filled."""
        if not self.retryable:
            raise InvalidTransitionError("attempt is not retryable")
        self._present()

    def reset(self) -> None:
        if self._state != GateState.IDLE:
            self._transition(GateState.IDLE)
        self._quiz = None
        self._answers = OptimisticState({})
        self._presented_at = None
        self._retryable = False
        self._session_id = None

    def restart(self) -> None:
        """FAILED -> TRACKING so a fresh quiz can be requested. Reading progress carries over."""
        if self._state != GateState.FAILED:
            raise InvalidTransitionError(f"cannot restart in state {self._state.value}")
        self.reset()
        self.start()
        self.tracker.resume()

    async def _finish(self, result: GateResult) -> None:
        try:
            if self._on_pass is not None:
                out = self._on_pass(result)
                if inspect.isawaitable(out):
                    await out
        finally:
            self.reset()


def _reconcile(slots: dict[str, AnswerSlot], result: ValidationResult) -> dict[str, AnswerSlot]:
    failed = set(result.failed_question_ids)
    out: dict[str, AnswerSlot] = {}
    for qid, slot in slots.items():
        if qid in result.revealed:
            out[qid] = AnswerSlot(choice_id=result.revealed[qid], status="revealed")
        elif qid in failed:
            out[qid] = AnswerSlot(choice_id=None, status="wrong")
        else:
            out[qid] = replace(slot, status="correct")
    return out
