# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of NoParrot Engine.
#
# NoParrot Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""
Authoritative answer scoring.

Correct choice ids never leave this module except through `revealed`:
once a user has missed a question `attempts_per_question` times within
one run (a quiz presentation, or the attempts since the last pass or
terminal failure), its correct choice is returned so the client can
auto-fill it and move on. A revealed question can no longer earn a point,
so the reveal cannot be used to pass.
"""

from __future__ import annotations

import datetime
import logging
import uuid
from typing import Callable

from noparrot_core.errors import QuizExpiredError, QuizNotFoundError
from noparrot_core.metrics import GateMetrics
from noparrot_core.quiz.rate_limit import SubmitRateLimiter
from noparrot_core.quiz.service import lookup_quiz
from noparrot_core.quiz.store import AttemptLog, QuizStore
from noparrot_core.runtime_config import EngineQuizConfig
from noparrot_core.schema.quiz import (
    AnswerSubmission,
    PublicQuiz,
    QuizAttempt,
    ValidationResult,
    pass_threshold,
)
from noparrot_core.schema.serialization import utcnow
from noparrot_core.utils.security import hash_user_id
from noparrot_core.utils.trace import Trace

logger = logging.getLogger(__name__)


class AnswerValidator:
    def __init__(
        self,
        store: QuizStore,
        attempts: AttemptLog,
        *,
        config: EngineQuizConfig,
        rate_limiter: SubmitRateLimiter | None = None,
        clock: Callable[[], datetime.datetime] = utcnow,
        metrics: GateMetrics | None = None,
        telemetry_secret: str | None = None,
    ) -> None:
        self._store = store
        self._attempts = attempts
        self._config = config
        self._rate_limiter = rate_limiter
        self._clock = clock
        self._metrics = metrics
        self._telemetry_secret = telemetry_secret

    def _resolve(self, submission: AnswerSubmission, now: datetime.datetime) -> PublicQuiz:
        if submission.quiz_id:
            quiz = self._store.get(submission.quiz_id)
            if quiz is None:
                raise QuizNotFoundError("Quiz not found", quiz_id=submission.quiz_id)
            if quiz.is_expired(now):
                raise QuizExpiredError("Quiz expired", quiz_id=submission.quiz_id)
            return quiz
        return lookup_quiz(
            self._store,
            source_url=submission.source_url,
            content_id=submission.content_id,
            now=now,
        )

    def _open_run(self, user_id: str, quiz_id: str, session_id: str | None) -> list[QuizAttempt]:
        """
        Attempts that count toward the cap for this submission.

        With a session id, only that presentation's attempts count. Without
        one, the run restarts after the latest passed or terminal attempt.
        """
        history = self._attempts.list_for(user_id, quiz_id)
        if session_id is not None:
            return [a for a in history if a.session_id == session_id]
        run: list[QuizAttempt] = []
        for attempt in history:
            if attempt.passed or attempt.terminal:
                run = []
            else:
                run.append(attempt)
        return run

    def _prior_misses(self, user_id: str, quiz_id: str, session_id: str | None = None) -> dict[str, int]:
        misses: dict[str, int] = {}
        for attempt in self._open_run(user_id, quiz_id, session_id):
            for qid in attempt.failed_question_ids:
                misses[qid] = misses.get(qid, 0) + 1
        return misses

    def validate(self, submission: AnswerSubmission) -> ValidationResult:
        """
        Score a submission and persist the attempt, pass or fail.

        Raises QuizNotFoundError / QuizExpiredError when no usable answer key
        exists, and RateLimitExceededError when the user is submitting too fast.
        """
        now = self._clock()
        quiz = self._resolve(submission, now)
        key = self._store.get_answer_key(quiz.quiz_id)
        if key is None:
            raise QuizNotFoundError("Answer key not found", quiz_id=quiz.quiz_id)

        if self._rate_limiter is not None:
            self._rate_limiter.check(submission.user_id, quiz.quiz_id)

        cap = self._config.attempts_per_question
        misses = self._prior_misses(submission.user_id, quiz.quiz_id, submission.session_id)
        # Questions already revealed on an earlier attempt.
        exhausted = {qid for qid, n in misses.items() if n >= cap}

        score = 0
        failed: list[str] = []
        revealed: dict[str, str] = {}
        for question in quiz.questions:
            correct = key.answers.get(question.id)
            chosen = submission.answers.get(question.id)
            if correct is not None and chosen == correct:
                if question.id not in exhausted:
                    score += 1
                continue
            failed.append(question.id)
            if misses.get(question.id, 0) + 1 >= cap and correct is not None:
                revealed[question.id] = correct
        for qid in exhausted:
            if qid in key.answers:
                revealed[qid] = key.answers[qid]

        total = len(quiz.questions)
        threshold = pass_threshold(total)
        passed = score >= threshold
        scorable = total - len(revealed)
        retryable = not passed and scorable >= threshold
        latency_ms = int(submission.latency_ms)

        attempt = QuizAttempt(
            attempt_id=uuid.uuid4().hex,
            user_id=submission.user_id,
            quiz_id=quiz.quiz_id,
            content_id=submission.content_id if submission.content_id is not None else quiz.content_id,
            source_url=quiz.source_url,
            answers=dict(submission.answers),
            score=score,
            total=total,
            passed=passed,
            failed_question_ids=failed,
            revealed_question_ids=sorted(revealed),
            gate_type=submission.gate_type,
            latency_ms=latency_ms,
            provider=submission.provider,
            session_id=submission.session_id,
            terminal=not passed and not retryable,
            created_at=now,
        )
        self._attempts.append(attempt)

        if self._metrics is not None and self._metrics.active:
            self._metrics.incr("quiz.passed" if passed else "quiz.failed")
            self._metrics.observe_ms("quiz.completion", latency_ms)
        logger.info(
            "[Quiz] Attempt %s on %s: score=%d/%d passed=%s",
            attempt.attempt_id,
            quiz.quiz_id,
            score,
            total,
            passed,
        )
        Trace.event("quiz.attempt", {
            "quiz_id": quiz.quiz_id,
            "user": hash_user_id(submission.user_id, self._telemetry_secret),
            "score": score,
            "passed": passed,
            "gate_type": submission.gate_type.value,
        })

        return ValidationResult(
            attempt_id=attempt.attempt_id,
            quiz_id=quiz.quiz_id,
            passed=passed,
            score=score,
            total=total,
            failed_question_ids=failed,
            latency_ms=latency_ms,
            revealed=revealed,
            retryable=retryable,
        )
