# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of NoParrot Engine.
#
# NoParrot Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""
Quiz records.

A generated quiz lives in two shapes: `QuizRecord` (server-side, carries
the correct choice ids) and `PublicQuiz` (what crosses the trust
boundary). Stores persist them as separate `questions` and `answers`
tables, so a read of questions can never leak the key.
"""

from __future__ import annotations

import datetime
from enum import Enum

from pydantic import Field, model_validator

from noparrot_core.schema.serialization import ExpiringRecord, SchemaModel


class GateType(str, Enum):
    SHARE = "share"
    COMMENT = "comment"
    MESSAGE = "message"


class QuizMode(str, Enum):
    # Questions about the linked source only.
    SOURCE_ONLY = "SOURCE_ONLY"
    # One question on the author's text, the rest on the source.
    MIXED = "MIXED"
    # Questions on the author's text only.
    USER_ONLY = "USER_ONLY"


def pass_threshold(total: int) -> int:
    """Minimum score to pass: one mistake is tolerated on a full quiz, none on a single question."""
    return total - 1 if total >= 3 else total


class QuizChoice(SchemaModel):
    id: str
    text: str


class PublicQuestion(SchemaModel):
    id: str
    prompt: str
    choices: list[QuizChoice] = Field(..., min_length=3, max_length=3)


class QuizQuestion(PublicQuestion):
    correct_choice_id: str

    @model_validator(mode="after")
    def _correct_choice_exists(self) -> "QuizQuestion":
        if self.correct_choice_id not in {c.id for c in self.choices}:
            raise ValueError(f"correct_choice_id {self.correct_choice_id!r} does not match any choice")
        return self

    def public(self) -> PublicQuestion:
        return PublicQuestion(id=self.id, prompt=self.prompt, choices=list(self.choices))


class _QuizIdentity(ExpiringRecord):
    quiz_id: str
    # None for pre-publish quizzes (gate evaluated before the post exists).
    content_id: str | None = None
    source_url: str
    owner_id: str | None = None
    content_hash: str
    quiz_mode: QuizMode = QuizMode.SOURCE_ONLY
    generated_from: str = "oracle"


class PublicQuiz(_QuizIdentity):
    questions: list[PublicQuestion] = Field(..., min_length=1, max_length=3)

    def to_payload(self, *, cached: bool) -> "QuizPayload":
        return QuizPayload(
            quiz_id=self.quiz_id,
            questions=list(self.questions),
            cached=cached,
            generated_at=self.created_at,
            expires_at=self.expires_at,
        )


class QuizAnswerKey(ExpiringRecord):
    quiz_id: str
    answers: dict[str, str]


class QuizRecord(_QuizIdentity):
    questions: list[QuizQuestion] = Field(..., min_length=1, max_length=3)

    @model_validator(mode="after")
    def _check_questions(self) -> "QuizRecord":
        if len(self.questions) == 2:
            raise ValueError("quiz must have exactly 1 or 3 questions")
        ids = [q.id for q in self.questions]
        if len(set(ids)) != len(ids):
            raise ValueError("question ids must be unique")
        return self

    def public(self) -> PublicQuiz:
        data = self.model_dump(exclude={"questions"})
        return PublicQuiz(**data, questions=[q.public() for q in self.questions])

    def answer_key(self) -> QuizAnswerKey:
        return QuizAnswerKey(
            quiz_id=self.quiz_id,
            answers={q.id: q.correct_choice_id for q in self.questions},
            created_at=self.created_at,
            expires_at=self.expires_at,
        )


class QuizRequest(SchemaModel):
    content_id: str | None = None
    source_url: str
    title: str = ""
    summary: str = ""
    excerpt: str = ""
    # The sharer's own commentary; used by MIXED / USER_ONLY quizzes.
    user_text: str = ""
    owner_id: str | None = None
    quiz_mode: QuizMode = QuizMode.SOURCE_ONLY
    question_count: int = 3

    @model_validator(mode="after")
    def _check_count(self) -> "QuizRequest":
        if self.question_count not in (1, 3):
            raise ValueError("question_count must be 1 or 3")
        return self


class QuizDraft(SchemaModel):
    """Oracle output after schema validation, before ids/expiry are assigned."""

    questions: list[QuizQuestion] = Field(default_factory=list)
    insufficient_reason: str | None = None

    @property
    def insufficient(self) -> bool:
        return self.insufficient_reason is not None


class QuizPayload(SchemaModel):
    quiz_id: str | None = None
    questions: list[PublicQuestion] = Field(default_factory=list)
    insufficient_context: bool = False
    reason: str | None = None
    cached: bool = False
    generated_at: datetime.datetime | None = None
    expires_at: datetime.datetime | None = None

    @classmethod
    def insufficient(cls, reason: str) -> "QuizPayload":
        return cls(insufficient_context=True, reason=reason)


class AnswerSubmission(SchemaModel):
    user_id: str
    source_url: str
    content_id: str | None = None
    quiz_id: str | None = None
    answers: dict[str, str] = Field(default_factory=dict)
    gate_type: GateType = GateType.SHARE
    latency_ms: int = Field(0, ge=0)
    provider: str | None = None
    # One quiz presentation; the per-question attempt cap is counted within it.
    session_id: str | None = None


class QuizAttempt(SchemaModel):
    """Write-once audit row. Never updated by the gate flow."""

    attempt_id: str
    user_id: str
    quiz_id: str
    content_id: str | None = None
    source_url: str
    answers: dict[str, str]
    score: int = Field(..., ge=0, le=3)
    total: int = Field(..., ge=1, le=3)
    passed: bool
    failed_question_ids: list[str] = Field(default_factory=list)
    revealed_question_ids: list[str] = Field(default_factory=list)
    gate_type: GateType = GateType.SHARE
    latency_ms: int = Field(0, ge=0)
    provider: str | None = None
    session_id: str | None = None
    # Failed with passing out of reach; later submissions start a fresh run.
    terminal: bool = False
    created_at: datetime.datetime

    @model_validator(mode="after")
    def _check_pass(self) -> "QuizAttempt":
        if self.score > self.total:
            raise ValueError("score cannot exceed total")
        if self.passed != (self.score >= pass_threshold(self.total)):
            raise ValueError("passed must match the score threshold")
        return self


class ValidationResult(SchemaModel):
    attempt_id: str
    quiz_id: str
    passed: bool
    score: int = Field(..., ge=0, le=3)
    total: int
    failed_question_ids: list[str] = Field(default_factory=list)
    latency_ms: int = 0
    # Correct choice per question whose attempt cap is exhausted (client auto-fills these).
    revealed: dict[str, str] = Field(default_factory=dict)
    # False once passing is no longer reachable with the questions that can still score.
    retryable: bool = True
