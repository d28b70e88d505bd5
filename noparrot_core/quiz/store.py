# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of NoParrot Engine.
#
# NoParrot Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""
Quiz persistence.

Three logical tables:
- questions: `PublicQuiz` rows (safe to return to clients)
- answers:   `QuizAnswerKey` rows (read only by the validator)
- attempts:  append-only `QuizAttempt` rows per (user, quiz)

Stores return expired rows too; expiry is interpreted by the services so
that "expired" (Gone) stays distinguishable from "missing" (NotFound).
"""

from __future__ import annotations

import datetime
import logging
from typing import Dict, List, Protocol, runtime_checkable

import diskcache

from noparrot_core.schema.quiz import PublicQuiz, QuizAnswerKey, QuizAttempt, QuizRecord
from noparrot_core.schema.serialization import utcnow
from noparrot_core.tools.cache_utils import append_to_list

logger = logging.getLogger(__name__)


@runtime_checkable
class QuizStore(Protocol):
    def save(self, record: QuizRecord) -> PublicQuiz:
        ...

    def get(self, quiz_id: str) -> PublicQuiz | None:
        ...

    def list_for_source(self, source_url: str) -> list[PublicQuiz]:
        """All quizzes for a normalized source URL, newest first."""
        ...

    def get_answer_key(self, quiz_id: str) -> QuizAnswerKey | None:
        ...

    def purge_expired(self, now: datetime.datetime | None = None) -> dict[str, int]:
        ...


@runtime_checkable
class AttemptLog(Protocol):
    def append(self, attempt: QuizAttempt) -> None:
        ...

    def list_for(self, user_id: str, quiz_id: str) -> list[QuizAttempt]:
        """Attempts of one user on one quiz, oldest first."""
        ...


class InMemoryQuizStore(QuizStore):
    def __init__(self) -> None:
        self._questions: Dict[str, PublicQuiz] = {}
        self._answers: Dict[str, QuizAnswerKey] = {}
        self._by_source: Dict[str, List[str]] = {}

    def save(self, record: QuizRecord) -> PublicQuiz:
        public = record.public()
        self._questions[record.quiz_id] = public
        self._answers[record.quiz_id] = record.answer_key()
        ids = self._by_source.setdefault(record.source_url, [])
        if record.quiz_id not in ids:
            ids.append(record.quiz_id)
        return public

    def get(self, quiz_id: str) -> PublicQuiz | None:
        return self._questions.get(quiz_id)

    def list_for_source(self, source_url: str) -> list[PublicQuiz]:
        rows = [self._questions[qid] for qid in self._by_source.get(source_url, []) if qid in self._questions]
        return sorted(rows, key=lambda q: q.created_at, reverse=True)

    def get_answer_key(self, quiz_id: str) -> QuizAnswerKey | None:
        return self._answers.get(quiz_id)

    def purge_expired(self, now: datetime.datetime | None = None) -> dict[str, int]:
        now = now or utcnow()
        expired = [qid for qid, q in self._questions.items() if q.is_expired(now)]
        for qid in expired:
            quiz = self._questions.pop(qid)
            self._answers.pop(qid, None)
            ids = self._by_source.get(quiz.source_url, [])
            if qid in ids:
                ids.remove(qid)
        return {"questions": len(expired), "answers": len(expired)}


class InMemoryAttemptLog(AttemptLog):
    def __init__(self) -> None:
        self._attempts: Dict[tuple[str, str], List[QuizAttempt]] = {}

    def append(self, attempt: QuizAttempt) -> None:
        self._attempts.setdefault((attempt.user_id, attempt.quiz_id), []).append(attempt)

    def list_for(self, user_id: str, quiz_id: str) -> list[QuizAttempt]:
        return list(self._attempts.get((user_id, quiz_id), []))


class DiskQuizStore(QuizStore):
    def __init__(self, cache: diskcache.Cache) -> None:
        self._cache = cache

    @staticmethod
    def _q(quiz_id: str) -> str:
        return f"quiz:questions:{quiz_id}"

    @staticmethod
    def _a(quiz_id: str) -> str:
        return f"quiz:answers:{quiz_id}"

    @staticmethod
    def _src(source_url: str) -> str:
        return f"quiz:source:{source_url}"

    def save(self, record: QuizRecord) -> PublicQuiz:
        public = record.public()
        with self._cache.transact():
            self._cache.set(self._q(record.quiz_id), public.to_dict())
            self._cache.set(self._a(record.quiz_id), record.answer_key().to_dict())
            ids = list(self._cache.get(self._src(record.source_url), default=[]) or [])
            if record.quiz_id not in ids:
                ids.append(record.quiz_id)
                self._cache.set(self._src(record.source_url), ids)
        return public

    def get(self, quiz_id: str) -> PublicQuiz | None:
        raw = self._cache.get(self._q(quiz_id))
        return PublicQuiz.from_dict(raw) if raw is not None else None

    def list_for_source(self, source_url: str) -> list[PublicQuiz]:
        rows = []
        for qid in self._cache.get(self._src(source_url), default=[]) or []:
            quiz = self.get(qid)
            if quiz is not None:
                rows.append(quiz)
        return sorted(rows, key=lambda q: q.created_at, reverse=True)

    def get_answer_key(self, quiz_id: str) -> QuizAnswerKey | None:
        raw = self._cache.get(self._a(quiz_id))
        return QuizAnswerKey.from_dict(raw) if raw is not None else None

    def purge_expired(self, now: datetime.datetime | None = None) -> dict[str, int]:
        now = now or utcnow()
        counts = {"questions": 0, "answers": 0}
        for key in list(self._cache.iterkeys()):
            if not isinstance(key, str) or not key.startswith("quiz:questions:"):
                continue
            quiz = self.get(key[len("quiz:questions:"):])
            if quiz is None or not quiz.is_expired(now):
                continue
            with self._cache.transact():
                if self._cache.delete(self._q(quiz.quiz_id)):
                    counts["questions"] += 1
                if self._cache.delete(self._a(quiz.quiz_id)):
                    counts["answers"] += 1
                ids = [i for i in self._cache.get(self._src(quiz.source_url), default=[]) or [] if i != quiz.quiz_id]
                self._cache.set(self._src(quiz.source_url), ids)
        logger.info("[QuizStore] Purged %d expired quizzes", counts["questions"])
        return counts


class DiskAttemptLog(AttemptLog):
    def __init__(self, cache: diskcache.Cache) -> None:
        self._cache = cache

    @staticmethod
    def _key(user_id: str, quiz_id: str) -> tuple[str, str, str]:
        # Tuple key: user and quiz ids may themselves contain ":".
        return ("quiz:attempts", user_id, quiz_id)

    def append(self, attempt: QuizAttempt) -> None:
        append_to_list(self._cache, self._key(attempt.user_id, attempt.quiz_id), attempt.to_dict())

    def list_for(self, user_id: str, quiz_id: str) -> list[QuizAttempt]:
        return [QuizAttempt.from_dict(raw) for raw in self._cache.get(self._key(user_id, quiz_id), default=[]) or []]
