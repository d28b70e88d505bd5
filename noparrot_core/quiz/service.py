# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of NoParrot Engine.
#
# NoParrot Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""
Quiz generation and retrieval.

`generate` is idempotent while a matching quiz is unexpired: the same
(source, content, text fingerprint, mode) returns the same quiz id. On a
miss the oracle is called once per identity even under concurrent
requests; any oracle failure becomes an explicit insufficient-context
payload, never an exception.
"""

from __future__ import annotations

import asyncio
import datetime
import logging
import uuid
import weakref
from typing import Callable

from noparrot_core.agents.skills.quiz_generation import QuizOracle
from noparrot_core.errors import AccessDeniedError, QuizExpiredError, QuizNotFoundError
from noparrot_core.llm.failures import classify_llm_failure, failure_kind_to_trace_data
from noparrot_core.metrics import GateMetrics
from noparrot_core.quiz.content_quality import assess_content, build_analyzable_text
from noparrot_core.quiz.store import QuizStore
from noparrot_core.runtime_config import EngineQuizConfig
from noparrot_core.schema.quiz import PublicQuiz, QuizMode, QuizPayload, QuizRecord, QuizRequest
from noparrot_core.schema.serialization import utcnow
from noparrot_core.utils.text_utils import content_hash
from noparrot_core.utils.trace import Trace
from noparrot_core.utils.url_utils import canonical_trust_url, safe_normalize_url

logger = logging.getLogger(__name__)


def lookup_quiz(
    store: QuizStore,
    *,
    source_url: str,
    content_id: str | None,
    now: datetime.datetime,
) -> PublicQuiz:
    """
    Find the quiz for a gate: first by (content id, source URL), then the
    pre-publish quiz for the source URL alone.

    Raises QuizNotFoundError when nothing matches and QuizExpiredError when
    only expired matches exist.
    """
    url = safe_normalize_url(source_url)
    candidates = store.list_for_source(url)
    keys = [content_id, None] if content_id is not None else [None]

    expired: PublicQuiz | None = None
    for key in keys:
        for quiz in candidates:
            if quiz.content_id != key:
                continue
            if not quiz.is_expired(now):
                return quiz
            expired = expired or quiz

    if expired is not None:
        raise QuizExpiredError("Quiz expired", quiz_id=expired.quiz_id)
    raise QuizNotFoundError("Quiz not found", source_url=url)


class QuizService:
    def __init__(
        self,
        store: QuizStore,
        oracle: QuizOracle | None,
        *,
        config: EngineQuizConfig,
        clock: Callable[[], datetime.datetime] = utcnow,
        metrics: GateMetrics | None = None,
        content_visible: Callable[[str], bool] | None = None,
        generated_from: str = "oracle",
    ) -> None:
        self._store = store
        self._oracle = oracle
        self._config = config
        self._clock = clock
        self._metrics = metrics
        self._content_visible = content_visible
        self._generated_from = generated_from
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _count(self, name: str) -> None:
        if self._metrics is not None and self._metrics.active:
            self._metrics.incr(name)

    @staticmethod
    def _analyzable_text(request: QuizRequest) -> tuple[str, str]:
        """Returns (text used for quality + fingerprint, source body sent to the oracle)."""
        body = build_analyzable_text(request.summary, request.excerpt)
        if request.quiz_mode == QuizMode.USER_ONLY:
            return request.user_text.strip(), body
        text = build_analyzable_text(request.title, body)
        if request.quiz_mode == QuizMode.MIXED:
            text = build_analyzable_text(text, request.user_text)
        return text, body

    def _find_reusable(self, request: QuizRequest, source_url: str, digest: str) -> PublicQuiz | None:
        now = self._clock()
        matches = [
            q
            for q in self._store.list_for_source(source_url)
            if not q.is_expired(now)
            and q.content_hash == digest
            and q.quiz_mode == request.quiz_mode
            and len(q.questions) == request.question_count
        ]
        for wanted in (request.content_id, None):
            for quiz in matches:
                if quiz.content_id == wanted:
                    return quiz
        # Same text already quizzed under another post (reshare of a known source).
        return matches[0] if matches else None

    async def generate(self, request: QuizRequest) -> QuizPayload:
        try:
            canonical_trust_url(request.source_url)
        except ValueError as e:
            logger.info("[Quiz] Malformed source URL: %s", e)
            self._count("quiz.insufficient")
            return QuizPayload.insufficient("invalid_source_url")
        source_url = safe_normalize_url(request.source_url)
        text, body = self._analyzable_text(request)
        digest = content_hash(text)
        lock_key = "|".join(
            [source_url, request.content_id or "-", digest, request.quiz_mode.value, str(request.question_count)]
        )
        lock = self._locks.get(lock_key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[lock_key] = lock

        async with lock:
            cached = self._find_reusable(request, source_url, digest)
            if cached is not None:
                logger.debug("[Quiz] Cache HIT %s for %s", cached.quiz_id, source_url)
                self._count("quiz.cache_hit")
                return cached.to_payload(cached=True)

            self._count("quiz.cache_miss")
            quality = assess_content(
                text,
                min_chars=self._config.min_context_chars,
                metadata_ratio_limit=self._config.metadata_ratio_limit,
            )
            if not quality.ok:
                logger.info("[Quiz] Insufficient content for %s: %s", source_url, quality.reason)
                self._count("quiz.insufficient")
                return QuizPayload.insufficient(quality.reason or "insufficient_context")

            if self._oracle is None:
                return QuizPayload.insufficient("generation_unavailable")

            try:
                draft = await self._oracle.generate(request, body=body)
            except Exception as e:
                kind = classify_llm_failure(e)
                logger.warning(
                    "[Quiz] Oracle failed for %s (%s): %s", source_url, kind.value if kind else "unknown", e
                )
                Trace.event("quiz.oracle_failed", {"source_url": source_url, **failure_kind_to_trace_data(kind, e)})
                self._count("quiz.oracle_failed")
                return QuizPayload.insufficient("generation_failed")

            if draft.insufficient:
                self._count("quiz.insufficient")
                return QuizPayload.insufficient(draft.insufficient_reason or "insufficient_context")

            now = self._clock()
            record = QuizRecord(
                quiz_id=uuid.uuid4().hex,
                content_id=request.content_id,
                source_url=source_url,
                owner_id=request.owner_id,
                content_hash=digest,
                quiz_mode=request.quiz_mode,
                generated_from=self._generated_from,
                questions=draft.questions,
                created_at=now,
                expires_at=now + datetime.timedelta(hours=self._config.ttl_hours),
            )
            public = self._store.save(record)
            logger.info("[Quiz] Generated %s for %s (%d questions)", record.quiz_id, source_url, len(record.questions))
            Trace.event("quiz.generated", {"quiz_id": record.quiz_id, "source_url": source_url})
            self._count("quiz.generated")
            return public.to_payload(cached=False)

    def get_quiz(
        self,
        *,
        caller_id: str,
        quiz_id: str | None = None,
        source_url: str | None = None,
        content_id: str | None = None,
    ) -> QuizPayload:
        """
        Sanitized quiz for display.

        Raises QuizNotFoundError, QuizExpiredError or AccessDeniedError.
        """
        now = self._clock()
        if quiz_id:
            quiz = self._store.get(quiz_id)
            if quiz is None:
                raise QuizNotFoundError("Quiz not found", quiz_id=quiz_id)
            if quiz.is_expired(now):
                raise QuizExpiredError("Quiz expired", quiz_id=quiz_id)
        elif source_url:
            quiz = lookup_quiz(self._store, source_url=source_url, content_id=content_id, now=now)
        else:
            raise QuizNotFoundError("quiz_id or source_url is required")

        if quiz.owner_id is not None and quiz.owner_id != caller_id:
            if quiz.content_id is None:
                # Pre-publish quizzes belong to whoever is composing the post.
                raise AccessDeniedError("Access denied", quiz_id=quiz.quiz_id)
            if self._content_visible is not None and not self._content_visible(quiz.content_id):
                raise AccessDeniedError("Access denied", quiz_id=quiz.quiz_id)
        return quiz.to_payload(cached=True)

    def cleanup_expired(self, now: datetime.datetime | None = None) -> dict[str, int]:
        return self._store.purge_expired(now or self._clock())
