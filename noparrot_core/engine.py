# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of NoParrot Engine.
#
# NoParrot Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""
NoparrotEngine: server-side entry point wiring stores, oracles and the
gate services together. It also implements the QuizBackend protocol, so a
GateSession can run against an in-process engine.
"""

from __future__ import annotations

import datetime
import logging
from typing import Any, Callable

from noparrot_core.agents.llm_client import LLMClient
from noparrot_core.agents.skills.quiz_generation import QuizGenerationSkill, QuizOracle
from noparrot_core.agents.skills.trust_evaluation import TrustEvaluationSkill, TrustScoreOracle
from noparrot_core.config import NoparrotConfig
from noparrot_core.gate.orchestrator import GatedContent, GateRegistry
from noparrot_core.gate.session import GateSession
from noparrot_core.metrics import GateMetrics
from noparrot_core.quiz.rate_limit import SubmitRateLimiter
from noparrot_core.quiz.service import QuizService
from noparrot_core.quiz.store import AttemptLog, DiskAttemptLog, DiskQuizStore, QuizStore
from noparrot_core.quiz.validator import AnswerValidator
from noparrot_core.schema.quiz import AnswerSubmission, QuizPayload, QuizRequest, ValidationResult
from noparrot_core.schema.serialization import utcnow
from noparrot_core.schema.trust import TrustEvaluation
from noparrot_core.tools.cache_utils import ensure_diskcache
from noparrot_core.trust.resolver import TrustScoreResolver
from noparrot_core.trust.store import DiskTrustScoreStore, TrustScoreStore

logger = logging.getLogger(__name__)


class NoparrotEngine:
    def __init__(
        self,
        config: NoparrotConfig,
        *,
        llm_client: LLMClient | None = None,
        quiz_oracle: QuizOracle | None = None,
        trust_oracle: TrustScoreOracle | None = None,
        quiz_store: QuizStore | None = None,
        attempt_log: AttemptLog | None = None,
        trust_store: TrustScoreStore | None = None,
        metrics: GateMetrics | None = None,
        clock: Callable[[], datetime.datetime] = utcnow,
        content_visible: Callable[[str], bool] | None = None,
    ) -> None:
        self.config = config
        self.runtime = config.effective_runtime()
        features = self.runtime.features

        needs_llm = (features.quiz_oracle and quiz_oracle is None) or (features.trust_oracle and trust_oracle is None)
        self._owns_llm = False
        if needs_llm and llm_client is None:
            # Fails here, at start-up, when the key is missing.
            config.require_oracle_credentials()
            llm_client = LLMClient(
                openai_api_key=config.openai_api_key,
                default_timeout=self.runtime.llm.timeout_sec,
                max_retries=self.runtime.llm.max_retries,
                concurrency=self.runtime.llm.concurrency,
            )
            self._owns_llm = True
        self.llm_client = llm_client

        if features.quiz_oracle and quiz_oracle is None:
            quiz_oracle = QuizGenerationSkill(config, llm_client)
        if features.trust_oracle and trust_oracle is None:
            trust_oracle = TrustEvaluationSkill(config, llm_client)

        cache = None
        if quiz_store is None or attempt_log is None or trust_store is None:
            cache = ensure_diskcache(config.cache_dir)
        self._cache = cache
        quiz_store = quiz_store or DiskQuizStore(cache)
        attempt_log = attempt_log or DiskAttemptLog(cache)
        trust_store = trust_store or DiskTrustScoreStore(cache)

        self.metrics = metrics or GateMetrics()
        if not self.metrics.active:
            self.metrics.start()
        self.registry = GateRegistry()

        quiz_cfg = self.runtime.quiz
        self.quiz_service = QuizService(
            quiz_store,
            quiz_oracle if features.quiz_oracle else None,
            config=quiz_cfg,
            clock=clock,
            metrics=self.metrics,
            content_visible=content_visible,
            generated_from=self.runtime.llm.quiz_model,
        )
        self.validator = AnswerValidator(
            quiz_store,
            attempt_log,
            config=quiz_cfg,
            rate_limiter=SubmitRateLimiter(
                attempt_log,
                max_attempts=quiz_cfg.submit_max_attempts,
                window_sec=quiz_cfg.submit_window_sec,
                clock=clock,
            ),
            clock=clock,
            metrics=self.metrics,
            telemetry_secret=config.telemetry_hmac_secret,
        )
        self.trust_resolver = TrustScoreResolver(
            trust_store,
            trust_oracle if features.trust_oracle else None,
            ttl_hours=self.runtime.trust.ttl_hours,
            clock=clock,
            metrics=self.metrics,
            model_name=self.runtime.llm.trust_model,
        )
        logger.info("[Engine] Started with %s", self.runtime.to_safe_log_dict()["features"])

    # Quiz

    async def generate_quiz(self, request: QuizRequest) -> QuizPayload:
        return await self.quiz_service.generate(request)

    def get_quiz(
        self,
        *,
        caller_id: str,
        quiz_id: str | None = None,
        source_url: str | None = None,
        content_id: str | None = None,
    ) -> QuizPayload:
        return self.quiz_service.get_quiz(
            caller_id=caller_id, quiz_id=quiz_id, source_url=source_url, content_id=content_id
        )

    async def validate_answers(self, submission: AnswerSubmission) -> ValidationResult:
        return self.validator.validate(submission)

    # Trust

    async def evaluate_trust_score(
        self,
        source_url: str,
        *,
        post_text: str | None = None,
        author_handle: str | None = None,
        verified: bool = False,
    ) -> TrustEvaluation:
        return await self.trust_resolver.evaluate(
            source_url, post_text=post_text, author_handle=author_handle, verified=verified
        )

    def get_trust_score(self, source_url: str) -> dict[str, Any] | None:
        """Cache-only read; None means not cached (caller must request evaluation)."""
        record = self.trust_resolver.get_cached(source_url)
        if record is None:
            return None
        return {
            "score": record.score,
            "band": record.band.value,
            "reasons": list(record.reasons),
            "expires_at": record.expires_at.isoformat(),
        }

    # Gate

    def open_gate(self, *, user_id: str, content: GatedContent, **kwargs) -> GateSession | None:
        kwargs.setdefault("policy", self.runtime.gate)
        kwargs.setdefault("metrics", self.metrics)
        return GateSession.open(self.registry, user_id=user_id, content=content, backend=self, **kwargs)

    # Maintenance

    def cleanup_expired(self, now: datetime.datetime | None = None) -> dict[str, int]:
        counts = dict(self.quiz_service.cleanup_expired(now))
        counts["trust_scores"] = self.trust_resolver.purge_expired(now)
        logger.info("[Engine] Cleanup removed %s", counts)
        return counts

    async def close(self) -> dict[str, int]:
        if self._owns_llm and self.llm_client is not None:
            await self.llm_client.close()
        if self._cache is not None:
            self._cache.close()
        return self.metrics.close()
