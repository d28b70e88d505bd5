# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of NoParrot Engine.
#
# NoParrot Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""
Trust score resolution: canonical URL, cache, oracle, coerce, persist.

Trust is advisory. Any oracle problem (transport, timeout, malformed JSON)
yields the neutral fallback instead of an error, so a trust lookup can
never block the user's action.
"""

from __future__ import annotations

import datetime
import logging
import math
from typing import Any, Callable

from noparrot_core.agents.skills.trust_evaluation import TrustScoreOracle
from noparrot_core.llm.failures import classify_llm_failure, failure_kind_to_trace_data
from noparrot_core.metrics import GateMetrics
from noparrot_core.schema.serialization import utcnow
from noparrot_core.schema.trust import TrustBand, TrustEvaluation, TrustScoreRecord
from noparrot_core.trust.store import TrustScoreStore
from noparrot_core.utils.trace import Trace
from noparrot_core.utils.url_utils import canonical_trust_url

logger = logging.getLogger(__name__)

FALLBACK_REASON = "evaluation unavailable"
MAX_REASONS = 3
MAX_REASON_CHARS = 200

# Used when the oracle gives a valid band but no usable score.
_BAND_DEFAULT_SCORE = {TrustBand.ALTO: 80, TrustBand.MEDIO: 50, TrustBand.BASSO: 20}


def neutral_fallback() -> TrustEvaluation:
    return TrustEvaluation(band=TrustBand.MEDIO, score=50, reasons=[FALLBACK_REASON], fallback=True)


def _coerce_band(raw: Any) -> TrustBand:
    try:
        return TrustBand(str(raw).strip().upper())
    except ValueError:
        return TrustBand.MEDIO


def _coerce_score(raw: Any, band: TrustBand) -> int:
    if isinstance(raw, bool):
        return _BAND_DEFAULT_SCORE[band]
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return _BAND_DEFAULT_SCORE[band]
    if math.isnan(value):
        return _BAND_DEFAULT_SCORE[band]
    return int(round(max(0.0, min(100.0, value))))


def _coerce_reasons(raw: Any) -> list[str]:
    if isinstance(raw, str):
        raw = [raw]
    if not isinstance(raw, list):
        return []
    out: list[str] = []
    for item in raw:
        if not isinstance(item, str):
            continue
        text = item.strip()
        if text:
            out.append(text[:MAX_REASON_CHARS])
        if len(out) >= MAX_REASONS:
            break
    return out


def coerce_trust_payload(payload: Any) -> TrustEvaluation:
    """
    Validate untrusted oracle output.

    Unknown bands become MEDIO, scores are clamped to [0, 100], reasons are
    cut to 3. Raises ValueError when the payload is not a JSON object at all.
    """
    if not isinstance(payload, dict):
        raise ValueError(f"trust payload must be an object, got {type(payload).__name__}")
    band = _coerce_band(payload.get("band"))
    return TrustEvaluation(
        band=band,
        score=_coerce_score(payload.get("score"), band),
        reasons=_coerce_reasons(payload.get("reasons")),
    )


class TrustScoreResolver:
    def __init__(
        self,
        store: TrustScoreStore,
        oracle: TrustScoreOracle | None,
        *,
        ttl_hours: float = 12.0,
        clock: Callable[[], datetime.datetime] = utcnow,
        metrics: GateMetrics | None = None,
        model_name: str | None = None,
    ) -> None:
        self._store = store
        self._oracle = oracle
        self._ttl = datetime.timedelta(hours=ttl_hours)
        self._clock = clock
        self._metrics = metrics
        self._model_name = model_name

    def _count(self, name: str) -> None:
        if self._metrics is not None and self._metrics.active:
            self._metrics.incr(name)

    def get_cached(self, source_url: str) -> TrustScoreRecord | None:
        """Cache-only read. None means the caller must request an evaluation."""
        try:
            key = canonical_trust_url(source_url)
        except ValueError:
            return None
        if not key:
            return None
        record = self._store.get(key)
        if record is None or record.is_expired(self._clock()):
            return None
        return record

    async def evaluate(
        self,
        source_url: str,
        *,
        post_text: str | None = None,
        author_handle: str | None = None,
        verified: bool = False,
    ) -> TrustEvaluation:
        try:
            key = canonical_trust_url(source_url)
        except ValueError as e:
            logger.info("[Trust] Malformed source URL, returning fallback: %s", e)
            self._count("trust.invalid_url")
            return neutral_fallback()
        if not key:
            logger.info("[Trust] Empty source URL, returning fallback")
            return neutral_fallback()

        cached = self.get_cached(key)
        if cached is not None:
            logger.debug("[Trust] Cache HIT for %s", key)
            self._count("trust.cache_hit")
            return cached.to_evaluation()

        logger.debug("[Trust] Cache MISS for %s", key)
        self._count("trust.cache_miss")
        if self._oracle is None:
            return neutral_fallback()

        try:
            payload = await self._oracle.evaluate(
                key,
                post_text=post_text,
                author_handle=author_handle,
                verified=verified,
            )
            evaluation = coerce_trust_payload(payload)
        except Exception as e:
            kind = classify_llm_failure(e)
            logger.warning("[Trust] Oracle failed for %s (%s): %s", key, kind.value if kind else "unknown", e)
            Trace.event("trust.oracle_failed", {"url": key, **failure_kind_to_trace_data(kind, e)})
            self._count("trust.oracle_failed")
            return neutral_fallback()

        now = self._clock()
        record = TrustScoreRecord(
            url=key,
            band=evaluation.band,
            score=evaluation.score,
            reasons=evaluation.reasons,
            model=self._model_name,
            created_at=now,
            expires_at=now + self._ttl,
        )
        try:
            self._store.put(record)
        except Exception as e:
            # The evaluation is still valid for this caller; only caching failed.
            logger.warning("[Trust] Failed to persist score for %s: %s", key, e)
        Trace.event("trust.evaluated", {"url": key, "band": evaluation.band.value, "score": evaluation.score})
        return evaluation

    def purge_expired(self, now: datetime.datetime | None = None) -> int:
        return self._store.purge_expired(now or self._clock())
