# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of NoParrot Engine.
#
# NoParrot Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

from __future__ import annotations

import os
from dataclasses import asdict, dataclass
from typing import Any

from noparrot_core.gate.policy import GatePolicy
from noparrot_core.llm.model_registry import ModelID


def _parse_bool(raw: Any, *, default: bool) -> bool:
    if raw is None:
        return default
    if isinstance(raw, bool):
        return raw
    s = str(raw).strip().lower()
    if not s:
        return default
    if s in ("1", "true", "yes", "y", "on"):
        return True
    if s in ("0", "false", "no", "n", "off"):
        return False
    return default


def _parse_int(raw: Any, *, default: int, min_v: int, max_v: int) -> int:
    try:
        if raw is None:
            v = default
        elif isinstance(raw, int):
            v = raw
        else:
            v = int(str(raw).strip())
    except (TypeError, ValueError):
        v = default
    return max(min_v, min(max_v, v))


def _parse_float(raw: Any, *, default: float, min_v: float, max_v: float) -> float:
    try:
        if raw is None:
            v = default
        elif isinstance(raw, (int, float)):
            v = float(raw)
        else:
            v = float(str(raw).strip())
    except (TypeError, ValueError):
        v = default
    return max(min_v, min(max_v, v))


def _parse_str(raw: Any, *, default: str) -> str:
    s = str(raw).strip() if raw is not None else ""
    return s or default


@dataclass(frozen=True)
class EngineFeatureFlags:
    # Trace is a local-only debug feature; it is enabled by default and can be disabled via env.
    trace_enabled: bool = True
    # Oracles can be switched off for offline runs (cache-only trust, no quiz generation).
    quiz_oracle: bool = True
    trust_oracle: bool = True


@dataclass(frozen=True)
class EngineDebugFlags:
    log_prompts: bool = False


@dataclass(frozen=True)
class EngineLLMConfig:
    timeout_sec: float = 30.0
    concurrency: int = 6
    max_retries: int = 2
    quiz_model: str = ModelID.MINI.value
    trust_model: str = ModelID.NANO.value
    quiz_max_output_tokens: int = 1400
    trust_max_output_tokens: int = 400


@dataclass(frozen=True)
class EngineQuizConfig:
    ttl_hours: int = 168
    question_count: int = 3
    # Per-question failures before the correct choice is revealed for auto-fill.
    attempts_per_question: int = 2
    # Below this many characters of analyzable text the quiz is not generated.
    min_context_chars: int = 60
    # Content made mostly of platform chrome (counters, login walls) is rejected.
    metadata_ratio_limit: float = 0.45
    submit_window_sec: int = 300
    submit_max_attempts: int = 10


@dataclass(frozen=True)
class EngineTrustConfig:
    ttl_hours: float = 12.0
    post_text_chars: int = 1500


@dataclass(frozen=True)
class EngineRuntimeConfig:
    llm: EngineLLMConfig
    features: EngineFeatureFlags
    debug: EngineDebugFlags
    gate: GatePolicy
    quiz: EngineQuizConfig
    trust: EngineTrustConfig

    @staticmethod
    def load_from_env() -> "EngineRuntimeConfig":
        llm = EngineLLMConfig(
            timeout_sec=_parse_float(os.getenv("OPENAI_TIMEOUT"), default=30.0, min_v=5.0, max_v=120.0),
            concurrency=_parse_int(os.getenv("OPENAI_CONCURRENCY"), default=6, min_v=1, max_v=16),
            max_retries=_parse_int(os.getenv("NOPARROT_LLM_MAX_RETRIES"), default=2, min_v=1, max_v=5),
            quiz_model=_parse_str(os.getenv("NOPARROT_QUIZ_MODEL"), default=ModelID.MINI.value),
            trust_model=_parse_str(os.getenv("NOPARROT_TRUST_MODEL"), default=ModelID.NANO.value),
            quiz_max_output_tokens=_parse_int(
                os.getenv("NOPARROT_QUIZ_MAX_OUTPUT_TOKENS"), default=1400, min_v=300, max_v=4000
            ),
            trust_max_output_tokens=_parse_int(
                os.getenv("NOPARROT_TRUST_MAX_OUTPUT_TOKENS"), default=400, min_v=120, max_v=2000
            ),
        )

        features = EngineFeatureFlags(
            trace_enabled=_parse_bool(os.getenv("NOPARROT_TRACE_ENABLED"), default=True),
            quiz_oracle=_parse_bool(os.getenv("NOPARROT_QUIZ_ORACLE"), default=True),
            trust_oracle=_parse_bool(os.getenv("NOPARROT_TRUST_ORACLE"), default=True),
        )
        debug = EngineDebugFlags(
            log_prompts=_parse_bool(os.getenv("NOPARROT_LOG_PROMPTS"), default=False),
        )

        d = GatePolicy()
        base = _parse_float(os.getenv("NOPARROT_GATE_BASE_SECONDS"), default=d.base_seconds, min_v=1.0, max_v=60.0)
        gate = GatePolicy(
            base_seconds=base,
            seconds_per_100_words=_parse_float(
                os.getenv("NOPARROT_GATE_SECONDS_PER_100_WORDS"), default=d.seconds_per_100_words, min_v=0.0, max_v=30.0
            ),
            # The cap never drops below the base, otherwise the clamp inverts.
            cap_seconds=_parse_float(
                os.getenv("NOPARROT_GATE_CAP_SECONDS"), default=d.cap_seconds, min_v=base, max_v=600.0
            ),
            min_scroll_ratio=_parse_float(
                os.getenv("NOPARROT_GATE_MIN_SCROLL_RATIO"), default=d.min_scroll_ratio, min_v=0.0, max_v=1.0
            ),
            poll_interval_ms=_parse_int(
                os.getenv("NOPARROT_GATE_POLL_INTERVAL_MS"), default=d.poll_interval_ms, min_v=50, max_v=5000
            ),
            unlock_threshold=_parse_float(
                os.getenv("NOPARROT_GATE_UNLOCK_THRESHOLD"), default=d.unlock_threshold, min_v=0.0, max_v=1.0
            ),
            grace_ratio=_parse_float(
                os.getenv("NOPARROT_GATE_GRACE_RATIO"), default=d.grace_ratio, min_v=0.0, max_v=0.5
            ),
            max_scroll_velocity=_parse_float(
                os.getenv("NOPARROT_GATE_MAX_SCROLL_VELOCITY"), default=d.max_scroll_velocity, min_v=100.0, max_v=50000.0
            ),
            block_base_dwell_sec=_parse_float(
                os.getenv("NOPARROT_GATE_BLOCK_BASE_DWELL"), default=d.block_base_dwell_sec, min_v=0.0, max_v=30.0
            ),
            block_dwell_per_100_words=_parse_float(
                os.getenv("NOPARROT_GATE_BLOCK_DWELL_PER_100_WORDS"),
                default=d.block_dwell_per_100_words,
                min_v=0.0,
                max_v=60.0,
            ),
            block_max_dwell_sec=_parse_float(
                os.getenv("NOPARROT_GATE_BLOCK_MAX_DWELL"), default=d.block_max_dwell_sec, min_v=0.0, max_v=120.0
            ),
            block_coverage_threshold=_parse_float(
                os.getenv("NOPARROT_GATE_BLOCK_COVERAGE"), default=d.block_coverage_threshold, min_v=0.05, max_v=1.0
            ),
            visible_ahead_blocks=_parse_int(
                os.getenv("NOPARROT_GATE_VISIBLE_AHEAD_BLOCKS"), default=d.visible_ahead_blocks, min_v=0, max_v=10
            ),
        )

        quiz = EngineQuizConfig(
            ttl_hours=_parse_int(os.getenv("NOPARROT_QUIZ_TTL_HOURS"), default=168, min_v=1, max_v=24 * 90),
            question_count=3 if _parse_int(os.getenv("NOPARROT_QUIZ_QUESTIONS"), default=3, min_v=1, max_v=3) >= 2 else 1,
            attempts_per_question=_parse_int(
                os.getenv("NOPARROT_QUIZ_ATTEMPTS_PER_QUESTION"), default=2, min_v=1, max_v=10
            ),
            min_context_chars=_parse_int(os.getenv("NOPARROT_QUIZ_MIN_CONTEXT_CHARS"), default=60, min_v=10, max_v=2000),
            metadata_ratio_limit=_parse_float(
                os.getenv("NOPARROT_QUIZ_METADATA_RATIO"), default=0.45, min_v=0.1, max_v=1.0
            ),
            submit_window_sec=_parse_int(os.getenv("NOPARROT_SUBMIT_WINDOW_SEC"), default=300, min_v=10, max_v=3600),
            submit_max_attempts=_parse_int(os.getenv("NOPARROT_SUBMIT_MAX_ATTEMPTS"), default=10, min_v=1, max_v=100),
        )

        trust = EngineTrustConfig(
            ttl_hours=_parse_float(os.getenv("NOPARROT_TRUST_TTL_HOURS"), default=12.0, min_v=0.25, max_v=24 * 30),
            post_text_chars=_parse_int(os.getenv("NOPARROT_TRUST_POST_TEXT_CHARS"), default=1500, min_v=0, max_v=8000),
        )

        return EngineRuntimeConfig(
            llm=llm,
            features=features,
            debug=debug,
            gate=gate,
            quiz=quiz,
            trust=trust,
        )

    def to_safe_log_dict(self) -> dict[str, Any]:
        return {
            "features": asdict(self.features),
            "debug": asdict(self.debug),
            "llm": {
                "timeout_sec": float(self.llm.timeout_sec),
                "concurrency": int(self.llm.concurrency),
                "max_retries": int(self.llm.max_retries),
                "quiz_model": self.llm.quiz_model,
                "trust_model": self.llm.trust_model,
            },
            "gate": asdict(self.gate),
            "quiz": asdict(self.quiz),
            "trust": asdict(self.trust),
        }
