# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of NoParrot Engine.
#
# NoParrot Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

from pathlib import Path

import pytest

from noparrot_core.config import NoparrotConfig
from noparrot_core.errors import ConfigurationError
from noparrot_core.runtime_config import EngineRuntimeConfig


def test_defaults(monkeypatch):
    for name in ("NOPARROT_QUIZ_TTL_HOURS", "NOPARROT_TRUST_TTL_HOURS", "NOPARROT_GATE_BASE_SECONDS"):
        monkeypatch.delenv(name, raising=False)
    runtime = EngineRuntimeConfig.load_from_env()
    assert runtime.quiz.ttl_hours == 168
    assert runtime.quiz.attempts_per_question == 2
    assert runtime.trust.ttl_hours == 12.0
    assert runtime.gate.base_seconds == 3.0


def test_env_overrides_are_clamped(monkeypatch):
    monkeypatch.setenv("NOPARROT_GATE_BASE_SECONDS", "10")
    monkeypatch.setenv("NOPARROT_GATE_CAP_SECONDS", "2")
    monkeypatch.setenv("NOPARROT_GATE_MIN_SCROLL_RATIO", "1.7")
    monkeypatch.setenv("OPENAI_CONCURRENCY", "not-a-number")
    monkeypatch.setenv("NOPARROT_QUIZ_ORACLE", "off")

    runtime = EngineRuntimeConfig.load_from_env()

    assert runtime.gate.base_seconds == 10.0
    assert runtime.gate.cap_seconds == 10.0
    assert runtime.gate.min_scroll_ratio == 1.0
    assert runtime.llm.concurrency == 6
    assert runtime.features.quiz_oracle is False


def test_question_count_is_one_or_three(monkeypatch):
    monkeypatch.setenv("NOPARROT_QUIZ_QUESTIONS", "2")
    assert EngineRuntimeConfig.load_from_env().quiz.question_count == 3
    monkeypatch.setenv("NOPARROT_QUIZ_QUESTIONS", "1")
    assert EngineRuntimeConfig.load_from_env().quiz.question_count == 1


def test_safe_log_dict_has_no_secrets(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-very-secret")
    config = NoparrotConfig.from_env()
    dumped = str(config.effective_runtime().to_safe_log_dict())
    assert "sk-very-secret" not in dumped
    assert "quiz_model" in dumped


def test_from_env_reads_paths_and_secrets(monkeypatch, tmp_path):
    monkeypatch.setenv("NOPARROT_CACHE_DIR", str(tmp_path))
    monkeypatch.setenv("NOPARROT_TELEMETRY_SECRET", "pepper")
    config = NoparrotConfig.from_env()
    assert config.cache_dir == Path(tmp_path)
    assert config.telemetry_hmac_secret == "pepper"


def test_missing_key_with_oracles_enabled_fails(monkeypatch):
    monkeypatch.delenv("NOPARROT_QUIZ_ORACLE", raising=False)
    monkeypatch.delenv("NOPARROT_TRUST_ORACLE", raising=False)
    config = NoparrotConfig(openai_api_key="  ", runtime=EngineRuntimeConfig.load_from_env())
    with pytest.raises(ConfigurationError) as exc:
        config.require_oracle_credentials()
    assert exc.value.code == "CONFIGURATION_ERROR"


def test_missing_key_is_fine_when_oracles_disabled(monkeypatch):
    monkeypatch.setenv("NOPARROT_QUIZ_ORACLE", "0")
    monkeypatch.setenv("NOPARROT_TRUST_ORACLE", "false")
    NoparrotConfig(runtime=EngineRuntimeConfig.load_from_env()).require_oracle_credentials()
