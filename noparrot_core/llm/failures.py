# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of NoParrot Engine.
#
# NoParrot Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""
Oracle failure classification.

Every oracle call (quiz generation, trust evaluation) degrades to a safe
fallback; the failure kind is only used to tag logs and trace events so
that outages can be told apart from bad model output.
"""

from enum import Enum
from typing import Any


class LLMFailureKind(Enum):
    """Classification of oracle call failures."""

    CONNECTION_ERROR = "connection_error"
    TIMEOUT = "timeout"
    PROVIDER_ERROR = "provider_error"
    INVALID_JSON = "invalid_json"
    SCHEMA_VALIDATION_FAILED = "schema_validation_failed"


_CONNECTION_KEYWORDS = (
    "connection",
    "connect",
    "network",
    "socket",
    "refused",
    "unreachable",
    "dns",
    "ssl",
)

_TIMEOUT_KEYWORDS = (
    "timeout",
    "timed out",
    "deadline exceeded",
)

# Checked first so that "Rate limit exceeded" never reads as a timeout.
_PROVIDER_ERROR_KEYWORDS = (
    "rate limit",
    "rate_limit",
    "quota",
    "overloaded",
    "unavailable",
    "internal server",
    "500",
    "502",
    "503",
    "504",
)

_JSON_ERROR_KEYWORDS = (
    "json",
    "parse",
    "decode",
    "expecting",
)

_SCHEMA_ERROR_KEYWORDS = (
    "schema",
    "validation error",
    "field required",
    "missing required",
    "expected exactly",
    "does not match",
)


def classify_llm_failure(exc: Exception) -> LLMFailureKind | None:
    """
    Classify an oracle exception into a failure kind.

    Returns None if the failure is not recognized.
    """
    error_msg = str(exc).lower()
    exc_type = type(exc).__name__.lower()

    if any(kw in error_msg for kw in _PROVIDER_ERROR_KEYWORDS):
        return LLMFailureKind.PROVIDER_ERROR

    # pydantic ValidationError mentions "validation error" in its message
    if "validationerror" in exc_type or any(kw in error_msg for kw in _SCHEMA_ERROR_KEYWORDS):
        return LLMFailureKind.SCHEMA_VALIDATION_FAILED

    if "json" in exc_type or any(kw in error_msg for kw in _JSON_ERROR_KEYWORDS):
        return LLMFailureKind.INVALID_JSON

    if "timeout" in exc_type or any(kw in error_msg for kw in _TIMEOUT_KEYWORDS):
        return LLMFailureKind.TIMEOUT

    if "connection" in exc_type or "network" in exc_type:
        return LLMFailureKind.CONNECTION_ERROR
    if any(kw in error_msg for kw in _CONNECTION_KEYWORDS):
        return LLMFailureKind.CONNECTION_ERROR

    return None


def failure_kind_to_trace_data(kind: LLMFailureKind | None, exc: Exception) -> dict[str, Any]:
    return {
        "failure_kind": kind.value if kind else "unknown",
        "error_type": type(exc).__name__,
        "error_message": str(exc)[:200],
    }
