# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of NoParrot Engine.
#
# NoParrot Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""
Error taxonomy for the gate.

Oracle failures never appear here: they degrade to fallbacks inside the
quiz and trust pipelines. What remains are conditions the caller must be
able to tell apart (missing vs expired quiz, access denied, throttling)
and programmer errors such as missing configuration.
"""

from __future__ import annotations

from typing import Any


class GateError(RuntimeError):
    code = "GATE_ERROR"

    def __init__(self, message: str = "", **details: Any) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"error": self.code, "message": self.message}
        if self.details:
            out["details"] = dict(self.details)
        return out


class QuizNotFoundError(GateError):
    """No quiz record (or answer key) matches the requested identity."""

    code = "QA_NOT_FOUND"


class QuizExpiredError(GateError):
    """The matching quiz record is past its expiry; the caller should regenerate."""

    code = "QA_EXPIRED"


class AccessDeniedError(GateError):
    code = "ACCESS_DENIED"


class RateLimitExceededError(GateError):
    code = "RATE_LIMIT_EXCEEDED"

    def __init__(self, message: str = "", *, retry_after_sec: int, **details: Any) -> None:
        super().__init__(message, retry_after_sec=retry_after_sec, **details)
        self.retry_after_sec = retry_after_sec


class ConfigurationError(GateError):
    code = "CONFIGURATION_ERROR"


class InvalidTransitionError(GateError):
    """A gate action was requested in a state that does not allow it."""

    code = "INVALID_TRANSITION"


class IncompleteAnswersError(GateError):
    code = "INCOMPLETE_ANSWERS"


class OracleResponseError(ValueError):
    """Oracle returned output that does not satisfy the expected contract."""
