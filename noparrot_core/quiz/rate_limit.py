# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of NoParrot Engine.
#
# NoParrot Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

from __future__ import annotations

import datetime
import logging
from typing import Callable

from noparrot_core.errors import RateLimitExceededError
from noparrot_core.quiz.store import AttemptLog
from noparrot_core.schema.serialization import utcnow

logger = logging.getLogger(__name__)


class SubmitRateLimiter:
    """
    Sliding-window limit on answer submissions per (user, quiz).

    Counts rows already in the attempt log, so no extra state is kept and
    the limit survives process restarts with a persistent log.
    """

    def __init__(
        self,
        attempts: AttemptLog,
        *,
        max_attempts: int = 10,
        window_sec: int = 300,
        clock: Callable[[], datetime.datetime] = utcnow,
    ) -> None:
        self._attempts = attempts
        self._max = max_attempts
        self._window = datetime.timedelta(seconds=window_sec)
        self._clock = clock

    def check(self, user_id: str, quiz_id: str) -> None:
        now = self._clock()
        since = now - self._window
        recent = [a.created_at for a in self._attempts.list_for(user_id, quiz_id) if a.created_at > since]
        if len(recent) < self._max:
            return
        oldest = min(recent)
        retry_after = max(1, int((oldest + self._window - now).total_seconds()) + 1)
        logger.info("[Quiz] Submit rate limit hit for quiz %s (retry in %ds)", quiz_id, retry_after)
        raise RateLimitExceededError(
            f"Too many attempts. Try again in {retry_after} seconds.",
            retry_after_sec=retry_after,
            quiz_id=quiz_id,
        )
