# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of NoParrot Engine.
#
# NoParrot Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""
Ticker and cancellation token on top of asyncio.

The owner of a gate holds the token; cancelling it stops the poll loop
and marks in-flight results as belonging to a disposed session.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

logger = logging.getLogger(__name__)


class CancellationToken:
    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()


class Ticker:
    """Calls `callback` every `interval_sec` until the token is cancelled."""

    def __init__(self, interval_sec: float, callback: Callable[[], object], *, token: CancellationToken) -> None:
        if interval_sec <= 0:
            raise ValueError("interval_sec must be positive")
        self._interval = interval_sec
        self._callback = callback
        self._token = token
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        if self._token.cancelled:
            raise RuntimeError("cannot start a ticker with a cancelled token")
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        while not self._token.cancelled:
            try:
                await asyncio.wait_for(self._token.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                try:
                    self._callback()
                except Exception:
                    logger.exception("[Ticker] Tick callback failed")

    async def stop(self) -> None:
        """Cancel the token and wait for the loop to exit."""
        self._token.cancel()
        task, self._task = self._task, None
        if task is not None:
            await task
