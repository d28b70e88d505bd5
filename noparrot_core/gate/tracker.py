# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of NoParrot Engine.
#
# NoParrot Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""
Reading progress tracker.

Cooperative, single-threaded: the owner (or a Ticker) calls `sample()`
periodically. The reported scroll ratio is the maximum ever observed, so
scrolling back up never makes a ready gate flap back to not ready.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Mapping, Protocol, runtime_checkable

from noparrot_core.gate.blocks import BlockProgressTracker
from noparrot_core.gate.policy import GatePolicy, GateRequirement, ReadingProgress

logger = logging.getLogger(__name__)

# Pixels of slack at the bottom; sub-pixel layouts rarely reach scroll_height exactly.
SCROLL_EPSILON_PX = 4.0


@runtime_checkable
class ScrollSurface(Protocol):
    scroll_top: float
    client_height: float
    scroll_height: float


def scroll_ratio(surface: ScrollSurface | None) -> float:
    if surface is None:
        return 1.0
    total = float(surface.scroll_height or 0.0)
    viewport = float(surface.client_height or 0.0)
    top = float(surface.scroll_top or 0.0)
    # Content that fits in the viewport is fully visible.
    if total <= 0 or total <= viewport:
        return 1.0
    if top + viewport >= total - SCROLL_EPSILON_PX:
        return 1.0
    return min(1.0, max(0.0, (top + viewport) / total))


class ReadingProgressTracker:
    def __init__(
        self,
        surface: ScrollSurface | None,
        word_count: int,
        *,
        policy: GatePolicy | None = None,
        clock: Callable[[], float] = time.monotonic,
        blocks: BlockProgressTracker | None = None,
        block_coverage: Callable[[], Mapping[int, float]] | None = None,
    ) -> None:
        self.surface = surface
        self.word_count = max(0, int(word_count or 0))
        self.policy = policy or GatePolicy()
        self.requirement: GateRequirement = self.policy.requirement(self.word_count)
        self._clock = clock
        self._blocks = blocks
        self._block_coverage = block_coverage

        self.started_at: float | None = None
        self._dwell = 0.0
        self._active = False
        self._last_tick = 0.0
        self._max_ratio = 0.0
        self._last_top: float | None = None

    @property
    def started(self) -> bool:
        return self.started_at is not None

    @property
    def max_scroll_ratio(self) -> float:
        return self._max_ratio

    def start(self) -> None:
        if self.started:
            return
        now = self._clock()
        self.started_at = now
        self._last_tick = now
        self._active = True
        self._max_ratio = scroll_ratio(self.surface)
        logger.debug("[Tracker] Started (words=%d, min_seconds=%.1f)", self.word_count, self.requirement.min_seconds)

    def pause(self) -> None:
        """Stop accruing dwell (surface hidden, app backgrounded)."""
        if self._active:
            self._accrue(self._clock())
            self._active = False

    def resume(self) -> None:
        if self.started and not self._active:
            self._last_tick = self._clock()
            self._active = True

    def _accrue(self, now: float) -> float:
        dt = max(0.0, now - self._last_tick)
        self._last_tick = now
        if self._active:
            self._dwell += dt
            return dt
        return 0.0

    def sample(self) -> ReadingProgress:
        """Read the surface, fold it into the session state and return progress."""
        if not self.started:
            return self.progress()

        now = self._clock()
        dt = self._accrue(now)
        self._max_ratio = max(self._max_ratio, scroll_ratio(self.surface))

        velocity = 0.0
        if self.surface is not None:
            top = float(self.surface.scroll_top or 0.0)
            if self._last_top is not None and dt > 0:
                velocity = (top - self._last_top) / dt
            self._last_top = top

        if self._blocks is not None and self._block_coverage is not None:
            self._blocks.observe(self._block_coverage(), dt, scroll_velocity=velocity)
        return self.progress()

    def progress(self) -> ReadingProgress:
        """Current progress from state only; repeated calls never regress."""
        return ReadingProgress(
            seconds_elapsed=round(self._dwell, 3),
            scroll_ratio=self._max_ratio,
            block_ratio=self._blocks.read_ratio if self._blocks is not None else None,
        )
