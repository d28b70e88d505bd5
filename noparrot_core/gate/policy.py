# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of NoParrot Engine.
#
# NoParrot Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""
Gate readiness policy.

Pure functions over immutable inputs; safe to call on every tick.
Dwell requirement: clamp(base + words / 100 * per_100_words, base, cap).
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Any


@dataclass(frozen=True)
class GatePolicy:
    base_seconds: float = 3.0
    seconds_per_100_words: float = 0.6
    cap_seconds: float = 45.0
    min_scroll_ratio: float = 0.8
    poll_interval_ms: int = 300

    # Progressive block reveal
    unlock_threshold: float = 0.8
    # Fraction of blocks that may be skipped without penalty.
    grace_ratio: float = 0.1
    # px/s; faster scrolling pauses block dwell accrual.
    max_scroll_velocity: float = 2500.0
    block_base_dwell_sec: float = 1.5
    block_dwell_per_100_words: float = 4.0
    block_max_dwell_sec: float = 12.0
    # Fraction of a block that must be in the viewport for dwell to count.
    block_coverage_threshold: float = 0.5
    visible_ahead_blocks: int = 1

    def with_overrides(self, **overrides: Any) -> "GatePolicy":
        return replace(self, **overrides)

    def min_seconds(self, word_count: int) -> float:
        words = max(0, int(word_count or 0))
        raw = self.base_seconds + words / 100.0 * self.seconds_per_100_words
        cap = max(self.cap_seconds, self.base_seconds)
        return round(min(max(raw, self.base_seconds), cap), 3)

    def block_required_dwell(self, word_count: int) -> float:
        raw = max(self.block_base_dwell_sec, max(0, word_count) / 100.0 * self.block_dwell_per_100_words)
        return min(raw, self.block_max_dwell_sec)

    @property
    def block_unlock_ratio(self) -> float:
        return round(max(0.0, self.unlock_threshold - self.grace_ratio), 6)

    def requirement(self, word_count: int) -> "GateRequirement":
        return GateRequirement(
            min_seconds=self.min_seconds(word_count),
            min_scroll_ratio=self.min_scroll_ratio,
            min_block_ratio=self.block_unlock_ratio,
        )


@dataclass(frozen=True)
class GateRequirement:
    min_seconds: float
    min_scroll_ratio: float
    # Only enforced when the progress carries a block ratio.
    min_block_ratio: float = 0.0


@dataclass(frozen=True)
class ReadingProgress:
    seconds_elapsed: float
    scroll_ratio: float
    # Fraction of blocks read; None when progressive reveal is not used.
    block_ratio: float | None = None


@dataclass(frozen=True)
class Deficit:
    seconds_remaining: int
    scroll_percent_remaining: int
    blocks_percent_remaining: int = 0

    def message(self) -> str:
        parts = []
        if self.seconds_remaining > 0:
            parts.append(f"{self.seconds_remaining}s of reading")
        if self.scroll_percent_remaining > 0:
            parts.append(f"{self.scroll_percent_remaining}% of the content to scroll")
        if self.blocks_percent_remaining > 0:
            parts.append(f"{self.blocks_percent_remaining}% of the sections to read")
        if not parts:
            return "Ready"
        return "Keep reading: " + " and ".join(parts) + " remaining."


def is_ready(progress: ReadingProgress, requirement: GateRequirement) -> bool:
    if progress.seconds_elapsed < requirement.min_seconds:
        return False
    if progress.scroll_ratio < requirement.min_scroll_ratio:
        return False
    if progress.block_ratio is not None and progress.block_ratio < requirement.min_block_ratio:
        return False
    return True


def deficit(progress: ReadingProgress, requirement: GateRequirement) -> Deficit | None:
    """What is still missing, rounded up for display. None when ready."""
    if is_ready(progress, requirement):
        return None
    seconds = max(0.0, requirement.min_seconds - progress.seconds_elapsed)
    scroll = max(0.0, requirement.min_scroll_ratio - progress.scroll_ratio)
    blocks = 0.0
    if progress.block_ratio is not None:
        blocks = max(0.0, requirement.min_block_ratio - progress.block_ratio)
    return Deficit(
        seconds_remaining=int(math.ceil(seconds)),
        scroll_percent_remaining=int(math.ceil(round(scroll * 100, 6))),
        blocks_percent_remaining=int(math.ceil(round(blocks * 100, 6))),
    )
