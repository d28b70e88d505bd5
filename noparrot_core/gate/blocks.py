# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of NoParrot Engine.
#
# NoParrot Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""
Progressive block reveal.

Content is split into paragraph blocks. A block counts as read once it has
been in view (coverage above the threshold) for its required dwell, which
scales with its length. Scrolling faster than the policy allows pauses
accrual (friction). The gate unlocks once the read ratio reaches
`unlock_threshold - grace_ratio`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Mapping

from noparrot_core.gate.policy import GatePolicy
from noparrot_core.utils.text_utils import word_count

_PARAGRAPH_SPLIT_RE = re.compile(r"\n\s*\n")


@dataclass(frozen=True)
class Block:
    index: int
    text: str
    word_count: int
    required_dwell: float


def segment_blocks(text: str, policy: GatePolicy, *, min_words: int = 8) -> list[Block]:
    """Split on blank lines; paragraphs shorter than `min_words` are merged into the next one."""
    paragraphs = [p.strip() for p in _PARAGRAPH_SPLIT_RE.split(text or "") if p.strip()]
    merged: list[str] = []
    carry = ""
    for para in paragraphs:
        para = f"{carry}\n{para}" if carry else para
        if word_count(para) < min_words:
            carry = para
            continue
        merged.append(para)
        carry = ""
    if carry:
        if merged:
            merged[-1] = f"{merged[-1]}\n{carry}"
        else:
            merged.append(carry)

    blocks = []
    for i, para in enumerate(merged):
        wc = word_count(para)
        blocks.append(Block(index=i, text=para, word_count=wc, required_dwell=policy.block_required_dwell(wc)))
    return blocks


@dataclass
class BlockProgressTracker:
    blocks: list[Block]
    policy: GatePolicy
    dwell: dict[int, float] = field(default_factory=dict)
    read: set[int] = field(default_factory=set)
    friction_active: bool = False

    def observe(self, coverage: Mapping[int, float], dt_sec: float, *, scroll_velocity: float = 0.0) -> bool:
        """
        Accrue dwell for blocks in view. Returns True when friction applies
        (scrolling too fast), in which case nothing accrues.
        """
        self.friction_active = abs(scroll_velocity) > self.policy.max_scroll_velocity
        if self.friction_active or dt_sec <= 0:
            return self.friction_active

        for idx, cov in coverage.items():
            if idx < 0 or idx >= len(self.blocks) or idx > self.visible_until:
                continue
            if cov < self.policy.block_coverage_threshold:
                continue
            self.dwell[idx] = self.dwell.get(idx, 0.0) + dt_sec
            if self.dwell[idx] >= self.blocks[idx].required_dwell:
                self.read.add(idx)
        return False

    @property
    def read_ratio(self) -> float:
        if not self.blocks:
            return 1.0
        return len(self.read) / len(self.blocks)

    @property
    def is_unlocked(self) -> bool:
        return self.read_ratio >= self.policy.block_unlock_ratio

    @property
    def visible_until(self) -> int:
        """Highest block index the UI may render unblurred."""
        frontier = 0
        while frontier in self.read:
            frontier += 1
        return min(len(self.blocks) - 1, frontier + self.policy.visible_ahead_blocks)
