# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of NoParrot Engine.
#
# NoParrot Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""
Multi-source gate queue.

A composition that cites several sources must pass one gate per source.
Sources are processed in order; the action is allowed only once every
source has passed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from noparrot_core.errors import InvalidTransitionError


class SourceGateState(str, Enum):
    PENDING = "pending"
    READING = "reading"
    TESTING = "testing"
    PASSED = "passed"
    FAILED = "failed"


@dataclass
class GateSource:
    url: str
    title: str = ""
    state: SourceGateState = SourceGateState.PENDING
    attempt_id: str | None = None


_ALLOWED = {
    SourceGateState.PENDING: {SourceGateState.READING},
    SourceGateState.READING: {SourceGateState.TESTING, SourceGateState.PASSED},
    SourceGateState.TESTING: {SourceGateState.PASSED, SourceGateState.FAILED},
    SourceGateState.FAILED: {SourceGateState.READING},
    SourceGateState.PASSED: set(),
}


@dataclass
class GateQueue:
    sources: list[GateSource] = field(default_factory=list)

    @classmethod
    def from_urls(cls, urls: list[str]) -> "GateQueue":
        seen: set[str] = set()
        sources = []
        for url in urls:
            if url and url not in seen:
                seen.add(url)
                sources.append(GateSource(url=url))
        return cls(sources=sources)

    def _find(self, url: str) -> GateSource:
        for source in self.sources:
            if source.url == url:
                return source
        raise KeyError(url)

    def next_source(self) -> GateSource | None:
        """First source that has not passed yet."""
        for source in self.sources:
            if source.state != SourceGateState.PASSED:
                return source
        return None

    def transition(self, url: str, state: SourceGateState, *, attempt_id: str | None = None) -> GateSource:
        source = self._find(url)
        if state not in _ALLOWED[source.state]:
            raise InvalidTransitionError(f"{source.state.value} -> {state.value} not allowed for {url}")
        source.state = state
        if attempt_id is not None:
            source.attempt_id = attempt_id
        return source

    @property
    def all_passed(self) -> bool:
        return all(s.state == SourceGateState.PASSED for s in self.sources)

    @property
    def progress(self) -> tuple[int, int]:
        return sum(1 for s in self.sources if s.state == SourceGateState.PASSED), len(self.sources)
