# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of NoParrot Engine.
#
# NoParrot Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""
GateSession: the single entry point for UI surfaces.

    session = GateSession.open(registry, user_id=uid, content=content, backend=engine,
                               continuation=do_share, surface=scroll_view)
    if session is None:
        return  # a gate for this content is already open
    async with session:
        outcome = await session.click()
        ...

Opening starts the tracker and a poll ticker; closing (unmount) cancels
the ticker immediately and drops the result of any request still in flight.
"""

from __future__ import annotations

import inspect
import logging
import time
from typing import Callable, Mapping

from noparrot_core.errors import InvalidTransitionError
from noparrot_core.gate.blocks import BlockProgressTracker, segment_blocks
from noparrot_core.gate.orchestrator import (
    ClickOutcome,
    ClickOutcomeKind,
    Continuation,
    GatedContent,
    GateRegistry,
    GateResult,
    GateState,
    InsufficientContextPolicy,
    QuizBackend,
    QuizOrchestrator,
)
from noparrot_core.gate.policy import Deficit, GatePolicy, ReadingProgress, deficit
from noparrot_core.gate.scheduler import CancellationToken, Ticker
from noparrot_core.gate.tracker import ReadingProgressTracker, ScrollSurface
from noparrot_core.metrics import GateMetrics
from noparrot_core.schema.quiz import GateType, ValidationResult
from noparrot_core.utils.url_utils import safe_normalize_url

logger = logging.getLogger(__name__)


def content_key(content: GatedContent) -> str:
    return content.content_id or safe_normalize_url(content.source_url)


class GateSession:
    def __init__(
        self,
        *,
        user_id: str,
        content: GatedContent,
        backend: QuizBackend,
        continuation: Continuation | None = None,
        policy: GatePolicy | None = None,
        surface: ScrollSurface | None = None,
        gate_type: GateType = GateType.SHARE,
        insufficient_policy: InsufficientContextPolicy = InsufficientContextPolicy.BLOCK,
        registry: GateRegistry | None = None,
        block_coverage: Callable[[], Mapping[int, float]] | None = None,
        clock: Callable[[], float] = time.monotonic,
        metrics: GateMetrics | None = None,
        provider: str | None = None,
    ) -> None:
        self.user_id = user_id
        self.content = content
        self.policy = policy or GatePolicy()
        self._continuation = continuation
        self._registry = registry
        self._metrics = metrics
        self._token = CancellationToken()
        self._closed = False
        self._last_progress = ReadingProgress(seconds_elapsed=0.0, scroll_ratio=0.0)

        blocks = None
        if block_coverage is not None:
            text = "\n\n".join(p for p in (content.summary, content.excerpt) if p)
            blocks = BlockProgressTracker(blocks=segment_blocks(text, self.policy), policy=self.policy)
        self.blocks = blocks

        self.tracker = ReadingProgressTracker(
            surface,
            content.effective_word_count(),
            policy=self.policy,
            clock=clock,
            blocks=blocks,
            block_coverage=block_coverage,
        )
        self.orchestrator = QuizOrchestrator(
            user_id=user_id,
            content=content,
            backend=backend,
            tracker=self.tracker,
            gate_type=gate_type,
            insufficient_policy=insufficient_policy,
            on_pass=self._on_pass,
            token=self._token,
            clock=clock,
            provider=provider,
        )
        self._ticker = Ticker(self.policy.poll_interval_ms / 1000.0, self.poll, token=self._token)

    @classmethod
    def open(cls, registry: GateRegistry, *, user_id: str, content: GatedContent, **kwargs) -> "GateSession | None":
        """Create a session unless one is already active for (user, content); None means no-op."""
        key = content_key(content)
        if not registry.acquire(user_id, key):
            logger.debug("[Gate] Session already active for %s", key)
            return None
        return cls(user_id=user_id, content=content, registry=registry, **kwargs)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def state(self) -> GateState:
        return self.orchestrator.state

    @property
    def ready(self) -> bool:
        return self.state == GateState.READY_PENDING_CLICK

    @property
    def progress(self) -> ReadingProgress:
        return self._last_progress

    def deficit(self) -> Deficit | None:
        return deficit(self._last_progress, self.tracker.requirement)

    def _count(self, name: str) -> None:
        if self._metrics is not None and self._metrics.active:
            self._metrics.incr(name)

    async def start(self) -> None:
        if self._closed:
            return
        self.orchestrator.start()
        self._ticker.start()
        self._count("gate.opened")

    def poll(self) -> ReadingProgress:
        if not self._closed:
            self._last_progress = self.orchestrator.tick()
        return self._last_progress

    async def click(self) -> ClickOutcome:
        if self._closed:
            return ClickOutcome(kind=ClickOutcomeKind.DISCARDED)
        outcome = await self.orchestrator.click()
        self._last_progress = self.tracker.progress()
        self._count(f"gate.click_{outcome.kind.value}")
        if outcome.kind in (ClickOutcomeKind.ALLOWED, ClickOutcomeKind.BLOCKED):
            await self.close()
        return outcome

    def answer(self, question_id: str, choice_id: str) -> None:
        self.orchestrator.answer(question_id, choice_id)

    async def submit(self) -> ValidationResult | None:
        if self._closed:
            return None
        result = await self.orchestrator.submit()
        if result is not None and result.passed:
            await self.close()
        return result

    def retry(self) -> None:
        self.orchestrator.retry()

    def restart(self) -> None:
        """Leave a failed quiz and go back to tracking; the next click requests a fresh quiz."""
        if self._closed:
            raise InvalidTransitionError("session is closed")
        self.orchestrator.restart()
        self._last_progress = self.orchestrator.tick()
        self._count("gate.restarted")

    async def _on_pass(self, result: GateResult) -> None:
        self._count("gate.passed")
        if self._continuation is None:
            return
        out = self._continuation(result)
        if inspect.isawaitable(out):
            await out

    async def close(self) -> None:
        """Unmount: stop polling now; late network results are discarded."""
        if self._closed:
            return
        self._closed = True
        await self._ticker.stop()
        if self._registry is not None:
            self._registry.release(self.user_id, content_key(self.content))
        self._count("gate.closed")

    async def __aenter__(self) -> "GateSession":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
