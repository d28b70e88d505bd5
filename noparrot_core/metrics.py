# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of NoParrot Engine.
#
# NoParrot Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""Per-engine gate counters (cache hits, oracle calls, gate outcomes)."""

from __future__ import annotations

from dataclasses import dataclass, field

from noparrot_core.errors import InvalidTransitionError


@dataclass(slots=True)
class GateMetrics:
    """
    Counter store owned by one engine instance.

    Must be started before use and closed on teardown; counters from one
    instance are never visible to another.
    """

    counters: dict[str, int] = field(default_factory=dict)
    timings_ms: dict[str, list[int]] = field(default_factory=dict)
    _active: bool = False

    def start(self) -> None:
        self.counters.clear()
        self.timings_ms.clear()
        self._active = True

    def close(self) -> dict[str, int]:
        """Stop recording and return the final counters."""
        snapshot = dict(self.counters)
        self._active = False
        return snapshot

    @property
    def active(self) -> bool:
        return self._active

    def incr(self, name: str, value: int = 1) -> None:
        if not self._active:
            raise InvalidTransitionError(f"metrics not started (counter {name!r})")
        self.counters[name] = self.counters.get(name, 0) + value

    def observe_ms(self, name: str, value_ms: int) -> None:
        if not self._active:
            raise InvalidTransitionError(f"metrics not started (timing {name!r})")
        self.timings_ms.setdefault(name, []).append(int(value_ms))

    def get(self, name: str) -> int:
        return self.counters.get(name, 0)

    def get_summary(self) -> dict[str, object]:
        timings = {
            k: {"count": len(v), "avg_ms": int(sum(v) / len(v)), "max_ms": max(v)}
            for k, v in self.timings_ms.items()
            if v
        }
        return {"counters": dict(self.counters), "timings": timings}
