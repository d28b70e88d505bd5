# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of NoParrot Engine.
#
# NoParrot Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""
Transactional local state: snapshot, apply a speculative update, then
commit (optionally reconciling with the authoritative value) or roll back.
"""

from __future__ import annotations

import copy
from typing import Callable, Generic, TypeVar

from noparrot_core.errors import InvalidTransitionError

T = TypeVar("T")


class OptimisticState(Generic[T]):
    def __init__(self, value: T) -> None:
        self._value = value
        self._snapshot: T | None = None
        self._pending = False

    @property
    def value(self) -> T:
        return self._value

    @property
    def pending(self) -> bool:
        return self._pending

    def set(self, value: T) -> None:
        if self._pending:
            raise InvalidTransitionError("cannot overwrite state while an update is pending")
        self._value = value

    def apply(self, update: Callable[[T], T]) -> T:
        if self._pending:
            raise InvalidTransitionError("an optimistic update is already pending")
        self._snapshot = copy.deepcopy(self._value)
        self._value = update(copy.deepcopy(self._value))
        self._pending = True
        return self._value

    def commit(self, reconcile: Callable[[T], T] | None = None) -> T:
        if not self._pending:
            raise InvalidTransitionError("no pending update to commit")
        if reconcile is not None:
            self._value = reconcile(self._value)
        self._snapshot = None
        self._pending = False
        return self._value

    def rollback(self) -> T:
        if not self._pending:
            raise InvalidTransitionError("no pending update to roll back")
        self._value = self._snapshot  # type: ignore[assignment]
        self._snapshot = None
        self._pending = False
        return self._value
