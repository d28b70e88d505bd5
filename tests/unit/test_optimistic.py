# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of NoParrot Engine.
#
# NoParrot Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

import pytest

from noparrot_core.errors import InvalidTransitionError
from noparrot_core.gate.optimistic import OptimisticState


def test_rollback_restores_snapshot():
    state = OptimisticState({"q1": "a"})
    state.apply(lambda v: {**v, "q1": "b"})
    assert state.pending and state.value == {"q1": "b"}

    assert state.rollback() == {"q1": "a"}
    assert not state.pending


def test_commit_reconciles_with_server_value():
    state = OptimisticState([1, 2])
    state.apply(lambda v: v + [3])
    assert state.commit(lambda v: [x * 10 for x in v]) == [10, 20, 30]
    assert not state.pending


def test_update_does_not_mutate_snapshot():
    state = OptimisticState({"items": [1]})

    def mutate(v):
        v["items"].append(2)
        return v

    state.apply(mutate)
    assert state.rollback() == {"items": [1]}


def test_misuse_raises():
    state = OptimisticState(0)
    with pytest.raises(InvalidTransitionError):
        state.commit()
    with pytest.raises(InvalidTransitionError):
        state.rollback()
    state.apply(lambda v: v + 1)
    with pytest.raises(InvalidTransitionError):
        state.apply(lambda v: v + 1)
    with pytest.raises(InvalidTransitionError):
        state.set(5)
