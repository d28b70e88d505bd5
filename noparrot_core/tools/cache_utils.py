# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of NoParrot Engine.
#
# NoParrot Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

from __future__ import annotations

from pathlib import Path

import diskcache


def ensure_diskcache(path: Path) -> diskcache.Cache:
    path.mkdir(parents=True, exist_ok=True)
    return diskcache.Cache(str(path))


def append_to_list(cache: diskcache.Cache, key: str | tuple[str, ...], value: object) -> int:
    """Append to a list stored under `key` atomically; returns the new length."""
    with cache.transact():
        items = list(cache.get(key, default=[]) or [])
        items.append(value)
        cache.set(key, items)
    return len(items)
