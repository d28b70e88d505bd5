# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of NoParrot Engine.
#
# NoParrot Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

from __future__ import annotations

import datetime
import logging
from typing import Dict, Protocol, runtime_checkable

import diskcache

from noparrot_core.schema.serialization import utcnow
from noparrot_core.schema.trust import TrustScoreRecord

logger = logging.getLogger(__name__)


@runtime_checkable
class TrustScoreStore(Protocol):
    """
    Trust scores keyed by canonical URL.

    `get` may return expired records; callers decide what expiry means.
    `put` replaces the whole record (last writer wins).
    """

    def get(self, url: str) -> TrustScoreRecord | None:
        ...

    def put(self, record: TrustScoreRecord) -> None:
        ...

    def purge_expired(self, now: datetime.datetime | None = None) -> int:
        ...


class InMemoryTrustScoreStore(TrustScoreStore):
    def __init__(self) -> None:
        self._records: Dict[str, TrustScoreRecord] = {}

    def get(self, url: str) -> TrustScoreRecord | None:
        return self._records.get(url)

    def put(self, record: TrustScoreRecord) -> None:
        self._records[record.url] = record

    def purge_expired(self, now: datetime.datetime | None = None) -> int:
        now = now or utcnow()
        expired = [url for url, rec in self._records.items() if rec.is_expired(now)]
        for url in expired:
            del self._records[url]
        return len(expired)


class DiskTrustScoreStore(TrustScoreStore):
    """diskcache-backed store; entries also carry a native expire so the cache self-evicts."""

    _PREFIX = "trust:"

    def __init__(self, cache: diskcache.Cache) -> None:
        self._cache = cache

    def get(self, url: str) -> TrustScoreRecord | None:
        raw = self._cache.get(self._PREFIX + url)
        if raw is None:
            return None
        try:
            return TrustScoreRecord.from_dict(raw)
        except (TypeError, ValueError) as e:
            # Old or corrupt format: drop it so the next evaluation rewrites it.
            logger.warning("[TrustStore] Dropping unreadable record for %s: %s", url, e)
            self._cache.delete(self._PREFIX + url)
            return None

    def put(self, record: TrustScoreRecord) -> None:
        ttl = max(1.0, (record.expires_at - record.created_at).total_seconds())
        self._cache.set(self._PREFIX + record.url, record.to_dict(), expire=ttl)

    def purge_expired(self, now: datetime.datetime | None = None) -> int:
        now = now or utcnow()
        removed = self._cache.expire()
        for key in list(self._cache.iterkeys()):
            if not isinstance(key, str) or not key.startswith(self._PREFIX):
                continue
            rec = self.get(key[len(self._PREFIX):])
            if rec is not None and rec.is_expired(now):
                self._cache.delete(key)
                removed += 1
        return removed
