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
from typing import Any, TypeVar

from pydantic import BaseModel

T = TypeVar("T", bound="SchemaModel")


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class SchemaModel(BaseModel):
    """
    Canonical base for schema models (Pydantic v2).

    - Ignores extra fields so older stored records keep loading.
    - Provides `to_dict()` / `from_dict()` for storage and transport.
    """

    model_config = {"extra": "ignore"}

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)

    @classmethod
    def from_dict(cls: type[T], data: dict[str, Any]) -> T:
        if not isinstance(data, dict):
            raise TypeError(f"Schema input must be a dict, got: {type(data)!r}")
        return cls.model_validate(data)


class ExpiringRecord(SchemaModel):
    created_at: datetime.datetime
    expires_at: datetime.datetime

    def is_expired(self, now: datetime.datetime | None = None) -> bool:
        return (now or utcnow()) >= self.expires_at
