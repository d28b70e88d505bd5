# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of NoParrot Engine.
#
# NoParrot Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

from __future__ import annotations

from enum import Enum

from pydantic import Field

from noparrot_core.schema.serialization import ExpiringRecord, SchemaModel


class TrustBand(str, Enum):
    ALTO = "ALTO"
    MEDIO = "MEDIO"
    BASSO = "BASSO"


class TrustEvaluation(SchemaModel):
    band: TrustBand
    score: int = Field(..., ge=0, le=100)
    reasons: list[str] = Field(default_factory=list, max_length=3)
    cached: bool = False
    # True when the oracle could not be used and the neutral result was returned.
    fallback: bool = False


class TrustScoreRecord(ExpiringRecord):
    """Stored evaluation for one canonical source URL. Replaced wholesale on refresh."""

    url: str
    band: TrustBand
    score: int = Field(..., ge=0, le=100)
    reasons: list[str] = Field(default_factory=list, max_length=3)
    model: str | None = None

    def to_evaluation(self) -> TrustEvaluation:
        return TrustEvaluation(band=self.band, score=self.score, reasons=list(self.reasons), cached=True)
