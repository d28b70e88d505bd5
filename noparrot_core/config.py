# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of NoParrot Engine.
#
# NoParrot Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from noparrot_core.errors import ConfigurationError
from noparrot_core.runtime_config import EngineRuntimeConfig


class NoparrotConfig(BaseModel):
    """
    Configuration for the NoParrot gate engine.
    Decouples the engine from environment variables.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    # Oracle configuration
    openai_api_key: Optional[str] = Field(None, description="OpenAI API key for quiz and trust oracles")

    # Storage
    cache_dir: Path = Field(Path("data/cache"), description="diskcache directory for quizzes, attempts and trust scores")

    # Telemetry
    telemetry_hmac_secret: Optional[str] = Field(
        None, description="Secret used to hash user ids in logs and traces; user ids are omitted when unset"
    )

    runtime: Optional[EngineRuntimeConfig] = Field(None, description="Tunables; loaded from env when omitted")

    @classmethod
    def from_env(cls) -> "NoparrotConfig":
        return cls(
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            cache_dir=Path(os.getenv("NOPARROT_CACHE_DIR") or "data/cache"),
            telemetry_hmac_secret=os.getenv("NOPARROT_TELEMETRY_SECRET") or None,
            runtime=EngineRuntimeConfig.load_from_env(),
        )

    def effective_runtime(self) -> EngineRuntimeConfig:
        return self.runtime or EngineRuntimeConfig.load_from_env()

    def require_oracle_credentials(self) -> None:
        """Fail at start-up, never at request time, when an enabled oracle has no key."""
        runtime = self.effective_runtime()
        oracles_enabled = runtime.features.quiz_oracle or runtime.features.trust_oracle
        if oracles_enabled and not (self.openai_api_key or "").strip():
            raise ConfigurationError(
                "openai_api_key is required while quiz or trust oracles are enabled "
                "(set OPENAI_API_KEY or disable NOPARROT_QUIZ_ORACLE / NOPARROT_TRUST_ORACLE)"
            )
