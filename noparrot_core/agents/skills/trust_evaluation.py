# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of NoParrot Engine.
#
# NoParrot Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

from __future__ import annotations

import logging
from typing import Any, Protocol, runtime_checkable

from noparrot_core import TRUST_PROMPT_VERSION
from noparrot_core.agents.skills.base_skill import BaseSkill
from noparrot_core.agents.skills.trust_prompts import TRUST_INSTRUCTIONS, build_trust_input
from noparrot_core.utils.url_utils import get_registrable_domain

logger = logging.getLogger(__name__)


@runtime_checkable
class TrustScoreOracle(Protocol):
    async def evaluate(
        self,
        url: str,
        *,
        post_text: str | None = None,
        author_handle: str | None = None,
        verified: bool = False,
    ) -> dict[str, Any]:
        ...


class TrustEvaluationSkill(BaseSkill):
    """
    Trust oracle backed by the LLM.

    Returns the raw JSON object untouched; band/score/reasons are coerced by
    the resolver, which treats this output as untrusted.
    """

    async def evaluate(
        self,
        url: str,
        *,
        post_text: str | None = None,
        author_handle: str | None = None,
        verified: bool = False,
    ) -> dict[str, Any]:
        prompt = build_trust_input(
            url=url,
            domain=get_registrable_domain(url),
            post_text=post_text,
            author_handle=author_handle,
            verified=verified,
            max_chars=self.runtime.trust.post_text_chars,
        )
        if self.runtime.debug.log_prompts:
            logger.debug("[Trust] Prompt: %s", prompt)

        return await self.llm_client.call_json(
            model=self.runtime.llm.trust_model,
            input=prompt,
            instructions=TRUST_INSTRUCTIONS,
            cache_key=f"trust_{TRUST_PROMPT_VERSION}",
            timeout=self.runtime.llm.timeout_sec,
            max_output_tokens=self.runtime.llm.trust_max_output_tokens,
            trace_kind="trust_oracle",
        )
