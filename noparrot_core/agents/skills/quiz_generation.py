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
import random
from typing import Protocol, runtime_checkable

from pydantic import AliasChoices, BaseModel, Field

from noparrot_core import QUIZ_PROMPT_VERSION
from noparrot_core.agents.llm_client import LLMClient
from noparrot_core.agents.skills.base_skill import BaseSkill
from noparrot_core.agents.skills.quiz_prompts import build_quiz_input, build_quiz_instructions
from noparrot_core.config import NoparrotConfig
from noparrot_core.errors import OracleResponseError
from noparrot_core.quiz.content_quality import too_many_generic
from noparrot_core.schema.quiz import QuizChoice, QuizDraft, QuizQuestion, QuizRequest

logger = logging.getLogger(__name__)

_CHOICE_IDS = ("a", "b", "c")


@runtime_checkable
class QuizOracle(Protocol):
    async def generate(self, request: QuizRequest, *, body: str) -> QuizDraft:
        ...


class _OracleQuestion(BaseModel):
    prompt: str = Field(..., min_length=5, validation_alias=AliasChoices("prompt", "question"))
    choices: list[str] = Field(..., min_length=3, max_length=3, validation_alias=AliasChoices("choices", "options"))
    correct_index: int = Field(..., ge=0, le=2, validation_alias=AliasChoices("correct_index", "correct"))


class _OracleQuizResponse(BaseModel):
    model_config = {"extra": "ignore"}

    insufficient_context: bool = False
    reason: str | None = None
    questions: list[_OracleQuestion] = Field(default_factory=list)


class QuizGenerationSkill(BaseSkill):
    """
    Quiz oracle backed by the LLM.

    Raises on transport or contract failures; the caller owns the fallback.
    Returns a draft flagged insufficient when the model refuses the content
    or the questions could be answered without reading it.
    """

    def __init__(self, config: NoparrotConfig | None, llm_client: LLMClient, *, rng: random.Random | None = None):
        super().__init__(config, llm_client)
        self._rng = rng or random.Random()

    async def generate(self, request: QuizRequest, *, body: str) -> QuizDraft:
        count = request.question_count
        instructions = build_quiz_instructions(request.quiz_mode, count)
        prompt = build_quiz_input(
            title=request.title,
            body=body,
            user_text=request.user_text,
            mode=request.quiz_mode,
        )
        if self.runtime.debug.log_prompts:
            logger.debug("[Quiz] Prompt (%s): %s", request.quiz_mode.value, prompt[:2000])

        raw = await self.llm_client.call_json(
            model=self.runtime.llm.quiz_model,
            input=prompt,
            instructions=instructions,
            cache_key=f"quiz_{QUIZ_PROMPT_VERSION}_{request.quiz_mode.value}_{count}",
            timeout=self.runtime.llm.timeout_sec,
            max_output_tokens=self.runtime.llm.quiz_max_output_tokens,
            trace_kind="quiz_oracle",
        )
        parsed = _OracleQuizResponse.model_validate(raw)

        if parsed.insufficient_context:
            return QuizDraft(insufficient_reason=parsed.reason or "insufficient_context")

        if len(parsed.questions) != count:
            raise OracleResponseError(f"expected exactly {count} questions, got {len(parsed.questions)}")

        if too_many_generic([q.prompt for q in parsed.questions]):
            logger.info("[Quiz] Rejected generic question set for %s", request.source_url)
            return QuizDraft(insufficient_reason="generic_questions")

        return QuizDraft(questions=[self._to_question(i, q) for i, q in enumerate(parsed.questions)])

    def _to_question(self, index: int, q: _OracleQuestion) -> QuizQuestion:
        texts = [c.strip() for c in q.choices]
        if any(not t for t in texts) or len({t.lower() for t in texts}) != len(texts):
            raise OracleResponseError(f"question {index + 1} choices must be distinct and non-empty")

        correct_text = texts[q.correct_index]
        self._rng.shuffle(texts)
        choices = [QuizChoice(id=cid, text=t) for cid, t in zip(_CHOICE_IDS, texts)]
        correct_id = next(c.id for c in choices if c.text == correct_text)
        return QuizQuestion(
            id=f"q{index + 1}",
            prompt=q.prompt.strip(),
            choices=choices,
            correct_choice_id=correct_id,
        )
