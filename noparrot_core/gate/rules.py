# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of NoParrot Engine.
#
# NoParrot Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""
When a gate applies and what the quiz is about.

Word thresholds: up to 30 words of commentary is "short", up to 120
"medium", anything longer "long".
"""

from __future__ import annotations

from dataclasses import dataclass

from noparrot_core.schema.quiz import QuizMode
from noparrot_core.utils.text_utils import word_count
from noparrot_core.utils.url_utils import extract_first_url

SHORT_TEXT_WORDS = 30
MEDIUM_TEXT_WORDS = 120


@dataclass(frozen=True)
class GatePlan:
    gate_required: bool
    quiz_mode: QuizMode | None = None
    question_count: int = 0


def should_require_gate(text: str) -> bool:
    """Posts and messages that carry a link are gated."""
    return extract_first_url(text) is not None


def quiz_mode_for_reshare(original_author_words: int) -> QuizMode:
    """
    Quiz mode for resharing a post that links a source.

    The more the original author wrote, the more the quiz is about their text.
    First-time shares always use SOURCE_ONLY: quizzing users on text they just
    wrote proves nothing.
    """
    if original_author_words <= SHORT_TEXT_WORDS:
        return QuizMode.SOURCE_ONLY
    if original_author_words <= MEDIUM_TEXT_WORDS:
        return QuizMode.MIXED
    return QuizMode.USER_ONLY


def plan_for_text_without_source(user_words: int) -> GatePlan:
    if user_words <= SHORT_TEXT_WORDS:
        return GatePlan(gate_required=False)
    if user_words <= MEDIUM_TEXT_WORDS:
        return GatePlan(gate_required=True, quiz_mode=QuizMode.USER_ONLY, question_count=1)
    return GatePlan(gate_required=True, quiz_mode=QuizMode.USER_ONLY, question_count=3)


def plan_for_media(user_words: int, *, has_extracted_text: bool) -> GatePlan:
    """
    Video/image posts. Without OCR or a transcript only the commentary can
    be quizzed; with one, the media text behaves like a linked source.
    """
    if not has_extracted_text:
        return plan_for_text_without_source(user_words)
    return GatePlan(gate_required=True, quiz_mode=quiz_mode_for_reshare(user_words), question_count=3)


def plan_for_post(text: str, *, is_reshare: bool = False, original_author_text: str = "") -> GatePlan:
    """Gate plan for a text post, optionally a reshare of someone else's post."""
    if should_require_gate(text) or (is_reshare and should_require_gate(original_author_text)):
        mode = quiz_mode_for_reshare(word_count(original_author_text)) if is_reshare else QuizMode.SOURCE_ONLY
        return GatePlan(gate_required=True, quiz_mode=mode, question_count=3)
    source_text = original_author_text if is_reshare else text
    return plan_for_text_without_source(word_count(source_text))
