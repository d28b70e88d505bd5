# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of NoParrot Engine.
#
# NoParrot Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""
Content quality checks run around quiz generation.

Before the oracle: refuse text that is too short, a bot-challenge page, or
mostly platform metadata (counters, login prompts). After the oracle:
refuse question sets dominated by generic questions that can be answered
without reading.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from noparrot_core.utils.text_utils import normalize_whitespace

_BOT_CHALLENGE_MARKERS = (
    "verify you are human",
    "checking your browser",
    "enable javascript",
    "enable cookies",
    "captcha",
    "just a moment",
    "ddos protection",
    "cloudflare",
    "access denied",
    "are you a robot",
)

_METADATA_LINE_RE = re.compile(
    r"\b(followers?|following|likes?|views?|subscribers?|retweets?|reposts?|comments?|shares?"
    r"|sign in|log in|sign up|cookies?|privacy policy|terms of (?:service|use)|all rights reserved"
    r"|posted|published|updated|min read|watch later)\b",
    re.IGNORECASE,
)
_COUNTER_LINE_RE = re.compile(r"^[\d.,\s]+[kmb]?$", re.IGNORECASE)

_GENERIC_QUESTION_PATTERNS = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"\bwhat is the (?:main )?(?:title|topic|subject|headline)\b",
        r"\bwho (?:is the author|wrote|posted|published)\b",
        r"\b(?:which|what) (?:platform|website|site|app|channel)\b",
        r"\bwhen was (?:this|it|the \w+) (?:posted|published|uploaded)\b",
        r"\bhow many (?:likes|views|comments|followers|shares)\b",
        r"\bwhat (?:type|kind) of (?:content|post|article|video)\b",
    )
)


@dataclass(frozen=True)
class ContentQuality:
    ok: bool
    reason: str | None = None


def build_analyzable_text(*parts: str) -> str:
    """Join the non-empty text fields a quiz can be generated from."""
    return "\n\n".join(p.strip() for p in parts if p and p.strip())


def metadata_ratio(text: str) -> float:
    lines = [ln.strip() for ln in (text or "").splitlines() if ln.strip()]
    if not lines:
        return 0.0
    noisy = sum(1 for ln in lines if _COUNTER_LINE_RE.match(ln) or (_METADATA_LINE_RE.search(ln) and len(ln) < 80))
    return noisy / len(lines)


def count_bot_markers(text: str) -> int:
    low = (text or "").lower()
    return sum(1 for marker in _BOT_CHALLENGE_MARKERS if marker in low)


def assess_content(text: str, *, min_chars: int, metadata_ratio_limit: float) -> ContentQuality:
    flat = normalize_whitespace(text)
    if len(flat) < min_chars:
        return ContentQuality(ok=False, reason="too_short")
    if count_bot_markers(flat) >= 2:
        return ContentQuality(ok=False, reason="bot_challenge")
    if metadata_ratio(text) > metadata_ratio_limit:
        return ContentQuality(ok=False, reason="metadata_only")
    return ContentQuality(ok=True)


def is_generic_question(prompt: str) -> bool:
    return any(p.search(prompt or "") for p in _GENERIC_QUESTION_PATTERNS)


def too_many_generic(prompts: list[str]) -> bool:
    """More than a third of the questions are generic."""
    if not prompts:
        return False
    generic = sum(1 for p in prompts if is_generic_question(p))
    return generic * 3 > len(prompts)
