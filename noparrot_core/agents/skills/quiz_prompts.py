# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of NoParrot Engine.
#
# NoParrot Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

from noparrot_core.schema.quiz import QuizMode
from noparrot_core.utils.security import sanitize_input

_MODE_RULES = {
    QuizMode.SOURCE_ONLY: "All questions must be about the SOURCE content.",
    QuizMode.MIXED: (
        "Exactly one question must be about the AUTHOR TEXT; "
        "the remaining questions must be about the SOURCE content."
    ),
    QuizMode.USER_ONLY: "All questions must be about the AUTHOR TEXT. Ignore the source.",
}


def build_quiz_instructions(mode: QuizMode, question_count: int) -> str:
    return f"""You write reading-comprehension checks for a social network.
A user must answer them before sharing or commenting, to show they actually read the content.

Write exactly {question_count} multiple-choice question(s).
{_MODE_RULES[mode]}

Rules:
- Each question has exactly 3 choices and exactly one correct choice.
- Questions must be answerable only by someone who read the content: ask about claims, facts,
  numbers, reasoning or conclusions stated in it.
- Never ask about the title, the author, the website, the publication date, the platform,
  or engagement counters (likes, views, followers).
- Wrong choices must be plausible but clearly contradicted by the content.
- Write in the language of the content.

If the content is only page chrome, a login/cookie wall, a bot check, or metadata with no substance,
do not invent questions; answer {{"insufficient_context": true, "reason": "metadata_only"}}.

Return JSON only:
{{"insufficient_context": false, "questions": [
  {{"prompt": "...", "choices": ["...", "...", "..."], "correct_index": 0}}
]}}"""


def build_quiz_input(*, title: str, body: str, user_text: str, mode: QuizMode) -> str:
    parts = []
    if mode != QuizMode.USER_ONLY:
        parts.append(f"<source>\nTITLE: {sanitize_input(title)}\n\n{sanitize_input(body)}\n</source>")
    if mode != QuizMode.SOURCE_ONLY and user_text:
        parts.append(f"<post>\n{sanitize_input(user_text)}\n</post>")
    return "\n\n".join(parts)
