# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of NoParrot Engine.
#
# NoParrot Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

from noparrot_core.utils.security import sanitize_input

TRUST_INSTRUCTIONS = """You assess how trustworthy a shared source is, as an advisory signal shown next to posts.

Judge the SOURCE (publisher, platform, account), not whether you agree with the post.
Consider: editorial standards and corrections policy, track record, transparency of ownership,
whether the page is primary reporting, opinion, satire, user-generated or anonymous.
A verified account raises the floor slightly but is not proof of reliability.

Bands:
- ALTO: established outlet or institution with editorial accountability (score 70-100)
- MEDIO: mixed, unknown or user-generated source (score 40-69)
- BASSO: known misinformation, clickbait farm, impersonation or anonymous rumor (score 0-39)

Return JSON only:
{"band": "ALTO" | "MEDIO" | "BASSO", "score": <0-100>, "reasons": ["<short reason>", ...]}
Give at most 3 reasons, each under 120 characters, in the language of the post (English if none)."""


def build_trust_input(
    *,
    url: str,
    domain: str | None,
    post_text: str | None,
    author_handle: str | None,
    verified: bool,
    max_chars: int,
) -> str:
    lines = [f"<source>\nURL: {url}"]
    if domain:
        lines.append(f"DOMAIN: {domain}")
    lines.append("</source>")
    if author_handle:
        lines.append(f"AUTHOR: @{author_handle.lstrip('@')} ({'verified' if verified else 'not verified'})")
    text = sanitize_input(post_text or "")[:max_chars]
    if text:
        lines.append(f"<post>\n{text}\n</post>")
    return "\n".join(lines)
