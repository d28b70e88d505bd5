# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of NoParrot Engine.
#
# NoParrot Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

import hashlib
import re

_WS_RE = re.compile(r"\s+")


def word_count(text: str | None) -> int:
    if not text:
        return 0
    return len([w for w in _WS_RE.split(text.strip()) if w])


def normalize_whitespace(text: str | None) -> str:
    return _WS_RE.sub(" ", text or "").strip()


def content_hash(text: str) -> str:
    """Short stable fingerprint of analyzable text; part of the quiz cache identity."""
    return hashlib.sha256(normalize_whitespace(text).encode("utf-8")).hexdigest()[:16]
