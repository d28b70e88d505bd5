# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of NoParrot Engine.
#
# NoParrot Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

import hashlib
import hmac
import re


def hash_user_id(user_id: str, secret: str | None) -> str | None:
    """HMAC a user id for logs and traces; returns None when no secret is configured."""
    if not user_id or not secret:
        return None
    return hmac.new(secret.encode(), user_id.encode(), hashlib.sha256).hexdigest()[:24]


def sanitize_input(text: str) -> str:
    """
    Sanitize user-provided content before it is placed in an oracle prompt.
    - Removes control characters.
    - Neutralizes attempts to close the XML tags used to fence content.
    """
    if not text:
        return ""
    text = re.sub(r"[\x00-\x08\x0b\x0c\x0e-\x1f]", "", text)
    text = re.sub(r"</\s*(content|post|source)\s*>", r"< /\1>", text, flags=re.IGNORECASE)
    return text.strip()
