# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of NoParrot Engine.
#
# NoParrot Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""
URL helpers.

Two normalizations exist on purpose:
- `canonical_trust_url` collapses platform variants (video short links,
  social domains) so every user evaluating the same resource shares one
  trust record.
- `safe_normalize_url` is the quiz cache key: tracking noise is dropped,
  path and meaningful query parameters are kept.
"""

import re
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

_URL_RE = re.compile(r"https?://[^\s]+")

_TRACKING_PARAMS = frozenset(
    {"fbclid", "gclid", "dclid", "msclkid", "igshid", "twclid", "ttclid"}
)

_YOUTUBE_HOSTS = frozenset({"youtube.com", "m.youtube.com", "music.youtube.com"})
_YOUTUBE_ID_RE = re.compile(r"^[A-Za-z0-9_-]{6,20}$")


def extract_first_url(text: str) -> str | None:
    if not text:
        return None
    m = _URL_RE.search(text)
    return m.group(0) if m else None


def _strip_www(host: str) -> str:
    host = (host or "").lower().strip()
    return host[4:] if host.startswith("www.") else host


def safe_normalize_url(url: str) -> str:
    """
    Normalize a URL for use as a cache key.

    https is forced, `www.` and the fragment are dropped, the host is
    lowercased (path case is preserved), trailing slashes are removed,
    `utm_*` and click-id parameters are removed and the rest are sorted.
    Unparseable input is returned stripped.
    """
    raw = (url or "").strip()
    if not raw:
        return ""
    if "://" not in raw:
        raw = "https://" + raw
    try:
        parts = urlsplit(raw)
    except ValueError:
        return (url or "").strip()

    host = _strip_www(parts.hostname or "")
    if not host:
        return (url or "").strip()
    try:
        port = parts.port
    except ValueError:
        # Non-numeric or out-of-range port.
        return (url or "").strip()
    if port and port not in (80, 443):
        host = f"{host}:{port}"

    path = parts.path.rstrip("/")
    params = [
        (k, v)
        for k, v in parse_qsl(parts.query, keep_blank_values=True)
        if not k.lower().startswith("utm_") and k.lower() not in _TRACKING_PARAMS
    ]
    params.sort()
    return urlunsplit(("https", host, path, urlencode(params), ""))


def _youtube_video_id(host: str, path: str, query: str) -> str | None:
    if host == "youtu.be":
        vid = path.strip("/").split("/")[0]
        return vid if _YOUTUBE_ID_RE.match(vid or "") else None
    if host not in _YOUTUBE_HOSTS:
        return None
    if path.rstrip("/") == "/watch":
        vid = dict(parse_qsl(query)).get("v", "")
        return vid if _YOUTUBE_ID_RE.match(vid) else None
    m = re.match(r"^/(?:shorts|embed|live)/([A-Za-z0-9_-]{6,20})", path)
    return m.group(1) if m else None


def canonical_trust_url(url: str) -> str:
    """
    Trust cache key for a source URL.

    >>> canonical_trust_url("https://youtu.be/dQw4w9WgXcQ?t=42")
    'https://www.youtube.com/watch?v=dQw4w9WgXcQ'
    >>> canonical_trust_url("https://twitter.com/user/status/1")
    'https://x.com/user/status/1'

    Returns "" for blank input. Raises ValueError when the URL cannot be
    parsed, has no host or carries an invalid port.
    """
    raw = (url or "").strip()
    if not raw:
        return ""
    parts = urlsplit(raw if "://" in raw else "https://" + raw)
    host = _strip_www(parts.hostname or "")
    if not host:
        raise ValueError(f"URL has no host: {raw!r}")
    # Raises ValueError for non-numeric or out-of-range ports.
    parts.port  # noqa: B018

    vid = _youtube_video_id(host, parts.path, parts.query)
    if vid:
        return f"https://www.youtube.com/watch?v={vid}"

    if host in ("twitter.com", "mobile.twitter.com", "mobile.x.com"):
        return safe_normalize_url(urlunsplit(("https", "x.com", parts.path, parts.query, "")))

    return safe_normalize_url(raw)


def get_registrable_domain(url: str) -> str | None:
    """
    Best-effort registrable domain extraction without external deps.
    """
    if not url or not isinstance(url, str):
        return None
    try:
        host = _strip_www(urlsplit(url if "://" in url else "https://" + url).hostname or "")
    except ValueError:
        return None
    parts = [p for p in host.split(".") if p]
    if len(parts) < 2:
        return None
    # Heuristic for 2-level public suffixes (co.uk, com.br, ...)
    if len(parts) >= 3 and len(parts[-1]) == 2 and len(parts[-2]) <= 3:
        return ".".join(parts[-3:])
    return ".".join(parts[-2:])
