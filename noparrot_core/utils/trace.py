# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of NoParrot Engine.
#
# NoParrot Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

from __future__ import annotations

import contextvars
import hashlib
import json
import logging
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from noparrot_core.runtime_config import EngineRuntimeConfig
from noparrot_core.utils.runtime import is_local_run

logger = logging.getLogger(__name__)

_trace_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar("noparrot_trace_id", default=None)
_trace_enabled_var: contextvars.ContextVar[bool] = contextvars.ContextVar("noparrot_trace_enabled", default=False)

_SECRET_KEYS = ("authorization", "api_key", "key", "openai_api_key", "secret", "token", "correct_choice_id")


def _now_ms() -> int:
    return int(time.time() * 1000)


def _redact_text(s: str) -> str:
    if not s:
        return s
    s = re.sub(r"([?&](?:key|api_key|access_token)=)[^&]+", r"\1***", s, flags=re.IGNORECASE)
    s = re.sub(r"(Bearer\s+)[A-Za-z0-9._-]+", r"\1***", s)
    s = re.sub(r"sk-[A-Za-z0-9_-]{8,}", "sk-***", s)
    return s


def _sanitize(obj: Any, *, max_str: int = 4000, max_list: int = 100) -> Any:
    if obj is None or isinstance(obj, (int, float, bool)):
        return obj
    if isinstance(obj, str):
        s = _redact_text(obj)
        if len(s) <= max_str:
            return s
        return {
            "len": len(s),
            "sha256": hashlib.sha256(s.encode("utf-8")).hexdigest(),
            "head": s[:300],
            "tail": s[-300:],
        }
    if isinstance(obj, (list, tuple)):
        out = [_sanitize(x, max_str=max_str, max_list=max_list) for x in obj[:max_list]]
        if len(obj) > max_list:
            out.append(f"...(+{len(obj) - max_list} more)")
        return out
    if isinstance(obj, dict):
        return {
            str(k): "***" if str(k).lower() in _SECRET_KEYS else _sanitize(v, max_str=max_str, max_list=max_list)
            for k, v in obj.items()
        }
    return _sanitize(str(obj), max_str=max_str, max_list=max_list)


def _trace_dir() -> Path:
    p = Path("data/trace")
    p.mkdir(parents=True, exist_ok=True)
    return p


def trace_enabled() -> bool:
    return bool(_trace_enabled_var.get())


def current_trace_id() -> str | None:
    return _trace_id_var.get()


@dataclass(frozen=True)
class TraceContext:
    trace_id: str
    enabled: bool


class Trace:
    """
    Local-only trace sink (JSONL) for debugging gate runs.
    Never enabled in production.
    """

    @staticmethod
    def start(trace_id: str, *, runtime: EngineRuntimeConfig | None = None) -> TraceContext:
        runtime = runtime or EngineRuntimeConfig.load_from_env()
        enabled = bool(is_local_run() and runtime.features.trace_enabled)
        _trace_id_var.set(trace_id)
        _trace_enabled_var.set(enabled)
        if enabled:
            Trace.event("trace.start", {"trace_id": trace_id, "started_at": time.strftime("%Y-%m-%d %H:%M:%S")})
        return TraceContext(trace_id=trace_id, enabled=enabled)

    @staticmethod
    def stop() -> None:
        tid = current_trace_id()
        if trace_enabled() and tid:
            Trace.event("trace.stop", {"trace_id": tid})
        _trace_enabled_var.set(False)
        _trace_id_var.set(None)

    @staticmethod
    def event(name: str, data: Any | None = None) -> None:
        if not trace_enabled():
            return
        tid = current_trace_id()
        if not tid:
            return

        rec = {
            "ts_ms": _now_ms(),
            "trace_id": tid,
            "event": str(name),
            "data": _sanitize(data),
        }
        safe_tid = "".join(c if c.isalnum() or c in "._-" else "_" for c in tid)
        try:
            path = _trace_dir() / f"{safe_tid}.jsonl"
            with path.open("a", encoding="utf-8") as f:
                f.write(json.dumps(rec, ensure_ascii=False) + "\n")
        except OSError as e:
            # Tracing must never break the gate flow.
            logger.debug("[Trace] Write failed for %s: %s", safe_tid, e)
