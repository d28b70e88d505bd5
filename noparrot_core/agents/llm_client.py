# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of NoParrot Engine.
#
# NoParrot Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""
LLM client for the gate oracles, using the OpenAI Responses API.

Both oracles (quiz generation, trust evaluation) go through this client:
- JSON output with tolerant parsing (code fences, prose around the object)
- Retry with linear backoff, bounded concurrency
- Trace events for prompt/response/error
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import re
import time
from typing import Any, Literal

from openai import AsyncOpenAI

from noparrot_core.utils.trace import Trace

logger = logging.getLogger(__name__)

ReasoningEffort = Literal["minimal", "low", "medium", "high"]

_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


def parse_json_object(content: str) -> dict[str, Any]:
    """
    Parse the first JSON object out of model output.

    Models sometimes wrap JSON in markdown fences or add a sentence around it.
    Raises ValueError when no object can be recovered.
    """
    text = (content or "").strip()
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as e:
        m = _JSON_OBJECT_RE.search(text)
        if not m:
            raise ValueError(f"Failed to parse JSON response: {e}") from e
        try:
            parsed = json.loads(m.group(0))
        except json.JSONDecodeError as e2:
            raise ValueError(f"Failed to parse JSON response: {e2}") from e2
    if not isinstance(parsed, dict):
        raise ValueError(f"Expected JSON object, got {type(parsed).__name__}")
    return parsed


class LLMClient:
    """
    Thin async wrapper around `AsyncOpenAI.responses.create`.

    Example:
        client = LLMClient(openai_api_key="sk-...")
        data = await client.call_json(
            model="gpt-5-nano",
            input="<source>https://example.org</source>",
            instructions="Rate the source.",
            trace_kind="trust_oracle",
        )
    """

    def __init__(
        self,
        *,
        openai_api_key: str | None = None,
        default_timeout: float = 30.0,
        max_retries: int = 2,
        concurrency: int = 6,
    ):
        self.client = AsyncOpenAI(api_key=openai_api_key)
        self.default_timeout = default_timeout
        self.max_retries = max(1, int(max_retries))
        self._sem = asyncio.Semaphore(max(1, int(concurrency)))

    async def call(
        self,
        *,
        model: str,
        input: str,  # noqa: A002 - 'input' is the official API param name
        instructions: str | None = None,
        json_output: bool = False,
        reasoning_effort: ReasoningEffort = "low",
        cache_key: str | None = None,
        timeout: float | None = None,
        max_output_tokens: int | None = None,
        trace_kind: str = "llm_call",
    ) -> dict:
        """
        Execute one LLM call with retries.

        Returns:
            Dict with keys "content", "parsed" (dict when json_output else None),
            "model" and "usage".

        Raises:
            ValueError: If no usable response was obtained after all retries.
        """
        params: dict[str, Any] = {
            "model": model,
            "input": input,
            "timeout": timeout or self.default_timeout,
        }
        if instructions:
            params["instructions"] = instructions
        if max_output_tokens:
            params["max_output_tokens"] = max_output_tokens
        if json_output:
            params["text"] = {"format": {"type": "json_object"}}
        if "gpt-5" in model or model.startswith("o"):
            params["reasoning"] = {"effort": reasoning_effort}
        if cache_key:
            params["prompt_cache_key"] = cache_key

        payload_hash = hashlib.md5(((instructions or "") + "||" + input).encode()).hexdigest()
        Trace.event(f"{trace_kind}.prompt", {
            "model": model,
            "input_chars": len(input),
            "instructions_chars": len(instructions or ""),
            "payload_hash": payload_hash,
            "json_output": json_output,
        })

        last_error: Exception | None = None
        for attempt in range(self.max_retries):
            start_time = time.monotonic()
            try:
                async with self._sem:
                    if attempt > 0:
                        await asyncio.sleep(0.5 * attempt)
                        logger.debug("[LLMClient] Retry %d/%d for %s", attempt + 1, self.max_retries, model)
                    response = await self.client.responses.create(**params)

                latency_ms = int((time.monotonic() - start_time) * 1000)
                content = response.output_text
                if not content or not content.strip():
                    if response.error:
                        raise ValueError(f"LLM error: {response.error}")
                    if response.status == "incomplete":
                        raise ValueError(f"Incomplete response: {response.incomplete_details}")
                    raise ValueError("Empty response from LLM")

                parsed = parse_json_object(content) if json_output else None

                usage: dict[str, Any] = {"latency_ms": latency_ms}
                if response.usage:
                    usage.update({
                        "input_tokens": response.usage.input_tokens,
                        "output_tokens": response.usage.output_tokens,
                        "total_tokens": response.usage.total_tokens,
                    })

                Trace.event(f"{trace_kind}.response", {
                    "model": response.model,
                    "content_chars": len(content),
                    "attempt": attempt + 1,
                    "latency_ms": latency_ms,
                    "payload_hash": payload_hash,
                })
                return {
                    "content": content,
                    "parsed": parsed,
                    "model": response.model,
                    "usage": usage,
                }
            except asyncio.CancelledError:
                raise
            except Exception as e:
                last_error = e
                logger.warning("[LLMClient] Attempt %d failed: %s", attempt + 1, e)
                Trace.event(f"{trace_kind}.error", {
                    "model": model,
                    "attempt": attempt + 1,
                    "error": str(e)[:200],
                    "payload_hash": payload_hash,
                })

        raise ValueError(f"LLM call failed after {self.max_retries} attempts: {last_error}")

    async def call_json(
        self,
        *,
        model: str,
        input: str,  # noqa: A002
        instructions: str | None = None,
        reasoning_effort: ReasoningEffort = "low",
        cache_key: str | None = None,
        timeout: float | None = None,
        max_output_tokens: int | None = None,
        trace_kind: str = "llm_call",
    ) -> dict:
        """Returns the parsed JSON object directly."""
        result = await self.call(
            model=model,
            input=input,
            instructions=instructions,
            json_output=True,
            reasoning_effort=reasoning_effort,
            cache_key=cache_key,
            timeout=timeout,
            max_output_tokens=max_output_tokens,
            trace_kind=trace_kind,
        )
        return result["parsed"]

    async def close(self) -> None:
        if self.client:
            await self.client.close()
