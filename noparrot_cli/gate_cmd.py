# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of NoParrot Engine.
#
# NoParrot Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import uuid
from dataclasses import replace
from pathlib import Path
from typing import NoReturn

from noparrot_core.config import NoparrotConfig
from noparrot_core.utils.trace import Trace


def _load_config(args: argparse.Namespace) -> NoparrotConfig:
    config = NoparrotConfig.from_env()
    if getattr(args, "cache_dir", None):
        config = config.model_copy(update={"cache_dir": Path(args.cache_dir)})
    return config


def cmd_config(args: argparse.Namespace) -> int:
    """Print the effective runtime configuration."""
    config = _load_config(args)
    out = {
        "cache_dir": str(config.cache_dir),
        "openai_api_key_set": bool(config.openai_api_key),
        "runtime": config.effective_runtime().to_safe_log_dict(),
    }
    print(json.dumps(out, indent=2))
    return 0


def cmd_trust(args: argparse.Namespace) -> int:
    """Evaluate trust for a URL (cache first, then oracle)."""
    from noparrot_core.engine import NoparrotEngine

    config = _load_config(args)

    async def _run() -> dict:
        engine = NoparrotEngine(config)
        Trace.start(f"trust-{uuid.uuid4().hex[:12]}", runtime=config.effective_runtime())
        try:
            result = await engine.evaluate_trust_score(
                args.url,
                post_text=args.post_text,
                author_handle=args.author,
                verified=args.verified,
            )
            return result.to_dict()
        finally:
            Trace.stop()
            await engine.close()

    print(json.dumps(asyncio.run(_run()), indent=2, ensure_ascii=False))
    return 0


def _offline_config(args: argparse.Namespace) -> NoparrotConfig:
    """Config with both oracles off; cache reads and cleanup never need an API key."""
    config = _load_config(args)
    runtime = config.effective_runtime()
    runtime = replace(runtime, features=replace(runtime.features, quiz_oracle=False, trust_oracle=False))
    return config.model_copy(update={"runtime": runtime})


def cmd_trust_cached(args: argparse.Namespace) -> int:
    """Cache-only trust lookup; exit code 1 when nothing is cached."""
    from noparrot_core.engine import NoparrotEngine

    engine = NoparrotEngine(_offline_config(args))
    try:
        record = engine.get_trust_score(args.url)
    finally:
        asyncio.run(engine.close())
    print(json.dumps({"data": record}, indent=2, ensure_ascii=False))
    return 0 if record is not None else 1


def cmd_cleanup(args: argparse.Namespace) -> int:
    """Purge expired quizzes, answer keys and trust scores."""
    from noparrot_core.engine import NoparrotEngine

    engine = NoparrotEngine(_offline_config(args))
    try:
        counts = engine.cleanup_expired()
    finally:
        asyncio.run(engine.close())
    print(json.dumps({"success": True, "deleted": counts}, indent=2))
    return 0


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="noparrot",
        description="NoParrot gate engine maintenance commands",
    )
    parser.add_argument("--cache-dir", help="Override NOPARROT_CACHE_DIR")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(title="commands", dest="command", required=True)

    config_parser = subparsers.add_parser("config", help="Print effective configuration")
    config_parser.set_defaults(func=cmd_config)

    trust_parser = subparsers.add_parser("trust", help="Evaluate trust for a source URL")
    trust_parser.add_argument("url", help="Source URL")
    trust_parser.add_argument("--post-text", help="Text of the post sharing the URL")
    trust_parser.add_argument("--author", help="Author handle")
    trust_parser.add_argument("--verified", action="store_true", help="Author account is verified")
    trust_parser.set_defaults(func=cmd_trust)

    cached_parser = subparsers.add_parser("trust-cached", help="Cache-only trust lookup")
    cached_parser.add_argument("url", help="Source URL")
    cached_parser.set_defaults(func=cmd_trust_cached)

    cleanup_parser = subparsers.add_parser("cleanup", help="Purge expired cache entries")
    cleanup_parser.set_defaults(func=cmd_cleanup)

    return parser


def main(argv: list[str] | None = None) -> NoReturn:
    """Main entry point for the CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        exit_code = args.func(args)
        sys.exit(exit_code)
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        sys.exit(130)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
