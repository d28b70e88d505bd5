# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of NoParrot Engine.
#
# NoParrot Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
"""
NoParrot CLI

Maintenance commands for a gate engine deployment.

Commands:
- config: Print the effective runtime configuration (secrets omitted)
- trust <url>: Evaluate (or read cached) trust for a source URL
- trust-cached <url>: Cache-only trust lookup
- cleanup: Purge expired quizzes and trust scores

Usage:
    python -m noparrot_cli config
    python -m noparrot_cli trust https://example.org/article --post-text "..."
    python -m noparrot_cli cleanup
"""

from noparrot_cli.gate_cmd import main

__all__ = ["main"]
