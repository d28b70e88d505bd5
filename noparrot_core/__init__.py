# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of NoParrot Engine.
#
# NoParrot Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""
NoParrot Core Engine
====================

Comprehension and trust gate for content sharing: reading progress,
comprehension quizzes and AI-evaluated source trust.
"""

__version__ = "0.3.0"

# Versioning for stored quizzes and trust scores.
# When changing prompts, bump these strings.
QUIZ_PROMPT_VERSION = "quiz_v3"
TRUST_PROMPT_VERSION = "trust_v2"
