# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of NoParrot Engine.
#
# NoParrot Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

from enum import Enum


class ModelID(str, Enum):
    """Canonical model identifiers for oracle routing."""

    # Cheap / Fast tier, used for trust classification
    NANO = "gpt-5-nano"

    # Mid tier, used for quiz generation (needs to follow the output contract)
    MINI = "gpt-5-mini"
