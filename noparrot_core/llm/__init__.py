# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of NoParrot Engine.
#
# NoParrot Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

from noparrot_core.llm.failures import LLMFailureKind, classify_llm_failure
from noparrot_core.llm.model_registry import ModelID

__all__ = ["LLMFailureKind", "classify_llm_failure", "ModelID"]
