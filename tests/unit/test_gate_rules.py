# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of NoParrot Engine.
#
# NoParrot Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

import pytest

from noparrot_core.errors import InvalidTransitionError
from noparrot_core.gate.queue import GateQueue, SourceGateState
from noparrot_core.gate.rules import (
    GatePlan,
    plan_for_media,
    plan_for_post,
    plan_for_text_without_source,
    quiz_mode_for_reshare,
    should_require_gate,
)
from noparrot_core.schema.quiz import QuizMode


def _words(n: int) -> str:
    return " ".join(["word"] * n)


def test_links_require_gate():
    assert should_require_gate("look at https://example.com/a")
    assert not should_require_gate("no link here")


@pytest.mark.parametrize(
    "words,mode",
    [(0, QuizMode.SOURCE_ONLY), (30, QuizMode.SOURCE_ONLY), (31, QuizMode.MIXED), (120, QuizMode.MIXED), (121, QuizMode.USER_ONLY)],
)
def test_reshare_mode_follows_author_word_count(words, mode):
    assert quiz_mode_for_reshare(words) == mode


def test_text_without_source():
    assert plan_for_text_without_source(30) == GatePlan(gate_required=False)
    assert plan_for_text_without_source(80).question_count == 1
    long_plan = plan_for_text_without_source(300)
    assert long_plan.quiz_mode == QuizMode.USER_ONLY and long_plan.question_count == 3


def test_first_share_of_link_is_source_only():
    plan = plan_for_post(_words(200) + " https://example.com/a")
    assert plan == GatePlan(gate_required=True, quiz_mode=QuizMode.SOURCE_ONLY, question_count=3)


def test_reshare_uses_original_author_text():
    original = _words(60) + " https://example.com/a"
    plan = plan_for_post("", is_reshare=True, original_author_text=original)
    assert plan.quiz_mode == QuizMode.MIXED


def test_media_without_transcript_falls_back_to_commentary():
    assert not plan_for_media(10, has_extracted_text=False).gate_required
    assert plan_for_media(10, has_extracted_text=True).quiz_mode == QuizMode.SOURCE_ONLY


class TestGateQueue:
    def test_from_urls_dedupes_in_order(self):
        queue = GateQueue.from_urls(["https://a.com", "", "https://b.com", "https://a.com"])
        assert [s.url for s in queue.sources] == ["https://a.com", "https://b.com"]
        assert queue.progress == (0, 2)

    def test_sources_pass_in_order(self):
        queue = GateQueue.from_urls(["https://a.com", "https://b.com"])
        first = queue.next_source()
        queue.transition(first.url, SourceGateState.READING)
        queue.transition(first.url, SourceGateState.TESTING)
        queue.transition(first.url, SourceGateState.PASSED, attempt_id="att-1")

        assert first.attempt_id == "att-1"
        assert queue.next_source().url == "https://b.com"
        assert not queue.all_passed

        queue.transition("https://b.com", SourceGateState.READING)
        queue.transition("https://b.com", SourceGateState.PASSED)
        assert queue.all_passed
        assert queue.next_source() is None

    def test_failed_source_goes_back_to_reading(self):
        queue = GateQueue.from_urls(["https://a.com"])
        queue.transition("https://a.com", SourceGateState.READING)
        queue.transition("https://a.com", SourceGateState.TESTING)
        queue.transition("https://a.com", SourceGateState.FAILED)
        queue.transition("https://a.com", SourceGateState.READING)
        assert queue.sources[0].state == SourceGateState.READING

    def test_illegal_transition_raises(self):
        queue = GateQueue.from_urls(["https://a.com"])
        with pytest.raises(InvalidTransitionError):
            queue.transition("https://a.com", SourceGateState.PASSED)
        with pytest.raises(KeyError):
            queue.transition("https://missing.com", SourceGateState.READING)
