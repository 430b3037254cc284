"""
Tests for speech text filters.
"""

import pytest

from persona_agent.speech.filters import (
    SpokenTextFilter,
    filter_for_tts,
    filter_from_stt,
    strip_reasoning,
)


class TestFilterForTts:
    """Tests for pronunciation respelling."""

    def test_names_respelled(self):
        assert filter_for_tts("Rimuru and Shion") == "Reemaru and Sheeown"

    def test_every_occurrence(self):
        assert filter_for_tts("Rimuru! Rimuru!") == "Reemaru! Reemaru!"

    def test_stars_and_dashes(self):
        assert filter_for_tts("*waves* Hello - friend") == "waves Hello, friend"


class TestFilterFromStt:
    """Tests for mishearing repair."""

    @pytest.mark.parametrize("heard", ["Remaru", "Remerow", "Rimmer", "Imaru", "reamer", "remaroo"])
    def test_variants(self, heard):
        assert filter_from_stt(f"Hey {heard}, hi") == "Hey Rimuru, hi"

    def test_longest_variant_first(self):
        assert filter_from_stt("ok Remerow") == "ok Rimuru"

    def test_requires_leading_space(self):
        assert filter_from_stt("Remaru, hi") == "Remaru, hi"

    def test_clean_text_untouched(self):
        assert filter_from_stt("Hey Rimuru, what's up?") == "Hey Rimuru, what's up?"


class TestStripReasoning:
    """Tests for reasoning block removal."""

    def test_strips_leading_block(self):
        assert strip_reasoning("<think>hmm</think>\n\nHello!") == "Hello!"

    def test_no_block(self):
        assert strip_reasoning("Hello!") == "Hello!"

    def test_unclosed_block_kept(self):
        assert strip_reasoning("<think>still thinking") == "<think>still thinking"


class TestSpokenTextFilter:
    """Tests for reasoning removal over a sentence stream."""

    def test_reasoning_spanning_sentences(self):
        spoken = SpokenTextFilter()

        results = [
            spoken("<think>They greeted me."),
            spoken("I should answer."),
            spoken("Kindly.</think> Hello there."),
            spoken("How are you?"),
        ]

        assert results == [None, None, "Hello there.", "How are you?"]

    def test_text_before_block_kept(self):
        spoken = SpokenTextFilter()

        assert spoken("Well <think>hmm</think> okay.") == "Well okay."

    def test_plain_sentences(self):
        spoken = SpokenTextFilter()

        assert spoken("Hello there.") == "Hello there."
        assert spoken("   ") is None
