"""
Tests for Sentence Chunker Module

Tests incremental sentence splitting over a streaming token feed.
"""

import pytest

from persona_agent.conversation.chunker import SentenceChunker


TWO_SENTENCES = "Hello there. How are you?"


def run_feed(fragments):
    """Feed fragments, then flush; return every emitted chunk."""
    chunker = SentenceChunker()
    chunks = []
    for fragment in fragments:
        chunks.extend(chunker.feed(fragment))
    tail = chunker.flush()
    if tail:
        chunks.append(tail)
    return chunks


class TestSentenceChunker:
    """Tests for SentenceChunker."""

    @pytest.mark.parametrize("fragments", [
        ["Hello the", "re. How are you?"],
        ["Hello there.", " How are you?"],
        ["Hello there. ", "How are you?"],
        ["Hel", "lo there. H", "ow are y", "ou?"],
        ["Hello there. How are you?"],
    ])
    def test_split_is_independent_of_fragmenting(self, fragments):
        """Two sentences come out the same however the stream is cut."""
        assert run_feed(fragments) == ["Hello there.", "How are you?"]

    @pytest.mark.parametrize("split", range(len(TWO_SENTENCES) + 1))
    def test_every_two_way_split(self, split):
        assert run_feed([TWO_SENTENCES[:split], TWO_SENTENCES[split:]]) == ["Hello there.", "How are you?"]

    def test_boundary_needs_uppercase(self):
        """A period followed by a lowercase word is not a boundary."""
        assert run_feed(["It costs 3.5 gold. and more"]) == ["It costs 3.5 gold. and more"]

    def test_boundary_needs_whitespace(self):
        """Punctuation glued to the next word does not split."""
        assert run_feed(["Wait.What?"]) == ["Wait.What?"]

    def test_boundary_waits_for_next_sentence(self):
        """A sentence is held until the next one starts."""
        chunker = SentenceChunker()

        assert chunker.feed("Hello there. ") == []
        assert chunker.feed("How") == ["Hello there."]
        assert chunker.buffer == "How"

    def test_multiple_boundaries_in_one_fragment(self):
        """Every completed sentence in the buffer is emitted."""
        chunker = SentenceChunker()

        sentences = chunker.feed("One. Two! Three? Fo")
        assert sentences == ["One.", "Two!", "Three?"]
        assert chunker.buffer == "Fo"
        assert chunker.emitted == 3

    def test_remainder_has_no_leading_whitespace(self):
        chunker = SentenceChunker()
        chunker.feed("First one.   \nSecond")
        assert chunker.buffer == "Second"

    def test_flush_emits_unterminated_tail(self):
        chunker = SentenceChunker()
        chunker.feed("no punctuation at all")
        assert chunker.flush() == "no punctuation at all"
        assert chunker.buffer == ""

    def test_flush_empty(self):
        chunker = SentenceChunker()
        chunker.feed("   ")
        assert chunker.flush() is None
        assert chunker.emitted == 0

    def test_empty_fragment_is_harmless(self):
        chunker = SentenceChunker()
        assert chunker.feed("") == []
        assert chunker.flush() is None
