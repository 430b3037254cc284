"""
Sentence Chunker

Splits a streaming token feed into sentences so speech synthesis can start
before generation finishes.

A sentence boundary is a terminal mark (``.``, ``?`` or ``!``) followed by
whitespace and an uppercase letter. The uppercase letter must already be in
the buffer, so a boundary is only confirmed once the next sentence has
started; whatever is left when the stream ends is flushed as the last chunk.

Usage:
    chunker = SentenceChunker()
    for fragment in ["Hello the", "re. How are", " you?"]:
        for sentence in chunker.feed(fragment):
            speak(sentence)
    tail = chunker.flush()
"""

import re
from typing import List, Optional

SENTENCE_BOUNDARY = re.compile(r"([.?!])\s+(?=[A-Z])")


class SentenceChunker:
    """Incremental sentence splitter over an accumulation buffer."""

    def __init__(self):
        self._buffer = ""
        self._emitted = 0

    @property
    def buffer(self) -> str:
        return self._buffer

    @property
    def emitted(self) -> int:
        return self._emitted

    def feed(self, fragment: str) -> List[str]:
        """
        Append a fragment and return every sentence it completed.

        The remainder after each split keeps no leading whitespace.
        """
        self._buffer += fragment
        sentences: List[str] = []

        match = SENTENCE_BOUNDARY.search(self._buffer)
        while match:
            sentence = self._buffer[:match.end(1)].strip()
            self._buffer = self._buffer[match.end():]
            if sentence:
                sentences.append(sentence)
            match = SENTENCE_BOUNDARY.search(self._buffer)

        self._emitted += len(sentences)
        return sentences

    def flush(self) -> Optional[str]:
        """Emit whatever remains, regardless of punctuation."""
        tail = self._buffer.strip()
        self._buffer = ""
        if not tail:
            return None
        self._emitted += 1
        return tail
