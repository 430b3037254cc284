"""
Speech text filters.

- filter_for_tts: respell names the synthesiser mispronounces, drop action
  stars, soften dashes
- filter_from_stt: repair the usual speech-recognition mishearings of the
  persona's name
- strip_reasoning: remove a leading ``<think>`` block from a reply
- SpokenTextFilter: drop reasoning sentences from a live sentence stream
"""

from typing import Dict, List, Optional, Tuple

TTS_REPLACEMENTS: List[Tuple[str, str]] = [
    ("Rimuru", "Reemaru"),
    ("Shion", "Sheeown"),
    ("*", ""),
    (" - ", ", "),
]

_STT_MISHEARINGS = [
    "Reamer", "Rimmer", "Reimuer", "Remaru", "Remerow", "Reemaru",
    "Reemuru", "Rimaru", "Remeru", "Remer", "Imaru", "Remaroo",
]

# Longest first so "Remer" never eats the front of "Remerow"
STT_REPLACEMENTS: Dict[str, str] = {
    f" {variant}": " Rimuru"
    for word in sorted(_STT_MISHEARINGS, key=len, reverse=True)
    for variant in (word, word.lower())
}

THINK_OPEN = "<think>"
THINK_CLOSE = "</think>"


def filter_for_tts(text: str) -> str:
    for old, new in TTS_REPLACEMENTS:
        text = text.replace(old, new)
    return text


def filter_from_stt(text: str) -> str:
    for old, new in STT_REPLACEMENTS.items():
        text = text.replace(old, new)
    return text


def strip_reasoning(text: str) -> str:
    """Return the text after the first ``</think>``, or the text unchanged."""
    if THINK_CLOSE in text:
        return text[text.index(THINK_CLOSE) + len(THINK_CLOSE):].lstrip()
    return text


class SpokenTextFilter:
    """
    Filters a sentence stream down to what should be spoken.

    Sentences inside a ``<think>`` block are dropped; a sentence that
    closes the block keeps only the text after the marker.
    """

    def __init__(self):
        self._in_reasoning = False

    def __call__(self, sentence: str) -> Optional[str]:
        spoken: List[str] = []
        rest = sentence
        while rest:
            if self._in_reasoning:
                if THINK_CLOSE not in rest:
                    break
                rest = rest.split(THINK_CLOSE, 1)[1]
                self._in_reasoning = False
            else:
                before, found, rest = rest.partition(THINK_OPEN)
                spoken.append(before.strip())
                self._in_reasoning = bool(found)

        text = " ".join(part for part in spoken if part)
        return text or None
