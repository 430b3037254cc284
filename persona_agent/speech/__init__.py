"""
Speech Package

Speech synthesis (Fish-Speech), voice conversion (RVC) and the text filters
applied around them.
"""

from .filters import SpokenTextFilter, filter_for_tts, filter_from_stt, strip_reasoning
from .pipeline import DEFAULT_VOICE, VoicePipeline
from .tts import FishSpeechClient
from .voice_conversion import RVCClient

__all__ = [
    "SpokenTextFilter",
    "filter_for_tts",
    "filter_from_stt",
    "strip_reasoning",
    "DEFAULT_VOICE",
    "VoicePipeline",
    "FishSpeechClient",
    "RVCClient",
]
