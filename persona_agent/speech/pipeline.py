"""
Voice Pipeline

Turns reply text into the persona's voice: pronunciation filter, Fish-Speech
synthesis, then RVC conversion for personalities that have a trained voice.
Everyone else gets the ``default`` TTS voice without conversion.

Usage:
    pipeline = VoicePipeline()
    audio_b64 = await pipeline.render("Hello there.", Personality())
"""

import base64
import time
from typing import List, Optional

from persona_agent.config import SpeechConfig, settings
from persona_agent.conversation.models import Personality
from persona_agent.logger import get_logger
from persona_agent.speech.filters import filter_for_tts
from persona_agent.speech.tts import FishSpeechClient
from persona_agent.speech.voice_conversion import RVCClient

logger = get_logger(__name__)

DEFAULT_VOICE = "default"


class VoicePipeline:
    """TTS plus optional voice conversion, returning base64 audio."""

    def __init__(
        self,
        tts: Optional[FishSpeechClient] = None,
        rvc: Optional[RVCClient] = None,
        config: Optional[SpeechConfig] = None,
    ):
        self.config = config or settings.speech
        self.tts = tts or FishSpeechClient(self.config)
        self.rvc = rvc or RVCClient(self.config)

    @property
    def supported_voices(self) -> List[str]:
        return self.config.supported_voices

    def voice_for(self, personality: Personality) -> str:
        """Lower-cased personality name if it has a voice, else ``default``."""
        if personality.name in self.supported_voices:
            return personality.name.lower()
        return DEFAULT_VOICE

    async def synthesize(self, text: str, personality: Personality) -> bytes:
        """Raw audio bytes for ``text`` in the personality's voice."""
        start_time = time.time()
        voice = self.voice_for(personality)

        audio = await self.tts.synthesize(filter_for_tts(text), voice)
        if voice != DEFAULT_VOICE:
            audio = await self.rvc.convert(audio, voice)

        logger.debug(
            f"Rendered {len(text)} chars as {voice} in {(time.time() - start_time) * 1000:.0f}ms"
        )
        return audio

    async def render(self, text: str, personality: Personality) -> str:
        """Base64-encoded audio for ``text``."""
        return base64.b64encode(await self.synthesize(text, personality)).decode("ascii")
