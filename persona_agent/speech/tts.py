"""
Fish-Speech TTS Client

Synthesises speech through a Fish-Speech HTTP server. Voices are selected by
``reference_id``, which matches the lower-cased voice profile name.

Usage:
    from persona_agent.speech.tts import FishSpeechClient

    tts = FishSpeechClient()
    wav = await tts.synthesize("Hello there.", "rimuru")
"""

import asyncio
from typing import Any, AsyncIterator, Dict, Optional

import aiohttp

from persona_agent.config import SpeechConfig, settings
from persona_agent.errors import SpeechUnavailable
from persona_agent.logger import get_logger
from persona_agent.messages import msg

logger = get_logger(__name__)


class FishSpeechClient:
    """
    Async client for the Fish-Speech ``/v1/tts`` endpoint.

    Features:
    - Whole-file synthesis (``synthesize``)
    - Chunked audio streaming (``synthesize_stream``)
    - Server-side reference caching enabled on every request
    """

    def __init__(self, config: Optional[SpeechConfig] = None):
        self.config = config or settings.speech
        self.url = self.config.tts_url

    @property
    def _timeout(self) -> aiohttp.ClientTimeout:
        return aiohttp.ClientTimeout(total=self.config.timeout_s, connect=10.0)

    def build_payload(self, text: str, voice: str, streaming: bool) -> Dict[str, Any]:
        return {
            "text": text,
            "format": "wav",
            "reference_id": voice.lower(),
            "use_memory_cache": "on",
            "normalize": "false",
            "streaming": streaming,
        }

    async def synthesize(self, text: str, voice: str) -> bytes:
        """
        Synthesise ``text`` and return the complete WAV file.

        Raises:
            SpeechUnavailable: The TTS server could not be reached or failed
        """
        payload = self.build_payload(text, voice, streaming=False)
        try:
            async with aiohttp.ClientSession(timeout=self._timeout) as session:
                async with session.post(self.url, json=payload, headers={"accept": "*/*"}) as response:
                    response.raise_for_status()
                    audio = await response.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Fish-speech error: {e}")
            raise SpeechUnavailable(msg("error.tts_failed")) from e

        logger.debug(f"Fish-speech returned {len(audio)} bytes")
        return audio

    async def synthesize_stream(self, text: str, voice: str) -> AsyncIterator[bytes]:
        """Yield audio chunks as the server produces them."""
        payload = self.build_payload(text, voice, streaming=True)
        total = 0
        try:
            async with aiohttp.ClientSession(timeout=self._timeout) as session:
                async with session.post(self.url, json=payload, headers={"accept": "*/*"}) as response:
                    response.raise_for_status()
                    async for chunk in response.content.iter_any():
                        total += len(chunk)
                        yield chunk
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Fish-speech stream error after {total} bytes: {e}")
            raise SpeechUnavailable(msg("error.tts_failed")) from e

        logger.debug(f"Fish-speech streamed {total} bytes")
