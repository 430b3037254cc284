"""
RVC Voice Conversion Client

Re-voices synthesised audio with a trained RVC model. The server keeps one
model loaded, so the model is (re)selected before each conversion.
"""

import asyncio
import base64
from typing import Optional

import aiohttp

from persona_agent.config import SpeechConfig, settings
from persona_agent.errors import SpeechUnavailable
from persona_agent.logger import get_logger
from persona_agent.messages import msg

logger = get_logger(__name__)


class RVCClient:
    """
    Async client for an RVC conversion server.

    Endpoints:
    - POST /models/<voice>: load a model
    - POST /convert: convert base64 ``audio_data``, returns audio bytes
    """

    def __init__(self, config: Optional[SpeechConfig] = None):
        self.config = config or settings.speech
        self.base_url = self.config.rvc_url.rstrip("/")

    @property
    def _timeout(self) -> aiohttp.ClientTimeout:
        return aiohttp.ClientTimeout(total=self.config.timeout_s, connect=10.0)

    async def load_model(self, voice: str) -> None:
        try:
            async with aiohttp.ClientSession(timeout=self._timeout) as session:
                async with session.post(f"{self.base_url}/models/{voice.lower()}") as response:
                    response.raise_for_status()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"RVC model load failed for {voice}: {e}")
            raise SpeechUnavailable(msg("error.rvc_failed")) from e
        logger.debug(f"RVC loaded model: {voice.lower()}")

    async def convert(self, audio: bytes, voice: str) -> bytes:
        """Load ``voice`` and convert ``audio`` with it."""
        await self.load_model(voice)
        payload = {"audio_data": base64.b64encode(audio).decode("ascii")}
        try:
            async with aiohttp.ClientSession(timeout=self._timeout) as session:
                async with session.post(f"{self.base_url}/convert", json=payload) as response:
                    response.raise_for_status()
                    converted = await response.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"RVC error: {e}")
            raise SpeechUnavailable(msg("error.rvc_failed")) from e

        logger.debug(f"RVC returned {len(converted)} bytes")
        return converted
