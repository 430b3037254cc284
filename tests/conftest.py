"""
Pytest Configuration and Fixtures

This module provides shared fixtures and configuration for all tests.
"""

import asyncio
import os
import string
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

# Set test environment before persona_agent builds its settings
os.environ["APP_ENV"] = "test"
os.environ["MEMORY_BACKEND"] = "memory"
os.environ["MEMORY_STORE_DIR"] = "/tmp/test_memory_store"
os.environ["VOICE_DEBOUNCE_SECONDS"] = "0.05"
os.environ["LOG_LEVEL"] = "WARNING"

from persona_agent.config import ConversationConfig, SpeechConfig  # noqa: E402
from persona_agent.core.llm import ChatResponse, LLMProvider, Message, ToolCall  # noqa: E402
from persona_agent.core.vectorstore import InMemoryMemoryStore  # noqa: E402
from persona_agent.conversation.memory import ChannelMemory  # noqa: E402
from persona_agent.conversation.models import Personality  # noqa: E402
from persona_agent.errors import InferenceUnavailable  # noqa: E402
from persona_agent.speech.pipeline import VoicePipeline  # noqa: E402


def letter_vector(text: str) -> List[float]:
    """Deterministic embedding: letter counts plus a constant component."""
    lowered = text.lower()
    return [float(lowered.count(c)) for c in string.ascii_lowercase] + [1.0]


class FakeLLM(LLMProvider):
    """
    Scripted inference service.

    Gate and summary answers are chosen from the system prompt, so one
    instance can serve a whole turn. Every call is recorded.
    """

    def __init__(
        self,
        replies: Optional[List[str]] = None,
        gate_answer: str = "yes",
        convo_end_answer: str = "no",
        summary: str = "Moon asked Rimuru about food.",
    ):
        self.replies = list(replies or ["Hello there. I love food."])
        self.gate_answer = gate_answer
        self.convo_end_answer = convo_end_answer
        self.summary = summary
        self.tool_calls: List[ToolCall] = []
        self.fragment_size = 4
        self.stream_delay = 0.0
        self.fail_after_fragments: Optional[int] = None
        self.fail_generate = False
        self.fail_summary = False

        self.embed_calls: List[str] = []
        self.generate_calls: List[Dict[str, Any]] = []
        self.chat_calls: List[Dict[str, Any]] = []
        self.stream_calls: List[List[Message]] = []

    def calls_of(self, kind: str) -> List[Dict[str, Any]]:
        return [call for call in self.generate_calls if call["kind"] == kind]

    async def embed(self, text: str) -> List[float]:
        self.embed_calls.append(text)
        return letter_vector(text)

    async def generate(self, prompt: str, system: Optional[str] = None) -> str:
        system = system or ""
        if "running summary" in system:
            kind = "summary"
        elif "has ended" in system:
            kind = "convo_end"
        else:
            kind = "should_respond"
        self.generate_calls.append({"kind": kind, "prompt": prompt, "system": system})

        if self.fail_generate or (kind == "summary" and self.fail_summary):
            raise InferenceUnavailable()
        if kind == "summary":
            return self.summary
        if kind == "convo_end":
            return self.convo_end_answer
        return self.gate_answer

    async def chat(
        self,
        messages: List[Message],
        tools: Optional[List[Dict[str, Any]]] = None,
    ) -> ChatResponse:
        self.chat_calls.append({"messages": messages, "tools": tools})
        return ChatResponse(content="", model="fake", tool_calls=list(self.tool_calls))

    async def stream_chat(self, messages: List[Message]):
        self.stream_calls.append(messages)
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        fragments = [reply[i:i + self.fragment_size] for i in range(0, len(reply), self.fragment_size)]
        for count, fragment in enumerate(fragments):
            if self.fail_after_fragments is not None and count >= self.fail_after_fragments:
                raise InferenceUnavailable("stream dropped")
            if self.stream_delay:
                await asyncio.sleep(self.stream_delay)
            yield fragment
        yield ""


@pytest.fixture
def llm():
    """Scripted LLM that always agrees to respond."""
    return FakeLLM()


@pytest.fixture
def store():
    """Fresh in-memory memory store."""
    return InMemoryMemoryStore(prefix="Memory_")


@pytest.fixture
def memory(store, llm):
    """Channel memory for the "moon" channel."""
    return ChannelMemory(store, llm, "moon")


@pytest.fixture
def personality():
    return Personality()


@pytest.fixture
def convo_config():
    """Conversation settings with a short debounce."""
    return ConversationConfig(
        turn_recent_count=8,
        turn_relevant_count=4,
        gate_recent_count=5,
        gate_relevant_count=5,
        summary_compress_threshold=700,
        verdict_window_chars=20,
        debounce_seconds=0.05,
        gate_failure_declines=False,
        aliases_raw="",
    )


@pytest.fixture
def voice():
    """Voice pipeline with mocked TTS and RVC clients."""
    tts = MagicMock()
    tts.synthesize = AsyncMock(return_value=b"wav")
    rvc = MagicMock()
    rvc.convert = AsyncMock(return_value=b"rvc")
    config = SpeechConfig(
        tts_url="http://tts.test/v1/tts",
        rvc_url="http://rvc.test",
        supported_voices=["Rimuru", "Frieren", "Gura"],
        timeout_s=5.0,
        streaming=False,
    )
    return VoicePipeline(tts=tts, rvc=rvc, config=config)


class AsyncLines:
    """Stand-in for aiohttp's StreamReader: async iteration and iter_any()."""

    def __init__(self, chunks):
        self._chunks = list(chunks)

    async def _iterate(self):
        for chunk in self._chunks:
            yield chunk

    def __aiter__(self):
        return self._iterate()

    def iter_any(self):
        return self._iterate()


@pytest.fixture
def http_session():
    """
    Factory for a mocked aiohttp.ClientSession.

    Usage:
        session = http_session(body=b"wav")
        with patch("aiohttp.ClientSession", return_value=session):
            ...
    """
    def build(body=b"", json_data=None, chunks=(), error=None):
        response = MagicMock()
        response.read = AsyncMock(return_value=body)
        response.json = AsyncMock(return_value=json_data)
        response.content = AsyncLines(chunks)

        request = MagicMock()
        request.__aenter__ = AsyncMock(return_value=response)
        request.__aexit__ = AsyncMock(return_value=False)

        session = MagicMock()
        session.__aenter__ = AsyncMock(return_value=session)
        session.__aexit__ = AsyncMock(return_value=False)
        session.post = MagicMock(return_value=request, side_effect=error)
        session.response = response
        return session

    return build
