"""
LLM Provider Module

This module provides the abstraction and the Ollama implementation of the
inference service: embeddings, one-shot generation, tool-augmented chat and
streaming chat.

Architecture:
- LLMProvider: Abstract base class defining the interface
- OllamaClient: Concrete implementation for the Ollama HTTP API (aiohttp)
- Message/response dataclasses for type safety

Every request carries the ``keep_alive`` hint so the model stays loaded
between turns. There is no retry: a failed call surfaces as
InferenceUnavailable and the caller decides what to do with it.

Usage:
    from persona_agent.core.llm import OllamaClient, Message

    llm = OllamaClient()
    messages = [
        Message(role="system", content="You are Rimuru Tempest."),
        Message(role="user", content="Hello!")
    ]
    async for fragment in llm.stream_chat(messages):
        print(fragment, end="", flush=True)
"""

import asyncio
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional

import aiohttp

from persona_agent.config import settings
from persona_agent.errors import InferenceUnavailable
from persona_agent.logger import get_logger

logger = get_logger(__name__)


@dataclass
class Message:
    """
    Represents a chat message.

    Attributes:
        role: Message role (system, user, assistant, tool)
        content: Message content text
    """
    role: str
    content: str

    def to_dict(self) -> Dict[str, str]:
        """Convert to API-compatible dictionary."""
        return {"role": self.role, "content": self.content}


@dataclass
class ToolCall:
    """A function call selected by the model."""
    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ChatResponse:
    """
    Response from a non-streaming chat completion.

    Attributes:
        content: Generated text content
        model: Model name used
        tool_calls: Functions the model asked to call
        done_reason: Why generation stopped
    """
    content: str
    model: str = ""
    tool_calls: List[ToolCall] = field(default_factory=list)
    done_reason: str = ""


class LLMProvider(ABC):
    """
    Abstract base class for inference services.

    The conversation layer depends only on this interface, which keeps the
    tests free of HTTP and lets another backend slot in.
    """

    @abstractmethod
    async def embed(self, text: str) -> List[float]:
        """Return the embedding vector for ``text``."""

    @abstractmethod
    async def generate(self, prompt: str, system: Optional[str] = None) -> str:
        """Blocking single-prompt generation under an optional system prompt."""

    @abstractmethod
    async def chat(
        self,
        messages: List[Message],
        tools: Optional[List[Dict[str, Any]]] = None,
    ) -> ChatResponse:
        """Non-streaming chat, optionally offering tool schemas."""

    @abstractmethod
    def stream_chat(self, messages: List[Message]) -> AsyncIterator[str]:
        """
        Streaming chat.

        Yields every text fragment as it arrives. The final fragment is
        empty and marks the end of generation.
        """


class OllamaClient(LLMProvider):
    """
    Ollama HTTP API client.

    Features:
    - /api/embed, /api/generate and /api/chat endpoints
    - Newline-delimited JSON streaming
    - keep_alive hint on every request
    - Transport and protocol errors mapped to InferenceUnavailable

    Example:
        llm = OllamaClient()
        vector = await llm.embed("Rimuru, what's your favorite food?")
        reply = await llm.generate("Say hi", system="You are terse.")
    """

    def __init__(
        self,
        host: Optional[str] = None,
        chat_model: Optional[str] = None,
        embed_model: Optional[str] = None,
        keep_alive: Optional[str] = None,
        timeout_s: Optional[float] = None,
    ):
        """
        Initialize the Ollama client.

        Args:
            host: Ollama base URL (defaults to settings)
            chat_model: Chat/generation model (defaults to settings)
            embed_model: Embedding model (defaults to settings)
            keep_alive: Model keep-alive hint (defaults to settings)
            timeout_s: Total request timeout (defaults to settings)
        """
        cfg = settings.ollama
        self.host = (host or cfg.host).rstrip("/")
        self.chat_model = chat_model or cfg.chat_model
        self.embed_model = embed_model or cfg.embed_model
        self.keep_alive = keep_alive or cfg.keep_alive
        self.timeout_s = timeout_s if timeout_s is not None else cfg.timeout_s

        logger.info(
            f"Initialized OllamaClient: host={self.host}, "
            f"chat_model={self.chat_model}, embed_model={self.embed_model}"
        )

    def _url(self, endpoint: str) -> str:
        return f"{self.host}/api/{endpoint}"

    @property
    def _timeout(self) -> aiohttp.ClientTimeout:
        return aiohttp.ClientTimeout(total=self.timeout_s, connect=10.0)

    async def _post_json(self, endpoint: str, body: Dict[str, Any]) -> Dict[str, Any]:
        """POST a JSON body and decode the JSON reply."""
        body = {**body, "keep_alive": self.keep_alive}
        try:
            async with aiohttp.ClientSession(timeout=self._timeout) as session:
                async with session.post(self._url(endpoint), json=body) as response:
                    response.raise_for_status()
                    return await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, json.JSONDecodeError) as e:
            logger.error(f"Ollama /api/{endpoint} failed: {e}")
            raise InferenceUnavailable() from e

    async def embed(self, text: str) -> List[float]:
        data = await self._post_json("embed", {"model": self.embed_model, "input": text})
        embeddings = data.get("embeddings") or []
        if not embeddings:
            raise InferenceUnavailable("Ollama returned no embedding")
        return list(embeddings[0])

    async def generate(self, prompt: str, system: Optional[str] = None) -> str:
        body: Dict[str, Any] = {"model": self.chat_model, "prompt": prompt, "stream": False}
        if system:
            body["system"] = system
        data = await self._post_json("generate", body)
        return data.get("response", "")

    async def chat(
        self,
        messages: List[Message],
        tools: Optional[List[Dict[str, Any]]] = None,
    ) -> ChatResponse:
        body: Dict[str, Any] = {
            "model": self.chat_model,
            "messages": [m.to_dict() for m in messages],
            "stream": False,
        }
        if tools:
            body["tools"] = tools
        data = await self._post_json("chat", body)

        message = data.get("message") or {}
        tool_calls = [
            ToolCall(
                name=call.get("function", {}).get("name", ""),
                arguments=call.get("function", {}).get("arguments") or {},
            )
            for call in message.get("tool_calls") or []
        ]
        return ChatResponse(
            content=message.get("content", ""),
            model=data.get("model", self.chat_model),
            tool_calls=tool_calls,
            done_reason=data.get("done_reason", ""),
        )

    async def stream_chat(self, messages: List[Message]) -> AsyncIterator[str]:
        body = {
            "model": self.chat_model,
            "messages": [m.to_dict() for m in messages],
            "stream": True,
            "keep_alive": self.keep_alive,
        }
        fragments = 0
        try:
            async with aiohttp.ClientSession(timeout=self._timeout) as session:
                async with session.post(self._url("chat"), json=body) as response:
                    response.raise_for_status()

                    async for line in response.content:
                        line = line.decode("utf-8", errors="replace").strip()
                        if not line:
                            continue
                        try:
                            data = json.loads(line)
                        except json.JSONDecodeError:
                            continue

                        if "error" in data:
                            raise InferenceUnavailable(f"Ollama stream error: {data['error']}")

                        content = (data.get("message") or {}).get("content", "")
                        fragments += 1
                        yield content

                        if data.get("done"):
                            break
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Streaming chat failed after {fragments} fragments: {e}")
            raise InferenceUnavailable() from e

        logger.debug(f"Stream finished with {fragments} fragments")
