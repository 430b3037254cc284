"""
Conversation Agent

The interface front ends talk to. It validates requests, resolves channel
aliases, owns the session registry, and turns orchestrator output into
PromptResponse objects with synthesised audio.

Operations:
- handle_turn: text turn, optionally gated like a group chat
- handle_voice_turn: voice turn through the debounce/listening state machine
- get_history: recent chat messages of a channel
- delete_history: drop a channel's memory

Errors are PersonaAgentError subclasses carrying the status code the
adapters report (400, 404, 500, and 204 for a declined turn).

Usage:
    agent = ConversationAgent()
    reply = await agent.handle_turn(PromptRequest(prompt="Hi Rimuru!", user_id="moon"))
    print(reply.response)
"""

import asyncio
from collections import defaultdict
from typing import Awaitable, Callable, Dict, Optional

from persona_agent.config import ConversationConfig, settings
from persona_agent.core.llm import LLMProvider, OllamaClient
from persona_agent.core.vectorstore import MemoryStore, create_memory_store
from persona_agent.conversation.events import Event, MessageInProgressEvent
from persona_agent.conversation.memory import ChannelMemory
from persona_agent.conversation.models import (
    DeleteHistoryRequest,
    HistoryRequest,
    HistoryResponse,
    Personality,
    PromptRequest,
    PromptResponse,
    StatusResponse,
    TurnResult,
)
from persona_agent.conversation.orchestrator import StreamSink, TurnOrchestrator
from persona_agent.conversation.session import SessionRegistry, VoiceOutcome, VoiceSession
from persona_agent.errors import GateDeclined, NotFound, ValidationError
from persona_agent.logger import get_logger
from persona_agent.messages import msg
from persona_agent.services.tools import ToolRegistry, build_default_registry
from persona_agent.speech.filters import SpokenTextFilter, filter_from_stt, strip_reasoning
from persona_agent.speech.pipeline import VoicePipeline

logger = get_logger(__name__)

ChunkCallback = Callable[[PromptResponse], Awaitable[None]]


class ConversationAgent:
    """
    Front-end facing entry point.

    Features:
    - Lazily created per-channel sessions, evictable by the history endpoints
    - One turn at a time per channel, text and voice alike
    - Identity aliasing before memory resolution
    - Sentence-by-sentence audio streaming through an async chunk callback
    - Reasoning blocks removed from what is spoken and returned
    """

    def __init__(
        self,
        llm: Optional[LLMProvider] = None,
        store: Optional[MemoryStore] = None,
        voice: Optional[VoicePipeline] = None,
        tools: Optional[ToolRegistry] = None,
        config: Optional[ConversationConfig] = None,
        aliases: Optional[Dict[str, str]] = None,
    ):
        self.llm = llm or OllamaClient()
        self.store = store or create_memory_store()
        self.voice = voice or VoicePipeline()
        self.tools = tools if tools is not None else build_default_registry()
        self.config = config or settings.conversation
        self.aliases = aliases if aliases is not None else self.config.aliases
        self.sessions = SessionRegistry(self._create_session)
        # Outlive session eviction so a running turn keeps its channel locked
        self._channel_locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

        logger.info(f"ConversationAgent ready ({len(self.aliases)} aliases)")

    # ========================================================================
    # Wiring
    # ========================================================================

    def resolve_channel(self, user_id: str) -> str:
        """Apply the single-step identity alias map."""
        return self.aliases.get(user_id, user_id)

    def channel_lock(self, channel_id: str) -> asyncio.Lock:
        return self._channel_locks[channel_id]

    def _create_session(self, channel_id: str) -> VoiceSession:
        memory = ChannelMemory(self.store, self.llm, channel_id)
        orchestrator = TurnOrchestrator(memory, self.llm, self.config, self.tools)
        return VoiceSession(orchestrator, self.config, lock=self.channel_lock(channel_id))

    @staticmethod
    def _validate_prompt(request: PromptRequest) -> None:
        if not request.prompt or not request.user_id:
            raise ValidationError(msg("error.prompt_required"))

    def _sentence_sink(
        self,
        prompt: str,
        personality: Personality,
        on_chunk: Optional[ChunkCallback],
    ) -> Optional[StreamSink]:
        if on_chunk is None:
            return None
        spoken = SpokenTextFilter()

        async def sink(sentence: str) -> None:
            text = spoken(sentence)
            if not text:
                return
            audio = await self.voice.render(text, personality)
            await on_chunk(PromptResponse(responding_to=prompt, response="", audio=audio, sentence=text))

        return sink

    @staticmethod
    def _fragment_forwarder(prompt: str, on_chunk: ChunkCallback) -> Callable[[Event], Awaitable[None]]:
        async def forward(event: Event) -> None:
            if isinstance(event, MessageInProgressEvent) and event.fragment:
                await on_chunk(PromptResponse(responding_to=prompt, response=event.fragment))

        return forward

    async def _reply(
        self,
        prompt: str,
        result: TurnResult,
        personality: Personality,
        streamed: bool,
        speak: bool,
    ) -> PromptResponse:
        text = strip_reasoning(result.text)
        audio = None
        if speak and not streamed and text:
            audio = await self.voice.render(text, personality)
        return PromptResponse(
            responding_to=prompt,
            response=text,
            audio=audio,
            grounded_prompt=result.grounded_prompt,
        )

    # ========================================================================
    # Operations
    # ========================================================================

    async def handle_turn(
        self,
        request: PromptRequest,
        on_chunk: Optional[ChunkCallback] = None,
        gated: bool = False,
        speak: bool = True,
    ) -> PromptResponse:
        """
        Answer a text prompt.

        Args:
            request: Prompt, caller id and optional personality fields
            on_chunk: Receives text fragments and per-sentence audio as they are ready
            gated: Ask the turn-gate first, as a group-chat adapter does. The
                message is saved either way; a "no" raises GateDeclined.
            speak: Synthesise audio for the reply

        Raises:
            ValidationError: prompt or user id missing
            GateDeclined: gated turn the persona chose not to answer
            DownstreamUnavailable: inference, store or speech failure
        """
        self._validate_prompt(request)
        personality = request.personality_profile()
        channel_id = self.resolve_channel(request.user_id)
        orchestrator = self.sessions.get_or_create(channel_id).orchestrator

        async with self.channel_lock(channel_id):
            if gated:
                respond = await orchestrator.gate.should_respond(request.prompt, request.user_id, personality)
                await orchestrator.memory.save_message(request.user_id, request.prompt)
                if not respond:
                    raise GateDeclined()
            else:
                await orchestrator.memory.save_message(request.user_id, request.prompt)

            sink = self._sentence_sink(request.prompt, personality, on_chunk if speak else None)
            forward = self._fragment_forwarder(request.prompt, on_chunk) if on_chunk else None
            if forward:
                orchestrator.subscribe_progress(forward)
            try:
                result = await orchestrator.run_turn(request.prompt, request.user_id, personality, sink)
            finally:
                if forward:
                    orchestrator.unsubscribe_progress(forward)

        return await self._reply(request.prompt, result, personality, streamed=sink is not None, speak=speak)

    async def handle_voice_turn(
        self,
        request: PromptRequest,
        on_chunk: Optional[ChunkCallback] = None,
    ) -> PromptResponse:
        """
        Answer a transcribed voice prompt through the caller's voice session.

        Raises:
            ValidationError: prompt or user id missing
            GateDeclined: the gate declined, a newer input superseded this
                one, or a turn was already running (the input was saved)
            DownstreamUnavailable: inference, store or speech failure
        """
        self._validate_prompt(request)
        prompt = filter_from_stt(request.prompt)
        personality = request.personality_profile()
        session = self.sessions.get_or_create(self.resolve_channel(request.user_id))

        sink = self._sentence_sink(prompt, personality, on_chunk)
        forward = self._fragment_forwarder(prompt, on_chunk) if on_chunk else None
        if forward:
            session.orchestrator.subscribe_progress(forward)
        try:
            turn = await session.submit(prompt, request.user_id, personality, sink)
        finally:
            if forward:
                session.orchestrator.unsubscribe_progress(forward)

        if turn.outcome == VoiceOutcome.DEBOUNCED:
            raise GateDeclined(msg("session.debounced"))
        if turn.outcome == VoiceOutcome.BUSY:
            raise GateDeclined(msg("session.busy"))
        if turn.outcome == VoiceOutcome.DECLINED or turn.result is None:
            raise GateDeclined()

        return await self._reply(prompt, turn.result, personality, streamed=sink is not None, speak=True)

    async def get_history(self, request: HistoryRequest) -> HistoryResponse:
        """
        Last ``limit`` chat messages, oldest first.

        The channel's session is evicted so a debug read never leaves stale
        state behind.
        """
        if not request.user_id or not request.limit or request.limit <= 0:
            raise ValidationError(msg("error.history_required"))

        channel_id = self.resolve_channel(request.user_id)
        self.sessions.evict(channel_id)
        if not await self.store.collection_exists(channel_id):
            raise NotFound()

        memory = ChannelMemory(self.store, self.llm, channel_id)
        return HistoryResponse(messages=await memory.history(request.limit))

    async def delete_history(self, request: DeleteHistoryRequest) -> StatusResponse:
        """
        Delete the caller's channel memory and evict the session.

        A turn running on the channel finishes (and persists) first.
        """
        if not request.user_id:
            raise ValidationError(msg("error.user_required"))

        channel_id = self.resolve_channel(request.user_id)
        self.sessions.evict(channel_id)
        async with self.channel_lock(channel_id):
            if not await self.store.collection_exists(channel_id):
                raise NotFound()
            await ChannelMemory(self.store, self.llm, channel_id).delete()

        return StatusResponse(status=200, message=msg("history.deleted"))
