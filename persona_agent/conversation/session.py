"""
Voice Sessions

Per-channel state machine for continuous voice conversation.

States:
- IDLE: waiting to be addressed
- DEBOUNCING: input received, waiting for the speaker to pause
- PROCESSING: gating and answering one input
- LISTENING: answered recently, the next input skips the gate

Transitions:
- IDLE/LISTENING --input--> DEBOUNCING (timer started)
- DEBOUNCING --input--> DEBOUNCING (timer restarted, earlier input superseded)
- DEBOUNCING --timer--> PROCESSING (gate unless listening)
- PROCESSING --respond--> LISTENING, or IDLE when the conversation ended
- PROCESSING --decline--> IDLE
- PROCESSING --input--> input saved to memory, caller told BUSY

Usage:
    registry = SessionRegistry(factory)
    session = registry.get_or_create("moon")
    turn = await session.submit("Rimuru, are you there?", "moon", personality)
"""

import asyncio
from dataclasses import dataclass
from enum import Enum, auto
from typing import Callable, Dict, Optional

from persona_agent.config import ConversationConfig, settings
from persona_agent.conversation.events import SessionStateEvent
from persona_agent.conversation.models import Personality, TurnResult
from persona_agent.conversation.orchestrator import StreamSink, TurnOrchestrator
from persona_agent.logger import channel_logger, get_logger

logger = get_logger(__name__)


class SessionState(Enum):
    """Voice session state."""
    IDLE = auto()
    DEBOUNCING = auto()
    PROCESSING = auto()
    LISTENING = auto()


class VoiceOutcome(Enum):
    """What happened to one submitted voice input."""
    REPLIED = auto()
    DECLINED = auto()
    DEBOUNCED = auto()
    BUSY = auto()


@dataclass
class VoiceTurn:
    """Result of VoiceSession.submit()."""
    outcome: VoiceOutcome
    prompt: str
    result: Optional[TurnResult] = None


class VoiceSession:
    """
    Debounce and listening-mode tracking for one channel.

    Features:
    - Cancellable debounce timer; the newest input wins
    - Gate bypass while in listening mode
    - Inputs arriving mid-turn are remembered, not dropped
    - Optional tool evaluation before gating
    - Processing holds the channel lock shared with text turns

    Attributes:
        orchestrator: Turn driver for the channel
        state: Current SessionState
        lock: Serializes turns on the channel
    """

    def __init__(
        self,
        orchestrator: TurnOrchestrator,
        config: Optional[ConversationConfig] = None,
        use_tools: bool = True,
        lock: Optional[asyncio.Lock] = None,
    ):
        self.orchestrator = orchestrator
        self.config = config or settings.conversation
        self.use_tools = use_tools
        self.lock = lock or asyncio.Lock()
        self._state = SessionState.IDLE
        self._listening = False
        self._timer: Optional["asyncio.Task[None]"] = None
        self._log = channel_logger(logger, orchestrator.channel_id)

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_listening_mode(self) -> bool:
        return self._listening

    @property
    def is_processing(self) -> bool:
        return self._state == SessionState.PROCESSING

    async def _transition(self, state: SessionState) -> None:
        previous, self._state = self._state, state
        if previous != state:
            self._log.debug(f"Session {previous.name} -> {state.name}")
            await self.orchestrator.events.publish(
                SessionStateEvent(
                    channel_id=self.orchestrator.channel_id,
                    state=state.name,
                    previous_state=previous.name,
                )
            )

    def cancel_debounce(self) -> bool:
        """Cancel a pending debounce timer. Returns True if one was pending."""
        timer, self._timer = self._timer, None
        if timer is not None and not timer.done():
            timer.cancel()
            return True
        return False

    async def reset(self) -> None:
        """Drop listening mode and any pending input."""
        self.cancel_debounce()
        self._listening = False
        if self._state != SessionState.PROCESSING:
            await self._transition(SessionState.IDLE)

    async def _debounce(self) -> bool:
        """Wait out the debounce window. False when a newer input superseded this one."""
        self.cancel_debounce()
        timer = asyncio.ensure_future(asyncio.sleep(self.config.debounce_seconds))
        self._timer = timer
        await self._transition(SessionState.DEBOUNCING)
        try:
            await asyncio.wait({timer})
        finally:
            if not timer.done():
                timer.cancel()
        if timer.cancelled():
            return False
        if self._timer is timer:
            self._timer = None
        return True

    async def submit(
        self,
        prompt: str,
        speaker_id: str,
        personality: Personality,
        stream_sink: Optional[StreamSink] = None,
    ) -> VoiceTurn:
        """
        Feed one voice input through the state machine.

        Returns:
            VoiceTurn whose outcome is REPLIED (with the turn result),
            DECLINED, DEBOUNCED (a newer input took over) or BUSY
            (a turn was already running; the input was saved)
        """
        if self._state == SessionState.PROCESSING:
            await self.orchestrator.memory.save_message(speaker_id, prompt)
            self._log.info(f"Input from {speaker_id} arrived mid-turn, saved for context")
            return VoiceTurn(VoiceOutcome.BUSY, prompt)

        if not await self._debounce():
            self._log.debug("Input superseded during debounce")
            # No newer input took over the timer: the debounce was cancelled outright
            if self._timer is None and self._state == SessionState.DEBOUNCING:
                await self._transition(SessionState.LISTENING if self._listening else SessionState.IDLE)
            return VoiceTurn(VoiceOutcome.DEBOUNCED, prompt)

        await self._transition(SessionState.PROCESSING)
        try:
            async with self.lock:
                return await self._process(prompt, speaker_id, personality, stream_sink)
        finally:
            await self._transition(SessionState.LISTENING if self._listening else SessionState.IDLE)

    async def _process(
        self,
        prompt: str,
        speaker_id: str,
        personality: Personality,
        stream_sink: Optional[StreamSink],
    ) -> VoiceTurn:
        if self.use_tools:
            await self.orchestrator.use_tools(prompt)

        respond = self._listening or await self.orchestrator.gate.should_respond(
            prompt, speaker_id, personality
        )
        if not respond:
            return VoiceTurn(VoiceOutcome.DECLINED, prompt)

        await self.orchestrator.memory.save_message(speaker_id, prompt)
        result = await self.orchestrator.run_turn(prompt, speaker_id, personality, stream_sink)

        ended = await self.orchestrator.gate.is_convo_end_for(prompt, speaker_id, personality)
        self._listening = not ended
        self._log.info(f"Listening mode {'on' if self._listening else 'off'}")
        return VoiceTurn(VoiceOutcome.REPLIED, prompt, result)


SessionFactory = Callable[[str], VoiceSession]


class SessionRegistry:
    """
    Sessions keyed by resolved channel id.

    Entries are created on first use and can be evicted at any time; a
    caller holding an evicted session just finishes with it.
    """

    def __init__(self, factory: SessionFactory):
        self._factory = factory
        self._sessions: Dict[str, VoiceSession] = {}

    def get(self, key: str) -> Optional[VoiceSession]:
        return self._sessions.get(key)

    def get_or_create(self, key: str) -> VoiceSession:
        session = self._sessions.get(key)
        if session is None:
            session = self._factory(key)
            self._sessions[key] = session
            logger.debug(f"Session created for {key}")
        return session

    def evict(self, key: str) -> Optional[VoiceSession]:
        session = self._sessions.pop(key, None)
        if session is not None:
            session.cancel_debounce()
            logger.debug(f"Session evicted for {key}")
        return session

    def __contains__(self, key: str) -> bool:
        return key in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
