"""
Tests for voice sessions: debounce, listening mode and the busy guard.
"""

import asyncio

import pytest

from persona_agent.conversation.events import SessionStateEvent
from persona_agent.conversation.models import MemoryKind
from persona_agent.conversation.orchestrator import TurnOrchestrator
from persona_agent.conversation.session import (
    SessionRegistry,
    SessionState,
    VoiceOutcome,
    VoiceSession,
)


@pytest.fixture
def session(memory, llm, convo_config):
    return VoiceSession(TurnOrchestrator(memory, llm, convo_config), convo_config)


async def wait_for_state(session, state, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while session.state != state:
        if loop.time() > deadline:
            raise AssertionError(f"session never reached {state}")
        await asyncio.sleep(0.005)


class TestDebounce:
    """Tests for input coalescing."""

    @pytest.mark.asyncio
    async def test_newest_input_wins(self, session, llm, personality):
        first = asyncio.create_task(session.submit("Rimuru, are", "moon", personality))
        await asyncio.sleep(0.01)
        second = asyncio.create_task(session.submit("Rimuru, are you there?", "moon", personality))

        first_turn, second_turn = await asyncio.gather(first, second)

        assert first_turn.outcome == VoiceOutcome.DEBOUNCED
        assert second_turn.outcome == VoiceOutcome.REPLIED
        gate_calls = llm.calls_of("should_respond")
        assert len(gate_calls) == 1
        assert '"Rimuru, are you there?"' in gate_calls[0]["prompt"]
        assert len(llm.stream_calls) == 1

    @pytest.mark.asyncio
    async def test_cancel_debounce(self, session, personality):
        task = asyncio.create_task(session.submit("hello", "moon", personality))
        await wait_for_state(session, SessionState.DEBOUNCING)

        assert session.cancel_debounce() is True
        assert (await task).outcome == VoiceOutcome.DEBOUNCED
        assert session.cancel_debounce() is False
        assert session.state == SessionState.IDLE


class TestGateAndListening:
    """Tests for gating and listening mode."""

    @pytest.mark.asyncio
    async def test_declined(self, session, llm, memory, personality):
        llm.gate_answer = "no"

        turn = await session.submit("Shion, come here", "moon", personality)

        assert turn.outcome == VoiceOutcome.DECLINED
        assert turn.result is None
        assert session.state == SessionState.IDLE
        assert llm.stream_calls == []

    @pytest.mark.asyncio
    async def test_reply_enters_listening_mode(self, session, llm, memory, personality):
        turn = await session.submit("Rimuru, what's your favorite food?", "moon", personality)

        assert turn.outcome == VoiceOutcome.REPLIED
        assert turn.result.text == "Hello there. I love food."
        assert session.is_listening_mode is True
        assert session.state == SessionState.LISTENING
        history = await memory.history(10)
        assert [r.author for r in history] == ["moon", "Self"]

    @pytest.mark.asyncio
    async def test_listening_mode_skips_gate(self, session, llm, personality):
        await session.submit("Rimuru, hi!", "moon", personality)
        llm.gate_answer = "no"

        turn = await session.submit("And what about drinks?", "moon", personality)

        assert turn.outcome == VoiceOutcome.REPLIED
        assert len(llm.calls_of("should_respond")) == 1

    @pytest.mark.asyncio
    async def test_conversation_end_leaves_listening_mode(self, session, llm, personality):
        await session.submit("Rimuru, hi!", "moon", personality)
        llm.convo_end_answer = "They said goodbye, so yes"

        await session.submit("Bye Rimuru!", "moon", personality)

        assert session.is_listening_mode is False
        assert session.state == SessionState.IDLE

    @pytest.mark.asyncio
    async def test_reset(self, session, personality):
        await session.submit("Rimuru, hi!", "moon", personality)

        await session.reset()

        assert session.is_listening_mode is False
        assert session.state == SessionState.IDLE

    @pytest.mark.asyncio
    async def test_state_events(self, session, personality):
        states = []

        async def observe(event):
            states.append(event.state)

        session.orchestrator.events.subscribe(SessionStateEvent, observe)
        await session.submit("Rimuru, hi!", "moon", personality)

        assert states == ["DEBOUNCING", "PROCESSING", "LISTENING"]


class TestBusyGuard:
    """Tests for input arriving while a turn runs."""

    @pytest.mark.asyncio
    async def test_input_saved_while_processing(self, session, llm, memory, personality):
        llm.stream_delay = 0.02
        running = asyncio.create_task(session.submit("Rimuru, tell me a story", "moon", personality))
        await wait_for_state(session, SessionState.PROCESSING)

        busy = await session.submit("wait, one more thing", "moon", personality)
        replied = await running

        assert busy.outcome == VoiceOutcome.BUSY
        assert replied.outcome == VoiceOutcome.REPLIED
        assert len(llm.stream_calls) == 1
        handle = await memory.handle()
        texts = [r.text for r in await memory.store.fetch_recent(handle, 10, MemoryKind.CHAT_HISTORY)]
        assert "wait, one more thing" in texts

    @pytest.mark.asyncio
    async def test_processing_waits_for_channel_lock(self, memory, llm, convo_config, personality):
        lock = asyncio.Lock()
        session = VoiceSession(TurnOrchestrator(memory, llm, convo_config), convo_config, lock=lock)

        await lock.acquire()
        running = asyncio.create_task(session.submit("Rimuru, hi!", "moon", personality))
        await wait_for_state(session, SessionState.PROCESSING)
        await asyncio.sleep(0.05)

        assert llm.calls_of("should_respond") == []
        lock.release()
        turn = await running

        assert turn.outcome == VoiceOutcome.REPLIED
        assert session.state == SessionState.LISTENING


class TestSessionRegistry:
    """Tests for SessionRegistry."""

    def test_get_or_create(self, session):
        created = []

        def factory(key):
            created.append(key)
            return session

        registry = SessionRegistry(factory)

        assert registry.get_or_create("moon") is registry.get_or_create("moon")
        assert created == ["moon"]
        assert "moon" in registry
        assert len(registry) == 1

    def test_evict(self, session):
        registry = SessionRegistry(lambda key: session)
        registry.get_or_create("moon")

        assert registry.evict("moon") is session
        assert registry.get("moon") is None
        assert registry.evict("moon") is None
