"""
Turn Orchestrator

Drives one conversational turn for a channel:

1. Assemble grounding (summary, 8 recent and 4 relevant memories)
2. Stream a chat completion over the ordered message history
3. Publish every fragment and cut the stream into sentences for the sink
4. Persist the full reply as a "Self" memory
5. Refresh the rolling summary (best effort)

The orchestrator is not safe to run twice at once for the same channel; the
voice session serialises turns. The returned text is the raw model output,
including any reasoning block. Stripping it is up to whoever presents the
reply.

Usage:
    orchestrator = TurnOrchestrator(ChannelMemory(store, llm, "moon"), llm)
    result = await orchestrator.run_turn(prompt, "moon", Personality(), stream_sink=speak)
"""

import time
from typing import Awaitable, Callable, List, Optional

from persona_agent.config import ConversationConfig, ToolsConfig, settings
from persona_agent.core.llm import LLMProvider, Message
from persona_agent.conversation.chunker import SentenceChunker
from persona_agent.conversation.context import ContextAssembler
from persona_agent.conversation.events import (
    EventBus,
    EventHandler,
    MessageInProgressEvent,
    SentenceReadyEvent,
)
from persona_agent.conversation.gate import TurnGate
from persona_agent.conversation.memory import ChannelMemory
from persona_agent.conversation.models import GroundedContext, Personality, SELF_AUTHOR, TurnResult
from persona_agent.conversation.prompts import (
    TOOLS_SYSTEM_PROMPT,
    render_summary_request,
    render_system_prompt,
    summary_system_prompt,
)
from persona_agent.errors import DownstreamUnavailable
from persona_agent.logger import channel_logger, get_logger
from persona_agent.services.tools import DEFAULT_TOOL, ToolRegistry, ToolResult

logger = get_logger(__name__)

StreamSink = Callable[[str], Awaitable[None]]


def build_messages(
    system_prompt: str,
    context: GroundedContext,
    prompt: str,
    speaker_id: str,
) -> List[Message]:
    """
    Order the chat history for generation.

    The system prompt comes first, then each recent memory: the agent's own
    lines as ``assistant``, everyone else's as ``user`` prefixed with the
    author. The prompt is appended unless it is already the latest memory.
    """
    messages = [Message(role="system", content=system_prompt)]
    for record in context.recent:
        if record.is_self:
            messages.append(Message(role="assistant", content=record.text))
        else:
            messages.append(Message(role="user", content=f"{record.author}: {record.text}"))

    latest = context.recent[-1] if context.recent else None
    if latest is None or latest.is_self or latest.text != prompt or latest.author != speaker_id:
        messages.append(Message(role="user", content=f"{speaker_id}: {prompt}"))
    return messages


class TurnOrchestrator:
    """
    One channel's turn driver.

    Features:
    - Progress observers via subscribe_progress()
    - Sentence-level streaming to an async sink
    - Rolling summary with length-triggered compression
    - Optional tool evaluation whose results can feed the next reply

    Attributes:
        memory: The channel's memory
        assembler: Grounding retrieval
        gate: Should-respond and conversation-end judgments
    """

    def __init__(
        self,
        memory: ChannelMemory,
        llm: LLMProvider,
        config: Optional[ConversationConfig] = None,
        tools: Optional[ToolRegistry] = None,
        tools_config: Optional[ToolsConfig] = None,
    ):
        self.memory = memory
        self.llm = llm
        self.config = config or settings.conversation
        self.tools = tools
        self.tools_config = tools_config or settings.tools
        self.assembler = ContextAssembler(memory, llm)
        self.gate = TurnGate(self.assembler, llm, self.config)
        self.events = EventBus()
        self._pending_tool_results: List[str] = []
        self._log = channel_logger(logger, memory.channel_id)

    @property
    def channel_id(self) -> str:
        return self.memory.channel_id

    # ========================================================================
    # Observers
    # ========================================================================

    def subscribe_progress(self, handler: EventHandler) -> None:
        """Receive MessageInProgressEvent and SentenceReadyEvent during turns."""
        self.events.subscribe(MessageInProgressEvent, handler)
        self.events.subscribe(SentenceReadyEvent, handler)

    def unsubscribe_progress(self, handler: EventHandler) -> None:
        self.events.unsubscribe(MessageInProgressEvent, handler)
        self.events.unsubscribe(SentenceReadyEvent, handler)

    # ========================================================================
    # Turn
    # ========================================================================

    async def run_turn(
        self,
        prompt: str,
        speaker_id: str,
        personality: Personality,
        stream_sink: Optional[StreamSink] = None,
    ) -> TurnResult:
        """
        Run one full turn.

        Args:
            prompt: The message being answered
            speaker_id: Who sent it
            personality: Who the agent plays
            stream_sink: Receives each completed sentence as soon as it is known

        Returns:
            TurnResult with the untrimmed reply and the grounded system prompt

        Raises:
            DownstreamUnavailable: Retrieval, generation or reply persistence failed.
                Sentences already sent to the sink stand.
        """
        start_time = time.time()
        self._log.info(f"Turn started for {speaker_id} as {personality.name}")

        context = await self.assembler.assemble(
            prompt, self.config.turn_recent_count, self.config.turn_relevant_count
        )
        tool_results, self._pending_tool_results = self._pending_tool_results, []
        system_prompt = render_system_prompt(personality, context, include_recent=False, tool_results=tool_results)
        messages = build_messages(system_prompt, context, prompt, speaker_id)

        chunker = SentenceChunker()
        text = ""

        async def emit(sentence: str) -> None:
            await self.events.publish(
                SentenceReadyEvent(channel_id=self.channel_id, sentence=sentence, index=chunker.emitted)
            )
            if stream_sink is not None:
                await stream_sink(sentence)

        async for fragment in self.llm.stream_chat(messages):
            text += fragment
            await self.events.publish(
                MessageInProgressEvent(channel_id=self.channel_id, fragment=fragment, accumulated_text=text)
            )
            for sentence in chunker.feed(fragment):
                await emit(sentence)
            if not fragment:
                tail = chunker.flush()
                if tail:
                    await emit(tail)

        tail = chunker.flush()
        if tail:
            await emit(tail)

        await self.memory.save_message(SELF_AUTHOR, text)

        summary_updated = await self.refresh_summary(prompt, text, personality, speaker_id)

        self._log.info(
            f"Turn finished in {(time.time() - start_time) * 1000:.0f}ms: "
            f"{len(text)} chars, {chunker.emitted} sentences"
        )
        return TurnResult(text=text, grounded_prompt=system_prompt, summary_updated=summary_updated)

    # ========================================================================
    # Summary
    # ========================================================================

    async def summarize_events(
        self,
        last_prompt: str,
        last_reply: str,
        personality: Personality,
        speaker_id: str = "User",
    ) -> str:
        """Ask the model for an opening or updated summary of the conversation."""
        existing = await self.memory.get_summary()
        request = render_summary_request(
            personality,
            speaker_id,
            last_prompt,
            last_reply,
            existing.text if existing else None,
            self.config.summary_compress_threshold,
        )
        return (await self.llm.generate(request, system=summary_system_prompt(personality))).strip()

    async def refresh_summary(
        self,
        last_prompt: str,
        last_reply: str,
        personality: Personality,
        speaker_id: str,
    ) -> bool:
        """
        Summarise and replace the stored summary.

        A failure leaves the previous summary in place; the next turn's
        update covers the gap.
        """
        try:
            summary = await self.summarize_events(last_prompt, last_reply, personality, speaker_id)
            if summary:
                await self.memory.save_summary(summary)
            return bool(summary)
        except DownstreamUnavailable as e:
            self._log.warning(f"Summary refresh failed, keeping previous summary: {e}")
            return False

    # ========================================================================
    # Tools
    # ========================================================================

    async def use_tools(self, prompt: str) -> List[ToolResult]:
        """
        Let the model pick tools for ``prompt`` and run them.

        With TOOLS_MERGE_RESULTS on, results of real actions are added to the
        system prompt of the next turn; otherwise they are only logged.
        """
        if self.tools is None or not self.tools_config.enabled:
            return []

        response = await self.llm.chat(
            [Message(role="system", content=TOOLS_SYSTEM_PROMPT), Message(role="user", content=prompt)],
            tools=self.tools.schemas(),
        )

        results: List[ToolResult] = []
        for call in response.tool_calls:
            results.append(await self.tools.execute(call.name, call.arguments))

        for result in results:
            if result.name == DEFAULT_TOOL:
                continue
            self._log.info(f"Tool result: {result.describe()}")
            if self.tools_config.merge_results:
                self._pending_tool_results.append(result.describe())
        return results
