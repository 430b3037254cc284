"""
Turn-Gate

Decides whether the persona should answer a message and whether a voice
conversation has ended. Both questions go to the model as yes/no prompts.

The verdict is read from the tail of the response: "yes" anywhere in the
last ``verdict_window_chars`` characters (20 by default) counts as yes. The
model may reason before answering, but the verdict has to come last. This
is a heuristic: a tail such as "yes, but actually no" still reads as yes.
"""

from typing import Optional

from persona_agent.config import ConversationConfig, settings
from persona_agent.core.llm import LLMProvider
from persona_agent.conversation.context import ContextAssembler
from persona_agent.conversation.models import Personality
from persona_agent.conversation.prompts import (
    convo_end_system_prompt,
    render_context,
    render_gate_question,
    should_respond_system_prompt,
)
from persona_agent.errors import DownstreamUnavailable
from persona_agent.logger import channel_logger, get_logger

logger = get_logger(__name__)


def read_verdict(response: str, window: int = 20) -> bool:
    """True when "yes" appears in the trailing ``window`` characters."""
    return "yes" in response.rstrip()[-window:].lower()


class TurnGate:
    """
    Should-respond and conversation-end judgments for one channel.

    Inference or store failures propagate by default. With
    ``failure_declines`` set, a failed should-respond check counts as "no"
    and a failed conversation-end check counts as "ended", which drops the
    session out of listening mode.

    Usage:
        gate = TurnGate(assembler, llm)
        if await gate.should_respond(prompt, "moon", personality):
            ...
    """

    def __init__(
        self,
        assembler: ContextAssembler,
        llm: LLMProvider,
        config: Optional[ConversationConfig] = None,
        failure_declines: Optional[bool] = None,
    ):
        self.assembler = assembler
        self.llm = llm
        self.config = config or settings.conversation
        self.failure_declines = (
            self.config.gate_failure_declines if failure_declines is None else failure_declines
        )
        self._log = channel_logger(logger, assembler.memory.channel_id)

    async def _ask(
        self,
        prompt: str,
        speaker_id: str,
        system_prompt: str,
        question: str,
        recent_count: int,
        relevant_count: int,
    ) -> bool:
        context = await self.assembler.assemble(prompt, recent_count, relevant_count)
        gate_prompt = render_gate_question(render_context(context), prompt, speaker_id, question)
        response = await self.llm.generate(gate_prompt, system=system_prompt)
        verdict = read_verdict(response, self.config.verdict_window_chars)
        self._log.debug(f"Gate verdict={verdict} for tail {response.rstrip()[-self.config.verdict_window_chars:]!r}")
        return verdict

    async def should_respond(
        self,
        prompt: str,
        speaker_id: str,
        personality: Personality,
        system_prompt: Optional[str] = None,
    ) -> bool:
        """Ask whether ``personality`` should reply to ``prompt``."""
        try:
            verdict = await self._ask(
                prompt,
                speaker_id,
                system_prompt or should_respond_system_prompt(personality),
                f"Should {personality.name} respond?",
                self.config.gate_recent_count,
                self.config.gate_relevant_count,
            )
        except DownstreamUnavailable as e:
            if not self.failure_declines:
                raise
            self._log.warning(f"Should-respond check failed, declining: {e}")
            return False

        self._log.info(f"Should respond to {speaker_id}: {verdict}")
        return verdict

    async def is_convo_end(
        self,
        prompt: str,
        speaker_id: str,
        system_prompt: str,
    ) -> bool:
        """Ask whether the exchange ending with ``prompt`` closed the conversation."""
        try:
            verdict = await self._ask(
                prompt,
                speaker_id,
                system_prompt,
                "Has the conversation ended?",
                self.config.gate_recent_count,
                0,
            )
        except DownstreamUnavailable as e:
            if not self.failure_declines:
                raise
            self._log.warning(f"Conversation-end check failed, treating as ended: {e}")
            return True

        self._log.info(f"Conversation ended: {verdict}")
        return verdict

    async def is_convo_end_for(self, prompt: str, speaker_id: str, personality: Personality) -> bool:
        return await self.is_convo_end(prompt, speaker_id, convo_end_system_prompt(personality))
