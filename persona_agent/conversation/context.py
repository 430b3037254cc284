"""
Context Assembler

Builds the grounding for a prompt from three sources:
- the rolling conversation summary
- the most recent chat messages (immediate coherence)
- the chat messages semantically nearest to the prompt (older facts such
  as places and past events that recency alone would drop)

Relevant memories never repeat a recent one; recent context wins.
"""

import time
from typing import List, Optional

from persona_agent.core.llm import LLMProvider
from persona_agent.conversation.memory import ChannelMemory
from persona_agent.conversation.models import GroundedContext, MemoryRecord
from persona_agent.logger import channel_logger, get_logger

logger = get_logger(__name__)


def dedupe(recent: List[MemoryRecord], relevant: List[MemoryRecord]) -> List[MemoryRecord]:
    """
    Drop relevant records that are already in the recent set.

    Records are matched by store id. The relevant order is preserved.
    """
    recent_ids = {record.id for record in recent}
    return [record for record in relevant if record.id not in recent_ids]


class ContextAssembler:
    """
    Hybrid recency + semantic retrieval for one channel.

    Usage:
        assembler = ContextAssembler(memory, llm)
        context = await assembler.assemble(prompt, recent_count=8, relevant_count=4)
    """

    def __init__(self, memory: ChannelMemory, llm: LLMProvider):
        self.memory = memory
        self.llm = llm
        self._log = channel_logger(logger, memory.channel_id)

    async def assemble(
        self,
        prompt: str,
        recent_count: int,
        relevant_count: int,
        prompt_embedding: Optional[List[float]] = None,
    ) -> GroundedContext:
        """
        Retrieve grounding for ``prompt``.

        Args:
            prompt: The message being answered
            recent_count: How many recent messages to include
            relevant_count: How many nearest messages to query
            prompt_embedding: Reuse an embedding computed by the caller

        Returns:
            GroundedContext with recent records oldest-first
        """
        start_time = time.time()

        summary = await self.memory.get_summary()
        recent_newest_first = await self.memory.recent(recent_count)
        recent = list(reversed(recent_newest_first))

        relevant: List[MemoryRecord] = []
        if relevant_count > 0:
            if prompt_embedding is None:
                prompt_embedding = await self.llm.embed(prompt)
            nearest = await self.memory.nearest(prompt_embedding, relevant_count)
            relevant = dedupe(recent, nearest)

        self._log.debug(
            f"Context assembled in {(time.time() - start_time) * 1000:.0f}ms: "
            f"summary={'yes' if summary else 'no'}, recent={len(recent)}, relevant={len(relevant)}"
        )
        return GroundedContext(summary=summary, recent=recent, relevant=relevant)
