"""
Channel Memory

Binds the memory store and the embedding model to one conversation channel.
Everything the conversation layer persists or reads goes through here, so
every record gets its embedding at insert time. The collection handle is
cached; if the collection was deleted out of band, the next call creates it
again and retries once.
"""

from typing import Awaitable, Callable, List, Optional, TypeVar

from persona_agent.core.llm import LLMProvider
from persona_agent.core.vectorstore import CollectionHandle, MemoryStore
from persona_agent.conversation.models import (
    MemoryKind,
    MemoryRecord,
    chat_message,
    summary_record,
)
from persona_agent.errors import CollectionNotFound
from persona_agent.logger import channel_logger, get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class ChannelMemory:
    """
    Memory access for a single channel.

    Usage:
        memory = ChannelMemory(store, llm, "moon")
        await memory.save_message("moon", "Rimuru, what's your favorite food?")
        recent = await memory.recent(8)
    """

    def __init__(self, store: MemoryStore, llm: LLMProvider, channel_id: str):
        self.store = store
        self.llm = llm
        self.channel_id = channel_id
        self._handle: Optional[CollectionHandle] = None
        self._log = channel_logger(logger, channel_id)

    async def handle(self) -> CollectionHandle:
        if self._handle is None:
            self._handle = await self.store.ensure_collection(self.channel_id)
        return self._handle

    async def _with_collection(self, op: Callable[[CollectionHandle], Awaitable[T]]) -> T:
        try:
            return await op(await self.handle())
        except CollectionNotFound:
            self._log.warning("Collection vanished, recreating it")
            self._handle = None
            return await op(await self.handle())

    async def exists(self) -> bool:
        return await self.store.collection_exists(self.channel_id)

    async def save(self, record: MemoryRecord, embedding: Optional[List[float]] = None) -> MemoryRecord:
        """Embed (unless given an embedding) and insert a record."""
        if embedding is None:
            embedding = await self.llm.embed(record.text)
        await self._with_collection(lambda handle: self.store.insert(handle, record, embedding))
        return record

    async def save_message(
        self,
        author: str,
        text: str,
        embedding: Optional[List[float]] = None,
    ) -> MemoryRecord:
        record = await self.save(chat_message(author, text), embedding)
        self._log.debug(f"Saved message from {author} ({len(text)} chars)")
        return record

    async def get_summary(self) -> Optional[MemoryRecord]:
        """Newest summary record; a transient duplicate resolves to the latest."""
        summaries = await self._with_collection(
            lambda handle: self.store.fetch_recent(handle, 1, MemoryKind.CHAT_SUMMARY)
        )
        return summaries[0] if summaries else None

    async def save_summary(self, text: str) -> MemoryRecord:
        """Replace the channel summary (delete, then insert)."""
        embedding = await self.llm.embed(text)
        record = summary_record(text)

        async def replace(handle: CollectionHandle) -> None:
            await self.store.delete_by_type(handle, MemoryKind.CHAT_SUMMARY)
            await self.store.insert(handle, record, embedding)

        await self._with_collection(replace)
        self._log.debug(f"Summary replaced ({len(text)} chars)")
        return record

    async def recent(self, limit: int) -> List[MemoryRecord]:
        """Most recent chat messages, newest first."""
        return await self._with_collection(
            lambda handle: self.store.fetch_recent(handle, limit, MemoryKind.CHAT_HISTORY)
        )

    async def nearest(self, embedding: List[float], limit: int) -> List[MemoryRecord]:
        return await self._with_collection(
            lambda handle: self.store.query_nearest(handle, embedding, limit, MemoryKind.CHAT_HISTORY)
        )

    async def history(self, limit: int) -> List[MemoryRecord]:
        """Last ``limit`` chat messages in chronological order."""
        return list(reversed(await self.recent(limit)))

    async def delete(self) -> None:
        await self.store.delete_collection(self.store.handle_for(self.channel_id))
        self._handle = None
        self._log.info("Conversation memory deleted")
