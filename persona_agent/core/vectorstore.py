"""
Memory Store Module

Per-channel vector storage for conversation memories. Each conversation
channel owns exactly one collection (``Memory_<channel>``); records carry
their kind, tags, author, text and an insertion timestamp used for recency.

Architecture:
- MemoryStore: Abstract async interface used by the conversation layer
- ChromaMemoryStore: ChromaDB implementation (embedded or client/server)
- InMemoryMemoryStore: Process-local implementation for local runs and tests
- create_memory_store(): Factory selecting the backend from settings

Collections are created lazily on first use. Initialisation is idempotent
and safe to race: concurrent callers for the same channel share one lock and
``get_or_create_collection`` never produces a duplicate.

Usage:
    from persona_agent.core.vectorstore import create_memory_store

    store = create_memory_store()
    handle = await store.ensure_collection("moon")
    await store.insert(handle, record, embedding)
    latest = await store.fetch_recent(handle, limit=8, kind=MemoryKind.CHAT_HISTORY)
"""

import asyncio
import re
import time
import uuid
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar, cast

import chromadb
from chromadb.config import Settings as ChromaSettings

from persona_agent.config import MemoryStoreConfig, settings
from persona_agent.conversation.models import MemoryKind, MemoryRecord
from persona_agent.errors import CollectionNotFound, StoreUnavailable
from persona_agent.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

_MAX_NAME_LENGTH = 63


@dataclass(frozen=True)
class CollectionHandle:
    """Reference to one channel's memory collection."""
    channel_id: str
    name: str


def collection_name(channel_id: str, prefix: str = "Memory_") -> str:
    """
    Map a channel id to a valid collection name.

    Characters outside ``[A-Za-z0-9_-]`` become underscores and the result
    is clipped to 63 characters, always ending on an alphanumeric.
    """
    safe = re.sub(r"[^A-Za-z0-9_-]", "_", channel_id)
    name = f"{prefix}{safe}"[:_MAX_NAME_LENGTH]
    if not name[-1].isalnum():
        name = name[:_MAX_NAME_LENGTH - 1] + "0"
    return name


class MemoryStore(ABC):
    """
    Abstract base class for memory stores.

    All operations are async. Connection failures raise StoreUnavailable;
    operations on a deleted or never-created collection raise
    CollectionNotFound.
    """

    def __init__(self, prefix: Optional[str] = None):
        self.prefix = prefix or settings.memory.collection_prefix
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._last_ts = 0

    def handle_for(self, channel_id: str) -> CollectionHandle:
        return CollectionHandle(channel_id=channel_id, name=collection_name(channel_id, self.prefix))

    def _next_timestamp(self) -> int:
        """Nanosecond timestamp, strictly increasing within this process."""
        now = time.time_ns()
        self._last_ts = max(now, self._last_ts + 1)
        return self._last_ts

    @abstractmethod
    async def ensure_collection(self, channel_id: str) -> CollectionHandle:
        """Return the channel's collection, creating it on first use."""

    @abstractmethod
    async def collection_exists(self, channel_id: str) -> bool:
        """Check for a collection without creating it."""

    @abstractmethod
    async def insert(self, handle: CollectionHandle, record: MemoryRecord, embedding: List[float]) -> str:
        """
        Store a record with its embedding.

        Returns:
            The assigned record id. ``record.id`` and ``record.created_at``
            are filled in place.
        """

    @abstractmethod
    async def query_nearest(
        self,
        handle: CollectionHandle,
        embedding: List[float],
        limit: int,
        kind: Optional[MemoryKind] = None,
    ) -> List[MemoryRecord]:
        """Nearest records by cosine distance, closest first."""

    @abstractmethod
    async def fetch_recent(
        self,
        handle: CollectionHandle,
        limit: int,
        kind: Optional[MemoryKind] = None,
    ) -> List[MemoryRecord]:
        """Most recent records, newest first."""

    @abstractmethod
    async def delete_by_type(self, handle: CollectionHandle, kind: MemoryKind) -> None:
        """Delete every record of one kind."""

    @abstractmethod
    async def delete_collection(self, handle: CollectionHandle) -> None:
        """Drop the whole collection."""


class ChromaMemoryStore(MemoryStore):
    """
    ChromaDB implementation of MemoryStore.

    Uses an HttpClient when MEMORY_STORE_HOST is set, otherwise an embedded
    PersistentClient under MEMORY_STORE_DIR. The chromadb client is
    synchronous, so every call runs in a worker thread.

    Features:
    - Cosine HNSW space per collection
    - Kind filtering through metadata ``where`` clauses
    - Recency ordering on the stored ``created_at`` timestamp

    Example:
        store = ChromaMemoryStore()
        handle = await store.ensure_collection("moon")
        ids = await store.insert(handle, chat_message("moon", "Hi"), vector)
    """

    def __init__(self, config: Optional[MemoryStoreConfig] = None, client: Any = None):
        """
        Initialize the Chroma memory store.

        Args:
            config: Store settings (defaults to settings.memory)
            client: Pre-built chromadb client, mainly for tests
        """
        self.config = config or settings.memory
        super().__init__(self.config.collection_prefix)
        self._client = client
        self._collections: Dict[str, Any] = {}

        logger.info(
            f"Initialized ChromaMemoryStore: "
            f"{'server ' + self.config.host if self.config.is_remote else 'directory ' + self.config.directory}"
        )

    def _get_client(self) -> Any:
        if self._client is None:
            chroma_settings = ChromaSettings(anonymized_telemetry=False)
            if self.config.is_remote:
                self._client = chromadb.HttpClient(
                    host=self.config.host,
                    port=self.config.port,
                    settings=chroma_settings,
                )
            else:
                self.config.path.mkdir(parents=True, exist_ok=True)
                self._client = chromadb.PersistentClient(
                    path=self.config.directory,
                    settings=chroma_settings,
                )
        return self._client

    async def _run(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run a blocking chromadb call off the event loop."""
        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except CollectionNotFound:
            raise
        except Exception as e:
            logger.error(f"Memory store call {getattr(fn, '__name__', fn)} failed: {e}")
            raise StoreUnavailable() from e

    def _exists_sync(self, name: str) -> bool:
        for collection in self._get_client().list_collections():
            # chromadb >= 0.6 returns names, older releases return Collection objects
            existing = collection if isinstance(collection, str) else collection.name
            if existing == name:
                return True
        return False

    def _collection_sync(self, name: str) -> Any:
        collection = self._collections.get(name)
        if collection is None:
            if not self._exists_sync(name):
                raise CollectionNotFound()
            collection = self._get_client().get_collection(name=name)
            self._collections[name] = collection
        return collection

    async def ensure_collection(self, channel_id: str) -> CollectionHandle:
        handle = self.handle_for(channel_id)
        if handle.name in self._collections:
            return handle

        async with self._locks[handle.name]:
            if handle.name not in self._collections:
                collection = await self._run(
                    lambda: self._get_client().get_or_create_collection(
                        name=handle.name,
                        metadata={"hnsw:space": "cosine"},
                    )
                )
                self._collections[handle.name] = collection
                logger.debug(f"Collection ready: {handle.name}")
        return handle

    async def collection_exists(self, channel_id: str) -> bool:
        name = self.handle_for(channel_id).name
        if name in self._collections:
            return True
        return await self._run(self._exists_sync, name)

    async def insert(self, handle: CollectionHandle, record: MemoryRecord, embedding: List[float]) -> str:
        record.id = record.id or uuid.uuid4().hex
        record.created_at = record.created_at or self._next_timestamp()

        def _add() -> None:
            self._collection_sync(handle.name).add(
                ids=[record.id],
                documents=[record.text],
                embeddings=cast(Any, [embedding]),
                metadatas=cast(Any, [record.to_metadata()]),
            )

        await self._run(_add)
        logger.debug(f"Inserted {record.kind.value} by {record.author} into {handle.name}")
        return record.id

    @staticmethod
    def _where(kind: Optional[MemoryKind]) -> Optional[Dict[str, Any]]:
        return {"kind": kind.value} if kind else None

    async def query_nearest(
        self,
        handle: CollectionHandle,
        embedding: List[float],
        limit: int,
        kind: Optional[MemoryKind] = None,
    ) -> List[MemoryRecord]:
        if limit <= 0:
            return []

        def _query() -> List[MemoryRecord]:
            collection = self._collection_sync(handle.name)
            count = collection.count()
            if count == 0:
                return []

            query_kwargs: Dict[str, Any] = {
                "query_embeddings": [embedding],
                "n_results": min(limit, count),
                "include": ["documents", "metadatas", "distances"],
            }
            where = self._where(kind)
            if where:
                query_kwargs["where"] = where

            results = collection.query(**query_kwargs)
            if not results or not results.get("ids") or not results["ids"][0]:
                return []

            ids = results["ids"][0]
            documents = (results.get("documents") or [[]])[0]
            metadatas = (results.get("metadatas") or [[]])[0]
            return [
                MemoryRecord.from_metadata(record_id, documents[i], dict(metadatas[i]))
                for i, record_id in enumerate(ids)
            ]

        return await self._run(_query)

    async def fetch_recent(
        self,
        handle: CollectionHandle,
        limit: int,
        kind: Optional[MemoryKind] = None,
    ) -> List[MemoryRecord]:
        if limit <= 0:
            return []

        def _fetch() -> List[MemoryRecord]:
            collection = self._collection_sync(handle.name)
            get_kwargs: Dict[str, Any] = {"include": ["documents", "metadatas"]}
            where = self._where(kind)
            if where:
                get_kwargs["where"] = where

            results = collection.get(**get_kwargs)
            records = [
                MemoryRecord.from_metadata(record_id, results["documents"][i], dict(results["metadatas"][i]))
                for i, record_id in enumerate(results.get("ids") or [])
            ]
            records.sort(key=lambda r: r.created_at, reverse=True)
            return records[:limit]

        return await self._run(_fetch)

    async def delete_by_type(self, handle: CollectionHandle, kind: MemoryKind) -> None:
        await self._run(lambda: self._collection_sync(handle.name).delete(where={"kind": kind.value}))
        logger.debug(f"Deleted {kind.value} records from {handle.name}")

    async def delete_collection(self, handle: CollectionHandle) -> None:
        async with self._locks[handle.name]:
            if not await self._run(self._exists_sync, handle.name):
                self._collections.pop(handle.name, None)
                raise CollectionNotFound()
            await self._run(lambda: self._get_client().delete_collection(name=handle.name))
            self._collections.pop(handle.name, None)
        logger.info(f"Deleted collection {handle.name}")


class InMemoryMemoryStore(MemoryStore):
    """
    In-memory implementation of MemoryStore.

    Stores records and vectors in dictionaries with cosine similarity search.
    Data is lost on restart.
    """

    def __init__(self, prefix: Optional[str] = None):
        super().__init__(prefix)
        self._collections: Dict[str, Dict[str, Tuple[MemoryRecord, List[float]]]] = {}
        logger.info("InMemoryMemoryStore initialized")

    def _collection(self, handle: CollectionHandle) -> Dict[str, Tuple[MemoryRecord, List[float]]]:
        collection = self._collections.get(handle.name)
        if collection is None:
            raise CollectionNotFound()
        return collection

    @staticmethod
    def _cosine_similarity(vec1: List[float], vec2: List[float]) -> float:
        """Calculate cosine similarity between two vectors."""
        if len(vec1) != len(vec2):
            raise ValueError("Vectors must have the same length")

        dot_product = sum(a * b for a, b in zip(vec1, vec2))
        magnitude1 = sum(a * a for a in vec1) ** 0.5
        magnitude2 = sum(b * b for b in vec2) ** 0.5

        if magnitude1 == 0 or magnitude2 == 0:
            return 0.0

        return dot_product / (magnitude1 * magnitude2)

    @staticmethod
    def _copy(record: MemoryRecord) -> MemoryRecord:
        return MemoryRecord(**vars(record))

    async def ensure_collection(self, channel_id: str) -> CollectionHandle:
        handle = self.handle_for(channel_id)
        async with self._locks[handle.name]:
            self._collections.setdefault(handle.name, {})
        return handle

    async def collection_exists(self, channel_id: str) -> bool:
        return self.handle_for(channel_id).name in self._collections

    async def insert(self, handle: CollectionHandle, record: MemoryRecord, embedding: List[float]) -> str:
        collection = self._collection(handle)
        record.id = record.id or uuid.uuid4().hex
        record.created_at = record.created_at or self._next_timestamp()
        collection[record.id] = (self._copy(record), list(embedding))
        logger.debug(f"Inserted {record.kind.value} by {record.author} into {handle.name}")
        return record.id

    async def query_nearest(
        self,
        handle: CollectionHandle,
        embedding: List[float],
        limit: int,
        kind: Optional[MemoryKind] = None,
    ) -> List[MemoryRecord]:
        scored = [
            (self._cosine_similarity(embedding, vector), record)
            for record, vector in self._collection(handle).values()
            if kind is None or record.kind == kind
        ]
        scored.sort(key=lambda item: item[0], reverse=True)
        return [self._copy(record) for _, record in scored[:max(limit, 0)]]

    async def fetch_recent(
        self,
        handle: CollectionHandle,
        limit: int,
        kind: Optional[MemoryKind] = None,
    ) -> List[MemoryRecord]:
        records = [
            record for record, _ in self._collection(handle).values()
            if kind is None or record.kind == kind
        ]
        records.sort(key=lambda r: r.created_at, reverse=True)
        return [self._copy(record) for record in records[:max(limit, 0)]]

    async def delete_by_type(self, handle: CollectionHandle, kind: MemoryKind) -> None:
        collection = self._collection(handle)
        for record_id in [rid for rid, (record, _) in collection.items() if record.kind == kind]:
            del collection[record_id]

    async def delete_collection(self, handle: CollectionHandle) -> None:
        async with self._locks[handle.name]:
            if self._collections.pop(handle.name, None) is None:
                raise CollectionNotFound()


def create_memory_store(config: Optional[MemoryStoreConfig] = None) -> MemoryStore:
    """Build the configured memory store backend."""
    config = config or settings.memory
    config.validate()
    if config.backend == "memory":
        return InMemoryMemoryStore(config.collection_prefix)
    return ChromaMemoryStore(config)
