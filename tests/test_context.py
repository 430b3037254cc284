"""
Tests for Channel Memory and the Context Assembler.
"""

import pytest

from persona_agent.conversation.context import ContextAssembler, dedupe
from persona_agent.conversation.models import MemoryKind, chat_message


class TestDedupe:
    """Tests for recent/relevant disjointness."""

    def test_drops_recent_ids(self):
        a, b, c = (chat_message("moon", t) for t in "abc")
        a.id, b.id, c.id = "1", "2", "3"

        assert dedupe([a, b], [c, b, a]) == [c]

    def test_keeps_relevant_order(self):
        a, b, c = (chat_message("moon", t) for t in "abc")
        a.id, b.id, c.id = "1", "2", "3"

        assert dedupe([], [c, a, b]) == [c, a, b]


class TestChannelMemory:
    """Tests for ChannelMemory."""

    @pytest.mark.asyncio
    async def test_collection_created_lazily(self, memory, store):
        assert await memory.exists() is False

        await memory.save_message("moon", "Hi")

        assert await memory.exists() is True

    @pytest.mark.asyncio
    async def test_save_embeds_text(self, memory, llm):
        await memory.save_message("moon", "Hi Rimuru")

        assert llm.embed_calls == ["Hi Rimuru"]

    @pytest.mark.asyncio
    async def test_save_with_given_embedding(self, memory, llm):
        await memory.save_message("moon", "Hi", embedding=[1.0] * 27)

        assert llm.embed_calls == []

    @pytest.mark.asyncio
    async def test_summary_is_replaced(self, memory, store):
        await memory.save_summary("first")
        await memory.save_summary("second")

        handle = await memory.handle()
        summaries = await store.fetch_recent(handle, 10, MemoryKind.CHAT_SUMMARY)
        assert [s.text for s in summaries] == ["second"]
        assert (await memory.get_summary()).text == "second"

    @pytest.mark.asyncio
    async def test_history_is_chronological(self, memory):
        for text in ["one", "two", "three"]:
            await memory.save_message("moon", text)

        assert [r.text for r in await memory.history(2)] == ["two", "three"]

    @pytest.mark.asyncio
    async def test_summaries_not_in_history(self, memory):
        await memory.save_message("moon", "one")
        await memory.save_summary("summary")

        assert [r.text for r in await memory.history(10)] == ["one"]

    @pytest.mark.asyncio
    async def test_deleted_collection_is_recreated(self, memory, store):
        await memory.save_message("moon", "before")
        await store.delete_collection(await memory.handle())

        await memory.save_message("moon", "after")
        await memory.save_summary("fresh summary")

        assert await memory.exists() is True
        assert [r.text for r in await memory.history(10)] == ["after"]
        assert (await memory.get_summary()).text == "fresh summary"


class TestContextAssembler:
    """Tests for hybrid retrieval."""

    @pytest.mark.asyncio
    async def test_recent_oldest_first(self, memory, llm):
        for i in range(10):
            await memory.save_message("moon", f"line {i}")

        context = await ContextAssembler(memory, llm).assemble("line", 3, 0)

        assert [r.text for r in context.recent] == ["line 7", "line 8", "line 9"]
        assert context.relevant == []

    @pytest.mark.asyncio
    async def test_relevant_excludes_recent(self, memory, llm):
        await memory.save_message("moon", "We visited the dwarven kingdom")
        for i in range(6):
            await memory.save_message("moon", f"small talk {i}")

        context = await ContextAssembler(memory, llm).assemble("Tell me about the dwarven kingdom", 3, 4)

        recent_ids = {r.id for r in context.recent}
        assert all(r.id not in recent_ids for r in context.relevant)
        assert "We visited the dwarven kingdom" in [r.text for r in context.relevant]

    @pytest.mark.asyncio
    async def test_no_prompt_embedding_without_relevant(self, memory, llm):
        await memory.save_message("moon", "Hi")
        llm.embed_calls.clear()

        await ContextAssembler(memory, llm).assemble("Hello?", 5, 0)

        assert llm.embed_calls == []

    @pytest.mark.asyncio
    async def test_reuses_given_embedding(self, memory, llm):
        await memory.save_message("moon", "Hi")
        llm.embed_calls.clear()

        await ContextAssembler(memory, llm).assemble("Hello?", 5, 5, prompt_embedding=[1.0] * 27)

        assert llm.embed_calls == []

    @pytest.mark.asyncio
    async def test_includes_summary(self, memory, llm):
        await memory.save_summary("They met in Tempest.")

        context = await ContextAssembler(memory, llm).assemble("Hi", 8, 4)

        assert context.summary.text == "They met in Tempest."
        assert context.recent == []
