"""
Publication engine tests against MemoryMessageStore.

Covers the top-N window (initial batch, eviction, refill), the
distinct-source projection, and observer release on close.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta

from backend.models.message import MessageQuery
from backend.services.publication import Delta, MessagesPublication, MessageWindow, SourcesPublication
from engine.kernel.predicate import SortSpec
from engine.kernel.store import MemoryMessageStore
from engine.kernel.types import Message


def at(seconds: float) -> datetime:
    return datetime(2024, 3, 1, 9, 0, tzinfo=UTC) + timedelta(seconds=seconds)


async def next_delta(deltas) -> Delta:
    return await asyncio.wait_for(anext(deltas), timeout=1)


async def until_ready(deltas) -> list[Delta]:
    collected = []
    while True:
        delta = await next_delta(deltas)
        if delta.type == "ready":
            return collected
        collected.append(delta)


class TestMessageWindow:
    def message(self, id: str, seconds: float) -> Message:
        return Message(id=id, type="info", source="api", text="x", created_at=at(seconds))

    def test_add_reports_successor(self):
        window = MessageWindow(SortSpec("desc"), limit=3)
        window.add(self.message("old", 1))
        deltas = window.add(self.message("new", 2))
        assert deltas == [Delta("added", "messages", "new", deltas[0].fields, before="old")]

    def test_full_window_evicts_tail(self):
        window = MessageWindow(SortSpec("desc"), limit=2)
        window.add(self.message("a", 1))
        window.add(self.message("b", 2))

        deltas = window.add(self.message("c", 3))

        assert [(d.type, d.id) for d in deltas] == [("added", "c"), ("removed", "a")]
        assert [m.id for m in window.items] == ["c", "b"]

    def test_record_past_the_tail_is_ignored(self):
        window = MessageWindow(SortSpec("desc"), limit=2)
        window.add(self.message("a", 5))
        window.add(self.message("b", 6))
        assert window.add(self.message("old", 1)) == []

    def test_duplicate_add_is_ignored(self):
        window = MessageWindow(SortSpec("asc"), limit=2)
        window.add(self.message("a", 1))
        assert window.add(self.message("a", 1)) == []


class TestMessagesPublication:
    async def test_initial_batch_then_ready(self):
        store = MemoryMessageStore()
        for i in range(5):
            await store.insert("info", "api", f"m{i}", at(i))

        deltas = MessagesPublication(store, MessageQuery(limit=3)).run()
        initial = await until_ready(deltas)
        await deltas.aclose()

        assert [d.fields["text"] for d in initial] == ["m4", "m3", "m2"]
        assert all(d.type == "added" for d in initial)

    async def test_live_insert_shifts_window(self):
        store = MemoryMessageStore()
        first = await store.insert("info", "api", "first", at(1))
        await store.insert("info", "api", "second", at(2))

        deltas = MessagesPublication(store, MessageQuery(limit=2)).run()
        await until_ready(deltas)
        newest = await store.insert("info", "api", "third", at(3))

        added = await next_delta(deltas)
        removed = await next_delta(deltas)
        await deltas.aclose()

        assert (added.type, added.id) == ("added", newest.id)
        assert (removed.type, removed.id) == ("removed", first.id)

    async def test_filtered_params(self):
        store = MemoryMessageStore()
        deltas = MessagesPublication(store, MessageQuery.from_raw({"types": "error", "limit": 5})).run()
        await until_ready(deltas)

        await store.insert("info", "api", "skip", at(1))
        err = await store.insert("error", "api", "keep", at(2))

        delta = await next_delta(deltas)
        await deltas.aclose()
        assert delta.id == err.id

    async def test_removal_refills_window(self):
        store = MemoryMessageStore()
        oldest = await store.insert("info", "api", "oldest", at(1))
        await store.insert("info", "api", "middle", at(2))
        top = await store.insert("info", "api", "top", at(3))

        deltas = MessagesPublication(store, MessageQuery(limit=2)).run()
        await until_ready(deltas)
        await store.remove(top.id)

        removed = await next_delta(deltas)
        refilled = await next_delta(deltas)
        await deltas.aclose()

        assert (removed.type, removed.id) == ("removed", top.id)
        assert (refilled.type, refilled.id) == ("added", oldest.id)

    async def test_close_releases_observer(self):
        store = MemoryMessageStore()
        deltas = MessagesPublication(store, MessageQuery()).run()
        await until_ready(deltas)
        assert store.observer_count == 1

        await deltas.aclose()

        assert store.observer_count == 0

    async def test_cancelled_consumer_releases_observer(self):
        store = MemoryMessageStore()
        deltas = MessagesPublication(store, MessageQuery()).run()

        async def consume():
            async for _ in deltas:
                pass

        task = asyncio.create_task(consume())
        await asyncio.sleep(0.01)
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        await deltas.aclose()

        assert store.observer_count == 0


class TestSourcesPublication:
    async def test_each_source_announced_once_in_first_occurrence_order(self):
        store = MemoryMessageStore()
        deltas = SourcesPublication(store).run()
        assert await until_ready(deltas) == []

        for source in ["a", "b", "a", "c"]:
            await store.insert("info", source, "x")

        announced = [(await next_delta(deltas)).id for _ in range(3)]
        await store.insert("info", "a", "again")
        await store.insert("info", "d", "x")
        last = await next_delta(deltas)
        await deltas.aclose()

        assert announced == ["a", "b", "c"]
        assert last.id == "d"

    async def test_existing_sources_arrive_before_ready(self):
        store = MemoryMessageStore()
        await store.insert("info", "cron", "x", at(1))
        await store.insert("info", "api", "x", at(2))
        await store.insert("info", "cron", "x", at(3))

        deltas = SourcesPublication(store).run()
        initial = await until_ready(deltas)
        await deltas.aclose()

        assert [d.id for d in initial] == ["cron", "api"]
        assert initial[0].fields == {"value": "cron"}

    async def test_instances_do_not_share_state(self):
        store = MemoryMessageStore()
        await store.insert("info", "api", "x")
        first, second = SourcesPublication(store), SourcesPublication(store)

        for publication in (first, second):
            deltas = publication.run()
            assert [d.id for d in await until_ready(deltas)] == ["api"]
            await deltas.aclose()

    async def test_source_inserted_during_seed_is_announced_once(self):
        class SlowSeedStore(MemoryMessageStore):
            async def distinct_sources(self):
                seed = await super().distinct_sources()
                # Lands after the snapshot, before the seed is emitted
                await self.insert("info", "late", "x")
                await self.insert("info", "api", "x")
                return seed

        store = SlowSeedStore()
        await store.insert("info", "api", "x")

        deltas = SourcesPublication(store).run()
        initial = await until_ready(deltas)
        await store.insert("info", "late", "again")
        await store.insert("info", "next", "x")
        following = await next_delta(deltas)
        await deltas.aclose()

        assert [d.id for d in initial] == ["api", "late"]
        assert following.id == "next"
        assert store.observer_count == 0
