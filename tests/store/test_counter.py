"""Tests for CounterStore: atomic increments and title refresh."""

import asyncio

import pytest

from threadline.store.counter import CounterStore


class TestCounter:
    @pytest.mark.asyncio
    async def test_first_hit_counts_one(self, storage):
        assert await CounterStore(storage).increment("/post/1", "Post") == 1

    @pytest.mark.asyncio
    async def test_concurrent_increments_are_not_lost(self, storage):
        counter = CounterStore(storage)
        await asyncio.gather(*(counter.increment("/post/1", "Post") for _ in range(20)))
        assert await counter.increment("/post/1", "Post") == 21

    @pytest.mark.asyncio
    async def test_title_follows_latest_hit(self, storage):
        from sqlalchemy import select

        from threadline.models import Counter

        counter = CounterStore(storage)
        await counter.increment("/post/1", "Old title")
        await counter.increment("/post/1", "New title")

        async with storage.session() as session:
            row = (await session.execute(select(Counter).where(Counter.url == "/post/1"))).scalar_one()
        assert row.title == "New title"
        assert row.time == 2

    @pytest.mark.asyncio
    async def test_urls_are_counted_separately(self, storage):
        counter = CounterStore(storage)
        await counter.increment("/a")
        await counter.increment("/a")
        assert await counter.increment("/b") == 1
