import asyncio

import pytest

from offline_regions.streams import Observable, combine_latest

from conftest import settle


class TestObservable:
    @pytest.mark.asyncio
    async def test_subscriber_gets_current_value_first(self):
        source = Observable([1])
        received = []

        async def consume():
            async for value in source.subscribe():
                received.append(value)

        task = asyncio.create_task(consume())
        await settle(5)
        source.emit([1, 2])
        await settle(5)
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

        assert received == [[1], [1, 2]]
        assert source.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_repeated_values_are_delivered_by_default(self):
        source = Observable("a")
        received = []

        async def consume():
            async for value in source.subscribe():
                received.append(value)

        task = asyncio.create_task(consume())
        await settle(5)
        source.emit("a")
        await settle(5)
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

        assert received == ["a", "a"]

    def test_distinct_until_changed(self):
        source = Observable(1, distinct_until_changed=True)
        source.emit(1)
        assert source.value == 1
        source.emit(2)
        assert source.value == 2


class TestCombineLatest:
    @pytest.mark.asyncio
    async def test_emits_pairs_of_latest_values(self):
        first = Observable("a1")
        second = Observable("b1")
        received = []

        async def consume():
            async for pair in combine_latest(first, second):
                received.append(pair)

        task = asyncio.create_task(consume())
        await settle()
        first.emit("a2")
        await settle()
        second.emit("b2")
        await settle()
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

        assert received[-1] == ("a2", "b2")
        assert ("a2", "b1") in received
        assert first.subscriber_count == 0
        assert second.subscriber_count == 0
