import asyncio

import pytest

from culture_interpreter.llm.channel import StreamChannel


def test_items_arrive_in_order_then_channel_closes():
    async def producer(channel):
        for i in range(10):
            await channel.send(i)

    async def run():
        return [item async for item in StreamChannel(maxsize=2).stream(producer)]

    assert asyncio.run(run()) == list(range(10))


def test_producer_failure_follows_sent_items():
    async def producer(channel):
        await channel.send("a")
        await channel.send("b")
        raise RuntimeError("upstream broke")

    received = []

    async def run():
        async for item in StreamChannel().stream(producer):
            received.append(item)

    with pytest.raises(RuntimeError):
        asyncio.run(run())
    assert received == ["a", "b"]


def test_leaving_early_cancels_the_producer():
    state = {"cancelled": False}

    async def producer(channel):
        try:
            await channel.send(1)
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            state["cancelled"] = True
            raise

    async def run():
        stream = StreamChannel().stream(producer)
        async for item in stream:
            assert item == 1
            break
        await stream.aclose()

    asyncio.run(run())
    assert state["cancelled"] is True
