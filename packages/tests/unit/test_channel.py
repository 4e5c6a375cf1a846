"""Unit tests for tpheat._channel — the bounded reading channel.

Test Techniques Used:
    - State-based Testing: FIFO order, queue size, closed flag
    - Error Condition Testing: Send after close, invalid capacity
    - Async Behaviour Testing: Back-pressure when full
"""

from __future__ import annotations

import asyncio

import pytest

from tests.fixtures.builders import reading
from tpheat._channel import ReadingChannel
from tpheat._errors import ReadingChannelClosedError


class TestReadingChannel:
    async def test_readings_arrive_in_order(self) -> None:
        channel = ReadingChannel()
        first = reading(temperature=20.0)
        second = reading(temperature=21.0)

        await channel.send(first)
        await channel.send(second)

        assert await channel.receive() == first
        assert await channel.receive() == second

    async def test_send_after_close_raises(self) -> None:
        channel = ReadingChannel()
        channel.close()

        with pytest.raises(ReadingChannelClosedError):
            await channel.send(reading())

    def test_close_is_idempotent(self) -> None:
        channel = ReadingChannel()
        channel.close()
        channel.close()

        assert channel.closed is True

    def test_default_capacity(self) -> None:
        assert ReadingChannel().capacity == 10

    @pytest.mark.parametrize("capacity", [0, -1])
    def test_rejects_non_positive_capacity(self, capacity: int) -> None:
        with pytest.raises(ValueError, match="capacity"):
            ReadingChannel(capacity)

    async def test_sender_waits_while_full(self) -> None:
        """Technique: Async Behaviour Testing — back-pressure."""
        channel = ReadingChannel(capacity=1)
        await channel.send(reading(temperature=1.0))

        blocked = asyncio.create_task(channel.send(reading(temperature=2.0)))
        await asyncio.sleep(0)
        assert not blocked.done()
        assert channel.qsize() == 1

        await channel.receive()
        await asyncio.wait_for(blocked, timeout=1.0)
        assert channel.qsize() == 1

    async def test_close_wakes_blocked_sender(self) -> None:
        """Technique: Error Condition Testing — consumer gone while full."""
        channel = ReadingChannel(capacity=1)
        await channel.send(reading(temperature=1.0))
        blocked = asyncio.create_task(channel.send(reading(temperature=2.0)))
        await asyncio.sleep(0)
        assert not blocked.done()

        channel.close()

        with pytest.raises(ReadingChannelClosedError):
            await asyncio.wait_for(blocked, timeout=1.0)
        assert channel.qsize() == 1
