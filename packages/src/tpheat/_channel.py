"""Bounded channel carrying readings from notification readers to the registry.

Many readers send, exactly one consumer receives.  The consumer closes
the channel when it stops; any later :meth:`ReadingChannel.send` raises
:class:`~tpheat._errors.ReadingChannelClosedError`, which readers treat
as fatal.
"""

from __future__ import annotations

import asyncio

from tpheat._errors import ReadingChannelClosedError
from tpheat._models import SensorReading


class ReadingChannel:
    """FIFO channel with a fixed capacity.

    Senders wait while it is full.  Closing the channel wakes waiting
    senders with :class:`~tpheat._errors.ReadingChannelClosedError`.
    """

    def __init__(self, capacity: int = 10) -> None:
        if capacity < 1:
            msg = f"Channel capacity must be positive, got {capacity}"
            raise ValueError(msg)
        self._queue: asyncio.Queue[SensorReading] = asyncio.Queue(maxsize=capacity)
        self._closed = asyncio.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    @property
    def capacity(self) -> int:
        return self._queue.maxsize

    def qsize(self) -> int:
        return self._queue.qsize()

    async def send(self, reading: SensorReading) -> None:
        """Queue *reading* for the consumer.

        Raises:
            ReadingChannelClosedError: If the consumer has gone away.
        """
        if self._closed.is_set():
            raise self._closed_error(reading)
        if not self._queue.full():
            self._queue.put_nowait(reading)
            return

        put = asyncio.create_task(self._queue.put(reading))
        closed = asyncio.create_task(self._closed.wait())
        try:
            done, _ = await asyncio.wait(
                {put, closed}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            for task in (put, closed):
                if not task.done():
                    task.cancel()
        if put in done:
            return
        raise self._closed_error(reading)

    async def receive(self) -> SensorReading:
        """Wait for the next reading."""
        return await self._queue.get()

    def close(self) -> None:
        """Mark the consumer as gone. Idempotent."""
        self._closed.set()

    @staticmethod
    def _closed_error(reading: SensorReading) -> ReadingChannelClosedError:
        msg = f"Reading channel closed, dropping reading from {reading.address}"
        return ReadingChannelClosedError(msg)
