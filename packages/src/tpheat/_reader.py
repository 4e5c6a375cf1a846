"""Per-device notification reader.

A :class:`NotificationReader` owns one connected sensor.  It decodes
every notification, forwards accepted readings into the shared
:class:`~tpheat._channel.ReadingChannel`, and resubscribes after every
stream fault with no retry limit and no backoff.

The one thing a reader does not survive is a closed channel: that means
the registry consumer is gone, and
:class:`~tpheat._errors.ReadingChannelClosedError` propagates out of
:meth:`NotificationReader.run`.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import aclosing
from typing import Protocol, runtime_checkable

from bleak.exc import BleakError

from tpheat._channel import ReadingChannel
from tpheat._codec import decode_payload
from tpheat._errors import NotificationStreamError
from tpheat._models import SensorReading

logger = logging.getLogger(__name__)

STREAM_FAULTS: tuple[type[Exception], ...] = (
    NotificationStreamError,
    BleakError,
    OSError,
    TimeoutError,
)
"""Exceptions treated as transient notification stream faults."""


@runtime_checkable
class SensorLink(Protocol):
    """A connected sensor whose notifications can be subscribed to.

    Each call to :meth:`notifications` is one subscription.  The
    generator raises one of :data:`STREAM_FAULTS` when the stream
    breaks (for example on disconnect).
    """

    @property
    def address(self) -> str: ...

    def notifications(self) -> AsyncGenerator[bytes, None]: ...


class NotificationReader:
    """Forward decoded readings from one :class:`SensorLink` to a channel."""

    def __init__(self, link: SensorLink, channel: ReadingChannel) -> None:
        self._link = link
        self._channel = channel
        self._subscriptions = 0
        self._dropped = 0

    @property
    def address(self) -> str:
        return self._link.address

    @property
    def subscriptions(self) -> int:
        """Number of subscriptions opened so far."""
        return self._subscriptions

    @property
    def dropped(self) -> int:
        """Number of payloads rejected by the decoder."""
        return self._dropped

    async def run(self) -> None:
        """Read notifications until cancelled.

        Raises:
            ReadingChannelClosedError: If the registry consumer is gone.
        """
        address = self._link.address
        while True:
            self._subscriptions += 1
            try:
                async with aclosing(self._link.notifications()) as stream:
                    async for payload in stream:
                        await self._forward(payload)
                logger.warning(
                    "%s: notification stream ended, resubscribing",
                    address,
                    extra={"address": address},
                )
            except STREAM_FAULTS as exc:
                logger.warning(
                    "%s: notification stream error: %r, resubscribing",
                    address,
                    exc,
                    extra={"address": address},
                )
            # Resubscribe at once, but let other tasks run first.
            await asyncio.sleep(0)

    async def _forward(self, payload: bytes) -> None:
        measurement = decode_payload(payload)
        if measurement is None:
            self._dropped += 1
            logger.debug(
                "%s: ignoring %d byte payload",
                self._link.address,
                len(payload),
                extra={"address": self._link.address},
            )
            return
        await self._channel.send(
            SensorReading(
                address=self._link.address,
                temperature=measurement.temperature,
                humidity=measurement.humidity,
            ),
        )
