"""Discovery loop: advertisements in, notification readers out.

For every advertisement the :class:`DiscoveryLoop`

1. drops it unless the allow-list is empty or contains the address,
2. handles each address once; later advertisements of a known
   address only become :class:`DeviceEvent`\\ s when change watching
   is enabled,
3. asks the :class:`SensorConnector` for a :class:`SensorLink` and,
   on success, spawns a :class:`~tpheat._reader.NotificationReader`
   task.

The connect step runs inside the loop iteration, so a slow connect
delays the handling of later advertisements.  Addresses whose connect
fails are forgotten again so the next advertisement retries them.

Only adapter-level errors (:class:`~tpheat._errors.AdapterError`) and a
reader's :class:`~tpheat._errors.ReadingChannelClosedError` end
:meth:`DiscoveryLoop.run`.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable, Iterable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Protocol, runtime_checkable

from tpheat._channel import ReadingChannel
from tpheat._errors import DeviceConnectError
from tpheat._reader import NotificationReader, SensorLink

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Advertisement:
    """One advertisement as seen by the scanner.

    ``device`` is the backend's device handle (a bleak ``BLEDevice``)
    and is passed through to the connector untouched.
    """

    address: str
    name: str | None = None
    rssi: int | None = None
    device: Any = field(default=None, compare=False, repr=False)


class DeviceEventKind(StrEnum):
    PROPERTY_CHANGED = "property_changed"


@dataclass(frozen=True, slots=True)
class DeviceEvent:
    """A tagged event about an already discovered device."""

    address: str
    kind: DeviceEventKind
    properties: dict[str, object] = field(default_factory=dict)


DeviceEventHandler = Callable[[DeviceEvent], None]
"""Callback receiving device events. Must not block."""


def discard_device_event(event: DeviceEvent) -> None:
    """Default :data:`DeviceEventHandler`: log at DEBUG and drop."""
    logger.debug(
        "%s: discarding %s event %s",
        event.address,
        event.kind,
        event.properties,
    )


# ---------------------------------------------------------------------------
# Ports
# ---------------------------------------------------------------------------


@runtime_checkable
class AdvertisementSource(Protocol):
    """Stream of advertisements from the radio adapter.

    Raises :class:`~tpheat._errors.AdapterError` when the adapter is
    unusable.
    """

    def advertisements(self) -> AsyncIterator[Advertisement]: ...


@runtime_checkable
class SensorConnector(Protocol):
    """Turns an advertisement into a connected :class:`SensorLink`.

    Returns ``None`` for devices that are not supported sensors or lack
    the notification characteristic; raises
    :class:`~tpheat._errors.DeviceConnectError` when connecting fails.
    """

    async def connect(self, advertisement: Advertisement) -> SensorLink | None: ...


# ---------------------------------------------------------------------------
# Loop
# ---------------------------------------------------------------------------


class DiscoveryLoop:
    """Watch advertisements and keep one reader running per sensor.

    Args:
        source: Advertisement stream.
        connector: Sensor connector.
        channel: Channel the readers forward readings into.
        allowed_addresses: Optional allow-list; empty means all.
        watch_changes: Emit :class:`DeviceEvent`\\ s for known devices.
        event_handler: Receives device events; defaults to
            :func:`discard_device_event`.
    """

    def __init__(
        self,
        source: AdvertisementSource,
        connector: SensorConnector,
        channel: ReadingChannel,
        *,
        allowed_addresses: Iterable[str] = (),
        watch_changes: bool = False,
        event_handler: DeviceEventHandler | None = None,
    ) -> None:
        self._source = source
        self._connector = connector
        self._channel = channel
        self._allowed = frozenset(address.upper() for address in allowed_addresses)
        self._watch_changes = watch_changes
        self._event_handler = event_handler or discard_device_event
        self._seen: set[str] = set()
        self._readers: dict[str, asyncio.Task[None]] = {}
        self._failure: asyncio.Future[None] | None = None

    @property
    def readers(self) -> dict[str, asyncio.Task[None]]:
        """Running reader tasks keyed by device address."""
        return dict(self._readers)

    async def run(self) -> None:
        """Scan until the source ends, the adapter fails or a reader dies.

        Reader tasks are cancelled, not awaited, when this returns.

        Raises:
            AdapterError: The adapter became unusable.
            ReadingChannelClosedError: A reader lost the registry consumer.
        """
        self._failure = asyncio.get_running_loop().create_future()
        scan_task = asyncio.create_task(self._scan(), name="discovery-scan")
        try:
            await asyncio.wait(
                {scan_task, self._failure},
                return_when=asyncio.FIRST_COMPLETED,
            )
            if self._failure.done():
                self._failure.result()
            scan_task.result()
        finally:
            scan_task.cancel()
            for task in self._readers.values():
                task.cancel()
            if not self._failure.done():
                self._failure.cancel()

    async def handle(self, advertisement: Advertisement) -> None:
        """Process one advertisement."""
        address = advertisement.address.upper()
        if self._allowed and address not in self._allowed:
            return

        if address in self._seen:
            if self._watch_changes:
                self._emit_change(address, advertisement)
            return

        # A nameless advertisement cannot be classified yet; wait for
        # one carrying the local name.
        if advertisement.name is None:
            return

        self._seen.add(address)
        logger.debug("Discovered %s (%s)", address, advertisement.name)
        try:
            link = await self._connector.connect(advertisement)
        except DeviceConnectError as exc:
            logger.error("%s: %s", address, exc, extra={"address": address})
            self._seen.discard(address)
            return

        if link is not None:
            self._spawn_reader(link)

    # -- Internal ------------------------------------------------------------

    async def _scan(self) -> None:
        async for advertisement in self._source.advertisements():
            await self.handle(advertisement)
        logger.warning("Advertisement stream ended")

    def _spawn_reader(self, link: SensorLink) -> None:
        address = link.address.upper()
        reader = NotificationReader(link, self._channel)
        task = asyncio.create_task(reader.run(), name=f"reader-{address}")
        task.add_done_callback(self._on_reader_done)
        self._readers[address] = task
        logger.info(
            "%s: reading notifications", address, extra={"address": address}
        )

    def _on_reader_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            return
        logger.error("Reader task %s failed: %r", task.get_name(), exc)
        if self._failure is not None and not self._failure.done():
            self._failure.set_exception(exc)

    def _emit_change(self, address: str, advertisement: Advertisement) -> None:
        event = DeviceEvent(
            address=address,
            kind=DeviceEventKind.PROPERTY_CHANGED,
            properties={"name": advertisement.name, "rssi": advertisement.rssi},
        )
        try:
            self._event_handler(event)
        except Exception:
            logger.exception("Device event handler failed for %s", address)
