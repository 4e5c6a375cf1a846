"""bleak-backed adapters for discovery, connection and notifications.

- :class:`BleakAdvertisementSource` — scans one adapter with a BlueZ
  transport filter and yields :class:`~tpheat._discovery.Advertisement`\\ s.
- :class:`BleakDeviceConnector` — checks the advertised name, connects
  with a bounded retry budget and resolves the notification
  characteristic.
- :class:`BleakSensorLink` — one connected sensor; each call to
  :meth:`~BleakSensorLink.notifications` is one subscription.

bleak delivers notifications through callbacks; the link turns them
into an async generator backed by an :class:`asyncio.Queue`, and turns
a disconnect into :class:`~tpheat._errors.NotificationStreamError`.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncGenerator, AsyncIterator, Callable, Iterable
from typing import Any

from bleak import BleakClient, BleakScanner
from bleak.backends.characteristic import BleakGATTCharacteristic
from bleak.exc import BleakError

from tpheat._discovery import Advertisement
from tpheat._errors import AdapterError, DeviceConnectError, NotificationStreamError
from tpheat._settings import BluetoothSettings

logger = logging.getLogger(__name__)

_CONNECT_FAULTS: tuple[type[Exception], ...] = (BleakError, OSError, TimeoutError)

ClientFactory = Callable[..., Any]
"""Builds a bleak-compatible client: ``factory(device, **kwargs)``."""


def is_sensor_name(name: str | None, prefix: str) -> bool:
    """True when *name* identifies a supported sensor."""
    return name is not None and name.startswith(prefix)


def find_characteristic(services: Iterable[Any], uuid: str) -> Any | None:
    """Return the first characteristic with *uuid* across *services*."""
    wanted = uuid.lower()
    for service in services:
        logger.debug("    Service %s", service.uuid)
        for characteristic in service.characteristics:
            logger.debug(
                "    Characteristic %s %s",
                characteristic.uuid,
                characteristic.properties,
            )
            if str(characteristic.uuid).lower() == wanted:
                return characteristic
    return None


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


class BleakAdvertisementSource:
    """Advertisement stream from a bleak scanner bound to one adapter."""

    def __init__(
        self,
        settings: BluetoothSettings,
        *,
        scanner_factory: Callable[..., Any] = BleakScanner,
    ) -> None:
        self._settings = settings
        self._scanner_factory = scanner_factory

    async def advertisements(self) -> AsyncIterator[Advertisement]:
        """Yield advertisements until cancelled.

        Raises:
            AdapterError: If the adapter cannot be used for scanning.
        """
        adapter = self._settings.adapter
        transport = self._settings.transport
        try:
            scanner = self._scanner_factory(
                adapter=adapter,
                bluez={"filters": {"Transport": transport}},
            )
            await scanner.start()
        except _CONNECT_FAULTS as exc:
            msg = f"Cannot scan with adapter {adapter} (transport={transport}): {exc}"
            raise AdapterError(msg) from exc

        logger.info("Discovering devices on %s (transport=%s)", adapter, transport)
        try:
            async for device, data in scanner.advertisement_data():
                yield Advertisement(
                    address=device.address,
                    name=data.local_name or device.name,
                    rssi=data.rssi,
                    device=device,
                )
        except BleakError as exc:
            msg = f"Scanning on {adapter} failed: {exc}"
            raise AdapterError(msg) from exc
        finally:
            with contextlib.suppress(*_CONNECT_FAULTS):
                await scanner.stop()


# ---------------------------------------------------------------------------
# Notification link
# ---------------------------------------------------------------------------


class _DisconnectRelay:
    """Disconnect callback handed to bleak before the link exists."""

    def __init__(self) -> None:
        self._listener: Callable[[], None] | None = None

    def attach(self, listener: Callable[[], None]) -> None:
        self._listener = listener

    def __call__(self, _client: Any) -> None:
        if self._listener is not None:
            self._listener()


class BleakSensorLink:
    """A connected sensor and its notification characteristic."""

    def __init__(
        self,
        address: str,
        client: Any,
        characteristic: BleakGATTCharacteristic | Any,
    ) -> None:
        self._address = address
        self._client = client
        self._characteristic = characteristic
        self._queue: asyncio.Queue[bytes | None] | None = None

    @property
    def address(self) -> str:
        return self._address

    def handle_disconnect(self) -> None:
        """Fail the active subscription, if any."""
        logger.info(
            "%s: disconnected", self._address, extra={"address": self._address}
        )
        if self._queue is not None:
            self._queue.put_nowait(None)

    async def notifications(self) -> AsyncGenerator[bytes, None]:
        """Subscribe and yield raw payloads.

        Reconnects first when the device is no longer connected.

        Raises:
            NotificationStreamError: When the device disconnects.
        """
        if not self._client.is_connected:
            logger.info(
                "%s: reconnecting", self._address, extra={"address": self._address}
            )
            await self._client.connect()

        queue: asyncio.Queue[bytes | None] = asyncio.Queue()

        def _on_notify(_sender: Any, data: bytearray) -> None:
            queue.put_nowait(bytes(data))

        self._queue = queue
        try:
            await self._client.start_notify(self._characteristic, _on_notify)
            while True:
                payload = await queue.get()
                if payload is None:
                    msg = f"{self._address} disconnected"
                    raise NotificationStreamError(msg)
                yield payload
        finally:
            self._queue = None
            if self._client.is_connected:
                with contextlib.suppress(*_CONNECT_FAULTS):
                    await self._client.stop_notify(self._characteristic)


# ---------------------------------------------------------------------------
# Connector
# ---------------------------------------------------------------------------


class BleakDeviceConnector:
    """Connect supported sensors and resolve their notification characteristic."""

    def __init__(
        self,
        settings: BluetoothSettings,
        *,
        client_factory: ClientFactory = BleakClient,
    ) -> None:
        self._settings = settings
        self._client_factory = client_factory

    async def connect(self, advertisement: Advertisement) -> BleakSensorLink | None:
        """Connect to *advertisement*'s device if it is a supported sensor.

        Returns:
            The connected link, or ``None`` when the device is not a
            supported sensor or has no notification characteristic.

        Raises:
            DeviceConnectError: When every connect attempt failed or the
                services could not be queried.
        """
        address = advertisement.address
        if not is_sensor_name(advertisement.name, self._settings.name_prefix):
            return None
        logger.info("%s: %s found", address, advertisement.name)

        relay = _DisconnectRelay()
        client = self._client_factory(
            advertisement.device if advertisement.device is not None else address,
            adapter=self._settings.adapter,
            disconnected_callback=relay,
        )
        await self._ensure_connected(client, address)

        try:
            characteristic = find_characteristic(
                client.services, self._settings.characteristic_uuid
            )
        except _CONNECT_FAULTS as exc:
            await self._release(client, address)
            msg = f"Querying services failed: {exc}"
            raise DeviceConnectError(msg, address=address) from exc

        if characteristic is None:
            logger.warning(
                "%s: characteristic %s not found",
                address,
                self._settings.characteristic_uuid,
                extra={"address": address},
            )
            await self._release(client, address)
            return None

        link = BleakSensorLink(address, client, characteristic)
        relay.attach(link.handle_disconnect)
        return link

    async def _release(self, client: Any, address: str) -> None:
        with contextlib.suppress(*_CONNECT_FAULTS):
            await client.disconnect()
        logger.debug("%s: disconnected unusable device", address)

    async def _ensure_connected(self, client: Any, address: str) -> None:
        if client.is_connected:
            logger.info("%s: already connected", address)
            return

        retries = self._settings.connect_retries
        attempt = 0
        while True:
            attempt += 1
            try:
                await client.connect()
            except _CONNECT_FAULTS as exc:
                if attempt > retries:
                    msg = f"Connect failed after {attempt} attempts: {exc}"
                    raise DeviceConnectError(msg, address=address) from exc
                logger.warning(
                    "%s: connect error: %s", address, exc, extra={"address": address}
                )
                continue
            break
        logger.info("%s: connected", address, extra={"address": address})
