"""Unit tests for tpheat._bluetooth — bleak-backed adapters.

Test Techniques Used:
    - Test Doubles: Fake scanner and client standing in for bleak
    - Specification-based Testing: Scanner filters, name prefix
    - Error Condition Testing: Connect retry budget, disconnects, cleanup
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from types import SimpleNamespace
from typing import Any

import pytest
from bleak.exc import BleakError

from tests.fixtures.builders import BEDROOM, tp357_payload
from tpheat._bluetooth import (
    BleakAdvertisementSource,
    BleakDeviceConnector,
    BleakSensorLink,
    find_characteristic,
    is_sensor_name,
)
from tpheat._discovery import Advertisement
from tpheat._errors import AdapterError, DeviceConnectError, NotificationStreamError
from tpheat._settings import DEFAULT_CHARACTERISTIC_UUID, BluetoothSettings

# ---------------------------------------------------------------------------
# bleak doubles
# ---------------------------------------------------------------------------


def _services(*uuids: str) -> list[SimpleNamespace]:
    return [
        SimpleNamespace(
            uuid="0000180a-0000-1000-8000-00805f9b34fb",
            characteristics=[
                SimpleNamespace(uuid=uuid, properties=["notify"]) for uuid in uuids
            ],
        )
    ]


class FakeScanner:
    def __init__(
        self,
        results: list[tuple[Any, Any]] | None = None,
        *,
        start_error: Exception | None = None,
        **kwargs: Any,
    ) -> None:
        self.kwargs = kwargs
        self._results = results or []
        self._start_error = start_error
        self.stopped = False

    async def start(self) -> None:
        if self._start_error is not None:
            raise self._start_error

    async def stop(self) -> None:
        self.stopped = True

    async def advertisement_data(self) -> AsyncIterator[tuple[Any, Any]]:
        for item in self._results:
            yield item


class FakeClient:
    """Stands in for ``BleakClient``; ``connect_errors`` fail in order."""

    def __init__(
        self,
        device: Any,
        *,
        connect_errors: list[Exception] | None = None,
        services: Any = None,
        connected: bool = False,
        **kwargs: Any,
    ) -> None:
        self.device = device
        self.kwargs = kwargs
        self.is_connected = connected
        self.services = services if services is not None else _services(
            DEFAULT_CHARACTERISTIC_UUID
        )
        self._connect_errors = list(connect_errors or [])
        self.connect_attempts = 0
        self.notify_callback: Any = None
        self.stop_notify_calls = 0
        self.disconnect_calls = 0

    async def connect(self) -> None:
        self.connect_attempts += 1
        if self._connect_errors:
            raise self._connect_errors.pop(0)
        self.is_connected = True

    async def start_notify(self, characteristic: Any, callback: Any) -> None:
        self.notify_callback = callback

    async def stop_notify(self, characteristic: Any) -> None:
        self.stop_notify_calls += 1

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        self.is_connected = False

    def drop(self) -> None:
        """Simulate the peer going away."""
        self.is_connected = False
        self.kwargs["disconnected_callback"](self)


def _client_factory(clients: list[FakeClient], **options: Any) -> Any:
    def factory(device: Any, **kwargs: Any) -> FakeClient:
        client = FakeClient(device, **options, **kwargs)
        clients.append(client)
        return client

    return factory


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestHelpers:
    @pytest.mark.parametrize(
        ("name", "expected"),
        [("TP357 (8CEF)", True), ("TP357", True), ("TP358", False), (None, False)],
    )
    def test_is_sensor_name(self, name: str | None, expected: bool) -> None:
        assert is_sensor_name(name, "TP357") is expected

    def test_find_characteristic_is_case_insensitive(self) -> None:
        services = _services("0000aaaa-0000-1000-8000-00805f9b34fb", "ABCD")

        found = find_characteristic(services, "abcd")

        assert found is not None
        assert found.uuid == "ABCD"

    def test_find_characteristic_missing(self) -> None:
        assert find_characteristic(_services("abcd"), "ef01") is None


# ---------------------------------------------------------------------------
# Advertisement source
# ---------------------------------------------------------------------------


class TestAdvertisementSource:
    async def test_scanner_uses_adapter_and_transport(self) -> None:
        scanners: list[FakeScanner] = []

        def factory(**kwargs: Any) -> FakeScanner:
            scanner = FakeScanner(**kwargs)
            scanners.append(scanner)
            return scanner

        source = BleakAdvertisementSource(
            BluetoothSettings(adapter="hci0", transport="le"),
            scanner_factory=factory,
        )

        assert [adv async for adv in source.advertisements()] == []
        assert scanners[0].kwargs == {
            "adapter": "hci0",
            "bluez": {"filters": {"Transport": "le"}},
        }
        assert scanners[0].stopped

    async def test_yields_advertisements(self) -> None:
        device = SimpleNamespace(address=BEDROOM, name="fallback")
        results = [
            (device, SimpleNamespace(local_name="TP357 (8CEF)", rssi=-60)),
            (device, SimpleNamespace(local_name=None, rssi=-61)),
        ]
        source = BleakAdvertisementSource(
            BluetoothSettings(),
            scanner_factory=lambda **kw: FakeScanner(results, **kw),
        )

        advertisements = [adv async for adv in source.advertisements()]

        assert advertisements == [
            Advertisement(address=BEDROOM, name="TP357 (8CEF)", rssi=-60),
            Advertisement(address=BEDROOM, name="fallback", rssi=-61),
        ]
        assert advertisements[0].device is device

    async def test_start_failure_is_adapter_error(self) -> None:
        source = BleakAdvertisementSource(
            BluetoothSettings(adapter="hci9"),
            scanner_factory=lambda **kw: FakeScanner(
                start_error=BleakError("No adapter hci9"), **kw
            ),
        )

        with pytest.raises(AdapterError, match="hci9"):
            async for _ in source.advertisements():
                pass


# ---------------------------------------------------------------------------
# Connector
# ---------------------------------------------------------------------------


def _adv(name: str | None = "TP357 (8CEF)") -> Advertisement:
    return Advertisement(address=BEDROOM, name=name, device=SimpleNamespace())


class TestConnector:
    """Technique: Error Condition Testing — retry budget."""

    async def test_non_sensor_is_ignored(self) -> None:
        clients: list[FakeClient] = []
        connector = BleakDeviceConnector(
            BluetoothSettings(), client_factory=_client_factory(clients)
        )

        assert await connector.connect(_adv("Headphones")) is None
        assert clients == []

    async def test_connects_and_resolves_characteristic(self) -> None:
        clients: list[FakeClient] = []
        connector = BleakDeviceConnector(
            BluetoothSettings(adapter="hci0"),
            client_factory=_client_factory(clients),
        )

        link = await connector.connect(_adv())

        assert isinstance(link, BleakSensorLink)
        assert link.address == BEDROOM
        assert clients[0].kwargs["adapter"] == "hci0"
        assert clients[0].connect_attempts == 1

    async def test_retries_then_gives_up(self) -> None:
        clients: list[FakeClient] = []
        errors = [BleakError("busy") for _ in range(5)]
        connector = BleakDeviceConnector(
            BluetoothSettings(connect_retries=2),
            client_factory=_client_factory(clients, connect_errors=errors),
        )

        with pytest.raises(DeviceConnectError) as exc_info:
            await connector.connect(_adv())

        assert clients[0].connect_attempts == 3
        assert exc_info.value.address == BEDROOM

    async def test_retry_succeeds(self) -> None:
        clients: list[FakeClient] = []
        errors: list[Exception] = [TimeoutError(), OSError("br-connection-canceled")]
        connector = BleakDeviceConnector(
            BluetoothSettings(connect_retries=2),
            client_factory=_client_factory(clients, connect_errors=errors),
        )

        assert await connector.connect(_adv()) is not None
        assert clients[0].connect_attempts == 3

    async def test_already_connected_skips_connect(self) -> None:
        clients: list[FakeClient] = []
        connector = BleakDeviceConnector(
            BluetoothSettings(),
            client_factory=_client_factory(clients, connected=True),
        )

        assert await connector.connect(_adv()) is not None
        assert clients[0].connect_attempts == 0

    async def test_missing_characteristic_returns_none(self) -> None:
        clients: list[FakeClient] = []
        connector = BleakDeviceConnector(
            BluetoothSettings(),
            client_factory=_client_factory(clients, services=_services("abcd")),
        )

        assert await connector.connect(_adv()) is None
        assert clients[0].disconnect_calls == 1

    async def test_services_query_failure_disconnects(self) -> None:
        class BrokenServices:
            def __iter__(self) -> Any:
                raise BleakError("Service Discovery has not been performed yet")

        clients: list[FakeClient] = []
        connector = BleakDeviceConnector(
            BluetoothSettings(),
            client_factory=_client_factory(clients, services=BrokenServices()),
        )

        with pytest.raises(DeviceConnectError, match="Querying services failed"):
            await connector.connect(_adv())
        assert clients[0].disconnect_calls == 1

    async def test_disconnect_fault_on_release_is_suppressed(self) -> None:
        class StuckClient(FakeClient):
            async def disconnect(self) -> None:
                self.disconnect_calls += 1
                raise BleakError("not connected")

        clients: list[FakeClient] = []

        def factory(device: Any, **kwargs: Any) -> FakeClient:
            client = StuckClient(device, services=_services("abcd"), **kwargs)
            clients.append(client)
            return client

        connector = BleakDeviceConnector(BluetoothSettings(), client_factory=factory)

        assert await connector.connect(_adv()) is None
        assert clients[0].disconnect_calls == 1

    async def test_usable_device_stays_connected(self) -> None:
        clients: list[FakeClient] = []
        connector = BleakDeviceConnector(
            BluetoothSettings(), client_factory=_client_factory(clients)
        )

        await connector.connect(_adv())

        assert clients[0].disconnect_calls == 0
        assert clients[0].is_connected


# ---------------------------------------------------------------------------
# Link
# ---------------------------------------------------------------------------


async def _connected_link() -> tuple[BleakSensorLink, FakeClient]:
    clients: list[FakeClient] = []
    connector = BleakDeviceConnector(
        BluetoothSettings(), client_factory=_client_factory(clients)
    )
    link = await connector.connect(_adv())
    assert link is not None
    return link, clients[0]


class TestSensorLink:
    async def test_yields_notified_payloads(self) -> None:
        link, client = await _connected_link()
        stream = link.notifications()

        pending = asyncio.ensure_future(anext(stream))
        await asyncio.sleep(0)
        client.notify_callback(None, bytearray(tp357_payload(21.0, 40)))

        assert await pending == tp357_payload(21.0, 40)
        await stream.aclose()
        assert client.stop_notify_calls == 1

    async def test_disconnect_faults_stream(self) -> None:
        link, client = await _connected_link()
        stream = link.notifications()

        pending = asyncio.ensure_future(anext(stream))
        await asyncio.sleep(0)
        client.drop()

        with pytest.raises(NotificationStreamError):
            await pending
        assert client.stop_notify_calls == 0

    async def test_resubscribe_reconnects(self) -> None:
        link, client = await _connected_link()
        client.is_connected = False

        stream = link.notifications()
        pending = asyncio.ensure_future(anext(stream))
        await asyncio.sleep(0)
        client.notify_callback(None, bytearray(b"\x00" * 6))

        assert await pending == b"\x00" * 6
        assert client.connect_attempts == 2
        await stream.aclose()

    def test_disconnect_without_subscription_is_noop(self) -> None:
        link = BleakSensorLink(BEDROOM, FakeClient(None), object())

        link.handle_disconnect()
