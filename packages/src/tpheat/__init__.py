"""tpheat.

Room climate monitor for TP357 Bluetooth sensors with hourly heating
actuator control.
"""

from importlib.metadata import PackageNotFoundError, version

from tpheat._app import App
from tpheat._bluetooth import (
    BleakAdvertisementSource,
    BleakDeviceConnector,
    BleakSensorLink,
)
from tpheat._channel import ReadingChannel
from tpheat._clock import ClockPort, SystemClock, SystemWallClock, WallClockPort
from tpheat._codec import Measurement, decode_payload
from tpheat._discovery import (
    Advertisement,
    AdvertisementSource,
    DeviceEvent,
    DeviceEventHandler,
    DeviceEventKind,
    DiscoveryLoop,
    SensorConnector,
    discard_device_event,
)
from tpheat._errors import (
    ActuatorError,
    ActuatorModeNotImplementedError,
    ActuatorRequestError,
    AdapterError,
    ConfigError,
    DeviceConnectError,
    NotificationStreamError,
    PersistenceError,
    ReadingChannelClosedError,
    TpHeatError,
)
from tpheat._heating import (
    ActuatorDispatcher,
    ActuatorPort,
    DispatchOutcome,
    DispatchReport,
    DispatchStatus,
    HttpActuatorClient,
    TimerCommand,
    plan_command,
    timer_for_level,
)
from tpheat._logging import JsonFormatter, configure_logging
from tpheat._models import (
    Actuator,
    AutoMode,
    HistoryEntry,
    ManualMode,
    Room,
    SensorReading,
)
from tpheat._persistence import default_rooms, load_rooms, save_rooms
from tpheat._reader import NotificationReader, SensorLink
from tpheat._registry import NullRedrawObserver, RedrawObserver, RoomRegistry
from tpheat._settings import (
    BluetoothSettings,
    HeatingSettings,
    LoggingSettings,
    RegistrySettings,
    Settings,
)

try:
    __version__ = version("tpheat")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

__all__ = [
    # Version
    "__version__",
    # App
    "App",
    # Clock
    "ClockPort",
    "SystemClock",
    "SystemWallClock",
    "WallClockPort",
    # Codec
    "Measurement",
    "decode_payload",
    # Models
    "Actuator",
    "AutoMode",
    "HistoryEntry",
    "ManualMode",
    "Room",
    "SensorReading",
    # Ingestion
    "Advertisement",
    "AdvertisementSource",
    "BleakAdvertisementSource",
    "BleakDeviceConnector",
    "BleakSensorLink",
    "DeviceEvent",
    "DeviceEventHandler",
    "DeviceEventKind",
    "DiscoveryLoop",
    "NotificationReader",
    "ReadingChannel",
    "SensorConnector",
    "SensorLink",
    "discard_device_event",
    # Registry
    "NullRedrawObserver",
    "RedrawObserver",
    "RoomRegistry",
    # Heating
    "ActuatorDispatcher",
    "ActuatorPort",
    "DispatchOutcome",
    "DispatchReport",
    "DispatchStatus",
    "HttpActuatorClient",
    "TimerCommand",
    "plan_command",
    "timer_for_level",
    # Persistence
    "default_rooms",
    "load_rooms",
    "save_rooms",
    # Errors
    "ActuatorError",
    "ActuatorModeNotImplementedError",
    "ActuatorRequestError",
    "AdapterError",
    "ConfigError",
    "DeviceConnectError",
    "NotificationStreamError",
    "PersistenceError",
    "ReadingChannelClosedError",
    "TpHeatError",
    # Logging
    "JsonFormatter",
    "configure_logging",
    # Settings
    "BluetoothSettings",
    "HeatingSettings",
    "LoggingSettings",
    "RegistrySettings",
    "Settings",
]
