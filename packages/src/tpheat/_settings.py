"""Application configuration via pydantic-settings.

Configuration is loaded from environment variables and/or ``.env``
files.  All variables carry the ``TPHEAT_`` prefix and nested models
use ``__`` as the delimiter, e.g. ``TPHEAT_BLUETOOTH__ADAPTER=hci0``.

The schema is split by concern:

* **Bluetooth** — adapter, discovery filter, sensor identification.
* **Registry** — liveness TTL, history retention, state file, autosave.
* **Heating** — actuator dispatch period and HTTP timeout.
* **Logging** — level, format, optional file sink, rotation.

All durations are in **seconds**.
"""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CHARACTERISTIC_UUID = "00010203-0405-0607-0809-0a0b0c0d2b10"

# -------------------------------------------------------------------
# Sub-models (BaseModel, not BaseSettings; nested via composition)
# -------------------------------------------------------------------


class BluetoothSettings(BaseModel):
    """Radio adapter and sensor discovery configuration.

    Environment variables (with ``__`` nesting)::

        TPHEAT_BLUETOOTH__ADAPTER=hci0
        TPHEAT_BLUETOOTH__TRANSPORT=le
        TPHEAT_BLUETOOTH__ALLOWED_ADDRESSES='["D1:D7:3F:67:8C:EF"]'
    """

    adapter: str = Field(
        default="hci1",
        description="Logical name of the Bluetooth adapter to scan with.",
    )
    transport: Literal["auto", "le", "bredr"] = Field(
        default="auto",
        description="Discovery transport filter passed to BlueZ.",
    )
    allowed_addresses: list[str] = Field(
        default_factory=list,
        description=(
            "Device addresses to consider. "
            "When empty, every advertising device is considered."
        ),
    )
    watch_changes: bool = Field(
        default=False,
        description=(
            "Also emit property-change events for already seen devices "
            "to the device event handler."
        ),
    )
    name_prefix: str = Field(
        default="TP357",
        description="Advertised-name prefix of the supported sensor family.",
    )
    characteristic_uuid: str = Field(
        default=DEFAULT_CHARACTERISTIC_UUID,
        description="GATT characteristic carrying temperature notifications.",
    )
    connect_retries: Annotated[int, Field(ge=0)] = Field(
        default=2,
        description="Retries after the first failed connect attempt.",
    )
    channel_capacity: Annotated[int, Field(ge=1)] = Field(
        default=10,
        description="Capacity of the reading channel feeding the registry.",
    )

    @field_validator("allowed_addresses")
    @classmethod
    def _normalize_addresses(cls, value: list[str]) -> list[str]:
        return [address.strip().upper() for address in value if address.strip()]

    @field_validator("characteristic_uuid")
    @classmethod
    def _normalize_uuid(cls, value: str) -> str:
        return value.strip().lower()


class RegistrySettings(BaseModel):
    """Room registry timing and persistence."""

    reading_ttl: Annotated[float, Field(gt=0)] = Field(
        default=300.0,
        description="Seconds a merged reading stays current.",
    )
    history_retention: Annotated[float, Field(gt=0)] = Field(
        default=24 * 60 * 60,
        description="Seconds of history kept per room.",
    )
    state_file: str = Field(
        default="rooms.json",
        description="Path of the persisted room list.",
    )
    autosave_interval: Annotated[float, Field(gt=0)] = Field(
        default=300.0,
        description="Seconds between periodic saves of the room list.",
    )


class HeatingSettings(BaseModel):
    """Actuator dispatch configuration."""

    dispatch_interval: Annotated[float, Field(gt=0)] = Field(
        default=3600.0,
        description="Seconds between actuator dispatch cycles.",
    )
    request_timeout: Annotated[float, Field(gt=0)] = Field(
        default=10.0,
        description="Total timeout for one actuator HTTP request.",
    )


class LoggingSettings(BaseModel):
    """Logging configuration.

    When ``file`` is set, logs are also written to a rotating file
    (size-based rotation, ``backup_count`` generations kept).  When
    ``None``, logs go to stderr only.

    The ``format`` field selects the output format:

    - ``"json"`` (default) — one JSON object per line.
    - ``"text"`` — human-readable timestamped lines for terminals.
    """

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Root log level.",
    )
    format: Literal["json", "text"] = Field(
        default="json",
        description="Log output format.",
    )
    file: str | None = Field(
        default=None,
        description="Optional log file path. ``None`` means stderr only.",
    )
    max_file_size_mb: Annotated[int, Field(ge=1)] = Field(
        default=10,
        description="Maximum log file size in megabytes before rotation.",
    )
    backup_count: Annotated[int, Field(ge=0)] = Field(
        default=3,
        description="Number of rotated log files to keep.",
    )


# -------------------------------------------------------------------
# Root settings
# -------------------------------------------------------------------


class Settings(BaseSettings):
    """Root settings for tpheat.

    Example ``.env``::

        TPHEAT_BLUETOOTH__ADAPTER=hci0
        TPHEAT_REGISTRY__STATE_FILE=/var/lib/tpheat/rooms.json
        TPHEAT_HEATING__DISPATCH_INTERVAL=1800
        TPHEAT_LOGGING__FORMAT=text
    """

    model_config = SettingsConfigDict(
        env_prefix="TPHEAT_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    bluetooth: BluetoothSettings = Field(
        default_factory=BluetoothSettings,
        description="Bluetooth discovery settings.",
    )
    registry: RegistrySettings = Field(
        default_factory=RegistrySettings,
        description="Room registry settings.",
    )
    heating: HeatingSettings = Field(
        default_factory=HeatingSettings,
        description="Heating actuator settings.",
    )
    logging: LoggingSettings = Field(
        default_factory=LoggingSettings,
        description="Logging configuration.",
    )
