"""Domain models: sensor readings, rooms and heating actuators.

All timestamps held by these models (``HistoryEntry.timestamp``,
``Room.liveness_deadline``) are *monotonic* clock values in seconds.
Conversion to absolute time only happens in :mod:`tpheat._persistence`.
"""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field


class SensorReading(BaseModel):
    """A decoded temperature/humidity sample from one sensor."""

    model_config = ConfigDict(frozen=True)

    address: str
    temperature: float = Field(..., description="Degrees Celsius.")
    humidity: int = Field(..., description="Relative humidity in percent.")


class HistoryEntry(BaseModel):
    """A reading together with its (monotonic) arrival time."""

    model_config = ConfigDict(frozen=True)

    reading: SensorReading
    timestamp: float


class ManualMode(BaseModel):
    """Fixed power level, sent as a timed on-duration each cycle."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["manual"] = "manual"
    level: Annotated[int, Field(ge=0, le=6)]


class AutoMode(BaseModel):
    """Target-temperature control. Declared only; dispatching it fails."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["auto"] = "auto"
    target_temperature: float


ActuatorMode = Annotated[ManualMode | AutoMode, Field(discriminator="kind")]


class Actuator(BaseModel):
    """A remotely switched heater reachable over HTTP."""

    model_config = ConfigDict(frozen=True)

    endpoint: str
    mode: ActuatorMode


class Room(BaseModel):
    """A named location, optionally bound to a sensor and an actuator."""

    name: str
    sensor_address: str = ""
    current_reading: SensorReading | None = None
    liveness_deadline: float | None = None
    history: list[HistoryEntry] = Field(default_factory=list)
    actuator: Actuator | None = None

    @property
    def is_live(self) -> bool:
        return self.current_reading is not None
