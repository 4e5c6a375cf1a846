"""Room list persistence.

The state file is a JSON array of room records::

    [
        {
            "name": "Schlafzimmer",
            "sensor_address": "D1:D7:3F:67:8C:EF",
            "current_reading": null,
            "history": [
                {"reading": {...}, "timestamp": "2026-10-18T07:12:03.120000Z"}
            ],
            "actuator": {
                "endpoint": "http://shellypro3-ece334ed1928.local/relay/2",
                "mode": {"kind": "manual", "level": 3}
            }
        }
    ]

In memory, history timestamps are monotonic; on save they are
projected onto the wall clock and on load projected back (see
:func:`tpheat._clock.to_wall_time`).  Liveness deadlines are never
stored.  Because of that, a stored ``current_reading`` is dropped on
load: without a deadline it could never expire.

Loading never fails: a missing or malformed file yields
:func:`default_rooms`.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime
from pathlib import Path

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from tpheat._clock import ClockPort, WallClockPort, from_wall_time, to_wall_time
from tpheat._errors import PersistenceError
from tpheat._models import Actuator, HistoryEntry, ManualMode, Room, SensorReading

logger = logging.getLogger(__name__)


class HistoryRecord(BaseModel):
    reading: SensorReading
    timestamp: datetime


class RoomRecord(BaseModel):
    name: str
    sensor_address: str = ""
    current_reading: SensorReading | None = None
    history: list[HistoryRecord] = Field(default_factory=list)
    actuator: Actuator | None = None


_DOCUMENT = TypeAdapter(list[RoomRecord])


def default_rooms() -> list[Room]:
    """Built-in room list used when no valid state file exists."""
    return [
        Room(name="Galerie", sensor_address="10:76:36:76:66:1E"),
        Room(
            name="Schlafzimmer",
            sensor_address="D1:D7:3F:67:8C:EF",
            actuator=Actuator(
                endpoint="http://shellypro3-ece334ed1928.local/relay/2",
                mode=ManualMode(level=3),
            ),
        ),
        Room(name="Kinderzimmer", sensor_address="D2:7C:11:BC:05:E3"),
        Room(name="Küche/Diele", sensor_address="C9:B5:08:81:6A:AC"),
        Room(name="Wohnzimmer", sensor_address="FA:74:A7:99:89:04"),
        Room(name="Bäckerei", sensor_address="10:76:36:C2:B7:87"),
    ]


def dump_rooms(
    rooms: list[Room],
    *,
    clock: ClockPort,
    wall: WallClockPort,
) -> bytes:
    """Serialise *rooms* to the state-file JSON document."""
    records = [
        RoomRecord(
            name=room.name,
            sensor_address=room.sensor_address,
            current_reading=room.current_reading,
            history=[
                HistoryRecord(
                    reading=entry.reading,
                    timestamp=to_wall_time(entry.timestamp, clock=clock, wall=wall),
                )
                for entry in room.history
            ],
            actuator=room.actuator,
        )
        for room in rooms
    ]
    return _DOCUMENT.dump_json(records, indent=2)


def parse_rooms(
    document: str | bytes,
    *,
    clock: ClockPort,
    wall: WallClockPort,
) -> list[Room]:
    """Parse a state-file document.

    Raises:
        pydantic.ValidationError: If the document is malformed.
    """
    records = _DOCUMENT.validate_json(document)
    return [
        Room(
            name=record.name,
            sensor_address=record.sensor_address,
            history=[
                HistoryEntry(
                    reading=item.reading,
                    timestamp=from_wall_time(item.timestamp, clock=clock, wall=wall),
                )
                for item in record.history
            ],
            actuator=record.actuator,
        )
        for record in records
    ]


def load_rooms(
    path: str | Path,
    *,
    clock: ClockPort,
    wall: WallClockPort,
) -> list[Room]:
    """Load rooms from *path*, falling back to :func:`default_rooms`."""
    path = Path(path)
    try:
        document = path.read_bytes()
    except OSError as exc:
        logger.debug("No usable state file at %s (%s), using default rooms", path, exc)
        return default_rooms()

    try:
        rooms = parse_rooms(document, clock=clock, wall=wall)
    except ValidationError as exc:
        logger.debug("Ignoring malformed state file %s: %s", path, exc)
        return default_rooms()

    logger.info("Loaded %d rooms from %s", len(rooms), path)
    return rooms


def save_rooms(
    rooms: list[Room],
    path: str | Path,
    *,
    clock: ClockPort,
    wall: WallClockPort,
) -> None:
    """Write *rooms* to *path*.

    The document goes to a sibling temporary file first and is then
    renamed over *path*, so a crash never leaves a truncated file.

    Raises:
        PersistenceError: If the file cannot be written.
    """
    path = Path(path)
    document = dump_rooms(rooms, clock=clock, wall=wall)
    tmp_path = path.with_name(f"{path.name}.tmp")
    try:
        tmp_path.write_bytes(document)
        os.replace(tmp_path, path)
    except OSError as exc:
        msg = f"Failed to write room state to {path}: {exc}"
        raise PersistenceError(msg) from exc
    logger.debug("Saved %d rooms to %s", len(rooms), path)
