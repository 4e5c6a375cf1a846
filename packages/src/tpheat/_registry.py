"""Lock-guarded room registry.

This is the only component allowed to mutate room state.  Ingestion
(:meth:`RoomRegistry.merge` via :meth:`RoomRegistry.consume`), the
actuator dispatcher (:meth:`RoomRegistry.actuators`), persistence and
any renderer (:meth:`RoomRegistry.snapshot`) all go through it, so the
locking discipline lives in one place.

One exclusive :class:`threading.Lock` guards the room list.  Renderers
on other threads may call :meth:`RoomRegistry.snapshot`.  Critical
sections never await or perform I/O.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from typing import Protocol, runtime_checkable

from tpheat._channel import ReadingChannel
from tpheat._clock import ClockPort
from tpheat._models import (
    Actuator,
    ActuatorMode,
    HistoryEntry,
    Room,
    SensorReading,
)

logger = logging.getLogger(__name__)

DEFAULT_READING_TTL = 300.0
DEFAULT_HISTORY_RETENTION = 24 * 60 * 60.0


@runtime_checkable
class RedrawObserver(Protocol):
    """Receives a "state changed, please redraw" signal after each merge.

    Implementations must return quickly; they decide themselves when
    to actually redraw.
    """

    def request_redraw(self) -> None: ...


class NullRedrawObserver:
    """Observer used when no renderer is attached."""

    def request_redraw(self) -> None:
        pass


class RoomRegistry:
    """Ordered room list with merge, sweep and snapshot operations.

    Args:
        rooms: Initial rooms, in display order.
        clock: Monotonic clock used for deadlines and history timestamps.
        reading_ttl: Seconds a merged reading stays current.
        history_retention: Seconds of history kept per room.
        observer: Redraw observer notified by :meth:`consume`.
    """

    def __init__(
        self,
        rooms: Iterable[Room] = (),
        *,
        clock: ClockPort,
        reading_ttl: float = DEFAULT_READING_TTL,
        history_retention: float = DEFAULT_HISTORY_RETENTION,
        observer: RedrawObserver | None = None,
    ) -> None:
        self._rooms: list[Room] = list(rooms)
        self._clock = clock
        self._reading_ttl = reading_ttl
        self._history_retention = history_retention
        self._observer: RedrawObserver = observer or NullRedrawObserver()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._rooms)

    @property
    def observer(self) -> RedrawObserver:
        return self._observer

    @observer.setter
    def observer(self, observer: RedrawObserver) -> None:
        self._observer = observer

    # -- Mutation ------------------------------------------------------------

    def merge(self, reading: SensorReading, now: float | None = None) -> str:
        """Merge *reading* into its room and sweep stale rooms.

        The target is the first room whose ``sensor_address`` equals
        the reading's address.  When there is none, an ad-hoc room
        named after the address is appended.

        Returns:
            The name of the room that received the reading.
        """
        if now is None:
            now = self._clock.now()
        deadline = now + self._reading_ttl
        with self._lock:
            room = self._find(reading.address)
            if room is not None:
                room.current_reading = reading
                room.history.append(HistoryEntry(reading=reading, timestamp=now))
                self._trim_history(room, now)
                room.liveness_deadline = deadline
            else:
                room = Room(
                    name=reading.address,
                    sensor_address=reading.address,
                    current_reading=reading,
                    liveness_deadline=deadline,
                )
                self._rooms.append(room)
                logger.info("New sensor %s, added ad-hoc room", reading.address)
            self._sweep_locked(now)
            return room.name

    def sweep(self, now: float | None = None) -> list[str]:
        """Clear the current reading of every room past its deadline.

        History is left untouched.

        Returns:
            Names of the rooms that were cleared.
        """
        if now is None:
            now = self._clock.now()
        with self._lock:
            return self._sweep_locked(now)

    def set_actuator_mode(self, room_name: str, mode: ActuatorMode) -> Actuator:
        """Switch the actuator of *room_name* to *mode*.

        Used by renderers offering level controls.  The next dispatch
        cycle and the next save pick the new mode up.

        Raises:
            KeyError: If no room of that name has an actuator.
        """
        with self._lock:
            room = next(
                (
                    room
                    for room in self._rooms
                    if room.name == room_name and room.actuator is not None
                ),
                None,
            )
            if room is None or room.actuator is None:
                msg = f"No actuator configured for room '{room_name}'"
                raise KeyError(msg)
            room.actuator = room.actuator.model_copy(update={"mode": mode})
            actuator = room.actuator
        logger.info(
            "%s: actuator mode set to %s", room_name, mode, extra={"room": room_name}
        )
        self._notify_observer()
        return actuator

    # -- Queries -------------------------------------------------------------

    def snapshot(self, now: float | None = None) -> list[Room]:
        """Deep copy of the room list, safe to use without the lock.

        Expired readings are swept first, so a snapshot never shows a
        reading past its deadline even when no merge has run since.
        """
        if now is None:
            now = self._clock.now()
        with self._lock:
            self._sweep_locked(now)
            return [room.model_copy(deep=True) for room in self._rooms]

    def actuators(self) -> list[tuple[str, Actuator]]:
        """``(room name, actuator)`` for every room with an actuator."""
        with self._lock:
            return [
                (room.name, room.actuator)
                for room in self._rooms
                if room.actuator is not None
            ]

    # -- Consumer ------------------------------------------------------------

    async def consume(self, channel: ReadingChannel) -> None:
        """Drain *channel* forever, merging each reading.

        The channel is closed when this coroutine exits for any reason,
        so readers notice that the consumer is gone.
        """
        try:
            while True:
                reading = await channel.receive()
                room_name = self.merge(reading)
                logger.debug(
                    "%s: %.1f°C %d%% (%s)",
                    room_name,
                    reading.temperature,
                    reading.humidity,
                    reading.address,
                )
                self._notify_observer()
        finally:
            channel.close()

    # -- Internal ------------------------------------------------------------

    def _find(self, address: str) -> Room | None:
        for room in self._rooms:
            if room.sensor_address == address:
                return room
        return None

    def _trim_history(self, room: Room, now: float) -> None:
        cutoff = now - self._history_retention
        expired = 0
        for entry in room.history:
            if entry.timestamp >= cutoff:
                break
            expired += 1
        if expired:
            del room.history[:expired]

    def _sweep_locked(self, now: float) -> list[str]:
        cleared: list[str] = []
        for room in self._rooms:
            deadline = room.liveness_deadline
            if deadline is not None and now > deadline:
                room.current_reading = None
                room.liveness_deadline = None
                cleared.append(room.name)
        if cleared:
            logger.info("Sensor readings expired: %s", ", ".join(cleared))
        return cleared

    def _notify_observer(self) -> None:
        try:
            self._observer.request_redraw()
        except Exception:
            logger.exception("Redraw observer failed")
