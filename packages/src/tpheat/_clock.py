"""Clock ports and system adapters.

Provides :class:`ClockPort` (monotonic time, used for liveness deadlines
and history timestamps) and :class:`WallClockPort` (absolute time, used
only when converting timestamps for the state file).

The monotonic epoch is arbitrary; only *differences* between ``now()``
calls are meaningful (PEP 418).  Persisted timestamps therefore go
through :func:`to_wall_time` / :func:`from_wall_time`, which is an
approximation anchored on the current reading of both clocks.
"""

from __future__ import annotations

import time
from datetime import UTC, datetime, timedelta
from typing import Protocol, runtime_checkable


@runtime_checkable
class ClockPort(Protocol):
    """Monotonic clock for timing measurements.

    The default implementation wraps ``time.monotonic()``. Tests
    inject a deterministic fake clock for reproducible timing.
    """

    def now(self) -> float:
        """Return monotonic time in seconds.

        Returns:
            A float representing seconds from an arbitrary epoch.
            Only the *difference* between two calls is meaningful.
        """
        ...


@runtime_checkable
class WallClockPort(Protocol):
    """Absolute (wall) clock returning timezone-aware datetimes."""

    def now(self) -> datetime: ...


class SystemClock:
    """Production clock wrapping ``time.monotonic()``.

    Satisfies :class:`ClockPort` via structural subtyping — no
    base-class inheritance required (PEP 544).
    """

    def now(self) -> float:
        """Return monotonic time in seconds."""
        return time.monotonic()


class SystemWallClock:
    """Production wall clock returning ``datetime.now(UTC)``."""

    def now(self) -> datetime:
        return datetime.now(UTC)


def to_wall_time(
    timestamp: float,
    *,
    clock: ClockPort,
    wall: WallClockPort,
) -> datetime:
    """Project a monotonic *timestamp* onto the wall clock.

    ``wall_now - (mono_now - timestamp)``.
    """
    elapsed = clock.now() - timestamp
    return wall.now() - timedelta(seconds=elapsed)


def from_wall_time(
    value: datetime,
    *,
    clock: ClockPort,
    wall: WallClockPort,
) -> float:
    """Rebuild an approximate monotonic timestamp from a wall-clock *value*.

    Values in the future (clock skew between save and load) are clamped
    to the current monotonic time.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    mono_now = clock.now()
    age = (wall.now() - value).total_seconds()
    return mono_now - max(age, 0.0)
