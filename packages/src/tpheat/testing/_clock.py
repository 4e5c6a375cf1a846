"""Deterministic fake clocks for testing.

Satisfy :class:`~tpheat._clock.ClockPort` and
:class:`~tpheat._clock.WallClockPort` (PEP 544 structural subtyping)
with manually controllable values.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta


@dataclass
class FakeClock:
    """Test double for ClockPort.

    Example::

        clock = FakeClock(42.0)
        assert clock.now() == 42.0
        clock.advance(300)
        assert clock.now() == 342.0
    """

    _time: float = 0.0

    def now(self) -> float:
        """Return the manually set time value."""
        return self._time

    def advance(self, seconds: float) -> None:
        self._time += seconds


@dataclass
class FakeWallClock:
    """Test double for WallClockPort, fixed until advanced."""

    _time: datetime = field(
        default_factory=lambda: datetime(2026, 1, 1, 12, 0, tzinfo=UTC),
    )

    def now(self) -> datetime:
        return self._time

    def advance(self, seconds: float) -> None:
        self._time += timedelta(seconds=seconds)
