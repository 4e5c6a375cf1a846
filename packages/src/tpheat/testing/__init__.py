"""Public test-support utilities for tpheat.

Re-exports test doubles and factories so that test suites can import
everything from a single ``tpheat.testing`` namespace instead of
reaching into private modules.

Provided symbols:

- :class:`FakeClock` / :class:`FakeWallClock` — deterministic clocks.
- :func:`make_settings` — factory for ``Settings`` without ``.env`` files.
- :class:`FakeAdvertisementSource`, :class:`FakeConnector`,
  :class:`FakeSensorLink` — scripted Bluetooth doubles.
- :class:`RecordingActuatorClient` — in-memory actuator port.
- :class:`RecordingObserver` — counts redraw requests.
"""

from tpheat.testing._clock import FakeClock, FakeWallClock
from tpheat.testing._doubles import (
    FakeAdvertisementSource,
    FakeConnector,
    FakeSensorLink,
    RecordingActuatorClient,
    RecordingObserver,
)
from tpheat.testing._settings import make_settings

__all__ = [
    "FakeAdvertisementSource",
    "FakeClock",
    "FakeConnector",
    "FakeSensorLink",
    "FakeWallClock",
    "RecordingActuatorClient",
    "RecordingObserver",
    "make_settings",
]
