"""Exception hierarchy for tpheat.

Propagation policy:

- **Fatal to ingestion** — :class:`AdapterError` (the radio adapter is
  unusable) and :class:`ReadingChannelClosedError` (a reader outlived
  the registry consumer).  Both end the application.
- **Contained** — everything else is logged at the component that
  detected it: per-device connect failures, notification stream
  faults (resubscribed forever), actuator request failures and the
  unimplemented automatic heating mode.
"""

from __future__ import annotations


class TpHeatError(Exception):
    """Base exception for all tpheat errors."""


class ConfigError(TpHeatError):
    """Invalid or missing configuration."""


class AdapterError(TpHeatError):
    """Bluetooth adapter unavailable or discovery filter rejected."""


class DeviceConnectError(TpHeatError):
    """A sensor could not be connected or queried.

    Raised after the connect retry budget is exhausted.
    """

    def __init__(self, message: str, *, address: str) -> None:
        self.address = address
        super().__init__(message)


class NotificationStreamError(TpHeatError):
    """The notification stream of a connected sensor faulted.

    Transient: the reader logs it and resubscribes.
    """


class ReadingChannelClosedError(TpHeatError):
    """A reading was sent after the registry consumer went away."""


class ActuatorError(TpHeatError):
    """Base class for heating actuator failures."""

    def __init__(self, message: str, *, endpoint: str = "") -> None:
        self.endpoint = endpoint
        super().__init__(message)


class ActuatorRequestError(ActuatorError):
    """HTTP-level failure talking to an actuator (network, non-2xx)."""

    def __init__(
        self,
        message: str,
        *,
        endpoint: str = "",
        status_code: int | None = None,
    ) -> None:
        self.status_code = status_code
        super().__init__(message, endpoint=endpoint)


class ActuatorModeNotImplementedError(ActuatorError):
    """The automatic target-temperature mode has no implementation."""


class PersistenceError(TpHeatError):
    """The room state could not be written to disk."""
