"""Heating actuator dispatch.

Each cycle the :class:`ActuatorDispatcher` collects the configured
actuators from the registry (under its lock), releases the lock and
then issues one HTTP request per actuator::

    GET <endpoint>?turn=on&timer=<seconds>

A manual power level ``0..6`` maps to an on-duration of
``level * 3600 / 6`` seconds, so the heater runs that share of the
hour-long cycle.  Level 0 still sends a zero-length timer.

The automatic target-temperature mode is declared but not implemented.
Dispatching it raises :class:`ActuatorModeNotImplementedError`; the
dispatcher records it for that room and carries on with the others.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Protocol, assert_never, runtime_checkable

import aiohttp

from tpheat._context import ServiceContext
from tpheat._errors import ActuatorModeNotImplementedError, ActuatorRequestError
from tpheat._models import Actuator, AutoMode, ManualMode
from tpheat._registry import RoomRegistry

logger = logging.getLogger(__name__)

CYCLE_SECONDS = 3600
MAX_POWER_LEVEL = 6


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TimerCommand:
    """Turn the actuator on for ``timer_seconds``."""

    room: str
    endpoint: str
    timer_seconds: int

    @property
    def query(self) -> dict[str, str]:
        return {"turn": "on", "timer": str(self.timer_seconds)}


def timer_for_level(level: int) -> int:
    """On-duration in seconds for a manual power *level*."""
    if not 0 <= level <= MAX_POWER_LEVEL:
        msg = f"Power level must be within 0..{MAX_POWER_LEVEL}, got {level}"
        raise ValueError(msg)
    return level * CYCLE_SECONDS // MAX_POWER_LEVEL


def plan_command(room: str, actuator: Actuator) -> TimerCommand:
    """Translate an actuator configuration into the request to send.

    Raises:
        ActuatorModeNotImplementedError: For :class:`AutoMode`.
    """
    match actuator.mode:
        case ManualMode(level=level):
            return TimerCommand(
                room=room,
                endpoint=actuator.endpoint,
                timer_seconds=timer_for_level(level),
            )
        case AutoMode(target_temperature=target):
            msg = (
                f"Automatic mode (target {target:.1f}°C) is not implemented "
                f"for room '{room}'"
            )
            raise ActuatorModeNotImplementedError(msg, endpoint=actuator.endpoint)
        case _:
            assert_never(actuator.mode)


# ---------------------------------------------------------------------------
# Actuator port and HTTP adapter
# ---------------------------------------------------------------------------


@runtime_checkable
class ActuatorPort(Protocol):
    """Sends timer commands to actuators."""

    async def send(self, command: TimerCommand) -> None: ...


class HttpActuatorClient:
    """Actuator adapter issuing plain HTTP GET requests via *aiohttp*.

    Args:
        http_session: Shared client session; owned by the caller.
        timeout: Total seconds allowed per request.
    """

    def __init__(
        self,
        http_session: aiohttp.ClientSession,
        *,
        timeout: float = 10.0,
    ) -> None:
        self._http = http_session
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    async def send(self, command: TimerCommand) -> None:
        """Issue *command*.

        Raises:
            ActuatorRequestError: On network errors, timeouts or a
                non-2xx response.
        """
        endpoint = command.endpoint
        logger.debug("GET %s %s", endpoint, command.query)
        try:
            async with self._http.get(
                endpoint,
                params=command.query,
                timeout=self._timeout,
            ) as resp:
                text = await resp.text()
                if not 200 <= resp.status < 300:
                    raise ActuatorRequestError(
                        f"HTTP {resp.status} from {endpoint}: {text[:200]}",
                        endpoint=endpoint,
                        status_code=resp.status,
                    )
        except ActuatorRequestError:
            raise
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise ActuatorRequestError(
                f"Request to {endpoint} failed: {exc!r}",
                endpoint=endpoint,
            ) from exc


# ---------------------------------------------------------------------------
# Dispatch report
# ---------------------------------------------------------------------------


class DispatchStatus(StrEnum):
    SENT = "sent"
    FAILED = "failed"
    NOT_IMPLEMENTED = "not_implemented"


@dataclass(frozen=True, slots=True)
class DispatchOutcome:
    room: str
    endpoint: str
    status: DispatchStatus
    timer_seconds: int | None = None
    error: str | None = None


@dataclass
class DispatchReport:
    """Result of one dispatch cycle, one outcome per actuator."""

    outcomes: list[DispatchOutcome] = field(default_factory=list)

    def by_status(self, status: DispatchStatus) -> list[DispatchOutcome]:
        return [outcome for outcome in self.outcomes if outcome.status is status]

    @property
    def sent(self) -> list[DispatchOutcome]:
        return self.by_status(DispatchStatus.SENT)

    @property
    def failed(self) -> list[DispatchOutcome]:
        return self.by_status(DispatchStatus.FAILED)

    @property
    def not_implemented(self) -> list[DispatchOutcome]:
        return self.by_status(DispatchStatus.NOT_IMPLEMENTED)


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------


class ActuatorDispatcher:
    """Periodically drives every configured actuator."""

    def __init__(
        self,
        registry: RoomRegistry,
        actuators: ActuatorPort,
        *,
        interval: float = float(CYCLE_SECONDS),
    ) -> None:
        if interval <= 0:
            msg = f"Dispatch interval must be positive, got {interval}"
            raise ValueError(msg)
        self._registry = registry
        self._actuators = actuators
        self._interval = interval

    async def run(self, ctx: ServiceContext) -> None:
        """Dispatch a cycle, sleep, repeat until shutdown."""
        logger.info("Actuator dispatch every %.0fs", self._interval)
        while not ctx.shutdown_requested:
            await self.run_cycle()
            await ctx.sleep(self._interval)

    async def run_cycle(self) -> DispatchReport:
        """Send one command per configured actuator.

        Failures are contained per actuator; the cycle always completes.
        """
        # Lock held only while copying; the requests below run without it.
        pending = self._registry.actuators()
        report = DispatchReport()
        for room, actuator in pending:
            report.outcomes.append(await self._dispatch(room, actuator))
        if report.outcomes:
            logger.info(
                "Dispatch cycle: %d sent, %d failed, %d not implemented",
                len(report.sent),
                len(report.failed),
                len(report.not_implemented),
            )
        return report

    async def _dispatch(self, room: str, actuator: Actuator) -> DispatchOutcome:
        try:
            command = plan_command(room, actuator)
        except ActuatorModeNotImplementedError as exc:
            logger.error("%s", exc, extra={"room": room})
            return DispatchOutcome(
                room=room,
                endpoint=actuator.endpoint,
                status=DispatchStatus.NOT_IMPLEMENTED,
                error=str(exc),
            )

        try:
            await self._actuators.send(command)
        except ActuatorRequestError as exc:
            logger.error(
                "Actuator for '%s' failed: %s",
                room,
                exc,
                extra={"room": room, "endpoint": command.endpoint},
            )
            return DispatchOutcome(
                room=room,
                endpoint=command.endpoint,
                status=DispatchStatus.FAILED,
                timer_seconds=command.timer_seconds,
                error=str(exc),
            )

        logger.info(
            "Actuator for '%s' on for %ds (%s)",
            room,
            command.timer_seconds,
            command.endpoint,
            extra={"room": room, "endpoint": command.endpoint},
        )
        return DispatchOutcome(
            room=room,
            endpoint=command.endpoint,
            status=DispatchStatus.SENT,
            timer_seconds=command.timer_seconds,
        )
