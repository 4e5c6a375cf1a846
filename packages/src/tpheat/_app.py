"""Application orchestrator for tpheat.

:class:`App` is the composition root.  It wires settings, logging,
the room registry, Bluetooth ingestion and actuator dispatch together
and supervises them in :meth:`App.run`.

Typical usage::

    import tpheat

    app = tpheat.App(observer=my_renderer)
    app.run()

Task layout while running:

- ``discovery`` — :class:`~tpheat._discovery.DiscoveryLoop` (spawns
  one reader task per sensor)
- ``registry`` — :meth:`~tpheat._registry.RoomRegistry.consume`
- ``dispatch`` — :class:`~tpheat._heating.ActuatorDispatcher`
- ``autosave`` — periodic save of the room list

The supervisor returns as soon as the shutdown event is set or any of
the first three tasks ends.  Teardown is abrupt: tasks are cancelled,
the room list is saved one last time.  A task that ended with an
exception has that exception re-raised after teardown.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from dataclasses import dataclass

import aiohttp

from tpheat._bluetooth import BleakAdvertisementSource, BleakDeviceConnector
from tpheat._channel import ReadingChannel
from tpheat._clock import ClockPort, SystemClock, SystemWallClock, WallClockPort
from tpheat._context import ServiceContext
from tpheat._discovery import (
    AdvertisementSource,
    DeviceEventHandler,
    DiscoveryLoop,
    SensorConnector,
)
from tpheat._errors import PersistenceError
from tpheat._heating import ActuatorDispatcher, ActuatorPort, HttpActuatorClient
from tpheat._logging import configure_logging
from tpheat._persistence import load_rooms, save_rooms
from tpheat._registry import RedrawObserver, RoomRegistry
from tpheat._settings import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class _Adapters:
    """Resolved I/O adapters for one run."""

    source: AdvertisementSource
    connector: SensorConnector
    actuators: ActuatorPort


class App:
    """Central composition root and application supervisor."""

    def __init__(
        self,
        name: str = "tpheat",
        version: str = "0.0.0",
        *,
        description: str = "TP357 room climate monitor and heating driver",
        settings_class: type[Settings] = Settings,
        observer: RedrawObserver | None = None,
        event_handler: DeviceEventHandler | None = None,
    ) -> None:
        """Initialise the application.

        Args:
            name: Application name (used in logs).
            version: Application version string.
            description: Short description for CLI help text.
            settings_class: Settings class instantiated at startup.
            observer: Renderer hook notified after each merged reading.
            event_handler: Receives device property-change events when
                change watching is enabled.
        """
        self._name = name
        self._version = version
        self._description = description
        self._settings_class = settings_class
        self._observer = observer
        self._event_handler = event_handler
        self._registry: RoomRegistry | None = None

    @property
    def registry(self) -> RoomRegistry:
        """The live room registry.

        Raises:
            RuntimeError: If the application is not running.
        """
        if self._registry is None:
            msg = "App is not running"
            raise RuntimeError(msg)
        return self._registry

    # --- Lifecycle ---------------------------------------------------------

    def run(
        self,
        *,
        settings: Settings | None = None,
        shutdown_event: asyncio.Event | None = None,
        clock: ClockPort | None = None,
        wall_clock: WallClockPort | None = None,
        source: AdvertisementSource | None = None,
        connector: SensorConnector | None = None,
        actuators: ActuatorPort | None = None,
    ) -> None:
        """Start the application (blocking, synchronous entrypoint).

        All parameters are optional and intended for programmatic or
        test use.  ``KeyboardInterrupt`` is suppressed for a clean
        Ctrl-C exit.
        """
        with contextlib.suppress(KeyboardInterrupt):
            asyncio.run(
                self._run_async(
                    settings=settings,
                    shutdown_event=shutdown_event,
                    clock=clock,
                    wall_clock=wall_clock,
                    source=source,
                    connector=connector,
                    actuators=actuators,
                ),
            )

    def cli(self) -> None:
        """Start the application with CLI argument parsing."""
        from tpheat._cli import build_cli

        cli = build_cli(self)
        cli(standalone_mode=True)

    async def _run_async(
        self,
        *,
        settings: Settings | None = None,
        shutdown_event: asyncio.Event | None = None,
        clock: ClockPort | None = None,
        wall_clock: WallClockPort | None = None,
        source: AdvertisementSource | None = None,
        connector: SensorConnector | None = None,
        actuators: ActuatorPort | None = None,
    ) -> None:
        """Async orchestration.

        1. Bootstrap (settings, logging, clocks, rooms, registry).
        2. Resolve adapters (bleak scanner/connector, HTTP actuator).
        3. Start tasks and block until shutdown or a core task ends.
        4. Tear down (cancel, final save, close HTTP session).
        """
        # --- Phase 1: Bootstrap ---
        resolved_settings = settings if settings is not None else self._settings_class()
        configure_logging(
            resolved_settings.logging,
            service=self._name,
            version=self._version,
        )
        resolved_clock = clock if clock is not None else SystemClock()
        resolved_wall = wall_clock if wall_clock is not None else SystemWallClock()

        state_file = resolved_settings.registry.state_file
        rooms = load_rooms(state_file, clock=resolved_clock, wall=resolved_wall)
        registry = RoomRegistry(
            rooms,
            clock=resolved_clock,
            reading_ttl=resolved_settings.registry.reading_ttl,
            history_retention=resolved_settings.registry.history_retention,
            observer=self._observer,
        )
        self._registry = registry
        channel = ReadingChannel(resolved_settings.bluetooth.channel_capacity)

        shutdown_event = self._install_signal_handlers(shutdown_event)
        ctx = ServiceContext(
            settings=resolved_settings,
            clock=resolved_clock,
            shutdown_event=shutdown_event,
        )

        # --- Phase 2: Adapters ---
        http_session: aiohttp.ClientSession | None = None
        if actuators is None:
            http_session = aiohttp.ClientSession()
            actuators = HttpActuatorClient(
                http_session,
                timeout=resolved_settings.heating.request_timeout,
            )
        adapters = _Adapters(
            source=source
            if source is not None
            else BleakAdvertisementSource(resolved_settings.bluetooth),
            connector=connector
            if connector is not None
            else BleakDeviceConnector(resolved_settings.bluetooth),
            actuators=actuators,
        )

        logger.info(
            "%s v%s starting with %d rooms", self._name, self._version, len(registry)
        )

        # --- Phase 3: Run ---
        try:
            failure = await self._supervise(
                ctx, registry, channel, adapters, resolved_wall
            )
        finally:
            # --- Phase 4: Tear down ---
            self._save(registry, ctx, resolved_wall)
            if http_session is not None:
                await http_session.close()
            self._registry = None

        logger.info("Shutdown complete")
        if failure is not None:
            raise failure

    # --- _run_async helpers ------------------------------------------------

    async def _supervise(
        self,
        ctx: ServiceContext,
        registry: RoomRegistry,
        channel: ReadingChannel,
        adapters: _Adapters,
        wall: WallClockPort,
    ) -> BaseException | None:
        """Run all tasks until shutdown; return the fatal error, if any."""
        settings = ctx.settings
        discovery = DiscoveryLoop(
            adapters.source,
            adapters.connector,
            channel,
            allowed_addresses=settings.bluetooth.allowed_addresses,
            watch_changes=settings.bluetooth.watch_changes,
            event_handler=self._event_handler,
        )
        dispatcher = ActuatorDispatcher(
            registry,
            adapters.actuators,
            interval=settings.heating.dispatch_interval,
        )

        core_tasks = {
            asyncio.create_task(discovery.run(), name="discovery"),
            asyncio.create_task(registry.consume(channel), name="registry"),
            asyncio.create_task(dispatcher.run(ctx), name="dispatch"),
        }
        autosave_task = asyncio.create_task(
            self._autosave_loop(ctx, registry, wall),
            name="autosave",
        )
        shutdown_task = asyncio.create_task(ctx.wait_for_shutdown(), name="shutdown")

        failure: BaseException | None = None
        try:
            done, _pending = await asyncio.wait(
                {*core_tasks, shutdown_task},
                return_when=asyncio.FIRST_COMPLETED,
            )
            for task in done:
                if task is shutdown_task:
                    logger.info("Shutdown requested")
                    continue
                failure = failure or self._describe_exit(task)
        finally:
            await self._cancel_tasks([*core_tasks, autosave_task, shutdown_task])
        return failure

    @staticmethod
    def _describe_exit(task: asyncio.Task[None]) -> BaseException | None:
        """Log why a core task ended and return its exception."""
        if task.cancelled():
            logger.warning("Task '%s' was cancelled", task.get_name())
            return None
        exc = task.exception()
        if exc is None:
            logger.warning("Task '%s' ended, shutting down", task.get_name())
            return None
        logger.error("Task '%s' failed: %s", task.get_name(), exc)
        return exc

    async def _autosave_loop(
        self,
        ctx: ServiceContext,
        registry: RoomRegistry,
        wall: WallClockPort,
    ) -> None:
        interval = ctx.settings.registry.autosave_interval
        while not ctx.shutdown_requested:
            await ctx.sleep(interval)
            if ctx.shutdown_requested:
                break
            self._save(registry, ctx, wall)

    @staticmethod
    def _save(
        registry: RoomRegistry,
        ctx: ServiceContext,
        wall: WallClockPort,
    ) -> None:
        try:
            save_rooms(
                registry.snapshot(),
                ctx.settings.registry.state_file,
                clock=ctx.clock,
                wall=wall,
            )
        except PersistenceError:
            logger.exception("Saving room state failed")

    def _install_signal_handlers(
        self,
        shutdown_event: asyncio.Event | None,
    ) -> asyncio.Event:
        """Install SIGTERM/SIGINT handlers. Returns the shutdown event."""
        if shutdown_event is not None:
            return shutdown_event
        event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, event.set)
        return event

    @staticmethod
    async def _cancel_tasks(tasks: list[asyncio.Task[None]]) -> None:
        """Cancel tasks and wait for them to unwind."""
        for task in tasks:
            task.cancel()
        results = await asyncio.gather(*tasks, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception) and not isinstance(
                result,
                asyncio.CancelledError,
            ):
                logger.debug("Task error during shutdown: %r", result)
