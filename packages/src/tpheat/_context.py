"""Runtime context shared by the long-running service loops.

:class:`ServiceContext` bundles the settings, the monotonic clock
and the process-wide shutdown event, and provides a
shutdown-aware :meth:`~ServiceContext.sleep` so periodic loops can be
written as::

    while not ctx.shutdown_requested:
        await do_work()
        await ctx.sleep(interval)
"""

from __future__ import annotations

import asyncio
import contextlib

from tpheat._clock import ClockPort
from tpheat._settings import Settings


class ServiceContext:
    """Per-application runtime context injected into service loops."""

    def __init__(
        self,
        *,
        settings: Settings,
        clock: ClockPort,
        shutdown_event: asyncio.Event,
    ) -> None:
        self._settings = settings
        self._clock = clock
        self._shutdown_event = shutdown_event

    @property
    def settings(self) -> Settings:
        """Application settings instance."""
        return self._settings

    @property
    def clock(self) -> ClockPort:
        """Monotonic clock for timing."""
        return self._clock

    @property
    def shutdown_requested(self) -> bool:
        """True once the shutdown event has been set."""
        return self._shutdown_event.is_set()

    def request_shutdown(self) -> None:
        """Set the shutdown event."""
        self._shutdown_event.set()

    async def wait_for_shutdown(self) -> None:
        await self._shutdown_event.wait()

    async def sleep(self, seconds: float) -> None:
        """Shutdown-aware sleep.

        Returns early (without exception) if shutdown is requested
        during the sleep period.
        """
        sleep_task = asyncio.ensure_future(asyncio.sleep(seconds))
        shutdown_task = asyncio.ensure_future(self._shutdown_event.wait())

        _done, pending = await asyncio.wait(
            {sleep_task, shutdown_task},
            return_when=asyncio.FIRST_COMPLETED,
        )

        for task in pending:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
