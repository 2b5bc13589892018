"""Tracking session: periodic location reports and session statistics."""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from pyvtrack.config import TrackerConfig
from pyvtrack.connection import ConnectionManager
from pyvtrack.exceptions import TrackerSessionError
from pyvtrack.models._base import utcnow
from pyvtrack.models.connection import ConnectionState
from pyvtrack.models.report import IdentityPair, LocationReport
from pyvtrack.models.stats import SessionStats
from pyvtrack.positioning import PositionProvider, acquire_permission, read_position

_logger = logging.getLogger(__name__)


class SessionPhase(enum.StrEnum):
    IDLE = "idle"
    STARTING = "starting"
    TRACKING = "tracking"


class TrackingSession:
    """Report the device position on a fixed cadence.

    ``start()`` runs one report cycle before returning, then repeats it
    every ``config.report_interval`` seconds and polls the connection
    state every ``config.status_poll_interval`` seconds. Cycles never
    overlap: a tick that fires while the previous cycle is still running
    is skipped. A failed send is dropped, not retried.

    Usage::

        async with TrackingSession(provider, config=config) as tracker:
            if await tracker.start("V1", "D1"):
                ...
    """

    def __init__(
        self,
        positioning: PositionProvider,
        *,
        config: TrackerConfig | None = None,
        connection: ConnectionManager | None = None,
        on_stats: Callable[[SessionStats], None] | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._config = config or TrackerConfig()
        self._positioning = positioning
        self._owns_connection = connection is None
        self._connection = connection or ConnectionManager(self._config)
        self._on_stats = on_stats
        self._clock = clock

        self._phase = SessionPhase.IDLE
        self._identity: IdentityPair | None = None
        self._stats = SessionStats()
        # Bumped by start() and stop(); cycles from an older generation
        # drop their results.
        self._generation = 0
        self._cycle_lock = asyncio.Lock()
        self._report_task: asyncio.Task[None] | None = None
        self._status_task: asyncio.Task[None] | None = None
        self._cycle_tasks: set[asyncio.Task[None]] = set()

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> TrackingSession:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Stop tracking and release an owned connection manager.

        Report cycles still in flight are cancelled and awaited.
        """
        await self.stop()
        if self._owns_connection:
            await self._connection.aclose()
        pending = list(self._cycle_tasks)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    # ------------------------------------------------------------------
    # Read model
    # ------------------------------------------------------------------

    @property
    def stats(self) -> SessionStats:
        return self._stats

    @property
    def is_tracking(self) -> bool:
        return self._phase is SessionPhase.TRACKING

    @property
    def identity(self) -> IdentityPair | None:
        return self._identity

    @property
    def connection(self) -> ConnectionManager:
        return self._connection

    def connection_status(self) -> ConnectionState:
        """Live connection state (not the last polled value)."""
        return self._connection.status()

    def _publish(self, **changes: Any) -> None:
        self._stats = self._stats.model_copy(update=changes)
        if self._on_stats is not None:
            try:
                self._on_stats(self._stats)
            except Exception:
                _logger.debug("on_stats callback failed", exc_info=True)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self, vehicle_id: str, driver_id: str) -> bool:
        """Begin tracking under the given identity.

        Returns ``False`` (and changes nothing) when positioning
        permission is denied or the permission request fails, and
        ``False`` when ``stop()`` is called before the initial report
        completes. An unexpected failure inside the initial report is
        logged, not raised.

        Raises
        ------
        ValueError
            If either identifier is empty.
        TrackerSessionError
            If the session is already tracking or starting.
        """
        if self._phase is not SessionPhase.IDLE:
            raise TrackerSessionError(f"Session is already {self._phase.value}; call stop() first")
        identity = IdentityPair(vehicle_id=vehicle_id, driver_id=driver_id)

        self._phase = SessionPhase.STARTING
        self._generation += 1
        generation = self._generation
        try:
            if not await acquire_permission(self._positioning):
                return False
            if generation != self._generation:
                return False

            self._identity = identity
            _logger.info(
                "Starting location tracking for vehicle=%s driver=%s",
                identity.vehicle_id,
                identity.driver_id,
            )

            await self._run_cycle(identity, generation)

            if generation != self._generation:
                _logger.info("Session stopped during the initial report cycle")
                return False

            self._phase = SessionPhase.TRACKING
            loop = asyncio.get_running_loop()
            self._report_task = loop.create_task(self._report_loop(identity, generation), name="vtrack-report")
            self._status_task = loop.create_task(self._status_loop(generation), name="vtrack-status")
            self._publish(is_tracking=True, connection_status=self._connection.status())
            return True
        finally:
            # Leave the phase alone if stop() or a newer start() took over.
            if self._phase is SessionPhase.STARTING and generation == self._generation:
                self._phase = SessionPhase.IDLE

    async def stop(self) -> None:
        """Stop tracking and close the connection. Idempotent.

        Both schedules are cancelled before anything is awaited. A cycle
        already in flight may finish, but its results are discarded.
        """
        was_active = self._phase is not SessionPhase.IDLE or self._report_task is not None
        self._generation += 1
        for task in (self._report_task, self._status_task):
            if task is not None:
                task.cancel()
        self._report_task = None
        self._status_task = None
        self._phase = SessionPhase.IDLE

        if was_active:
            _logger.info("Stopping location tracking and closing the connection")
        await self._connection.close()
        if self._stats.is_tracking or self._stats.connection_status is not ConnectionState.DISCONNECTED:
            self._publish(is_tracking=False, connection_status=ConnectionState.DISCONNECTED)

    async def reset(self) -> None:
        """Stop tracking and clear the accumulated statistics."""
        await self.stop()
        self._identity = None
        self._publish(
            is_tracking=False,
            last_api_call=None,
            last_location=None,
            api_call_count=0,
            connection_status=ConnectionState.DISCONNECTED,
        )

    async def reconnect(self) -> None:
        """Drop the connection; the next report cycle opens a new one."""
        _logger.info("Reconnect requested; dropping current connection")
        await self._connection.close()
        if self._phase is SessionPhase.TRACKING:
            self._publish(connection_status=self._connection.status())

    # ------------------------------------------------------------------
    # Report cycle
    # ------------------------------------------------------------------

    async def _report_cycle(self, identity: IdentityPair, generation: int) -> None:
        if generation != self._generation:
            return
        position = await read_position(self._positioning)
        if position is None:
            _logger.warning("Failed to get current location; skipping this report")
            return
        if generation != self._generation:
            return

        report = LocationReport.build(identity, position, self._clock())
        _logger.debug(
            "Sending location report; connection status: %s",
            self._connection.status().value,
        )
        success = await self._connection.send(report.to_wire())

        if generation != self._generation:
            _logger.debug("Discarding result of a report cycle from a stopped session")
            return

        changes: dict[str, Any] = {
            "last_location": position.as_coordinates(),
            "connection_status": self._connection.status(),
        }
        if success:
            changes["last_api_call"] = report.timestamp
            changes["api_call_count"] = self._stats.api_call_count + 1
            _logger.info("Location report sent: %s", report.to_dict())
        else:
            _logger.warning("Failed to send location report; it will not be retried")
        self._publish(**changes)

    async def _run_cycle(self, identity: IdentityPair, generation: int) -> None:
        async with self._cycle_lock:
            try:
                await self._report_cycle(identity, generation)
            except Exception:
                _logger.error("Report cycle failed unexpectedly", exc_info=True)

    async def _report_loop(self, identity: IdentityPair, generation: int) -> None:
        loop = asyncio.get_running_loop()
        interval = self._config.report_interval
        next_tick = loop.time() + interval
        while generation == self._generation:
            await asyncio.sleep(max(0.0, next_tick - loop.time()))
            next_tick += interval
            if self._cycle_lock.locked():
                _logger.warning("Previous report cycle still running; skipping this tick")
                continue
            task = loop.create_task(self._run_cycle(identity, generation), name="vtrack-cycle")
            self._cycle_tasks.add(task)
            task.add_done_callback(self._cycle_tasks.discard)

    async def _status_loop(self, generation: int) -> None:
        interval = self._config.status_poll_interval
        while generation == self._generation:
            await asyncio.sleep(interval)
            if generation != self._generation:
                return
            status = self._connection.status()
            if status is not self._stats.connection_status:
                _logger.debug("Connection status changed to %s", status.value)
                self._publish(connection_status=status)
