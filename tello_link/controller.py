"""High-level drone controller built on the command and telemetry channels."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import re
import time
from typing import Optional

from .adapters import CommandChannel, TelemetryChannel
from .commands import (
    ControlCommands,
    ReadCommands,
    build_flip,
    build_move,
    build_rotate,
    build_speed,
)
from .config import TelloLinkConfig, load_config
from .core import DiagnosticSink, TelemetryCallback, TelloLinkError, UnexpectedReplyError
from .health import COMMAND_COMPONENT, TELEMETRY_COMPONENT, HealthReporter
from .telemetry import TelemetryRecord

LOGGER = logging.getLogger(__name__)

_LEADING_INT_RE = re.compile(r"\s*([+-]?\d+)")


class TelloController:
    """Maps drone operations onto SDK commands.

    The command channel only accepts one command at a time, so every call
    goes through a lock; concurrent callers queue up instead of tripping
    ``BusyError``. Action commands return the raw reply (``"ok"`` or an
    error string) for the caller to interpret.
    """

    def __init__(
        self,
        config: Optional[TelloLinkConfig] = None,
        *,
        command_channel: Optional[CommandChannel] = None,
        telemetry_channel: Optional[TelemetryChannel] = None,
        health: Optional[HealthReporter] = None,
        diagnostics: Optional[DiagnosticSink] = None,
    ) -> None:
        self._config = config or load_config()
        debug = self._config.commands.debug

        self._command = command_channel or CommandChannel(
            self._config.peer,
            default_timeout_ms=self._config.commands.timeout_ms,
            debug=debug,
            diagnostics=diagnostics,
        )
        try:
            self._telemetry = telemetry_channel or TelemetryChannel(
                self._config.drone.state_port, debug=debug, diagnostics=diagnostics
            )
        except Exception:
            if command_channel is None:
                self._command.close()
            raise
        self._health = health
        self._lock = asyncio.Lock()
        self._watchdog_task: Optional[asyncio.Task[None]] = None
        LOGGER.debug("TelloController initialized for %s", self._config.drone.host)

    @property
    def command_channel(self) -> CommandChannel:
        return self._command

    @property
    def telemetry_channel(self) -> TelemetryChannel:
        return self._telemetry

    @property
    def health(self) -> Optional[HealthReporter]:
        return self._health

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def connect(self) -> None:
        """Open both channels and start the telemetry health watchdog."""

        await self._command.open()
        try:
            await self._telemetry.start()
        except BaseException:
            self._command.close()
            raise

        if self._health is not None and self._watchdog_task is None:
            self._watchdog_task = asyncio.create_task(self._telemetry_watchdog())

    async def disconnect(self) -> None:
        LOGGER.debug("Disconnecting")
        if self._watchdog_task is not None:
            self._watchdog_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._watchdog_task
            self._watchdog_task = None

        self._command.close()
        self._telemetry.close()

    async def __aenter__(self) -> TelloController:
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        await self.disconnect()

    # ------------------------------------------------------------------
    # Basic control
    # ------------------------------------------------------------------
    async def send(self, command: str, timeout_ms: Optional[int] = None) -> str:
        """Send a raw SDK command, waiting for any command already in flight."""

        async with self._lock:
            try:
                reply = await self._command.send(command, timeout_ms)
            except TelloLinkError as exc:
                await self._report(COMMAND_COMPONENT, False, str(exc))
                raise

        await self._report(COMMAND_COMPONENT, True, f"{command!r} -> {reply!r}")
        return reply

    async def initialize(self) -> bool:
        """Put the drone into SDK mode; raises unless it answers ``ok``."""

        LOGGER.debug("Initializing drone")
        reply = await self.send(ControlCommands.COMMAND)
        if reply.lower() != "ok":
            raise UnexpectedReplyError(ControlCommands.COMMAND, reply)
        return True

    async def takeoff(self) -> str:
        LOGGER.debug("Taking off")
        return await self.send(ControlCommands.TAKEOFF)

    async def land(self) -> str:
        LOGGER.debug("Landing")
        return await self.send(ControlCommands.LAND)

    async def emergency(self) -> str:
        LOGGER.warning("Emergency stop requested")
        return await self.send(ControlCommands.EMERGENCY)

    async def stop(self) -> str:
        LOGGER.debug("Hovering")
        return await self.send(ControlCommands.STOP)

    # ------------------------------------------------------------------
    # Movement
    # ------------------------------------------------------------------
    async def move(self, direction: str, distance: int) -> str:
        command = build_move(direction, distance)
        LOGGER.debug("Moving %s by %scm", direction, distance)
        return await self.send(command)

    async def rotate(self, degrees: int) -> str:
        command = build_rotate(degrees)
        LOGGER.debug("Rotating %s degrees", degrees)
        return await self.send(command)

    async def flip(self, direction: str) -> str:
        command = build_flip(direction)
        LOGGER.debug("Flipping %s", direction)
        return await self.send(command)

    async def set_speed(self, speed: int) -> str:
        command = build_speed(speed)
        LOGGER.debug("Setting speed to %s", speed)
        return await self.send(command)

    # ------------------------------------------------------------------
    # Readings
    # ------------------------------------------------------------------
    async def get_battery(self) -> int:
        """Battery charge in percent."""

        return await self._read_int(ReadCommands.BATTERY)

    async def get_speed(self) -> int:
        return await self._read_int(ReadCommands.SPEED)

    async def get_time(self) -> int:
        """Motor-on time in seconds (the drone answers e.g. ``"12s"``)."""

        return await self._read_int(ReadCommands.TIME)

    async def get_wifi(self) -> str:
        return await self.send(ReadCommands.WIFI)

    async def get_sdk(self) -> str:
        return await self.send(ReadCommands.SDK)

    async def get_serial_number(self) -> str:
        return await self.send(ReadCommands.SN)

    # ------------------------------------------------------------------
    # Telemetry
    # ------------------------------------------------------------------
    def on_state(self, callback: TelemetryCallback) -> None:
        if not callable(callback):
            raise TypeError("State callback must be callable")
        self._telemetry.subscribe(callback)

    def remove_state_listener(self, callback: TelemetryCallback) -> None:
        self._telemetry.unsubscribe(callback)

    @property
    def latest_state(self) -> Optional[TelemetryRecord]:
        return self._telemetry.last_record

    async def refresh_health(self) -> None:
        """Mark telemetry unhealthy when no record arrived recently."""

        if self._health is None:
            return

        last = self._telemetry.last_received_at
        if last is None:
            await self._health.update(TELEMETRY_COMPONENT, False, "no telemetry received")
            return

        age = time.monotonic() - last
        stale_after = self._config.health.telemetry_stale_seconds
        await self._health.update(
            TELEMETRY_COMPONENT, age <= stale_after, f"last record {age:.1f}s ago"
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    async def _read_int(self, command: str) -> int:
        reply = await self.send(command)
        match = _LEADING_INT_RE.match(reply)
        if match is None:
            raise UnexpectedReplyError(command, reply)
        return int(match.group(1))

    async def _report(self, component: str, healthy: bool, detail: str) -> None:
        if self._health is not None:
            await self._health.update(component, healthy, detail)

    async def _telemetry_watchdog(self) -> None:
        interval = max(0.1, self._config.health.telemetry_stale_seconds / 3)
        while True:
            try:
                await self.refresh_health()
            except Exception:
                LOGGER.exception("Telemetry health check failed")
            await asyncio.sleep(interval)
