"""UDP listener for the drone's periodic state broadcasts."""

from __future__ import annotations

import asyncio
import inspect
import logging
import socket
import time
from typing import Optional

from .. import constants
from ..core import (
    ChannelClosedError,
    DiagnosticSink,
    TelemetryCallback,
    TransportError,
    bind_udp_socket,
)
from ..diagnostics import DiagnosticTracer
from ..telemetry import TelemetryRecord, parse_telemetry_line

LOGGER = logging.getLogger(__name__)


class _TelemetryProtocol(asyncio.DatagramProtocol):
    def __init__(self, channel: TelemetryChannel) -> None:
        self._channel = channel

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        self._channel._on_datagram(data, addr)

    def error_received(self, exc: Exception) -> None:
        self._channel._on_error(exc)

    def connection_lost(self, exc: Optional[Exception]) -> None:
        if exc is not None:
            LOGGER.warning("Telemetry socket closed unexpectedly: %s", exc)


class TelemetryChannel:
    """Parses state datagrams and fans them out to subscribers.

    The state port is bound on construction, so a port already in use
    surfaces immediately as ``BindError``. :meth:`start` attaches the socket
    to the running loop; from then on every datagram is parsed into a
    :class:`TelemetryRecord` and handed to each subscriber in registration
    order. A failing subscriber is logged and skipped. Datagrams that yield
    no ``key:value`` fields are dropped and never reach subscribers, so a
    callback always receives a non-empty record.

    Once closed the channel is finished: it delivers nothing more and
    ``subscribe`` raises ``ChannelClosedError``.
    """

    def __init__(
        self,
        state_port: int = constants.DEFAULT_STATE_PORT,
        *,
        local_host: str = "0.0.0.0",
        debug: bool = False,
        diagnostics: Optional[DiagnosticSink] = None,
    ) -> None:
        self._sock: socket.socket = bind_udp_socket(local_host, state_port)
        self._tracer = DiagnosticTracer(
            "TelemetryChannel", enabled=debug, sink=diagnostics, logger=LOGGER
        )
        self._transport: Optional[asyncio.DatagramTransport] = None
        self._start_lock = asyncio.Lock()
        self._starting = False
        self._subscribers: list[TelemetryCallback] = []
        self._pending_tasks: set[asyncio.Task[None]] = set()
        self._closed = False

        self.last_record: Optional[TelemetryRecord] = None
        self.last_received_at: Optional[float] = None
        self.records_received = 0

    @property
    def local_address(self) -> tuple[str, int]:
        return self._sock.getsockname()[:2]

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def is_listening(self) -> bool:
        return self._transport is not None and not self._closed

    @property
    def subscribers(self) -> tuple[TelemetryCallback, ...]:
        return tuple(self._subscribers)

    async def start(self) -> None:
        """Begin receiving telemetry on the running event loop."""

        async with self._start_lock:
            if self._closed:
                raise ChannelClosedError("Telemetry channel is closed")
            if self._transport is not None:
                return

            loop = asyncio.get_running_loop()
            self._starting = True
            try:
                transport, _ = await loop.create_datagram_endpoint(
                    lambda: _TelemetryProtocol(self), sock=self._sock
                )
            except OSError as exc:
                if self._closed:
                    self._sock.close()
                raise TransportError(f"Unable to open telemetry socket: {exc}") from exc
            except asyncio.CancelledError:
                self.close()
                raise
            finally:
                self._starting = False

            if self._closed:
                transport.close()
                raise ChannelClosedError("Telemetry channel closed while starting")

            self._transport = transport
            LOGGER.info("Listening for telemetry on %s:%s", *self.local_address)

    def subscribe(self, callback: TelemetryCallback) -> None:
        """Register ``callback`` for every subsequent record."""

        if self._closed:
            raise ChannelClosedError("Cannot subscribe to a closed telemetry channel")
        self._subscribers.append(callback)

    def unsubscribe(self, callback: TelemetryCallback) -> None:
        """Remove every registration of ``callback``; unknown callbacks are ignored."""

        self._subscribers = [cb for cb in self._subscribers if cb != callback]

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._tracer.trace("Closing telemetry channel")
        self._subscribers = []

        if self._transport is not None:
            self._transport.close()
            self._transport = None
        elif not self._starting:
            self._sock.close()

        for task in list(self._pending_tasks):
            task.cancel()

    async def __aenter__(self) -> TelemetryChannel:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        self.close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _on_datagram(self, data: bytes, addr: tuple[str, int]) -> None:
        if self._closed:
            return

        record = parse_telemetry_line(data.decode("utf-8", errors="replace"))
        if not record:
            LOGGER.debug("Dropping telemetry datagram without fields: %r", data[:64])
            return

        self.last_record = record
        self.last_received_at = time.monotonic()
        self.records_received += 1
        self._tracer.trace("State received from %s:%s: %r", addr[0], addr[1], record)

        self._dispatch(record)

    def _dispatch(self, record: TelemetryRecord) -> None:
        # Subscribers added during delivery only see the next record.
        for callback in list(self._subscribers):
            if self._closed:
                return
            try:
                result = callback(record)
            except Exception:
                LOGGER.exception("Telemetry subscriber %r failed", callback)
                continue

            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._pending_tasks.add(task)
                task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task[None]) -> None:
        self._pending_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.error("Telemetry subscriber failed", exc_info=exc)

    def _on_error(self, exc: Exception) -> None:
        LOGGER.warning("Telemetry socket error: %s", exc)
        self._tracer.trace("State socket error: %s", exc)
