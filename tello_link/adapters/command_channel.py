"""UDP command/response channel to the drone.

The drone answers each text command with a single text datagram and the
wire format carries no sequence numbers. Correlation therefore relies on
strict request/reply serialisation: only one command may be pending at a
time, and the reply slot is detached as soon as that command resolves.
A datagram that arrives with no command pending is discarded.

A reply that arrives late, after the caller has already issued the next
command, cannot be told apart from that command's own reply. This is a
limitation of the protocol and cannot be fixed on the client side.
"""

from __future__ import annotations

import asyncio
import logging
import socket
from typing import Optional

from .. import constants
from ..core import (
    BusyError,
    ChannelClosedError,
    CommandTimeoutError,
    DiagnosticSink,
    PeerAddress,
    PendingCommand,
    TransportError,
    bind_udp_socket,
)
from ..diagnostics import DiagnosticTracer

LOGGER = logging.getLogger(__name__)


class _CommandProtocol(asyncio.DatagramProtocol):
    def __init__(self, channel: CommandChannel) -> None:
        self._channel = channel

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        self._channel._on_datagram(data, addr)

    def error_received(self, exc: Exception) -> None:
        self._channel._on_error(exc)

    def connection_lost(self, exc: Optional[Exception]) -> None:
        self._channel._on_connection_lost(exc)


class CommandChannel:
    """Sends one command at a time and waits for its reply.

    The local socket is bound to an ephemeral port on construction and
    attached to the running event loop by :meth:`open` (called lazily by
    :meth:`send`).

    Issuing a command while another is still pending raises ``BusyError``;
    callers that share a channel must serialise their calls.
    """

    def __init__(
        self,
        peer: Optional[PeerAddress] = None,
        *,
        default_timeout_ms: int = constants.DEFAULT_COMMAND_TIMEOUT_MS,
        debug: bool = False,
        diagnostics: Optional[DiagnosticSink] = None,
        local_host: str = "0.0.0.0",
    ) -> None:
        _validate_timeout(default_timeout_ms)

        self.peer = peer or PeerAddress()
        self.default_timeout_ms = default_timeout_ms
        self._tracer = DiagnosticTracer(
            "CommandChannel", enabled=debug, sink=diagnostics, logger=LOGGER
        )

        self._sock: socket.socket = bind_udp_socket(local_host, 0)
        self._transport: Optional[asyncio.DatagramTransport] = None
        self._open_lock = asyncio.Lock()
        self._opening = False
        self._pending: Optional[PendingCommand] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._closed = False

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    @property
    def local_address(self) -> tuple[str, int]:
        return self._sock.getsockname()[:2]

    @property
    def pending(self) -> Optional[PendingCommand]:
        """The unresolved command, if any."""

        return self._pending

    @property
    def is_open(self) -> bool:
        return self._transport is not None and not self._closed

    @property
    def closed(self) -> bool:
        return self._closed

    async def open(self) -> None:
        """Attach the bound socket to the running event loop."""

        async with self._open_lock:
            if self._closed:
                raise ChannelClosedError("Command channel is closed")
            if self._transport is not None:
                return

            loop = asyncio.get_running_loop()
            # The endpoint owns the socket from here on; close() must not touch it.
            self._opening = True
            try:
                transport, _ = await loop.create_datagram_endpoint(
                    lambda: _CommandProtocol(self), sock=self._sock
                )
            except OSError as exc:
                if self._closed:
                    self._sock.close()
                raise TransportError(f"Unable to open command socket: {exc}") from exc
            except asyncio.CancelledError:
                # The loop closes the socket when endpoint setup is cancelled.
                self.close()
                raise
            finally:
                self._opening = False

            if self._closed:
                transport.close()
                raise ChannelClosedError("Command channel closed while opening")

            self._transport = transport
            LOGGER.debug(
                "Command channel %s:%s ready for %s:%s",
                *self.local_address,
                *self.peer.command_endpoint,
            )

    async def send(self, command_text: str, timeout_ms: Optional[int] = None) -> str:
        """Send ``command_text`` and return the drone's reply.

        The reply is returned uninterpreted apart from trailing whitespace
        being stripped; deciding whether ``"ok"`` or ``"error"`` means success
        is left to the caller.

        Raises:
            ValueError: If the command is empty or the timeout is not positive.
            BusyError: If another command is still pending.
            CommandTimeoutError: If no reply arrives within ``timeout_ms``.
            TransportError: If the datagram cannot be sent.
            ChannelClosedError: If the channel is (or gets) closed.
        """

        if not isinstance(command_text, str) or not command_text:
            raise ValueError("Command text must be a non-empty string")
        if timeout_ms is None:
            timeout_ms = self.default_timeout_ms
        _validate_timeout(timeout_ms)

        if self._closed:
            raise ChannelClosedError("Command channel is closed")
        if self._pending is not None:
            raise BusyError(
                f"Command {self._pending.command_text!r} is still awaiting a reply"
            )

        loop = asyncio.get_running_loop()
        pending = PendingCommand(
            command_text=command_text,
            issued_at=loop.time(),
            timeout_ms=timeout_ms,
            future=loop.create_future(),
        )
        self._pending = pending

        try:
            await self.open()
            self._transmit(pending)
            return await pending.future
        finally:
            self._detach(pending)
            # No-op unless the caller was cancelled or open() failed.
            if not pending.cancel() and not pending.future.cancelled():
                # close() may have failed the future while open() was suspended.
                pending.future.exception()

    def close(self) -> None:
        """Close the socket and fail any in-flight command."""

        if self._closed:
            return
        self._closed = True
        self._tracer.trace("Closing command channel")

        pending = self._pending
        if pending is not None:
            self._detach(pending)
            pending.fail(ChannelClosedError("Command channel closed while awaiting a reply"))

        if self._transport is not None:
            self._transport.close()
            self._transport = None
        elif not self._opening:
            self._sock.close()

    async def __aenter__(self) -> CommandChannel:
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        self.close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _transmit(self, pending: PendingCommand) -> None:
        transport = self._transport
        if transport is None or self._closed:
            pending.fail(ChannelClosedError("Command channel is closed"))
            return

        loop = asyncio.get_running_loop()
        pending.issued_at = loop.time()
        self._tracer.trace("Sending command: %s", pending.command_text)

        try:
            # Send failures are normally reported through error_received.
            transport.sendto(pending.command_text.encode("utf-8"), self.peer.command_endpoint)
        except OSError as exc:
            self._on_error(exc)

        if pending.resolved:
            return

        self._timer = loop.call_later(
            pending.timeout_ms / 1000.0, self._on_timeout, pending
        )

    def _detach(self, pending: PendingCommand) -> None:
        if self._pending is not pending:
            return
        self._pending = None
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_datagram(self, data: bytes, addr: tuple[str, int]) -> None:
        pending = self._pending
        if pending is None or pending.resolved:
            LOGGER.debug("Discarding unsolicited reply from %s:%s: %r", addr[0], addr[1], data)
            return

        reply = data.decode("utf-8", errors="replace").rstrip()
        self._tracer.trace("Command response: %s", reply)
        self._detach(pending)
        pending.succeed(reply)

    def _on_timeout(self, pending: PendingCommand) -> None:
        self._timer = None
        if pending.resolved:
            return

        self._detach(pending)
        LOGGER.warning(
            "Command %r timed out after %dms", pending.command_text, pending.timeout_ms
        )
        self._tracer.trace("Command timeout: %s", pending.command_text)
        pending.fail(CommandTimeoutError(pending.command_text, pending.timeout_ms))

    def _on_error(self, exc: BaseException) -> None:
        LOGGER.warning("Command socket error: %s", exc)
        self._tracer.trace("Command error: %s", exc)

        pending = self._pending
        if pending is None or pending.resolved:
            return

        self._detach(pending)
        host, port = self.peer.command_endpoint
        error = TransportError(
            f"Failed to send {pending.command_text!r} to {host}:{port}: {exc}"
        )
        error.__cause__ = exc
        pending.fail(error)

    def _on_connection_lost(self, exc: Optional[Exception]) -> None:
        if exc is not None:
            LOGGER.warning("Command socket closed unexpectedly: %s", exc)
        self._transport = None
        self._closed = True

        pending = self._pending
        if pending is not None:
            self._detach(pending)
            pending.fail(ChannelClosedError("Command socket closed while awaiting a reply"))


def _validate_timeout(timeout_ms: int) -> None:
    if isinstance(timeout_ms, bool) or not isinstance(timeout_ms, int) or timeout_ms <= 0:
        raise ValueError(f"Timeout must be a positive number of milliseconds, got {timeout_ms!r}")
