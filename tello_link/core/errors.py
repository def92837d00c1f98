"""Exception hierarchy for tello-link."""

from __future__ import annotations

from typing import Optional


class TelloLinkError(RuntimeError):
    """Base class for failures raised by the drone link."""


class CommandTimeoutError(TelloLinkError, TimeoutError):
    """Raised when the drone does not reply to a command in time."""

    def __init__(self, command: str, timeout_ms: int) -> None:
        super().__init__(f"Command {command!r} timed out after {timeout_ms}ms")
        self.command = command
        self.timeout_ms = timeout_ms


class TransportError(TelloLinkError):
    """Raised when a datagram cannot be sent or a socket fails."""


class BindError(TransportError):
    """Raised when a local UDP port cannot be acquired."""

    def __init__(self, host: str, port: int, reason: Optional[BaseException] = None):
        detail = f": {reason}" if reason is not None else ""
        super().__init__(f"Unable to bind UDP socket on {host}:{port}{detail}")
        self.host = host
        self.port = port


class BusyError(TelloLinkError):
    """Raised when a command is issued while another one is still pending."""


class ChannelClosedError(TelloLinkError):
    """Raised when a closed channel is used."""


class UnexpectedReplyError(TelloLinkError):
    """Raised when a reply cannot be interpreted by the caller."""

    def __init__(self, command: str, reply: str) -> None:
        super().__init__(f"Unexpected reply to {command!r}: {reply!r}")
        self.command = command
        self.reply = reply
