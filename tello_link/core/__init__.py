"""Core primitives for tello-link."""

from .errors import (
    BindError,
    BusyError,
    ChannelClosedError,
    CommandTimeoutError,
    TelloLinkError,
    TransportError,
    UnexpectedReplyError,
)
from .models import CommandState, PeerAddress, PendingCommand
from .protocols import DiagnosticSink, TelemetryCallback
from .utils import bind_udp_socket

__all__ = [
    "BindError",
    "BusyError",
    "ChannelClosedError",
    "CommandState",
    "CommandTimeoutError",
    "DiagnosticSink",
    "PeerAddress",
    "PendingCommand",
    "TelemetryCallback",
    "TelloLinkError",
    "TransportError",
    "UnexpectedReplyError",
    "bind_udp_socket",
]
