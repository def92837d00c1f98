"""Core utility functions shared across modules."""

from __future__ import annotations

import socket

from .errors import BindError


def bind_udp_socket(host: str, port: int) -> socket.socket:
    """Create a non-blocking IPv4 UDP socket bound to ``host:port``.

    Port 0 asks the kernel for an ephemeral port. Any failure is reported
    as ``BindError`` and the half-built socket is closed.
    """

    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        sock.bind((host, port))
        sock.setblocking(False)
    except OSError as exc:
        sock.close()
        raise BindError(host, port, exc) from exc
    return sock
