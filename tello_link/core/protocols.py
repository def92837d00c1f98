"""Protocol definitions for telemetry subscribers and diagnostic sinks."""

from __future__ import annotations

from typing import TYPE_CHECKING, Awaitable, Callable, Protocol

if TYPE_CHECKING:
    from ..telemetry import TelemetryRecord


TelemetryCallback = Callable[["TelemetryRecord"], Awaitable[None] | None]


class DiagnosticSink(Protocol):
    """Receives optional trace lines from the channels."""

    def __call__(self, line: str) -> None:
        ...
