"""UDP channels to the drone."""

from .command_channel import CommandChannel
from .telemetry_channel import TelemetryChannel

__all__ = [
    "CommandChannel",
    "TelemetryChannel",
]
