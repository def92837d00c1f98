"""Telemetry record parsing."""

from .parser import (
    TelemetryRecord,
    TelemetryValue,
    coerce_value,
    parse_telemetry_line,
)

__all__ = [
    "TelemetryRecord",
    "TelemetryValue",
    "coerce_value",
    "parse_telemetry_line",
]
