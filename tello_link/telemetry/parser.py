"""Parsing of Tello state datagrams into telemetry records.

The drone broadcasts its state as a single text line::

    pitch:0;roll:0;yaw:0;vgx:0;vgy:0;vgz:0;templ:83;temph:85;tof:10;h:0;bat:87;baro:194.21;time:0;agx:-2.00;agy:0.00;agz:-999.00;\r\n

Each ``key:value`` token becomes one field. Tokens without a key or value
are dropped rather than failing the whole line.
"""

from __future__ import annotations

import re
from typing import Iterator, Mapping, Optional, Union

TelemetryValue = Union[int, float, str]

_NUMBER_RE = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")
_INTEGER_RE = re.compile(r"[+-]?\d+")


class TelemetryRecord(Mapping[str, TelemetryValue]):
    """Immutable point-in-time snapshot of the drone state.

    Equality is plain key/value equality, so two records parsed from lines
    with the same fields in a different order compare equal, and a record
    also compares equal to a ``dict`` with the same items.
    """

    __slots__ = ("_fields",)

    def __init__(self, fields: Optional[Mapping[str, TelemetryValue]] = None) -> None:
        self._fields: dict[str, TelemetryValue] = dict(fields or {})

    def __getitem__(self, key: str) -> TelemetryValue:
        return self._fields[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def __repr__(self) -> str:
        return f"TelemetryRecord({self._fields!r})"

    def as_dict(self) -> dict[str, TelemetryValue]:
        return dict(self._fields)

    def number(self, key: str) -> Optional[float]:
        """Return the field as a number, or None when absent or non-numeric."""

        value = self._fields.get(key)
        if isinstance(value, (int, float)):
            return value
        return None

    @property
    def battery(self) -> Optional[float]:
        return self.number("bat")

    @property
    def height_cm(self) -> Optional[float]:
        return self.number("h")

    @property
    def flight_time_s(self) -> Optional[float]:
        return self.number("time")

    @property
    def attitude(self) -> Optional[tuple[float, float, float]]:
        """(pitch, roll, yaw) in degrees when all three are present."""

        return self._triple("pitch", "roll", "yaw")

    @property
    def velocity(self) -> Optional[tuple[float, float, float]]:
        return self._triple("vgx", "vgy", "vgz")

    @property
    def temperature_range(self) -> Optional[tuple[float, float]]:
        low = self.number("templ")
        high = self.number("temph")
        if low is None or high is None:
            return None
        return (low, high)

    def _triple(self, a: str, b: str, c: str) -> Optional[tuple[float, float, float]]:
        values = (self.number(a), self.number(b), self.number(c))
        if any(value is None for value in values):
            return None
        return values  # type: ignore[return-value]


def coerce_value(raw: str) -> TelemetryValue:
    """Convert a raw token value to ``int``/``float`` when it is numeric.

    Non-numeric values, including whitespace-only ones, are returned
    unchanged.
    """

    candidate = raw.strip()
    if not candidate or _NUMBER_RE.fullmatch(candidate) is None:
        return raw
    if _INTEGER_RE.fullmatch(candidate):
        return int(candidate)
    return float(candidate)


def parse_telemetry_line(line: str) -> TelemetryRecord:
    """Parse a ``key:value;key:value;`` line into a ``TelemetryRecord``."""

    fields: dict[str, TelemetryValue] = {}
    for token in line.split(";"):
        key, separator, value = token.partition(":")
        key = key.strip()
        if not separator or not key or not value:
            continue
        fields[key] = coerce_value(value)
    return TelemetryRecord(fields)
