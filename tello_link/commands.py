"""Tello SDK command names and argument bounds.

The channels only ever see finished command strings; this module owns the
vocabulary and the range checks that produce them. Bounds follow the Tello
SDK 1.3 documentation.
"""

from __future__ import annotations

from typing import Union


class CommandValidationError(ValueError):
    """Raised when a command argument is outside the range the drone accepts."""


class ControlCommands:
    COMMAND = "command"
    """Enter SDK mode. Must be the first command after power-on."""

    TAKEOFF = "takeoff"
    LAND = "land"

    EMERGENCY = "emergency"
    """Stop all motors immediately."""

    STOP = "stop"
    """Hover in place."""


class MoveCommands:
    UP = "up"
    DOWN = "down"
    LEFT = "left"
    RIGHT = "right"
    FORWARD = "forward"
    BACK = "back"
    ROTATE_CW = "cw"
    ROTATE_CCW = "ccw"
    FLIP = "flip"


class ReadCommands:
    SPEED = "speed?"
    BATTERY = "battery?"
    TIME = "time?"
    WIFI = "wifi?"
    SDK = "sdk?"
    SN = "sn?"


class SetCommands:
    SPEED = "speed"


DIRECTIONS = {
    "up": MoveCommands.UP,
    "down": MoveCommands.DOWN,
    "left": MoveCommands.LEFT,
    "right": MoveCommands.RIGHT,
    "forward": MoveCommands.FORWARD,
    "back": MoveCommands.BACK,
}

VALID_FLIP_DIRECTIONS = ("l", "r", "f", "b")

MIN_SPEED = 10
MAX_SPEED = 100
MIN_DISTANCE = 20
MAX_DISTANCE = 500
MIN_DEGREE = 1
MAX_DEGREE = 360

Number = Union[int, float]


def build_move(direction: str, distance: Number) -> str:
    """Return ``"<direction> <cm>"`` for a straight-line move."""

    command = DIRECTIONS.get(direction.strip().lower())
    if command is None:
        raise CommandValidationError(
            f"Invalid direction: {direction!r}. Must be one of: {', '.join(DIRECTIONS)}"
        )
    _check_range("Distance", distance, MIN_DISTANCE, MAX_DISTANCE)
    return f"{command} {_format_number(distance)}"


def build_rotate(degrees: Number) -> str:
    """Return a ``cw``/``ccw`` command; the sign of ``degrees`` picks the direction."""

    _require_number("Rotation degrees", degrees)
    _check_range("Rotation degrees", abs(degrees), MIN_DEGREE, MAX_DEGREE)
    command = MoveCommands.ROTATE_CW if degrees > 0 else MoveCommands.ROTATE_CCW
    return f"{command} {_format_number(abs(degrees))}"


def build_flip(direction: str) -> str:
    if direction not in VALID_FLIP_DIRECTIONS:
        raise CommandValidationError(
            f"Invalid flip direction: {direction!r}. "
            f"Must be one of: {', '.join(VALID_FLIP_DIRECTIONS)}"
        )
    return f"{MoveCommands.FLIP} {direction}"


def build_speed(speed: Number) -> str:
    _check_range("Speed", speed, MIN_SPEED, MAX_SPEED)
    return f"{SetCommands.SPEED} {_format_number(speed)}"


def _require_number(label: str, value: object) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise CommandValidationError(f"{label} must be a number, got {value!r}")


def _check_range(label: str, value: Number, low: Number, high: Number) -> None:
    _require_number(label, value)
    if value < low or value > high:
        raise CommandValidationError(f"{label} must be between {low} and {high}")


def _format_number(value: Number) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)
