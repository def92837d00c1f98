"""Constants used across the tello-link package."""

from __future__ import annotations

from pathlib import Path

APP_NAME = "tello-link"
DEFAULT_CONFIG_FILENAME = f"{APP_NAME}.cfg"
DEFAULT_CONFIG_PATH = Path.home() / ".config" / APP_NAME / DEFAULT_CONFIG_FILENAME

DEFAULT_DRONE_HOST = "192.168.10.1"
DEFAULT_COMMAND_PORT = 8889
DEFAULT_STATE_PORT = 8890

DEFAULT_COMMAND_TIMEOUT_MS = 5000
