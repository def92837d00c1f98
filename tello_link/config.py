"""Configuration loader for tello-link."""

from __future__ import annotations

from configparser import ConfigParser
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from . import constants
from .core import PeerAddress


@dataclass(slots=True)
class DroneConfig:
    host: str = constants.DEFAULT_DRONE_HOST
    command_port: int = constants.DEFAULT_COMMAND_PORT
    state_port: int = constants.DEFAULT_STATE_PORT


@dataclass(slots=True)
class CommandConfig:
    timeout_ms: int = constants.DEFAULT_COMMAND_TIMEOUT_MS
    debug: bool = False  # Trace every command and reply through the diagnostic sink


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"
    path: Optional[Path] = None
    log_network: bool = False


@dataclass(slots=True)
class HealthConfig:
    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = 0
    telemetry_stale_seconds: float = 3.0


@dataclass(slots=True)
class TelloLinkConfig:
    drone: DroneConfig
    commands: CommandConfig
    logging: LoggingConfig
    health: HealthConfig
    raw: ConfigParser
    path: Path

    @property
    def peer(self) -> PeerAddress:
        return PeerAddress(
            host=self.drone.host,
            command_port=self.drone.command_port,
            state_port=self.drone.state_port,
        )


def _get_port(parser: ConfigParser, section: str, option: str, default: int) -> int:
    try:
        value = parser.getint(section, option, fallback=default)
    except ValueError:
        return default
    return max(0, min(65535, value))


def load_config(path: Optional[Path] = None) -> TelloLinkConfig:
    """Load configuration from disk, applying defaults where necessary."""

    config_path = path or constants.DEFAULT_CONFIG_PATH
    parser = ConfigParser()
    parser.read_dict(
        {
            "drone": {
                "host": constants.DEFAULT_DRONE_HOST,
                "command_port": str(constants.DEFAULT_COMMAND_PORT),
                "state_port": str(constants.DEFAULT_STATE_PORT),
            },
            "commands": {
                "timeout_ms": str(constants.DEFAULT_COMMAND_TIMEOUT_MS),
                "debug": "false",
            },
            "logging": {
                "level": "INFO",
                "log_network": "false",
            },
            "health": {
                "enabled": "false",
                "host": "127.0.0.1",
                "port": "0",
                "telemetry_stale_seconds": "3.0",
            },
        }
    )

    if config_path.exists():
        parser.read(config_path)

    drone = DroneConfig(
        host=parser.get("drone", "host").strip() or constants.DEFAULT_DRONE_HOST,
        command_port=_get_port(
            parser, "drone", "command_port", constants.DEFAULT_COMMAND_PORT
        ),
        state_port=_get_port(parser, "drone", "state_port", constants.DEFAULT_STATE_PORT),
    )

    try:
        timeout_ms = parser.getint(
            "commands", "timeout_ms", fallback=constants.DEFAULT_COMMAND_TIMEOUT_MS
        )
    except ValueError:
        timeout_ms = constants.DEFAULT_COMMAND_TIMEOUT_MS

    commands = CommandConfig(
        timeout_ms=max(1, timeout_ms),
        debug=parser.getboolean("commands", "debug", fallback=False),
    )

    log_path_value = parser.get("logging", "path", fallback="").strip()
    logging_config = LoggingConfig(
        level=parser.get("logging", "level", fallback="INFO"),
        path=Path(log_path_value).expanduser() if log_path_value else None,
        log_network=parser.getboolean("logging", "log_network", fallback=False),
    )

    health_defaults = HealthConfig()
    try:
        stale_seconds = parser.getfloat(
            "health",
            "telemetry_stale_seconds",
            fallback=health_defaults.telemetry_stale_seconds,
        )
    except ValueError:
        stale_seconds = health_defaults.telemetry_stale_seconds

    health = HealthConfig(
        enabled=parser.getboolean("health", "enabled", fallback=False),
        host=parser.get("health", "host", fallback=health_defaults.host),
        port=_get_port(parser, "health", "port", health_defaults.port),
        telemetry_stale_seconds=max(0.1, stale_seconds),
    )

    return TelloLinkConfig(
        drone=drone,
        commands=commands,
        logging=logging_config,
        health=health,
        raw=parser,
        path=config_path,
    )


def save_config(config: TelloLinkConfig) -> None:
    """Persist the current configuration to disk."""

    config_path = config.path
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as stream:
        config.raw.write(stream)
