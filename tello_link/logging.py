"""Root logger setup for the tello-link command line."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# Event-loop and HTTP access chatter drowns out per-command traces.
_NETWORK_LOGGERS = ("asyncio", "aiohttp.access")


def configure_logging(
    level: str = "INFO", *, log_path: Optional[Path] = None, log_network: bool = False
) -> None:
    """Replace the root handlers with console (and optionally file) output.

    ``level`` is a level name such as ``"DEBUG"``; unknown names fall back
    to INFO. With ``log_path`` set, records are also appended to that file,
    creating its directory first. ``log_network`` leaves the asyncio and
    aiohttp access loggers at ``level`` instead of capping them at WARNING.
    """

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    logging.captureWarnings(True)
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT
    )

    if log_path:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(file_handler)

    if not log_network:
        for name in _NETWORK_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
