"""Optional diagnostic tracing for the drone channels.

Tracing is off by default. When enabled, each trace line is handed to the
configured sink or, without one, logged at INFO on the owning logger.
"""

from __future__ import annotations

import logging
from typing import Optional

from .core import DiagnosticSink

LOGGER = logging.getLogger(__name__)


class DiagnosticTracer:
    """Formats and routes trace lines for one component."""

    def __init__(
        self,
        name: str,
        *,
        enabled: bool = False,
        sink: Optional[DiagnosticSink] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.name = name
        self.enabled = enabled
        self._sink = sink
        self._logger = logger or LOGGER

    def trace(self, message: str, *args: object) -> None:
        if not self.enabled:
            return

        line = f"[{self.name}] {message % args if args else message}"
        if self._sink is None:
            self._logger.info("%s", line)
            return

        try:
            self._sink(line)
        except Exception:
            LOGGER.warning("Diagnostic sink failed for %s", self.name, exc_info=True)
