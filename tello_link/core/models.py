"""Domain models for the command link."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .. import constants


@dataclass(frozen=True, slots=True)
class PeerAddress:
    host: str = constants.DEFAULT_DRONE_HOST
    command_port: int = constants.DEFAULT_COMMAND_PORT
    state_port: int = constants.DEFAULT_STATE_PORT

    @property
    def command_endpoint(self) -> tuple[str, int]:
        return (self.host, self.command_port)


class CommandState(str, Enum):
    """Resolution state of a pending command."""

    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(slots=True)
class PendingCommand:
    """The single in-flight command owned by a ``CommandChannel``.

    ``future`` is resolved exactly once; ``state``, ``reply`` and ``error``
    record how it was resolved.
    """

    command_text: str
    issued_at: float
    timeout_ms: int
    future: asyncio.Future[str] = field(repr=False)
    state: CommandState = CommandState.PENDING
    reply: Optional[str] = None
    error: Optional[BaseException] = None

    @property
    def resolved(self) -> bool:
        return self.state is not CommandState.PENDING

    def succeed(self, reply: str) -> bool:
        if self.resolved:
            return False
        self.state = CommandState.SUCCEEDED
        self.reply = reply
        if not self.future.done():
            self.future.set_result(reply)
        return True

    def fail(self, error: BaseException) -> bool:
        if self.resolved:
            return False
        self.state = CommandState.FAILED
        self.error = error
        if not self.future.done():
            self.future.set_exception(error)
        return True

    def cancel(self) -> bool:
        """Mark the command abandoned without delivering a result."""

        if self.resolved:
            return False
        self.state = CommandState.FAILED
        self.error = asyncio.CancelledError()
        self.future.cancel()
        return True
