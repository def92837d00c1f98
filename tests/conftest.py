import asyncio
import socket
from typing import Callable, Optional

import pytest
import pytest_asyncio

from tello_link.core import PeerAddress


class FakeDrone(asyncio.DatagramProtocol):
    """Loopback stand-in for the drone's command port."""

    def __init__(self) -> None:
        self.received: list[str] = []
        self.replies: dict[str, Optional[str]] = {}
        self.default_reply: Optional[str] = "ok"
        self.reply_delay = 0.0
        self.transport: Optional[asyncio.DatagramTransport] = None

    def connection_made(self, transport):  # noqa: ANN001
        self.transport = transport

    def datagram_received(self, data: bytes, addr) -> None:  # noqa: ANN001
        command = data.decode("utf-8")
        self.received.append(command)
        reply = self.replies.get(command, self.default_reply)
        if reply is None:
            return
        if self.reply_delay > 0:
            asyncio.get_running_loop().call_later(
                self.reply_delay, self._reply, reply, addr
            )
        else:
            self._reply(reply, addr)

    def _reply(self, reply: str, addr) -> None:  # noqa: ANN001
        if self.transport is not None and not self.transport.is_closing():
            self.transport.sendto(reply.encode("utf-8"), addr)

    @property
    def port(self) -> int:
        assert self.transport is not None
        return self.transport.get_extra_info("sockname")[1]

    @property
    def peer(self) -> PeerAddress:
        return PeerAddress(host="127.0.0.1", command_port=self.port, state_port=0)


@pytest_asyncio.fixture
async def fake_drone():
    loop = asyncio.get_running_loop()
    transport, protocol = await loop.create_datagram_endpoint(
        FakeDrone, local_addr=("127.0.0.1", 0)
    )
    try:
        yield protocol
    finally:
        transport.close()


@pytest.fixture
def state_sender() -> Callable[[int, bytes], None]:
    """Send raw telemetry datagrams to a local state port."""

    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)

    def send(port: int, payload: bytes) -> None:
        sock.sendto(payload, ("127.0.0.1", port))

    yield send

    sock.close()


async def wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() >= deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.005)
