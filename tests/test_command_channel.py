"""Tests for the UDP command channel."""

import asyncio

import pytest

from tello_link.adapters import CommandChannel
from tello_link.core import (
    BusyError,
    ChannelClosedError,
    CommandState,
    CommandTimeoutError,
    PeerAddress,
    TransportError,
)


@pytest.mark.asyncio
async def test_send_returns_reply(fake_drone):
    fake_drone.replies["battery?"] = "85\r\n"

    async with CommandChannel(fake_drone.peer, local_host="127.0.0.1") as channel:
        reply = await channel.send("battery?", 100)

    assert reply == "85"
    assert fake_drone.received == ["battery?"]


@pytest.mark.asyncio
async def test_send_opens_channel_lazily(fake_drone):
    channel = CommandChannel(fake_drone.peer, local_host="127.0.0.1")
    try:
        assert not channel.is_open
        assert await channel.send("command") == "ok"
        assert channel.is_open
    finally:
        channel.close()


@pytest.mark.asyncio
async def test_reply_is_passed_through_uninterpreted(fake_drone):
    fake_drone.replies["takeoff"] = "error Motor stop"

    async with CommandChannel(fake_drone.peer, local_host="127.0.0.1") as channel:
        assert await channel.send("takeoff") == "error Motor stop"


@pytest.mark.asyncio
async def test_send_times_out_within_bound(fake_drone):
    fake_drone.default_reply = None
    loop = asyncio.get_running_loop()

    async with CommandChannel(fake_drone.peer, local_host="127.0.0.1") as channel:
        started = loop.time()
        with pytest.raises(CommandTimeoutError) as exc_info:
            await channel.send("battery?", 100)
        elapsed = loop.time() - started

    assert exc_info.value.command == "battery?"
    assert exc_info.value.timeout_ms == 100
    assert isinstance(exc_info.value, TimeoutError)
    assert 0.095 <= elapsed < 0.5


@pytest.mark.asyncio
async def test_channel_ready_immediately_after_timeout(fake_drone):
    fake_drone.replies["land"] = None

    async with CommandChannel(fake_drone.peer, local_host="127.0.0.1") as channel:
        with pytest.raises(CommandTimeoutError):
            await channel.send("land", 50)

        assert channel.pending is None
        assert await channel.send("command", 200) == "ok"


@pytest.mark.asyncio
async def test_late_reply_is_not_delivered_to_next_command(fake_drone):
    fake_drone.replies["battery?"] = "85"
    fake_drone.replies["speed?"] = "10.0"
    fake_drone.reply_delay = 0.15

    async with CommandChannel(fake_drone.peer, local_host="127.0.0.1") as channel:
        with pytest.raises(CommandTimeoutError):
            await channel.send("battery?", 50)

        # Let the stale "85" arrive while nothing is pending.
        await asyncio.sleep(0.2)
        fake_drone.reply_delay = 0.0

        assert await channel.send("speed?", 500) == "10.0"


@pytest.mark.asyncio
async def test_second_send_while_pending_raises_busy(fake_drone):
    fake_drone.reply_delay = 0.1

    async with CommandChannel(fake_drone.peer, local_host="127.0.0.1") as channel:
        first = asyncio.create_task(channel.send("takeoff", 1000))
        await asyncio.sleep(0.01)

        assert channel.pending is not None
        assert channel.pending.command_text == "takeoff"
        with pytest.raises(BusyError):
            await channel.send("land", 1000)

        assert await first == "ok"

    assert fake_drone.received == ["takeoff"]


@pytest.mark.asyncio
async def test_pending_command_records_resolution(fake_drone):
    fake_drone.reply_delay = 0.05

    async with CommandChannel(fake_drone.peer, local_host="127.0.0.1") as channel:
        task = asyncio.create_task(channel.send("command", 1000))
        await asyncio.sleep(0.01)
        pending = channel.pending
        assert pending is not None
        assert pending.state is CommandState.PENDING
        assert pending.timeout_ms == 1000

        await task

    assert pending.state is CommandState.SUCCEEDED
    assert pending.reply == "ok"


@pytest.mark.asyncio
async def test_send_failure_surfaces_as_transport_error(fake_drone, monkeypatch):
    async with CommandChannel(fake_drone.peer, local_host="127.0.0.1") as channel:

        def broken_sendto(data, addr=None):  # noqa: ANN001
            raise OSError(101, "Network is unreachable")

        monkeypatch.setattr(channel._transport, "sendto", broken_sendto)

        with pytest.raises(TransportError) as exc_info:
            await channel.send("command", 1000)

        assert isinstance(exc_info.value.__cause__, OSError)
        assert channel.pending is None


@pytest.mark.asyncio
async def test_socket_error_while_pending_resolves_once(fake_drone):
    fake_drone.default_reply = None
    loop = asyncio.get_running_loop()

    async with CommandChannel(fake_drone.peer, local_host="127.0.0.1") as channel:
        loop.call_later(0.02, channel._on_error, ConnectionRefusedError("refused"))

        with pytest.raises(TransportError):
            await channel.send("command", 200)

        # The timer must not fire a second resolution.
        await asyncio.sleep(0.25)
        assert channel.pending is None


@pytest.mark.asyncio
async def test_cancelled_send_detaches_pending_command(fake_drone):
    fake_drone.default_reply = None

    async with CommandChannel(fake_drone.peer, local_host="127.0.0.1") as channel:
        task = asyncio.create_task(channel.send("takeoff", 5000))
        await asyncio.sleep(0.01)
        pending = channel.pending

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert channel.pending is None
        assert pending is not None and pending.state is CommandState.FAILED

        fake_drone.default_reply = "ok"
        assert await channel.send("land", 500) == "ok"


@pytest.mark.asyncio
async def test_close_fails_in_flight_command(fake_drone):
    fake_drone.default_reply = None
    channel = CommandChannel(fake_drone.peer, local_host="127.0.0.1")
    await channel.open()

    task = asyncio.create_task(channel.send("takeoff", 5000))
    await asyncio.sleep(0.01)
    channel.close()

    with pytest.raises(ChannelClosedError):
        await task

    with pytest.raises(ChannelClosedError):
        await channel.send("land")


@pytest.mark.asyncio
async def test_send_rejects_invalid_arguments(fake_drone):
    async with CommandChannel(fake_drone.peer, local_host="127.0.0.1") as channel:
        with pytest.raises(ValueError):
            await channel.send("")
        with pytest.raises(ValueError):
            await channel.send("command", 0)
        with pytest.raises(ValueError):
            await channel.send("command", -5)

        assert fake_drone.received == []


def test_invalid_default_timeout_rejected():
    with pytest.raises(ValueError):
        CommandChannel(PeerAddress(host="127.0.0.1"), default_timeout_ms=0)


@pytest.mark.asyncio
async def test_debug_trace_reaches_diagnostic_sink(fake_drone):
    lines: list[str] = []
    fake_drone.replies["sdk?"] = "20"

    async with CommandChannel(
        fake_drone.peer, local_host="127.0.0.1", debug=True, diagnostics=lines.append
    ) as channel:
        assert await channel.send("sdk?") == "20"

    assert lines[0] == "[CommandChannel] Sending command: sdk?"
    assert "[CommandChannel] Command response: 20" in lines


@pytest.mark.asyncio
async def test_failing_diagnostic_sink_does_not_affect_send(fake_drone):
    def broken_sink(line: str) -> None:
        raise RuntimeError("sink down")

    async with CommandChannel(
        fake_drone.peer, local_host="127.0.0.1", debug=True, diagnostics=broken_sink
    ) as channel:
        assert await channel.send("command") == "ok"


@pytest.mark.asyncio
async def test_close_during_lazy_open_raises_channel_closed(fake_drone, caplog):
    channel = CommandChannel(fake_drone.peer, local_host="127.0.0.1")

    task = asyncio.create_task(channel.send("command", 500))
    # Let send() reach the endpoint setup inside open().
    await asyncio.sleep(0)
    channel.close()

    with pytest.raises(ChannelClosedError):
        await task

    await asyncio.sleep(0.01)
    assert channel.pending is None
    assert not channel.is_open
    assert channel._sock.fileno() == -1
    assert fake_drone.received == []
    assert "Bad file descriptor" not in caplog.text


@pytest.mark.asyncio
async def test_cancel_during_lazy_open_closes_channel(fake_drone):
    channel = CommandChannel(fake_drone.peer, local_host="127.0.0.1")

    task = asyncio.create_task(channel.send("command", 500))
    await asyncio.sleep(0)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task

    assert channel.closed
    assert channel.pending is None
    with pytest.raises(ChannelClosedError):
        await channel.send("command")
