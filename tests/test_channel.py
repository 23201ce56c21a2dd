"""NotificationChannel tests — connection lifecycle and backoff.

Learn: The channel takes its `connect` and `sleep` as constructor
arguments. Tests pass a scripted connector (each call pops the next
script: a list of frames, or an exception to raise on connect) and a
sleep that records the requested delay and returns immediately.
"""

import asyncio

import pytest

from vampsync.client.channel import (
    ChannelState,
    NotificationChannel,
    reconnect_delay,
    with_token,
)
from vampsync.sync import messages
from vampsync.sync.messages import MessageType

HOLD = object()


class FakeConnection:
    def __init__(self, script):
        self._script = script

    async def __aenter__(self):
        if isinstance(self._script, Exception):
            raise self._script
        return self

    async def __aexit__(self, *exc):
        return False

    def __aiter__(self):
        return self._frames()

    async def _frames(self):
        for frame in self._script:
            if frame is HOLD:
                # Stay connected until cancelled
                await asyncio.Event().wait()
            yield frame


class FakeConnector:
    def __init__(self, *scripts):
        self.scripts = list(scripts)
        self.urls: list[str] = []

    def __call__(self, url):
        self.urls.append(url)
        script = self.scripts.pop(0) if self.scripts else OSError("connection refused")
        return FakeConnection(script)


class FakeSleep:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay):
        self.delays.append(delay)
        await asyncio.sleep(0)


async def wait_until(predicate, steps=500):
    for _ in range(steps):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


def make_channel(connector, sleep=None, **kwargs):
    channel = NotificationChannel(
        "ws://test/ws",
        token="tok",
        connect=connector,
        sleep=sleep or FakeSleep(),
        **kwargs,
    )
    received = []
    channel.subscribe(received.append)
    return channel, received


def statuses(received):
    return [
        (m.connected, m.reconnecting)
        for m in received
        if m.type == MessageType.CONNECTION_STATUS
    ]


# ═══════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════


def test_reconnect_delay_is_capped_exponential():
    assert [reconnect_delay(n, 1.0, 30.0) for n in range(7)] == [1, 2, 4, 8, 16, 30, 30]


def test_with_token():
    assert with_token("ws://h/ws", "abc") == "ws://h/ws?token=abc"
    assert with_token("ws://h/ws?x=1", "abc") == "ws://h/ws?x=1&token=abc"
    assert with_token("ws://h/ws", None) == "ws://h/ws"


# ═══════════════════════════════════════════════════════════
# Connected
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_delivers_server_messages():
    update = messages.data_update("venues", 5).to_json()
    connector = FakeConnector([update, HOLD])
    channel, received = make_channel(connector)

    channel.init()
    await wait_until(lambda: len(received) == 2)

    assert channel.state == ChannelState.CONNECTED
    assert connector.urls == ["ws://test/ws?token=tok"]
    assert statuses(received) == [(True, False)]
    assert received[1].type == MessageType.DATA_UPDATE
    assert received[1].entity == "venues"

    channel.close()
    assert channel.state == ChannelState.DISCONNECTED
    assert statuses(received)[-1] == (False, False)


@pytest.mark.asyncio
async def test_drops_malformed_and_keepalive_frames():
    frames = [
        "not json",
        '{"type": "ping", "timestamp": 1}',
        '{"type": "connection-status", "connected": false, "timestamp": 2}',
        messages.system_message("hello", 3).to_json(),
        HOLD,
    ]
    channel, received = make_channel(FakeConnector(frames))

    channel.init()
    await wait_until(lambda: any(m.type == MessageType.SYSTEM_MESSAGE for m in received))

    assert [m.type for m in received] == [
        MessageType.CONNECTION_STATUS,
        MessageType.SYSTEM_MESSAGE,
    ]
    channel.close()


@pytest.mark.asyncio
async def test_repeated_init_keeps_one_connection():
    connector = FakeConnector([HOLD])
    channel, received = make_channel(connector)

    channel.init()
    channel.init()
    await wait_until(lambda: channel.state == ChannelState.CONNECTED)
    channel.init()
    await asyncio.sleep(0)

    assert len(connector.urls) == 1
    channel.close()


@pytest.mark.asyncio
async def test_subscriber_error_does_not_break_delivery():
    channel, received = make_channel(FakeConnector([HOLD]))

    def broken(message):
        raise ValueError("boom")

    channel.subscribe(broken)
    channel.init()
    await wait_until(lambda: channel.state == ChannelState.CONNECTED)
    assert statuses(received) == [(True, False)]
    channel.close()


@pytest.mark.asyncio
async def test_unsubscribe():
    channel, received = make_channel(FakeConnector([HOLD]))
    other = []
    unsubscribe = channel.subscribe(other.append)
    unsubscribe()
    unsubscribe()

    channel.init()
    await wait_until(lambda: channel.state == ChannelState.CONNECTED)
    assert other == []
    channel.close()


# ═══════════════════════════════════════════════════════════
# Reconnect
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_reconnects_after_server_close():
    sleep = FakeSleep()
    welcome = messages.system_message("hello", 1).to_json()
    connector = FakeConnector([], [welcome, HOLD])
    channel, received = make_channel(connector, sleep=sleep)

    channel.init()
    await wait_until(lambda: len(connector.urls) == 2 and channel.attempts == 0)

    assert channel.state == ChannelState.CONNECTED
    assert sleep.delays == [1.0]
    assert statuses(received) == [(True, False), (False, True), (True, False)]
    channel.close()


@pytest.mark.asyncio
async def test_accept_then_close_keeps_backing_off():
    """A server that accepts and hangs up at once is not a healthy connection."""
    sleep = FakeSleep()
    connector = FakeConnector([], [], [], [HOLD])
    channel, _ = make_channel(connector, sleep=sleep, backoff_base=1.0)

    channel.init()
    await wait_until(lambda: len(connector.urls) == 4 and channel.state == ChannelState.CONNECTED)

    assert sleep.delays == [1.0, 2.0, 4.0]
    # Connected, but no frame yet
    assert channel.attempts == 3
    channel.close()


@pytest.mark.asyncio
async def test_backoff_then_give_up():
    sleep = FakeSleep()
    connector = FakeConnector()
    channel, received = make_channel(
        connector, sleep=sleep, backoff_base=1.0, backoff_max=5.0, max_attempts=4
    )

    channel.init()
    await wait_until(lambda: not channel.is_running)

    assert sleep.delays == [1.0, 2.0, 4.0, 5.0]
    assert len(connector.urls) == 5
    assert channel.state == ChannelState.DISCONNECTED
    assert statuses(received) == [(False, True)] * 4 + [(False, False)]


@pytest.mark.asyncio
async def test_init_after_give_up_starts_over():
    sleep = FakeSleep()
    connector = FakeConnector()
    channel, _ = make_channel(connector, sleep=sleep, max_attempts=1)

    channel.init()
    await wait_until(lambda: not channel.is_running)
    assert len(connector.urls) == 2

    connector.scripts.append([HOLD])
    channel.init()
    await wait_until(lambda: channel.state == ChannelState.CONNECTED)
    assert channel.attempts == 0
    channel.close()


@pytest.mark.asyncio
async def test_close_cancels_pending_reconnect():
    async def slow_sleep(delay):
        await asyncio.Event().wait()

    channel, received = make_channel(FakeConnector(), sleep=slow_sleep)
    channel.init()
    await wait_until(lambda: channel.state == ChannelState.RECONNECTING)

    channel.close()
    await asyncio.sleep(0)
    assert not channel.is_running
    assert channel.state == ChannelState.DISCONNECTED
    assert statuses(received) == [(False, True), (False, False)]
