"""
StreamSession lifecycle against an in-memory connection double.
"""
import asyncio

import numpy as np
import pytest
from websockets.exceptions import ConnectionClosedError

from lsg.codec import from_wire
from lsg.record import RecordGenerator
from lsg.session import SessionState, StreamSession

CLOSE = object()


class FakeConnection:
    """Quacks like websockets' ServerConnection for what StreamSession uses."""

    remote_address = ("127.0.0.1", 50000)

    def __init__(self, fail_send_after=None):
        self.sent = []
        self.inbound = asyncio.Queue()
        self.fail_send_after = fail_send_after
        self.closed = False
        self.sends_after_close = 0

    async def send(self, data):
        if self.closed:
            self.sends_after_close += 1
        if self.fail_send_after is not None and len(self.sent) >= self.fail_send_after:
            raise ConnectionClosedError(None, None)
        self.sent.append(data)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self.inbound.get()
        if item is CLOSE:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item

    async def close(self):
        self.closed = True


def make_session(conn, interval=0.01, seed=0):
    return StreamSession(conn, RecordGenerator(), interval=interval,
                         rng=np.random.default_rng(seed))


async def wait_for_frames(conn, n, timeout=2.0):
    async def poll():
        while len(conn.sent) < n:
            await asyncio.sleep(0.001)
    await asyncio.wait_for(poll(), timeout)


def test_interval_must_be_positive():
    with pytest.raises(ValueError):
        StreamSession(FakeConnection(), RecordGenerator(), interval=0)


@pytest.mark.asyncio
async def test_frames_are_valid_records():
    conn = FakeConnection()
    session = make_session(conn)
    task = asyncio.create_task(session.run())
    await wait_for_frames(conn, 5)
    assert session.state is SessionState.STREAMING
    conn.inbound.put_nowait(CLOSE)
    await asyncio.wait_for(task, 1.0)

    checker = RecordGenerator()
    for frame in conn.sent:
        assert checker.violations(from_wire(frame)) == []


@pytest.mark.asyncio
async def test_peer_close_stops_sending_and_releases_connection():
    conn = FakeConnection()
    session = make_session(conn, interval=0.25)
    task = asyncio.create_task(session.run())
    await wait_for_frames(conn, 1)

    conn.inbound.put_nowait(CLOSE)
    # well within one interval
    await asyncio.wait_for(task, 0.25)
    sent_at_close = len(conn.sent)
    await asyncio.sleep(0.3)

    assert len(conn.sent) == sent_at_close
    assert conn.closed
    assert conn.sends_after_close == 0
    assert session.state is SessionState.CLOSED
    assert session.stop_reason == "peer-closed"
    assert session.sent == sent_at_close


@pytest.mark.asyncio
async def test_inbound_payloads_are_ignored():
    conn = FakeConnection()
    session = make_session(conn)
    task = asyncio.create_task(session.run())
    for msg in ("hello", b"\x00\x01", '{"cmd":"stop"}'):
        conn.inbound.put_nowait(msg)
    await wait_for_frames(conn, 3)
    assert not task.done()
    conn.inbound.put_nowait(CLOSE)
    await asyncio.wait_for(task, 1.0)
    assert session.stop_reason == "peer-closed"


@pytest.mark.asyncio
async def test_read_error_ends_session():
    conn = FakeConnection()
    session = make_session(conn)
    task = asyncio.create_task(session.run())
    await wait_for_frames(conn, 1)
    conn.inbound.put_nowait(ConnectionClosedError(None, None))
    await asyncio.wait_for(task, 1.0)
    assert session.stop_reason == "receive-failed"
    assert conn.closed


@pytest.mark.asyncio
async def test_write_failure_stops_receive_activity():
    conn = FakeConnection(fail_send_after=3)
    session = make_session(conn)
    # nothing ever arrives inbound, so only the send side can end this
    await asyncio.wait_for(session.run(), 1.0)

    assert len(conn.sent) == 3
    assert session.sent == 3
    assert session.stop_reason == "send-failed"
    assert session.state is SessionState.CLOSED
    assert conn.closed
    leftover = [t for t in asyncio.all_tasks() if t.get_name() in ("lsg-send", "lsg-recv")]
    assert leftover == []


@pytest.mark.asyncio
async def test_cancelling_run_tears_down_both_tasks():
    conn = FakeConnection()
    session = make_session(conn)
    task = asyncio.create_task(session.run())
    await wait_for_frames(conn, 2)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert conn.closed
    assert session.state is SessionState.CLOSED
    leftover = [t for t in asyncio.all_tasks() if t.get_name() in ("lsg-send", "lsg-recv")]
    assert leftover == []


@pytest.mark.asyncio
async def test_encoding_defect_propagates_after_teardown():
    class BrokenRecords:
        def generate(self, rng):
            return object()

    conn = FakeConnection()
    session = StreamSession(conn, BrokenRecords(), interval=0.01)
    with pytest.raises(AttributeError):
        await asyncio.wait_for(session.run(), 1.0)
    assert conn.closed
    assert session.state is SessionState.CLOSED
    assert conn.sent == []


@pytest.mark.asyncio
async def test_seeded_sessions_reproduce_frames():
    async def first_frames(seed):
        conn = FakeConnection(fail_send_after=4)
        await asyncio.wait_for(make_session(conn, seed=seed).run(), 1.0)
        return conn.sent

    assert await first_frames(5) == await first_frames(5)
    assert await first_frames(5) != await first_frames(6)
