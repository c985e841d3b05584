"""
Per-connection streaming session.

One session owns one websocket connection and runs two tasks against it:

- send: every ``interval`` seconds generate a record, encode it and send it
- receive: drain inbound frames (content is ignored) until the peer closes

Both share a single ``asyncio.Event``. Whichever task stops first sets it;
``run`` then cancels the other, closes the connection and returns. Nothing
is sent once the event is set.

The connection only needs ``send``, ``close``, async iteration and
``remote_address``, which is what ``websockets.asyncio.server.ServerConnection``
provides.
"""
from __future__ import annotations
import asyncio
import enum
import logging
from typing import Any, Optional

import numpy as np
from websockets.exceptions import ConnectionClosed

from lsg.codec import to_wire
from lsg.record import RecordGenerator

logger = logging.getLogger(__name__)


class SessionState(enum.Enum):
    CONNECTING = "connecting"
    STREAMING = "streaming"
    CLOSING = "closing"
    CLOSED = "closed"


class StreamSession:
    def __init__(self, connection: Any, records: RecordGenerator, *,
                 interval: float = 0.01, rng: Optional[np.random.Generator] = None):
        if interval <= 0:
            raise ValueError("interval must be > 0")
        self.connection = connection
        self.records = records
        self.interval = float(interval)
        self.rng = rng if rng is not None else np.random.default_rng()
        self.state = SessionState.CONNECTING
        self.sent = 0
        self.stop_reason: Optional[str] = None
        self._stop = asyncio.Event()

    @property
    def peer(self):
        return getattr(self.connection, "remote_address", None)

    def stop(self, reason: str) -> None:
        """Request shutdown; the first reason wins."""
        if not self._stop.is_set():
            self.stop_reason = reason
            self.state = SessionState.CLOSING
            self._stop.set()

    async def run(self) -> None:
        self.state = SessionState.STREAMING
        logger.info("session open peer=%s", self.peer)
        tasks = [
            asyncio.create_task(self._send_loop(), name="lsg-send"),
            asyncio.create_task(self._recv_loop(), name="lsg-recv"),
        ]
        try:
            await self._stop.wait()
        finally:
            # also reached when run() itself is cancelled
            self.stop(self.stop_reason or "cancelled")
            for t in tasks:
                t.cancel()
            results = await asyncio.gather(*tasks, return_exceptions=True)
            await self.connection.close()
            self.state = SessionState.CLOSED
            logger.info("session closed peer=%s sent=%d reason=%s", self.peer, self.sent, self.stop_reason)

        for r in results:
            if isinstance(r, Exception):
                raise r

    async def _send_loop(self) -> None:
        try:
            while not self._stop.is_set():
                frame = to_wire(self.records.generate(self.rng))
                try:
                    await self.connection.send(frame)
                except ConnectionClosed as e:
                    logger.info("send failed peer=%s: %s", self.peer, e)
                    self.stop("send-failed")
                    return
                self.sent += 1
                try:
                    await asyncio.wait_for(self._stop.wait(), timeout=self.interval)
                except asyncio.TimeoutError:
                    pass
        except Exception:
            logger.exception("send loop crashed peer=%s", self.peer)
            self.stop("send-error")
            raise

    async def _recv_loop(self) -> None:
        try:
            async for _ in self.connection:
                pass  # push-only; inbound payloads are ignored
            self.stop("peer-closed")
        except ConnectionClosed as e:
            logger.info("receive failed peer=%s: %s", self.peer, e)
            self.stop("receive-failed")
        except Exception:
            logger.exception("receive loop crashed peer=%s", self.peer)
            self.stop("receive-error")
            raise
