"""
Local WebSocket stream of synthetic access-log records at ~100 Hz.
- Offline-only by default: binds 127.0.0.1
- One StreamSession per connection, each with its own RNG stream
- Inbound frames are ignored; closing the socket ends the session
- Companion HTTP route GET /land-points on the API port (CORS open)

Run:
  py -3 -m pip install -e .
  py ws\\lsg_stream_server.py --port 8765 --api-port 8080
"""
from __future__ import annotations
import argparse
import asyncio
import json
import logging
import sys
from dataclasses import dataclass
from http import HTTPStatus
from typing import List, Optional

import numpy as np
from websockets.asyncio.server import Server, ServerConnection, serve
from websockets.http11 import Request, Response

from lsg.fields import GeneratorConfigError
from lsg.land_points import sample_land_points
from lsg.record import RecordGenerator
from lsg.session import StreamSession

logger = logging.getLogger("lsg.server")

LAND_POINTS_PATH = "/land-points"


@dataclass
class ServerConfig:
    host: str = "127.0.0.1"
    port: int = 8765
    api_port: Optional[int] = 8080  # None disables the land-points listener; 0 binds any free port
    interval: float = 0.01          # seconds between records
    presence: float = 0.5           # probability an optional field is present
    max_path_len: int = 64
    seed: Optional[int] = None      # None = fresh OS entropy
    log_level: str = "INFO"

    def __post_init__(self):
        if self.interval <= 0:
            raise ValueError("interval must be > 0")
        for name in ("port", "api_port"):
            p = getattr(self, name)
            if p is not None and not (0 <= p < 65536):
                raise ValueError(f"{name} must be in [0, 65535]")
        if self.api_port and self.api_port == self.port:
            raise ValueError("api_port must differ from port")
        if self.log_level.upper() not in logging.getLevelNamesMapping():
            raise ValueError(f"unknown log level {self.log_level!r}")


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stdout,
    )
    # handshake chatter from scanners and health checks
    logging.getLogger("websockets").setLevel(logging.WARNING)


class StreamServer:
    """
    Owns the two listeners. The only thing sessions share is the read-only
    RecordGenerator; each session gets an RNG spawned from a SeedSequence,
    so a fixed ``seed`` reproduces per-session streams in accept order.
    """

    def __init__(self, cfg: ServerConfig):
        self.cfg = cfg
        # raises GeneratorConfigError before anything is bound
        self.records = RecordGenerator(presence=cfg.presence, max_path_len=cfg.max_path_len)
        self._seeds = np.random.SeedSequence(cfg.seed)
        self._api_rng = np.random.default_rng(self._seeds.spawn(1)[0])
        self._ws: Optional[Server] = None
        self._api: Optional[Server] = None

    def session_rng(self) -> np.random.Generator:
        return np.random.default_rng(self._seeds.spawn(1)[0])

    async def handler(self, connection: ServerConnection) -> None:
        session = StreamSession(connection, self.records,
                                interval=self.cfg.interval, rng=self.session_rng())
        await session.run()

    def land_points_route(self, connection: ServerConnection, request: Request) -> Response:
        if request.path.split("?", 1)[0] != LAND_POINTS_PATH:
            return connection.respond(HTTPStatus.NOT_FOUND, "Not Found\n")
        body = json.dumps(sample_land_points(self._api_rng))
        response = connection.respond(HTTPStatus.OK, body)
        del response.headers["Content-Type"]
        response.headers["Content-Type"] = "application/json"
        response.headers["Access-Control-Allow-Origin"] = "*"
        return response

    @staticmethod
    async def _no_stream(connection: ServerConnection) -> None:
        # unreachable: land_points_route answers every request
        await connection.close()

    async def start(self) -> None:
        self._ws = await serve(
            self.handler,
            self.cfg.host,
            self.cfg.port,
            ping_interval=20,
            ping_timeout=20,
        )
        if self.cfg.api_port is not None:
            self._api = await serve(
                self._no_stream,
                self.cfg.host,
                self.cfg.api_port,
                process_request=self.land_points_route,
            )
        logger.info("streaming on ws://%s:%d/", self.cfg.host, self.port)
        if self._api is not None:
            logger.info("land points on http://%s:%d%s", self.cfg.host, self.api_port, LAND_POINTS_PATH)

    @staticmethod
    def _bound_port(server: Optional[Server]) -> Optional[int]:
        if server is None:
            return None
        return next(iter(server.sockets)).getsockname()[1]

    @property
    def port(self) -> Optional[int]:
        return self._bound_port(self._ws)

    @property
    def api_port(self) -> Optional[int]:
        return self._bound_port(self._api)

    async def close(self) -> None:
        for srv in (self._ws, self._api):
            if srv is not None:
                srv.close()
                await srv.wait_closed()
        self._ws = self._api = None

    async def __aenter__(self) -> "StreamServer":
        await self.start()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()


async def run(cfg: ServerConfig) -> None:
    async with StreamServer(cfg):
        await asyncio.Future()  # until cancelled


def parse_args(argv: Optional[List[str]] = None) -> ServerConfig:
    p = argparse.ArgumentParser(description="Synthetic access-log WebSocket stream")
    p.add_argument("--host", type=str, default="127.0.0.1")
    p.add_argument("--port", type=int, default=8765, help="WebSocket port")
    p.add_argument("--api-port", type=int, default=8080, help="land-points HTTP port (0 disables)")
    p.add_argument("--no-api", action="store_true", help="do not serve /land-points")
    p.add_argument("--interval", type=float, default=0.01, help="seconds between records")
    p.add_argument("--presence", type=float, default=0.5, help="optional-field presence probability [0..1]")
    p.add_argument("--max-path-len", type=int, default=64)
    p.add_argument("--seed", type=int, default=None, help="RNG seed (default: nondeterministic)")
    p.add_argument("--log-level", type=str, default="INFO")
    a = p.parse_args(argv)
    return ServerConfig(
        host=a.host, port=a.port, api_port=None if a.no_api or a.api_port == 0 else a.api_port,
        interval=a.interval, presence=a.presence, max_path_len=a.max_path_len,
        seed=a.seed, log_level=a.log_level,
    )


def main(argv: Optional[List[str]] = None) -> int:
    try:
        cfg = parse_args(argv)
    except ValueError as e:
        print(f"invalid arguments: {e}", file=sys.stderr)
        return 2

    configure_logging(cfg.log_level)
    try:
        asyncio.run(run(cfg))
    except GeneratorConfigError as e:
        logger.error("refusing to start: %s", e)
        return 2
    except KeyboardInterrupt:
        logger.info("interrupted; shutting down")
    except OSError as e:
        logger.error("cannot bind: %s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
