"""
Connect to a running stream, print frames and check each record's domain.

Run:
  python tools/lsg_tail.py --url ws://127.0.0.1:8765/ --count 20
  python tools/lsg_tail.py --quiet --count 1000     # just validate
"""
from __future__ import annotations
import argparse
import asyncio
import sys

from websockets.asyncio.client import connect

from lsg.codec import from_wire
from lsg.record import RecordGenerator


async def tail(url: str, count: int, quiet: bool = False, max_path_len: int = 64) -> int:
    """Read `count` frames; return how many failed to parse or validate."""
    checker = RecordGenerator(max_path_len=max_path_len)
    bad = 0
    async with connect(url) as ws:
        for i in range(count):
            frame = await ws.recv()
            try:
                rec = from_wire(frame)
                problems = checker.violations(rec)
            except ValueError as e:
                problems = [f"unparseable: {e}"]
            if problems:
                bad += 1
                print(f"[tail] frame {i}: {', '.join(problems)}", file=sys.stderr)
            if not quiet:
                print(frame, flush=True)
    return bad


def main() -> int:
    p = argparse.ArgumentParser(description="Print and validate records from the stream")
    p.add_argument("--url", type=str, default="ws://127.0.0.1:8765/")
    p.add_argument("--count", type=int, default=20)
    p.add_argument("--quiet", action="store_true", help="validate only, do not print frames")
    p.add_argument("--max-path-len", type=int, default=64, help="must match the server's setting")
    a = p.parse_args()
    bad = asyncio.run(tail(a.url, a.count, a.quiet, a.max_path_len))
    print(f"[tail] {a.count} frames, {bad} invalid", file=sys.stderr)
    return 1 if bad else 0


if __name__ == "__main__":
    sys.exit(main())
