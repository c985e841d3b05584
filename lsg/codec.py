"""
Wire codec for records: one compact JSON object per frame.

Keys follow ``Record`` field order. ``request`` and ``upstream_addr`` are
nested objects, ``time_local`` is ISO-8601 with its offset, ``http_referer``
is a URL string, and an absent optional field is ``null`` (never a missing
key).
"""
from __future__ import annotations
import ipaddress
import json
from datetime import datetime
from typing import Any, Dict
from urllib.parse import urlsplit

from lsg.record import FIELD_NAMES, Record, Referer, Request, UpstreamAddr


def to_document(rec: Record) -> Dict[str, Any]:
    def opt(v, f):
        return None if v is None else f(v)

    return {
        "remote_addr": str(rec.remote_addr),
        "remote_user": rec.remote_user,
        "time_local": rec.time_local.isoformat(),
        "request": {
            "method": rec.request.method,
            "path": rec.request.path,
            "version": rec.request.version,
        },
        "status": rec.status,
        "body_bytes_sent": rec.body_bytes_sent,
        "http_referer": opt(rec.http_referer, str),
        "http_user_agent": rec.http_user_agent,
        "http_x_forwarded_for": opt(rec.http_x_forwarded_for, str),
        "request_time": rec.request_time,
        "upstream_response_time": rec.upstream_response_time,
        "upstream_addr": opt(rec.upstream_addr, lambda u: {"ip": str(u.ip), "port": u.port}),
        "request_length": rec.request_length,
        "connection": rec.connection,
        "connection_requests": rec.connection_requests,
        "lat": rec.lat,
        "lng": rec.lng,
    }


def to_wire(rec: Record) -> str:
    return json.dumps(to_document(rec), separators=(",", ":"), allow_nan=False)


def _parse_referer(url: str) -> Referer:
    if not isinstance(url, str):
        raise ValueError(f"referer must be a string, got {url!r}")
    parts = urlsplit(url)
    if not parts.scheme or not parts.netloc:
        raise ValueError(f"bad referer {url!r}")
    return Referer(parts.scheme, parts.netloc, parts.path or None)


def _expect(doc: Dict[str, Any], key: str, *types):
    v = doc[key]
    if not isinstance(v, types) or isinstance(v, bool):
        raise ValueError(f"{key}: expected {'/'.join(t.__name__ for t in types)}, got {v!r}")
    return v


def from_document(doc: Dict[str, Any]) -> Record:
    """
    Rebuild a ``Record`` from a decoded document.

    Raises ValueError on missing keys, extra keys or values of the wrong
    shape. Domain checks are ``RecordGenerator.violations``' job.
    """
    if not isinstance(doc, dict):
        raise ValueError("record document must be an object")
    if set(doc) != set(FIELD_NAMES):
        raise ValueError(f"unexpected keys: {sorted(set(doc) ^ set(FIELD_NAMES))}")

    def opt(key, f):
        return None if doc[key] is None else f(doc[key])

    def ip(s):
        # IPv4Address also takes ints; the wire form is dotted-quad only
        if not isinstance(s, str):
            raise ValueError(f"address must be a dotted-quad string, got {s!r}")
        return ipaddress.IPv4Address(s)

    req = doc["request"]
    up = doc["upstream_addr"]
    try:
        return Record(
            remote_addr=ip(doc["remote_addr"]),
            remote_user=None if doc["remote_user"] is None else _expect(doc, "remote_user", str),
            time_local=datetime.fromisoformat(_expect(doc, "time_local", str)),
            request=Request(
                method=_expect(req, "method", str),
                path=_expect(req, "path", str),
                version=_expect(req, "version", str),
            ),
            status=_expect(doc, "status", int),
            body_bytes_sent=_expect(doc, "body_bytes_sent", int),
            http_referer=opt("http_referer", _parse_referer),
            http_user_agent=_expect(doc, "http_user_agent", str),
            http_x_forwarded_for=opt("http_x_forwarded_for", ip),
            request_time=float(_expect(doc, "request_time", float, int)),
            upstream_response_time=opt(
                "upstream_response_time",
                lambda _: float(_expect(doc, "upstream_response_time", float, int)),
            ),
            upstream_addr=None if up is None else UpstreamAddr(ip(up["ip"]), _expect(up, "port", int)),
            request_length=_expect(doc, "request_length", int),
            connection=_expect(doc, "connection", int),
            connection_requests=_expect(doc, "connection_requests", int),
            lat=float(_expect(doc, "lat", float, int)),
            lng=float(_expect(doc, "lng", float, int)),
        )
    except (KeyError, TypeError) as e:
        raise ValueError(f"malformed record document: {e!r}") from e


def from_wire(text: str) -> Record:
    return from_document(json.loads(text))
