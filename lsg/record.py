"""
Access-log record schema and the composite generator that fills it.

``RecordGenerator`` is the only schema-aware piece: it owns one field
generator per field, calls each exactly once per record and assembles the
result. Adding a field means adding a generator here and a key in
``lsg.codec``.
"""
from __future__ import annotations
import ipaddress
from dataclasses import dataclass, fields
from datetime import datetime
from typing import Dict, List, Mapping, Optional

import numpy as np

from lsg.fields import (
    CharsetString,
    Choice,
    FloatRange,
    GeneratorConfigError,
    IntRange,
    IPv4,
    OptionalField,
    Timestamp,
)

METHODS = ("GET", "POST", "PUT", "DELETE", "HEAD", "OPTIONS")
HTTP_VERSIONS = ("1.0", "1.1", "2.0")
SCHEMES = ("http", "https")

PATH_CLASS = "a-zA-Z0-9/_.-"
USER_CLASS = "a-zA-Z0-9_-"
DOMAIN_CLASS = "a-zA-Z0-9.-"
USER_AGENT_CLASS = "a-zA-Z0-9 ();:/._-"

OPTIONAL_FIELDS = (
    "remote_user",
    "http_referer",
    "http_x_forwarded_for",
    "upstream_response_time",
    "upstream_addr",
)


@dataclass(frozen=True)
class Request:
    method: str
    path: str
    version: str


@dataclass(frozen=True)
class Referer:
    scheme: str
    domain: str
    path: Optional[str] = None

    def __str__(self) -> str:
        return f"{self.scheme}://{self.domain}{self.path or ''}"


@dataclass(frozen=True)
class UpstreamAddr:
    ip: ipaddress.IPv4Address
    port: int


@dataclass(frozen=True)
class Record:
    remote_addr: ipaddress.IPv4Address
    remote_user: Optional[str]
    time_local: datetime
    request: Request
    status: int
    body_bytes_sent: int
    http_referer: Optional[Referer]
    http_user_agent: str
    http_x_forwarded_for: Optional[ipaddress.IPv4Address]
    request_time: float
    upstream_response_time: Optional[float]
    upstream_addr: Optional[UpstreamAddr]
    request_length: int
    connection: int
    connection_requests: int
    lat: float
    lng: float


FIELD_NAMES = tuple(f.name for f in fields(Record))


class _Composite:
    """Builds a frozen dataclass from named sub-generators."""

    def __init__(self, cls, parts: Mapping[str, object]):
        self.cls = cls
        self.parts = dict(parts)

    def generate(self, rng: np.random.Generator):
        return self.cls(**{name: g.generate(rng) for name, g in self.parts.items()})

    def accepts(self, value) -> bool:
        return isinstance(value, self.cls) and all(
            g.accepts(getattr(value, name)) for name, g in self.parts.items()
        )


class RecordGenerator:
    """
    Composite generator for ``Record``.

    - presence: probability that each optional field is present
    - presence_overrides: per-field presence, keyed by field name
    - max_path_len: upper bound on characters after the leading ``/``

    Bad domains raise ``GeneratorConfigError`` here, at construction.
    """

    def __init__(self, *, presence: float = 0.5,
                 presence_overrides: Optional[Mapping[str, float]] = None,
                 max_path_len: int = 64):
        overrides = dict(presence_overrides or {})
        unknown = set(overrides) - set(OPTIONAL_FIELDS)
        if unknown:
            raise GeneratorConfigError(f"not optional fields: {sorted(unknown)}")

        def opt(name: str, inner) -> OptionalField:
            return OptionalField(inner, overrides.get(name, presence))

        path = CharsetString(PATH_CLASS, 0, max_path_len, prefix="/")
        duration = FloatRange(0.001, 30.0)

        self.generators: Dict[str, object] = {
            "remote_addr": IPv4(),
            "remote_user": opt("remote_user", CharsetString(USER_CLASS, 1, 20)),
            "time_local": Timestamp(),
            "request": _Composite(Request, {
                "method": Choice(METHODS),
                "path": path,
                "version": Choice(HTTP_VERSIONS),
            }),
            "status": IntRange(100, 600),
            "body_bytes_sent": IntRange(0, 1_000_000),
            "http_referer": opt("http_referer", _Composite(Referer, {
                "scheme": Choice(SCHEMES),
                "domain": CharsetString(DOMAIN_CLASS, 1, 32),
                "path": OptionalField(path, presence),
            })),
            "http_user_agent": CharsetString(USER_AGENT_CLASS, 10, 100),
            "http_x_forwarded_for": opt("http_x_forwarded_for", IPv4()),
            "request_time": duration,
            "upstream_response_time": opt("upstream_response_time", duration),
            "upstream_addr": opt("upstream_addr", _Composite(UpstreamAddr, {
                "ip": IPv4(),
                "port": IntRange(0, 65536),
            })),
            "request_length": IntRange(1, 10_000),
            "connection": IntRange(1, 1_000_000),
            "connection_requests": IntRange(1, 1_000),
            "lat": FloatRange(-90.0, 90.0),
            "lng": FloatRange(-180.0, 180.0),
        }
        assert tuple(self.generators) == FIELD_NAMES, "generator table out of sync with Record"

    def generate(self, rng: np.random.Generator) -> Record:
        return Record(**{name: g.generate(rng) for name, g in self.generators.items()})

    def violations(self, record: Record) -> List[str]:
        """Names of fields whose value lies outside its domain."""
        return [name for name, g in self.generators.items()
                if not g.accepts(getattr(record, name))]
