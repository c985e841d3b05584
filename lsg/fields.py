"""
Field generators
----------------
Atomic constrained-random producers. Each generator draws one value per call
from a caller-supplied ``numpy.random.Generator`` and never remembers what it
produced before. ``accepts`` is the matching membership test, so the same
object that defines a domain can also check a value against it.

Domains are validated when the generator is built: an empty or contradictory
domain raises ``GeneratorConfigError`` instead of producing bad data later.
"""
from __future__ import annotations
import ipaddress
import math
import re
from datetime import datetime, timedelta, timezone
from typing import Any, List, Sequence

import numpy as np


class GeneratorConfigError(ValueError):
    """A field domain that cannot be satisfied."""


EPOCH_UTC = datetime.fromtimestamp(0, timezone.utc)


class IntRange:
    """Uniform integer in [low, high)."""

    def __init__(self, low: int, high: int):
        if high <= low:
            raise GeneratorConfigError(f"empty integer range [{low}, {high})")
        self.low = int(low)
        self.high = int(high)

    def generate(self, rng: np.random.Generator) -> int:
        return int(rng.integers(self.low, self.high))

    def accepts(self, value: Any) -> bool:
        return isinstance(value, int) and not isinstance(value, bool) and self.low <= value < self.high


class FloatRange:
    """Uniform float in [low, high) at full double precision."""

    def __init__(self, low: float, high: float):
        if not (math.isfinite(low) and math.isfinite(high)):
            raise GeneratorConfigError(f"float bounds must be finite, got [{low}, {high})")
        if high <= low:
            raise GeneratorConfigError(f"empty float range [{low}, {high})")
        self.low = float(low)
        self.high = float(high)

    def generate(self, rng: np.random.Generator) -> float:
        x = float(rng.uniform(self.low, self.high))
        # uniform() may round onto the open end
        if x >= self.high:
            x = math.nextafter(self.high, self.low)
        return x

    def accepts(self, value: Any) -> bool:
        return isinstance(value, float) and self.low <= value < self.high


class Choice:
    """One of a fixed set of options, equally likely."""

    def __init__(self, options: Sequence[Any]):
        if not options:
            raise GeneratorConfigError("choice needs at least one option")
        self.options = tuple(options)

    def generate(self, rng: np.random.Generator) -> Any:
        # index rather than rng.choice() so values keep their Python type
        return self.options[int(rng.integers(0, len(self.options)))]

    def accepts(self, value: Any) -> bool:
        return value in self.options


def expand_char_class(char_class: str) -> str:
    """
    Expand a bracket-expression body such as ``a-zA-Z0-9_-`` into its
    characters, in order, without duplicates.

    A ``-`` is a range operator between two characters and a literal at
    either end. Escapes, negation and ``]`` are not supported.
    """
    if not char_class:
        raise GeneratorConfigError("empty character class")
    if char_class.startswith("^") or "\\" in char_class or "]" in char_class or "[" in char_class:
        raise GeneratorConfigError(f"unsupported character class {char_class!r}")
    out: List[str] = []
    i = 0
    n = len(char_class)
    while i < n:
        if i + 2 < n and char_class[i + 1] == "-":
            lo, hi = char_class[i], char_class[i + 2]
            if ord(hi) < ord(lo):
                raise GeneratorConfigError(f"inverted range {lo}-{hi} in {char_class!r}")
            out.extend(chr(c) for c in range(ord(lo), ord(hi) + 1))
            i += 3
        else:
            out.append(char_class[i])
            i += 1
    return "".join(dict.fromkeys(out))


class CharsetString:
    """
    String matching ``prefix[char_class]{min_len,max_len}``.

    Length is uniform over [min_len, max_len], then every character is drawn
    independently from the class, so the result matches ``self.regex`` by
    construction.
    """

    def __init__(self, char_class: str, min_len: int, max_len: int, prefix: str = ""):
        if min_len < 0 or max_len < min_len:
            raise GeneratorConfigError(f"bad length bounds {{{min_len},{max_len}}}")
        self.alphabet = expand_char_class(char_class)
        self.min_len = int(min_len)
        self.max_len = int(max_len)
        self.prefix = prefix
        self.regex = re.compile(
            "%s[%s]{%d,%d}" % (re.escape(prefix), re.escape(self.alphabet), self.min_len, self.max_len)
        )

    def generate(self, rng: np.random.Generator) -> str:
        n = int(rng.integers(self.min_len, self.max_len + 1))
        idx = rng.integers(0, len(self.alphabet), size=n)
        return self.prefix + "".join(self.alphabet[i] for i in idx)

    def accepts(self, value: Any) -> bool:
        return isinstance(value, str) and self.regex.fullmatch(value) is not None


class OptionalField:
    """
    Wraps another generator; present with probability ``presence``.

    On absence the wrapped generator is not called at all, so no randomness
    is spent on it.
    """

    def __init__(self, inner: Any, presence: float = 0.5):
        if not (0.0 <= presence <= 1.0):
            raise GeneratorConfigError(f"presence must be in [0,1], got {presence}")
        self.inner = inner
        self.presence = float(presence)

    def generate(self, rng: np.random.Generator) -> Any:
        if rng.random() < self.presence:
            return self.inner.generate(rng)
        return None

    def accepts(self, value: Any) -> bool:
        return value is None or self.inner.accepts(value)


class IPv4:
    """Uniform over all 2**32 IPv4 addresses."""

    def generate(self, rng: np.random.Generator) -> ipaddress.IPv4Address:
        return ipaddress.IPv4Address(int(rng.integers(0, 2**32, dtype=np.uint64)))

    def accepts(self, value: Any) -> bool:
        return isinstance(value, ipaddress.IPv4Address)


class Timestamp:
    """
    Timezone-aware datetime: a Unix timestamp in [ts_low, ts_high) shown at a
    fixed UTC offset drawn from [offset_low, offset_high) seconds.

    If the pair cannot be turned into a valid zoned instant (an offset a
    ``timezone`` refuses, a timestamp the platform cannot convert) the result
    is the Unix epoch in UTC.
    """

    def __init__(self, ts_low: int = 0, ts_high: int = 2**31 - 1,
                 offset_low: int = -43200, offset_high: int = 43200):
        self.ts = IntRange(ts_low, ts_high)
        self.offset = IntRange(offset_low, offset_high)

    def generate(self, rng: np.random.Generator) -> datetime:
        return self.combine(self.ts.generate(rng), self.offset.generate(rng))

    @staticmethod
    def combine(ts: int, offset: int) -> datetime:
        try:
            tz = timezone(timedelta(seconds=offset))
            return datetime.fromtimestamp(ts, tz)
        except (ValueError, OverflowError, OSError):
            return EPOCH_UTC

    def accepts(self, value: Any) -> bool:
        if not isinstance(value, datetime) or value.utcoffset() is None:
            return False
        if value == EPOCH_UTC and value.utcoffset() == timedelta(0):
            return True
        ts = value.timestamp()
        offset = value.utcoffset().total_seconds()
        return (self.ts.low <= ts < self.ts.high
                and self.offset.low <= offset < self.offset.high)
