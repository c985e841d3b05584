import ipaddress
import json
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import numpy as np
import pytest

from lsg.codec import from_document, from_wire, to_document, to_wire
from lsg.record import FIELD_NAMES, OPTIONAL_FIELDS, Referer, RecordGenerator


def test_round_trip(many_records):
    for rec in many_records:
        back = from_wire(to_wire(rec))
        assert back == rec
        assert back.time_local.utcoffset() == rec.time_local.utcoffset()


def test_document_shape_is_stable(many_records):
    for rec in many_records[:50]:
        doc = json.loads(to_wire(rec))
        assert list(doc) == list(FIELD_NAMES)
        assert set(doc["request"]) == {"method", "path", "version"}


def test_absent_fields_are_null_not_missing(rng):
    rec = RecordGenerator(presence=0.0).generate(rng)
    doc = json.loads(to_wire(rec))
    for name in OPTIONAL_FIELDS:
        assert name in doc
        assert doc[name] is None
    back = from_wire(to_wire(rec))
    assert all(getattr(back, n) is None for n in OPTIONAL_FIELDS)


def test_present_composites_are_nested(rng):
    rec = RecordGenerator(presence=1.0).generate(rng)
    doc = to_document(rec)
    assert set(doc["upstream_addr"]) == {"ip", "port"}
    assert ipaddress.IPv4Address(doc["upstream_addr"]["ip"]) == rec.upstream_addr.ip
    assert doc["http_referer"].startswith(rec.http_referer.scheme + "://")


def test_frame_is_compact(records, rng):
    frame = to_wire(records.generate(rng))
    assert "\n" not in frame
    assert ", " not in frame.split('"http_user_agent"')[0]


def test_time_local_keeps_second_offsets(records, rng):
    tz = timezone(timedelta(hours=-3, minutes=-7, seconds=-11))
    rec = replace(records.generate(rng), time_local=datetime(2001, 2, 3, 4, 5, 6, tzinfo=tz))
    doc = to_document(rec)
    assert doc["time_local"] == "2001-02-03T04:05:06-03:07:11"
    assert from_document(doc).time_local.utcoffset() == tz.utcoffset(None)


@pytest.mark.parametrize("referer", [
    Referer("http", "a", None),
    Referer("https", "example.com", "/"),
    Referer("https", "x-y.Z9", "//deep/./path.."),
])
def test_referer_round_trip(records, rng, referer):
    rec = replace(records.generate(rng), http_referer=referer)
    assert from_wire(to_wire(rec)).http_referer == referer


def test_missing_key_rejected(records, rng):
    doc = to_document(records.generate(rng))
    del doc["remote_user"]
    with pytest.raises(ValueError):
        from_document(doc)


def test_extra_key_rejected(records, rng):
    doc = to_document(records.generate(rng))
    doc["extra"] = 1
    with pytest.raises(ValueError):
        from_document(doc)


@pytest.mark.parametrize("key,value", [
    ("status", "200"),
    ("status", True),
    ("remote_addr", "999.1.1.1"),
    ("time_local", "yesterday"),
    ("request", "GET / HTTP/1.1"),
    ("lat", None),
    ("http_referer", 5),
    ("remote_addr", 123),
    ("http_x_forwarded_for", 123),
])
def test_wrong_types_rejected(records, rng, key, value):
    doc = to_document(records.generate(rng))
    doc[key] = value
    with pytest.raises(ValueError):
        from_document(doc)


def test_not_an_object_rejected():
    with pytest.raises(ValueError):
        from_wire("[1, 2, 3]")


def test_nan_never_emitted(records, rng):
    rec = replace(records.generate(rng), lat=float("nan"))
    with pytest.raises(ValueError):
        to_wire(rec)


def test_many_seeds_serialize(records):
    for seed in range(20):
        r = np.random.default_rng(seed)
        for _ in range(25):
            json.loads(to_wire(records.generate(r)))


def test_integer_upstream_ip_rejected(rng):
    doc = to_document(RecordGenerator(presence=1.0).generate(rng))
    doc["upstream_addr"]["ip"] = 167772161
    with pytest.raises(ValueError):
        from_document(doc)
