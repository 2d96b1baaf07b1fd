"""
Brief: Tests for Record, Zone and SecondaryZone validation and conversions.

Inputs:
  - None

Outputs:
  - None
"""

import logging

import pytest
from dnslib import QTYPE, RR, SOA, TXT
from dnslib.dns import RD

from eyrie.errors import ZoneDataError
from eyrie.zones.models import (
    PRIMARY,
    SECONDARY,
    Record,
    SecondaryZone,
    Zone,
    canonical_type,
    in_zone,
    normalize_name,
)


def test_normalize_name_and_in_zone():
    assert normalize_name("WWW.Example.COM") == "www.example.com."
    assert normalize_name("") == "."
    assert in_zone("a.example.com.", "example.com.")
    assert in_zone("example.com.", "example.com.")
    assert not in_zone("badexample.com.", "example.com.")
    assert in_zone("anything.", ".")


def test_record_normalizes_fields():
    rec = Record("Mail.Example.com", "mx", "300", "10 mx.example.com.", rclass="in")
    assert (rec.name, rec.rtype, rec.ttl, rec.rclass) == ("mail.example.com.", "MX", 300, "IN")
    assert rec.to_zone_line() == "mail.example.com. 300 IN MX 10 mx.example.com."


@pytest.mark.parametrize(
    "kwargs",
    [
        {"rtype": "BOGUS"},
        {"rclass": "XX"},
        {"ttl": -1},
        {"ttl": "soon"},
    ],
)
def test_record_rejects_invalid_fields(kwargs):
    args = {"name": "a.example.com", "rtype": "A", "ttl": 60, "content": "192.0.2.1"}
    args.update(kwargs)
    with pytest.raises(ZoneDataError):
        Record(**args)


def test_record_to_rr_and_back():
    rec = Record("www.example.com", "A", 60, "192.0.2.1")
    rr = rec.to_rr()
    assert rr.rtype == QTYPE.A

    copy = Record.from_rr(rr)
    assert (copy.name, copy.rtype, copy.ttl, copy.content) == (rec.name, "A", 60, "192.0.2.1")
    assert copy.rdata == bytes([192, 0, 2, 1])
    assert copy.to_rr() == rr


def test_canonical_type_accepts_codes_and_generic_names():
    assert canonical_type("mx") == "MX"
    assert canonical_type(15) == "MX"
    assert canonical_type("TYPE1") == "A"
    assert canonical_type("65534") == "TYPE65534"
    assert canonical_type(65534) == "TYPE65534"
    for bad in ("BOGUS", "TYPE", 0, 70000):
        with pytest.raises(ZoneDataError):
            canonical_type(bad)


@pytest.mark.parametrize(
    "strings",
    [
        [b'quote"in'],
        [b"\xc3\xa9t\xe9"],
        [b"semi;colon", b"back\\slash"],
    ],
)
def test_transferred_txt_keeps_exact_bytes(strings):
    rr = RR("t.example.com.", QTYPE.TXT, ttl=60, rdata=TXT(strings))
    rec = Record.from_rr(rr)
    assert rec.to_rr().rdata.data == strings


def test_unknown_type_record_from_wire():
    rr = RR("x.example.com.", 65534, ttl=60, rdata=RD(b"\x01\x02"))
    rec = Record.from_rr(rr)
    assert rec.rtype == "TYPE65534"
    assert rec.type_code == 65534

    back = rec.to_rr()
    assert back.rtype == 65534
    assert back.rdata.data == b"\x01\x02"


def test_record_needs_content_or_rdata():
    with pytest.raises(ZoneDataError):
        Record("a.example.com", "A", 60)
    rr = Record("a.example.com", "A", 60, rdata=b"\xc0\x00\x02\x01").to_rr()
    assert str(rr.rdata) == "192.0.2.1"


def test_record_with_truncated_rdata_fails_to_decode():
    with pytest.raises(ZoneDataError):
        Record("a.example.com", "MX", 60, rdata=b"\x00").to_rr()


def test_record_to_rr_rejects_bad_content():
    with pytest.raises(ZoneDataError):
        Record("www.example.com", "A", 60, "not-an-address").to_rr()


def test_zone_rejects_out_of_zone_and_soa_records():
    with pytest.raises(ZoneDataError):
        Zone("example.com", [Record("www.example.org", "A", 60, "192.0.2.1")])
    with pytest.raises(ZoneDataError):
        Zone("example.com", [Record("example.com", "SOA", 60, "ns. h. 1 2 3 4 5")])
    with pytest.raises(ZoneDataError):
        Zone("example.com", zone_type="stub")
    with pytest.raises(ZoneDataError):
        Zone("example.com", dclass="XX")


def test_zone_soa_rr_requires_names():
    with pytest.raises(ZoneDataError):
        Zone("example.com").soa_rr()

    zone = Zone("example.com", soa_mname="ns1.example.com.", soa_rname="h.example.com.", serial=7)
    soa = zone.soa_rr()
    assert soa.rtype == QTYPE.SOA
    assert soa.rdata.times[0] == 7
    assert zone.contains("WWW.example.com")
    assert not zone.contains("example.org")


def _axfr_rrs():
    soa = RR(
        "example.com.",
        QTYPE.SOA,
        rdata=SOA("ns1.example.com.", "hostmaster.example.com.", (42, 7200, 900, 604800, 60)),
        ttl=1800,
    )
    return [soa] + RR.fromZone("www.example.com. 300 IN A 192.0.2.10") + [soa]


def test_zone_from_rrs_uses_apex_soa():
    zone = Zone.from_rrs("example.com", _axfr_rrs(), zone_id=3, remote_server="192.0.2.53")
    assert zone.zone_type == SECONDARY
    assert (zone.serial, zone.refresh, zone.retry, zone.expire, zone.minimum) == (
        42,
        7200,
        900,
        604800,
        60,
    )
    assert zone.ttl == 1800
    assert zone.soa_mname == "ns1.example.com."
    assert [r.name for r in zone.records] == ["www.example.com."]
    assert [rr.rtype for rr in zone.rrs()] == [QTYPE.SOA, QTYPE.A]


def test_zone_from_rrs_keeps_unknown_types():
    soa = _axfr_rrs()[0]
    signing = RR("x.example.com.", 65534, ttl=60, rdata=RD(b"\x01\x02"))
    zone = Zone.from_rrs("example.com", [soa, signing, soa])
    assert [(r.name, r.rtype) for r in zone.records] == [("x.example.com.", "TYPE65534")]
    assert zone.owner_index()["x.example.com."][65534][0].rdata.data == b"\x01\x02"


def test_owner_index_parses_once_and_skips_bad_records(caplog, monkeypatch):
    zone = Zone(
        "example.com",
        [
            Record("www.example.com", "A", 60, "192.0.2.1"),
            Record("www.example.com", "A", 60, "not-an-address"),
            Record("mail.example.com", "MX", 60, "10 mx.example.com."),
        ],
    )
    caplog.set_level(logging.WARNING, logger="eyrie.zones.models")

    index = zone.owner_index()
    assert sorted(index) == ["mail.example.com.", "www.example.com."]
    assert [str(rr.rdata) for rr in index["www.example.com."][QTYPE.A]] == ["192.0.2.1"]

    def _no_parse(self):
        raise AssertionError("records parsed again")

    monkeypatch.setattr(Record, "to_rr", _no_parse)
    assert zone.owner_index() is index
    assert sum("Skipping invalid record" in r.getMessage() for r in caplog.records) == 1


def test_zone_from_rrs_without_soa_fails():
    with pytest.raises(ZoneDataError):
        Zone.from_rrs("example.com", RR.fromZone("www.example.com. 300 IN A 192.0.2.10"))


def test_zone_from_rrs_with_foreign_soa_fails():
    rrs = _axfr_rrs()
    foreign = RR(
        "other.org.",
        QTYPE.SOA,
        rdata=SOA("ns1.other.org.", "h.other.org.", (1, 2, 3, 4, 5)),
    )
    with pytest.raises(ZoneDataError):
        Zone.from_rrs("example.com", [foreign] + rrs)


def test_secondary_zone_normalizes_name():
    handle = SecondaryZone(zone_id=1, zone_name="Example.COM", remote_server="192.0.2.53")
    assert handle.zone_name == "example.com."
    assert handle.zone_copy is None
    assert Zone("example.com").zone_type == PRIMARY
