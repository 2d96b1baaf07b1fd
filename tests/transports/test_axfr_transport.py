"""
Brief: Unit tests for the DNS AXFR transport helper.

Inputs:
  - None (tests use fake sockets and monkeypatching; no real network I/O).

Outputs:
  - None (assertions on axfr_transfer behaviour and error handling).
"""

from __future__ import annotations

from typing import List

import pytest
from dnslib import QTYPE, RCODE, RR, SOA, DNSRecord

import eyrie.transports.axfr as axfr_mod


class _FakeSocket:
    """Brief: Minimal fake socket implementing recv/settimeout/sendall/close.

    Inputs:
      - chunks: Sequence of bytes chunks returned by recv() in order.

    Outputs:
      - recv() returns data until exhausted, then b"".
    """

    def __init__(self, chunks: List[bytes]) -> None:
        self._chunks = list(chunks)
        self.timeout = None
        self.closed = False
        self.last_sent = b""

    def settimeout(self, t: float) -> None:
        self.timeout = t

    def recv(self, n: int) -> bytes:
        if not self._chunks:
            return b""
        chunk = self._chunks[0]
        if len(chunk) <= n:
            self._chunks.pop(0)
            return chunk
        self._chunks[0] = chunk[n:]
        return chunk[:n]

    def sendall(self, data: bytes) -> None:
        self.last_sent = data

    def close(self) -> None:
        self.closed = True


def _soa_rr(apex: str, serial: int = 1) -> RR:
    return RR(
        rname=apex,
        rtype=QTYPE.SOA,
        rdata=SOA(
            mname="ns1." + apex,
            rname="hostmaster." + apex,
            times=(serial, 3600, 600, 86400, 300),
        ),
        ttl=300,
    )


def _frame(message: DNSRecord) -> bytes:
    body = message.pack()
    return len(body).to_bytes(2, "big") + body


def _mk_axfr_frames(zone: str) -> List[bytes]:
    """Brief: Build two AXFR reply frames: SOA + A, then A + closing SOA.

    Inputs:
      - zone: Zone apex name (with or without trailing dot).

    Outputs:
      - list[bytes]: Length-prefixed DNS reply frames.
    """

    apex = (zone.rstrip(".") or ".") + "."
    q = DNSRecord.question(apex, "AXFR")

    r1 = q.reply()
    r1.add_answer(_soa_rr(apex))
    r1.add_answer(*RR.fromZone(f"www.{apex} 60 IN A 192.0.2.1"))

    r2 = q.reply()
    r2.add_answer(*RR.fromZone(f"mail.{apex} 60 IN A 192.0.2.2"))
    r2.add_answer(_soa_rr(apex))

    return [_frame(r1), _frame(r2)]


def _patch_connection(monkeypatch, sock):
    seen = {}

    def _fake_create_connection(addr, timeout=None):
        seen["addr"] = addr
        seen["timeout"] = timeout
        return sock

    monkeypatch.setattr(axfr_mod.socket, "create_connection", _fake_create_connection)
    return seen


def test_axfr_transfer_success_two_messages(monkeypatch) -> None:
    sock = _FakeSocket(_mk_axfr_frames("example.com"))
    seen = _patch_connection(monkeypatch, sock)

    rrs = axfr_mod.axfr_transfer("192.0.2.1", 53, "example.com", connect_timeout_ms=1500)

    assert [QTYPE[rr.rtype] for rr in rrs] == ["SOA", "A", "A", "SOA"]
    assert seen == {"addr": ("192.0.2.1", 53), "timeout": 1.5}
    assert sock.timeout == 5.0
    assert sock.closed is True
    sent = DNSRecord.parse(sock.last_sent[2:])
    assert QTYPE[sent.q.qtype] == "AXFR"


def test_axfr_transfer_no_messages_raises(monkeypatch) -> None:
    _patch_connection(monkeypatch, _FakeSocket([]))
    with pytest.raises(axfr_mod.AXFRError) as excinfo:
        axfr_mod.axfr_transfer("192.0.2.1", 53, "nodata.example")
    assert "returned no data" in str(excinfo.value)


def test_axfr_transfer_incomplete_frame_raises(monkeypatch) -> None:
    hdr = (10).to_bytes(2, "big")
    _patch_connection(monkeypatch, _FakeSocket([hdr + b"abcd"]))
    with pytest.raises(axfr_mod.AXFRError) as excinfo:
        axfr_mod.axfr_transfer("192.0.2.1", 53, "short.example")
    assert "short read" in str(excinfo.value)


def test_axfr_transfer_parse_error_raises(monkeypatch) -> None:
    body = b"not-a-dns-message"
    _patch_connection(monkeypatch, _FakeSocket([len(body).to_bytes(2, "big") + body]))
    with pytest.raises(axfr_mod.AXFRError) as excinfo:
        axfr_mod.axfr_transfer("192.0.2.1", 53, "badparse.example")
    assert "failed to parse AXFR response" in str(excinfo.value)


def test_axfr_transfer_refused_raises(monkeypatch) -> None:
    reply = DNSRecord.question("example.org.", "AXFR").reply()
    reply.header.rcode = RCODE.REFUSED
    _patch_connection(monkeypatch, _FakeSocket([_frame(reply)]))
    with pytest.raises(axfr_mod.AXFRError) as excinfo:
        axfr_mod.axfr_transfer("192.0.2.1", 53, "example.org")
    assert "REFUSED" in str(excinfo.value)


def test_axfr_transfer_must_start_with_soa(monkeypatch) -> None:
    reply = DNSRecord.question("example.org.", "AXFR").reply()
    reply.add_answer(*RR.fromZone("www.example.org. 60 IN A 192.0.2.1"))
    _patch_connection(monkeypatch, _FakeSocket([_frame(reply)]))
    with pytest.raises(axfr_mod.AXFRError) as excinfo:
        axfr_mod.axfr_transfer("192.0.2.1", 53, "example.org")
    assert "did not start with an SOA" in str(excinfo.value)


def test_axfr_transfer_missing_terminal_soa_raises(monkeypatch) -> None:
    reply = DNSRecord.question("example.net.", "AXFR").reply()
    reply.add_answer(_soa_rr("example.net."))
    _patch_connection(monkeypatch, _FakeSocket([_frame(reply)]))
    with pytest.raises(axfr_mod.AXFRError) as excinfo:
        axfr_mod.axfr_transfer("192.0.2.1", 53, "example.net")
    assert "did not terminate with a matching SOA" in str(excinfo.value)


def test_axfr_transfer_connect_failure(monkeypatch) -> None:
    def _refuse(addr, timeout=None):
        raise ConnectionRefusedError("refused")

    monkeypatch.setattr(axfr_mod.socket, "create_connection", _refuse)
    with pytest.raises(axfr_mod.AXFRError) as excinfo:
        axfr_mod.axfr_transfer("192.0.2.1", 53, "example.net")
    assert "connect" in str(excinfo.value)
