"""
Brief: Tests for HealthMonitor probing and recovery of offline forwarding
resolvers.

Inputs:
  - None (validation probes are replaced with scripted outcomes)

Outputs:
  - None
"""

import threading

from dnslib import QTYPE, RCODE, RR, A, DNSRecord

from eyrie.resolvers.forwarding import ForwardingResolver
from eyrie.resolvers.health import HealthMonitor
from eyrie.transports.udp import UDPError


def _offline_resolver():
    r = ForwardingResolver(
        name="upstream",
        server="192.0.2.53",
        maxerrors=1,
        errorWindowsSize=10,
        validationInterval=3,
    )
    r.setup()
    r._online.clear()
    return r


def _scripted_send(outcomes):
    """
    Brief: Build a send() replacement yielding scripted replies or errors.

    Inputs:
      - outcomes: list of "ok", "nxdomain", "empty" or Exception instances

    Outputs:
      - callable(query) -> DNSRecord
    """
    items = list(outcomes)

    def _send(query):
        item = items.pop(0)
        if isinstance(item, Exception):
            raise item
        reply = query.reply()
        if item == "ok":
            reply.add_answer(RR(query.q.qname, QTYPE.A, rdata=A("192.0.2.1"), ttl=60))
        elif item == "nxdomain":
            reply.header.rcode = RCODE.NXDOMAIN
        return reply

    return _send


def test_monitor_recovers_after_failed_probes(monkeypatch):
    r = _offline_resolver()
    monkeypatch.setattr(
        r, "send", _scripted_send([UDPError("timeout"), "nxdomain", "empty", "ok"])
    )
    sleeps = []
    monitor = HealthMonitor(r, sleep=sleeps.append)

    monitor.run()

    assert r.online is True
    assert monitor.attempts == 4
    assert sleeps == [3.0, 3.0, 3.0]


def test_probe_once_reports_down_without_changing_state(monkeypatch):
    r = _offline_resolver()
    monkeypatch.setattr(r, "send", _scripted_send(["nxdomain"]))
    assert HealthMonitor(r).probe_once() is False
    assert r.online is False


def test_recovered_resolver_relays_next_query(monkeypatch):
    r = _offline_resolver()
    monkeypatch.setattr(r, "send", _scripted_send(["ok", "ok"]))
    assert r.generate_reply(DNSRecord.question("example.com")) is None

    HealthMonitor(r, sleep=lambda s: None).run()

    reply = r.generate_reply(DNSRecord.question("example.com"))
    assert reply is not None
    assert reply.rr


def test_error_queue_is_kept_after_recovery(monkeypatch):
    r = _offline_resolver()
    r._errors.extend([1.0, 2.0])
    monkeypatch.setattr(r, "send", _scripted_send(["ok"]))
    HealthMonitor(r, sleep=lambda s: None).run()
    assert list(r._errors) == [1.0, 2.0]


def test_tripping_starts_a_daemon_monitor_thread(monkeypatch):
    r = ForwardingResolver(name="live", server="192.0.2.53", maxerrors=1, errorWindowsSize=10)
    r.setup()
    probed = threading.Event()

    def _send(query):
        probed.set()
        return _scripted_send(["ok"])(query)

    monkeypatch.setattr(r, "send", _send)
    r._clock = lambda: 50.0
    r.process_error()
    assert r.process_error() is True

    assert probed.wait(5.0)
    for _ in range(100):
        if r.online:
            break
        threading.Event().wait(0.01)
    assert r.online is True


def test_monitor_start_returns_daemon_thread(monkeypatch):
    r = _offline_resolver()
    monkeypatch.setattr(r, "send", _scripted_send(["ok"]))
    thread = HealthMonitor(r).start()
    thread.join(5.0)
    assert thread.daemon is True
    assert not thread.is_alive()
    assert r.online is True
