"""
Brief: Tests for ResolverChain ordering, error containment and SERVFAIL
synthesis.

Inputs:
  - None

Outputs:
  - None
"""

from dnslib import RCODE, DNSRecord

from eyrie.resolvers.base import BaseResolver
from eyrie.resolvers.chain import ResolverChain


class _Fixed(BaseResolver):
    def __init__(self, name, reply=None, exc=None):
        super().__init__(name=name)
        self.reply = reply
        self.exc = exc
        self.calls = 0
        self.closed = False

    def generate_reply(self, query):
        self.calls += 1
        if self.exc is not None:
            raise self.exc
        return self.reply

    def shutdown(self):
        self.closed = True


def test_first_non_none_reply_wins():
    q = DNSRecord.question("example.com")
    answer = q.reply()
    first = _Fixed("first")
    second = _Fixed("second", reply=answer)
    third = _Fixed("third", reply=q.reply())
    chain = ResolverChain([first, second, third])

    assert chain.resolve(q) is answer
    assert (first.calls, second.calls, third.calls) == (1, 1, 0)


def test_resolver_exception_is_treated_as_no_answer():
    q = DNSRecord.question("example.com")
    answer = q.reply()
    chain = ResolverChain([_Fixed("bad", exc=RuntimeError("boom")), _Fixed("ok", reply=answer)])
    assert chain.resolve(q) is answer


def test_servfail_when_nothing_answers():
    q = DNSRecord.question("example.com")
    chain = ResolverChain([_Fixed("none")])
    assert chain.resolve(q) is None
    reply = chain.resolve_or_servfail(q)
    assert reply.header.rcode == RCODE.SERVFAIL
    assert reply.header.id == q.header.id


def test_shutdown_reaches_every_resolver():
    resolvers = [_Fixed("a"), _Fixed("b")]
    ResolverChain(resolvers).shutdown()
    assert all(r.closed for r in resolvers)
