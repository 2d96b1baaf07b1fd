from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from dnslib import RCODE, DNSRecord

from .base import BaseResolver

logger = logging.getLogger(__name__)


class ResolverChain:
    """Brief: Try resolvers in order and return the first reply.

    Inputs:
      - resolvers: Ordered resolvers, typically the authoritative resolver
        followed by one or more forwarding resolvers.

    Outputs:
      - ResolverChain; resolve() returns a reply or None.

    Example:
        >>> chain = ResolverChain([])
        >>> chain.resolve(DNSRecord.question("example.com")) is None
        True
    """

    def __init__(self, resolvers: Iterable[BaseResolver]) -> None:
        self.resolvers: List[BaseResolver] = list(resolvers)

    def resolve(self, query: DNSRecord) -> Optional[DNSRecord]:
        for resolver in self.resolvers:
            try:
                reply = resolver.generate_reply(query)
            except Exception:
                logger.exception(
                    "Resolver %s failed on %s",
                    resolver.name,
                    BaseResolver.describe_question(query),
                )
                continue
            if reply is not None:
                logger.debug(
                    "Resolver %s answered %s",
                    resolver.name,
                    BaseResolver.describe_question(query),
                )
                return reply
        return None

    def resolve_or_servfail(self, query: DNSRecord) -> DNSRecord:
        """Like resolve(), but answer SERVFAIL when no resolver replied."""
        reply = self.resolve(query)
        if reply is not None:
            return reply
        reply = query.reply()
        reply.header.rcode = RCODE.SERVFAIL
        return reply

    def shutdown(self) -> None:
        for resolver in self.resolvers:
            try:
                resolver.shutdown()
            except Exception:
                logger.exception("Error shutting down resolver %s", resolver.name)
