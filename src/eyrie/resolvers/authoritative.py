from __future__ import annotations

import logging
from typing import Dict, List, Optional

from dnslib import CLASS, QTYPE, RCODE, RR, DNSHeader, DNSRecord

from eyrie.errors import ZoneDataError
from eyrie.registry import aliases
from eyrie.zones.catalog import ZoneCatalog
from eyrie.zones.models import Zone, normalize_name

from .base import BaseResolver

logger = logging.getLogger(__name__)

# dnslib names class 255 "*"
_QCLASS_ANY = 255


@aliases("authoritative", "zones", "local")
class AuthoritativeResolver(BaseResolver):
    """Brief: Answer queries for names inside locally held zones.

    Inputs:
      - name: Resolver name for logs.
      - catalog: ZoneCatalog with the primary zones and secondary zone copies.

    Outputs:
      - Resolver answering with the AA flag set. Names outside every zone
        return None so the chain can forward them.

    Behaviour:
      - A CNAME at the owner name is returned for every qtype.
      - ANY returns every RRset at the owner name (the SOA too at the apex).
      - A name with records but none of the requested type gets NODATA and a
        name with no records gets NXDOMAIN; both carry the zone SOA in the
        authority section.
    """

    def __init__(
        self,
        name: Optional[str] = None,
        catalog: Optional[ZoneCatalog] = None,
        **config: object,
    ) -> None:
        super().__init__(name=name, **config)
        self.catalog = catalog if catalog is not None else ZoneCatalog()

    @staticmethod
    def _rrsets(zone: Zone, owner: str) -> Dict[int, List[RR]]:
        rrsets = dict(zone.owner_index().get(owner, {}))
        if owner == zone.name:
            try:
                rrsets[int(QTYPE.SOA)] = [zone.soa_rr()]
            except ZoneDataError:
                logger.debug("Zone %s has no SOA data to answer with", zone.name)
        return rrsets

    @staticmethod
    def _add_soa(reply: DNSRecord, zone: Zone) -> None:
        try:
            reply.add_auth(zone.soa_rr())
        except ZoneDataError as exc:
            logger.warning("Zone %s has no SOA for the authority section: %s", zone.name, exc)

    def generate_reply(self, query: DNSRecord) -> Optional[DNSRecord]:
        owner = normalize_name(query.q.qname)
        zone = self.catalog.find(owner)
        if zone is None:
            return None

        qclass = int(query.q.qclass)
        if qclass not in (CLASS.reverse[zone.dclass], _QCLASS_ANY):
            return None

        qtype = int(query.q.qtype)
        logger.debug(
            "Resolver %s answering %s from zone %s",
            self.name,
            self.describe_question(query),
            zone.name,
        )

        reply = DNSRecord(
            DNSHeader(id=query.header.id, qr=1, aa=1, rd=query.header.rd), q=query.q
        )
        rrsets = self._rrsets(zone, owner)
        cname = int(QTYPE.CNAME)

        if cname in rrsets and qtype != cname:
            if len(rrsets) > 1:
                logger.warning(
                    "Zone %s has CNAME and other records at %s; answering with CNAME only",
                    zone.name,
                    owner,
                )
            for rr in rrsets[cname]:
                reply.add_answer(rr)
            return reply

        if qtype == int(QTYPE.ANY) and rrsets:
            for rrs in rrsets.values():
                for rr in rrs:
                    reply.add_answer(rr)
            return reply

        if qtype in rrsets:
            for rr in rrsets[qtype]:
                reply.add_answer(rr)
            return reply

        # Names with records below them exist even when they own none.
        exists = bool(rrsets) or any(
            name.endswith("." + owner) for name in zone.owner_index()
        )
        reply.header.rcode = RCODE.NOERROR if exists else RCODE.NXDOMAIN
        self._add_soa(reply, zone)
        return reply
