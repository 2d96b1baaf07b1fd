"""In-memory zone model shared by providers, the catalog and the transfer driver.

Inputs:
  - Zone metadata and records read from a store, or RRs received via AXFR.

Outputs:
  - Record: one resource record, as zone-file text or wire-form rdata.
  - Zone: an apex plus SOA parameters and its records.
  - SecondaryZone: the runtime handle passed between the transfer driver and
    the provider that produced it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from dnslib import CLASS, QTYPE, RR, SOA
from dnslib.dns import RD, RDMAP
from dnslib.label import DNSBuffer

from eyrie.errors import ZoneDataError

logger = logging.getLogger(__name__)

PRIMARY = "primary"
SECONDARY = "secondary"


def normalize_name(name: object) -> str:
    """Brief: Return an absolute, lower-cased domain name with a trailing dot.

    Inputs:
      - name: str or dnslib DNSLabel.

    Outputs:
      - str: e.g. "www.example.com." ("." for the root).
    """
    text = str(name).strip().rstrip(".").lower()
    return text + "." if text else "."


def in_zone(name: str, apex: str) -> bool:
    """Return True when normalized *name* equals or falls below normalized *apex*."""
    if apex == ".":
        return True
    return name == apex or name.endswith("." + apex)


def canonical_type(rtype: object) -> str:
    """Brief: Canonical mnemonic for a record type.

    Inputs:
      - rtype: Mnemonic ("mx"), RFC 3597 form ("TYPE65534") or numeric code.

    Outputs:
      - str: Known mnemonic, or "TYPEnnn" for types dnslib has no name for.

    Raises:
      - ZoneDataError for names that are neither, or codes outside 1-65535.

    Example:
        >>> canonical_type(15), canonical_type("type1"), canonical_type(65534)
        ('MX', 'A', 'TYPE65534')
    """
    if isinstance(rtype, int):
        code = rtype
    else:
        text = str(rtype).strip().upper()
        if text in QTYPE.reverse:
            return text
        if text.isdigit():
            code = int(text)
        elif text.startswith("TYPE") and text[4:].isdigit():
            code = int(text[4:])
        else:
            raise ZoneDataError(f"unknown record type {rtype!r}")
    if not 0 < code < 65536:
        raise ZoneDataError(f"record type {rtype!r} is out of range")
    return QTYPE[code]


def qtype_code(name: str) -> int:
    """Return the numeric code of a canonical type mnemonic from canonical_type()."""
    if name in QTYPE.reverse:
        return QTYPE.reverse[name]
    return int(name[4:])


def pack_rdata(rdata: RD) -> bytes:
    """Encode dnslib rdata in wire form, with name compression local to the rdata."""
    buffer = DNSBuffer()
    rdata.pack(buffer)
    return bytes(buffer.data)


@dataclass(frozen=True)
class Record:
    """Brief: One resource record owned by a zone.

    Inputs (constructor fields):
      - name: Owner name; normalized to an absolute lower-case name.
      - rtype: Type mnemonic such as "A" or "MX", an RFC 3597 "TYPEnnn" or a
        numeric code.
      - ttl: Time to live in seconds.
      - content: Type-specific data in zone-file syntax (e.g. "10 mail.example.com.").
        Informational only when rdata is set.
      - rclass: DNS class mnemonic (default "IN").
      - rdata: Wire-form rdata. Records received by zone transfer carry it so
        they are served back byte for byte; hand-written records leave it None
        and are parsed from content.

    Outputs:
      - Immutable Record; raises ZoneDataError for unknown types/classes,
        a negative TTL or a record with neither content nor rdata. Types
        without a mnemonic are kept as "TYPEnnn".
    """

    name: str
    rtype: str
    ttl: int
    content: str = ""
    rclass: str = "IN"
    rdata: Optional[bytes] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", normalize_name(self.name))
        object.__setattr__(self, "rclass", str(self.rclass).upper())
        try:
            object.__setattr__(self, "rtype", canonical_type(self.rtype))
        except ZoneDataError as exc:
            raise ZoneDataError(f"{exc} at {self.name}") from exc
        if self.rdata is not None:
            object.__setattr__(self, "rdata", bytes(self.rdata))
        elif not self.content:
            raise ZoneDataError(f"record {self.rtype} at {self.name} has no data")
        if self.rclass not in CLASS.reverse:
            raise ZoneDataError(f"unknown class {self.rclass!r} at {self.name}")
        try:
            ttl = int(self.ttl)
        except (TypeError, ValueError) as exc:
            raise ZoneDataError(f"invalid ttl {self.ttl!r} at {self.name}") from exc
        if ttl < 0:
            raise ZoneDataError(f"negative ttl at {self.name}")
        object.__setattr__(self, "ttl", ttl)

    @classmethod
    def from_rr(cls, rr: RR) -> "Record":
        return cls(
            name=str(rr.rname),
            rtype=int(rr.rtype),
            ttl=rr.ttl,
            content=str(rr.rdata),
            rclass=CLASS.get(rr.rclass, str(rr.rclass)),
            rdata=pack_rdata(rr.rdata),
        )

    @property
    def type_code(self) -> int:
        return qtype_code(self.rtype)

    def to_zone_line(self) -> str:
        return f"{self.name} {self.ttl} {self.rclass} {self.rtype} {self.content}"

    def to_rr(self) -> RR:
        """Build a dnslib RR from rdata or content, raising ZoneDataError when neither parses."""
        if self.rdata is not None:
            try:
                rd = RDMAP.get(self.rtype, RD).parse(DNSBuffer(self.rdata), len(self.rdata))
            except Exception as exc:
                raise ZoneDataError(
                    f"cannot decode {self.rtype} rdata at {self.name}: {exc}"
                ) from exc
            return RR(
                rname=self.name,
                rtype=self.type_code,
                rclass=CLASS.reverse[self.rclass],
                ttl=self.ttl,
                rdata=rd,
            )
        try:
            rrs = RR.fromZone(self.to_zone_line())
        except Exception as exc:
            raise ZoneDataError(
                f"cannot parse record {self.to_zone_line()!r}: {exc}"
            ) from exc
        if len(rrs) != 1:
            raise ZoneDataError(f"record {self.to_zone_line()!r} produced {len(rrs)} RRs")
        return rrs[0]


@dataclass
class Zone:
    """Brief: A named authority region with SOA parameters and records.

    Inputs (constructor fields):
      - name: Zone apex (normalized to an absolute lower-case name).
      - records: Non-SOA records; every owner name must lie within the apex.
      - zone_id: Persistence key assigned by the store (None when unsaved).
      - zone_type: "primary" or "secondary".
      - dclass: DNS class mnemonic.
      - remote_server: Upstream primary "host" or "host:port" (secondary only).
      - downloaded: Last successful transfer or check (secondary only).
      - soa_mname/soa_rname/serial/refresh/retry/expire/minimum/ttl: SOA data.

    Outputs:
      - Zone instance; raises ZoneDataError when the records escape the apex
        or the zone type is unknown.

    Example:
        >>> z = Zone("Example.COM", [Record("www.example.com", "A", 60, "192.0.2.1")],
        ...          soa_mname="ns1.example.com.", soa_rname="hostmaster.example.com.")
        >>> z.name
        'example.com.'
    """

    name: str
    records: List[Record] = field(default_factory=list)
    zone_id: Optional[int] = None
    zone_type: str = PRIMARY
    dclass: str = "IN"
    remote_server: Optional[str] = None
    downloaded: Optional[datetime] = None
    soa_mname: Optional[str] = None
    soa_rname: Optional[str] = None
    serial: int = 0
    refresh: int = 3600
    retry: int = 600
    expire: int = 86400
    minimum: int = 300
    ttl: int = 3600
    _owners: Optional[Dict[str, Dict[int, List[RR]]]] = field(
        default=None, init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        self.name = normalize_name(self.name)
        self.dclass = str(self.dclass).upper()
        if self.dclass not in CLASS.reverse:
            raise ZoneDataError(f"unknown class {self.dclass!r} for zone {self.name}")
        if self.zone_type not in (PRIMARY, SECONDARY):
            raise ZoneDataError(f"unknown zone type {self.zone_type!r} for {self.name}")
        self.records = list(self.records)
        for record in self.records:
            if record.rtype == "SOA":
                raise ZoneDataError(
                    f"zone {self.name} carries its SOA as metadata, not as a record"
                )
            if not in_zone(record.name, self.name):
                raise ZoneDataError(
                    f"record {record.name} is outside zone {self.name}"
                )

    def contains(self, name: object) -> bool:
        return in_zone(normalize_name(name), self.name)

    def owner_index(self) -> Dict[str, Dict[int, List[RR]]]:
        """Brief: Parse every record once and group the RRs by owner and type.

        Inputs:
          - None.

        Outputs:
          - dict owner name -> {type code -> [RR, ...]}, built on first use and
            reused afterwards. Records that do not parse are logged once and
            left out. The SOA is not included.

        Notes:
          - Zones are treated as immutable once indexed; build a new Zone
            instead of editing records in place.
        """
        if self._owners is None:
            owners: Dict[str, Dict[int, List[RR]]] = {}
            for record in self.records:
                try:
                    rr = record.to_rr()
                except ZoneDataError as exc:
                    logger.warning("Skipping invalid record in zone %s: %s", self.name, exc)
                    continue
                owners.setdefault(record.name, {}).setdefault(rr.rtype, []).append(rr)
            self._owners = owners
        return self._owners

    def soa_rr(self) -> RR:
        """Brief: Build the zone SOA RR from metadata.

        Inputs:
          - None.

        Outputs:
          - dnslib RR of type SOA owned by the apex.

        Raises:
          - ZoneDataError when mname/rname are not set (e.g. a secondary zone
            that was never transferred).
        """
        if not self.soa_mname or not self.soa_rname:
            raise ZoneDataError(f"zone {self.name} has no SOA data")
        return RR(
            rname=self.name,
            rtype=QTYPE.SOA,
            rclass=CLASS.reverse[self.dclass],
            ttl=self.ttl,
            rdata=SOA(
                mname=self.soa_mname,
                rname=self.soa_rname,
                times=(
                    self.serial,
                    self.refresh,
                    self.retry,
                    self.expire,
                    self.minimum,
                ),
            ),
        )

    def rrs(self) -> List[RR]:
        """Return the SOA followed by every record as dnslib RRs."""
        return [self.soa_rr()] + [r.to_rr() for r in self.records]

    @classmethod
    def from_rrs(
        cls,
        name: str,
        rrs: Iterable[RR],
        *,
        zone_id: Optional[int] = None,
        zone_type: str = SECONDARY,
        dclass: str = "IN",
        remote_server: Optional[str] = None,
        downloaded: Optional[datetime] = None,
    ) -> "Zone":
        """Brief: Build a Zone from a transferred RR sequence.

        Inputs:
          - name: Zone apex.
          - rrs: RRs as returned by an AXFR (opening and closing SOA included).
          - zone_id, zone_type, dclass, remote_server, downloaded: metadata
            copied onto the result.

        Outputs:
          - Zone whose SOA fields come from the apex SOA and whose records are
            every non-SOA RR.

        Raises:
          - ZoneDataError when no apex SOA is present or any record is invalid.
        """
        apex = normalize_name(name)
        soa: Optional[RR] = None
        records: List[Record] = []
        for rr in rrs:
            if rr.rtype == QTYPE.SOA:
                if normalize_name(rr.rname) != apex:
                    raise ZoneDataError(f"SOA for {rr.rname} found in zone {apex}")
                if soa is None:
                    soa = rr
                continue
            records.append(Record.from_rr(rr))

        if soa is None:
            raise ZoneDataError(f"zone {apex} has no SOA record")

        serial, refresh, retry, expire, minimum = soa.rdata.times
        return cls(
            name=apex,
            records=records,
            zone_id=zone_id,
            zone_type=zone_type,
            dclass=dclass,
            remote_server=remote_server,
            downloaded=downloaded,
            soa_mname=normalize_name(soa.rdata.mname),
            soa_rname=normalize_name(soa.rdata.rname),
            serial=int(serial),
            refresh=int(refresh),
            retry=int(retry),
            expire=int(expire),
            minimum=int(minimum),
            ttl=int(soa.ttl),
        )


@dataclass
class SecondaryZone:
    """Brief: Provider-independent handle for one secondary zone.

    Inputs (constructor fields):
      - zone_id: Identifier of the persisted zone inside its provider.
      - zone_name: Zone apex.
      - remote_server: Upstream primary "host" or "host:port".
      - dclass: DNS class mnemonic.
      - zone_copy: In-memory zone content; set after a successful transfer or
        when the provider already holds records.
      - downloaded: Last successful transfer/check time.
      - provider: Name of the provider instance that produced this handle.
        Providers ignore callbacks carrying another provider's handle.

    Outputs:
      - SecondaryZone instance.
    """

    zone_id: int
    zone_name: str
    remote_server: str
    dclass: str = "IN"
    zone_copy: Optional[Zone] = None
    downloaded: Optional[datetime] = None
    provider: Optional[str] = None

    def __post_init__(self) -> None:
        self.zone_name = normalize_name(self.zone_name)
