"""Secondary zone replication: SOA serial checks and full zone transfers.

Inputs:
  - Zone providers whose secondary zones should be kept in sync with their
    primary servers.

Outputs:
  - ZoneTransferDriver: checks every secondary zone and reports the outcome
    back to the owning provider through zone_checked (serial unchanged) or
    zone_updated (new content transferred).
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from dnslib import QTYPE, RCODE, DNSRecord
from dnslib.dns import DNSError
from pydantic import BaseModel, ConfigDict, Field

from eyrie.errors import ZoneDataError, ZoneTransferError
from eyrie.transports.axfr import AXFRError, axfr_transfer
from eyrie.transports.udp import UDPError, udp_query
from eyrie.zones.models import SECONDARY, SecondaryZone, Zone, normalize_name
from eyrie.zones.provider import BaseZoneProvider

logger = logging.getLogger(__name__)

FRESH = "fresh"
CHECKED = "checked"
UPDATED = "updated"
FAILED = "failed"


class ZoneTransferConfig(BaseModel):
    """Brief: Typed configuration for the zone transfer driver.

    Inputs:
      - enabled: Run the periodic transfer loop.
      - interval: Seconds between refresh cycles.
      - timeout: Seconds allowed for SOA checks and per-read AXFR timeouts.
      - honor_refresh: Skip zones whose copy is younger than their SOA refresh.

    Outputs:
      - ZoneTransferConfig instance with normalized field types.
    """

    model_config = ConfigDict(extra="allow")

    enabled: bool = True
    interval: float = Field(default=300.0, gt=0)
    timeout: float = Field(default=5.0, gt=0)
    honor_refresh: bool = True


def split_server(text: str, default_port: int = 53) -> Tuple[str, int]:
    """Brief: Split "host", "host:port", "[v6]:port" or a bare IPv6 literal.

    Inputs:
      - text: Server address as stored with the zone.
      - default_port: Port used when none is given.

    Outputs:
      - (host, port) tuple; host is "" when text is empty.

    Example:
        >>> split_server("192.0.2.1:5353")
        ('192.0.2.1', 5353)
        >>> split_server("[2001:db8::1]:53")
        ('2001:db8::1', 53)
        >>> split_server("2001:db8::1")
        ('2001:db8::1', 53)
    """
    text = (text or "").strip()
    if text.startswith("["):
        host, _, rest = text[1:].partition("]")
        port = rest.lstrip(":")
        return host, int(port) if port else default_port
    if text.count(":") == 1:
        host, port = text.split(":")
        return host, int(port)
    return text, default_port


class ZoneTransferDriver:
    """Brief: Keep secondary zones in sync with their primary servers.

    Inputs (constructor):
      - providers: Zone providers to replicate for.
      - timeout: Seconds for SOA queries and AXFR reads.
      - honor_refresh: When True, zones whose copy was downloaded less than
        their SOA refresh interval ago are left alone.
      - on_refresh: Optional callback run after each refresh_all() cycle
        (for example to reload the zone catalog).

    Outputs:
      - Driver instance; call refresh_all() directly or start() a loop.
    """

    def __init__(
        self,
        providers: Iterable[BaseZoneProvider],
        *,
        timeout: float = 5.0,
        honor_refresh: bool = True,
        on_refresh: Optional[Callable[[], object]] = None,
    ) -> None:
        self.providers: List[BaseZoneProvider] = list(providers)
        self.timeout = float(timeout)
        self.honor_refresh = bool(honor_refresh)
        self.on_refresh = on_refresh
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    def query_serial(self, host: str, port: int, zone_name: str) -> int:
        """Brief: Ask the primary for the zone SOA and return its serial.

        Inputs:
          - host, port: Primary server.
          - zone_name: Zone apex.

        Outputs:
          - int: SOA serial.

        Raises:
          - ZoneTransferError on transport failure, a non-NOERROR rcode or a
            reply without the apex SOA.
        """
        apex = normalize_name(zone_name)
        query = DNSRecord.question(apex, "SOA")
        try:
            wire = udp_query(host, port, query.pack(), timeout_ms=int(self.timeout * 1000))
            reply = DNSRecord.parse(wire)
        except (UDPError, DNSError) as exc:
            raise ZoneTransferError(f"SOA query for {apex} to {host}:{port} failed: {exc}") from exc

        if reply.header.rcode != RCODE.NOERROR:
            raise ZoneTransferError(
                "SOA query for %s to %s:%s returned %s"
                % (apex, host, port, RCODE.get(reply.header.rcode, reply.header.rcode))
            )
        for rr in reply.rr:
            if rr.rtype == QTYPE.SOA and normalize_name(rr.rname) == apex:
                return int(rr.rdata.times[0])
        raise ZoneTransferError(f"{host}:{port} returned no SOA for {apex}")

    def _is_fresh(self, zone: SecondaryZone, now: datetime) -> bool:
        if not self.honor_refresh or zone.zone_copy is None or zone.downloaded is None:
            return False
        return now - zone.downloaded < timedelta(seconds=zone.zone_copy.refresh)

    def check_zone(self, provider: BaseZoneProvider, zone: SecondaryZone) -> str:
        """
        Brief: Check one secondary zone and transfer it when it changed.

        Inputs:
          - provider: Provider that produced *zone*.
          - zone: Secondary zone handle.

        Outputs:
          - str: "fresh" (skipped), "checked" (serial unchanged, provider
            notified through zone_checked), "updated" (transferred, provider
            notified through zone_updated) or "failed" (logged).
        """
        now = self._now()
        if self._is_fresh(zone, now):
            logger.debug("Secondary zone %s is fresh, skipping check", zone.zone_name)
            return FRESH

        try:
            host, port = split_server(zone.remote_server)
        except ValueError:
            host, port = "", 0
        if not host:
            logger.warning("Secondary zone %s has no usable primary server %r", zone.zone_name, zone.remote_server)
            return FAILED

        try:
            serial = self.query_serial(host, port, zone.zone_name)
        except ZoneTransferError as exc:
            logger.warning("Unable to check secondary zone %s: %s", zone.zone_name, exc)
            return FAILED

        if zone.zone_copy is not None and zone.zone_copy.serial == serial:
            logger.debug("Secondary zone %s unchanged at serial %d", zone.zone_name, serial)
            zone.downloaded = now
            provider.zone_checked(zone)
            return CHECKED

        timeout_ms = int(self.timeout * 1000)
        try:
            rrs = axfr_transfer(
                host,
                port,
                zone.zone_name,
                connect_timeout_ms=timeout_ms,
                read_timeout_ms=timeout_ms,
            )
            copy = Zone.from_rrs(
                zone.zone_name,
                rrs,
                zone_id=zone.zone_id,
                zone_type=SECONDARY,
                dclass=zone.dclass,
                remote_server=zone.remote_server,
                downloaded=now,
            )
        except AXFRError as exc:
            logger.warning("Zone transfer of %s from %s:%d failed: %s", zone.zone_name, host, port, exc)
            return FAILED
        except ZoneDataError as exc:
            logger.error("Malformed zone data received for %s from %s:%d: %s", zone.zone_name, host, port, exc)
            return FAILED

        zone.zone_copy = copy
        zone.downloaded = now
        logger.info(
            "Transferred secondary zone %s serial %d (%d records) from %s:%d",
            zone.zone_name,
            copy.serial,
            len(copy.records),
            host,
            port,
        )
        provider.zone_updated(zone)
        return UPDATED

    def refresh_all(self) -> Dict[str, int]:
        """Check every secondary zone of every provider and return outcome counts."""
        counts: Dict[str, int] = {FRESH: 0, CHECKED: 0, UPDATED: 0, FAILED: 0}
        for provider in self.providers:
            zones = provider.get_secondary_zones()
            if zones is None:
                logger.warning("Zone provider %s returned no secondary zones", provider.name)
                continue
            for zone in zones:
                counts[self.check_zone(provider, zone)] += 1

        logger.debug("Zone transfer cycle finished: %s", counts)
        if self.on_refresh is not None:
            self.on_refresh()
        return counts

    def _loop(self, interval: float) -> None:
        while not self._stop.is_set():
            try:
                self.refresh_all()
            except Exception:  # pragma: no cover - keep the loop alive
                logger.exception("Zone transfer cycle failed")
            self._stop.wait(interval)

    def start(self, interval: float) -> threading.Thread:
        """Run refresh_all() every *interval* seconds on a daemon thread."""
        if self._thread is not None and self._thread.is_alive():
            return self._thread
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._loop,
            args=(float(interval),),
            name="ZoneTransferDriver",
            daemon=True,
        )
        self._thread.start()
        return self._thread

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
