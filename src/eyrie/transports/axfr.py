from __future__ import annotations

import socket
from typing import List, Optional, Tuple

from dnslib import QTYPE, RCODE, RR, DNSRecord

from .tcp import TCPError, frame, read_frame


class AXFRError(Exception):
    """Brief: DNS AXFR (full zone transfer) error.

    Inputs:
      - message: Short description of the failure.

    Outputs:
      - Exception instance indicating an AXFR-specific failure.
    """

    pass


def axfr_transfer(
    host: str,
    port: int,
    zone: str,
    *,
    connect_timeout_ms: int = 2000,
    read_timeout_ms: int = 5000,
) -> List[RR]:
    """Brief: Perform a blocking AXFR for *zone* over TCP and return all RRs.

    Inputs:
      - host: Primary server host/IP.
      - port: Primary server TCP port (usually 53).
      - zone: Zone apex to transfer (with or without trailing dot).
      - connect_timeout_ms: TCP connect timeout in milliseconds.
      - read_timeout_ms: Per-read timeout in milliseconds.

    Outputs:
      - list[RR]: All RRs returned by the transfer, including the opening and
        closing SOA records.

    Raises:
      - AXFRError on connect/read failures, a non-NOERROR rcode in any
        message, or a stream that ends without the closing SOA.
    """

    zone_qname = (zone.rstrip(".") or ".") + "."
    query = DNSRecord.question(zone_qname, "AXFR")

    try:
        sock = socket.create_connection(
            (host, int(port)), timeout=connect_timeout_ms / 1000.0
        )
    except OSError as exc:
        raise AXFRError(f"AXFR connect to {host}:{port} failed: {exc}") from exc

    rrs: List[RR] = []
    opening_soa: Optional[Tuple[str, str]] = None
    messages = 0

    try:
        sock.settimeout(read_timeout_ms / 1000.0)
        sock.sendall(frame(query.pack()))

        while True:
            body = read_frame(sock)
            if not body:
                break
            messages += 1

            try:
                resp = DNSRecord.parse(body)
            except Exception as exc:
                raise AXFRError(f"failed to parse AXFR response: {exc}") from exc

            if resp.header.rcode != RCODE.NOERROR:
                raise AXFRError(
                    "AXFR for %r refused by %s:%s with %s"
                    % (
                        zone_qname,
                        host,
                        port,
                        RCODE.get(resp.header.rcode, resp.header.rcode),
                    )
                )

            for rr in resp.rr:
                if rr.rtype == QTYPE.SOA:
                    key = (str(rr.rname).lower(), str(rr.rdata))
                    if opening_soa is None:
                        opening_soa = key
                    elif opening_soa == key:
                        rrs.append(rr)
                        return rrs
                elif opening_soa is None:
                    raise AXFRError("AXFR stream did not start with an SOA record")
                rrs.append(rr)
    except (OSError, TCPError) as exc:
        raise AXFRError(f"AXFR I/O error from {host}:{port}: {exc}") from exc
    finally:
        sock.close()

    if not messages:
        raise AXFRError(f"AXFR from {host}:{port} for {zone_qname!r} returned no data")

    raise AXFRError(
        f"AXFR from {host}:{port} for {zone_qname!r} did not terminate with a matching SOA",
    )
