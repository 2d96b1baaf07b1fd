from __future__ import annotations

import socket
import time
from typing import Optional


class UDPError(Exception):
    """
    Brief: DNS-over-UDP transport error.

    Inputs:
    - message: description

    Outputs:
    - Exception instance
    """

    pass


def _family_for(host: str) -> socket.AddressFamily:
    """Return AF_INET6 for IPv6 literals and AF_INET otherwise."""
    return socket.AF_INET6 if ":" in host else socket.AF_INET


def udp_query(
    host: str,
    port: int,
    query: bytes,
    *,
    timeout_ms: int = 2000,
    source_ip: Optional[str] = None,
    max_size: int = 4096,
) -> bytes:
    """
    Brief: Send one DNS query over UDP and wait for the matching reply.

    Inputs:
    - host: upstream server host/IP
    - port: upstream UDP port
    - query: wire-format DNS query bytes (at least the 2-byte message ID)
    - timeout_ms: total time budget in milliseconds for the exchange
    - source_ip: optional source address to bind
    - max_size: receive buffer size in bytes

    Outputs:
    - bytes: wire-format DNS response whose message ID matches the query

    Datagrams carrying a different message ID are discarded until the budget
    is exhausted, which then raises UDPError.

    Example:
        >>> try:
        ...     udp_query('127.0.0.1', 53, b'\x00\x01', timeout_ms=10)
        ... except UDPError:
        ...     pass
    """
    if len(query) < 2:
        raise UDPError("UDP error: query shorter than a DNS message ID")

    deadline = time.monotonic() + timeout_ms / 1000.0
    try:
        with socket.socket(_family_for(host), socket.SOCK_DGRAM) as s:
            if source_ip:
                s.bind((source_ip, 0))
            s.sendto(query, (host, int(port)))
            while True:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise socket.timeout("timed out waiting for matching reply")
                s.settimeout(remaining)
                data, _ = s.recvfrom(max_size)
                if data[:2] == query[:2]:
                    return data
    except OSError as e:
        raise UDPError(f"UDP error from {host}:{port}: {e}") from e
