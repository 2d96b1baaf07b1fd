import socket
from typing import List


class TCPError(Exception):
    """
    A DNS-over-TCP transport error.

    Inputs:
      - message: Error description.
    Outputs:
      - Exception instance.

    Brief: Raised for connect/read/write or framing errors.
    """

    pass


def recv_exact(sock: socket.socket, n: int) -> bytes:
    """Brief: Receive exactly *n* bytes from a blocking TCP socket.

    Inputs:
      - sock: Connected TCP socket.
      - n: Number of bytes to read.

    Outputs:
      - bytes: Exactly *n* bytes unless EOF occurs early, in which case the
        shorter buffer is returned and callers detect the short read.
    """

    remaining = n
    chunks: List[bytes] = []
    while remaining > 0:
        chunk = sock.recv(remaining)
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def frame(message: bytes) -> bytes:
    """Prefix a DNS message with its 2-byte big-endian length (RFC 1035 4.2.2)."""
    return len(message).to_bytes(2, "big") + message


def read_frame(sock: socket.socket) -> bytes:
    """
    Read one length-prefixed DNS message from *sock*.

    Inputs:
      - sock: connected socket with a read timeout already applied
    Outputs:
      - bytes: message body, or b"" when the peer closed before a header
    Raises:
      - TCPError on a truncated header or body
    """
    hdr = recv_exact(sock, 2)
    if not hdr:
        return b""
    if len(hdr) != 2:
        raise TCPError("short read on length header")
    ln = int.from_bytes(hdr, "big")
    body = recv_exact(sock, ln)
    if len(body) != ln:
        raise TCPError("short read on body")
    return body


def tcp_query(
    host: str,
    port: int,
    query: bytes,
    *,
    connect_timeout_ms: int = 1000,
    read_timeout_ms: int = 1500,
) -> bytes:
    """
    Perform a single DNS-over-TCP query to host:port using length-prefixed
    framing (RFC 7766). One connection per query; nothing is pooled.

    Inputs:
      - host, port: upstream server
      - query: wire-format DNS query
      - connect_timeout_ms: connect timeout
      - read_timeout_ms: per-read timeout
    Outputs:
      - bytes: wire-format DNS response

    Example:
      >>> try:
      ...     tcp_query('127.0.0.1', 9, b'\x00\x01', connect_timeout_ms=10)
      ... except TCPError:
      ...     pass
    """
    try:
        sock = socket.create_connection(
            (host, int(port)), timeout=connect_timeout_ms / 1000.0
        )
    except OSError as e:
        raise TCPError(f"connect to {host}:{port} failed: {e}") from e

    try:
        sock.settimeout(read_timeout_ms / 1000.0)
        sock.sendall(frame(query))
        resp = read_frame(sock)
        if not resp:
            raise TCPError(f"{host}:{port} closed the connection without a reply")
        return resp
    except OSError as e:
        raise TCPError(f"TCP error from {host}:{port}: {e}") from e
    finally:
        sock.close()
