"""Eyrie: authoritative and forwarding DNS server core."""

__version__ = "0.4.0"
