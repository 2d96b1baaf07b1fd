"""Relational database zone provider."""

from .provider import DBZoneProvider
from .store import StoredZone, ZoneStore

__all__ = ["DBZoneProvider", "StoredZone", "ZoneStore"]
