from __future__ import annotations

import logging
import threading
from typing import Dict, Iterable, List, Optional

from eyrie.zones.models import Zone, in_zone, normalize_name
from eyrie.zones.provider import BaseZoneProvider

logger = logging.getLogger(__name__)


class ZoneCatalog:
    """Brief: Thread-safe index of the zones this server answers for.

    Inputs:
      - zones: Optional initial zones.

    Outputs:
      - ZoneCatalog whose find() returns the zone with the longest apex
        covering a name.

    Example:
        >>> from eyrie.zones.models import Zone
        >>> catalog = ZoneCatalog([Zone("example.com"), Zone("sub.example.com")])
        >>> catalog.find("www.sub.example.com").name
        'sub.example.com.'
    """

    def __init__(self, zones: Optional[Iterable[Zone]] = None) -> None:
        self._lock = threading.RLock()
        self._zones: Dict[str, Zone] = {}
        if zones:
            self.replace(zones)

    def replace(self, zones: Iterable[Zone]) -> None:
        """Swap the whole index; later zones with the same apex win.

        Record parsing happens here, once per zone, so queries only read the
        prebuilt owner index.
        """
        index: Dict[str, Zone] = {}
        for zone in zones:
            if zone.name in index:
                logger.warning("Zone %s provided more than once; using the last copy", zone.name)
            index[zone.name] = zone
        for zone in index.values():
            zone.owner_index()
        with self._lock:
            self._zones = index

    def load(self, providers: Iterable[BaseZoneProvider]) -> int:
        """
        Brief: Rebuild the catalog from primary zones and secondary zone copies.

        Inputs:
          - providers: Zone providers to pull from. A provider returning None
            (read failure) contributes nothing for this cycle.

        Outputs:
          - int: number of zones in the rebuilt catalog.
        """
        zones: List[Zone] = []
        for provider in providers:
            primaries = provider.get_primary_zones()
            if primaries is None:
                logger.warning("Zone provider %s returned no primary zones", provider.name)
            else:
                zones.extend(primaries)

            secondaries = provider.get_secondary_zones()
            if secondaries is None:
                logger.warning("Zone provider %s returned no secondary zones", provider.name)
                continue
            for handle in secondaries:
                if handle.zone_copy is not None:
                    zones.append(handle.zone_copy)
                else:
                    logger.debug("Secondary zone %s has not been transferred yet", handle.zone_name)

        self.replace(zones)
        count = len(self)
        logger.info("Zone catalog loaded %d zones", count)
        return count

    def find(self, name: object) -> Optional[Zone]:
        qname = normalize_name(name)
        with self._lock:
            zones = self._zones
        best: Optional[Zone] = None
        for apex, zone in zones.items():
            if in_zone(qname, apex) and (best is None or len(apex) > len(best.name)):
                best = zone
        return best

    def names(self) -> List[str]:
        with self._lock:
            return sorted(self._zones)

    def __len__(self) -> int:
        with self._lock:
            return len(self._zones)
