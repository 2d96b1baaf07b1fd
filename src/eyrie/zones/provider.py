"""Abstract interface implemented by every zone provider.

A provider owns a collection of primary and secondary zones. The server pulls
zones from it when (re)building its catalog, and the zone transfer driver
pushes transfer outcomes back into it through zone_updated/zone_checked.
"""

from __future__ import annotations

import logging
from typing import ClassVar, List, Optional, Sequence

from eyrie.zones.models import SecondaryZone, Zone

logger = logging.getLogger(__name__)


class BaseZoneProvider:
    """Brief: Base class for zone providers.

    Inputs:
      - name: Optional instance name used in logs and as the provenance tag
        of the SecondaryZone handles this provider produces. Defaults to the
        first alias or the class name.
      - **config: Provider specific configuration.

    Outputs:
      - Provider instance. Subclasses implement the five contract methods.
    """

    aliases: ClassVar[Sequence[str]] = ()

    def __init__(self, name: Optional[str] = None, **config: object) -> None:
        if name is not None:
            self.name = str(name)
        elif self.aliases:
            self.name = str(self.aliases[0])
        else:
            self.name = self.__class__.__name__
        self.config = config
        logger.debug("loading zone provider %s (%s)", self.name, type(self).__name__)

    def get_primary_zones(self) -> Optional[List[Zone]]:
        """Return every primary zone, or None when the provider cannot be read."""
        raise NotImplementedError

    def get_secondary_zones(self) -> Optional[List[SecondaryZone]]:
        """Return a handle per secondary zone, or None when the provider cannot be read."""
        raise NotImplementedError

    def zone_updated(self, zone: SecondaryZone) -> None:
        """Persist a freshly transferred zone copy (records replaced wholesale)."""
        raise NotImplementedError

    def zone_checked(self, zone: SecondaryZone) -> None:
        """Persist that the upstream copy was validated as unchanged."""
        raise NotImplementedError

    def unload(self) -> None:
        """Release resources; the default holds nothing."""
        return None

    def owns(self, zone: object) -> bool:
        """Brief: Check that *zone* is a handle produced by this provider instance.

        Inputs:
          - zone: Object passed to a transfer callback.

        Outputs:
          - bool: True for a SecondaryZone tagged with this provider's name.
        """
        return isinstance(zone, SecondaryZone) and zone.provider == self.name
