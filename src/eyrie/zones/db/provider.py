from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from eyrie.errors import StoreError, ZoneDataError, ZoneStoreConfigError
from eyrie.registry import aliases
from eyrie.zones.models import SecondaryZone, Zone
from eyrie.zones.provider import BaseZoneProvider

from .store import ZoneStore

logger = logging.getLogger(__name__)


class DBZoneProviderConfig(BaseModel):
    """Brief: Typed configuration model for DBZoneProvider.

    Inputs:
      - driver: DB-API module name ("sqlite3", "psycopg", "pymysql", ...).
      - url: Positional connect argument (database path or DSN).
      - username: Optional database user.
      - password: Optional database password.
      - connect_kwargs: Extra keyword arguments for the driver's connect().
      - create_schema: Create missing tables on first connection.

    Outputs:
      - DBZoneProviderConfig instance with normalized field types.
    """

    model_config = ConfigDict(extra="allow")

    driver: str
    url: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    connect_kwargs: Dict[str, Any] = Field(default_factory=dict)
    create_schema: bool = True


@aliases("db", "database", "sql")
class DBZoneProvider(BaseZoneProvider):
    """Zone provider backed by a relational database through ZoneStore."""

    def __init__(self, name: Optional[str] = None, **config: Any) -> None:
        """
        Brief: Validate configuration and prepare the store.

        Inputs:
          - name: Provider instance name.
          - **config: Fields of DBZoneProviderConfig.

        Outputs:
          - None

        Raises:
          - ZoneStoreConfigError when the configuration is invalid or the
            driver module cannot be imported.
        """
        super().__init__(name=name, **config)
        try:
            cfg = DBZoneProviderConfig(**config)
        except ValidationError as exc:
            raise ZoneStoreConfigError(
                f"Invalid configuration for DB zone provider {self.name}: {exc}"
            ) from exc

        try:
            self._store = ZoneStore(
                cfg.driver,
                cfg.url,
                username=cfg.username,
                password=cfg.password,
                connect_kwargs=cfg.connect_kwargs,
                create_schema=cfg.create_schema,
            )
        except ZoneStoreConfigError:
            logger.error("Unable to load database driver %s for zone provider %s", cfg.driver, self.name)
            raise

    @property
    def store(self) -> ZoneStore:
        return self._store

    def get_primary_zones(self) -> Optional[List[Zone]]:
        try:
            stored_zones = self._store.load_primary_zones()
        except StoreError as exc:
            logger.error("Error getting primary zones from DB zone provider %s: %s", self.name, exc)
            return None

        zones: List[Zone] = []
        for stored in stored_zones:
            try:
                zones.append(stored.to_zone())
            except ZoneDataError as exc:
                logger.error("Unable to parse zone %s in provider %s: %s", stored.name, self.name, exc)
        return zones

    def get_secondary_zones(self) -> Optional[List[SecondaryZone]]:
        """
        Brief: Build a SecondaryZone handle for each stored secondary zone.

        Inputs:
          - None

        Outputs:
          - list[SecondaryZone] or None when the store cannot be read. Zones
            with stored records carry a zone copy and their downloaded time so
            the transfer driver can skip an unnecessary transfer.
        """
        try:
            stored_zones = self._store.load_secondary_zones()
        except StoreError as exc:
            logger.error("Error getting secondary zones from DB zone provider %s: %s", self.name, exc)
            return None

        handles: List[SecondaryZone] = []
        for stored in stored_zones:
            handle = SecondaryZone(
                zone_id=stored.zone_id,
                zone_name=stored.name,
                remote_server=stored.remote_server or "",
                dclass=stored.dclass,
                provider=self.name,
            )
            if stored.has_records:
                try:
                    handle.zone_copy = stored.to_zone()
                except ZoneDataError as exc:
                    logger.error("Unable to parse zone %s in provider %s: %s", stored.name, self.name, exc)
                    continue
                handle.downloaded = stored.downloaded
            handles.append(handle)
        return handles

    def zone_updated(self, zone: SecondaryZone) -> None:
        if not self.owns(zone):
            logger.warning(
                "%r was not produced by zone provider %s, ignoring zone update", zone, self.name
            )
            return
        if zone.zone_copy is None:
            logger.warning("Secondary zone %s has no transferred content, ignoring zone update", zone.zone_name)
            return

        try:
            replaced = self._store.replace_zone_contents(
                zone.zone_id, zone.zone_copy, zone.downloaded
            )
        except StoreError as exc:
            logger.error("Unable to save changes in secondary zone %s: %s", zone.zone_name, exc)
            return

        if not replaced:
            logger.warning(
                "Unable to find secondary zone with zone_id %s in provider %s, ignoring zone update",
                zone.zone_id,
                self.name,
            )
            return
        logger.debug(
            "Changes in secondary zone %s saved (%d records)",
            zone.zone_name,
            len(zone.zone_copy.records),
        )

    def zone_checked(self, zone: SecondaryZone) -> None:
        if not self.owns(zone):
            logger.warning(
                "%r was not produced by zone provider %s, ignoring zone check", zone, self.name
            )
            return

        try:
            updated = self._store.update_zone_metadata(
                zone.zone_id, zone.zone_copy, zone.downloaded
            )
        except StoreError as exc:
            logger.error("Unable to save check of secondary zone %s: %s", zone.zone_name, exc)
            return

        if not updated:
            logger.warning(
                "Unable to find secondary zone with zone_id %s in provider %s, ignoring zone check",
                zone.zone_id,
                self.name,
            )
            return
        logger.debug("Check of secondary zone %s saved", zone.zone_name)

    def unload(self) -> None:
        self._store.close()
