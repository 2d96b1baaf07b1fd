"""Relational zone store reached through any DB-API 2.0 driver.

Inputs:
  - driver: Importable DB-API module name (for example "sqlite3", "psycopg"
    or "pymysql"). The module is imported lazily so Eyrie does not require a
    given driver unless it is configured.
  - url: First positional argument passed to ``driver.connect`` (a file path
    for sqlite3, a conninfo string for psycopg). May be None when everything
    is supplied through connect_kwargs.
  - username/password: Passed through as ``user=``/``password=`` when set.

Outputs:
  - ZoneStore: loads zones as StoredZone rows and replaces zone contents
    inside one transaction.

Notes:
  - Two tables are used. ``zones`` holds one row per zone with its SOA values;
    ``records`` holds the non-SOA records of every zone, ordered by ``seq``.
  - ``records.rdata`` keeps transferred rdata in wire form (base64 text) so
    any type, including ones without a mnemonic, reads back unchanged.
    Rows with a NULL rdata are parsed from ``content``.
  - Schema creation uses portable DDL with no auto-increment columns; new zone
    identifiers are allocated as MAX(zone_id) + 1 inside the insert
    transaction.
"""

from __future__ import annotations

import base64
import binascii
import importlib
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import ModuleType
from typing import Any, Dict, Iterator, List, Optional, Tuple

from eyrie.errors import StoreError, ZoneDataError, ZoneStoreConfigError
from eyrie.zones.models import PRIMARY, SECONDARY, Record, Zone

logger = logging.getLogger(__name__)

_ZONE_COLUMNS = (
    "zone_id, name, dclass, zone_type, remote_server, soa_mname, soa_rname, "
    "serial, refresh, retry, expire, minimum, ttl, downloaded"
)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS zones (
        zone_id       INTEGER PRIMARY KEY,
        name          VARCHAR(255) NOT NULL,
        dclass        VARCHAR(8) NOT NULL DEFAULT 'IN',
        zone_type     VARCHAR(16) NOT NULL,
        remote_server VARCHAR(255),
        soa_mname     VARCHAR(255),
        soa_rname     VARCHAR(255),
        serial        BIGINT NOT NULL DEFAULT 0,
        refresh       INTEGER NOT NULL DEFAULT 3600,
        retry         INTEGER NOT NULL DEFAULT 600,
        expire        INTEGER NOT NULL DEFAULT 86400,
        minimum       INTEGER NOT NULL DEFAULT 300,
        ttl           INTEGER NOT NULL DEFAULT 3600,
        downloaded    DOUBLE PRECISION
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS records (
        zone_id  INTEGER NOT NULL,
        seq      INTEGER NOT NULL,
        name     VARCHAR(255) NOT NULL,
        rtype    VARCHAR(16) NOT NULL,
        dclass   VARCHAR(8) NOT NULL DEFAULT 'IN',
        ttl      INTEGER NOT NULL,
        content  TEXT NOT NULL,
        rdata    TEXT,
        PRIMARY KEY (zone_id, seq)
    )
    """,
)


def _import_driver(name: str) -> ModuleType:
    """Import and return a DB-API module, raising ZoneStoreConfigError when absent."""

    try:
        return importlib.import_module(name)
    except ImportError as exc:
        raise ZoneStoreConfigError(
            f"Unable to load database driver {name!r}: {exc}"
        ) from exc


def _to_epoch(value: Optional[datetime]) -> Optional[float]:
    return value.timestamp() if value is not None else None


def _from_epoch(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(float(value), tz=timezone.utc)


def _encode_rdata(value: Optional[bytes]) -> Optional[str]:
    return base64.b64encode(value).decode("ascii") if value is not None else None


def _decode_rdata(value: Any) -> Optional[bytes]:
    if value is None:
        return None
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ZoneDataError(f"stored rdata {value!r} is not valid base64") from exc


@dataclass
class StoredZone:
    """Brief: One ``zones`` row plus its ``records`` rows, not yet validated.

    Inputs (constructor fields):
      - zone_id, name, dclass, zone_type, remote_server: zone identity.
      - soa: Tuple (mname, rname, serial, refresh, retry, expire, minimum, ttl).
      - downloaded: Last transfer/check time, or None.
      - records: Raw record rows (name, rtype, dclass, ttl, content, rdata)
        where rdata is base64 wire form or None.

    Outputs:
      - StoredZone; call to_zone() to build a validated Zone.
    """

    zone_id: int
    name: str
    dclass: str
    zone_type: str
    remote_server: Optional[str]
    soa: Tuple[Any, ...]
    downloaded: Optional[datetime] = None
    records: List[Tuple[Any, ...]] = field(default_factory=list)

    @property
    def has_records(self) -> bool:
        return bool(self.records)

    def to_zone(self) -> Zone:
        """Materialize a Zone, raising ZoneDataError when stored data is malformed."""

        mname, rname, serial, refresh, retry, expire, minimum, ttl = self.soa
        records = [
            Record(
                name=r[0],
                rtype=r[1],
                rclass=r[2],
                ttl=r[3],
                content=r[4],
                rdata=_decode_rdata(r[5]),
            )
            for r in self.records
        ]
        return Zone(
            name=self.name,
            records=records,
            zone_id=self.zone_id,
            zone_type=self.zone_type,
            dclass=self.dclass,
            remote_server=self.remote_server,
            downloaded=self.downloaded,
            soa_mname=mname,
            soa_rname=rname,
            serial=int(serial),
            refresh=int(refresh),
            retry=int(retry),
            expire=int(expire),
            minimum=int(minimum),
            ttl=int(ttl),
        )


class ZoneStore:
    """Brief: Persist zones and records in a relational database.

    Inputs (constructor):
      - driver: DB-API module name.
      - url: Positional connect argument (optional).
      - username/password: Optional credentials.
      - connect_kwargs: Extra keyword arguments for ``driver.connect``.
      - create_schema: When True (default), create the tables on first
        connection if they do not exist.

    Outputs:
      - ZoneStore instance. The connection is opened lazily on first use and
        shared by all operations under an RLock.

    Example:
        >>> store = ZoneStore("sqlite3", ":memory:")
        >>> store.load_primary_zones()
        []
    """

    def __init__(
        self,
        driver: str,
        url: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        connect_kwargs: Optional[Dict[str, Any]] = None,
        create_schema: bool = True,
    ) -> None:
        self._driver_name = str(driver)
        self._driver = _import_driver(self._driver_name)
        self._url = url
        self._username = username
        self._password = password
        self._connect_kwargs = dict(connect_kwargs or {})
        self._create_schema = bool(create_schema)

        paramstyle = getattr(self._driver, "paramstyle", "qmark")
        if paramstyle not in ("qmark", "format", "pyformat"):
            raise ZoneStoreConfigError(
                f"Driver {self._driver_name!r} uses unsupported paramstyle {paramstyle!r}"
            )
        self._placeholder = "?" if paramstyle == "qmark" else "%s"

        driver_error = getattr(self._driver, "Error", None)
        self._db_errors: Tuple[type, ...] = (
            (driver_error, OSError) if isinstance(driver_error, type) else (Exception,)
        )

        self._lock = threading.RLock()
        self._conn: Any = None

    # ------------------------------------------------------------------
    # Connection and transaction helpers
    # ------------------------------------------------------------------
    def _sql(self, text: str) -> str:
        if self._placeholder == "?":
            return text
        return text.replace("?", self._placeholder)

    def _connection(self) -> Any:
        """Return the shared connection, opening it (and the schema) on first use."""

        if self._conn is not None:
            return self._conn

        kwargs: Dict[str, Any] = dict(self._connect_kwargs)
        if self._username is not None:
            kwargs["user"] = self._username
        if self._password is not None:
            kwargs["password"] = self._password
        if self._driver_name == "sqlite3":
            kwargs.setdefault("check_same_thread", False)

        args = (self._url,) if self._url is not None else ()
        try:
            conn = self._driver.connect(*args, **kwargs)
        except self._db_errors as exc:
            raise StoreError(
                f"Unable to connect to zone store via {self._driver_name}: {exc}"
            ) from exc

        if self._create_schema:
            try:
                cur = conn.cursor()
                for statement in _SCHEMA:
                    cur.execute(statement)
                cur.close()
                conn.commit()
            except self._db_errors as exc:
                conn.close()
                raise StoreError(f"Unable to create zone store schema: {exc}") from exc

        self._conn = conn
        return conn

    @staticmethod
    def _rollback(conn: Any) -> None:
        try:
            conn.rollback()
        except Exception:  # pragma: no cover - rollback on a broken connection
            logger.exception("Rollback failed")

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[Any]:
        """Brief: Run a block inside one transaction, committing on success.

        Inputs:
          - operation: Short label used in error messages.

        Outputs:
          - Yields a cursor. Driver errors roll back and surface as StoreError;
            any other exception rolls back and propagates unchanged.
        """

        with self._lock:
            conn = self._connection()
            cur = conn.cursor()
            try:
                yield cur
                conn.commit()
            except self._db_errors as exc:
                self._rollback(conn)
                raise StoreError(f"{operation} failed: {exc}") from exc
            except BaseException:
                self._rollback(conn)
                raise
            finally:
                cur.close()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def load_records(self, zone_id: int, cur: Any = None) -> List[Tuple[Any, ...]]:
        """Return the ordered record rows (name, rtype, dclass, ttl, content, rdata) of a zone."""

        sql = self._sql(
            "SELECT name, rtype, dclass, ttl, content, rdata FROM records "
            "WHERE zone_id = ? ORDER BY seq"
        )
        if cur is not None:
            cur.execute(sql, (zone_id,))
            return [tuple(row) for row in cur.fetchall()]
        with self._transaction(f"load records of zone {zone_id}") as own:
            own.execute(sql, (zone_id,))
            return [tuple(row) for row in own.fetchall()]

    def _row_to_stored(self, row: Tuple[Any, ...]) -> StoredZone:
        return StoredZone(
            zone_id=int(row[0]),
            name=row[1],
            dclass=row[2],
            zone_type=row[3],
            remote_server=row[4],
            soa=tuple(row[5:13]),
            downloaded=_from_epoch(row[13]),
        )

    def _load_zones(self, zone_type: str) -> List[StoredZone]:
        with self._transaction(f"load {zone_type} zones") as cur:
            cur.execute(
                self._sql(
                    f"SELECT {_ZONE_COLUMNS} FROM zones WHERE zone_type = ? ORDER BY zone_id"
                ),
                (zone_type,),
            )
            zones = [self._row_to_stored(row) for row in cur.fetchall()]
            for stored in zones:
                stored.records = self.load_records(stored.zone_id, cur)
        return zones

    def load_primary_zones(self) -> List[StoredZone]:
        """Load every primary zone with its records; raises StoreError."""
        return self._load_zones(PRIMARY)

    def load_secondary_zones(self) -> List[StoredZone]:
        """Load every secondary zone with its records; raises StoreError."""
        return self._load_zones(SECONDARY)

    def get_zone(self, zone_id: int) -> Optional[StoredZone]:
        """Return the stored zone with *zone_id*, or None when it does not exist."""

        with self._transaction(f"get zone {zone_id}") as cur:
            row = self._select_zone(cur, zone_id)
            if row is None:
                return None
            stored = self._row_to_stored(row)
            stored.records = self.load_records(zone_id, cur)
            return stored

    def _select_zone(self, cur: Any, zone_id: int) -> Optional[Tuple[Any, ...]]:
        cur.execute(
            self._sql(f"SELECT {_ZONE_COLUMNS} FROM zones WHERE zone_id = ?"),
            (zone_id,),
        )
        row = cur.fetchone()
        return tuple(row) if row is not None else None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def _update_metadata(
        self,
        cur: Any,
        zone_id: int,
        zone: Optional[Zone],
        downloaded: Optional[datetime],
    ) -> None:
        if zone is None:
            cur.execute(
                self._sql("UPDATE zones SET downloaded = ? WHERE zone_id = ?"),
                (_to_epoch(downloaded), zone_id),
            )
            return
        cur.execute(
            self._sql(
                "UPDATE zones SET soa_mname = ?, soa_rname = ?, serial = ?, "
                "refresh = ?, retry = ?, expire = ?, minimum = ?, ttl = ?, "
                "downloaded = ? WHERE zone_id = ?"
            ),
            (
                zone.soa_mname,
                zone.soa_rname,
                zone.serial,
                zone.refresh,
                zone.retry,
                zone.expire,
                zone.minimum,
                zone.ttl,
                _to_epoch(downloaded),
                zone_id,
            ),
        )

    def _insert_record(self, cur: Any, zone_id: int, seq: int, record: Record) -> None:
        cur.execute(
            self._sql(
                "INSERT INTO records (zone_id, seq, name, rtype, dclass, ttl, content, rdata) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?)"
            ),
            (
                zone_id,
                seq,
                record.name,
                record.rtype,
                record.rclass,
                record.ttl,
                record.content,
                _encode_rdata(record.rdata),
            ),
        )

    def replace_zone_contents(
        self,
        zone_id: int,
        zone: Zone,
        downloaded: Optional[datetime] = None,
    ) -> bool:
        """Brief: Atomically replace the metadata and every record of a zone.

        Inputs:
          - zone_id: Identifier of the stored zone to replace.
          - zone: New content; its SOA values and records are written.
          - downloaded: Timestamp stored as the last successful download.

        Outputs:
          - bool: True when the zone was replaced, False when no zone with
            *zone_id* exists (nothing is written).

        Raises:
          - StoreError when any statement fails; the transaction is rolled
            back so the previous records stay visible.
        """

        with self._transaction(f"replace zone {zone_id}") as cur:
            if self._select_zone(cur, zone_id) is None:
                return False
            self._update_metadata(cur, zone_id, zone, downloaded)
            cur.execute(self._sql("DELETE FROM records WHERE zone_id = ?"), (zone_id,))
            for seq, record in enumerate(zone.records):
                self._insert_record(cur, zone_id, seq, record)
        return True

    def update_zone_metadata(
        self,
        zone_id: int,
        zone: Optional[Zone],
        downloaded: Optional[datetime] = None,
    ) -> bool:
        """Brief: Persist SOA values and the download time without touching records.

        Inputs:
          - zone_id: Identifier of the stored zone.
          - zone: Zone whose SOA values are written, or None to update only
            the downloaded timestamp.
          - downloaded: New last-checked timestamp.

        Outputs:
          - bool: False when the zone does not exist.
        """

        with self._transaction(f"update zone {zone_id}") as cur:
            if self._select_zone(cur, zone_id) is None:
                return False
            self._update_metadata(cur, zone_id, zone, downloaded)
        return True

    def add_zone(self, zone: Zone) -> int:
        """Brief: Insert a new zone with its records and return its identifier.

        Inputs:
          - zone: Zone to store; zone.zone_id is used when set, otherwise the
            next free identifier is allocated.

        Outputs:
          - int: The stored zone identifier.
        """

        with self._transaction(f"add zone {zone.name}") as cur:
            zone_id = zone.zone_id
            if zone_id is None:
                cur.execute("SELECT MAX(zone_id) FROM zones")
                row = cur.fetchone()
                zone_id = int(row[0] or 0) + 1 if row is not None else 1
            cur.execute(
                self._sql(
                    f"INSERT INTO zones ({_ZONE_COLUMNS}) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)"
                ),
                (
                    zone_id,
                    zone.name,
                    zone.dclass,
                    zone.zone_type,
                    zone.remote_server,
                    zone.soa_mname,
                    zone.soa_rname,
                    zone.serial,
                    zone.refresh,
                    zone.retry,
                    zone.expire,
                    zone.minimum,
                    zone.ttl,
                    _to_epoch(zone.downloaded),
                ),
            )
            for seq, record in enumerate(zone.records):
                self._insert_record(cur, zone_id, seq, record)
        logger.debug("Stored zone %s with id %d", zone.name, zone_id)
        return zone_id

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                try:
                    self._conn.close()
                finally:
                    self._conn = None
