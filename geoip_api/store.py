"""
Location store: opened MaxMind database generations and the shared current reference
"""

import time
import logging
import threading
from typing import Any, Callable, Dict, List, Optional

import maxminddb
from pydantic import BaseModel

from .services.prometheus_metrics import prometheus_metrics

logger = logging.getLogger("geoip.store")


class StoreOpenError(RuntimeError):
    """Raised when a database file cannot be opened"""


class StoreNotReadyError(RuntimeError):
    """Raised when a lookup is attempted before any generation was published"""


class Location(BaseModel):
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    time_zone: Optional[str] = None


class Postal(BaseModel):
    code: Optional[str] = None


class Continent(BaseModel):
    code: Optional[str] = None
    names: Dict[str, str] = {}


class Country(BaseModel):
    iso_code: Optional[str] = None
    names: Dict[str, str] = {}


class Subdivision(BaseModel):
    iso_code: Optional[str] = None
    names: Dict[str, str] = {}


class City(BaseModel):
    names: Dict[str, str] = {}


class LocationRecord(BaseModel):
    """Structured view of one database record; every part is optional"""
    location: Optional[Location] = None
    postal: Optional[Postal] = None
    continent: Optional[Continent] = None
    country: Optional[Country] = None
    subdivisions: List[Subdivision] = []
    city: Optional[City] = None

    @classmethod
    def from_raw(cls, raw: Dict[str, Any]) -> "LocationRecord":
        """Build from the dict returned by maxminddb; unknown keys are ignored"""
        return cls.model_validate(raw)


class LocationStore:
    """One opened database generation. Never mutated after construction."""

    def __init__(self, reader, path: str, generation: int = 1, opened_at: Optional[float] = None):
        self._reader = reader
        self.path = path
        self.generation = generation
        self.opened_at = opened_at if opened_at is not None else time.time()

    @classmethod
    def open(cls, path: str, generation: int = 1) -> "LocationStore":
        """Open the database at path"""
        try:
            reader = maxminddb.open_database(path)
        except (OSError, ValueError, maxminddb.InvalidDatabaseError) as e:
            raise StoreOpenError(f"Cannot open GeoIP database {path}: {e}") from e
        return cls(reader, path, generation=generation)

    def lookup(self, ip: str) -> Optional[LocationRecord]:
        """Return the record for ip, or None when not found or not a valid address"""
        try:
            raw = self._reader.get(ip)
        except ValueError as e:
            logger.debug(f"GeoIP lookup rejected {ip}: {e}")
            return None
        if not isinstance(raw, dict):
            return None
        return LocationRecord.from_raw(raw)

    def metadata(self) -> Dict[str, Any]:
        meta = self._reader.metadata()
        return {
            "database_type": meta.database_type,
            "build_epoch": meta.build_epoch,
            "node_count": meta.node_count,
        }


class StoreHolder:
    """
    Holds the current LocationStore generation.

    Readers call current() without locking and keep the generation they got.
    Writers replace the reference with one assignment; the lock only orders
    writers so generation numbers stay monotonic.
    """

    def __init__(self, store: Optional[LocationStore] = None,
                 opener: Callable[..., LocationStore] = LocationStore.open):
        self._current = store
        self._opener = opener
        self._write_lock = threading.Lock()

    @property
    def path(self) -> Optional[str]:
        store = self._current
        return store.path if store is not None else None

    def current(self) -> LocationStore:
        store = self._current
        if store is None:
            raise StoreNotReadyError("No GeoIP database generation has been published")
        return store

    def publish(self, store: LocationStore) -> None:
        self._current = store
        try:
            build_epoch = store.metadata().get("build_epoch", 0)
        except Exception:
            logger.warning("Could not read metadata for generation %s", store.generation)
            build_epoch = 0
        prometheus_metrics.set_generation(store.generation, store.opened_at, build_epoch)
        logger.info("GeoIP database generation published", extra={
            "component": "store",
            "generation": store.generation,
            "db_path": store.path,
        })

    def open(self, path: str) -> LocationStore:
        """Open path as the next generation and publish it"""
        with self._write_lock:
            previous = self._current
            generation = previous.generation + 1 if previous is not None else 1
            store = self._opener(path, generation=generation)
            self.publish(store)
            return store

    def reload(self) -> LocationStore:
        """Reopen the served path; the previous generation stays valid for its readers"""
        path = self.path
        if path is None:
            raise StoreNotReadyError("No GeoIP database path to reload")
        return self.open(path)
