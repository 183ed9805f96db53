"""
Scheduled GeoIP database refresh

Each cycle downloads the provider archive for every configured edition,
extracts the matching .mmdb entry next to the live file, checks it opens,
renames it into place and publishes a freshly opened generation.
"""

import os
import time
import shutil
import asyncio
import hashlib
import logging
import tarfile
import tempfile
import threading
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Any, Callable, Dict, List, Optional

import maxminddb
import requests

from . import config
from .services.prometheus_metrics import prometheus_metrics
from .store import StoreHolder

logger = logging.getLogger("geoip.refresh")

CHUNK_SIZE = 64 * 1024


class RefreshError(RuntimeError):
    """A refresh step failed for one edition; the live database is untouched"""


@dataclass(frozen=True)
class Edition:
    name: str
    target: str

    @property
    def member_suffix(self) -> str:
        return f"{self.name}.mmdb"


def editions_for(names: List[str], db_path: str) -> List[Edition]:
    """
    The edition whose file name matches the served file installs onto the
    served path (the first edition when none matches); others go beside it.
    """
    db_dir = os.path.dirname(os.path.abspath(db_path))
    served_name = os.path.basename(db_path)
    served = next((n for n in names if f"{n}.mmdb" == served_name), names[0] if names else None)
    editions = []
    for name in names:
        target = db_path if name == served else os.path.join(db_dir, f"{name}.mmdb")
        editions.append(Edition(name=name, target=target))
    return editions


def path_suffix_predicate(suffix: str) -> Callable[[str], bool]:
    """Match archive entry names whose trailing path components equal suffix"""
    wanted = PurePosixPath(suffix).parts

    def matches(name: str) -> bool:
        parts = PurePosixPath(name).parts
        return len(parts) >= len(wanted) and parts[-len(wanted):] == wanted

    return matches


def download_archive(session: requests.Session, url: str, dest: str, timeout: float) -> int:
    """Stream url into dest, reading exactly Content-Length bytes"""
    try:
        with session.get(url, stream=True, timeout=timeout) as resp:
            if not resp.ok:
                raise RefreshError(f"download failed with HTTP {resp.status_code}")
            try:
                expected = int(resp.headers["Content-Length"])
            except (KeyError, ValueError):
                raise RefreshError("download response has no usable Content-Length")
            if expected < 0:
                raise RefreshError(f"download response has invalid Content-Length {expected}")

            received = 0
            with open(dest, "wb") as f:
                for chunk in resp.iter_content(chunk_size=CHUNK_SIZE):
                    if not chunk:
                        continue
                    chunk = chunk[:expected - received]
                    f.write(chunk)
                    received += len(chunk)
                    if received >= expected:
                        break
    except requests.RequestException as e:
        # the request URL carries the license key, keep it out of the message
        raise RefreshError(f"download failed: {type(e).__name__}") from e

    if received < expected:
        raise RefreshError(f"download truncated: got {received} of {expected} bytes")
    return received


def fetch_checksum(session: requests.Session, url: str, timeout: float) -> str:
    try:
        resp = session.get(url, timeout=timeout)
    except requests.RequestException as e:
        raise RefreshError(f"checksum download failed: {type(e).__name__}") from e
    if not resp.ok:
        raise RefreshError(f"checksum download failed with HTTP {resp.status_code}")
    parts = resp.text.split()
    if not parts:
        raise RefreshError("checksum response is empty")
    return parts[0].lower()


def sha256_file(path: str) -> str:
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for block in iter(lambda: f.read(CHUNK_SIZE), b""):
            digest.update(block)
    return digest.hexdigest()


def extract_first_member(archive_path: str, predicate: Callable[[str], bool],
                         dest_dir: str) -> Optional[str]:
    """
    Extract the first regular file in a .tar.gz whose name satisfies predicate
    into dest_dir, keeping its basename. Returns the extracted path or None.
    """
    with tarfile.open(archive_path, "r:gz") as tar:
        for member in tar:
            if not member.isfile() or not predicate(member.name):
                continue
            dest = os.path.join(dest_dir, PurePosixPath(member.name).name)
            src = tar.extractfile(member)
            with src, open(dest, "wb") as out:
                shutil.copyfileobj(src, out)
            return dest
    return None


def verify_database(path: str) -> Dict[str, Any]:
    """Open path as a MaxMind database and return its metadata"""
    try:
        reader = maxminddb.open_database(path)
    except (OSError, ValueError, maxminddb.InvalidDatabaseError) as e:
        raise RefreshError(f"extracted file is not a valid database: {e}") from e
    try:
        meta = reader.metadata()
        return {"database_type": meta.database_type, "build_epoch": meta.build_epoch}
    finally:
        reader.close()


class DatabaseRefresher:
    """Downloads, verifies and installs database editions on a timer"""

    def __init__(self, holder: StoreHolder, editions: List[Edition], license_key: str,
                 url_template: str = config.DOWNLOAD_URL,
                 timeout: float = config.DOWNLOAD_TIMEOUT_SECONDS,
                 verify_checksum: bool = config.VERIFY_CHECKSUM,
                 session: Optional[requests.Session] = None):
        self.holder = holder
        self.editions = editions
        self.license_key = license_key
        self.url_template = url_template
        self.timeout = timeout
        self.verify_checksum = verify_checksum
        self.session = session or requests.Session()
        self.session.headers.setdefault("User-Agent", f"geoip-api/{config.API_VERSION}")
        self.last_cycle_at: Optional[float] = None
        self.last_outcomes: Dict[str, str] = {}
        self._cycle_lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return bool(self.license_key)

    def download_url(self, edition: Edition) -> str:
        return self.url_template.format(edition=edition.name, license=self.license_key)

    def run_cycle(self) -> Dict[str, str]:
        """One refresh attempt per edition. Never raises."""
        if not self.enabled:
            logger.debug("GeoIP license not configured, skipping update")
            return {}

        with self._cycle_lock:
            outcomes = {}
            for edition in self.editions:
                try:
                    self.refresh_edition(edition)
                    outcomes[edition.name] = "updated"
                except RefreshError as e:
                    logger.error(f"GeoIP update of {edition.name} failed: {e}", extra={
                        "component": "refresh", "edition": edition.name,
                    })
                    outcomes[edition.name] = "failed"
                except Exception:
                    logger.exception(f"GeoIP update of {edition.name} failed", extra={
                        "component": "refresh", "edition": edition.name,
                    })
                    outcomes[edition.name] = "failed"
                prometheus_metrics.increment_refresh(edition.name, outcomes[edition.name])

            self.last_cycle_at = time.time()
            self.last_outcomes = outcomes
            return outcomes

    def refresh_edition(self, edition: Edition) -> str:
        """Download, extract, verify and install one edition; returns the installed path"""
        target_dir = os.path.dirname(os.path.abspath(edition.target))
        archive_path = os.path.join(target_dir, f"{edition.name}.tar.gz")
        work_dir = tempfile.mkdtemp(prefix=f".{edition.name}-", dir=target_dir)
        try:
            url = self.download_url(edition)
            size = download_archive(self.session, url, archive_path, self.timeout)
            logger.info(f"Downloaded {edition.name} archive ({size} bytes)", extra={
                "component": "refresh", "edition": edition.name,
            })

            if self.verify_checksum:
                expected = fetch_checksum(self.session, f"{url}.sha256", self.timeout)
                actual = sha256_file(archive_path)
                if actual != expected:
                    raise RefreshError(f"checksum mismatch: expected {expected}, got {actual}")

            try:
                extracted = extract_first_member(
                    archive_path, path_suffix_predicate(edition.member_suffix), work_dir
                )
            except tarfile.TarError as e:
                raise RefreshError(f"archive is unreadable: {e}") from e
            if extracted is None:
                raise RefreshError(f"no entry ending with {edition.member_suffix} in archive")

            meta = verify_database(extracted)
            os.replace(extracted, edition.target)
            logger.info(f"Installed {edition.name} at {edition.target}", extra={
                "component": "refresh", "edition": edition.name,
                "build_epoch": meta["build_epoch"],
            })

            if self._is_served(edition.target):
                self.holder.open(edition.target)
            return edition.target
        finally:
            shutil.rmtree(work_dir, ignore_errors=True)
            if os.path.exists(archive_path):
                os.remove(archive_path)

    def _is_served(self, path: str) -> bool:
        served = self.holder.path
        return served is not None and os.path.abspath(served) == os.path.abspath(path)

    def status(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "editions": [e.name for e in self.editions],
            "interval_seconds": config.UPDATE_INTERVAL_SECONDS,
            "last_cycle_at": self.last_cycle_at,
            "last_outcomes": dict(self.last_outcomes),
        }

    async def run_forever(self, interval: float) -> None:
        """Run a cycle every interval seconds in a worker thread until cancelled"""
        logger.info(f"Schedule GeoIP update every {interval:g}s", extra={
            "component": "refresh", "enabled": self.enabled,
        })
        while True:
            await asyncio.sleep(interval)
            if not self.enabled:
                continue
            logger.info("Updating GeoIP database...", extra={"component": "refresh"})
            try:
                await asyncio.to_thread(self.run_cycle)
            except Exception:
                logger.exception("GeoIP update cycle crashed", extra={"component": "refresh"})
