# MIT License
# Copyright (c) 2025 Hashborn

"""
Version Store backends.

Versions are stored as one JSON document per fingerprint:
- <dir>/<fingerprint>.json (the version record)
- <dir>/latest.json (fingerprint of the last upload, for quick queries)
"""

import os
import json
import logging
import tempfile
import requests
from pathlib import Path
from typing import List, Optional, Protocol, Tuple
from pydantic import ValidationError

from ..protocol.types.common import VersionStoreError
from ..protocol.types.module import Version
from ..upgrade.types import SemVer
from ..observability.metrics import record_version_uploaded

logger = logging.getLogger(__name__)

LATEST_FILE = "latest.json"


class VersionStore(Protocol):
    def upload(self, version: Version):
        ...

    def load_last(self, k: int) -> List[Version]:
        """At most k versions, newest first."""
        ...


def _order_key(version: Version) -> Tuple[int, Tuple[int, int, int], str]:
    try:
        semver = SemVer.from_string(version.version_number)
        number = (semver.major, semver.minor, semver.patch)
    except ValueError:
        number = (-1, -1, -1)
    return (version.created_at, number, version.fingerprint)


def newest_first(versions: List[Version], k: int) -> List[Version]:
    """Sort by creation time (then version number, then fingerprint), newest first, keep k."""
    if k <= 0:
        return []
    return sorted(versions, key=_order_key, reverse=True)[:k]


class LocalVersionStore:
    """Version store backed by a local directory."""

    def __init__(self, directory: str = "versions"):
        """
        Args:
            directory: Directory holding the version files (created if missing)
        """
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, fingerprint: str) -> Path:
        return self.directory / f"{fingerprint}.json"

    def _write(self, path: Path, content: str):
        fd, tmp = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            os.replace(tmp, path)
        except OSError as e:
            raise VersionStoreError(f"Cannot write {path}: {e}")
        finally:
            if os.path.exists(tmp):
                os.remove(tmp)

    def upload(self, version: Version):
        """
        Persist a version under its fingerprint. A fingerprint that is
        already stored is left untouched.

        Raises:
            VersionStoreError: If the fingerprint does not match the modules or the write fails
        """
        if not version.verify_fingerprint():
            raise VersionStoreError(
                f"Refusing to store version {version.version_number}: fingerprint mismatch"
            )

        path = self._path(version.fingerprint)
        if path.exists():
            logger.info(f"Version {version.fingerprint} already stored, skipping upload")
        else:
            self._write(path, version.to_json())
            record_version_uploaded(version)
            logger.info(
                f"Stored version {version.version_number} ({version.fingerprint}) "
                f"with {len(version.modules)} modules"
            )

        self._write(
            self.directory / LATEST_FILE,
            json.dumps({"fingerprint": version.fingerprint, "version": version.version_number})
        )

    def get(self, fingerprint: str) -> Optional[Version]:
        path = self._path(fingerprint)
        if not path.exists():
            return None
        return self._read(path)

    def latest(self) -> Optional[Version]:
        """Most recently uploaded version, by the latest pointer."""
        path = self.directory / LATEST_FILE
        if not path.exists():
            return None
        try:
            with open(path, encoding="utf-8") as f:
                fingerprint = json.load(f)["fingerprint"]
        except (OSError, ValueError, KeyError) as e:
            raise VersionStoreError(f"Corrupted {path}: {e}")
        return self.get(fingerprint)

    def _read(self, path: Path) -> Version:
        try:
            with open(path, encoding="utf-8") as f:
                return Version.model_validate_json(f.read())
        except OSError as e:
            raise VersionStoreError(f"Cannot read {path}: {e}")
        except ValidationError as e:
            raise VersionStoreError(f"Invalid version file {path}: {e}")

    def list_versions(self) -> List[Version]:
        return [
            self._read(path)
            for path in self.directory.glob("*.json")
            if path.name != LATEST_FILE
        ]

    def load_last(self, k: int) -> List[Version]:
        """
        Args:
            k: Maximum number of versions

        Returns:
            Up to k versions, newest first by creation time
        """
        if k <= 0:
            return []
        versions = newest_first(self.list_versions(), k)
        logger.debug(f"Loaded {len(versions)} versions from {self.directory}")
        return versions


class HttpVersionStore:
    """Version store behind the version API (see versions.api)."""

    def __init__(self, base_url: str, session: Optional[requests.Session] = None, timeout: float = 10):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    def upload(self, version: Version):
        url = f"{self.base_url}/versions/{version.fingerprint}"
        try:
            resp = self.session.put(
                url,
                data=version.to_json(),
                headers={"Content-Type": "application/json"},
                timeout=self.timeout
            )
        except requests.RequestException as e:
            raise VersionStoreError(f"Upload to {url} failed: {e}")

        if resp.status_code not in (200, 201):
            raise VersionStoreError(f"Upload to {url} failed: {resp.status_code} {resp.text}")
        logger.info(f"Uploaded version {version.version_number} ({version.fingerprint}) to {self.base_url}")

    def load_last(self, k: int) -> List[Version]:
        if k <= 0:
            return []
        url = f"{self.base_url}/versions"
        try:
            resp = self.session.get(url, params={"count": k}, timeout=self.timeout)
        except requests.RequestException as e:
            raise VersionStoreError(f"Fetching {url} failed: {e}")

        if resp.status_code != 200:
            raise VersionStoreError(f"Fetching {url} failed: {resp.status_code} {resp.text}")

        try:
            versions = [Version.model_validate(v) for v in resp.json()]
        except (ValueError, ValidationError) as e:
            raise VersionStoreError(f"Invalid response from {url}: {e}")

        # the server is not trusted to keep creation order
        return newest_first(versions, k)

    def get(self, fingerprint: str) -> Optional[Version]:
        url = f"{self.base_url}/versions/{fingerprint}"
        try:
            resp = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise VersionStoreError(f"Fetching {url} failed: {e}")

        if resp.status_code == 404:
            return None
        if resp.status_code != 200:
            raise VersionStoreError(f"Fetching {url} failed: {resp.status_code} {resp.text}")
        try:
            return Version.model_validate(resp.json())
        except (ValueError, ValidationError) as e:
            raise VersionStoreError(f"Invalid response from {url}: {e}")


def open_store(version_dir: Optional[str] = None, version_url: Optional[str] = None):
    """Pick the backend from configuration; a URL wins over a directory."""
    if version_url:
        return HttpVersionStore(version_url)
    return LocalVersionStore(version_dir or "versions")


class MemoryVersionStore:
    """Version store held in memory; used for dry runs on top of another store's history."""

    def __init__(self, versions=()):
        self.versions = {v.fingerprint: v for v in versions}

    def upload(self, version: Version):
        if version.fingerprint not in self.versions:
            self.versions[version.fingerprint] = version

    def load_last(self, k: int) -> List[Version]:
        return newest_first(list(self.versions.values()), k)

    def get(self, fingerprint: str) -> Optional[Version]:
        return self.versions.get(fingerprint)
