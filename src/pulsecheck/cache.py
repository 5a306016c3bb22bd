"""Persisted slug → check UUID cache with TTL refresh and a named stale policy."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Any, Protocol

from pulsecheck.errors import LookupFailedError
from pulsecheck.models import CheckSummary, StaleCachePolicy
from pulsecheck.storage import load_json, write_json

logger = logging.getLogger(__name__)

CACHE_TTL = timedelta(hours=24)
CACHE_FORMAT_VERSION = 1


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class CheckLookup(Protocol):
    """Remote directory of checks consulted on cache misses and resyncs."""

    def lookup_check(self, project_id: str, slug: str) -> CheckSummary:
        """Return the check or raise ``CheckNotFoundError`` / ``LookupFailedError``."""

    def list_checks(self, project_id: str) -> list[CheckSummary]:
        """Return every check of the project."""


@dataclass(slots=True)
class CacheEntry:
    """One cached slug mapping, unique by ``(project_id, slug)``."""

    slug: str
    project_id: str
    uuid: str
    fetched_at: datetime
    name: str = ""
    status: str = ""

    def age(self, now: datetime) -> timedelta:
        return now - self.fetched_at

    def is_fresh(self, now: datetime, ttl: timedelta = CACHE_TTL) -> bool:
        return self.age(now) < ttl

    def to_payload(self) -> dict[str, Any]:
        return {
            "slug": self.slug,
            "project_id": self.project_id,
            "uuid": self.uuid,
            "name": self.name,
            "status": self.status,
            "fetched_at": self.fetched_at.isoformat(),
        }

    @classmethod
    def from_payload(cls, raw: dict[str, Any]) -> CacheEntry:
        fetched_at = datetime.fromisoformat(str(raw["fetched_at"]))
        if fetched_at.tzinfo is None:
            fetched_at = fetched_at.replace(tzinfo=UTC)
        return cls(
            slug=str(raw["slug"]),
            project_id=str(raw["project_id"]),
            uuid=str(raw["uuid"]),
            fetched_at=fetched_at,
            name=str(raw.get("name") or ""),
            status=str(raw.get("status") or ""),
        )


@dataclass(slots=True)
class CacheStore:
    """Ordered cache entries plus the time of the last full resync."""

    entries: list[CacheEntry] = field(default_factory=list)
    last_synced_at: datetime | None = None

    def find(self, project_id: str, slug: str) -> CacheEntry | None:
        for entry in self.entries:
            if entry.project_id == project_id and entry.slug == slug:
                return entry
        return None

    def upsert(self, entry: CacheEntry) -> None:
        """Insert or replace by key; the replaced entry keeps its position."""

        for index, existing in enumerate(self.entries):
            if existing.project_id == entry.project_id and existing.slug == entry.slug:
                self.entries[index] = entry
                return
        self.entries.append(entry)

    def for_project(self, project_id: str) -> list[CacheEntry]:
        return [entry for entry in self.entries if entry.project_id == project_id]

    def to_payload(self) -> dict[str, Any]:
        return {
            "version": CACHE_FORMAT_VERSION,
            "last_synced_at": self.last_synced_at.isoformat() if self.last_synced_at else None,
            "entries": [entry.to_payload() for entry in self.entries],
        }

    @classmethod
    def from_payload(cls, raw: dict[str, Any]) -> CacheStore:
        raw_entries = raw.get("entries", [])
        if not isinstance(raw_entries, list):
            raise TypeError("cache.entries must be an array")
        store = cls()
        for item in raw_entries:
            if not isinstance(item, dict):
                raise TypeError("cache entry must be an object")
            store.upsert(CacheEntry.from_payload(item))
        synced = raw.get("last_synced_at")
        if synced:
            store.last_synced_at = datetime.fromisoformat(str(synced))
        return store


class CacheFile:
    """JSON file holding a :class:`CacheStore`; replaced atomically on every save."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> CacheStore:
        if not self.path.exists():
            return CacheStore()
        try:
            return CacheStore.from_payload(load_json(self.path))
        except (OSError, ValueError, TypeError, KeyError) as error:
            logger.warning("Ignoring unreadable check cache %s: %s", self.path, error)
            return CacheStore()

    def save(self, store: CacheStore) -> None:
        write_json(self.path, store.to_payload())

    def clear(self) -> bool:
        if not self.path.exists():
            return False
        self.path.unlink()
        return True


class ResolutionSource(str, Enum):
    """Where a resolved identifier came from."""

    CACHE = "cache"
    REMOTE = "remote"
    STALE = "stale"


@dataclass(frozen=True, slots=True)
class Resolution:
    uuid: str
    source: ResolutionSource


class IdentifierCache:
    """Resolve check slugs to backend UUIDs, cache-first.

    Fresh entries are served without any network call. Stale or missing
    entries trigger exactly one remote lookup whose result is upserted.
    A remote "not found" never evicts an existing entry. When the lookup
    fails on the transport, :class:`StaleCachePolicy` decides between
    serving the expired entry (with a warning) and failing.
    """

    def __init__(
        self,
        *,
        cache_file: CacheFile,
        lookup: CheckLookup,
        policy: StaleCachePolicy = StaleCachePolicy.SERVE_STALE,
        ttl: timedelta = CACHE_TTL,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._cache_file = cache_file
        self._lookup = lookup
        self._policy = policy
        self._ttl = ttl
        self._clock = clock

    def resolve(self, project_id: str, slug: str) -> str:
        return self.lookup(project_id, slug).uuid

    def lookup(self, project_id: str, slug: str) -> Resolution:
        store = self._cache_file.load()
        cached = store.find(project_id, slug)
        now = self._clock()
        if cached is not None and cached.is_fresh(now, self._ttl):
            logger.debug("Cache hit for %s/%s", project_id, slug)
            return Resolution(uuid=cached.uuid, source=ResolutionSource.CACHE)

        try:
            summary = self._lookup.lookup_check(project_id, slug)
        except LookupFailedError as error:
            if cached is not None and self._policy is StaleCachePolicy.SERVE_STALE:
                logger.warning(
                    "Could not refresh check '%s' (%s); using cached id from %s",
                    slug,
                    error,
                    cached.fetched_at.isoformat(timespec="seconds"),
                )
                return Resolution(uuid=cached.uuid, source=ResolutionSource.STALE)
            raise

        self._persist(
            CacheEntry(
                slug=slug,
                project_id=project_id,
                uuid=summary.uuid,
                fetched_at=self._clock(),
                name=summary.name,
                status=summary.status,
            ),
        )
        return Resolution(uuid=summary.uuid, source=ResolutionSource.REMOTE)

    def resync(self, project_id: str) -> list[CacheEntry]:
        """Replace the whole store with the project's current remote checks."""

        checks = self._lookup.list_checks(project_id)
        now = self._clock()
        store = CacheStore(last_synced_at=now)
        for check in checks:
            store.upsert(
                CacheEntry(
                    slug=check.slug,
                    project_id=project_id,
                    uuid=check.uuid,
                    fetched_at=now,
                    name=check.name,
                    status=check.status,
                ),
            )
        self._cache_file.save(store)
        return store.for_project(project_id)

    def entries(self, project_id: str) -> list[CacheEntry]:
        return self._cache_file.load().for_project(project_id)

    def last_synced_at(self) -> datetime | None:
        return self._cache_file.load().last_synced_at

    def clear(self) -> bool:
        return self._cache_file.clear()

    def _persist(self, entry: CacheEntry) -> None:
        # Re-read right before writing so concurrent writers only lose the same key.
        store = self._cache_file.load()
        store.upsert(entry)
        try:
            self._cache_file.save(store)
        except OSError as error:
            logger.warning("Could not write check cache %s: %s", self._cache_file.path, error)


def describe_age(entry: CacheEntry, now: datetime | None = None) -> str:
    """Human age such as ``3h`` or ``2d`` for listings."""

    seconds = int(entry.age(now or _utcnow()).total_seconds())
    if seconds < 60:  # noqa: PLR2004
        return f"{max(seconds, 0)}s"
    if seconds < 3600:  # noqa: PLR2004
        return f"{seconds // 60}m"
    if seconds < 86400:  # noqa: PLR2004
        return f"{seconds // 3600}h"
    return f"{seconds // 86400}d"
