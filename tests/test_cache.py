from __future__ import annotations

import json
import threading
from datetime import timedelta
from pathlib import Path

import allure
import pytest
from conftest import CHECK_UUID, OTHER_UUID, FakeClock, FakeLookup

from pulsecheck.cache import (
    CACHE_TTL,
    CacheEntry,
    CacheFile,
    CacheStore,
    IdentifierCache,
    ResolutionSource,
    describe_age,
)
from pulsecheck.errors import ApiError, CheckNotFoundError
from pulsecheck.models import StaleCachePolicy
from pulsecheck.storage import load_json, write_json

pytestmark = [
    allure.epic("Identifier Cache"),
    allure.feature("TTL, Stale Policy, Resync"),
]


def _cache(
    tmp_path: Path,
    lookup: FakeLookup,
    clock: FakeClock,
    policy: StaleCachePolicy = StaleCachePolicy.SERVE_STALE,
) -> IdentifierCache:
    return IdentifierCache(
        cache_file=CacheFile(tmp_path / "cache" / "checks.json"),
        lookup=lookup,
        policy=policy,
        clock=clock,
    )


def test_miss_fetches_once_and_persists(tmp_path: Path, lookup: FakeLookup, clock) -> None:
    cache = _cache(tmp_path, lookup, clock)

    resolution = cache.lookup("proj-1", "nightly-backup")

    assert resolution.uuid == CHECK_UUID
    assert resolution.source is ResolutionSource.REMOTE
    assert lookup.calls == [("proj-1", "nightly-backup")]
    [entry] = cache.entries("proj-1")
    assert entry.uuid == CHECK_UUID
    assert entry.fetched_at == clock.now


def test_fresh_hit_makes_no_remote_call(tmp_path: Path, lookup: FakeLookup, clock) -> None:
    cache = _cache(tmp_path, lookup, clock)
    cache.resolve("proj-1", "nightly-backup")
    clock.advance(CACHE_TTL - timedelta(seconds=1))

    resolution = cache.lookup("proj-1", "nightly-backup")

    assert resolution.source is ResolutionSource.CACHE
    assert len(lookup.calls) == 1


def test_expired_entry_refreshes_exactly_once(tmp_path: Path, lookup: FakeLookup, clock) -> None:
    cache = _cache(tmp_path, lookup, clock)
    cache.resolve("proj-1", "nightly-backup")
    clock.advance(CACHE_TTL)

    resolution = cache.lookup("proj-1", "nightly-backup")

    assert resolution.source is ResolutionSource.REMOTE
    assert len(lookup.calls) == 2
    [entry] = cache.entries("proj-1")
    assert entry.fetched_at == clock.now


def test_not_found_leaves_cache_untouched(tmp_path: Path, lookup: FakeLookup, clock) -> None:
    cache = _cache(tmp_path, lookup, clock)
    cache.resolve("proj-1", "nightly-backup")
    before = (tmp_path / "cache" / "checks.json").read_text("utf-8")

    with pytest.raises(CheckNotFoundError, match="missing-job"):
        cache.resolve("proj-1", "missing-job")

    assert (tmp_path / "cache" / "checks.json").read_text("utf-8") == before


def test_not_found_on_refresh_keeps_the_expired_entry(
    tmp_path: Path,
    lookup: FakeLookup,
    clock,
) -> None:
    cache = _cache(tmp_path, lookup, clock)
    cache.resolve("proj-1", "nightly-backup")
    clock.advance(CACHE_TTL * 2)
    del lookup.checks["proj-1"]["nightly-backup"]

    with pytest.raises(CheckNotFoundError):
        cache.resolve("proj-1", "nightly-backup")

    assert [entry.slug for entry in cache.entries("proj-1")] == ["nightly-backup"]


def test_serve_stale_returns_expired_entry_on_network_failure(
    tmp_path: Path,
    lookup: FakeLookup,
    clock,
    caplog,
) -> None:
    cache = _cache(tmp_path, lookup, clock)
    cache.resolve("proj-1", "nightly-backup")
    clock.advance(CACHE_TTL + timedelta(hours=1))
    lookup.fail_with_network_error()

    resolution = cache.lookup("proj-1", "nightly-backup")

    assert resolution.uuid == CHECK_UUID
    assert resolution.source is ResolutionSource.STALE
    assert "using cached id" in caplog.text


def test_fail_policy_surfaces_network_failure(tmp_path: Path, lookup: FakeLookup, clock) -> None:
    cache = _cache(tmp_path, lookup, clock, policy=StaleCachePolicy.FAIL)
    cache.resolve("proj-1", "nightly-backup")
    clock.advance(CACHE_TTL + timedelta(hours=1))
    lookup.fail_with_network_error()

    with pytest.raises(ApiError, match="connection refused"):
        cache.resolve("proj-1", "nightly-backup")


def test_network_failure_without_entry_raises_under_either_policy(
    tmp_path: Path,
    lookup: FakeLookup,
    clock,
) -> None:
    lookup.fail_with_network_error()

    with pytest.raises(ApiError):
        _cache(tmp_path, lookup, clock).resolve("proj-1", "nightly-backup")


def test_resync_replaces_entire_store(tmp_path: Path, lookup: FakeLookup, clock) -> None:
    lookup.checks["proj-2"] = {"other-job": OTHER_UUID}
    cache = _cache(tmp_path, lookup, clock)
    cache.resolve("proj-2", "other-job")
    clock.advance(timedelta(minutes=5))

    entries = cache.resync("proj-1")

    assert sorted(entry.slug for entry in entries) == ["db-vacuum", "nightly-backup"]
    assert cache.entries("proj-2") == []
    assert cache.last_synced_at() == clock.now
    assert all(entry.fetched_at == clock.now for entry in entries)


def test_resync_drops_deleted_and_adds_new_checks(
    tmp_path: Path,
    lookup: FakeLookup,
    clock,
) -> None:
    cache = _cache(tmp_path, lookup, clock)
    cache.resync("proj-1")
    del lookup.checks["proj-1"]["db-vacuum"]
    lookup.checks["proj-1"]["weekly-report"] = OTHER_UUID

    entries = cache.resync("proj-1")

    assert sorted(entry.slug for entry in entries) == ["nightly-backup", "weekly-report"]
    assert lookup.list_calls == ["proj-1", "proj-1"]


def test_upsert_keeps_one_entry_per_key() -> None:
    store = CacheStore()
    first = CacheEntry("job", "p", CHECK_UUID, FakeClock().now)
    second = CacheEntry("job", "p", OTHER_UUID, FakeClock().now)
    other = CacheEntry("job", "q", CHECK_UUID, FakeClock().now)

    store.upsert(first)
    store.upsert(other)
    store.upsert(second)

    assert store.entries == [second, other]


def test_corrupt_cache_file_is_treated_as_empty(
    tmp_path: Path,
    lookup: FakeLookup,
    clock,
    caplog,
) -> None:
    path = tmp_path / "cache" / "checks.json"
    path.parent.mkdir(parents=True)
    path.write_text("{not json", "utf-8")
    cache = _cache(tmp_path, lookup, clock)

    assert cache.resolve("proj-1", "nightly-backup") == CHECK_UUID
    assert "Ignoring unreadable check cache" in caplog.text
    assert load_json(path)["entries"][0]["uuid"] == CHECK_UUID


def test_cache_file_payload_shape(tmp_path: Path, lookup: FakeLookup, clock) -> None:
    cache = _cache(tmp_path, lookup, clock)
    cache.resolve("proj-1", "db-vacuum")

    payload = json.loads((tmp_path / "cache" / "checks.json").read_text("utf-8"))

    assert payload["version"] == 1
    assert payload["entries"][0]["slug"] == "db-vacuum"
    assert payload["entries"][0]["fetched_at"].startswith("2026-03-01T12:00:00")


def test_interleaved_writers_leave_a_parsable_file(tmp_path: Path) -> None:
    path = tmp_path / "shared.json"
    errors: list[Exception] = []

    def _writer(worker: int) -> None:
        try:
            for index in range(50):
                write_json(path, {"worker": worker, "index": index, "pad": "x" * 4096})
        except Exception as error:  # noqa: BLE001
            errors.append(error)

    threads = [threading.Thread(target=_writer, args=(worker,)) for worker in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    payload = load_json(path)
    assert payload["index"] == 49
    assert len(payload["pad"]) == 4096
    assert [item.name for item in tmp_path.iterdir()] == ["shared.json"]


def test_describe_age_units(clock) -> None:
    entry = CacheEntry("job", "p", CHECK_UUID, clock.now)

    assert describe_age(entry, clock.now + timedelta(seconds=30)) == "30s"
    assert describe_age(entry, clock.now + timedelta(minutes=5)) == "5m"
    assert describe_age(entry, clock.now + timedelta(hours=3)) == "3h"
    assert describe_age(entry, clock.now + timedelta(days=2)) == "2d"
