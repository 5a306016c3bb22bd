"""Shared test fixtures."""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from pulsecheck.errors import ApiError, CheckNotFoundError
from pulsecheck.models import CheckSummary

VALID_API_KEY = "pk_test_0123456789abcdef"
CHECK_UUID = "0f8b5c1e-8a4d-4b8f-9d6a-2f3e4a5b6c7d"
OTHER_UUID = "6a1f7e2d-3c4b-4a59-8e7f-9a0b1c2d3e4f"


class FakeClock:
    """Settable UTC clock for cache expiry tests."""

    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime(2026, 3, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


class FakeLookup:
    """In-memory check directory that records every remote call."""

    def __init__(self, checks: dict[str, dict[str, str]] | None = None) -> None:
        self.checks = checks or {}
        self.calls: list[tuple[str, str]] = []
        self.list_calls: list[str] = []
        self.failure: Exception | None = None

    def lookup_check(self, project_id: str, slug: str) -> CheckSummary:
        self.calls.append((project_id, slug))
        if self.failure is not None:
            raise self.failure
        uuid = self.checks.get(project_id, {}).get(slug)
        if uuid is None:
            raise CheckNotFoundError(slug, project_id)
        return CheckSummary(uuid=uuid, slug=slug, status="up", name=slug.title())

    def list_checks(self, project_id: str) -> list[CheckSummary]:
        self.list_calls.append(project_id)
        if self.failure is not None:
            raise self.failure
        return [
            CheckSummary(uuid=uuid, slug=slug, status="up", name=slug.title())
            for slug, uuid in self.checks.get(project_id, {}).items()
        ]

    def fail_with_network_error(self) -> None:
        self.failure = ApiError("Network error: connection refused")


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def lookup() -> FakeLookup:
    return FakeLookup({"proj-1": {"nightly-backup": CHECK_UUID, "db-vacuum": OTHER_UUID}})


@pytest.fixture()
def config_env(tmp_path: Path) -> dict[str, str]:
    """Isolated environment pointing every pulsecheck file at ``tmp_path``."""

    return {"PULSECHECK_CONFIG_DIR": str(tmp_path / "config")}


@pytest.fixture(autouse=True)
def _reset_cli_logging():
    """Drop handlers the CLI attaches so later tests do not write to closed streams."""
    yield
    package_logger = logging.getLogger("pulsecheck")
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
    package_logger.setLevel(logging.NOTSET)
