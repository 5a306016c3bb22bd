"""Domain models shared across resolver, cache, transport and orchestrator."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union
from uuid import UUID


class OutputFormat(str, Enum):
    """How command results are rendered on stdout."""

    TABLE = "table"
    JSON = "json"


class StaleCachePolicy(str, Enum):
    """What identifier resolution does when a refresh fails on the transport.

    ``SERVE_STALE`` trades correctness for availability: if an expired cache
    entry exists it is returned and a warning is logged. ``FAIL`` surfaces
    the lookup failure.
    """

    SERVE_STALE = "serve-stale"
    FAIL = "fail"


class PingKind(str, Enum):
    """Lifecycle signal sent to the ping endpoint."""

    START = "start"
    SUCCESS = "success"
    FAIL = "fail"


@dataclass(frozen=True, slots=True)
class BySlug:
    """Human slug; must be translated to a UUID through an authenticated lookup."""

    slug: str
    project_id: str | None = None

    @property
    def label(self) -> str:
        return self.slug


@dataclass(frozen=True, slots=True)
class ByPublicId:
    """Pre-shared check UUID used verbatim against the ping endpoint."""

    uuid: str

    @property
    def label(self) -> str:
        return self.uuid


CheckIdentifier = Union[BySlug, ByPublicId]


@dataclass(frozen=True, slots=True)
class CheckSummary:
    """Minimal check view returned by the API client."""

    uuid: str
    slug: str
    status: str
    name: str = ""


@dataclass(frozen=True, slots=True)
class OrgSummary:
    """Organization visible to the API key."""

    id: str
    name: str
    role: str = ""


@dataclass(frozen=True, slots=True)
class ProjectSummary:
    id: str
    org_id: str
    name: str
    slug: str
    description: str = ""

    def matches(self, identifier: str) -> bool:
        """Match by id, then slug, then case-insensitive name."""

        return (
            self.id == identifier
            or self.slug == identifier
            or self.name.casefold() == identifier.casefold()
        )


def select_identifier(
    *,
    slug: str | None,
    public_id: str | None,
    project_id: str | None = None,
) -> CheckIdentifier:
    """Pick the identifier variant for one invocation.

    A public id wins over a slug because it needs no authenticated context.
    """

    if public_id:
        try:
            parsed = UUID(public_id.strip())
        except ValueError as error:
            raise ValueError(f"Invalid public id: {public_id!r} (expected a UUID)") from error
        return ByPublicId(uuid=str(parsed))
    if slug:
        return BySlug(slug=slug.strip(), project_id=project_id)
    raise ValueError("Either a check slug or --public-id is required.")
