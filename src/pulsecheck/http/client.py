"""Backend API client used for slug lookups and check listings."""

from __future__ import annotations

import logging
import platform
from collections.abc import Callable
from typing import Any

import httpx

from pulsecheck import __version__
from pulsecheck.errors import (
    ApiError,
    AuthenticationError,
    CheckNotFoundError,
    NotFoundError,
    OrgNotFoundError,
    ProjectNotFoundError,
)
from pulsecheck.models import CheckSummary, OrgSummary, ProjectSummary

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_MAX_RETRIES = 1
CHECKS_PATH = "/api/v1/checks"
ORGANIZATIONS_PATH = "/api/v1/organizations"
PROJECTS_PATH = "/api/v1/projects"


def user_agent() -> str:
    """User-Agent sent with every request, e.g. ``pulsecheck-cli/0.4.0 (linux; x86_64)``."""

    return f"pulsecheck-cli/{__version__} ({platform.system().lower()}; {platform.machine()})"


class ApiClient:
    """Thin authenticated wrapper over the backend REST API."""

    def __init__(
        self,
        *,
        base_url: str,
        token: str | None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._token = token
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=httpx.Timeout(timeout_seconds, connect=10.0),
            headers={"User-Agent": user_agent(), "Accept": "application/json"},
            transport=transport or httpx.HTTPTransport(retries=max_retries),
        )

    def lookup_check(self, project_id: str, slug: str) -> CheckSummary:
        """Find one check by slug inside a project; slugs compare case-insensitively."""

        payload = self._get(
            CHECKS_PATH,
            params={"project_id": project_id, "slug": slug},
            not_found=lambda: CheckNotFoundError(slug, project_id),
        )
        wanted = slug.casefold()
        for raw in _items(payload, "checks"):
            summary = _parse_check(raw)
            if summary.slug.casefold() == wanted:
                return summary
        raise CheckNotFoundError(slug, project_id)

    def list_checks(self, project_id: str) -> list[CheckSummary]:
        payload = self._get(
            CHECKS_PATH,
            params={"project_id": project_id},
            not_found=lambda: ProjectNotFoundError(project_id),
        )
        return [_parse_check(raw) for raw in _items(payload, "checks")]

    def list_orgs(self) -> list[OrgSummary]:
        payload = self._get(ORGANIZATIONS_PATH, params={})
        return [_parse_org(raw) for raw in _items(payload, "organizations")]

    def list_projects(self, org_id: str) -> list[ProjectSummary]:
        payload = self._get(
            PROJECTS_PATH,
            params={"org_id": org_id},
            not_found=lambda: OrgNotFoundError(org_id),
        )
        return [_parse_project(raw, org_id) for raw in _items(payload, "projects")]

    def _get(
        self,
        path: str,
        *,
        params: dict[str, str],
        not_found: Callable[[], NotFoundError] | None = None,
    ) -> Any:
        if not self._token:
            raise AuthenticationError(
                "Not logged in. Run: pulsecheck auth login --api-key <KEY> "
                "or set PULSECHECK_API_KEY.",
            )
        try:
            response = self._client.get(
                path,
                params=params,
                headers={"Authorization": f"Bearer {self._token}"},
            )
        except httpx.TimeoutException as error:
            logger.debug("Timeout requesting %s", path)
            raise ApiError(f"Request to {path} timed out") from error
        except httpx.HTTPError as error:
            logger.debug("HTTP error requesting %s: %s", path, error)
            raise ApiError(f"Network error: {error}") from error

        if response.status_code in {401, 403}:
            raise AuthenticationError(
                f"Backend rejected the API key (HTTP {response.status_code}). "
                "Run: pulsecheck auth login --api-key <KEY>",
            )
        if response.status_code == 404 and not_found is not None:
            raise not_found()
        if not response.is_success:
            raise ApiError(
                f"API error: HTTP {response.status_code}: {_error_message(response)}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as error:
            raise ApiError(f"Invalid JSON from {path}") from error

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> ApiClient:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()


def _items(payload: Any, key: str) -> list[dict[str, Any]]:
    if isinstance(payload, dict):
        payload = payload.get("data", payload.get(key))
    if not isinstance(payload, list):
        raise ApiError(f"Unexpected {key} payload: expected a list")
    return [item for item in payload if isinstance(item, dict)]


def _parse_check(raw: dict[str, Any]) -> CheckSummary:
    uuid = raw.get("public_id") or raw.get("uuid")
    slug = raw.get("slug")
    if not isinstance(uuid, str) or not isinstance(slug, str):
        raise ApiError(f"Check record missing public_id/slug: {raw!r}")
    return CheckSummary(
        uuid=uuid,
        slug=slug,
        status=str(raw.get("status") or "unknown"),
        name=str(raw.get("name") or slug),
    )


def _parse_org(raw: dict[str, Any]) -> OrgSummary:
    org_id = raw.get("id")
    if org_id is None:
        raise ApiError(f"Organization record missing id: {raw!r}")
    return OrgSummary(
        id=str(org_id),
        name=str(raw.get("name") or org_id),
        role=str(raw.get("user_role") or raw.get("role") or ""),
    )


def _parse_project(raw: dict[str, Any], org_id: str) -> ProjectSummary:
    project_id = raw.get("id")
    if project_id is None:
        raise ApiError(f"Project record missing id: {raw!r}")
    name = str(raw.get("name") or project_id)
    return ProjectSummary(
        id=str(project_id),
        org_id=str(raw.get("org_id") or org_id),
        name=name,
        slug=str(raw.get("slug") or ""),
        description=str(raw.get("description") or ""),
    )


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    if isinstance(body, dict):
        for key in ("error", "message", "detail"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
    return response.reason_phrase
