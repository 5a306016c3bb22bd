from __future__ import annotations

import allure
import httpx
import pytest
from conftest import CHECK_UUID, OTHER_UUID, VALID_API_KEY

from pulsecheck.errors import (
    ApiError,
    AuthenticationError,
    CheckNotFoundError,
    OrgNotFoundError,
    ProjectNotFoundError,
)
from pulsecheck.http.client import ApiClient, user_agent

pytestmark = [
    allure.epic("Identifier Cache"),
    allure.feature("Backend Lookup"),
]

CHECKS = [
    {"public_id": CHECK_UUID, "slug": "nightly-backup", "name": "Nightly backup", "status": "up"},
    {"uuid": OTHER_UUID, "slug": "db-vacuum", "status": "down"},
]


def _client(handler, token: str | None = VALID_API_KEY) -> ApiClient:
    return ApiClient(
        base_url="https://api.example.com/",
        token=token,
        transport=httpx.MockTransport(handler),
    )


def test_lookup_check_sends_bearer_token_and_matches_slug() -> None:
    seen: list[httpx.Request] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"data": CHECKS})

    with _client(_handler) as client:
        summary = client.lookup_check("proj-1", "Nightly-Backup")

    assert summary.uuid == CHECK_UUID
    assert summary.name == "Nightly backup"
    [request] = seen
    assert request.url.path == "/api/v1/checks"
    assert request.url.params["project_id"] == "proj-1"
    assert request.headers["Authorization"] == f"Bearer {VALID_API_KEY}"
    assert request.headers["User-Agent"] == user_agent()


def test_list_checks_accepts_plain_list_payload() -> None:
    with _client(lambda request: httpx.Response(200, json=CHECKS)) as client:
        checks = client.list_checks("proj-1")

    assert [(check.slug, check.uuid) for check in checks] == [
        ("nightly-backup", CHECK_UUID),
        ("db-vacuum", OTHER_UUID),
    ]
    assert checks[1].name == "db-vacuum"


def test_lookup_without_match_is_not_found() -> None:
    with _client(lambda request: httpx.Response(200, json={"data": []})) as client:
        with pytest.raises(CheckNotFoundError, match="ghost"):
            client.lookup_check("proj-1", "ghost")


def test_missing_token_fails_before_any_request() -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    with _client(_handler, token=None) as client, pytest.raises(AuthenticationError):
        client.list_checks("proj-1")


@pytest.mark.parametrize(
    ("status_code", "error_type"),
    [
        (401, AuthenticationError),
        (403, AuthenticationError),
        (404, CheckNotFoundError),
        (500, ApiError),
    ],
)
def test_status_codes_map_to_error_categories(status_code: int, error_type: type) -> None:
    response = httpx.Response(status_code, json={"error": "boom"})
    with _client(lambda request: response) as client, pytest.raises(error_type):
        client.lookup_check("proj-1", "nightly-backup")


def test_server_error_message_is_surfaced() -> None:
    response = httpx.Response(502, json={"message": "upstream down"})
    with _client(lambda request: response) as client:
        with pytest.raises(ApiError, match="upstream down") as excinfo:
            client.list_checks("proj-1")

    assert excinfo.value.status_code == 502


def test_network_failure_is_a_lookup_failure() -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with _client(_handler) as client, pytest.raises(ApiError, match="Network error"):
        client.lookup_check("proj-1", "nightly-backup")


def test_malformed_payload_is_an_api_error() -> None:
    with _client(lambda request: httpx.Response(200, json={"unexpected": True})) as client:
        with pytest.raises(ApiError, match="Unexpected checks payload"):
            client.list_checks("proj-1")


def test_missing_project_on_listing_names_the_project() -> None:
    response = httpx.Response(404, json={"error": "not found"})
    with _client(lambda request: response) as client:
        with pytest.raises(ProjectNotFoundError, match="Project 'proj-1' not found") as excinfo:
            client.list_checks("proj-1")

    assert excinfo.value.exit_code == 3
    assert "Check '" not in str(excinfo.value)


def test_list_orgs_reads_flattened_membership_records() -> None:
    seen: list[httpx.Request] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json=[
                {"id": "org-1", "name": "Acme", "timezone": "UTC", "user_role": "owner"},
                {"id": 42},
            ],
        )

    with _client(_handler) as client:
        orgs = client.list_orgs()

    assert [(org.id, org.name, org.role) for org in orgs] == [
        ("org-1", "Acme", "owner"),
        ("42", "42", ""),
    ]
    assert seen[0].url.path == "/api/v1/organizations"
    assert seen[0].headers["Authorization"] == f"Bearer {VALID_API_KEY}"


def test_list_projects_filters_by_org() -> None:
    seen: list[httpx.Request] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "data": [
                    {
                        "id": "proj-1",
                        "org_id": "org-1",
                        "name": "Backups",
                        "slug": "backups",
                        "description": "Nightly jobs",
                    },
                    {"id": "proj-2", "name": "Reports"},
                ],
            },
        )

    with _client(_handler) as client:
        projects = client.list_projects("org-1")

    assert seen[0].url.path == "/api/v1/projects"
    assert seen[0].url.params["org_id"] == "org-1"
    assert projects[0].description == "Nightly jobs"
    assert projects[1].org_id == "org-1"
    assert projects[1].slug == ""
    assert projects[0].matches("backups")
    assert projects[0].matches("BACKUPS")
    assert projects[1].matches("proj-2")
    assert not projects[1].matches("backups")


def test_unknown_org_on_project_listing() -> None:
    with _client(lambda request: httpx.Response(404)) as client:
        with pytest.raises(OrgNotFoundError, match="Organization 'org-x' not found"):
            client.list_projects("org-x")
