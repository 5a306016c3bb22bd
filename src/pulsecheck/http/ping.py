"""Ping transport: one short, bounded HTTP request per lifecycle signal."""

from __future__ import annotations

import logging
from typing import Protocol

import httpx

from pulsecheck.config import DEFAULT_PING_TIMEOUT_SECONDS
from pulsecheck.errors import PingError
from pulsecheck.http.client import user_agent
from pulsecheck.models import ByPublicId, PingKind

logger = logging.getLogger(__name__)

RUN_ID_HEADER = "X-Pulsecheck-Run"
DURATION_HEADER = "X-Pulsecheck-Duration"
MAX_BODY_BYTES = 100 * 1024
_TRUNCATED_MARKER = "\n…(truncated)\n"


class PingTransport(Protocol):
    """Delivers lifecycle pings for an already-resolved check."""

    def send_ping(  # noqa: PLR0913
        self,
        target: ByPublicId,
        kind: PingKind,
        *,
        exit_code: int | None = None,
        duration_ms: int | None = None,
        run_id: str | None = None,
        body: str | None = None,
    ) -> None:
        """Send one ping or raise :class:`PingError`."""


def build_ping_path(target: ByPublicId, kind: PingKind, exit_code: int | None = None) -> str:
    """Path suffix below the ping base URL for one signal."""

    if kind is PingKind.START:
        return f"/{target.uuid}/start"
    if kind is PingKind.SUCCESS:
        return f"/{target.uuid}"
    if exit_code is not None and exit_code != 0:
        return f"/{target.uuid}/{exit_code}"
    return f"/{target.uuid}/fail"


def truncate_body(body: str, limit: int = MAX_BODY_BYTES) -> str:
    encoded = body.encode("utf-8")
    if len(encoded) <= limit:
        return body
    return encoded[:limit].decode("utf-8", errors="ignore") + _TRUNCATED_MARKER


class HttpPingTransport:
    """Pings over HTTP; GET without a body, POST text/plain with one."""

    def __init__(
        self,
        *,
        ping_url: str,
        timeout_seconds: float = DEFAULT_PING_TIMEOUT_SECONDS,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._client = httpx.Client(
            base_url=ping_url.rstrip("/"),
            timeout=httpx.Timeout(timeout_seconds),
            headers={"User-Agent": user_agent()},
            transport=transport,
        )

    def send_ping(  # noqa: PLR0913
        self,
        target: ByPublicId,
        kind: PingKind,
        *,
        exit_code: int | None = None,
        duration_ms: int | None = None,
        run_id: str | None = None,
        body: str | None = None,
    ) -> None:
        path = build_ping_path(target, kind, exit_code)
        headers: dict[str, str] = {}
        if run_id:
            headers[RUN_ID_HEADER] = run_id
        if duration_ms is not None and kind is not PingKind.START:
            headers[DURATION_HEADER] = str(max(0, duration_ms))

        logger.debug("Sending %s ping to %s%s", kind.value, self._client.base_url, path)
        try:
            if body is None:
                response = self._client.get(path, headers=headers)
            else:
                headers["Content-Type"] = "text/plain; charset=utf-8"
                response = self._client.post(
                    path,
                    content=truncate_body(body).encode("utf-8"),
                    headers=headers,
                )
        except httpx.TimeoutException as error:
            raise PingError(f"{kind.value} ping timed out") from error
        except httpx.HTTPError as error:
            raise PingError(f"{kind.value} ping failed: {error}") from error

        if not response.is_success:
            raise PingError(
                f"{kind.value} ping rejected: HTTP {response.status_code} {response.text[:200]}",
            )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> HttpPingTransport:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()
