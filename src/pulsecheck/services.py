"""Identifier resolution and direct pings shared by the CLI and the orchestrator."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from pulsecheck.cache import IdentifierCache
from pulsecheck.config import Context
from pulsecheck.http.ping import PingTransport
from pulsecheck.models import ByPublicId, BySlug, CheckIdentifier, PingKind

logger = logging.getLogger(__name__)


def resolve_target(
    identifier: CheckIdentifier,
    *,
    context: Context,
    cache: IdentifierCache,
) -> ByPublicId:
    """Turn any identifier into the UUID used on the ping endpoint.

    A public id is returned as-is without looking at credentials. A slug
    needs a token and a project, then goes through the identifier cache.
    """

    if isinstance(identifier, ByPublicId):
        return identifier
    if not isinstance(identifier, BySlug):
        raise TypeError(f"Unsupported check identifier: {identifier!r}")
    context.require_token()
    project_id = identifier.project_id or context.require_project()
    uuid = cache.resolve(project_id, identifier.slug)
    logger.debug("Resolved %s/%s to %s", project_id, identifier.slug, uuid)
    return ByPublicId(uuid=uuid)


@dataclass(slots=True)
class DirectPing:
    """One explicit ping requested from the command line."""

    kind: PingKind
    exit_code: int | None = None
    run_id: str | None = None
    duration_ms: int | None = None


def send_direct_ping(
    identifier: CheckIdentifier,
    ping: DirectPing,
    *,
    context: Context,
    cache: IdentifierCache,
    transport: PingTransport,
) -> ByPublicId:
    """Resolve and send; unlike monitored runs, ping failures propagate."""

    target = resolve_target(identifier, context=context, cache=cache)
    transport.send_ping(
        target,
        ping.kind,
        exit_code=ping.exit_code,
        duration_ms=ping.duration_ms,
        run_id=ping.run_id,
    )
    return target


def ping_kind_for(*, start: bool, fail: bool, exit_code: int | None) -> PingKind:
    if start:
        return PingKind.START
    if fail:
        return PingKind.FAIL
    if exit_code is not None and exit_code != 0:
        return PingKind.FAIL
    return PingKind.SUCCESS
