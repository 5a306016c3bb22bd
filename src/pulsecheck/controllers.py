"""Controllers behind the CLI commands."""

from __future__ import annotations

import os
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime

import httpx

from pulsecheck.cache import CacheFile, IdentifierCache, describe_age
from pulsecheck.config import (
    ConfigFile,
    Context,
    ContextFlags,
    ContextResolver,
    get_cache_path,
    get_config_path,
    get_credentials_path,
)
from pulsecheck.credentials import FileTokenProvider, TokenProvider
from pulsecheck.errors import OrgNotFoundError, ProjectNotFoundError
from pulsecheck.http.client import ApiClient
from pulsecheck.http.ping import HttpPingTransport
from pulsecheck.models import (
    OrgSummary,
    OutputFormat,
    PingKind,
    ProjectSummary,
    select_identifier,
)
from pulsecheck.monitor.orchestrator import MonitorOrchestrator
from pulsecheck.monitor.runner import ProcessRunner, SubprocessRunner
from pulsecheck.output import Renderer, TableView
from pulsecheck.services import DirectPing, ping_kind_for, send_direct_ping


@dataclass(slots=True)
class PingCommand:
    """CLI input for a single ping."""

    slug: str | None
    public_id: str | None
    start: bool = False
    fail: bool = False
    exit_code: int | None = None
    run_id: str | None = None
    duration_ms: int | None = None


@dataclass(slots=True)
class MonitorCommand:
    """CLI input for a wrapped run."""

    slug: str | None
    public_id: str | None
    command: tuple[str, ...]


@dataclass(slots=True)
class CheckListCommand:
    """CLI input for listing cached checks."""

    refresh: bool = False


@dataclass(slots=True)
class ConfigSetCommand:
    """CLI input for editing one config key."""

    key: str
    value: str | None = None


@dataclass(slots=True)
class OrgSwitchCommand:
    """CLI input for selecting the active organization."""

    name_or_id: str


@dataclass(slots=True)
class ProjectSwitchCommand:
    """CLI input for selecting the default project."""

    identifier: str


@dataclass(slots=True)
class AuthLoginCommand:
    """CLI input for storing an API key."""

    api_key: str


@dataclass(slots=True)
class _Runtime:
    context: Context
    renderer: Renderer
    cache: IdentifierCache
    api_client: ApiClient


@dataclass(slots=True)
class PulsecheckCliController:
    """Builds the collaborators for each command from the resolved context."""

    env: Mapping[str, str] | None = None
    http_transport: httpx.BaseTransport | None = None
    ping_transport: httpx.BaseTransport | None = None
    runner_factory: Callable[[], ProcessRunner] = SubprocessRunner
    token_provider: TokenProvider | None = None
    _config_file: ConfigFile | None = field(default=None, init=False)

    def ping(self, flags: ContextFlags, command: PingCommand) -> None:
        with self._runtime(flags) as runtime:
            identifier = select_identifier(
                slug=command.slug,
                public_id=command.public_id,
                project_id=None,
            )
            kind = ping_kind_for(
                start=command.start,
                fail=command.fail,
                exit_code=command.exit_code,
            )
            with HttpPingTransport(
                ping_url=runtime.context.ping_url,
                timeout_seconds=runtime.context.ping_timeout_seconds,
                transport=self.ping_transport,
            ) as transport:
                target = send_direct_ping(
                    identifier,
                    DirectPing(
                        kind=kind,
                        exit_code=command.exit_code,
                        run_id=command.run_id,
                        duration_ms=None if kind is PingKind.START else command.duration_ms,
                    ),
                    context=runtime.context,
                    cache=runtime.cache,
                    transport=transport,
                )
            runtime.renderer.message(
                f"Sent {kind.value} ping for {identifier.label}",
                payload={
                    "status": "ok",
                    "kind": kind.value,
                    "check": identifier.label,
                    "public_id": target.uuid,
                },
            )

    def monitor(self, flags: ContextFlags, command: MonitorCommand) -> int:
        if not command.command:
            raise ValueError("No command specified. Usage: pulsecheck monitor SLUG -- COMMAND")
        with self._runtime(flags) as runtime:
            identifier = select_identifier(slug=command.slug, public_id=command.public_id)
            with HttpPingTransport(
                ping_url=runtime.context.ping_url,
                timeout_seconds=runtime.context.ping_timeout_seconds,
                transport=self.ping_transport,
            ) as transport:
                orchestrator = MonitorOrchestrator(
                    context=runtime.context,
                    cache=runtime.cache,
                    transport=transport,
                    runner=self.runner_factory(),
                )
                head, *rest = command.command
                return orchestrator.run(identifier, head, rest)

    def check_list(self, flags: ContextFlags, command: CheckListCommand) -> None:
        with self._runtime(flags) as runtime:
            project_id = runtime.context.require_project()
            if command.refresh:
                runtime.context.require_token()
                entries = runtime.cache.resync(project_id)
            else:
                entries = runtime.cache.entries(project_id)
            now = datetime.now(tz=UTC)
            if not entries and runtime.context.output_format is OutputFormat.TABLE:
                runtime.renderer.message(
                    f"No cached checks for project {project_id}. Run: pulsecheck check sync",
                )
                return
            runtime.renderer.table(
                TableView(
                    title=f"Checks in project {project_id}",
                    columns=("Slug", "Name", "Status", "Public ID", "Cached"),
                    rows=[
                        (entry.slug, entry.name, entry.status, entry.uuid, describe_age(entry, now))
                        for entry in entries
                    ],
                    payload=[entry.to_payload() for entry in entries],
                ),
            )

    def check_sync(self, flags: ContextFlags) -> None:
        with self._runtime(flags) as runtime:
            project_id = runtime.context.require_project()
            runtime.context.require_token()
            entries = runtime.cache.resync(project_id)
            runtime.renderer.message(
                f"Synced {len(entries)} checks for project {project_id}",
                payload={"project_id": project_id, "synced": len(entries)},
            )

    def check_clear(self, flags: ContextFlags) -> list[str]:
        with self._runtime(flags) as runtime:
            if runtime.cache.clear():
                return ["Check cache cleared."]
            return ["Check cache is already empty."]

    def org_list(self, flags: ContextFlags) -> None:
        with self._runtime(flags) as runtime:
            runtime.context.require_token()
            orgs = runtime.api_client.list_orgs()
            active = runtime.context.active_org_id
            if not orgs and runtime.context.output_format is OutputFormat.TABLE:
                runtime.renderer.message("No organizations found for this API key.")
                return
            runtime.renderer.table(
                TableView(
                    title="Organizations",
                    columns=("Name", "ID", "Role", "Active"),
                    rows=[
                        (org.name, org.id, org.role, "*" if org.id == active else "")
                        for org in orgs
                    ],
                    payload=[
                        {
                            "id": org.id,
                            "name": org.name,
                            "role": org.role,
                            "active": org.id == active,
                        }
                        for org in orgs
                    ],
                ),
            )

    def org_switch(self, flags: ContextFlags, command: OrgSwitchCommand) -> list[str]:
        with self._runtime(flags) as runtime:
            runtime.context.require_token()
            org = _find_org(runtime.api_client.list_orgs(), command.name_or_id)
            previous = runtime.context.active_org_id
        config = self._config()
        config.set_value("active_org_id", org.id)
        lines = [f"Active organization: {org.name} ({org.id})"]
        if previous != org.id and config.unset_value("active_project_id"):
            lines.append("Default project cleared. Run: pulsecheck project switch <PROJECT>")
        return lines

    def project_list(self, flags: ContextFlags) -> None:
        with self._runtime(flags) as runtime:
            org_id = runtime.context.require_org()
            runtime.context.require_token()
            projects = runtime.api_client.list_projects(org_id)
            default = runtime.context.active_project_id
            if not projects and runtime.context.output_format is OutputFormat.TABLE:
                runtime.renderer.message(f"No projects in organization {org_id}.")
                return
            runtime.renderer.table(
                TableView(
                    title=f"Projects in organization {org_id}",
                    columns=("Name", "Slug", "ID", "Description", "Default"),
                    rows=[
                        (
                            project.name,
                            project.slug,
                            project.id,
                            project.description,
                            "*" if project.id == default else "",
                        )
                        for project in projects
                    ],
                    payload=[_project_payload(project, default) for project in projects],
                ),
            )

    def project_switch(self, flags: ContextFlags, command: ProjectSwitchCommand) -> list[str]:
        with self._runtime(flags) as runtime:
            org_id = runtime.context.require_org()
            runtime.context.require_token()
            projects = runtime.api_client.list_projects(org_id)
        project = next((item for item in projects if item.matches(command.identifier)), None)
        if project is None:
            raise ProjectNotFoundError(command.identifier)
        self._config().set_value("active_project_id", project.id)
        return [f"Active project: {project.name} ({project.id})"]

    def config_show(self, flags: ContextFlags) -> None:
        with self._runtime(flags) as runtime:
            values = runtime.context.to_display()
            values["config_path"] = str(self._config().path)
            values["cache_path"] = str(get_cache_path(self._env()))
            runtime.renderer.table(
                TableView(
                    title="Resolved context",
                    columns=("Key", "Value"),
                    rows=sorted(values.items()),
                    payload=values,
                ),
            )

    def config_set(self, command: ConfigSetCommand) -> list[str]:
        stored = self._config().set_value(command.key, command.value or "")
        return [f"Set {command.key} = {stored} in {self._config().path}"]

    def config_unset(self, command: ConfigSetCommand) -> list[str]:
        if self._config().unset_value(command.key):
            return [f"Removed {command.key} from {self._config().path}"]
        return [f"{command.key} was not set in {self._config().path}"]

    def auth_login(self, command: AuthLoginCommand) -> list[str]:
        self._tokens().set_token(command.api_key)
        return ["API key stored."]

    def auth_logout(self) -> list[str]:
        if self._tokens().clear_token():
            return ["Stored API key removed."]
        return ["No stored API key."]

    def auth_status(self, flags: ContextFlags) -> list[str]:
        env = self._env()
        if flags.api_key:
            source = "--api-key flag"
        elif env.get("PULSECHECK_API_KEY", "").strip():
            source = "PULSECHECK_API_KEY environment variable"
        elif self._tokens().get_token():
            source = "stored credentials"
        else:
            return ["Not logged in. Run: pulsecheck auth login --api-key <KEY>"]
        return [f"Authenticated via {source}."]

    @contextmanager
    def _runtime(self, flags: ContextFlags) -> Iterator[_Runtime]:
        context = self.resolve_context(flags)
        api_client = ApiClient(
            base_url=context.api_url,
            token=context.auth_token,
            transport=self.http_transport,
        )
        try:
            yield _Runtime(
                context=context,
                renderer=Renderer(output_format=context.output_format, color=context.color_enabled),
                cache=IdentifierCache(
                    cache_file=CacheFile(get_cache_path(self._env())),
                    lookup=api_client,
                    policy=context.stale_cache_policy,
                ),
                api_client=api_client,
            )
        finally:
            api_client.close()

    def resolve_context(self, flags: ContextFlags) -> Context:
        resolver = ContextResolver(token_source=self._tokens())
        return resolver.resolve(flags, self._env(), self._config().load())

    def _env(self) -> Mapping[str, str]:
        return os.environ if self.env is None else self.env

    def _config(self) -> ConfigFile:
        if self._config_file is None:
            self._config_file = ConfigFile(get_config_path(self._env()))
        return self._config_file

    def _tokens(self) -> TokenProvider:
        if self.token_provider is None:
            self.token_provider = FileTokenProvider(get_credentials_path(self._env()))
        return self.token_provider


def _find_org(orgs: list[OrgSummary], name_or_id: str) -> OrgSummary:
    wanted = name_or_id.casefold()
    for org in orgs:
        if org.id == name_or_id or org.name.casefold() == wanted:
            return org
    raise OrgNotFoundError(name_or_id)


def _project_payload(project: ProjectSummary, default: str | None) -> dict[str, object]:
    return {
        "id": project.id,
        "org_id": project.org_id,
        "name": project.name,
        "slug": project.slug,
        "description": project.description,
        "default": project.id == default,
    }
