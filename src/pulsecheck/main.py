"""CLI entrypoint for pulsecheck."""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager

import rich_click as click

from pulsecheck import __version__
from pulsecheck.config import CONFIG_FILE_KEYS, ContextFlags
from pulsecheck.controllers import (
    AuthLoginCommand,
    CheckListCommand,
    ConfigSetCommand,
    MonitorCommand,
    OrgSwitchCommand,
    PingCommand,
    ProjectSwitchCommand,
    PulsecheckCliController,
)
from pulsecheck.errors import PulsecheckError

click.rich_click.USE_MARKDOWN = True
CONTROLLER = PulsecheckCliController()

_LOG_FORMAT = "%(levelname)s %(message)s"


class PulsecheckClickException(click.ClickException):
    """Click-facing error that keeps the category exit code."""

    def __init__(self, message: str, exit_code: int) -> None:
        super().__init__(message)
        self.exit_code = exit_code


class WrappedCommand(click.RichCommand):
    """Command that hands everything after ``--`` to the callback untouched."""

    def parse_args(self, ctx: click.Context, args: list[str]) -> list[str]:
        if "--" in args:
            index = args.index("--")
            ctx.meta["wrapped_command"] = tuple(args[index + 1 :])
            args = args[:index]
        return super().parse_args(ctx, args)


@contextmanager
def _cli_errors() -> Iterator[None]:
    try:
        yield
    except PulsecheckError as error:
        raise PulsecheckClickException(str(error), error.exit_code) from error
    except ValueError as error:
        raise click.UsageError(str(error)) from error


def _configure_logging(verbose: bool) -> None:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    package_logger = logging.getLogger("pulsecheck")
    for existing in list(package_logger.handlers):
        package_logger.removeHandler(existing)
    package_logger.addHandler(handler)
    package_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)


@click.group()
@click.version_option(version=__version__, prog_name="pulsecheck")
@click.option("--api-url", default=None, help="Management API base URL.")
@click.option("--ping-url", default=None, help="Ping endpoint base URL.")
@click.option("--org", default=None, help="Active organization id.")
@click.option("--project", default=None, help="Active project id.")
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json"], case_sensitive=False),
    default=None,
    help="Output format (default: table).",
)
@click.option("--api-key", default=None, help="API key for this invocation only.")
@click.option(
    "--color/--no-color",
    default=None,
    help="Force coloured output on or off. NO_COLOR is honoured when omitted.",
)
@click.option(
    "--stale-cache",
    "stale_cache_policy",
    type=click.Choice(["serve-stale", "fail"], case_sensitive=False),
    default=None,
    help="What to do when a cached check id is expired and the API is unreachable.",
)
@click.option(
    "--ping-timeout",
    "ping_timeout_seconds",
    type=float,
    default=None,
    help="Per-ping timeout in seconds (default: 5).",
)
@click.option("--verbose", "-v", is_flag=True, default=False, help="Debug logging on stderr.")
@click.pass_context
def pulsecheck(  # noqa: PLR0913
    ctx: click.Context,
    api_url: str | None,
    ping_url: str | None,
    org: str | None,
    project: str | None,
    output_format: str | None,
    api_key: str | None,
    color: bool | None,
    stale_cache_policy: str | None,
    ping_timeout_seconds: float | None,
    verbose: bool,
) -> None:
    """Heartbeat monitoring for scheduled jobs.

    Wrap a job with `pulsecheck monitor my-job -- ./backup.sh` to report
    start, success and failure to the ping endpoint.
    """

    _configure_logging(verbose)
    ctx.obj = ContextFlags(
        api_url=api_url,
        ping_url=ping_url,
        org=org,
        project=project,
        output_format=output_format,
        api_key=api_key,
        color=color,
        stale_cache_policy=stale_cache_policy,
        ping_timeout_seconds=ping_timeout_seconds,
    )


@pulsecheck.command("ping")
@click.argument("slug", required=False)
@click.option(
    "--public-id",
    envvar="PULSECHECK_PUBLIC_ID",
    default=None,
    help="Check UUID; skips slug lookup and needs no API key.",
)
@click.option("--start", is_flag=True, default=False, help="Send a start ping.")
@click.option("--fail", is_flag=True, default=False, help="Send a failure ping.")
@click.option("--exit-code", type=int, default=None, help="Report this exit code.")
@click.option("--run", "run_id", default=None, help="Run id pairing start and finish pings.")
@click.option(
    "--duration-ms",
    type=click.IntRange(min=0),
    default=None,
    help="Run duration reported with a finish ping.",
)
@click.pass_obj
def ping(  # noqa: PLR0913
    flags: ContextFlags,
    slug: str | None,
    public_id: str | None,
    start: bool,
    fail: bool,
    exit_code: int | None,
    run_id: str | None,
    duration_ms: int | None,
) -> None:
    """Send a single ping for a check."""

    if start and (fail or exit_code is not None):
        raise click.UsageError("--start cannot be combined with --fail or --exit-code.")
    with _cli_errors():
        CONTROLLER.ping(
            flags,
            PingCommand(
                slug=slug,
                public_id=public_id,
                start=start,
                fail=fail,
                exit_code=exit_code,
                run_id=run_id,
                duration_ms=duration_ms,
            ),
        )


@pulsecheck.command("monitor", cls=WrappedCommand)
@click.argument("slug", required=False)
@click.option(
    "--public-id",
    envvar="PULSECHECK_PUBLIC_ID",
    default=None,
    help="Check UUID; skips slug lookup and needs no API key.",
)
@click.pass_context
def monitor(ctx: click.Context, slug: str | None, public_id: str | None) -> None:
    """Run a command between start and finish pings.

    Usage: `pulsecheck monitor SLUG -- COMMAND [ARGS...]`. The exit code is
    the command's own; ping problems are only reported as warnings.
    """

    with _cli_errors():
        code = CONTROLLER.monitor(
            ctx.obj,
            MonitorCommand(
                slug=slug,
                public_id=public_id,
                command=ctx.meta.get("wrapped_command", ()),
            ),
        )
    ctx.exit(code)


@pulsecheck.group()
def check() -> None:
    """Check id cache commands."""


@check.command("list")
@click.option("--refresh", is_flag=True, default=False, help="Resync from the API first.")
@click.pass_obj
def check_list(flags: ContextFlags, refresh: bool) -> None:
    """List cached checks of the active project."""

    with _cli_errors():
        CONTROLLER.check_list(flags, CheckListCommand(refresh=refresh))


@check.command("sync")
@click.pass_obj
def check_sync(flags: ContextFlags) -> None:
    """Replace the local check cache with the project's checks from the API."""

    with _cli_errors():
        CONTROLLER.check_sync(flags)


@check.command("clear")
@click.pass_obj
def check_clear(flags: ContextFlags) -> None:
    """Delete the local check cache; the next slug lookup refetches."""

    with _cli_errors():
        _emit_lines(CONTROLLER.check_clear(flags))


@pulsecheck.group()
def org() -> None:
    """Organization commands."""


@org.command("list")
@click.pass_obj
def org_list(flags: ContextFlags) -> None:
    """List organizations visible to the API key; `*` marks the active one."""

    with _cli_errors():
        CONTROLLER.org_list(flags)


@org.command("switch")
@click.argument("name_or_id")
@click.pass_obj
def org_switch(flags: ContextFlags, name_or_id: str) -> None:
    """Make an organization active by name or id and store it in the config file."""

    with _cli_errors():
        _emit_lines(CONTROLLER.org_switch(flags, OrgSwitchCommand(name_or_id=name_or_id)))


@pulsecheck.group()
def project() -> None:
    """Project commands for the active organization."""


@project.command("list")
@click.pass_obj
def project_list(flags: ContextFlags) -> None:
    """List projects of the active organization; `*` marks the default one."""

    with _cli_errors():
        CONTROLLER.project_list(flags)


@project.command("switch")
@click.argument("identifier")
@click.pass_obj
def project_switch(flags: ContextFlags, identifier: str) -> None:
    """Set the default project by id, slug or name."""

    with _cli_errors():
        _emit_lines(CONTROLLER.project_switch(flags, ProjectSwitchCommand(identifier=identifier)))


@pulsecheck.group()
def config() -> None:
    """Config file commands."""


@config.command("show")
@click.pass_obj
def config_show(flags: ContextFlags) -> None:
    """Print the resolved context with the API key masked."""

    with _cli_errors():
        CONTROLLER.config_show(flags)


@config.command("set")
@click.argument("key", type=click.Choice(CONFIG_FILE_KEYS))
@click.argument("value")
def config_set(key: str, value: str) -> None:
    """Store one key in the config file."""

    with _cli_errors():
        _emit_lines(CONTROLLER.config_set(ConfigSetCommand(key=key, value=value)))


@config.command("unset")
@click.argument("key", type=click.Choice(CONFIG_FILE_KEYS))
def config_unset(key: str) -> None:
    """Remove one key from the config file."""

    with _cli_errors():
        _emit_lines(CONTROLLER.config_unset(ConfigSetCommand(key=key)))


@pulsecheck.group()
def auth() -> None:
    """API key commands."""


@auth.command("login")
@click.option("--api-key", required=True, help="API key (starts with pk_).")
def auth_login(api_key: str) -> None:
    """Store an API key for later invocations."""

    with _cli_errors():
        _emit_lines(CONTROLLER.auth_login(AuthLoginCommand(api_key=api_key)))


@auth.command("logout")
def auth_logout() -> None:
    """Remove the stored API key."""

    with _cli_errors():
        _emit_lines(CONTROLLER.auth_logout())


@auth.command("status")
@click.pass_obj
def auth_status(flags: ContextFlags) -> None:
    """Show where the active API key comes from."""

    with _cli_errors():
        _emit_lines(CONTROLLER.auth_status(flags))


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    pulsecheck()
