"""Error taxonomy shared by the resolver, cache, transport and CLI."""

from __future__ import annotations

EXIT_USAGE = 2
EXIT_NOT_FOUND = 3
EXIT_NETWORK = 4
EXIT_AUTH = 5
EXIT_INTERNAL = 7


class PulsecheckError(Exception):
    """Base error for pulsecheck."""

    exit_code = EXIT_INTERNAL


class ConfigurationError(PulsecheckError):
    """Required context is missing or a config layer holds an invalid value."""

    exit_code = EXIT_USAGE


class ConfigParseError(ConfigurationError):
    """Config file exists but cannot be parsed; nothing in it is trusted."""

    def __init__(self, path: object, reason: str) -> None:
        super().__init__(f"Invalid config file {path}: {reason}")
        self.path = path
        self.reason = reason


class AuthenticationError(PulsecheckError):
    """No usable API token for an operation that needs one."""

    exit_code = EXIT_AUTH


class NotFoundError(PulsecheckError):
    """Backend has no resource matching the requested identifier."""

    exit_code = EXIT_NOT_FOUND


class CheckNotFoundError(NotFoundError):
    """Slug could not be resolved after a remote lookup."""

    def __init__(self, slug: str, project_id: str | None = None) -> None:
        scope = f" in project {project_id}" if project_id else ""
        super().__init__(f"Check '{slug}' not found{scope}. Run: pulsecheck check list")
        self.slug = slug
        self.project_id = project_id


class ProjectNotFoundError(NotFoundError):
    """Project id, slug or name is unknown in the active organization."""

    def __init__(self, project: str) -> None:
        super().__init__(f"Project '{project}' not found. Run: pulsecheck project list")
        self.project = project


class OrgNotFoundError(NotFoundError):
    """Organization id or name is not one the API key can see."""

    def __init__(self, org: str) -> None:
        super().__init__(f"Organization '{org}' not found. Run: pulsecheck org list")
        self.org = org


class LookupFailedError(PulsecheckError):
    """Transport failure while refreshing an identifier from the backend."""

    exit_code = EXIT_NETWORK


class ApiError(LookupFailedError):
    """Backend answered with an unexpected status or could not be reached."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ExecutionError(PulsecheckError):
    """Wrapped command could not be spawned."""

    def __init__(self, message: str, *, exit_code: int) -> None:
        super().__init__(message)
        self.exit_code = exit_code


class PingError(PulsecheckError):
    """Ping delivery failed; never fatal for a wrapped job."""

    exit_code = EXIT_NETWORK
