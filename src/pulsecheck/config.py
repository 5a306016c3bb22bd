"""Layered runtime context: flags, environment, config file, defaults."""

from __future__ import annotations

import os
import sys
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol
from urllib.parse import urlparse

import yaml

from pulsecheck.errors import AuthenticationError, ConfigParseError, ConfigurationError
from pulsecheck.models import OutputFormat, StaleCachePolicy
from pulsecheck.storage import load_yaml, write_yaml

APP_NAME = "pulsecheck"
DEFAULT_API_URL = "https://api.pulsecheck.dev"
DEFAULT_PING_URL = "https://ping.pulsecheck.dev"
DEFAULT_PING_TIMEOUT_SECONDS = 5.0
MAX_PING_TIMEOUT_SECONDS = 30.0


def get_config_dir(env: Mapping[str, str] | None = None) -> Path:
    """Per-user config directory, overridable with PULSECHECK_CONFIG_DIR."""

    env = os.environ if env is None else env
    override = env.get("PULSECHECK_CONFIG_DIR", "").strip()
    if override:
        return Path(override).expanduser()
    if sys.platform.startswith("win"):
        base = Path(env.get("APPDATA", str(Path.home())))
        return base / APP_NAME
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / APP_NAME

    xdg = env.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / APP_NAME
    return Path.home() / ".config" / APP_NAME


def get_config_path(env: Mapping[str, str] | None = None) -> Path:
    return get_config_dir(env) / "config.yaml"


def get_cache_path(env: Mapping[str, str] | None = None) -> Path:
    return get_config_dir(env) / "cache" / "checks.json"


def get_credentials_path(env: Mapping[str, str] | None = None) -> Path:
    return get_config_dir(env) / "credentials.json"


class TokenSource(Protocol):
    """Anything that can hand out a stored API token."""

    def get_token(self) -> str | None:
        """Return the stored token, if any."""


@dataclass(slots=True)
class ContextFlags:
    """Values supplied explicitly on the command line; ``None`` means absent."""

    api_url: str | None = None
    ping_url: str | None = None
    org: str | None = None
    project: str | None = None
    output_format: str | None = None
    api_key: str | None = None
    color: bool | None = None
    stale_cache_policy: str | None = None
    ping_timeout_seconds: float | None = None


@dataclass(frozen=True, slots=True)
class Context:
    """Resolved operating context for one invocation."""

    api_url: str = DEFAULT_API_URL
    ping_url: str = DEFAULT_PING_URL
    active_org_id: str | None = None
    active_project_id: str | None = None
    output_format: OutputFormat = OutputFormat.TABLE
    auth_token: str | None = None
    color_enabled: bool = True
    stale_cache_policy: StaleCachePolicy = StaleCachePolicy.SERVE_STALE
    ping_timeout_seconds: float = DEFAULT_PING_TIMEOUT_SECONDS
    token_error: ConfigurationError | None = None

    def require_org(self) -> str:
        if not self.active_org_id:
            raise ConfigurationError(
                "No organization selected. Pass --org, set PULSECHECK_ORG, "
                "or run: pulsecheck config set active_org_id <ID>",
            )
        return self.active_org_id

    def require_project(self) -> str:
        if not self.active_project_id:
            raise ConfigurationError(
                "No project selected. Pass --project, set PULSECHECK_PROJECT, "
                "or run: pulsecheck config set active_project_id <ID>",
            )
        return self.active_project_id

    def require_token(self) -> str:
        if not self.auth_token:
            if self.token_error is not None:
                raise self.token_error
            raise AuthenticationError(
                "Not logged in. Run: pulsecheck auth login --api-key <KEY> "
                "or set PULSECHECK_API_KEY.",
            )
        return self.auth_token

    def to_display(self) -> dict[str, Any]:
        """Context as plain values with the token masked."""

        return {
            "api_url": self.api_url,
            "ping_url": self.ping_url,
            "active_org_id": self.active_org_id,
            "active_project_id": self.active_project_id,
            "output_format": self.output_format.value,
            "auth_token": _mask_token(self.auth_token),
            "color_enabled": self.color_enabled,
            "stale_cache_policy": self.stale_cache_policy.value,
            "ping_timeout_seconds": self.ping_timeout_seconds,
        }


@dataclass(frozen=True, slots=True)
class _Field:
    name: str
    flag: str
    env: tuple[str, ...]
    file_key: str | None
    default: Any
    parse: Callable[[Any, str], Any]


def _parse_url(value: Any, where: str) -> str:
    if not isinstance(value, str):
        raise ConfigurationError(f"{where} must be a string URL, got {value!r}")
    normalized = value.strip().rstrip("/")
    parsed = urlparse(normalized)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ConfigurationError(
            f"Invalid URL in {where}: {value!r}. "
            "Expected an absolute URL with http:// or https:// scheme.",
        )
    return normalized


def _parse_id(value: Any, where: str) -> str | None:
    if isinstance(value, int) and not isinstance(value, bool):
        value = str(value)
    if not isinstance(value, str):
        raise ConfigurationError(f"{where} must be a string, got {value!r}")
    return value.strip() or None


def _parse_format(value: Any, where: str) -> OutputFormat:
    if isinstance(value, OutputFormat):
        return value
    try:
        return OutputFormat(str(value).strip().lower())
    except ValueError as error:
        raise ConfigurationError(
            f"Invalid output format in {where}: {value!r} (expected table or json)",
        ) from error


def _parse_policy(value: Any, where: str) -> StaleCachePolicy:
    if isinstance(value, StaleCachePolicy):
        return value
    try:
        return StaleCachePolicy(str(value).strip().lower())
    except ValueError as error:
        raise ConfigurationError(
            f"Invalid stale cache policy in {where}: {value!r} (expected serve-stale or fail)",
        ) from error


def _parse_bool(value: Any, where: str) -> bool:
    if isinstance(value, bool):
        return value
    normalized = str(value).strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ConfigurationError(f"Invalid boolean value in {where}: {value!r}")


def _parse_timeout(value: Any, where: str) -> float:
    try:
        seconds = float(value)
    except (TypeError, ValueError) as error:
        raise ConfigurationError(f"Invalid timeout in {where}: {value!r}") from error
    if not 0 < seconds <= MAX_PING_TIMEOUT_SECONDS:
        raise ConfigurationError(
            f"Ping timeout in {where} must be in (0, {MAX_PING_TIMEOUT_SECONDS:g}] seconds.",
        )
    return seconds


def _parse_token(value: Any, where: str) -> str | None:
    if not isinstance(value, str):
        raise ConfigurationError(f"{where} must be a string")
    return value.strip() or None


_FIELDS: tuple[_Field, ...] = (
    _Field("api_url", "api_url", ("PULSECHECK_API_URL",), "api_url", DEFAULT_API_URL, _parse_url),
    _Field(
        "ping_url", "ping_url", ("PULSECHECK_PING_URL",), "ping_url", DEFAULT_PING_URL, _parse_url
    ),
    _Field("active_org_id", "org", ("PULSECHECK_ORG",), "active_org_id", None, _parse_id),
    _Field(
        "active_project_id",
        "project",
        ("PULSECHECK_PROJECT",),
        "active_project_id",
        None,
        _parse_id,
    ),
    _Field(
        "output_format",
        "output_format",
        ("PULSECHECK_FORMAT",),
        "format",
        OutputFormat.TABLE,
        _parse_format,
    ),
    _Field("auth_token", "api_key", ("PULSECHECK_API_KEY",), None, None, _parse_token),
    _Field("color_enabled", "color", ("PULSECHECK_COLOR",), "color", True, _parse_bool),
    _Field(
        "stale_cache_policy",
        "stale_cache_policy",
        ("PULSECHECK_STALE_CACHE",),
        "stale_cache_policy",
        StaleCachePolicy.SERVE_STALE,
        _parse_policy,
    ),
    _Field(
        "ping_timeout_seconds",
        "ping_timeout_seconds",
        ("PULSECHECK_PING_TIMEOUT",),
        "ping_timeout_seconds",
        DEFAULT_PING_TIMEOUT_SECONDS,
        _parse_timeout,
    ),
)

CONFIG_FILE_KEYS: tuple[str, ...] = tuple(
    field.file_key for field in _FIELDS if field.file_key is not None
)
_FIELDS_BY_FILE_KEY = {field.file_key: field for field in _FIELDS if field.file_key is not None}


class ContextResolver:
    """Merge four configuration layers into a :class:`Context`.

    Every field is resolved on its own: the first layer that carries a value
    wins (flags, then environment, then config file, then built-in default).
    The auth token has no config-file layer; the credential provider takes
    its place after the environment. Resolution never writes anything.
    """

    def __init__(self, *, token_source: TokenSource | None = None) -> None:
        self._token_source = token_source

    def resolve(
        self,
        flags: ContextFlags,
        env: Mapping[str, str],
        file_config: Mapping[str, Any],
    ) -> Context:
        values: dict[str, Any] = {}
        for field in _FIELDS:
            values[field.name] = self._resolve_field(field, flags, env, file_config)
        if values["color_enabled"] and flags.color is None and env.get("NO_COLOR"):
            values["color_enabled"] = _no_color_override(env)
        if values["auth_token"] is None and self._token_source is not None:
            # A broken credential store only matters once a token is required.
            try:
                values["auth_token"] = self._token_source.get_token() or None
            except ConfigurationError as error:
                values["token_error"] = error
        return Context(**values)

    def _resolve_field(
        self,
        field: _Field,
        flags: ContextFlags,
        env: Mapping[str, str],
        file_config: Mapping[str, Any],
    ) -> Any:
        flag_value = getattr(flags, field.flag)
        if flag_value is not None:
            return field.parse(flag_value, f"--{field.flag.replace('_', '-')}")

        for env_name in field.env:
            raw = env.get(env_name)
            if raw is not None and raw.strip():
                return field.parse(raw, env_name)

        if field.file_key is not None:
            file_value = file_config.get(field.file_key)
            if file_value is not None:
                return field.parse(file_value, f"config file key {field.file_key!r}")

        return field.default


def _no_color_override(env: Mapping[str, str]) -> bool:
    """NO_COLOR (https://no-color.org) disables colour unless PULSECHECK_COLOR says otherwise."""

    explicit = env.get("PULSECHECK_COLOR")
    if explicit is not None and explicit.strip():
        return _parse_bool(explicit, "PULSECHECK_COLOR")
    return False


def _mask_token(token: str | None) -> str | None:
    if not token:
        return None
    if len(token) <= 8:
        return "*" * len(token)
    return f"{token[:6]}…{token[-4:]}"


class ConfigFile:
    """YAML config document at a fixed path; load is lenient on absence, strict on format."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> dict[str, Any]:
        document = self._read_document()
        return {key: value for key, value in document.items() if key in _FIELDS_BY_FILE_KEY}

    def _read_document(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            return load_yaml(self.path)
        except yaml.YAMLError as error:
            raise ConfigParseError(self.path, str(error)) from error
        except TypeError as error:
            raise ConfigParseError(self.path, str(error)) from error
        except OSError as error:
            raise ConfigurationError(f"Failed to read config {self.path}: {error}") from error

    def save(self, values: Mapping[str, Any]) -> None:
        write_yaml(self.path, {key: value for key, value in values.items() if value is not None})

    def set_value(self, key: str, raw_value: str) -> Any:
        """Validate ``raw_value`` for ``key`` and persist it; returns the stored value."""

        field = _FIELDS_BY_FILE_KEY.get(key)
        if field is None:
            raise ConfigurationError(
                f"Unknown config key: {key!r}. Known keys: {', '.join(CONFIG_FILE_KEYS)}",
            )
        parsed = field.parse(raw_value, f"config key {key!r}")
        stored = parsed.value if isinstance(parsed, OutputFormat | StaleCachePolicy) else parsed
        document = self._read_document()
        document[key] = stored
        self.save(document)
        return stored

    def unset_value(self, key: str) -> bool:
        if key not in _FIELDS_BY_FILE_KEY:
            raise ConfigurationError(
                f"Unknown config key: {key!r}. Known keys: {', '.join(CONFIG_FILE_KEYS)}",
            )
        document = self._read_document()
        if key not in document:
            return False
        del document[key]
        self.save(document)
        return True
