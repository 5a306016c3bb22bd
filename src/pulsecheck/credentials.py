"""API token storage behind a small get/set provider interface."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Protocol

from pulsecheck.errors import AuthenticationError, ConfigurationError
from pulsecheck.storage import load_json, write_json

API_KEY_PREFIX = "pk_"
API_KEY_MIN_LENGTH = 20
_CREDENTIALS_FILE_MODE = 0o600


class TokenProvider(Protocol):
    """Credential store as seen by the rest of the CLI."""

    def get_token(self) -> str | None:
        """Return the stored token, if any."""

    def set_token(self, token: str) -> None:
        """Persist ``token`` as the active credential."""

    def clear_token(self) -> bool:
        """Forget the stored token; return whether one existed."""


def validate_api_key(key: str) -> str:
    """Return the stripped key or raise when it does not look like an API key."""

    normalized = key.strip()
    if not normalized.startswith(API_KEY_PREFIX) or len(normalized) < API_KEY_MIN_LENGTH:
        raise AuthenticationError(
            f"Invalid API key format. Keys start with '{API_KEY_PREFIX}' "
            f"and are at least {API_KEY_MIN_LENGTH} characters long.",
        )
    return normalized


class FileTokenProvider:
    """Token kept in a user-only JSON document next to the config file."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def get_token(self) -> str | None:
        if not self.path.exists():
            return None
        try:
            payload = load_json(self.path)
        except (json.JSONDecodeError, TypeError) as error:
            raise ConfigurationError(
                f"Credentials file {self.path} is corrupted. "
                "Run: pulsecheck auth login --api-key <KEY>",
            ) from error
        token = payload.get("api_key")
        if not isinstance(token, str) or not token.strip():
            return None
        return token.strip()

    def set_token(self, token: str) -> None:
        write_json(self.path, {"api_key": validate_api_key(token)}, mode=_CREDENTIALS_FILE_MODE)

    def clear_token(self) -> bool:
        if not self.path.exists():
            return False
        self.path.unlink()
        return True


class StaticTokenProvider:
    """In-memory provider for tests and embedding."""

    def __init__(self, token: str | None = None) -> None:
        self._token = token

    def get_token(self) -> str | None:
        return self._token

    def set_token(self, token: str) -> None:
        self._token = validate_api_key(token)

    def clear_token(self) -> bool:
        existed = self._token is not None
        self._token = None
        return existed
