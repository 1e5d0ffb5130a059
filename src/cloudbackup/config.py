"""
Endpoint configuration — which server, which account.

Values are persisted through a small key-value store so they survive
across sessions. The YAML-backed store keeps everything in
``<home>/config.yaml``; the in-memory store is for embedding and tests.

The collision scope (the server hostname) is never stored: it is
resolved from the address each time an operation runs.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional
from urllib.parse import urlsplit

import yaml
from pydantic import ValidationError

from . import BACKUP_HOME
from .exceptions import InvalidAddressError
from .models import ClientSettings, EndpointConfig

logger = logging.getLogger("cloudbackup.config")

SERVER_ADDRESS_KEY = "serverAddress"
USER_NAME_KEY = "userName"
ACCESS_CODE_KEY = "accessCode"


class KeyValueStore(ABC):
    """Persisted string key-value store."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the stored value, or None if the key was never set."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store a value, replacing any previous one."""


class MemoryKeyValueStore(KeyValueStore):
    """Process-local store; nothing survives the session."""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value


class YamlKeyValueStore(KeyValueStore):
    """Flat mapping stored in a YAML file.

    A missing or unreadable file behaves like an empty store.
    """

    def __init__(self, path: Path):
        self.path = Path(path).expanduser()

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = yaml.safe_load(self.path.read_text(encoding="utf-8")) or {}
        except (yaml.YAMLError, OSError) as exc:
            logger.warning("Failed to read %s: %s", self.path, exc)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring %s: expected a mapping", self.path)
            return {}
        return {str(k): "" if v is None else str(v) for k, v in data.items()}

    def get(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(
            yaml.dump(data, default_flow_style=False), encoding="utf-8"
        )


class EndpointStore:
    """Holds the current endpoint values and persists every change.

    Setters store exactly what they are given. Operations call
    ``snapshot()`` once at start and work from that copy.
    """

    def __init__(self, store: KeyValueStore):
        self.store = store
        self._server_address = store.get(SERVER_ADDRESS_KEY) or ""
        self._user_identifier = store.get(USER_NAME_KEY) or ""
        self._access_credential = store.get(ACCESS_CODE_KEY) or ""

    @property
    def server_address(self) -> str:
        return self._server_address

    @property
    def user_identifier(self) -> str:
        return self._user_identifier

    @property
    def access_credential(self) -> str:
        return self._access_credential

    def set_server_address(self, address: str) -> None:
        self._server_address = address
        self.store.set(SERVER_ADDRESS_KEY, address)

    def set_user_identifier(self, identifier: str) -> None:
        self._user_identifier = identifier
        self.store.set(USER_NAME_KEY, identifier)

    def set_access_credential(self, credential: str) -> None:
        self._access_credential = credential
        self.store.set(ACCESS_CODE_KEY, credential)

    def snapshot(self) -> EndpointConfig:
        """Freeze the current values for one operation."""
        return EndpointConfig(
            server_address=self._server_address,
            user_identifier=self._user_identifier,
            access_credential=self._access_credential,
        )


def resolve_collision_scope(address: str) -> str:
    """Return the hostname of ``address``, the backup collision scope.

    Args:
        address: Server address as typed by the user.

    Returns:
        str: Lower-cased hostname, e.g. ``backup.example.com``.

    Raises:
        InvalidAddressError: If the address is not an absolute URL.
    """
    try:
        parts = urlsplit(address.strip())
        hostname = parts.hostname
        parts.port  # raises ValueError on a malformed port
    except ValueError as exc:
        raise InvalidAddressError(f"Invalid server address: {address!r}") from exc

    if not parts.scheme or not hostname:
        raise InvalidAddressError(f"Invalid server address: {address!r}")
    return hostname


def load_settings(home: Optional[Path] = None) -> ClientSettings:
    """Load client settings from ``<home>/settings.yaml``.

    Args:
        home: Client home directory. Defaults to ~/.cloudbackup.

    Returns:
        ClientSettings: Parsed settings, or defaults if the file is
        missing or invalid.
    """
    home_path = (home or Path(BACKUP_HOME)).expanduser()
    settings_file = home_path / "settings.yaml"
    if settings_file.exists():
        try:
            data = yaml.safe_load(settings_file.read_text(encoding="utf-8")) or {}
            return ClientSettings(**data)
        except (yaml.YAMLError, ValidationError, TypeError) as exc:
            logger.warning("Failed to load client settings: %s", exc)
    return ClientSettings()


def open_endpoint_store(home: Optional[Path] = None) -> EndpointStore:
    """Endpoint store persisted in ``<home>/config.yaml``."""
    home_path = (home or Path(BACKUP_HOME)).expanduser()
    return EndpointStore(YamlKeyValueStore(home_path / "config.yaml"))
