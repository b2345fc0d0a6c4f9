"""
Persistence for Jamf Pro credentials.

Server URL, client ID and the persist flag live in a plain YAML preferences
file; the client secret goes to the OS keyring, keyed by a fixed service name
and the client ID as account.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import keyring
import yaml
from keyring.errors import KeyringError, PasswordDeleteError

from .config import DEFAULT_PREFERENCES_PATH, KEYRING_SERVICE
from .logging_utils import mask
from .models import Credentials


class PreferencesStore:
    """Non-secret settings stored as YAML."""

    def __init__(self, path: Optional[Path] = None, logger: Optional[logging.Logger] = None):
        self.path = path or DEFAULT_PREFERENCES_PATH
        self.logger = logger or logging.getLogger(__name__)

    def load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as handle:
                data = yaml.safe_load(handle) or {}
        except (OSError, yaml.YAMLError) as exc:
            self.logger.warning("Ignoring unreadable preferences file %s: %s", self.path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def save(self, server_url: str, client_id: str, persist: bool) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = {"server_url": server_url, "client_id": client_id, "persist": persist}
        with self.path.open("w", encoding="utf-8") as handle:
            yaml.safe_dump(data, handle, default_flow_style=False)
        self.logger.debug("Wrote preferences to %s", self.path)


class SecretStore:
    """Wraps OS keyring access for the client secret."""

    def __init__(self, service_name: str = KEYRING_SERVICE, backend: Any = None, logger: Optional[logging.Logger] = None):
        self.service_name = service_name
        self._backend = backend or keyring.get_keyring()
        self.logger = logger or logging.getLogger(__name__)

    def get_secret(self, account: str) -> Optional[str]:
        try:
            return self._backend.get_password(self.service_name, account)
        except KeyringError as exc:
            self.logger.warning("Keyring read failed: %s", exc)
            return None

    def set_secret(self, account: str, secret: str) -> None:
        self._backend.set_password(self.service_name, account, secret)

    def delete_secret(self, account: str) -> None:
        try:
            self._backend.delete_password(self.service_name, account)
        except PasswordDeleteError:
            pass


class CredentialStore:
    """Loads and saves Credentials across the preferences file and keyring."""

    def __init__(
        self,
        preferences: Optional[PreferencesStore] = None,
        secrets: Optional[SecretStore] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.logger = logger or logging.getLogger(__name__)
        self.preferences = preferences or PreferencesStore(logger=self.logger)
        self.secrets = secrets or SecretStore(logger=self.logger)

    def load(self) -> Credentials:
        prefs = self.preferences.load()
        credentials = Credentials(
            server_url=str(prefs.get("server_url") or ""),
            client_id=str(prefs.get("client_id") or ""),
            persist=bool(prefs.get("persist", False)),
        )
        if credentials.persist and credentials.client_id:
            credentials.client_secret = self.secrets.get_secret(credentials.client_id) or ""
        return credentials

    def save(self, credentials: Credentials) -> None:
        previous_id = str(self.preferences.load().get("client_id") or "")
        self.preferences.save(credentials.server_url, credentials.client_id, credentials.persist)
        try:
            if previous_id and previous_id != credentials.client_id:
                self.secrets.delete_secret(previous_id)
                self.logger.info("Removed keyring secret for previous client %s", mask(previous_id))
            if not credentials.client_id:
                return
            if credentials.persist and credentials.client_secret:
                self.secrets.set_secret(credentials.client_id, credentials.client_secret)
                self.logger.info("Saved client secret to keyring service %s", self.secrets.service_name)
            elif not credentials.persist:
                self.secrets.delete_secret(credentials.client_id)
        except KeyringError as exc:
            self.logger.error("Failed to update keyring: %s", exc)
