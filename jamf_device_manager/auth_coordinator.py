"""
Authentication facade used before every Jamf Pro action.
"""

from __future__ import annotations

import enum
import logging
import threading
from dataclasses import replace
from typing import Optional, Tuple

from .auth_client import AuthClient
from .credential_store import CredentialStore
from .errors import AuthenticationError, JamfDeviceManagerError, ValidationError, status_text
from .logging_utils import mask
from .models import Credentials
from .token_store import TokenStore


class AuthState(enum.Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    FAILED = "failed"


class AuthCoordinator:
    """
    Owns the credentials and is the only writer to the TokenStore.

    Every state change happens under a single re-entrant lock, so threads that
    race into ``ensure_authenticated`` perform at most one token exchange: the
    second caller waits, then takes the fast path with the fresh token.
    """

    def __init__(
        self,
        auth_client: AuthClient,
        credentials: Optional[Credentials] = None,
        token_store: Optional[TokenStore] = None,
        credential_store: Optional[CredentialStore] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.auth_client = auth_client
        self.token_store = token_store or TokenStore()
        self.credential_store = credential_store
        self.logger = logger or logging.getLogger(__name__)
        self._credentials = replace(credentials) if credentials else Credentials()
        self._lock = threading.RLock()
        self._state = AuthState.UNAUTHENTICATED
        self._last_error: Optional[JamfDeviceManagerError] = None
        self._authenticating = False
        # What the credential store currently holds, to skip redundant writes.
        self._persisted: Optional[Tuple[Tuple[str, str, str], bool]] = (
            self._snapshot() if credentials is not None and credential_store is not None else None
        )

    @classmethod
    def from_store(
        cls,
        auth_client: AuthClient,
        credential_store: CredentialStore,
        token_store: Optional[TokenStore] = None,
        logger: Optional[logging.Logger] = None,
    ) -> "AuthCoordinator":
        return cls(
            auth_client,
            credentials=credential_store.load(),
            token_store=token_store,
            credential_store=credential_store,
            logger=logger,
        )

    # -------- State --------
    @property
    def credentials(self) -> Credentials:
        with self._lock:
            return replace(self._credentials)

    @property
    def server_url(self) -> str:
        return self._credentials.server_url.rstrip("/")

    @property
    def has_valid_credentials(self) -> bool:
        return self._credentials.is_complete()

    @property
    def state(self) -> AuthState:
        return self._state

    @property
    def is_authenticated(self) -> bool:
        return self._state is AuthState.AUTHENTICATED

    @property
    def is_authenticating(self) -> bool:
        return self._authenticating

    @property
    def last_error(self) -> Optional[JamfDeviceManagerError]:
        return self._last_error

    def _snapshot(self) -> Tuple[Tuple[str, str, str], bool]:
        return self._credentials.identity(), self._credentials.persist

    # -------- Authentication --------
    def authenticate(self) -> bool:
        with self._lock:
            if not self.has_valid_credentials:
                self._last_error = ValidationError("Please provide the Jamf Pro URL, client ID and client secret.")
                self._state = AuthState.UNAUTHENTICATED
                self.logger.warning("Authentication skipped: credentials incomplete")
                return False

            self._authenticating = True
            try:
                creds = self._credentials
                self.logger.debug("Authenticating client %s against %s", mask(creds.client_id), creds.server_url)
                token, status = self.auth_client.exchange_credentials(
                    creds.server_url, creds.client_id, creds.client_secret
                )
            finally:
                self._authenticating = False

            if token is None or status != 200:
                self.token_store.clear()
                self._state = AuthState.FAILED
                self._last_error = AuthenticationError(
                    f"Authentication failed (Status: {status_text(status)}). Please check your credentials.",
                    status_code=status,
                )
                self.logger.error("Authentication failed with status code: %s", status_text(status))
                return False

            self.token_store.set(token)
            if not self.token_store.is_valid():
                lifetime = self.token_store.seconds_remaining() or 0
                self.token_store.clear()
                self._state = AuthState.FAILED
                self._last_error = AuthenticationError(
                    "Jamf Pro issued a token that expires within the refresh margin. "
                    "Check the API client's token lifetime.",
                    status_code=status,
                )
                self.logger.warning(
                    "Token lifetime %.0fs is within the %.0fs refresh margin, treating as failure",
                    lifetime,
                    self.token_store.safety_margin,
                )
                return False

            self._state = AuthState.AUTHENTICATED
            self._last_error = None
            self.logger.info("Authentication successful, token valid for %.0fs", self.token_store.seconds_remaining() or 0)
            self._persist_if_changed()
            return True

    def ensure_authenticated(self) -> bool:
        """Make sure a valid token exists; cheap when one already does."""
        with self._lock:
            if not self.has_valid_credentials:
                self._last_error = ValidationError("Please provide the Jamf Pro URL, client ID and client secret.")
                return False
            if self.token_store.is_valid():
                self._state = AuthState.AUTHENTICATED
                return True
            self.logger.debug("No valid token, re-authenticating")
            return self.authenticate()

    def get_current_token(self) -> Optional[str]:
        with self._lock:
            token = self.token_store.current()
            return token.access_token if token else None

    # -------- Credential management --------
    def update_credentials(self, server_url: str, client_id: str, client_secret: str, persist: bool) -> bool:
        """
        Replace credentials. Returns True when the identity changed, in which
        case the current token has been invalidated.
        """
        with self._lock:
            new = Credentials(server_url=server_url.strip(), client_id=client_id.strip(),
                              client_secret=client_secret, persist=persist)
            identity_changed = new.identity() != self._credentials.identity()
            self._credentials = new

            if identity_changed:
                self.logger.info("Credentials changed, clearing current token")
                self.clear_authentication()

            self._persist_if_changed()
            return identity_changed

    def clear_authentication(self) -> None:
        with self._lock:
            self.token_store.clear()
            self._state = AuthState.UNAUTHENTICATED
            self._last_error = None
            self.logger.info("Authentication tokens cleared")

    def _persist_if_changed(self) -> None:
        if self.credential_store is None:
            return
        snapshot = self._snapshot()
        if snapshot == self._persisted:
            return
        self.credential_store.save(replace(self._credentials))
        self._persisted = snapshot
