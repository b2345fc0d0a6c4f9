"""
OAuth client-credentials exchange against Jamf Pro.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional, Tuple

import requests

from .models import Token

TOKEN_PATH = "/api/oauth/token"


class AuthClient:
    """
    Performs the client-credentials grant and returns a Token.

    Never retries and never raises for network problems; retry policy belongs
    to AuthCoordinator.
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
        verify_ssl: bool = True,
        clock: Callable[[], float] = time.time,
        logger: Optional[logging.Logger] = None,
    ):
        self.session = session or requests.Session()
        self.timeout = timeout
        self.verify_ssl = verify_ssl
        self._clock = clock
        self.logger = logger or logging.getLogger(__name__)

    def exchange_credentials(
        self, server_url: str, client_id: str, client_secret: str
    ) -> Tuple[Optional[Token], Optional[int]]:
        url = server_url.rstrip("/") + TOKEN_PATH
        payload = {
            "client_id": client_id,
            "grant_type": "client_credentials",
            "client_secret": client_secret,
        }
        self.logger.info("Requesting access token from %s", url)
        try:
            resp = self.session.post(
                url,
                data=payload,
                headers={"Content-Type": "application/x-www-form-urlencoded", "Accept": "application/json"},
                timeout=self.timeout,
                verify=self.verify_ssl,
            )
        except requests.RequestException as exc:
            self.logger.error("Token request failed for %s: %s", url, exc)
            return None, None

        status = resp.status_code
        self.logger.info("Response from authenticating: %d", status)
        if status != 200:
            return None, status

        try:
            token = Token.from_response(resp.json(), now=self._clock())
        except (KeyError, TypeError, ValueError) as exc:
            # The server answered 200 but not with a token we can use.
            self.logger.error("Invalid token response format: %s", exc)
            return None, status

        self.logger.debug("Token expires in %.0fs", token.expires_at - self._clock())
        return token, status
