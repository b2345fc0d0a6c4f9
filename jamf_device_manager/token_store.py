"""
In-memory holder for the current bearer token.
"""

from __future__ import annotations

import time
from typing import Callable, Optional

from .models import Token

DEFAULT_SAFETY_MARGIN = 10.0


class TokenStore:
    """
    Holds at most one token and answers validity queries.

    The store does no locking; AuthCoordinator is its only writer.
    """

    def __init__(self, clock: Callable[[], float] = time.time, safety_margin: float = DEFAULT_SAFETY_MARGIN):
        self._clock = clock
        self.safety_margin = safety_margin
        self._token: Optional[Token] = None

    def set(self, token: Token) -> None:
        self._token = token

    def clear(self) -> None:
        self._token = None

    def is_valid(self, safety_margin: Optional[float] = None) -> bool:
        if self._token is None:
            return False
        margin = self.safety_margin if safety_margin is None else safety_margin
        return self._clock() < self._token.expires_at - margin

    def current(self) -> Optional[Token]:
        """Return the token only while it is valid; a stale token is never handed out."""
        if not self.is_valid():
            return None
        return self._token

    def seconds_remaining(self) -> Optional[float]:
        if self._token is None:
            return None
        return self._token.expires_at - self._clock()
