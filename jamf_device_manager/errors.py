"""
Failure types for Jamf Device Manager.

Client calls never raise these across component boundaries; they describe a
failure (title + message + optional status code) so the runner and the CLI can
report it consistently.
"""

from __future__ import annotations

from typing import Optional


class JamfDeviceManagerError(Exception):
    """Base class for user-visible failures."""

    title = "Error"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def describe(self) -> str:
        return f"{self.title}: {self.message}"


class ValidationError(JamfDeviceManagerError):
    """Missing or incomplete input, detected before any network call."""

    title = "Missing Information"


class AuthenticationError(JamfDeviceManagerError):
    """Bad credentials, expired token, or a 401 from Jamf Pro."""

    title = "Authentication Failed"


class NotFoundError(JamfDeviceManagerError):
    """A serial number or computer ID has no match in Jamf Pro."""

    title = "Device Not Found"


class TransportError(JamfDeviceManagerError):
    """Timeout, connection failure, or an undecodable response."""

    title = "Connection Error"


class PreconditionError(JamfDeviceManagerError):
    """The device is not in a state that allows the requested action."""

    title = "Action Not Allowed"


def status_text(status_code: Optional[int]) -> str:
    """Render a status code for messages; transport failures show as 0."""
    return str(status_code if status_code is not None else 0)
