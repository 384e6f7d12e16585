"""Errors raised while talking to Beeminder or the local snapshot store."""

from typing import Optional


class BeeminderError(Exception):
    """Base class for every failure the sync layer knows how to degrade from."""


class InvalidConfiguration(BeeminderError):
    """No username/auth token has been stored yet."""

    def __init__(self, message: str = "Beeminder credentials are not configured"):
        super().__init__(message)


class TransportFailure(BeeminderError):
    """The request could not be sent or no response came back."""


class RemoteRejection(BeeminderError):
    """Beeminder answered with a status outside 200-299."""

    def __init__(self, status_code: int, body: Optional[str] = None):
        self.status_code = status_code
        self.body = body
        super().__init__(f"HTTP error: {status_code}")

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404


class NotFound(RemoteRejection):
    """A 404 from Beeminder, usually an unknown goal slug."""

    def __init__(self, body: Optional[str] = None):
        super().__init__(404, body)


class MalformedPayload(BeeminderError):
    """The response body could not be decoded into goals."""


class PersistenceUnavailable(BeeminderError):
    """The local snapshot store could not be read or written."""
