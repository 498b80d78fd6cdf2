"""Error types and classification helpers for the SFTPGo REST API client.

Callers branch on failures through the predicates defined here
(:func:`is_not_found`, :func:`is_retryable`) rather than inspecting
messages themselves.
"""

from http import HTTPStatus

# MySQL reports lock contention with this error code and message. Parallel
# provisioning runs can hit it on busy backends.
DEADLOCK_PATTERNS = (
    "error 1213",
    "deadlock found when trying to get lock",
)


class SftpGoApiError(Exception):
    """Base class for errors raised by the SFTPGo API client."""


class ConfigurationError(SftpGoApiError, ValueError):
    """Raised when the client is built without usable credentials."""


class StatusError(SftpGoApiError):
    """Raised when the server answers with an unexpected status code.

    Attributes:
        status_code: HTTP status code returned by the server.
        body: Raw response body, kept for diagnostics.
    """

    def __init__(self, status_code: int, body: bytes = b""):
        self.status_code = status_code
        self.body = body
        super().__init__(f"status: {status_code}, body: {self.text}")

    @property
    def text(self) -> str:
        """Response body decoded as UTF-8, invalid bytes replaced."""
        return self.body.decode("utf-8", errors="replace")


class SerializationError(SftpGoApiError):
    """Raised when a request payload cannot be encoded to JSON."""


class DeserializationError(SftpGoApiError):
    """Raised when a response body does not match the expected shape."""


def is_not_found(err: BaseException | None) -> bool:
    """Return True if err is a StatusError carrying a 404 status code."""
    return isinstance(err, StatusError) and err.status_code == HTTPStatus.NOT_FOUND


def is_deadlock(err: BaseException | None) -> bool:
    """Return True if err reports a database deadlock on the server side."""
    if err is None:
        return False
    message = str(err).lower()
    return any(pattern in message for pattern in DEADLOCK_PATTERNS)


def is_retryable(err: BaseException | None) -> bool:
    """Return True if the failed operation may be sent again.

    Only transient backend contention qualifies. Not-found, validation,
    authentication and transport failures are terminal.
    """
    if err is None:
        return False
    return is_deadlock(err)
