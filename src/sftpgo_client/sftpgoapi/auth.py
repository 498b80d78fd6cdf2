"""Credentials and access token handling for the SFTPGo REST API.

The client authenticates either with a long-lived API key, sent verbatim
on every request, or with an admin username and password exchanged for a
short-lived bearer token. :class:`TokenManager` caches that token and
renews it shortly before it expires.
"""

import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import structlog

from .errors import ConfigurationError
from .types import AuthToken

logger = structlog.get_logger(__name__)

# Tokens closer than this to their expiry are renewed before use, so a
# request never reaches the server with a token about to lapse.
TOKEN_SAFETY_MARGIN = timedelta(minutes=2)


@dataclass(frozen=True)
class ApiKeyCredentials:
    """Static API key sent in the ``X-SFTPGO-API-KEY`` header."""

    api_key: str

    def __repr__(self) -> str:
        return "ApiKeyCredentials(api_key='**********')"


@dataclass(frozen=True)
class PasswordCredentials:
    """Admin username and password exchanged for a bearer token."""

    username: str
    password: str

    def __repr__(self) -> str:
        return f"PasswordCredentials(username={self.username!r}, password='**********')"


Credentials = ApiKeyCredentials | PasswordCredentials


def resolve_credentials(
    username: str | None = None,
    password: str | None = None,
    api_key: str | None = None,
) -> Credentials:
    """Pick the credentials variant to use for the client's lifetime.

    An API key takes precedence over a username and password.

    Raises:
        ConfigurationError: If no API key is given and the username or
            the password is missing.
    """
    if api_key:
        return ApiKeyCredentials(api_key=api_key)
    if not username or not password:
        msg = "define username and password"
        raise ConfigurationError(msg)
    return PasswordCredentials(username=username, password=password)


class ReadWriteLock:
    """Lock allowing concurrent readers or a single writer."""

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writing = False

    @contextmanager
    def read(self) -> Iterator[None]:
        """Hold the lock shared for the duration of the block."""
        with self._cond:
            while self._writing:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        """Hold the lock exclusively for the duration of the block."""
        with self._cond:
            while self._writing or self._readers:
                self._cond.wait()
            self._writing = True
        try:
            yield
        finally:
            with self._cond:
                self._writing = False
                self._cond.notify_all()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenManager:
    """Thread-safe cache for the bearer token of one client instance.

    Reads of the cached token share a reader/writer lock; replacing it
    takes the lock exclusively. Renewals are additionally serialized so
    that threads finding the token stale at the same time wait for a
    single authentication exchange instead of each performing one.
    """

    def __init__(
        self,
        authenticate: Callable[[], AuthToken],
        clock: Callable[[], datetime] = _utcnow,
        safety_margin: timedelta = TOKEN_SAFETY_MARGIN,
    ):
        """Initialize the token manager.

        Args:
            authenticate: Performs one authentication exchange and returns
                the new token. Its errors propagate unchanged.
            clock: Returns the current time as an aware datetime.
            safety_margin: Remaining lifetime below which a cached token
                is treated as expired.
        """
        self._authenticate = authenticate
        self._clock = clock
        self._safety_margin = safety_margin
        self._lock = ReadWriteLock()
        self._renew_lock = threading.Lock()
        self._token: AuthToken | None = None

    def get_token(self) -> str | None:
        """Return the cached access token, or None if it must be renewed."""
        with self._lock.read():
            token = self._token
        if token is None:
            return None
        if token.expires_at - self._clock() < self._safety_margin:
            return None
        return token.access_token

    def set_token(self, token: AuthToken) -> None:
        """Replace the cached token and its expiry."""
        with self._lock.write():
            self._token = token

    def invalidate(self) -> None:
        """Drop the cached token so the next request re-authenticates."""
        with self._lock.write():
            self._token = None

    def ensure_token(self) -> str:
        """Return a usable access token, authenticating if needed.

        Raises:
            Exception: Whatever the authentication exchange raised. The
                exchange is not retried.
        """
        access_token = self.get_token()
        if access_token is not None:
            return access_token

        with self._renew_lock:
            # Another thread may have renewed while we waited.
            access_token = self.get_token()
            if access_token is not None:
                return access_token

            token = self._authenticate()
            self.set_token(token)
            logger.info(
                "Obtained new access token",
                expires_at=token.expires_at.isoformat(),
            )
            return token.access_token
