"""SFTPGo REST API client package.

Provides an HTTP client for the SFTPGo management API that turns typed
CRUD operations into REST calls, with token lifecycle management and
retries on transient database errors.

Exports:
    SftpGoApiClient: HTTP client with authentication and error handling.
    types: Module containing Pydantic models for API resources.
    StatusError: Raised on unexpected HTTP status codes.
    is_not_found: Tells whether an error is a 404 status error.
    is_retryable: Tells whether an error is a transient server failure.
"""

from . import types
from .auth import ApiKeyCredentials, PasswordCredentials, TokenManager
from .client import (
    DEFAULT_HOST,
    DEFAULT_PAGE_SIZE,
    DEFAULT_TIMEOUT,
    SftpGoApiClient,
)
from .errors import (
    ConfigurationError,
    DeserializationError,
    SerializationError,
    SftpGoApiError,
    StatusError,
    is_deadlock,
    is_not_found,
    is_retryable,
)
from .retry import RetryPolicy

__all__ = [
    "DEFAULT_HOST",
    "DEFAULT_PAGE_SIZE",
    "DEFAULT_TIMEOUT",
    "ApiKeyCredentials",
    "ConfigurationError",
    "DeserializationError",
    "PasswordCredentials",
    "RetryPolicy",
    "SerializationError",
    "SftpGoApiClient",
    "SftpGoApiError",
    "StatusError",
    "TokenManager",
    "is_deadlock",
    "is_not_found",
    "is_retryable",
    "types",
]
