"""SFTPGo REST API client.

Provides an HTTP client with API key or token-based authentication, a
thread-safe token cache, retries on transient database errors, and typed
CRUD operations validated with Pydantic models.
"""

import functools
import json
import time
from collections.abc import Iterable, Mapping
from http import HTTPStatus
from typing import Any, TypeVar
from urllib.parse import quote

import httpx
import pydantic
import structlog

from ..metrics import ClientMetrics
from .auth import ApiKeyCredentials, PasswordCredentials, TokenManager, resolve_credentials
from .errors import ConfigurationError, DeserializationError, SerializationError, StatusError
from .retry import RetryPolicy
from .types import (
    Admin,
    AuthToken,
    DumpData,
    EventAction,
    EventRule,
    Folder,
    Group,
    IPListEntry,
    KeyValue,
    License,
    Role,
    User,
)

logger = structlog.get_logger(__name__)

DEFAULT_HOST = "http://localhost:8080"

DEFAULT_TIMEOUT = 20.0

DEFAULT_PAGE_SIZE = 100

API_PREFIX = "/api/v2"
AUTH_ENDPOINT = f"{API_PREFIX}/token"
API_KEY_HEADER = "X-SFTPGO-API-KEY"

ENTERPRISE_EDITION = 1

_CONFIDENTIAL = {"confidential_data": 1}

ModelT = TypeVar("ModelT", bound=pydantic.BaseModel)


def escape_path(segment: str | int) -> str:
    """Percent-escape a value used as a single URL path segment.

    Every reserved character, ``/`` included, is escaped so that names
    cannot alter the request path. ``.`` and ``..`` are escaped as well,
    since URL normalization would otherwise collapse them.
    """
    escaped = quote(str(segment), safe="")
    if escaped in (".", ".."):
        return escaped.replace(".", "%2E")
    return escaped


@functools.cache
def _list_adapter(model: type[pydantic.BaseModel]) -> pydantic.TypeAdapter:
    """Validator for a JSON array of model, where null means empty."""
    return pydantic.TypeAdapter(list[model] | None)


class SftpGoApiClient:
    """HTTP client for the SFTPGo REST API.

    Authenticates with an API key, or with an admin username and password
    exchanged for a bearer token that is cached and renewed shortly before
    it expires. Requests failing on a database deadlock are retried with
    exponential backoff; every other failure surfaces immediately.

    A single instance is safe to share between threads: the underlying
    httpx.Client connection pool is shared, and the cached token is the
    only mutable state. Can be used as a context manager for automatic
    cleanup.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_HOST,
        username: str | None = None,
        password: str | None = None,
        api_key: str | None = None,
        headers: Iterable[KeyValue] | None = None,
        edition: int = 0,
        timeout: float = DEFAULT_TIMEOUT,
        *,
        transport: httpx.BaseTransport | None = None,
        retry_policy: RetryPolicy | None = None,
        metrics: ClientMetrics | None = None,
    ):
        """Initialize the REST API client.

        Args:
            base_url: Base URL of the SFTPGo server (e.g., "http://localhost:8080").
            username: Admin username, used when no API key is given.
            password: Admin password, used when no API key is given.
            api_key: API key. Takes precedence over username and password.
            headers: Static headers added to every request. They may
                override the default ones, authentication included.
            edition: 0 for the open source edition, 1 for Enterprise.
            timeout: Request timeout in seconds (default: 20.0).
            transport: Optional httpx transport, mostly useful in tests.
            retry_policy: Backoff settings for transient server errors.
            metrics: Prometheus metrics to record into.

        Raises:
            ConfigurationError: If neither an API key nor both username
                and password are given, or if timeout is not positive.
        """
        self._credentials = resolve_credentials(username, password, api_key)
        if timeout <= 0:
            msg = "timeout must be positive"
            raise ConfigurationError(msg)

        self.base_url = (base_url or DEFAULT_HOST).rstrip("/")
        self.headers = list(headers or [])
        self.edition = edition
        self.metrics = metrics if metrics is not None else ClientMetrics()
        self.token_manager = TokenManager(self._sign_in)
        self._retry_policy = retry_policy if retry_policy is not None else RetryPolicy()
        self._http = httpx.Client(
            base_url=self.base_url,
            headers={"Accept": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    @property
    def is_enterprise_edition(self) -> bool:
        """Whether the server runs the Enterprise edition."""
        return self.edition == ENTERPRISE_EDITION

    def __enter__(self):
        """Enter context manager."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Exit context manager and cleanup resources."""
        self.close()

    def close(self):
        """Close the underlying HTTP connection pool."""
        if not self._http.is_closed:
            self._http.close()

    # ------------------------------------------------------------------
    # Request execution
    # ------------------------------------------------------------------

    def _sign_in(self) -> AuthToken:
        """Exchange the admin credentials for a new access token."""
        credentials = self._credentials
        if not isinstance(credentials, PasswordCredentials):
            msg = "define username and password"
            raise ConfigurationError(msg)

        self.metrics.token_renewals.inc()
        body = self._send(
            "GET",
            AUTH_ENDPOINT,
            HTTPStatus.OK,
            auth=httpx.BasicAuth(credentials.username, credentials.password),
        )
        return self._decode(AuthToken, body)

    def _auth_headers(self) -> dict[str, str]:
        if isinstance(self._credentials, ApiKeyCredentials):
            return {API_KEY_HEADER: self._credentials.api_key}
        return {"Authorization": f"Bearer {self.token_manager.ensure_token()}"}

    def _send(
        self,
        method: str,
        path: str,
        expected_status: int,
        *,
        params: Mapping[str, Any] | None = None,
        content: bytes | None = None,
        headers: Mapping[str, str] | None = None,
        auth: httpx.Auth | None = None,
    ) -> bytes:
        """Send one HTTP request and return the response body.

        Headers are applied in order: the given ones (authentication),
        then the configured static headers, then the JSON content type
        when a body is present.

        Raises:
            StatusError: If the response status differs from expected_status.
            httpx.TransportError: If the request could not be completed.
        """
        request_headers = httpx.Headers(headers or {})
        for header in self.headers:
            request_headers[header.key] = header.value
        if content is not None:
            request_headers["Content-Type"] = "application/json"

        request = self._http.build_request(
            method,
            path,
            params=params,
            content=content,
            headers=request_headers,
        )
        log = logger.bind(method=method, path=path)
        start_time = time.time()
        try:
            log.debug("Making API request", params=dict(params or {}))
            response = self._http.send(request, auth=auth)
        except httpx.TransportError:
            duration = time.time() - start_time
            self.metrics.observe_request(method, "error", duration)
            log.exception("API request failed", duration_seconds=round(duration, 3))
            raise

        duration = time.time() - start_time
        self.metrics.observe_request(method, response.status_code, duration)
        log.debug(
            "API request completed",
            status_code=response.status_code,
            duration_seconds=round(duration, 3),
        )

        if response.status_code != expected_status:
            raise StatusError(response.status_code, response.content)
        return response.content

    def _request(
        self,
        method: str,
        path: str,
        expected_status: int,
        *,
        params: Mapping[str, Any] | None = None,
        content: bytes | None = None,
    ) -> bytes:
        """Send an authenticated request, retrying on transient errors.

        A 401 answer to a bearer request drops the cached token, so the
        next request authenticates again instead of reusing a revoked one.
        """
        headers = self._auth_headers()
        try:
            return self._retry_policy.call(
                lambda: self._send(
                    method,
                    path,
                    expected_status,
                    params=params,
                    content=content,
                    headers=headers,
                ),
                on_retry=lambda _attempt, _err: self.metrics.retries.inc(),
            )
        except StatusError as err:
            if err.status_code == HTTPStatus.UNAUTHORIZED and isinstance(
                self._credentials, PasswordCredentials
            ):
                logger.warning("Access token rejected, dropping cached token", path=path)
                self.token_manager.invalidate()
            raise

    @staticmethod
    def _encode(payload: pydantic.BaseModel | Mapping[str, Any]) -> bytes:
        """Serialize a request payload, omitting unset optional fields."""
        try:
            if isinstance(payload, pydantic.BaseModel):
                return payload.model_dump_json(exclude_none=True).encode()
            if isinstance(payload, Mapping):
                return json.dumps(payload).encode()
        except (TypeError, ValueError) as err:
            msg = f"cannot encode request payload: {err}"
            raise SerializationError(msg) from err
        msg = f"unsupported request payload type: {type(payload).__name__}"
        raise SerializationError(msg)

    @staticmethod
    def _decode(model: type[ModelT], body: bytes) -> ModelT:
        try:
            return model.model_validate_json(body)
        except pydantic.ValidationError as err:
            msg = f"invalid {model.__name__} response: {err}"
            raise DeserializationError(msg) from err

    @staticmethod
    def _decode_list(model: type[ModelT], body: bytes) -> list[ModelT]:
        try:
            items = _list_adapter(model).validate_json(body)
        except pydantic.ValidationError as err:
            msg = f"invalid {model.__name__} list response: {err}"
            raise DeserializationError(msg) from err
        return items or []

    # ------------------------------------------------------------------
    # Generic operations
    # ------------------------------------------------------------------

    def _list_paginated(
        self,
        collection: str,
        model: type[ModelT],
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> list[ModelT]:
        """Fetch every item of a collection using limit/offset pages.

        A page shorter than page_size is the last one.
        """
        result: list[ModelT] = []
        while True:
            body = self._request(
                "GET",
                f"{API_PREFIX}/{collection}",
                HTTPStatus.OK,
                params={"limit": page_size, "offset": len(result)},
            )
            page = self._decode_list(model, body)
            result.extend(page)
            if len(page) < page_size:
                return result

    def _dump(self, scope: str) -> DumpData:
        """Fetch the bulk export restricted to one scope."""
        body = self._request(
            "GET",
            f"{API_PREFIX}/dumpdata",
            HTTPStatus.OK,
            params={"output-data": 1, "scopes": scope},
        )
        return self._decode(DumpData, body)

    def _create(
        self,
        collection: str,
        payload: pydantic.BaseModel,
        model: type[ModelT],
        confidential: bool = False,
    ) -> ModelT:
        content = self._encode(payload)
        body = self._request(
            "POST",
            f"{API_PREFIX}/{collection}",
            HTTPStatus.CREATED,
            params=_CONFIDENTIAL if confidential else None,
            content=content,
        )
        return self._decode(model, body)

    def _get(
        self,
        collection: str,
        key: str,
        model: type[ModelT],
        confidential: bool = False,
    ) -> ModelT:
        body = self._request(
            "GET",
            f"{API_PREFIX}/{collection}/{escape_path(key)}",
            HTTPStatus.OK,
            params=_CONFIDENTIAL if confidential else None,
        )
        return self._decode(model, body)

    def _update(self, collection: str, key: str, payload: pydantic.BaseModel) -> None:
        content = self._encode(payload)
        self._request(
            "PUT",
            f"{API_PREFIX}/{collection}/{escape_path(key)}",
            HTTPStatus.OK,
            content=content,
        )

    def _delete(self, collection: str, key: str) -> None:
        self._request("DELETE", f"{API_PREFIX}/{collection}/{escape_path(key)}", HTTPStatus.OK)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def get_users(self) -> list[User]:
        """Fetch all users, one page of DEFAULT_PAGE_SIZE at a time."""
        return self._list_paginated("users", User)

    def create_user(self, user: User) -> User:
        """Create a user and return it as stored by the server."""
        return self._create("users", user, User)

    def get_user(self, username: str) -> User:
        """Fetch a user by username.

        Raises:
            StatusError: With status code 404 if the user does not exist.
        """
        return self._get("users", username, User)

    def update_user(self, user: User) -> None:
        """Replace the user identified by ``user.username``."""
        self._update("users", user.username, user)

    def delete_user(self, username: str) -> None:
        """Delete a user by username."""
        self._delete("users", username)

    # ------------------------------------------------------------------
    # Admins
    # ------------------------------------------------------------------

    def get_admins(self) -> list[Admin]:
        """Fetch all admins through the bulk export."""
        return self._dump("admins").admins

    def create_admin(self, admin: Admin) -> Admin:
        return self._create("admins", admin, Admin, confidential=True)

    def get_admin(self, username: str) -> Admin:
        return self._get("admins", username, Admin, confidential=True)

    def update_admin(self, admin: Admin) -> None:
        self._update("admins", admin.username, admin)

    def delete_admin(self, username: str) -> None:
        self._delete("admins", username)

    # ------------------------------------------------------------------
    # Groups
    # ------------------------------------------------------------------

    def get_groups(self) -> list[Group]:
        """Fetch all groups through the bulk export."""
        return self._dump("groups").groups

    def create_group(self, group: Group) -> Group:
        return self._create("groups", group, Group, confidential=True)

    def get_group(self, name: str) -> Group:
        return self._get("groups", name, Group, confidential=True)

    def update_group(self, group: Group) -> None:
        self._update("groups", group.name, group)

    def delete_group(self, name: str) -> None:
        self._delete("groups", name)

    # ------------------------------------------------------------------
    # Folders
    # ------------------------------------------------------------------

    def get_folders(self) -> list[Folder]:
        """Fetch all virtual folders through the bulk export."""
        return self._dump("folders").folders

    def create_folder(self, folder: Folder) -> Folder:
        return self._create("folders", folder, Folder, confidential=True)

    def get_folder(self, name: str) -> Folder:
        return self._get("folders", name, Folder, confidential=True)

    def update_folder(self, folder: Folder) -> None:
        self._update("folders", folder.name, folder)

    def delete_folder(self, name: str) -> None:
        self._delete("folders", name)

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    def get_roles(self) -> list[Role]:
        return self._list_paginated("roles", Role)

    def create_role(self, role: Role) -> Role:
        return self._create("roles", role, Role)

    def get_role(self, name: str) -> Role:
        return self._get("roles", name, Role)

    def update_role(self, role: Role) -> None:
        self._update("roles", role.name, role)

    def delete_role(self, name: str) -> None:
        self._delete("roles", name)

    # ------------------------------------------------------------------
    # Event rules and actions
    # ------------------------------------------------------------------

    def get_event_rules(self) -> list[EventRule]:
        return self._list_paginated("eventrules", EventRule)

    def create_event_rule(self, rule: EventRule) -> EventRule:
        return self._create("eventrules", rule, EventRule)

    def get_event_rule(self, name: str) -> EventRule:
        return self._get("eventrules", name, EventRule)

    def update_event_rule(self, rule: EventRule) -> None:
        self._update("eventrules", rule.name, rule)

    def delete_event_rule(self, name: str) -> None:
        self._delete("eventrules", name)

    def get_event_actions(self) -> list[EventAction]:
        """Fetch all event actions through the bulk export."""
        return self._dump("actions").event_actions

    def create_event_action(self, action: EventAction) -> EventAction:
        return self._create("eventactions", action, EventAction, confidential=True)

    def get_event_action(self, name: str) -> EventAction:
        return self._get("eventactions", name, EventAction, confidential=True)

    def update_event_action(self, action: EventAction) -> None:
        self._update("eventactions", action.name, action)

    def delete_event_action(self, name: str) -> None:
        self._delete("eventactions", name)

    # ------------------------------------------------------------------
    # IP lists
    # ------------------------------------------------------------------

    def get_ip_list_entries(self, list_type: int) -> list[IPListEntry]:
        """Fetch every entry of an IP list.

        The endpoint pages with a cursor: each request starts after the
        last ``ipornet`` already received. A short page ends the listing.
        """
        result: list[IPListEntry] = []
        cursor = ""
        while True:
            body = self._request(
                "GET",
                f"{API_PREFIX}/iplists/{int(list_type)}",
                HTTPStatus.OK,
                params={"limit": DEFAULT_PAGE_SIZE, "from": cursor},
            )
            page = self._decode_list(IPListEntry, body)
            result.extend(page)
            if len(page) < DEFAULT_PAGE_SIZE:
                return result
            cursor = result[-1].ipornet

    def create_ip_list_entry(self, entry: IPListEntry) -> IPListEntry:
        """Add an entry and return it as stored by the server.

        The server answers creation with an empty body, so the entry is
        fetched back once created.
        """
        content = self._encode(entry)
        self._request(
            "POST",
            f"{API_PREFIX}/iplists/{int(entry.type)}",
            HTTPStatus.CREATED,
            content=content,
        )
        return self.get_ip_list_entry(entry.type, entry.ipornet)

    def get_ip_list_entry(self, list_type: int, ipornet: str) -> IPListEntry:
        return self._get(f"iplists/{int(list_type)}", ipornet, IPListEntry)

    def update_ip_list_entry(self, entry: IPListEntry) -> None:
        self._update(f"iplists/{int(entry.type)}", entry.ipornet, entry)

    def delete_ip_list_entry(self, list_type: int, ipornet: str) -> None:
        self._delete(f"iplists/{int(list_type)}", ipornet)

    # ------------------------------------------------------------------
    # License
    # ------------------------------------------------------------------

    def get_license(self) -> License:
        """Fetch the installed license (Enterprise edition)."""
        body = self._request("GET", f"{API_PREFIX}/license", HTTPStatus.OK)
        return self._decode(License, body)

    def add_license(self, key: str) -> License:
        """Install a license key and return the resulting license."""
        content = self._encode({"key": key})
        self._request("POST", f"{API_PREFIX}/license", HTTPStatus.OK, content=content)
        return self.get_license()
