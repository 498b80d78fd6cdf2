"""API resource types for the SFTPGo REST API.

Pydantic models mirroring the JSON shapes exchanged with the server. The
client only relies on the identifying fields (names, usernames, IP list
coordinates); every model accepts and preserves extra fields so that
attributes not modelled here still round-trip unchanged.
"""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ApiModel(BaseModel):
    """Base for resource models: unknown fields are kept as extras."""

    model_config = ConfigDict(extra="allow")


class KeyValue(BaseModel):
    """Generic key/value pair, used for custom headers."""

    key: str
    value: str


class AuthToken(BaseModel):
    """Access token returned by the ``/api/v2/token`` endpoint."""

    access_token: str
    expires_at: datetime

    @field_validator("expires_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


# Users, groups and folders


class GroupMapping(ApiModel):
    """Group membership of a user. Type 1 is primary, 2 secondary."""

    name: str
    type: int | None = None


class Folder(ApiModel):
    """Virtual folder definition, shareable between users and groups."""

    id: int | None = None
    name: str
    mapped_path: str | None = None
    description: str | None = None
    used_quota_size: int | None = None
    used_quota_files: int | None = None
    last_quota_update: int | None = None
    users: list[str] | None = None
    groups: list[str] | None = None
    filesystem: dict[str, Any] | None = None


class VirtualFolder(Folder):
    """Folder mounted at a virtual path inside a user or group."""

    virtual_path: str
    # -1 means included in the user quota, 0 unlimited
    quota_size: int | None = None
    quota_files: int | None = None


class User(ApiModel):
    """SFTPGo user account."""

    id: int | None = None
    status: int | None = None
    username: str
    email: str | None = None
    description: str | None = None
    expiration_date: int | None = None
    password: str | None = None
    public_keys: list[str] | None = None
    home_dir: str | None = None
    uid: int | None = None
    gid: int | None = None
    max_sessions: int | None = None
    quota_size: int | None = None
    quota_files: int | None = None
    permissions: dict[str, list[str]] | None = None
    upload_bandwidth: int | None = None
    download_bandwidth: int | None = None
    upload_data_transfer: int | None = None
    download_data_transfer: int | None = None
    total_data_transfer: int | None = None
    created_at: int | None = None
    updated_at: int | None = None
    last_login: int | None = None
    additional_info: str | None = None
    groups: list[GroupMapping] | None = None
    role: str | None = None
    filters: dict[str, Any] | None = None
    virtual_folders: list[VirtualFolder] | None = None
    filesystem: dict[str, Any] | None = None


class Group(ApiModel):
    """Group of users sharing common settings."""

    id: int | None = None
    name: str
    description: str | None = None
    created_at: int | None = None
    updated_at: int | None = None
    user_settings: dict[str, Any] | None = None
    virtual_folders: list[VirtualFolder] | None = None


# Administrators and roles


class AdminGroupMapping(ApiModel):
    """Group an admin automatically adds to the users it creates."""

    name: str
    options: dict[str, Any] | None = None


class Admin(ApiModel):
    """SFTPGo administrator."""

    status: int | None = None
    username: str
    password: str | None = None
    email: str | None = None
    permissions: list[str] | None = None
    filters: dict[str, Any] | None = None
    description: str | None = None
    additional_info: str | None = None
    groups: list[AdminGroupMapping] | None = None
    created_at: int | None = None
    updated_at: int | None = None
    last_login: int | None = None
    # Role admins can only manage users with the same role
    role: str | None = None


class Role(ApiModel):
    """Role used to scope admins to a subset of users."""

    name: str
    description: str | None = None
    created_at: int | None = None
    updated_at: int | None = None
    users: list[str] | None = None
    admins: list[str] | None = None


# Event manager


class EventActionReference(ApiModel):
    """Action attached to a rule, with its execution order."""

    name: str
    order: int | None = None
    relation_options: dict[str, Any] | None = None


class EventRule(ApiModel):
    """Event rule: a trigger, its conditions and the actions to run."""

    name: str
    status: int | None = None
    description: str | None = None
    created_at: int | None = None
    updated_at: int | None = None
    trigger: int | None = None
    conditions: dict[str, Any] | None = None
    actions: list[EventActionReference] | None = None


class EventAction(ApiModel):
    """Event action definition (HTTP hook, command, email, ...)."""

    name: str
    description: str | None = None
    type: int | None = None
    options: dict[str, Any] | None = None


# IP lists


class IPListType:
    """Known IP list types."""

    ALLOWLIST = 1
    DEFENDER = 2
    RATE_LIMITER_SAFELIST = 3


class IPListEntry(ApiModel):
    """Entry of an allow list, defender list or rate limiter safe list.

    ``protocols`` is a bitmask: 0 all, 1 SSH, 2 FTP, 4 WebDAV, 8 HTTP.
    """

    ipornet: str
    description: str | None = None
    type: int
    mode: int | None = None
    protocols: int | None = None
    created_at: int | None = None
    updated_at: int | None = None


# License (Enterprise edition)


class LicenseFeatures(ApiModel):
    """Features unlocked by a license."""

    max_concurrent_transfers: int | None = None
    fs_providers: list[int] | None = None
    event_actions: list[int] | None = None
    fs_actions: list[int] | None = None
    plugins: int | None = None
    metering: int | None = None
    wopi_users: int | None = None
    ha: list[int] | None = None


class License(ApiModel):
    """Installed license."""

    key: str | None = None
    type: int | None = None
    valid_from: int | None = None
    valid_to: int | None = None
    features: LicenseFeatures | None = None


# Bulk export


class DumpData(BaseModel):
    """Envelope returned by ``/api/v2/dumpdata``.

    The export carries several unrelated collections; list operations
    backed by it read only their own slice.
    """

    users: list[User] = Field(default_factory=list)
    groups: list[Group] = Field(default_factory=list)
    folders: list[Folder] = Field(default_factory=list)
    admins: list[Admin] = Field(default_factory=list)
    event_actions: list[EventAction] = Field(default_factory=list)
    version: int = 0

    @field_validator("users", "groups", "folders", "admins", "event_actions", mode="before")
    @classmethod
    def _null_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value
