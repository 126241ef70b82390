"""Connection profile model and enums for the connection dialog."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator, Mapping


class AuthType(str, Enum):
    """Authentication types understood by the dialog."""

    SQL_LOGIN = "SqlLogin"
    INTEGRATED = "Integrated"
    AZURE_MFA = "AzureMFA"


class InputMode(str, Enum):
    """How the user is describing the connection."""

    PARAMETERS = "parameters"
    CONNECTION_STRING = "connectionString"
    AZURE_BROWSE = "azureBrowse"

    @property
    def uses_parameters(self) -> bool:
        return self in (InputMode.PARAMETERS, InputMode.AZURE_BROWSE)


class FieldName:
    """Property keys with behavior attached to them."""

    SERVER = "server"
    DATABASE = "database"
    AUTHENTICATION_TYPE = "authenticationType"
    USER = "user"
    PASSWORD = "password"
    SAVE_PASSWORD = "savePassword"
    ACCOUNT_ID = "accountId"
    TENANT_ID = "tenantId"
    CONNECTION_STRING = "connectionString"
    PROFILE_NAME = "profileName"
    DISPLAY_NAME = "displayName"
    TRUST_SERVER_CERTIFICATE = "trustServerCertificate"
    ENCRYPT = "encrypt"
    PORT = "port"
    APPLICATION_NAME = "applicationName"
    CONNECT_TIMEOUT = "connectTimeout"
    MULTI_SUBNET_FAILOVER = "multiSubnetFailover"


# Fields kept by clean() when the connection string is the active input.
CONNECTION_STRING_FIELDS: tuple[str, ...] = (FieldName.CONNECTION_STRING, FieldName.PROFILE_NAME)


@dataclass
class ConnectionProfile:
    """A connection under edit, stored as a property-key to value map.

    A value of None means "not set"; clean() uses None to drop values that
    do not apply to the active input mode.
    """

    values: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> ConnectionProfile:
        return cls(values=copy.deepcopy(dict(data or {})))

    def to_dict(self, *, drop_unset: bool = False) -> dict[str, Any]:
        data = copy.deepcopy(self.values)
        if drop_unset:
            data = {k: v for k, v in data.items() if v is not None}
        return data

    def copy(self) -> ConnectionProfile:
        return ConnectionProfile(values=copy.deepcopy(self.values))

    def get(self, name: str, default: Any = None) -> Any:
        value = self.values.get(name, default)
        return default if value is None else value

    def set(self, name: str, value: Any) -> None:
        self.values[name] = value

    def clear(self, name: str) -> None:
        if name in self.values:
            self.values[name] = None

    def keys(self) -> Iterator[str]:
        return iter(list(self.values.keys()))

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.values.get(name) is not None

    @property
    def auth_type(self) -> AuthType | None:
        raw = self.values.get(FieldName.AUTHENTICATION_TYPE)
        if isinstance(raw, AuthType):
            return raw
        try:
            return AuthType(raw)
        except ValueError:
            return None

    @property
    def connection_string(self) -> str:
        return str(self.get(FieldName.CONNECTION_STRING, ""))

    @property
    def has_connection_string(self) -> bool:
        return bool(self.connection_string)

    @property
    def display_name(self) -> str:
        return str(self.get(FieldName.DISPLAY_NAME) or get_connection_display_name(self))


def create_blank_profile(*, connect_timeout: int = 15, application_name: str = "sqldialog") -> ConnectionProfile:
    """Template used when the dialog opens without a connection to edit."""
    return ConnectionProfile(
        values={
            FieldName.AUTHENTICATION_TYPE: AuthType.SQL_LOGIN.value,
            FieldName.CONNECT_TIMEOUT: connect_timeout,
            FieldName.APPLICATION_NAME: application_name,
        }
    )


def get_connection_display_name(profile: ConnectionProfile) -> str:
    """Derive a label like ``server, database (user)`` for a profile."""
    profile_name = profile.get(FieldName.PROFILE_NAME)
    if profile_name:
        return str(profile_name)

    server = str(profile.get(FieldName.SERVER, ""))
    if not server and profile.has_connection_string:
        return "Connection string"

    label = server
    database = profile.get(FieldName.DATABASE)
    if database:
        label = f"{label}, {database}"

    if profile.auth_type == AuthType.SQL_LOGIN:
        user = profile.get(FieldName.USER)
        if user:
            label = f"{label} ({user})"
    elif profile.auth_type == AuthType.AZURE_MFA:
        account = profile.get(FieldName.ACCOUNT_ID)
        if account:
            label = f"{label} ({account})"
    return label


def extract_password_from_connection_string(connection_string: str) -> str | None:
    """Return the value between ``password=`` and the next ``;``.

    The key is matched case-insensitively. Returns None when there is no
    password key or the value is not terminated by a semicolon.
    """
    index = connection_string.lower().find("password=")
    if index == -1:
        return None
    start = index + len("password=")
    end = connection_string.find(";", start)
    if end == -1:
        return None
    return connection_string[start:end]
