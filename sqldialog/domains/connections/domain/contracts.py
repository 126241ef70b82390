"""Data shapes exchanged with the dialog's collaborators."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

from sqldialog.domains.connections.domain.profile import ConnectionProfile


@dataclass(frozen=True)
class CategoryValue:
    name: str
    display_name: str | None = None


@dataclass(frozen=True)
class ConnectionOption:
    """One connection property as described by the capability service."""

    name: str
    display_name: str
    value_type: str
    description: str = ""
    is_required: bool = False
    group_name: str | None = None
    category_values: tuple[CategoryValue, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ConnectionOption:
        """Build an option from the service's camelCase payload.

        Raises:
            KeyError: If ``name`` is missing.
            TypeError: If ``categoryValues`` is not a list of mappings.
        """
        raw_categories = data.get("categoryValues") or ()
        categories = tuple(
            CategoryValue(name=str(v["name"]), display_name=v.get("displayName")) for v in raw_categories
        )
        return cls(
            name=str(data["name"]),
            display_name=str(data.get("displayName") or data["name"]),
            value_type=str(data.get("valueType", "")),
            description=str(data.get("description") or ""),
            is_required=bool(data.get("isRequired", False)),
            group_name=data.get("groupName"),
            category_values=categories,
        )


@dataclass
class CapabilitiesResult:
    """Connection options plus category id to label mapping.

    Options may still be raw service mappings; the schema compiler parses
    them one at a time so a malformed entry only drops that field.
    """

    options: list[ConnectionOption | Mapping[str, Any]] = field(default_factory=list)
    group_display_names: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CapabilitiesResult:
        return cls(
            options=list(data.get("options") or []),
            group_display_names=dict(data.get("groupDisplayNames") or {}),
        )


@dataclass(frozen=True)
class TenantInfo:
    id: str
    name: str


@dataclass
class AzureAccount:
    """A signed-in identity provider account."""

    id: str
    user_id: str
    display_name: str
    tenants: list[TenantInfo] = field(default_factory=list)
    account_type: str | None = None
    is_stale: bool = False


@dataclass(frozen=True)
class AccountToken:
    token: str
    expires_on: float | None = None


@dataclass
class ConnectionCompleteResult:
    """Outcome of the remote validate-and-save call."""

    error_message: str | None = None
    error_number: int | None = None

    @property
    def ok(self) -> bool:
        return not self.error_message


@dataclass(frozen=True)
class FirewallRuleRequest:
    account: AzureAccount
    firewall_rule_name: str
    start_ip_address: str
    end_ip_address: str
    server_name: str
    security_token_mappings: dict[str, dict[str, str]]


@dataclass(frozen=True)
class FirewallRuleResult:
    result: bool
    error_message: str = ""


@dataclass
class HandleFirewallRuleResult:
    result: bool
    ip_address: str | None = None


class ConnectionKind(Enum):
    SAVED = "saved"
    RECENT = "recent"


@dataclass
class StoredConnection:
    """A persisted profile tagged with the list it came from."""

    profile: ConnectionProfile
    kind: ConnectionKind
