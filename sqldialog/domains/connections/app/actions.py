"""Typed payloads for the actions the connection dialog accepts."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

from sqldialog.domains.connections.domain.profile import ConnectionProfile, InputMode


@dataclass(frozen=True)
class SetInputMode:
    input_mode: InputMode


@dataclass(frozen=True)
class FormAction:
    """A field edit, or a press of one of the field's action buttons.

    For a button press ``value`` is the button id.
    """

    field_name: str
    value: Any
    is_action: bool = False


@dataclass(frozen=True)
class LoadConnection:
    connection: ConnectionProfile


@dataclass(frozen=True)
class Connect:
    pass


@dataclass(frozen=True)
class LoadAzureServers:
    subscription_id: str


@dataclass(frozen=True)
class IpRange:
    start_ip: str
    end_ip: str


@dataclass(frozen=True)
class AddFirewallRule:
    name: str
    ip: Union[str, IpRange]
    tenant_id: str

    @property
    def ip_bounds(self) -> tuple[str, str]:
        if isinstance(self.ip, IpRange):
            return self.ip.start_ip, self.ip.end_ip
        return self.ip, self.ip


@dataclass(frozen=True)
class CloseDialog:
    pass


@dataclass(frozen=True)
class FilterAzureSubscriptions:
    pass


@dataclass(frozen=True)
class RefreshConnectionsList:
    pass


@dataclass(frozen=True)
class DeleteSavedConnection:
    connection: ConnectionProfile


@dataclass(frozen=True)
class RemoveRecentConnection:
    connection: ConnectionProfile


DialogAction = Union[
    SetInputMode,
    FormAction,
    LoadConnection,
    Connect,
    LoadAzureServers,
    AddFirewallRule,
    CloseDialog,
    FilterAzureSubscriptions,
    RefreshConnectionsList,
    DeleteSavedConnection,
    RemoveRecentConnection,
]
