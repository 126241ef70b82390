"""Dialog session state owned by the connection dialog controller."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from sqldialog.domains.connections.domain.azure import AzureServerInfo, AzureSubscriptionInfo
from sqldialog.domains.connections.domain.contracts import TenantInfo
from sqldialog.domains.connections.domain.fields import ConnectionComponents
from sqldialog.domains.connections.domain.profile import ConnectionProfile, InputMode


class ApiStatus(Enum):
    NOT_STARTED = "notStarted"
    LOADING = "loading"
    LOADED = "loaded"
    ERROR = "error"


@dataclass
class TrustServerCertDialog:
    message: str
    type: str = field(default="trustServerCert", init=False)


@dataclass
class AddFirewallRuleDialog:
    message: str
    client_ip: str
    tenants: list[TenantInfo] = field(default_factory=list)
    type: str = field(default="addFirewallRule", init=False)


RecoveryDialog = Union[TrustServerCertDialog, AddFirewallRuleDialog]


@dataclass
class DialogSession:
    """Everything the connection dialog renders.

    Only the controller mutates a session; the host receives snapshots.
    """

    connection_profile: ConnectionProfile = field(default_factory=ConnectionProfile)
    selected_input_mode: InputMode = InputMode.PARAMETERS
    connection_components: ConnectionComponents = field(default_factory=ConnectionComponents)
    saved_connections: list[ConnectionProfile] = field(default_factory=list)
    recent_connections: list[ConnectionProfile] = field(default_factory=list)
    azure_subscriptions: list[AzureSubscriptionInfo] = field(default_factory=list)
    azure_servers: list[AzureServerInfo] = field(default_factory=list)
    connection_status: ApiStatus = ApiStatus.NOT_STARTED
    form_error: str = ""
    loading_azure_subscriptions_status: ApiStatus = ApiStatus.NOT_STARTED
    loading_azure_servers_status: ApiStatus = ApiStatus.NOT_STARTED
    dialog: RecoveryDialog | None = None
    # subscription id -> provider handle; never part of a snapshot
    azure_subscription_handles: dict[str, Any] = field(default_factory=dict)

    @property
    def can_connect(self) -> bool:
        return self.dialog is None and self.connection_status != ApiStatus.LOADING

    def find_subscription(self, subscription_id: str) -> AzureSubscriptionInfo | None:
        return next((s for s in self.azure_subscriptions if s.id == subscription_id), None)

    def snapshot(self) -> DialogSession:
        """Deep copy for rendering, without the provider handles."""
        handles = self.azure_subscription_handles
        self.azure_subscription_handles = {}
        try:
            snap = copy.deepcopy(self)
        finally:
            self.azure_subscription_handles = handles
        return snap
