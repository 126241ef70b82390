"""Service container and builder for the connection dialog."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from sqldialog.domains.connections.store.settings import DialogSettings, load_dialog_settings
from sqldialog.shared.core.protocols import (
    AzureAccountServiceProtocol,
    AzureAuthProviderProtocol,
    CapabilitySourceProtocol,
    ConnectionStoreProtocol,
    ConnectionUIProtocol,
    DiagnosticsReporterProtocol,
    DialogHostProtocol,
    FeedbackPromptProtocol,
    FirewallServiceProtocol,
    ServerDiscoveryProtocol,
    SubscriptionFilterPromptProtocol,
    WorkspaceProtocol,
)


@dataclass
class DialogServices:
    """Container for the collaborators one dialog talks to."""

    capability_source: CapabilitySourceProtocol
    account_service: AzureAccountServiceProtocol
    auth_provider: AzureAuthProviderProtocol
    connection_ui: ConnectionUIProtocol
    workspace: WorkspaceProtocol
    host: DialogHostProtocol
    connection_store: ConnectionStoreProtocol
    firewall: FirewallServiceProtocol
    server_discovery: ServerDiscoveryProtocol
    diagnostics: DiagnosticsReporterProtocol
    settings_provider: Callable[[], DialogSettings] = load_dialog_settings
    subscription_filter_prompt: SubscriptionFilterPromptProtocol | None = None
    feedback_prompt: FeedbackPromptProtocol | None = None


def build_dialog_services(
    *,
    capability_source: CapabilitySourceProtocol,
    account_service: AzureAccountServiceProtocol,
    auth_provider: AzureAuthProviderProtocol,
    connection_ui: ConnectionUIProtocol,
    workspace: WorkspaceProtocol,
    host: DialogHostProtocol,
    connection_store: ConnectionStoreProtocol | None = None,
    firewall: FirewallServiceProtocol | None = None,
    server_discovery: ServerDiscoveryProtocol | None = None,
    diagnostics: DiagnosticsReporterProtocol | None = None,
    settings_provider: Callable[[], DialogSettings] | None = None,
    subscription_filter_prompt: SubscriptionFilterPromptProtocol | None = None,
    feedback_prompt: FeedbackPromptProtocol | None = None,
) -> DialogServices:
    """Build dialog services, filling in the local defaults.

    The default connection store keeps profiles in the config directory and
    passwords in the OS keyring; firewall rules and server discovery go
    through the Azure CLI; diagnostics go to the log.
    """
    if connection_store is None:
        from sqldialog.domains.connections.store.connections import JSONConnectionStore

        connection_store = JSONConnectionStore.get_instance()
    if firewall is None:
        from sqldialog.domains.connections.discovery.azure.firewall import AzureCliFirewallService

        firewall = AzureCliFirewallService()
    if server_discovery is None:
        from sqldialog.domains.connections.discovery.azure.servers import AzureCliServerDiscovery

        server_discovery = AzureCliServerDiscovery()
    if diagnostics is None:
        from sqldialog.domains.connections.app.telemetry import LoggingDiagnostics

        diagnostics = LoggingDiagnostics()

    return DialogServices(
        capability_source=capability_source,
        account_service=account_service,
        auth_provider=auth_provider,
        connection_ui=connection_ui,
        workspace=workspace,
        host=host,
        connection_store=connection_store,
        firewall=firewall,
        server_discovery=server_discovery,
        diagnostics=diagnostics,
        settings_provider=settings_provider or load_dialog_settings,
        subscription_filter_prompt=subscription_filter_prompt,
        feedback_prompt=feedback_prompt,
    )
