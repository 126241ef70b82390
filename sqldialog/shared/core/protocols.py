"""Protocols for the connection dialog's collaborators.

The dialog core talks to the outside world only through these interfaces,
which keeps the state machine testable with in-memory fakes.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from sqldialog.domains.connections.domain.azure import AzureServerInfo
    from sqldialog.domains.connections.domain.contracts import (
        AccountToken,
        AzureAccount,
        CapabilitiesResult,
        ConnectionCompleteResult,
        FirewallRuleRequest,
        FirewallRuleResult,
        HandleFirewallRuleResult,
        StoredConnection,
    )
    from sqldialog.domains.connections.domain.profile import ConnectionProfile
    from sqldialog.domains.connections.domain.session import DialogSession


@runtime_checkable
class CapabilitySourceProtocol(Protocol):
    async def get_capabilities(self) -> CapabilitiesResult:
        """Fetch the ordered connection options and category labels."""
        ...


@runtime_checkable
class AzureAccountServiceProtocol(Protocol):
    """Accounts known to the identity provider client."""

    async def get_accounts(self) -> list[AzureAccount]: ...

    async def add_account(self) -> AzureAccount:
        """Run an interactive sign-in and return the new account."""
        ...

    async def get_account_security_token(self, account: AzureAccount, tenant_id: str | None) -> AccountToken: ...

    def is_token_invalid(self, token: AccountToken) -> bool:
        """Return True if the token is missing or expired."""
        ...


@runtime_checkable
class AzureSubscriptionProtocol(Protocol):
    """Handle for a cloud subscription returned by the auth provider."""

    subscription_id: str
    name: str
    tenant_id: str

    async def get_token(self, scope: str) -> AccountToken: ...

    async def get_session(self) -> Any:
        """Return the provider session; ``session.account.label`` names the user."""
        ...


@runtime_checkable
class AzureAuthProtocol(Protocol):
    async def get_tenants(self) -> list[Any]:
        """Return tenants exposing ``tenant_id`` and ``display_name``."""
        ...

    async def get_subscriptions(self, use_filter: bool) -> list[AzureSubscriptionProtocol]: ...


@runtime_checkable
class AzureAuthProviderProtocol(Protocol):
    async def sign_in(self) -> AzureAuthProtocol | None:
        """Make sure the user is signed in; None if they declined or it failed."""
        ...


@runtime_checkable
class FirewallServiceProtocol(Protocol):
    async def create_firewall_rule(self, request: FirewallRuleRequest) -> FirewallRuleResult: ...

    async def handle_firewall_rule(self, error_code: int, error_message: str) -> HandleFirewallRuleResult:
        """Work out the client IP blocked by a firewall error."""
        ...


@runtime_checkable
class ServerDiscoveryProtocol(Protocol):
    async def fetch_servers_from_azure(self, subscription: AzureSubscriptionProtocol) -> list[AzureServerInfo]: ...


@runtime_checkable
class ConnectionStoreProtocol(Protocol):
    """Persisted saved and recently used connections."""

    def load_all_connections(self, include_recents: bool) -> list[StoredConnection]: ...

    async def lookup_password(self, profile: ConnectionProfile, is_connection_string: bool) -> str | None: ...

    async def remove_profile(self, profile: ConnectionProfile) -> bool: ...

    async def remove_recently_used(self, profile: ConnectionProfile) -> None: ...


@runtime_checkable
class ConnectionUIProtocol(Protocol):
    async def validate_and_save_profile_from_dialog(self, profile: ConnectionProfile) -> ConnectionCompleteResult:
        """Try the connection; a result with an error message means it failed."""
        ...

    async def save_profile(self, profile: ConnectionProfile) -> None: ...


@runtime_checkable
class WorkspaceProtocol(Protocol):
    """The host's tree of live connection sessions."""

    async def get_uri_for_connection(self, profile: ConnectionProfile) -> str | None: ...

    async def remove_connection_nodes(self, profiles: list[ConnectionProfile]) -> None: ...

    def refresh(self) -> None: ...

    async def create_session_from_dialog(self, profile: ConnectionProfile) -> Any: ...

    async def reveal(self, node: Any) -> None: ...


@runtime_checkable
class DialogHostProtocol(Protocol):
    async def confirm(self, title: str, choices: list[str]) -> str | None:
        """Ask the user to pick one of ``choices``; None if dismissed."""
        ...

    async def close(self) -> None: ...


@runtime_checkable
class SubscriptionFilterPromptProtocol(Protocol):
    async def prompt_for_subscription_filter(self, session: DialogSession) -> None: ...


@runtime_checkable
class FeedbackPromptProtocol(Protocol):
    async def prompt_for_feedback(self) -> None: ...


@runtime_checkable
class ActivityProtocol(Protocol):
    def end(self, properties: dict[str, str] | None = None, measurements: dict[str, float] | None = None) -> None: ...

    def end_failed(self, error: BaseException, include_error_message: bool = False) -> None: ...


@runtime_checkable
class DiagnosticsReporterProtocol(Protocol):
    """Telemetry sink for the dialog. Implementations must not see raw profiles."""

    def send_action_event(
        self,
        action: str,
        properties: dict[str, str] | None = None,
        measurements: dict[str, float] | None = None,
    ) -> None: ...

    def send_error_event(
        self,
        action: str,
        error: BaseException,
        include_error_message: bool = False,
        properties: dict[str, str] | None = None,
        measurements: dict[str, float] | None = None,
    ) -> None: ...

    def start_activity(self, action: str) -> ActivityProtocol: ...
