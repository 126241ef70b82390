"""Asynchronous loading of the resources the dialog displays.

Saved and recent connections, identity accounts and tenants, cloud
subscriptions and the servers inside them. Loading tolerates partial
failure: one bad profile or one unreachable subscription is logged and
reported, and everything else still loads.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from typing import Any, AsyncContextManager

from sqldialog.domains.connections.app import messages
from sqldialog.domains.connections.app.telemetry import TelemetryAction
from sqldialog.domains.connections.domain.azure import AzureSubscriptionInfo
from sqldialog.domains.connections.domain.contracts import AzureAccount, ConnectionKind, TenantInfo
from sqldialog.domains.connections.domain.errors import AzureAccountError
from sqldialog.domains.connections.domain.fields import FieldOption
from sqldialog.domains.connections.domain.profile import (
    ConnectionProfile,
    FieldName,
    extract_password_from_connection_string,
    get_connection_display_name,
)
from sqldialog.domains.connections.domain.session import ApiStatus, DialogSession
from sqldialog.shared.core.protocols import (
    AzureAccountServiceProtocol,
    AzureAuthProviderProtocol,
    AzureSubscriptionProtocol,
    ConnectionStoreProtocol,
    DiagnosticsReporterProtocol,
    ServerDiscoveryProtocol,
)

logger = logging.getLogger(__name__)

Guard = Callable[[], AsyncContextManager[None]]

TOKEN_SCOPE = ".default"


def group_by_tenant(subscriptions: Iterable[AzureSubscriptionProtocol]) -> dict[str, list[AzureSubscriptionProtocol]]:
    """Group subscriptions by tenant id, keeping first-seen order."""
    groups: dict[str, list[AzureSubscriptionProtocol]] = {}
    for subscription in subscriptions:
        groups.setdefault(subscription.tenant_id, []).append(subscription)
    return groups


class AsyncResourceLoader:
    def __init__(
        self,
        *,
        connection_store: ConnectionStoreProtocol,
        account_service: AzureAccountServiceProtocol,
        auth_provider: AzureAuthProviderProtocol,
        server_discovery: ServerDiscoveryProtocol,
        diagnostics: DiagnosticsReporterProtocol,
        subscription_filter_enabled: Callable[[], bool] = lambda: False,
    ) -> None:
        self._store = connection_store
        self._accounts = account_service
        self._auth = auth_provider
        self._discovery = server_discovery
        self._diagnostics = diagnostics
        self._subscription_filter_enabled = subscription_filter_enabled

    # Saved and recent connections

    async def load_connections(self) -> tuple[list[ConnectionProfile], list[ConnectionProfile]]:
        """Return (saved, recent) profiles prepared for the dialog."""
        stored = self._store.load_all_connections(True)
        saved = [c.profile for c in stored if c.kind == ConnectionKind.SAVED]
        recent = [c.profile for c in stored if c.kind == ConnectionKind.RECENT]

        self._diagnostics.send_action_event(
            TelemetryAction.LOAD_RECENT_CONNECTIONS,
            measurements={
                "savedConnectionsCount": float(len(saved)),
                "recentConnectionsCount": float(len(recent)),
            },
        )

        return (
            await self._prepare_all(saved, ConnectionKind.SAVED),
            await self._prepare_all(recent, ConnectionKind.RECENT),
        )

    async def _prepare_all(self, profiles: list[ConnectionProfile], kind: ConnectionKind) -> list[ConnectionProfile]:
        prepared: list[ConnectionProfile] = []
        for profile in profiles:
            try:
                prepared.append(await self.prepare_profile_for_dialog(profile))
            except Exception as exc:
                logger.error("Error initializing %s connection: %s", kind.value, type(exc).__name__)
                self._diagnostics.send_error_event(
                    TelemetryAction.LOAD_CONNECTIONS,
                    exc,
                    include_error_message=False,
                    properties={
                        "connectionType": kind.value,
                        "authType": str(profile.get(FieldName.AUTHENTICATION_TYPE, "")),
                    },
                )
        return prepared

    async def prepare_profile_for_dialog(self, profile: ConnectionProfile) -> ConnectionProfile:
        """Copy a stored profile and fill in its secret and display name.

        Connection string profiles keep the whole connection string as their
        secret; when it carries a password, the password is lifted into the
        profile and the connection string key is cleared from view.
        """
        connection = profile.copy()
        is_connection_string = connection.has_connection_string
        secret = await self._store.lookup_password(connection, is_connection_string)

        if not is_connection_string:
            connection.set(FieldName.PASSWORD, secret)
        elif secret and "password=" in secret.lower():
            password = extract_password_from_connection_string(secret)
            if password is not None:
                connection.set(FieldName.PASSWORD, password)
            connection.set(FieldName.CONNECTION_STRING, "")

        connection.set(
            FieldName.DISPLAY_NAME,
            connection.get(FieldName.PROFILE_NAME) or get_connection_display_name(connection),
        )
        return connection

    # Accounts and tenants

    async def get_accounts(self) -> list[FieldOption]:
        accounts: list[AzureAccount] = []
        try:
            accounts = await self._accounts.get_accounts()
            return [FieldOption(value=a.user_id, display_name=a.display_name) for a in accounts]
        except Exception as exc:
            logger.error("Error loading Azure accounts: %s", exc)
            self._diagnostics.send_error_event(
                TelemetryAction.LOAD_AZURE_ACCOUNTS,
                exc,
                include_error_message=False,
                measurements={
                    "accountCount": float(len(accounts)),
                    "undefinedAccountCount": float(sum(1 for a in accounts if a is None)),
                },
            )
            return []

    async def find_account(self, account_id: Any) -> AzureAccount | None:
        if not account_id:
            return None
        accounts = await self._accounts.get_accounts()
        return next((a for a in accounts if a is not None and a.user_id == account_id), None)

    async def get_tenants(self, account_id: Any) -> list[FieldOption]:
        tenants: list[TenantInfo] = []
        try:
            account = await self.find_account(account_id)
            if account is None:
                return []
            tenants = list(account.tenants or [])
            return [FieldOption(value=t.id, display_name=t.name) for t in tenants]
        except Exception as exc:
            logger.error("Error loading Azure tenants: %s", exc)
            self._diagnostics.send_error_event(
                TelemetryAction.LOAD_AZURE_TENANTS,
                exc,
                include_error_message=False,
                measurements={
                    "tenant": float(len(tenants)),
                    "undefinedTenantCount": float(sum(1 for t in tenants if t is None)),
                },
            )
            return []

    async def get_client_tenants(self) -> list[TenantInfo]:
        """Tenants visible to the signed-in identity provider session."""
        auth = await self._auth.sign_in()
        if auth is None:
            return []
        return [TenantInfo(id=t.tenant_id, name=t.display_name) for t in await auth.get_tenants()]

    async def construct_account_for_tenant(self, tenant_id: str) -> tuple[AzureAccount, dict[str, dict[str, str]]]:
        """Build an account scoped to one tenant plus its token mapping.

        Raises:
            AzureAccountError: If sign-in fails or no subscription belongs to the tenant.
        """
        auth = await self._auth.sign_in()
        if auth is None:
            raise AzureAccountError(messages.AZURE_SIGN_IN_FAILED)

        subscriptions = await auth.get_subscriptions(False)
        subscription = next((s for s in subscriptions if s.tenant_id == tenant_id), None)
        if subscription is None:
            raise AzureAccountError(messages.error_loading_azure_account_info_for_tenant(tenant_id))

        token = await subscription.get_token(TOKEN_SCOPE)
        provider_session = await subscription.get_session()
        label = str(provider_session.account.label)

        account = AzureAccount(
            id=label,
            user_id=label,
            display_name=label,
            tenants=[TenantInfo(id=subscription.tenant_id, name=subscription.tenant_id)],
            account_type=getattr(provider_session.account, "type", None),
        )
        return account, {subscription.tenant_id: {"Token": token.token}}

    # Subscriptions and servers

    async def load_subscriptions(self, session: DialogSession, guard: Guard) -> dict[str, list[AzureSubscriptionProtocol]] | None:
        """Sign in and list subscriptions grouped by tenant; None on failure."""
        activity = None
        try:
            auth = await self._auth.sign_in()
            if auth is None:
                async with guard():
                    session.form_error = messages.AZURE_SIGN_IN_FAILED
                return None

            async with guard():
                session.loading_azure_subscriptions_status = ApiStatus.LOADING

            activity = self._diagnostics.start_activity(TelemetryAction.LOAD_AZURE_SUBSCRIPTIONS)
            subscriptions = await auth.get_subscriptions(self._subscription_filter_enabled())
            by_tenant = group_by_tenant(subscriptions)

            infos = [
                AzureSubscriptionInfo(id=s.subscription_id, name=s.name, loaded=False)
                for group in by_tenant.values()
                for s in group
            ]
            async with guard():
                session.azure_subscription_handles.update({s.subscription_id: s for s in subscriptions})
                session.azure_subscriptions = infos
                session.loading_azure_subscriptions_status = ApiStatus.LOADED

            activity.end(measurements={"subscriptionCount": float(len(infos))})
            return by_tenant
        except Exception as exc:
            logger.error("%s %s", messages.ERROR_LOADING_AZURE_SUBSCRIPTIONS, exc)
            async with guard():
                session.form_error = messages.ERROR_LOADING_AZURE_SUBSCRIPTIONS
                session.loading_azure_subscriptions_status = ApiStatus.ERROR
            if activity is not None:
                activity.end_failed(exc, include_error_message=False)
            return None

    async def load_all_servers(self, session: DialogSession, guard: Guard) -> None:
        """Load subscriptions, then every subscription's servers concurrently."""
        activity = self._diagnostics.start_activity(TelemetryAction.LOAD_AZURE_SERVERS)
        try:
            by_tenant = await self.load_subscriptions(session, guard)
            if by_tenant is None:
                return

            if not by_tenant:
                async with guard():
                    session.form_error = messages.NO_SUBSCRIPTIONS_AVAILABLE
                return

            async with guard():
                session.loading_azure_servers_status = ApiStatus.LOADING
                session.azure_servers = []

            subscription_ids = [s.subscription_id for group in by_tenant.values() for s in group]
            await asyncio.gather(
                *(self.load_servers_for_subscription(session, sid, guard) for sid in subscription_ids)
            )

            async with guard():
                session.loading_azure_servers_status = ApiStatus.LOADED
            activity.end(measurements={"subscriptionCount": float(len(subscription_ids))})
        except Exception as exc:
            logger.error("%s %s", messages.ERROR_LOADING_AZURE_DATABASES, exc)
            async with guard():
                session.form_error = messages.ERROR_LOADING_AZURE_DATABASES
                session.loading_azure_servers_status = ApiStatus.ERROR
            activity.end_failed(exc, include_error_message=False)

    async def load_servers_for_subscription(self, session: DialogSession, subscription_id: str, guard: Guard) -> bool:
        """Fetch one subscription's servers; errors are logged and reported, not raised."""
        handle = session.azure_subscription_handles.get(subscription_id)
        if handle is None:
            logger.warning("Unknown subscription %s", subscription_id)
            return False

        try:
            servers = await self._discovery.fetch_servers_from_azure(handle)
        except Exception as exc:
            logger.error(
                "%s\n%s",
                messages.error_loading_azure_databases_for_subscription(handle.name, handle.subscription_id),
                exc,
            )
            self._diagnostics.send_error_event(TelemetryAction.LOAD_AZURE_SERVERS, exc, include_error_message=True)
            return False

        async with guard():
            session.azure_servers.extend(servers)
            info = session.find_subscription(subscription_id)
            if info is not None:
                info.loaded = True

        logger.info("Loaded %d servers for subscription %s (%s)", len(servers), handle.name, handle.subscription_id)
        return True
