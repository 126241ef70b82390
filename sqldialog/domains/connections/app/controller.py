"""Connection dialog controller.

The controller owns one DialogSession for the lifetime of an open dialog.
Every user action is a typed payload; dispatch() routes it to a reducer
that runs to completion inside the session mailbox and returns a
snapshot for rendering. The only work that outlives an action is the
background load of Azure servers, which takes the mailbox around each
write it makes.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from sqldialog.domains.connections.app import messages
from sqldialog.domains.connections.app.action_buttons import AZURE_SIGN_IN, REFRESH_TOKEN, ActionButtonRegistry
from sqldialog.domains.connections.app.actions import (
    AddFirewallRule,
    CloseDialog,
    Connect,
    DeleteSavedConnection,
    DialogAction,
    FilterAzureSubscriptions,
    FormAction,
    IpRange,
    LoadAzureServers,
    LoadConnection,
    RefreshConnectionsList,
    RemoveRecentConnection,
    SetInputMode,
)
from sqldialog.domains.connections.app.connect import ConnectAttemptOrchestrator
from sqldialog.domains.connections.app.mailbox import SessionMailbox
from sqldialog.domains.connections.app.resources import AsyncResourceLoader
from sqldialog.domains.connections.app.schema_compiler import FormSchemaCompiler
from sqldialog.domains.connections.app.services import DialogServices
from sqldialog.domains.connections.app.telemetry import TelemetryAction
from sqldialog.domains.connections.app.validation import clear_validation, get_active_field, validate_field
from sqldialog.domains.connections.app.visibility import update_item_visibility
from sqldialog.domains.connections.domain.fields import ActionButton, FieldSpec, ValidationContext
from sqldialog.domains.connections.domain.profile import (
    AuthType,
    ConnectionProfile,
    FieldName,
    InputMode,
    create_blank_profile,
)
from sqldialog.domains.connections.domain.session import ApiStatus, DialogSession

logger = logging.getLogger(__name__)

MFA_FIELDS: tuple[str, ...] = (FieldName.ACCOUNT_ID, FieldName.TENANT_ID, FieldName.AUTHENTICATION_TYPE)

# Actions that end in a connection attempt; only one may be queued or running.
_CONNECTING_ACTIONS = (Connect, AddFirewallRule)

Reducer = Callable[[DialogSession, Any], Awaitable[DialogSession]]


class ConnectionDialogController:
    def __init__(self, services: DialogServices, connection_to_edit: ConnectionProfile | None = None) -> None:
        self._services = services
        self._connection_to_edit = connection_to_edit
        self._editing: ConnectionProfile | None = None
        self.session = DialogSession()

        self._mailbox = SessionMailbox()
        self._buttons = ActionButtonRegistry()
        self._server_load: asyncio.Task[None] | None = None
        self._connect_requested = False

        self._resources = AsyncResourceLoader(
            connection_store=services.connection_store,
            account_service=services.account_service,
            auth_provider=services.auth_provider,
            server_discovery=services.server_discovery,
            diagnostics=services.diagnostics,
            subscription_filter_enabled=lambda: services.settings_provider().use_subscription_filter,
        )
        self._compiler = FormSchemaCompiler(services.diagnostics)
        self._orchestrator = ConnectAttemptOrchestrator(
            connection_ui=services.connection_ui,
            connection_store=services.connection_store,
            workspace=services.workspace,
            host=services.host,
            firewall=services.firewall,
            resources=self._resources,
            diagnostics=services.diagnostics,
            feedback=services.feedback_prompt,
        )

        self._reducers: dict[type, Reducer] = {
            SetInputMode: self._on_set_input_mode,
            FormAction: self._on_form_action,
            LoadConnection: self._on_load_connection,
            Connect: self._on_connect,
            LoadAzureServers: self._on_load_azure_servers,
            AddFirewallRule: self._on_add_firewall_rule,
            CloseDialog: self._on_close_dialog,
            FilterAzureSubscriptions: self._on_filter_azure_subscriptions,
            RefreshConnectionsList: self._on_refresh_connections_list,
            DeleteSavedConnection: self._on_delete_saved_connection,
            RemoveRecentConnection: self._on_remove_recent_connection,
        }

    @property
    def editing(self) -> ConnectionProfile | None:
        """The original of the connection being edited, if any."""
        return self._editing

    def snapshot(self) -> DialogSession:
        return self.session.snapshot()

    # Lifecycle

    async def initialize(self) -> DialogSession:
        """Load connections, the profile to edit and the form schema. Never raises."""
        return await self._mailbox.submit(self._initialize)

    async def join_background(self) -> None:
        """Wait for the background server load, if one is running."""
        task = self._server_load
        if task is not None:
            await asyncio.wait([task])

    async def aclose(self) -> None:
        await self._mailbox.submit(self._cancel_server_load)

    async def _initialize(self) -> DialogSession:
        diagnostics = self._services.diagnostics
        try:
            await self._reload_connections()
        except Exception as exc:
            logger.error("Error loading connections: %s", type(exc).__name__)
            diagnostics.send_error_event(TelemetryAction.INITIALIZE, exc, include_error_message=False)

        try:
            if self._connection_to_edit is not None:
                await self._load_connection_to_edit(self._connection_to_edit)
            else:
                self._load_empty_connection()
        except Exception as exc:
            logger.error("Error loading the connection to edit: %s", type(exc).__name__)
            self._load_empty_connection()
            diagnostics.send_error_event(TelemetryAction.INITIALIZE, exc, include_error_message=False)

        try:
            capabilities = await self._services.capability_source.get_capabilities()
            self.session.connection_components = self._compiler.compile(
                capabilities,
                account_options=await self._resources.get_accounts(),
                account_buttons=await self._build_account_buttons(),
            )
        except Exception as exc:
            logger.error("Error loading connection capabilities: %s", exc)
            self.session.form_error = str(exc)
            diagnostics.send_error_event(TelemetryAction.INITIALIZE, exc, include_error_message=True)

        await self._update_visibility()
        return self.session.snapshot()

    async def _load_connection_to_edit(self, connection: ConnectionProfile) -> None:
        self._editing = connection.copy()
        profile = await self._resources.prepare_profile_for_dialog(connection)
        self.session.connection_profile = profile
        if profile.has_connection_string and profile.values.get(FieldName.SERVER) is None:
            self.session.selected_input_mode = InputMode.CONNECTION_STRING
        else:
            self.session.selected_input_mode = InputMode.PARAMETERS

    def _load_empty_connection(self) -> None:
        settings = self._services.settings_provider()
        self.session.connection_profile = create_blank_profile(
            connect_timeout=settings.default_connect_timeout,
            application_name=settings.default_application_name,
        )

    # Dispatch

    async def dispatch(self, action: DialogAction) -> DialogSession:
        """Run one action and return the updated session snapshot."""
        reducer = self._reducers.get(type(action))
        if reducer is None:
            raise TypeError(f"Unknown dialog action: {type(action).__name__}")

        if not isinstance(action, _CONNECTING_ACTIONS):
            return await self._mailbox.submit(lambda: self._run(reducer, action))

        if self._connect_requested:
            logger.info("Ignoring %s; a connection attempt is already queued or running", type(action).__name__)
            return self.session.snapshot()
        self._connect_requested = True
        try:
            return await self._mailbox.submit(lambda: self._run(reducer, action))
        finally:
            self._connect_requested = False

    async def _run(self, reducer: Reducer, action: Any) -> DialogSession:
        try:
            await reducer(self.session, action)
        except Exception as exc:
            # Raw messages may carry connection details; log the type only.
            logger.error("Dialog action %s failed: %s", type(action).__name__, type(exc).__name__)
            logger.debug("Dialog action failure", exc_info=True)
            self.session.form_error = str(exc)
            if self.session.connection_status == ApiStatus.LOADING:
                self.session.connection_status = ApiStatus.ERROR
            self._services.diagnostics.send_error_event(type(action).__name__, exc, include_error_message=False)
        return self.session.snapshot()

    # Convenience wrappers

    async def set_input_mode(self, input_mode: InputMode) -> DialogSession:
        return await self.dispatch(SetInputMode(input_mode))

    async def form_action(self, field_name: str, value: Any, *, is_action: bool = False) -> DialogSession:
        return await self.dispatch(FormAction(field_name, value, is_action))

    async def load_connection(self, connection: ConnectionProfile) -> DialogSession:
        return await self.dispatch(LoadConnection(connection))

    async def connect(self) -> DialogSession:
        return await self.dispatch(Connect())

    async def load_azure_servers(self, subscription_id: str) -> DialogSession:
        return await self.dispatch(LoadAzureServers(subscription_id))

    async def add_firewall_rule(self, name: str, ip: str | IpRange, tenant_id: str) -> DialogSession:
        return await self.dispatch(AddFirewallRule(name, ip, tenant_id))

    async def close_dialog(self) -> DialogSession:
        return await self.dispatch(CloseDialog())

    async def filter_azure_subscriptions(self) -> DialogSession:
        return await self.dispatch(FilterAzureSubscriptions())

    async def refresh_connections_list(self) -> DialogSession:
        return await self.dispatch(RefreshConnectionsList())

    async def delete_saved_connection(self, connection: ConnectionProfile) -> DialogSession:
        return await self.dispatch(DeleteSavedConnection(connection))

    async def remove_recent_connection(self, connection: ConnectionProfile) -> DialogSession:
        return await self.dispatch(RemoveRecentConnection(connection))

    # Reducers

    async def _on_set_input_mode(self, session: DialogSession, action: SetInputMode) -> DialogSession:
        session.selected_input_mode = action.input_mode
        await self._update_visibility()
        if action.input_mode == InputMode.AZURE_BROWSE:
            await self._start_server_load()
        else:
            await self._cancel_server_load()
        return session

    async def _on_form_action(self, session: DialogSession, action: FormAction) -> DialogSession:
        if action.is_action:
            spec = self._active_field(action.field_name)
            if spec is not None and any(b.id == action.value for b in spec.action_buttons):
                await self._buttons.invoke(action.field_name, str(action.value))
        else:
            session.connection_profile.set(action.field_name, action.value)
            validate_field(
                session.connection_components,
                session.selected_input_mode,
                action.field_name,
                action.value,
                self._validation_context(),
            )
            await self._handle_azure_mfa_edits(action.field_name)
        await self._update_visibility()
        return session

    async def _on_load_connection(self, session: DialogSession, action: LoadConnection) -> DialogSession:
        self._services.diagnostics.send_action_event(TelemetryAction.LOAD_CONNECTION)

        self._editing = action.connection.copy()
        session.form_error = ""
        clear_validation(session.connection_components, session.selected_input_mode)
        session.connection_profile = action.connection.copy()
        session.selected_input_mode = (
            InputMode.CONNECTION_STRING if self._editing.has_connection_string else InputMode.PARAMETERS
        )
        clear_validation(session.connection_components, session.selected_input_mode)
        await self._cancel_server_load()

        await self._update_visibility()
        await self._handle_azure_mfa_edits(FieldName.ACCOUNT_ID)
        await self._update_visibility()
        return session

    async def _on_connect(self, session: DialogSession, action: Connect) -> DialogSession:
        await self._orchestrator.connect(session, self._editing)
        return session

    async def _on_load_azure_servers(self, session: DialogSession, action: LoadAzureServers) -> DialogSession:
        await self._resources.load_servers_for_subscription(session, action.subscription_id, self._mailbox.guard)
        return session

    async def _on_add_firewall_rule(self, session: DialogSession, action: AddFirewallRule) -> DialogSession:
        start_ip, end_ip = action.ip_bounds
        await self._orchestrator.add_firewall_rule(session, action.name, start_ip, end_ip, action.tenant_id, self._editing)
        return session

    async def _on_close_dialog(self, session: DialogSession, action: CloseDialog) -> DialogSession:
        session.dialog = None
        return session

    async def _on_filter_azure_subscriptions(self, session: DialogSession, action: FilterAzureSubscriptions) -> DialogSession:
        prompt = self._services.subscription_filter_prompt
        if prompt is not None:
            await prompt.prompt_for_subscription_filter(session)
        await self._start_server_load()
        return session

    async def _on_refresh_connections_list(self, session: DialogSession, action: RefreshConnectionsList) -> DialogSession:
        await self._reload_connections()
        return session

    async def _on_delete_saved_connection(self, session: DialogSession, action: DeleteSavedConnection) -> DialogSession:
        title = messages.confirm_delete_saved_connection(action.connection.display_name)
        choice = await self._services.host.confirm(title, [messages.DELETE, messages.CANCEL])
        if choice != messages.DELETE:
            return session

        if await self._services.connection_store.remove_profile(action.connection):
            await self._reload_connections()
        return session

    async def _on_remove_recent_connection(self, session: DialogSession, action: RemoveRecentConnection) -> DialogSession:
        await self._services.connection_store.remove_recently_used(action.connection)
        await self._reload_connections()
        return session

    # Helpers

    def _validation_context(self) -> ValidationContext:
        return ValidationContext(profile=self.session.connection_profile, input_mode=self.session.selected_input_mode)

    def _active_field(self, name: str) -> FieldSpec | None:
        return get_active_field(self.session.connection_components, self.session.selected_input_mode, name)

    async def _update_visibility(self) -> None:
        await update_item_visibility(
            self.session.connection_components,
            self.session.selected_input_mode,
            self.session.connection_profile,
            self._resources.get_tenants,
        )

    async def _reload_connections(self) -> None:
        self.session.saved_connections, self.session.recent_connections = await self._resources.load_connections()

    async def _start_server_load(self) -> None:
        await self._cancel_server_load()
        self._server_load = asyncio.create_task(
            self._resources.load_all_servers(self.session, self._mailbox.guard),
            name="sqldialog-load-azure-servers",
        )

    async def _cancel_server_load(self) -> None:
        task = self._server_load
        self._server_load = None
        if task is None or task.done():
            return
        task.cancel()
        await asyncio.wait([task])
        logger.debug("Cancelled Azure server load")

    async def _handle_azure_mfa_edits(self, field_name: str) -> None:
        if field_name not in MFA_FIELDS or field_name == FieldName.TENANT_ID:
            return
        profile = self.session.connection_profile
        if profile.auth_type != AuthType.AZURE_MFA:
            return

        account_spec = self._active_field(FieldName.ACCOUNT_ID)
        tenant_spec = self._active_field(FieldName.TENANT_ID)

        if field_name == FieldName.AUTHENTICATION_TYPE and account_spec is not None and account_spec.options:
            known = [option.value for option in account_spec.options]
            if profile.get(FieldName.ACCOUNT_ID) not in known:
                profile.set(FieldName.ACCOUNT_ID, known[0])

        tenants = await self._resources.get_tenants(profile.get(FieldName.ACCOUNT_ID))
        if tenant_spec is not None:
            tenant_spec.options = tenants
            if tenants:
                profile.set(FieldName.TENANT_ID, tenants[0].value)

        if account_spec is not None:
            account_spec.action_buttons = await self._build_account_buttons()

    async def _build_account_buttons(self) -> list[ActionButton]:
        self._buttons.clear(FieldName.ACCOUNT_ID)
        buttons = [
            self._buttons.register(FieldName.ACCOUNT_ID, ActionButton(AZURE_SIGN_IN, messages.SIGN_IN), self._sign_in)
        ]

        profile = self.session.connection_profile
        if profile.auth_type != AuthType.AZURE_MFA or not profile.get(FieldName.ACCOUNT_ID):
            return buttons

        account_service = self._services.account_service
        try:
            account = await self._resources.find_account(profile.get(FieldName.ACCOUNT_ID))
            if account is not None:
                token = await account_service.get_account_security_token(account, None)
                if account_service.is_token_invalid(token):
                    buttons.append(
                        self._buttons.register(
                            FieldName.ACCOUNT_ID,
                            ActionButton(REFRESH_TOKEN, messages.REFRESH_TOKEN),
                            self._refresh_token,
                        )
                    )
        except Exception as exc:
            logger.warning("Could not check the token of the selected account: %s", type(exc).__name__)
        return buttons

    async def _sign_in(self) -> None:
        account = await self._services.account_service.add_account()
        account_spec = self._active_field(FieldName.ACCOUNT_ID)
        if account_spec is None:
            return
        account_spec.options = await self._resources.get_accounts()
        self.session.connection_profile.set(FieldName.ACCOUNT_ID, account.user_id)
        await self._handle_azure_mfa_edits(FieldName.ACCOUNT_ID)

    async def _refresh_token(self) -> None:
        account = await self._resources.find_account(self.session.connection_profile.get(FieldName.ACCOUNT_ID))
        if account is None:
            return
        token = await self._services.account_service.get_account_security_token(account, None)
        logger.info("Token refreshed, expires %s", token.expires_on)
