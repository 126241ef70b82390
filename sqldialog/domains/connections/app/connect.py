"""Connect attempt orchestration and recovery from connection failures."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from sqldialog.domains.connections.app import messages
from sqldialog.domains.connections.app.resources import AsyncResourceLoader
from sqldialog.domains.connections.app.telemetry import TelemetryAction
from sqldialog.domains.connections.app.validation import clear_validation, validate_form
from sqldialog.domains.connections.domain.contracts import ConnectionCompleteResult, FirewallRuleRequest
from sqldialog.domains.connections.domain.errors import SqlDialogError
from sqldialog.domains.connections.domain.fields import ConnectionComponents, ValidationContext
from sqldialog.domains.connections.domain.profile import (
    CONNECTION_STRING_FIELDS,
    ConnectionProfile,
    FieldName,
    InputMode,
)
from sqldialog.domains.connections.domain.session import (
    AddFirewallRuleDialog,
    ApiStatus,
    DialogSession,
    TrustServerCertDialog,
)
from sqldialog.shared.core.protocols import (
    ConnectionStoreProtocol,
    ConnectionUIProtocol,
    DiagnosticsReporterProtocol,
    DialogHostProtocol,
    FeedbackPromptProtocol,
    FirewallServiceProtocol,
    WorkspaceProtocol,
)

logger = logging.getLogger(__name__)

CERT_VALIDATION_FAILED_ERROR_CODE = 150
FIREWALL_ERROR_CODE = 40615

FALLBACK_CLIENT_IP = "0.0.0.0"


def clean_connection(
    profile: ConnectionProfile,
    components: ConnectionComponents,
    input_mode: InputMode,
) -> ConnectionProfile:
    """Return a copy of ``profile`` without values the current form does not use.

    Hidden fields are cleared. Parameter modes clear the connection string;
    connection string mode clears everything except the connection string
    and profile name.
    """
    cleaned = profile.copy()
    for name in components.hidden_fields():
        cleaned.clear(name)

    if input_mode.uses_parameters:
        cleaned.clear(FieldName.CONNECTION_STRING)
    else:
        for name in cleaned.keys():
            if name not in CONNECTION_STRING_FIELDS:
                cleaned.clear(name)
    return cleaned


class ConnectionErrorHandler(Protocol):
    def can_handle(self, result: ConnectionCompleteResult) -> bool:
        """Return True if this handler can handle the failed result."""

    async def handle(self, orchestrator: ConnectAttemptOrchestrator, session: DialogSession, result: ConnectionCompleteResult) -> None:
        """Handle the failed result."""


@dataclass(frozen=True)
class TrustServerCertificateHandler:
    """Ask the user to trust the server certificate and try again."""

    def can_handle(self, result: ConnectionCompleteResult) -> bool:
        return result.error_number == CERT_VALIDATION_FAILED_ERROR_CODE

    async def handle(self, orchestrator: ConnectAttemptOrchestrator, session: DialogSession, result: ConnectionCompleteResult) -> None:
        # An untrusted certificate is a user decision, not a fault to report.
        session.connection_status = ApiStatus.ERROR
        session.dialog = TrustServerCertDialog(message=result.error_message or "")


@dataclass(frozen=True)
class AzureFirewallHandler:
    """Offer to add a firewall rule for the blocked client address."""

    def can_handle(self, result: ConnectionCompleteResult) -> bool:
        return result.error_number == FIREWALL_ERROR_CODE

    async def handle(self, orchestrator: ConnectAttemptOrchestrator, session: DialogSession, result: ConnectionCompleteResult) -> None:
        session.connection_status = ApiStatus.ERROR
        error_message = result.error_message or ""

        handled = await orchestrator.firewall.handle_firewall_rule(FIREWALL_ERROR_CODE, error_message)
        ip_address = handled.ip_address
        if not handled.result or not ip_address:
            # The message is only reported because no address could be found in it.
            orchestrator.diagnostics.send_error_event(
                TelemetryAction.ADD_FIREWALL_RULE,
                SqlDialogError(error_message),
                include_error_message=True,
            )
            ip_address = FALLBACK_CLIENT_IP

        tenants = await orchestrator.resources.get_client_tenants()
        session.dialog = AddFirewallRuleDialog(message=error_message, client_ip=ip_address, tenants=tenants)


_DEFAULT_HANDLERS: tuple[ConnectionErrorHandler, ...] = (
    TrustServerCertificateHandler(),
    AzureFirewallHandler(),
)


class ConnectAttemptOrchestrator:
    """Validate, connect, and route failures to recovery dialogs.

    Runs inside a controller action, so it mutates the session directly.
    """

    def __init__(
        self,
        *,
        connection_ui: ConnectionUIProtocol,
        connection_store: ConnectionStoreProtocol,
        workspace: WorkspaceProtocol,
        host: DialogHostProtocol,
        firewall: FirewallServiceProtocol,
        resources: AsyncResourceLoader,
        diagnostics: DiagnosticsReporterProtocol,
        feedback: FeedbackPromptProtocol | None = None,
        handlers: tuple[ConnectionErrorHandler, ...] = _DEFAULT_HANDLERS,
    ) -> None:
        self.connection_ui = connection_ui
        self.connection_store = connection_store
        self.workspace = workspace
        self.host = host
        self.firewall = firewall
        self.resources = resources
        self.diagnostics = diagnostics
        self.feedback = feedback
        self.handlers = handlers

    def _event_properties(self, session: DialogSession) -> dict[str, str]:
        return {
            "connectionInputType": session.selected_input_mode.value,
            "authMode": str(session.connection_profile.get(FieldName.AUTHENTICATION_TYPE, "")),
        }

    async def connect(self, session: DialogSession, editing: ConnectionProfile | None) -> None:
        session.form_error = ""
        clear_validation(session.connection_components, session.selected_input_mode)
        session.connection_status = ApiStatus.LOADING

        cleaned = clean_connection(
            session.connection_profile,
            session.connection_components,
            session.selected_input_mode,
        )

        context = ValidationContext(profile=session.connection_profile, input_mode=session.selected_input_mode)
        validation = validate_form(session.connection_components, session.selected_input_mode, cleaned, context)
        if not validation.is_valid():
            session.connection_status = ApiStatus.ERROR
            logger.warning("One or more inputs have errors: %s", ", ".join(validation.invalid_fields))
            return

        properties = self._event_properties(session)
        properties["newOrEditedConnection"] = "edited" if editing is not None else "new"

        try:
            result = await self.connection_ui.validate_and_save_profile_from_dialog(cleaned)
        except Exception as exc:
            logger.error("Connection attempt failed: %s", type(exc).__name__)
            session.form_error = str(exc)
            session.connection_status = ApiStatus.ERROR
            self.diagnostics.send_error_event(
                TelemetryAction.CREATE_CONNECTION,
                exc,
                include_error_message=False,
                properties=self._event_properties(session),
            )
            return

        if not result.ok:
            await self._handle_error_result(session, result, properties)
            return

        self.diagnostics.send_action_event(TelemetryAction.CREATE_CONNECTION, {**properties, "result": "success"})

        try:
            await self._complete_connection(session, editing)
        except Exception as exc:
            logger.error("Error finishing connection: %s", type(exc).__name__)
            session.connection_status = ApiStatus.ERROR
            self.diagnostics.send_error_event(
                TelemetryAction.CREATE_CONNECTION,
                exc,
                properties=self._event_properties(session),
            )

    async def _handle_error_result(
        self,
        session: DialogSession,
        result: ConnectionCompleteResult,
        properties: dict[str, str],
    ) -> None:
        for handler in self.handlers:
            if handler.can_handle(result):
                await handler.handle(self, session, result)
                return

        session.form_error = result.error_message or ""
        session.connection_status = ApiStatus.ERROR
        self.diagnostics.send_action_event(
            TelemetryAction.CREATE_CONNECTION,
            {**properties, "result": "connectionError", "errorNumber": str(result.error_number)},
        )

    async def _complete_connection(self, session: DialogSession, editing: ConnectionProfile | None) -> None:
        if editing is not None:
            await self.workspace.get_uri_for_connection(editing)
            await self.workspace.remove_connection_nodes([editing])
            await self.connection_store.remove_profile(editing)
            self.workspace.refresh()

        await self.connection_ui.save_profile(session.connection_profile)
        node = await self.workspace.create_session_from_dialog(session.connection_profile)
        self.workspace.refresh()

        session.saved_connections, session.recent_connections = await self.resources.load_connections()
        session.connection_status = ApiStatus.LOADED

        await self.workspace.reveal(node)
        await self.host.close()
        if self.feedback is not None:
            await self.feedback.prompt_for_feedback()

    async def add_firewall_rule(
        self,
        session: DialogSession,
        name: str,
        start_ip: str,
        end_ip: str,
        tenant_id: str,
        editing: ConnectionProfile | None,
    ) -> None:
        """Create a firewall rule for the blocked address, then retry the connection.

        If no account can be built for the tenant, the dialog is closed with
        an error and the connection is not retried.
        """
        rule = f'"{name}" ({start_ip} - {end_ip})'
        logger.debug("Setting firewall rule: %s", rule)

        try:
            account, token_mappings = await self.resources.construct_account_for_tenant(tenant_id)
        except Exception as exc:
            session.form_error = messages.error_creating_firewall_rule(rule, str(exc))
            session.dialog = None
            self.diagnostics.send_error_event(
                TelemetryAction.ADD_FIREWALL_RULE,
                exc,
                include_error_message=False,
                properties={"failure": "constructAzureAccountForTenant"},
            )
            return

        creation_error = ""
        result = await self.firewall.create_firewall_rule(
            FirewallRuleRequest(
                account=account,
                firewall_rule_name=name,
                start_ip_address=start_ip,
                end_ip_address=end_ip,
                server_name=str(session.connection_profile.get(FieldName.SERVER, "")),
                security_token_mappings=token_mappings,
            )
        )
        if not result.result:
            creation_error = messages.error_creating_firewall_rule(rule, result.error_message)
            self.diagnostics.send_error_event(
                TelemetryAction.ADD_FIREWALL_RULE,
                SqlDialogError(result.error_message),
                include_error_message=False,
                properties={"failure": "firewallService.createFirewallRule"},
            )

        self.diagnostics.send_action_event(TelemetryAction.ADD_FIREWALL_RULE)
        session.dialog = None
        await self.connect(session, editing)
        if creation_error and not session.form_error:
            session.form_error = creation_error
