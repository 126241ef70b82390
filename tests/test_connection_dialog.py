"""End-to-end flows through the connection dialog controller."""

from __future__ import annotations

import asyncio

import pytest

from sqldialog.domains.connections.app import messages
from sqldialog.domains.connections.app.action_buttons import AZURE_SIGN_IN, REFRESH_TOKEN
from sqldialog.domains.connections.app.actions import IpRange
from sqldialog.domains.connections.app.controller import ConnectionDialogController
from sqldialog.domains.connections.app.telemetry import TelemetryAction
from sqldialog.domains.connections.domain.azure import AzureServerInfo
from sqldialog.domains.connections.domain.contracts import (
    ConnectionCompleteResult,
    FirewallRuleResult,
    HandleFirewallRuleResult,
    TenantInfo,
)
from sqldialog.domains.connections.domain.profile import ConnectionProfile, InputMode
from sqldialog.domains.connections.domain.session import AddFirewallRuleDialog, ApiStatus, TrustServerCertDialog
from tests.fakes import (
    FakeAccountService,
    FakeAuth,
    FakeAuthProvider,
    FakeCapabilitySource,
    FakeConnectionStore,
    FakeConnectionUI,
    FakeFirewall,
    FakeHost,
    FakeServerDiscovery,
    FakeSubscription,
    FakeTenant,
    make_account,
    make_services,
)

FIREWALL_MESSAGE = "Cannot open server 'db' requested by the login. Client is not allowed to access the server."


async def _until(condition, attempts: int = 100) -> None:
    for _ in range(attempts):
        if condition():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition was not met")


async def _open(services, connection_to_edit=None) -> ConnectionDialogController:
    controller = ConnectionDialogController(services, connection_to_edit)
    await controller.initialize()
    return controller


async def _fill_sql_login(controller: ConnectionDialogController) -> None:
    await controller.form_action("server", "db")
    await controller.form_action("user", "sa")
    await controller.form_action("password", "secret")


class TestInitialize:
    @pytest.mark.asyncio
    async def test_blank_dialog(self):
        controller = await _open(make_services())
        snap = controller.snapshot()

        assert snap.selected_input_mode == InputMode.PARAMETERS
        assert snap.connection_profile.get("authenticationType") == "SqlLogin"
        assert snap.connection_profile.get("connectTimeout") == 15
        assert snap.connection_components.hidden_fields() == {"accountId", "tenantId"}
        assert [b.id for b in snap.connection_components.get("accountId").action_buttons] == [AZURE_SIGN_IN]
        assert controller.editing is None

    @pytest.mark.asyncio
    async def test_capability_failure_is_reported_not_raised(self):
        class BrokenSource(FakeCapabilitySource):
            async def get_capabilities(self):
                raise RuntimeError("service unavailable")

        services = make_services(capability_source=BrokenSource())
        controller = await _open(services)

        assert controller.snapshot().form_error == "service unavailable"
        errors = services.diagnostics.of_kind("error", TelemetryAction.INITIALIZE)
        assert errors[0].include_error_message

    @pytest.mark.asyncio
    async def test_store_failure_still_opens_dialog(self):
        store = FakeConnectionStore()
        store.fail_load = True
        services = make_services(connection_store=store)

        controller = await _open(services)

        assert controller.snapshot().connection_components.get("server") is not None
        assert services.diagnostics.of_kind("error", TelemetryAction.INITIALIZE)

    @pytest.mark.asyncio
    async def test_editing_connection_string_profile(self):
        store = FakeConnectionStore(passwords={"Cs": "Server=db;Integrated Security=true;"})
        profile = ConnectionProfile.from_dict({"profileName": "Cs", "connectionString": "Server=db;Integrated Security=true;"})

        controller = await _open(make_services(connection_store=store), profile)

        assert controller.session.selected_input_mode == InputMode.CONNECTION_STRING
        assert controller.editing == profile

    @pytest.mark.asyncio
    async def test_unknown_action_type(self):
        controller = await _open(make_services())

        with pytest.raises(TypeError):
            await controller.dispatch(object())


class TestInputModes:
    @pytest.mark.asyncio
    async def test_connection_string_then_parameters_restores_visibility(self):
        controller = await _open(make_services())

        snap = await controller.set_input_mode(InputMode.CONNECTION_STRING)
        assert snap.connection_components.hidden_fields() == set()

        snap = await controller.set_input_mode(InputMode.PARAMETERS)
        assert snap.connection_components.hidden_fields() == {"accountId", "tenantId"}
        assert snap.selected_input_mode == InputMode.PARAMETERS

    @pytest.mark.asyncio
    async def test_integrated_auth_hides_login_fields(self):
        controller = await _open(make_services())

        snap = await controller.form_action("authenticationType", "Integrated")

        assert {"user", "password", "savePassword"} <= snap.connection_components.hidden_fields()


class TestAzureMfa:
    @pytest.mark.asyncio
    async def test_selecting_mfa_picks_first_account_and_tenant(self):
        accounts = FakeAccountService([make_account("me@example.com", ["t1", "t2"])])
        controller = await _open(make_services(account_service=accounts))

        snap = await controller.form_action("authenticationType", "AzureMFA")

        assert snap.connection_profile.get("accountId") == "me@example.com"
        assert snap.connection_profile.get("tenantId") == "t1"
        assert [o.value for o in snap.connection_components.get("tenantId").options] == ["t1", "t2"]
        assert "tenantId" not in snap.connection_components.hidden_fields()
        assert "user" in snap.connection_components.hidden_fields()

    @pytest.mark.asyncio
    async def test_single_tenant_is_hidden(self):
        accounts = FakeAccountService([make_account("me@example.com", ["t1"])])
        controller = await _open(make_services(account_service=accounts))

        snap = await controller.form_action("authenticationType", "AzureMFA")

        assert snap.connection_profile.get("tenantId") == "t1"
        assert "tenantId" in snap.connection_components.hidden_fields()

    @pytest.mark.asyncio
    async def test_expired_token_offers_refresh(self):
        accounts = FakeAccountService([make_account("me@example.com", ["t1"])], token_invalid=True)
        controller = await _open(make_services(account_service=accounts))

        snap = await controller.form_action("authenticationType", "AzureMFA")
        button_ids = [b.id for b in snap.connection_components.get("accountId").action_buttons]
        assert button_ids == [AZURE_SIGN_IN, REFRESH_TOKEN]

        requests_before = len(accounts.token_requests)
        await controller.form_action("accountId", REFRESH_TOKEN, is_action=True)
        assert len(accounts.token_requests) > requests_before

    @pytest.mark.asyncio
    async def test_sign_in_selects_new_account(self):
        accounts = FakeAccountService(
            [make_account("me@example.com", ["t1", "t2"])],
            new_account=make_account("new@example.com", ["t9"]),
        )
        controller = await _open(make_services(account_service=accounts))
        await controller.form_action("authenticationType", "AzureMFA")

        snap = await controller.form_action("accountId", AZURE_SIGN_IN, is_action=True)

        assert snap.connection_profile.get("accountId") == "new@example.com"
        assert snap.connection_profile.get("tenantId") == "t9"
        assert [o.value for o in snap.connection_components.get("accountId").options] == [
            "me@example.com",
            "new@example.com",
        ]

    @pytest.mark.asyncio
    async def test_unknown_button_is_ignored(self):
        accounts = FakeAccountService([make_account("me@example.com", ["t1"])])
        controller = await _open(make_services(account_service=accounts))
        await controller.form_action("authenticationType", "AzureMFA")

        snap = await controller.form_action("accountId", "doesNotExist", is_action=True)

        assert snap.form_error == ""
        assert snap.connection_profile.get("accountId") == "me@example.com"

    @pytest.mark.asyncio
    async def test_failed_tenant_lookup_shows_tenant_field(self):
        accounts = FakeAccountService([make_account("me@example.com", ["t1"])])
        services = make_services(account_service=accounts)
        controller = await _open(services)
        snap = await controller.form_action("authenticationType", "AzureMFA")
        assert "tenantId" in snap.connection_components.hidden_fields()

        accounts.fail = True
        snap = await controller.form_action("server", "db")

        assert "tenantId" not in snap.connection_components.hidden_fields()
        assert services.diagnostics.of_kind("error", TelemetryAction.LOAD_AZURE_TENANTS)


class TestConnect:
    @pytest.mark.asyncio
    async def test_missing_server_fails_validation_without_calling_out(self):
        services = make_services()
        controller = await _open(services)

        snap = await controller.connect()

        assert snap.connection_status == ApiStatus.ERROR
        assert not snap.connection_components.get("server").validation.is_valid
        assert snap.connection_components.get("server").validation.message == messages.SERVER_IS_REQUIRED
        assert services.connection_ui.attempts == []

    @pytest.mark.asyncio
    async def test_success_closes_dialog(self):
        services = make_services()
        controller = await _open(services)
        await _fill_sql_login(controller)

        snap = await controller.connect()

        assert snap.connection_status == ApiStatus.LOADED
        attempt = services.connection_ui.attempts[0]
        assert attempt.get("server") == "db"
        assert attempt.get("accountId") is None
        assert services.connection_ui.saved[0].get("server") == "db"
        assert services.workspace.calls == ["create_session_from_dialog", "refresh", "reveal"]
        assert services.host.closed == 1
        assert services.feedback_prompt.calls == 1
        event = services.diagnostics.of_kind("action", TelemetryAction.CREATE_CONNECTION)[0]
        assert event.properties["result"] == "success"
        assert event.properties["newOrEditedConnection"] == "new"

    @pytest.mark.asyncio
    async def test_editing_replaces_original(self):
        original = ConnectionProfile.from_dict(
            {"id": "1", "profileName": "Prod", "server": "db", "authenticationType": "SqlLogin", "user": "sa"}
        )
        store = FakeConnectionStore(saved=[original], passwords={"Prod": "pw"})
        services = make_services(connection_store=store)
        controller = await _open(services, original)

        await controller.connect()

        assert services.connection_ui.attempts[0].get("password") == "pw"
        assert services.workspace.calls == [
            "get_uri_for_connection",
            "remove_connection_nodes",
            "refresh",
            "create_session_from_dialog",
            "refresh",
            "reveal",
        ]
        assert store.removed[0].get("profileName") == "Prod"
        event = services.diagnostics.of_kind("action", TelemetryAction.CREATE_CONNECTION)[0]
        assert event.properties["newOrEditedConnection"] == "edited"

    @pytest.mark.asyncio
    async def test_untrusted_certificate_opens_dialog(self):
        ui = FakeConnectionUI(ConnectionCompleteResult(error_message="certificate chain not trusted", error_number=150))
        services = make_services(connection_ui=ui)
        controller = await _open(services)
        await _fill_sql_login(controller)

        snap = await controller.connect()

        assert isinstance(snap.dialog, TrustServerCertDialog)
        assert snap.dialog.message == "certificate chain not trusted"
        assert snap.connection_status == ApiStatus.ERROR
        assert not snap.can_connect
        assert services.diagnostics.of_kind("error", TelemetryAction.CREATE_CONNECTION) == []

        await controller.close_dialog()
        await controller.form_action("trustServerCertificate", True)
        snap = await controller.connect()

        assert snap.dialog is None
        assert snap.connection_status == ApiStatus.LOADED
        assert ui.attempts[-1].get("trustServerCertificate") is True

    @pytest.mark.asyncio
    async def test_other_errors_are_shown_on_the_form(self):
        ui = FakeConnectionUI(ConnectionCompleteResult(error_message="Login failed for user 'sa'.", error_number=18456))
        services = make_services(connection_ui=ui)
        controller = await _open(services)
        await _fill_sql_login(controller)

        snap = await controller.connect()

        assert snap.form_error == "Login failed for user 'sa'."
        assert snap.connection_status == ApiStatus.ERROR
        assert snap.dialog is None
        event = services.diagnostics.of_kind("action", TelemetryAction.CREATE_CONNECTION)[0]
        assert event.properties["result"] == "connectionError"
        assert event.properties["errorNumber"] == "18456"

    @pytest.mark.asyncio
    async def test_connection_service_exception(self):
        class RaisingUI(FakeConnectionUI):
            async def validate_and_save_profile_from_dialog(self, profile):
                raise ConnectionError("service went away")

        services = make_services(connection_ui=RaisingUI())
        controller = await _open(services)
        await _fill_sql_login(controller)

        snap = await controller.connect()

        assert snap.form_error == "service went away"
        assert snap.connection_status == ApiStatus.ERROR

    @pytest.mark.asyncio
    async def test_second_connect_while_first_in_flight_is_ignored(self):
        ui = FakeConnectionUI()
        ui.gate = asyncio.Event()
        services = make_services(connection_ui=ui)
        controller = await _open(services)
        await _fill_sql_login(controller)

        first = asyncio.create_task(controller.connect())
        await _until(lambda: len(ui.attempts) == 1)

        snap = await controller.connect()
        assert snap.connection_status == ApiStatus.LOADING

        ui.gate.set()
        snap = await first

        assert snap.connection_status == ApiStatus.LOADED
        assert len(ui.attempts) == 1


class TestFirewall:
    def _services(self, **overrides):
        auth = FakeAuth(
            subscriptions=[FakeSubscription("s1", "One", "t1", label="me@example.com")],
            tenants=[FakeTenant("t1", "Contoso")],
        )
        values = {
            "connection_ui": FakeConnectionUI(
                ConnectionCompleteResult(error_message=FIREWALL_MESSAGE, error_number=40615)
            ),
            "auth_provider": FakeAuthProvider(auth),
        }
        values.update(overrides)
        return make_services(**values)

    @pytest.mark.asyncio
    async def test_unparsable_address_falls_back(self):
        firewall = FakeFirewall(handle_result=HandleFirewallRuleResult(result=False))
        services = self._services(firewall=firewall)
        controller = await _open(services)
        await _fill_sql_login(controller)

        snap = await controller.connect()

        assert isinstance(snap.dialog, AddFirewallRuleDialog)
        assert snap.dialog.client_ip == "0.0.0.0"
        assert snap.dialog.tenants == [TenantInfo(id="t1", name="Contoso")]
        assert firewall.handled == [(40615, FIREWALL_MESSAGE)]
        errors = services.diagnostics.of_kind("error", TelemetryAction.ADD_FIREWALL_RULE)
        assert errors[0].include_error_message

    @pytest.mark.asyncio
    async def test_add_rule_then_reconnect(self):
        firewall = FakeFirewall()
        services = self._services(firewall=firewall)
        controller = await _open(services)
        await _fill_sql_login(controller)

        snap = await controller.connect()
        assert snap.dialog.client_ip == "203.0.113.7"

        snap = await controller.add_firewall_rule("office", IpRange("203.0.113.0", "203.0.113.255"), "t1")

        request = firewall.requests[0]
        assert (request.start_ip_address, request.end_ip_address) == ("203.0.113.0", "203.0.113.255")
        assert request.server_name == "db"
        assert request.account.user_id == "me@example.com"
        assert request.security_token_mappings == {"t1": {"Token": "token-t1"}}
        assert snap.dialog is None
        assert snap.connection_status == ApiStatus.LOADED
        assert len(services.connection_ui.attempts) == 2

    @pytest.mark.asyncio
    async def test_single_address_rule(self):
        firewall = FakeFirewall()
        controller = await _open(self._services(firewall=firewall))
        await _fill_sql_login(controller)
        await controller.connect()

        await controller.add_firewall_rule("home", "198.51.100.4", "t1")

        request = firewall.requests[0]
        assert (request.start_ip_address, request.end_ip_address) == ("198.51.100.4", "198.51.100.4")

    @pytest.mark.asyncio
    async def test_unknown_tenant_closes_dialog_without_retry(self):
        firewall = FakeFirewall()
        services = self._services(firewall=firewall)
        controller = await _open(services)
        await _fill_sql_login(controller)
        await controller.connect()

        snap = await controller.add_firewall_rule("office", "203.0.113.7", "t-unknown")

        assert snap.dialog is None
        assert snap.form_error.startswith("An error occurred while creating the firewall rule")
        assert firewall.requests == []
        assert len(services.connection_ui.attempts) == 1

    @pytest.mark.asyncio
    async def test_failed_rule_creation_is_reported_after_retry(self):
        firewall = FakeFirewall(create_result=FirewallRuleResult(result=False, error_message="quota exceeded"))
        services = self._services(firewall=firewall)
        controller = await _open(services)
        await _fill_sql_login(controller)
        await controller.connect()

        snap = await controller.add_firewall_rule("office", "203.0.113.7", "t1")

        assert len(services.connection_ui.attempts) == 2
        assert snap.dialog is None
        assert "quota exceeded" in snap.form_error
        assert services.diagnostics.of_kind("error", TelemetryAction.ADD_FIREWALL_RULE)


class TestSavedConnections:
    @pytest.mark.asyncio
    async def test_delete_confirmed(self):
        prod = ConnectionProfile.from_dict({"profileName": "Prod", "server": "db"})
        store = FakeConnectionStore(saved=[prod])
        host = FakeHost(choice=messages.DELETE)
        services = make_services(connection_store=store, host=host)
        controller = await _open(services)
        assert len(controller.snapshot().saved_connections) == 1

        snap = await controller.delete_saved_connection(controller.snapshot().saved_connections[0])

        assert host.prompts[0] == (messages.confirm_delete_saved_connection("Prod"), [messages.DELETE, messages.CANCEL])
        assert snap.saved_connections == []

    @pytest.mark.asyncio
    async def test_delete_declined(self):
        store = FakeConnectionStore(saved=[ConnectionProfile.from_dict({"profileName": "Prod", "server": "db"})])
        services = make_services(connection_store=store, host=FakeHost(choice=messages.CANCEL))
        controller = await _open(services)

        snap = await controller.delete_saved_connection(controller.snapshot().saved_connections[0])

        assert store.removed == []
        assert len(snap.saved_connections) == 1

    @pytest.mark.asyncio
    async def test_delete_failure_is_reported(self):
        class BrokenHost(FakeHost):
            async def confirm(self, title, choices):
                raise RuntimeError("prompt unavailable")

        services = make_services(host=BrokenHost())
        controller = await _open(services)

        snap = await controller.delete_saved_connection(ConnectionProfile.from_dict({"server": "db"}))

        assert snap.form_error == "prompt unavailable"
        assert services.diagnostics.of_kind("error", "DeleteSavedConnection")

    @pytest.mark.asyncio
    async def test_remove_recent(self):
        recent = ConnectionProfile.from_dict({"server": "db"})
        store = FakeConnectionStore(recent=[recent])
        controller = await _open(make_services(connection_store=store))

        snap = await controller.remove_recent_connection(recent)

        assert store.removed_recent == [recent]
        assert snap.recent_connections == []

    @pytest.mark.asyncio
    async def test_refresh_list(self):
        store = FakeConnectionStore()
        controller = await _open(make_services(connection_store=store))
        store.saved.append(ConnectionProfile.from_dict({"profileName": "New", "server": "db"}))

        snap = await controller.refresh_connections_list()

        assert [p.get("displayName") for p in snap.saved_connections] == ["New"]

    @pytest.mark.asyncio
    async def test_load_connection(self):
        services = make_services()
        controller = await _open(services)
        profile = ConnectionProfile.from_dict({"connectionString": "Server=db;Integrated Security=true;"})

        snap = await controller.load_connection(profile)

        assert snap.selected_input_mode == InputMode.CONNECTION_STRING
        assert snap.connection_profile.connection_string == "Server=db;Integrated Security=true;"
        assert controller.editing == profile
        assert services.diagnostics.of_kind("action", TelemetryAction.LOAD_CONNECTION)

    @pytest.mark.asyncio
    async def test_load_connection_keeps_account_not_signed_in(self):
        accounts = FakeAccountService([make_account("me@example.com", ["t1", "t2"])])
        controller = await _open(make_services(account_service=accounts))
        profile = ConnectionProfile.from_dict(
            {
                "server": "db.database.windows.net",
                "authenticationType": "AzureMFA",
                "accountId": "other@example.com",
                "tenantId": "t-other",
            }
        )

        snap = await controller.load_connection(profile)

        assert snap.connection_profile.get("accountId") == "other@example.com"
        assert snap.connection_profile.get("tenantId") == "t-other"

    @pytest.mark.asyncio
    async def test_load_connection_clears_parameter_validation(self):
        controller = await _open(make_services())
        snap = await controller.connect()
        assert not snap.connection_components.get("server").validation.is_valid

        await controller.set_input_mode(InputMode.CONNECTION_STRING)
        snap = await controller.load_connection(ConnectionProfile.from_dict({"server": "db", "user": "sa"}))

        assert snap.selected_input_mode == InputMode.PARAMETERS
        assert snap.connection_components.get("server").validation is None


class TestAzureBrowse:
    def _services(self, discovery):
        auth = FakeAuth(subscriptions=[FakeSubscription("s1", "One", "t1"), FakeSubscription("s2", "Two", "t2")])
        return make_services(auth_provider=FakeAuthProvider(auth), server_discovery=discovery)

    @pytest.mark.asyncio
    async def test_background_load(self):
        discovery = FakeServerDiscovery(
            servers={
                "s1": [AzureServerInfo(name="alpha", server="alpha.database.windows.net", subscription_id="s1")],
                "s2": [AzureServerInfo(name="beta", server="beta.database.windows.net", subscription_id="s2")],
            }
        )
        controller = await _open(self._services(discovery))

        await controller.set_input_mode(InputMode.AZURE_BROWSE)
        await controller.join_background()
        snap = controller.snapshot()

        assert snap.loading_azure_servers_status == ApiStatus.LOADED
        assert sorted(s.name for s in snap.azure_servers) == ["alpha", "beta"]
        assert snap.azure_subscription_handles == {}
        assert set(controller.session.azure_subscription_handles) == {"s1", "s2"}

    @pytest.mark.asyncio
    async def test_leaving_browse_cancels_load(self):
        discovery = FakeServerDiscovery(gate=asyncio.Event())
        controller = await _open(self._services(discovery))

        await controller.set_input_mode(InputMode.AZURE_BROWSE)
        await _until(lambda: len(discovery.calls) == 2)
        snap = await controller.set_input_mode(InputMode.PARAMETERS)

        assert snap.azure_servers == []
        assert snap.loading_azure_servers_status == ApiStatus.LOADING
        await controller.join_background()

    @pytest.mark.asyncio
    async def test_retry_one_subscription(self):
        discovery = FakeServerDiscovery(
            servers={"s1": [AzureServerInfo(name="alpha", server="alpha.database.windows.net")]},
            failing={"s2"},
        )
        controller = await _open(self._services(discovery))
        await controller.set_input_mode(InputMode.AZURE_BROWSE)
        await controller.join_background()
        assert not controller.snapshot().find_subscription("s2").loaded

        discovery.failing.clear()
        discovery.servers["s2"] = [AzureServerInfo(name="beta", server="beta.database.windows.net")]
        snap = await controller.load_azure_servers("s2")

        assert snap.find_subscription("s2").loaded
        assert sorted(s.name for s in snap.azure_servers) == ["alpha", "beta"]

    @pytest.mark.asyncio
    async def test_filter_prompts_and_reloads(self):
        discovery = FakeServerDiscovery()
        services = self._services(discovery)
        controller = await _open(services)

        await controller.filter_azure_subscriptions()
        await controller.join_background()

        assert services.subscription_filter_prompt.calls == 1
        assert sorted(discovery.calls) == ["s1", "s2"]

    @pytest.mark.asyncio
    async def test_aclose_cancels_background_load(self):
        discovery = FakeServerDiscovery(gate=asyncio.Event())
        controller = await _open(self._services(discovery))
        await controller.set_input_mode(InputMode.AZURE_BROWSE)
        await _until(lambda: len(discovery.calls) == 2)

        await controller.aclose()

        assert controller.snapshot().loading_azure_servers_status == ApiStatus.LOADING
        await asyncio.wait_for(controller.join_background(), timeout=1)
