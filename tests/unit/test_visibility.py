"""Tests for conditional field visibility."""

from __future__ import annotations

import pytest

from sqldialog.domains.connections.app.schema_compiler import FormSchemaCompiler
from sqldialog.domains.connections.app.visibility import compute_hidden_fields, update_item_visibility
from sqldialog.domains.connections.domain.contracts import CapabilitiesResult
from sqldialog.domains.connections.domain.fields import FieldOption
from sqldialog.domains.connections.domain.profile import ConnectionProfile, InputMode
from tests.fakes import GROUP_DISPLAY_NAMES, RecordingDiagnostics, default_options


def _tenants(count: int):
    async def lookup(account_id):
        return [FieldOption(f"t{i}", f"Tenant {i}") for i in range(count)]

    return lookup


def _profile(auth_type: str) -> ConnectionProfile:
    return ConnectionProfile.from_dict({"server": "db", "authenticationType": auth_type})


class TestComputeHiddenFields:
    @pytest.mark.asyncio
    async def test_sql_login_hides_mfa_fields(self):
        hidden = await compute_hidden_fields(InputMode.PARAMETERS, _profile("SqlLogin"), _tenants(2))
        assert hidden == {"accountId", "tenantId"}

    @pytest.mark.asyncio
    async def test_integrated_hides_login_and_mfa_fields(self):
        hidden = await compute_hidden_fields(InputMode.PARAMETERS, _profile("Integrated"), _tenants(2))
        assert hidden == {"user", "password", "savePassword", "accountId", "tenantId"}

    @pytest.mark.asyncio
    async def test_mfa_with_several_tenants_shows_tenant(self):
        hidden = await compute_hidden_fields(InputMode.PARAMETERS, _profile("AzureMFA"), _tenants(2))
        assert hidden == {"user", "password", "savePassword"}

    @pytest.mark.asyncio
    async def test_mfa_with_single_tenant_hides_tenant(self):
        hidden = await compute_hidden_fields(InputMode.PARAMETERS, _profile("AzureMFA"), _tenants(1))
        assert "tenantId" in hidden
        assert "accountId" not in hidden

    @pytest.mark.asyncio
    async def test_azure_browse_uses_parameter_rules(self):
        hidden = await compute_hidden_fields(InputMode.AZURE_BROWSE, _profile("Integrated"), _tenants(0))
        assert "user" in hidden

    @pytest.mark.asyncio
    async def test_connection_string_mode_hides_nothing(self):
        hidden = await compute_hidden_fields(InputMode.CONNECTION_STRING, _profile("Integrated"), _tenants(0))
        assert hidden == set()


class TestUpdateItemVisibility:
    @pytest.mark.asyncio
    async def test_flags_are_reset_on_every_pass(self):
        components = FormSchemaCompiler(RecordingDiagnostics()).compile(
            CapabilitiesResult(options=default_options(), group_display_names=GROUP_DISPLAY_NAMES)
        )

        await update_item_visibility(components, InputMode.PARAMETERS, _profile("Integrated"), _tenants(0))
        assert components.get("user").hidden

        await update_item_visibility(components, InputMode.PARAMETERS, _profile("SqlLogin"), _tenants(0))
        assert not components.get("user").hidden
        assert components.get("accountId").hidden
        assert components.hidden_fields() == {"accountId", "tenantId"}
