"""Conditional field visibility for the connection form."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

from sqldialog.domains.connections.domain.fields import ConnectionComponents
from sqldialog.domains.connections.domain.profile import AuthType, ConnectionProfile, FieldName, InputMode

# account id -> tenant options for that account
TenantLookup = Callable[[Any], Awaitable[list[Any]]]

SQL_LOGIN_FIELDS: tuple[str, ...] = (FieldName.USER, FieldName.PASSWORD, FieldName.SAVE_PASSWORD)
AZURE_MFA_FIELDS: tuple[str, ...] = (FieldName.ACCOUNT_ID, FieldName.TENANT_ID)


async def compute_hidden_fields(
    input_mode: InputMode,
    profile: ConnectionProfile,
    tenant_lookup: TenantLookup,
) -> set[str]:
    """Return the names of fields the current selections hide.

    Connection string mode hides nothing; it renders its own fixed fields.
    """
    hidden: set[str] = set()
    if not input_mode.uses_parameters:
        return hidden

    auth_type = profile.auth_type
    if auth_type != AuthType.SQL_LOGIN:
        hidden.update(SQL_LOGIN_FIELDS)
    if auth_type != AuthType.AZURE_MFA:
        hidden.update(AZURE_MFA_FIELDS)
    else:
        tenants = await tenant_lookup(profile.get(FieldName.ACCOUNT_ID))
        if len(tenants) == 1:
            hidden.add(FieldName.TENANT_ID)
    return hidden


async def update_item_visibility(
    components: ConnectionComponents,
    input_mode: InputMode,
    profile: ConnectionProfile,
    tenant_lookup: TenantLookup,
) -> set[str]:
    """Set the hidden flag on every field spec and return the hidden names."""
    hidden = await compute_hidden_fields(input_mode, profile, tenant_lookup)
    for name, spec in components.components.items():
        spec.hidden = name in hidden
    return hidden
