"""Compile capability descriptors into connection form field specs.

The capability service describes every connection property it understands.
Each descriptor becomes a FieldSpec; a handful of built-in fields the
service does not know about (profile name, account and tenant pickers,
connection string) are merged in afterwards, and the result is split into
the main, top-advanced and grouped-advanced buckets the form renders.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from sqldialog.domains.connections.app import messages
from sqldialog.domains.connections.app.telemetry import TelemetryAction
from sqldialog.domains.connections.app.validation import (
    validate_account_id,
    validate_connection_string,
    validate_server,
    validate_tenant_id,
    validate_user,
)
from sqldialog.domains.connections.domain.contracts import CapabilitiesResult, ConnectionOption
from sqldialog.domains.connections.domain.errors import SchemaError
from sqldialog.domains.connections.domain.fields import (
    ActionButton,
    ComponentGroup,
    ConnectionComponents,
    FieldKind,
    FieldOption,
    FieldSpec,
)
from sqldialog.domains.connections.domain.profile import FieldName
from sqldialog.shared.core.protocols import DiagnosticsReporterProtocol

logger = logging.getLogger(__name__)

MAIN_OPTIONS: tuple[str, ...] = (
    FieldName.SERVER,
    FieldName.TRUST_SERVER_CERTIFICATE,
    FieldName.AUTHENTICATION_TYPE,
    FieldName.USER,
    FieldName.PASSWORD,
    FieldName.SAVE_PASSWORD,
    FieldName.ACCOUNT_ID,
    FieldName.TENANT_ID,
    FieldName.DATABASE,
    FieldName.ENCRYPT,
)

TOP_ADVANCED_OPTIONS: tuple[str, ...] = (
    FieldName.PORT,
    FieldName.APPLICATION_NAME,
    FieldName.CONNECT_TIMEOUT,
    FieldName.MULTI_SUBNET_FAILOVER,
)

# Options shown outside the advanced drawer.
MAIN_OPTION_NAMES: frozenset[str] = frozenset(
    {
        FieldName.SERVER,
        FieldName.AUTHENTICATION_TYPE,
        FieldName.USER,
        FieldName.PASSWORD,
        FieldName.SAVE_PASSWORD,
        FieldName.ACCOUNT_ID,
        FieldName.TENANT_ID,
        FieldName.DATABASE,
        FieldName.TRUST_SERVER_CERTIFICATE,
        FieldName.ENCRYPT,
        FieldName.PROFILE_NAME,
    }
)

# Display order of advanced groups; must match the service's group names.
ADVANCED_GROUP_ORDER: tuple[str, ...] = ("security", "initialization", "resiliency", "pooling", "context")

_VALUE_KINDS: dict[str, FieldKind] = {
    "boolean": FieldKind.CHECKBOX,
    "string": FieldKind.TEXT,
    "number": FieldKind.TEXT,
    "password": FieldKind.PASSWORD,
    "category": FieldKind.DROPDOWN,
}


def convert_option(option: ConnectionOption) -> FieldSpec:
    """Turn one descriptor into a field spec.

    Raises:
        SchemaError: If the descriptor's value type is not supported.
    """
    kind = _VALUE_KINDS.get(option.value_type)
    if kind is None:
        raise SchemaError(option.name, f"Unhandled connection option type: {option.value_type}")

    spec = FieldSpec(
        name=option.name,
        label=option.display_name,
        kind=kind,
        required=option.is_required,
        tooltip=option.description,
    )
    if kind is FieldKind.DROPDOWN:
        spec.options = [FieldOption(value=v.name, display_name=v.display_name or v.name) for v in option.category_values]
    return spec


class FormSchemaCompiler:
    """Builds ConnectionComponents from a capabilities result."""

    def __init__(self, diagnostics: DiagnosticsReporterProtocol) -> None:
        self._diagnostics = diagnostics

    def compile(
        self,
        capabilities: CapabilitiesResult,
        *,
        account_options: list[FieldOption] | None = None,
        account_buttons: list[ActionButton] | None = None,
    ) -> ConnectionComponents:
        components = self.compile_components(
            capabilities.options,
            capabilities.group_display_names,
            account_options=account_options or [],
            account_buttons=account_buttons or [],
        )
        result = ConnectionComponents(
            components=components,
            main_options=self._present(components, MAIN_OPTIONS),
            top_advanced_options=self._present(components, TOP_ADVANCED_OPTIONS),
        )
        result.grouped_advanced_options = group_advanced_options(result)
        return result

    def compile_components(
        self,
        options: Iterable[ConnectionOption | Mapping[str, Any]],
        group_display_names: Mapping[str, str],
        *,
        account_options: list[FieldOption],
        account_buttons: list[ActionButton],
    ) -> dict[str, FieldSpec]:
        components: dict[str, FieldSpec] = {}
        for raw in options:
            name = _option_name(raw)
            try:
                option = raw if isinstance(raw, ConnectionOption) else ConnectionOption.from_dict(raw)
                spec = convert_option(option)
            except (SchemaError, KeyError, TypeError, ValueError, AttributeError) as exc:
                logger.warning("Error loading connection option '%s': %s", name, exc)
                self._diagnostics.send_error_event(
                    TelemetryAction.LOAD_CONNECTION_PROPERTIES,
                    exc,
                    include_error_message=True,
                    properties={"connectionOptionName": name},
                )
                continue

            spec.is_advanced = option.name not in MAIN_OPTION_NAMES
            spec.category = option.group_name
            if option.group_name is not None:
                spec.category_label = group_display_names.get(option.group_name, option.group_name)
            components[option.name] = spec

        self._add_builtin_fields(components, account_options, account_buttons)
        return components

    def _add_builtin_fields(
        self,
        components: dict[str, FieldSpec],
        account_options: list[FieldOption],
        account_buttons: list[ActionButton],
    ) -> None:
        components[FieldName.PROFILE_NAME] = FieldSpec(
            name=FieldName.PROFILE_NAME,
            label=messages.PROFILE_NAME,
        )
        components[FieldName.SAVE_PASSWORD] = FieldSpec(
            name=FieldName.SAVE_PASSWORD,
            label=messages.SAVE_PASSWORD,
            kind=FieldKind.CHECKBOX,
        )
        components[FieldName.ACCOUNT_ID] = FieldSpec(
            name=FieldName.ACCOUNT_ID,
            label=messages.AZURE_ACCOUNT,
            kind=FieldKind.DROPDOWN,
            required=True,
            options=list(account_options),
            placeholder=messages.SELECT_AN_ACCOUNT,
            action_buttons=list(account_buttons),
            validate=validate_account_id,
        )
        components[FieldName.TENANT_ID] = FieldSpec(
            name=FieldName.TENANT_ID,
            label=messages.TENANT_ID,
            kind=FieldKind.DROPDOWN,
            required=True,
            hidden=True,
            placeholder=messages.SELECT_A_TENANT,
            validate=validate_tenant_id,
        )
        components[FieldName.CONNECTION_STRING] = FieldSpec(
            name=FieldName.CONNECTION_STRING,
            label=messages.CONNECTION_STRING,
            kind=FieldKind.TEXT_AREA,
            required=True,
            validate=validate_connection_string,
        )

        if FieldName.SERVER in components:
            components[FieldName.SERVER].validate = validate_server
        if FieldName.USER in components:
            components[FieldName.USER].validate = validate_user

    @staticmethod
    def _present(components: Mapping[str, FieldSpec], names: Iterable[str]) -> list[str]:
        present = [name for name in names if name in components]
        missing = [name for name in names if name not in components]
        if missing:
            logger.warning("Capabilities did not describe expected options: %s", ", ".join(missing))
        return present


def group_advanced_options(info: ConnectionComponents) -> list[ComponentGroup]:
    """Group advanced fields by category in display order.

    Seeded categories come first in ADVANCED_GROUP_ORDER; any others follow
    in the order they are first seen. Empty seeded categories are omitted.
    """
    groups: dict[str | None, ComponentGroup | None] = {name: None for name in ADVANCED_GROUP_ORDER}
    bucketed = set(info.main_options) | set(info.top_advanced_options)

    for spec in info.components.values():
        if not spec.is_advanced or spec.name in bucketed:
            continue
        group = groups.get(spec.category)
        if group is None:
            label = spec.category_label or spec.category or ""
            groups[spec.category] = ComponentGroup(group_name=label, options=[spec.name])
        else:
            group.options.append(spec.name)

    return [group for group in groups.values() if group is not None]


def _option_name(raw: ConnectionOption | Mapping[str, Any]) -> str:
    if isinstance(raw, ConnectionOption):
        return raw.name
    if isinstance(raw, Mapping):
        return str(raw.get("name", "<unnamed>"))
    return "<unnamed>"
