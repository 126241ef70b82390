"""Validation state and logic for the connection form."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from sqldialog.domains.connections.app import messages
from sqldialog.domains.connections.domain.fields import (
    VALID,
    ConnectionComponents,
    FieldSpec,
    ValidationContext,
    ValidationResult,
)
from sqldialog.domains.connections.domain.profile import (
    CONNECTION_STRING_FIELDS,
    AuthType,
    ConnectionProfile,
    InputMode,
)

logger = logging.getLogger(__name__)


@dataclass
class ValidationState:
    """Holds validation errors for a form."""

    errors: dict[str, str] = field(default_factory=dict)

    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def has_error(self, field_name: str) -> bool:
        return field_name in self.errors

    def get_error(self, field_name: str) -> str | None:
        return self.errors.get(field_name)

    def add_error(self, field_name: str, message: str) -> None:
        self.errors[field_name] = message

    @property
    def invalid_fields(self) -> list[str]:
        return list(self.errors)

    def clear(self) -> None:
        self.errors.clear()


def _auth_is(ctx: ValidationContext, auth_type: AuthType) -> bool:
    return ctx.profile.auth_type == auth_type


def _invalid(message: str) -> ValidationResult:
    return ValidationResult(is_valid=False, message=message)


def validate_server(value: Any, ctx: ValidationContext) -> ValidationResult:
    if _auth_is(ctx, AuthType.SQL_LOGIN) and not value:
        return _invalid(messages.SERVER_IS_REQUIRED)
    return VALID


def validate_user(value: Any, ctx: ValidationContext) -> ValidationResult:
    if _auth_is(ctx, AuthType.SQL_LOGIN) and not value:
        return _invalid(messages.USERNAME_IS_REQUIRED)
    return VALID


def validate_account_id(value: Any, ctx: ValidationContext) -> ValidationResult:
    if _auth_is(ctx, AuthType.AZURE_MFA) and not value:
        return _invalid(messages.AZURE_ACCOUNT_IS_REQUIRED)
    return VALID


def validate_tenant_id(value: Any, ctx: ValidationContext) -> ValidationResult:
    if _auth_is(ctx, AuthType.AZURE_MFA) and not value:
        return _invalid(messages.TENANT_ID_IS_REQUIRED)
    return VALID


def validate_connection_string(value: Any, ctx: ValidationContext) -> ValidationResult:
    if ctx.input_mode == InputMode.CONNECTION_STRING and not value:
        return _invalid(messages.CONNECTION_STRING_IS_REQUIRED)
    return VALID


def get_active_field_names(components: ConnectionComponents, input_mode: InputMode) -> list[str]:
    """Names of the fields the current input mode shows and validates."""
    if input_mode.uses_parameters:
        return list(components.main_options)
    return list(CONNECTION_STRING_FIELDS)


def get_active_field(components: ConnectionComponents, input_mode: InputMode, name: str) -> FieldSpec | None:
    if name not in get_active_field_names(components, input_mode):
        return None
    return components.get(name)


def validate_field(
    components: ConnectionComponents,
    input_mode: InputMode,
    name: str,
    value: Any,
    context: ValidationContext,
) -> ValidationResult | None:
    """Validate one active field and store the result on its spec.

    Returns None when the field is inactive or has no validator.
    """
    spec = get_active_field(components, input_mode, name)
    if spec is None or spec.validate is None:
        return None
    spec.validation = spec.validate(value, context)
    return spec.validation


def validate_form(
    components: ConnectionComponents,
    input_mode: InputMode,
    profile: ConnectionProfile,
    context: ValidationContext,
) -> ValidationState:
    """Validate every active field against ``profile``.

    Hidden fields are marked valid without running their validator.
    """
    state = ValidationState()
    for name in get_active_field_names(components, input_mode):
        spec = components.get(name)
        if spec is None:
            continue
        if spec.hidden:
            spec.validation = VALID
            continue
        if spec.validate is None:
            continue
        spec.validation = spec.validate(profile.get(name), context)
        if not spec.validation.is_valid:
            state.add_error(name, spec.validation.message)

    if not state.is_valid():
        logger.debug("Invalid fields: %s", ", ".join(state.invalid_fields))
    return state


def clear_validation(components: ConnectionComponents, input_mode: InputMode) -> None:
    """Drop the last validation result of every active field."""
    for name in get_active_field_names(components, input_mode):
        spec = components.get(name)
        if spec is not None:
            spec.validation = None
