"""Field specifications for the connection form.

A FieldSpec is pure data: label, kind, options and the result of the last
validation. Action buttons are described here by id and label only; the
handlers behind them live in the action button registry.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from sqldialog.domains.connections.domain.profile import ConnectionProfile, InputMode


class FieldKind(Enum):
    TEXT = "input"
    PASSWORD = "password"
    CHECKBOX = "checkbox"
    DROPDOWN = "dropdown"
    TEXT_AREA = "textarea"


@dataclass(frozen=True)
class FieldOption:
    """An option for a dropdown field."""

    value: str
    display_name: str


@dataclass(frozen=True)
class ActionButton:
    id: str
    label: str


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    message: str = ""


VALID = ValidationResult(is_valid=True, message="")


@dataclass(frozen=True)
class ValidationContext:
    """What a validator may look at besides the field's own value."""

    profile: ConnectionProfile
    input_mode: InputMode


Validator = Callable[[Any, ValidationContext], ValidationResult]


@dataclass
class FieldSpec:
    """Compiled description of one editable connection property."""

    name: str  # Maps to a ConnectionProfile key
    label: str
    kind: FieldKind = FieldKind.TEXT
    required: bool = False
    tooltip: str = ""
    placeholder: str = ""
    options: list[FieldOption] = field(default_factory=list)
    action_buttons: list[ActionButton] = field(default_factory=list)
    hidden: bool = False
    is_advanced: bool = False
    category: str | None = None
    category_label: str | None = None
    validate: Validator | None = None
    validation: ValidationResult | None = None


@dataclass
class ComponentGroup:
    """A labelled group of advanced options sharing a category."""

    group_name: str
    options: list[str] = field(default_factory=list)


@dataclass
class ConnectionComponents:
    """Field specs plus the ordered buckets the form renders them in."""

    components: dict[str, FieldSpec] = field(default_factory=dict)
    main_options: list[str] = field(default_factory=list)
    top_advanced_options: list[str] = field(default_factory=list)
    grouped_advanced_options: list[ComponentGroup] = field(default_factory=list)

    def get(self, name: str) -> FieldSpec | None:
        return self.components.get(name)

    def hidden_fields(self) -> set[str]:
        return {name for name, spec in self.components.items() if spec.hidden}

    def visible_fields(self) -> set[str]:
        return {name for name, spec in self.components.items() if not spec.hidden}
