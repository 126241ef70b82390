"""sqldialog - schema-driven SQL connection dialog engine."""

from typing import TYPE_CHECKING, Any

__all__ = [
    "__version__",
    "main",
    "ConnectionDialogController",
    "ConnectionProfile",
    "build_dialog_services",
]

__version__ = "0.1.0"

if TYPE_CHECKING:
    from sqldialog.domains.connections.app.controller import ConnectionDialogController
    from sqldialog.domains.connections.app.services import build_dialog_services
    from sqldialog.domains.connections.domain.profile import ConnectionProfile

    from .cli import main


def __getattr__(name: str) -> Any:
    """Lazy import for heavy modules to keep package import side-effect free."""
    if name == "main":
        from .cli import main

        return main
    if name == "ConnectionDialogController":
        from sqldialog.domains.connections.app.controller import ConnectionDialogController

        return ConnectionDialogController
    if name == "ConnectionProfile":
        from sqldialog.domains.connections.domain.profile import ConnectionProfile

        return ConnectionProfile
    if name == "build_dialog_services":
        from sqldialog.domains.connections.app.services import build_dialog_services

        return build_dialog_services
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
