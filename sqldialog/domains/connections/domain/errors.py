"""Exceptions raised inside the connection dialog core."""

from __future__ import annotations


class SqlDialogError(Exception):
    """Base class for sqldialog errors."""


class SchemaError(SqlDialogError):
    """A capability descriptor could not be turned into a field."""

    def __init__(self, option_name: str, message: str) -> None:
        super().__init__(message)
        self.option_name = option_name


class AzureAccountError(SqlDialogError):
    """Account information for a tenant could not be assembled."""


class ConnectionStoreError(SqlDialogError):
    """The persisted connection store could not be read or written."""


class AzureCliError(SqlDialogError):
    """An Azure CLI command failed or could not be run."""
