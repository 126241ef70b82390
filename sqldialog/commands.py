"""CLI command handlers for sqldialog."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.table import Table

from sqldialog.domains.connections.app.schema_compiler import FormSchemaCompiler
from sqldialog.domains.connections.app.telemetry import LoggingDiagnostics
from sqldialog.domains.connections.domain.contracts import CapabilitiesResult, ConnectionKind
from sqldialog.domains.connections.domain.errors import ConnectionStoreError
from sqldialog.domains.connections.domain.fields import ConnectionComponents
from sqldialog.domains.connections.domain.profile import FieldName
from sqldialog.domains.connections.store.connections import JSONConnectionStore


def _components_table(components: ConnectionComponents, title: str, names: list[str]) -> Table:
    table = Table(title=title, title_justify="left")
    table.add_column("Name")
    table.add_column("Label")
    table.add_column("Kind")
    table.add_column("Required")
    for name in names:
        spec = components.components[name]
        table.add_row(name, spec.label, spec.kind.value, "yes" if spec.required else "")
    return table


def cmd_schema(args: Any, console: Console) -> int:
    """Compile a capabilities document and print the form buckets."""
    path = Path(args.capabilities)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        console.print(f"[red]Error:[/red] could not read {path}: {exc}")
        return 1
    if not isinstance(data, dict):
        console.print(f"[red]Error:[/red] {path} must contain a JSON object")
        return 1

    components = FormSchemaCompiler(LoggingDiagnostics()).compile(CapabilitiesResult.from_dict(data))

    console.print(_components_table(components, "Main options", components.main_options))
    console.print(_components_table(components, "Top advanced options", components.top_advanced_options))
    for group in components.grouped_advanced_options:
        console.print(_components_table(components, group.group_name, group.options))
    return 0


def cmd_connection_list(args: Any, console: Console, store: JSONConnectionStore | None = None) -> int:
    """List saved and recent connections."""
    store = store or JSONConnectionStore.get_instance()
    try:
        connections = store.load_all_connections(True)
    except ConnectionStoreError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        return 1

    if not connections:
        console.print("No saved connections.")
        return 0

    table = Table()
    table.add_column("Name")
    table.add_column("Kind")
    table.add_column("Server")
    table.add_column("Database")
    table.add_column("Auth Type")
    for conn in connections:
        profile = conn.profile
        server = "(connection string)" if profile.has_connection_string else str(profile.get(FieldName.SERVER, ""))
        table.add_row(
            profile.display_name,
            conn.kind.value,
            server,
            str(profile.get(FieldName.DATABASE, "")),
            str(profile.get(FieldName.AUTHENTICATION_TYPE, "")),
        )
    console.print(table)
    return 0


def cmd_connection_delete(args: Any, console: Console, store: JSONConnectionStore | None = None) -> int:
    """Delete a saved connection by display name."""
    store = store or JSONConnectionStore.get_instance()
    try:
        saved = [c.profile for c in store.load_all_connections(False) if c.kind == ConnectionKind.SAVED]
    except ConnectionStoreError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        return 1

    match = next((p for p in saved if p.display_name == args.connection_name), None)
    if match is None:
        console.print(f"[red]Error:[/red] Connection '{args.connection_name}' not found.")
        return 1

    asyncio.run(store.remove_profile(match))
    console.print(f"Connection '{args.connection_name}' deleted successfully.")
    return 0
