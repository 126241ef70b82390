#!/usr/bin/env python3
"""sqldialog - schema-driven SQL connection dialog engine."""

from __future__ import annotations

import argparse
import os
import sys

from rich.console import Console

from sqldialog.shared.core.logging import configure_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sqldialog",
        description="Inspect connection dialog schemas and saved connections",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        type=str.upper,
        help="Log level (default: SQLDIALOG_LOG_LEVEL or the settings file, else INFO)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Use rich console logging",
    )
    parser.add_argument(
        "--settings",
        metavar="PATH",
        help="Path to settings JSON file (overrides ~/.sqldialog/settings.json)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    schema_parser = subparsers.add_parser("schema", help="Compile a capabilities JSON document")
    schema_parser.add_argument("capabilities", metavar="CAPABILITIES.json", help="Capabilities document")

    conn_parser = subparsers.add_parser(
        "connections",
        help="Manage saved connections",
        aliases=["connection"],
    )
    conn_subparsers = conn_parser.add_subparsers(dest="conn_command", help="Connection commands")
    conn_subparsers.add_parser("list", help="List saved and recent connections")
    delete_parser = conn_subparsers.add_parser("delete", help="Delete a saved connection")
    delete_parser.add_argument("connection_name", help="Name of connection to delete")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(sys.argv[1:] if argv is None else argv)

    if args.settings:
        os.environ["SQLDIALOG_SETTINGS_PATH"] = args.settings

    from sqldialog.domains.connections.store.settings import load_dialog_settings

    configure_logging(args.log_level or load_dialog_settings().log_level, use_rich=args.verbose)
    console = Console()

    from sqldialog import commands

    if args.command == "schema":
        return commands.cmd_schema(args, console)

    if args.command in {"connections", "connection"}:
        if args.conn_command == "list":
            return commands.cmd_connection_list(args, console)
        if args.conn_command == "delete":
            return commands.cmd_connection_delete(args, console)
        console.print("Usage: sqldialog connections {list,delete}")
        return 1

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
