"""Azure SQL server discovery through the Azure CLI."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from sqldialog.domains.connections.discovery.azure.cli import AzCommandRunner, run_az_command
from sqldialog.domains.connections.domain.azure import AzureServerInfo
from sqldialog.domains.connections.domain.errors import AzureCliError
from sqldialog.shared.core.protocols import AzureSubscriptionProtocol

logger = logging.getLogger(__name__)

_SERVER_QUERY = "[].{name:name, fqdn:fullyQualifiedDomainName, resourceGroup:resourceGroup, location:location}"


def parse_servers(output: str, subscription_id: str, subscription_name: str) -> list[AzureServerInfo]:
    """Parse ``az sql server list`` JSON output.

    Raises:
        AzureCliError: If the output is not a JSON list.
    """
    try:
        data = json.loads(output)
    except json.JSONDecodeError as exc:
        raise AzureCliError(f"Unexpected output from az sql server list: {exc}") from exc
    if not isinstance(data, list):
        raise AzureCliError("Unexpected output from az sql server list")

    return [
        AzureServerInfo(
            name=server.get("name", ""),
            server=server.get("fqdn", ""),
            location=server.get("location", ""),
            resource_group=server.get("resourceGroup", ""),
            subscription_id=subscription_id,
            subscription_name=subscription_name,
        )
        for server in data
        if isinstance(server, dict)
    ]


def parse_databases(output: str) -> list[str]:
    try:
        data: Any = json.loads(output)
    except json.JSONDecodeError:
        return []
    if not isinstance(data, list):
        return []
    # The master database is not a useful connection target.
    return [str(name) for name in data if name and str(name).lower() != "master"]


class AzureCliServerDiscovery:
    """Lists the SQL servers and databases of a subscription."""

    def __init__(self, runner: AzCommandRunner = run_az_command, include_databases: bool = True) -> None:
        self._runner = runner
        self._include_databases = include_databases

    async def fetch_servers_from_azure(self, subscription: AzureSubscriptionProtocol) -> list[AzureServerInfo]:
        return await asyncio.to_thread(self._fetch_servers, subscription.subscription_id, subscription.name)

    def _fetch_servers(self, subscription_id: str, subscription_name: str) -> list[AzureServerInfo]:
        success, output = self._runner(
            ["sql", "server", "list", "--query", _SERVER_QUERY, "--subscription", subscription_id, "-o", "json"],
            60,
        )
        if not success:
            raise AzureCliError(output.strip() or "az sql server list failed")

        servers = parse_servers(output, subscription_id, subscription_name)
        if self._include_databases:
            for server in servers:
                server.databases = self._fetch_databases(server)
        return servers

    def _fetch_databases(self, server: AzureServerInfo) -> list[str]:
        success, output = self._runner(
            [
                "sql", "db", "list",
                "--server", server.name,
                "--resource-group", server.resource_group,
                "--subscription", server.subscription_id,
                "--query", "[].name",
                "-o", "json",
            ],
            30,
        )
        if not success:
            logger.warning("Could not list databases on %s: %s", server.name, output.strip())
            return []
        return parse_databases(output)
