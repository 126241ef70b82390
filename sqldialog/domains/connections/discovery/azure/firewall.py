"""Azure SQL firewall rules through the Azure CLI."""

from __future__ import annotations

import asyncio
import json
import logging
import re

from sqldialog.domains.connections.discovery.azure.cli import AzCommandRunner, run_az_command
from sqldialog.domains.connections.domain.contracts import (
    FirewallRuleRequest,
    FirewallRuleResult,
    HandleFirewallRuleResult,
)

logger = logging.getLogger(__name__)

AZURE_SQL_SUFFIX = ".database.windows.net"


def parse_ip_from_firewall_error(error_message: str) -> str | None:
    """Extract the client IP address from an Azure SQL firewall error.

    Returns:
        The IP address if found, None otherwise.
    """
    # Pattern: "Client with IP address 'X.X.X.X' is not allowed"
    match = re.search(r"Client with IP address '(\d+\.\d+\.\d+\.\d+)'", error_message)
    if match:
        return match.group(1)
    return None


def parse_server_name_from_hostname(hostname: str) -> str | None:
    """Extract the server name from an Azure SQL hostname.

    Args:
        hostname: The server hostname (e.g., 'myserver.database.windows.net').

    Returns:
        The server name if it's an Azure SQL hostname, None otherwise.
    """
    if not hostname:
        return None
    hostname_lower = hostname.strip().lower()
    # Strip a "tcp:" prefix and ",port" suffix
    if hostname_lower.startswith("tcp:"):
        hostname_lower = hostname_lower[len("tcp:") :]
    hostname_lower = hostname_lower.split(",", 1)[0]
    if hostname_lower.endswith(AZURE_SQL_SUFFIX):
        return hostname_lower[: -len(AZURE_SQL_SUFFIX)]
    return None


def _subscription_from_resource_id(resource_id: str) -> str:
    # /subscriptions/<id>/resourceGroups/<group>/providers/...
    parts = resource_id.split("/")
    if len(parts) > 2 and parts[1].lower() == "subscriptions":
        return parts[2]
    return ""


class AzureCliFirewallService:
    """Firewall service backed by ``az sql server firewall-rule``."""

    def __init__(self, runner: AzCommandRunner = run_az_command) -> None:
        self._runner = runner

    async def handle_firewall_rule(self, error_code: int, error_message: str) -> HandleFirewallRuleResult:
        ip_address = parse_ip_from_firewall_error(error_message)
        return HandleFirewallRuleResult(result=ip_address is not None, ip_address=ip_address)

    async def create_firewall_rule(self, request: FirewallRuleRequest) -> FirewallRuleResult:
        return await asyncio.to_thread(self._create_firewall_rule, request)

    def _lookup_resource_group(self, server_name: str) -> tuple[str, str] | None:
        """Return (resource group, subscription id) for a server, if found."""
        success, output = self._runner(
            ["sql", "server", "list", "--query", f"[?name=='{server_name}']", "-o", "json"],
            30,
        )
        if not success:
            logger.warning("Could not look up Azure SQL server %s: %s", server_name, output.strip())
            return None
        try:
            servers = json.loads(output)
        except json.JSONDecodeError:
            return None
        if not servers:
            return None
        server = servers[0]
        return server.get("resourceGroup", ""), _subscription_from_resource_id(server.get("id", ""))

    def _create_firewall_rule(self, request: FirewallRuleRequest) -> FirewallRuleResult:
        server_name = parse_server_name_from_hostname(request.server_name)
        if server_name is None:
            return FirewallRuleResult(result=False, error_message=f"'{request.server_name}' is not an Azure SQL server")

        located = self._lookup_resource_group(server_name)
        if located is None or not located[0]:
            return FirewallRuleResult(result=False, error_message=f"Azure SQL server '{server_name}' was not found")
        resource_group, subscription_id = located

        args = [
            "sql", "server", "firewall-rule", "create",
            "--resource-group", resource_group,
            "--server", server_name,
            "--name", request.firewall_rule_name,
            "--start-ip-address", request.start_ip_address,
            "--end-ip-address", request.end_ip_address,
        ]
        if subscription_id:
            args.extend(["--subscription", subscription_id])

        success, output = self._runner(args, 30)
        if not success:
            return FirewallRuleResult(result=False, error_message=f"Failed to create firewall rule: {output.strip()}")
        logger.info("Created firewall rule %s on %s", request.firewall_rule_name, server_name)
        return FirewallRuleResult(result=True)
