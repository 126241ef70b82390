"""Diagnostic events emitted by the connection dialog."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

VIEW = "ConnectionDialog"


class TelemetryAction:
    INITIALIZE = "Initialize"
    LOAD_CONNECTION = "LoadConnection"
    LOAD_CONNECTIONS = "LoadConnections"
    LOAD_RECENT_CONNECTIONS = "LoadRecentConnections"
    LOAD_CONNECTION_PROPERTIES = "LoadConnectionProperties"
    LOAD_AZURE_ACCOUNTS = "LoadAzureAccountsForEntraAuth"
    LOAD_AZURE_TENANTS = "LoadAzureTenantsForEntraAuth"
    LOAD_AZURE_SUBSCRIPTIONS = "LoadAzureSubscriptions"
    LOAD_AZURE_SERVERS = "LoadAzureServers"
    CREATE_CONNECTION = "CreateConnection"
    ADD_FIREWALL_RULE = "AddFirewallRule"


@dataclass
class LoggingActivity:
    """An activity whose outcome and duration are written to the log."""

    action: str
    started_at: float = field(default_factory=time.perf_counter)

    def _elapsed_ms(self) -> float:
        return (time.perf_counter() - self.started_at) * 1000

    def end(self, properties: dict[str, str] | None = None, measurements: dict[str, float] | None = None) -> None:
        logger.info(
            "[%s] %s succeeded in %.0fms properties=%s measurements=%s",
            VIEW,
            self.action,
            self._elapsed_ms(),
            properties or {},
            measurements or {},
        )

    def end_failed(self, error: BaseException, include_error_message: bool = False) -> None:
        detail = f": {error}" if include_error_message else ""
        logger.warning(
            "[%s] %s failed in %.0fms (%s%s)",
            VIEW,
            self.action,
            self._elapsed_ms(),
            type(error).__name__,
            detail,
        )


class LoggingDiagnostics:
    """Default diagnostics reporter that writes events to the log."""

    def send_action_event(
        self,
        action: str,
        properties: dict[str, str] | None = None,
        measurements: dict[str, float] | None = None,
    ) -> None:
        logger.info("[%s] %s properties=%s measurements=%s", VIEW, action, properties or {}, measurements or {})

    def send_error_event(
        self,
        action: str,
        error: BaseException,
        include_error_message: bool = False,
        properties: dict[str, str] | None = None,
        measurements: dict[str, float] | None = None,
    ) -> None:
        detail = f": {error}" if include_error_message else ""
        logger.error(
            "[%s] %s error %s%s properties=%s measurements=%s",
            VIEW,
            action,
            type(error).__name__,
            detail,
            properties or {},
            measurements or {},
        )

    def start_activity(self, action: str) -> LoggingActivity:
        return LoggingActivity(action=action)
