"""Azure browse models shown in the dialog."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class AzureSubscriptionInfo:
    """A subscription row in the browse view."""

    id: str
    name: str
    loaded: bool = False


@dataclass
class AzureServerInfo:
    """A discovered Azure SQL server."""

    name: str
    server: str  # Fully qualified domain name used to connect
    location: str = ""
    resource_group: str = ""
    subscription_id: str = ""
    subscription_name: str = ""
    databases: list[str] = field(default_factory=list)

    def get_display_name(self) -> str:
        if self.location:
            return f"{self.name} ({self.location})"
        return self.name
