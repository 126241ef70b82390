"""Settings store for the connection dialog."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from sqldialog.shared.core.store import JSONFileStore, get_config_dir

AZURE_SUBSCRIPTION_FILTER = "azure_subscription_filter"
DEFAULT_CONNECT_TIMEOUT = "default_connect_timeout"
DEFAULT_APPLICATION_NAME = "default_application_name"
LOG_LEVEL = "log_level"


def _resolve_settings_path() -> Path:
    override = os.environ.get("SQLDIALOG_SETTINGS_PATH", "").strip()
    if override:
        return Path(override).expanduser()
    return get_config_dir() / "settings.json"


@dataclass
class DialogSettings:
    """Typed view of the settings the dialog reads."""

    azure_subscription_filter: list[str] | None = None
    default_connect_timeout: int = 15
    default_application_name: str = "sqldialog"
    log_level: str | None = None

    @property
    def use_subscription_filter(self) -> bool:
        """Filtering is on whenever a filter list is configured, even an empty one."""
        return self.azure_subscription_filter is not None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DialogSettings:
        settings = cls()
        raw_filter = data.get(AZURE_SUBSCRIPTION_FILTER)
        if isinstance(raw_filter, list):
            settings.azure_subscription_filter = [str(item) for item in raw_filter]
        timeout = data.get(DEFAULT_CONNECT_TIMEOUT)
        if isinstance(timeout, int) and not isinstance(timeout, bool) and timeout > 0:
            settings.default_connect_timeout = timeout
        app_name = data.get(DEFAULT_APPLICATION_NAME)
        if isinstance(app_name, str) and app_name.strip():
            settings.default_application_name = app_name.strip()
        level = data.get(LOG_LEVEL)
        if isinstance(level, str) and level.strip():
            settings.log_level = level.strip()
        return settings


class SettingsStore(JSONFileStore):
    """Store for managing dialog settings.

    Settings are stored as a JSON object in ~/.sqldialog/settings.json
    """

    def __init__(self, file_path: Path | None = None) -> None:
        super().__init__(file_path or _resolve_settings_path())

    @classmethod
    def get_instance(cls) -> SettingsStore:
        """Get the shared instance for the current settings path."""
        return _get_store()

    def load_all(self) -> dict[str, Any]:
        """Load all settings.

        Returns:
            Dictionary of settings, or empty dict if none exist.
        """
        data = self._read_json()
        return data if isinstance(data, dict) else {}

    def save_all(self, settings: dict[str, Any]) -> None:
        self._write_json(settings)

    def get(self, key: str, default: Any = None) -> Any:
        return self.load_all().get(key, default)

    def set(self, key: str, value: Any) -> None:
        settings = self.load_all()
        settings[key] = value
        self.save_all(settings)

    def delete(self, key: str) -> bool:
        """Delete a setting.

        Returns:
            True if key existed and was deleted, False otherwise.
        """
        settings = self.load_all()
        if key in settings:
            del settings[key]
            self.save_all(settings)
            return True
        return False

    def load_dialog_settings(self) -> DialogSettings:
        return DialogSettings.from_dict(self.load_all())


_store: SettingsStore | None = None
_store_path: Path | None = None


def _get_store() -> SettingsStore:
    global _store, _store_path
    path = _resolve_settings_path()
    if _store is None or _store_path != path:
        _store = SettingsStore(file_path=path)
        _store_path = path
    return _store


def load_dialog_settings() -> DialogSettings:
    """Load dialog settings from the config file."""
    return _get_store().load_dialog_settings()
